"""Database engine, session factory and declarative base"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from leaderboard.config.settings import settings

Base = declarative_base()

# Bound lazily so importing the models never opens a driver connection
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Create the process-wide engine on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
        SessionLocal.configure(bind=_engine)
    return _engine


def get_session() -> Session:
    """Open a new session bound to the configured database."""
    get_engine()
    return SessionLocal()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    import leaderboard.models  # noqa: F401  registers every model on Base.metadata

    Base.metadata.create_all(bind=bind or get_engine())
