"""Developer model for issue authors"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime

from leaderboard.config.database import Base


class Developer(Base):
    """Issue author identified by the SonarQube author key (usually a login or e-mail)."""
    __tablename__ = "developers"

    id = Column(Integer, primary_key=True, autoincrement=True)

    author_key = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(String(255))
    email = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Developer {self.author_key}>"
