from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaderboard.config.database import init_db
from leaderboard.models import Developer, Issue, Project, ProjectMetricsDaily


class Seed:
    """Small row builders for tests that need stored entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def project(
        self,
        key: str,
        name: Optional[str] = None,
        *,
        ncloc: Optional[int] = None,
        snapshot_date: date = date(2024, 1, 31),
    ) -> Project:
        project = Project(project_key=key, project_name=name or key, is_active=True)
        self.session.add(project)
        self.session.flush()
        if ncloc is not None:
            self.session.add(
                ProjectMetricsDaily(project_id=project.id, date_recorded=snapshot_date, lines_of_code=ncloc)
            )
        self.session.commit()
        return project

    def developer(self, author_key: str, display_name: Optional[str] = None) -> Developer:
        developer = Developer(author_key=author_key, display_name=display_name or author_key, is_active=True)
        self.session.add(developer)
        self.session.commit()
        return developer

    def issue(
        self,
        key: str,
        project: Project,
        developer: Optional[Developer] = None,
        *,
        issue_type: str = "CODE_SMELL",
        created: datetime = datetime(2024, 1, 10, 9, 0),
        resolved: Optional[datetime] = None,
        **fields: Any,
    ) -> Issue:
        issue = Issue(
            issue_key=key,
            project_id=project.id,
            developer_id=developer.id if developer is not None else None,
            issue_type=issue_type,
            created_date=created,
            resolved_date=resolved,
            **fields,
        )
        self.session.add(issue)
        self.session.commit()
        return issue


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine) -> Iterator[Session]:
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture()
def seed(db_session: Session) -> Seed:
    return Seed(db_session)
