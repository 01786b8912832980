"""SQLAlchemy-backed repository for leaderboard entities."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from leaderboard.models import (
    ChampionCategory,
    Developer,
    DeveloperMetricsDaily,
    EntityType,
    IndividualRanking,
    Issue,
    MonthlyChampion,
    Project,
    ProjectMetricsDaily,
    ProjectRanking,
    SyncLog,
    SyncStatus,
    SyncType,
    UNRANKED,
)

RANK_COLUMNS = {
    ChampionCategory.DEFECT_TERMINATOR: "defect_terminator_rank",
    ChampionCategory.CODE_ROCK: "code_rock_rank",
    ChampionCategory.CODE_SHIELD: "code_shield_rank",
    ChampionCategory.CRAFTSMAN: "craftsman_rank",
    ChampionCategory.CLIMBER: "climber_rank",
}


class EntityStore:
    """
    Key-based finds, upserts and period-scoped queries over one session

    The store never commits; callers scope transactions to a single record,
    a ranking period, or a champion rebuild.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def add(self, row: Any) -> Any:
        self._session.add(row)
        return row

    def flush(self) -> None:
        self._session.flush()

    # Projects

    def find_project_by_key(self, project_key: str) -> Optional[Project]:
        return self._session.query(Project).filter(Project.project_key == project_key).one_or_none()

    def upsert_project(self, project_key: str, project_name: str | None) -> tuple[Project, bool]:
        project = self.find_project_by_key(project_key)
        created = project is None
        if project is None:
            project = Project(project_key=project_key)
            self._session.add(project)
        project.project_name = project_name or project_key
        project.is_active = True
        self._session.flush()
        return project, created

    def list_active_projects(self) -> list[Project]:
        return list(
            self._session.query(Project).filter(Project.is_active.is_(True)).order_by(Project.project_key).all()
        )

    def list_projects(self) -> list[Project]:
        return list(self._session.query(Project).order_by(Project.project_key).all())

    # Developers

    def find_developer_by_key(self, author_key: str) -> Optional[Developer]:
        return self._session.query(Developer).filter(Developer.author_key == author_key).one_or_none()

    def add_developer(self, author_key: str, display_name: str, email: str | None = None) -> Developer:
        developer = Developer(author_key=author_key, display_name=display_name, email=email, is_active=True)
        self._session.add(developer)
        self._session.flush()
        return developer

    def list_active_developers(self) -> list[Developer]:
        return list(
            self._session.query(Developer)
            .filter(Developer.is_active.is_(True))
            .order_by(Developer.author_key)
            .all()
        )

    # Issues

    def find_issue_by_key(self, issue_key: str) -> Optional[Issue]:
        return self._session.query(Issue).filter(Issue.issue_key == issue_key).one_or_none()

    def count_issues(self) -> int:
        return self._session.query(Issue).count()

    def count_issues_for_project(self, project_id: int) -> int:
        return self._session.query(Issue).filter(Issue.project_id == project_id).count()

    def issues_touching_date(self, project_id: int, day: date) -> list[Issue]:
        """Issues of a project created or resolved on the given day."""
        start = datetime.combine(day, datetime.min.time())
        end = start + timedelta(days=1)
        return list(
            self._session.query(Issue)
            .filter(Issue.project_id == project_id)
            .filter(
                or_(
                    (Issue.created_date >= start) & (Issue.created_date < end),
                    (Issue.resolved_date >= start) & (Issue.resolved_date < end),
                )
            )
            .order_by(Issue.issue_key)
            .all()
        )

    def issues_created_between(self, start: datetime, end: datetime, developer_id: int | None = None) -> list[Issue]:
        query = self._session.query(Issue).filter(Issue.created_date >= start, Issue.created_date < end)
        if developer_id is not None:
            query = query.filter(Issue.developer_id == developer_id)
        return list(query.order_by(Issue.issue_key).all())

    def issues_resolved_between(self, start: datetime, end: datetime) -> list[Issue]:
        return list(
            self._session.query(Issue)
            .filter(Issue.resolved_date >= start, Issue.resolved_date < end)
            .order_by(Issue.issue_key)
            .all()
        )

    # Daily metrics

    def get_or_create_developer_metrics(self, developer_id: int, project_id: int, day: date) -> DeveloperMetricsDaily:
        row = (
            self._session.query(DeveloperMetricsDaily)
            .filter(
                DeveloperMetricsDaily.developer_id == developer_id,
                DeveloperMetricsDaily.project_id == project_id,
                DeveloperMetricsDaily.date_recorded == day,
            )
            .one_or_none()
        )
        if row is None:
            row = DeveloperMetricsDaily(developer_id=developer_id, project_id=project_id, date_recorded=day)
            row.reset_counters()
            self._session.add(row)
        return row

    def developer_metrics_for_date(self, project_id: int, day: date) -> list[DeveloperMetricsDaily]:
        return list(
            self._session.query(DeveloperMetricsDaily)
            .filter(DeveloperMetricsDaily.project_id == project_id, DeveloperMetricsDaily.date_recorded == day)
            .all()
        )

    def developer_metrics_between(self, start: date, end: date) -> list[DeveloperMetricsDaily]:
        """Daily rows with start <= date_recorded <= end."""
        return list(
            self._session.query(DeveloperMetricsDaily)
            .filter(DeveloperMetricsDaily.date_recorded >= start, DeveloperMetricsDaily.date_recorded <= end)
            .all()
        )

    def get_or_create_project_metrics(self, project_id: int, day: date) -> tuple[ProjectMetricsDaily, bool]:
        row = (
            self._session.query(ProjectMetricsDaily)
            .filter(ProjectMetricsDaily.project_id == project_id, ProjectMetricsDaily.date_recorded == day)
            .one_or_none()
        )
        if row is None:
            row = ProjectMetricsDaily(project_id=project_id, date_recorded=day)
            self._session.add(row)
            return row, True
        return row, False

    def project_metrics_as_of(self, project_id: int, as_of: date) -> Optional[ProjectMetricsDaily]:
        """Latest snapshot on or before as_of, else the earliest one after it."""
        query = self._session.query(ProjectMetricsDaily).filter(ProjectMetricsDaily.project_id == project_id)
        row = (
            query.filter(ProjectMetricsDaily.date_recorded <= as_of)
            .order_by(ProjectMetricsDaily.date_recorded.desc())
            .first()
        )
        if row is not None:
            return row
        return query.order_by(ProjectMetricsDaily.date_recorded.asc()).first()

    # Rankings

    def find_individual_ranking(self, developer_id: int, period: date) -> Optional[IndividualRanking]:
        return (
            self._session.query(IndividualRanking)
            .filter(IndividualRanking.developer_id == developer_id, IndividualRanking.ranking_period == period)
            .one_or_none()
        )

    def find_project_ranking(self, project_id: int, period: date) -> Optional[ProjectRanking]:
        return (
            self._session.query(ProjectRanking)
            .filter(ProjectRanking.project_id == project_id, ProjectRanking.ranking_period == period)
            .one_or_none()
        )

    def individual_rankings_for_period(self, period: date) -> list[IndividualRanking]:
        return list(
            self._session.query(IndividualRanking)
            .filter(IndividualRanking.ranking_period == period)
            .order_by(IndividualRanking.defect_terminator_rank, IndividualRanking.id)
            .all()
        )

    def project_rankings_for_period(self, period: date) -> list[ProjectRanking]:
        return list(
            self._session.query(ProjectRanking)
            .filter(ProjectRanking.ranking_period == period)
            .order_by(ProjectRanking.defect_terminator_rank, ProjectRanking.id)
            .all()
        )

    def delete_stale_rankings(self, model: type, period: date, keep_ids: Iterable[int]) -> int:
        """Remove a period's rows for entities that were not ranked this time."""
        keep = [row_id for row_id in keep_ids if row_id is not None]
        query = self._session.query(model).filter(model.ranking_period == period)
        if keep:
            query = query.filter(model.id.notin_(keep))
        return query.delete(synchronize_session=False)

    def top_rankings(
        self,
        period: date,
        category: ChampionCategory,
        entity_type: EntityType = EntityType.INDIVIDUAL,
        limit: int = 3,
    ) -> list[Any]:
        """Best ranked rows of one category, excluding unqualified entries."""
        if entity_type == EntityType.PROJECT and category == ChampionCategory.CLIMBER:
            return []

        model = IndividualRanking if entity_type == EntityType.INDIVIDUAL else ProjectRanking
        rank_column = getattr(model, RANK_COLUMNS[category])
        return list(
            self._session.query(model)
            .filter(model.ranking_period == period, rank_column < UNRANKED)
            .order_by(rank_column.asc(), model.id.asc())
            .limit(limit)
            .all()
        )

    # Champions

    def replace_champions(self, period: date, champions: Sequence[MonthlyChampion]) -> None:
        """Delete every champion of the period, then insert the new set."""
        self._session.query(MonthlyChampion).filter(MonthlyChampion.period == period).delete(
            synchronize_session=False
        )
        self._session.flush()
        for champion in champions:
            self._session.add(champion)
        self._session.flush()

    def champions_for_period(self, period: date, entity_type: EntityType | None = None) -> list[MonthlyChampion]:
        query = self._session.query(MonthlyChampion).filter(MonthlyChampion.period == period)
        if entity_type is not None:
            query = query.filter(MonthlyChampion.entity_type == entity_type.value)
        return list(query.order_by(MonthlyChampion.entity_type, MonthlyChampion.category).all())

    # Sync logs

    def create_sync_log(
        self,
        sync_type: SyncType,
        *,
        started_at: datetime,
        project_id: int | None = None,
    ) -> SyncLog:
        sync_log = SyncLog(
            project_id=project_id,
            sync_type=sync_type.value,
            status=SyncStatus.STARTED.value,
            start_time=started_at,
        )
        self._session.add(sync_log)
        self._session.flush()
        return sync_log

    def last_successful_sync(self, project_id: int) -> Optional[SyncLog]:
        return (
            self._session.query(SyncLog)
            .filter(SyncLog.project_id == project_id, SyncLog.status == SyncStatus.SUCCESS.value)
            .filter(SyncLog.end_time.isnot(None))
            .order_by(SyncLog.end_time.desc(), SyncLog.id.desc())
            .first()
        )

    def recent_sync_logs(self, limit: int = 20) -> list[SyncLog]:
        return list(
            self._session.query(SyncLog).order_by(SyncLog.start_time.desc(), SyncLog.id.desc()).limit(limit).all()
        )
