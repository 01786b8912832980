"""SonarQube sync orchestrator with per-project failure isolation."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from leaderboard.config.connection import SonarConnectionConfig
from leaderboard.config.database import get_session
from leaderboard.config.settings import Settings, settings as default_settings
from leaderboard.crawlers.sonar.client import SonarQubeClient, sanitize_for_log, sanitize_log_extra
from leaderboard.crawlers.sonar.contracts import SonarConnectionError, SonarError
from leaderboard.models import Developer, Issue, Project, SyncLog, SyncStatus, SyncType
from leaderboard.services.entity_store import EntityStore
from leaderboard.services.issue_mapper import apply_issue_payload, author_key_of, issue_key_of
from leaderboard.services.metrics_aggregator import MetricsAggregator
from leaderboard.utils.helpers import daterange, format_display_name, utc_now

logger = logging.getLogger(__name__)


class ProjectNotFoundError(LookupError):
    """A single-project sync named a project key that is not stored locally."""


@dataclass(slots=True)
class ProjectSyncStats:
    """Outcome of syncing one project."""

    project_key: str
    status: str = SyncStatus.STARTED.value
    pages_fetched: int = 0
    issues_processed: int = 0
    issues_created: int = 0
    issues_updated: int = 0
    developers_created: int = 0
    metrics_updated: int = 0
    measures_recorded: bool = False
    created_after: Optional[str] = None
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SyncResult:
    """Aggregated outcome of a sync run."""

    success: bool = False
    message: str = ""
    sync_type: str = SyncType.INCREMENTAL.value
    sync_log_id: Optional[int] = None
    projects_found: int = 0
    projects_created: int = 0
    projects_synced: int = 0
    projects_failed: int = 0
    issues_processed: int = 0
    issues_created: int = 0
    issues_updated: int = 0
    developers_created: int = 0
    metrics_updated: int = 0
    errors: list[str] = field(default_factory=list)
    projects: list[ProjectSyncStats] = field(default_factory=list)

    def add_project(self, stats: ProjectSyncStats) -> None:
        self.projects.append(stats)
        self.issues_processed += stats.issues_processed
        self.issues_created += stats.issues_created
        self.issues_updated += stats.issues_updated
        self.developers_created += stats.developers_created
        self.metrics_updated += stats.metrics_updated
        self.errors.extend(stats.errors)
        if stats.status == SyncStatus.FAILED.value:
            self.projects_failed += 1
        else:
            self.projects_synced += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


RunBody = Callable[[Any, EntityStore, SyncResult], Awaitable[None]]


class SyncOrchestrator:
    """
    Pulls projects, issues and measures from SonarQube into the local store

    Projects are processed one after another with a fixed delay between remote
    requests. A failing project is recorded and skipped; only precondition
    failures (configuration, connectivity) fail the whole run.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Any] = get_session,
        client_factory: Callable[[SonarConnectionConfig], Any] = SonarQubeClient,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._settings = settings or default_settings
        self._clock = clock

    async def sync_all(self, full_sync: bool = False) -> SyncResult:
        """Sync every project SonarQube reports."""
        sync_type = SyncType.FULL if full_sync else SyncType.INCREMENTAL

        async def body(client: Any, store: EntityStore, result: SyncResult) -> None:
            project_refs, fetch_errors = await self._fetch_all_projects(client)
            result.errors.extend(fetch_errors)
            result.projects_found = len(project_refs)
            if not project_refs:
                result.message = "No projects found in SonarQube; nothing to sync"
                return

            projects = self._upsert_projects(store, project_refs, result)
            for index, project in enumerate(projects):
                if index:
                    await self._pause()
                try:
                    stats = await self.sync_project(project, full_sync, client=client, store=store)
                except Exception as exc:
                    stats = ProjectSyncStats(project_key=project.project_key, status=SyncStatus.FAILED.value)
                    stats.errors.append(f"{project.project_key}: {sanitize_for_log(str(exc))}")
                result.add_project(stats)

            result.message = (
                f"Synced {result.projects_synced} of {len(projects)} projects "
                f"({result.issues_processed} issues, {result.projects_failed} failed)"
            )

        return await self._run(sync_type, body)

    async def sync_single_project(self, project_key: str, full_sync: bool = False) -> SyncResult:
        """Sync one locally known project, recorded as a manual run."""

        async def body(client: Any, store: EntityStore, result: SyncResult) -> None:
            project = store.find_project_by_key(project_key)
            if project is None:
                raise ProjectNotFoundError(f"Project not found: {project_key}")

            result.projects_found = 1
            try:
                stats = await self.sync_project(
                    project, full_sync, client=client, store=store, sync_type=SyncType.MANUAL
                )
            except Exception as exc:
                stats = ProjectSyncStats(project_key=project.project_key, status=SyncStatus.FAILED.value)
                stats.errors.append(f"{project.project_key}: {sanitize_for_log(str(exc))}")
            result.add_project(stats)
            result.message = f"Project {project_key} sync finished with status {stats.status}"

        return await self._run(SyncType.MANUAL, body)

    async def _run(self, sync_type: SyncType, body: RunBody) -> SyncResult:
        session = self._session_factory()
        store = EntityStore(session)
        result = SyncResult(sync_type=sync_type.value)
        started_at = self._clock()

        run_log = store.create_sync_log(sync_type, started_at=started_at)
        session.commit()
        result.sync_log_id = run_log.id
        logger.info("SonarQube sync started", extra={"sync_type": sync_type.value, "sync_log_id": run_log.id})

        fatal_error: str | None = None
        try:
            config = SonarConnectionConfig.resolve(self._settings, session)
            async with self._client_factory(config) as client:
                if not await client.check_connection():
                    raise SonarConnectionError(f"Cannot connect to SonarQube at {config.base_url}")
                await body(client, store, result)
        except (SonarError, ProjectNotFoundError) as exc:
            session.rollback()
            fatal_error = sanitize_for_log(str(exc))
            logger.error(
                "SonarQube sync failed",
                extra=sanitize_log_extra(sync_type=sync_type.value, error=fatal_error),
            )
        except Exception as exc:
            session.rollback()
            fatal_error = sanitize_for_log(f"{type(exc).__name__}: {exc}")
            logger.exception(
                "SonarQube sync raised exception",
                extra=sanitize_log_extra(sync_type=sync_type.value, error=fatal_error),
            )

        result.success = fatal_error is None
        if fatal_error is not None:
            result.message = f"Sync failed: {fatal_error}"
            result.errors.append(fatal_error)

        try:
            self._finish_log(
                run_log,
                status=SyncStatus.SUCCESS if result.success else SyncStatus.FAILED,
                processed=result.issues_processed,
                created=result.issues_created,
                updated=result.issues_updated,
                error=fatal_error,
                details={
                    "projects": result.projects_found,
                    "developers": result.developers_created,
                    "issues_created": result.issues_created,
                    "issues_updated": result.issues_updated,
                    "metrics": result.metrics_updated,
                },
            )
            session.commit()
        finally:
            session.close()

        logger.info(
            "SonarQube sync completed",
            extra=sanitize_log_extra(
                sync_type=sync_type.value,
                success=result.success,
                projects_synced=result.projects_synced,
                projects_failed=result.projects_failed,
                errors=result.errors[:20],
            ),
        )
        return result

    async def sync_project(
        self,
        project: Project,
        full_sync: bool = False,
        *,
        client: Any,
        store: EntityStore,
        sync_type: SyncType | None = None,
    ) -> ProjectSyncStats:
        """
        Sync one project's issues, measures and daily developer metrics

        Args:
            project: Stored project
            full_sync: Ignore the last successful sync and use the lookback window
            client: Open SonarQube gateway
            store: Store bound to the run's session
            sync_type: Type recorded on the project's sync log

        Returns:
            Per-project stats; the project's sync log is SUCCESS, PARTIAL when
            individual records failed, or FAILED when the sync raised
        """
        session = store.session
        now = self._clock()
        stats = ProjectSyncStats(project_key=project.project_key)
        log_type = sync_type or (SyncType.FULL if full_sync else SyncType.INCREMENTAL)

        created_after = self._watermark(store, project, full_sync, now)
        stats.created_after = created_after.isoformat()
        project_log = store.create_sync_log(log_type, started_at=now, project_id=project.id)
        session.commit()

        logger.info(
            "Project sync started",
            extra={"project_key": project.project_key, "created_after": stats.created_after, "full_sync": full_sync},
        )

        try:
            await self._sync_issues(project, created_after, client=client, store=store, stats=stats)
            await self._sync_measures(project, now, client=client, store=store, stats=stats)
            aggregator = self._aggregator(store)
            for day in daterange(created_after.date(), now.date()):
                stats.metrics_updated += aggregator.compute_developer_metrics_for_date(project, day)
            session.commit()
        except Exception as exc:
            session.rollback()
            stats.status = SyncStatus.FAILED.value
            error = sanitize_for_log(str(exc))
            logger.warning(
                "Project sync failed",
                extra=sanitize_log_extra(project_key=project.project_key, error=error),
            )
            self._finish_log(project_log, status=SyncStatus.FAILED, error=error, stats=stats)
            session.commit()
            raise

        stats.status = SyncStatus.PARTIAL.value if stats.errors else SyncStatus.SUCCESS.value
        self._finish_log(
            project_log,
            status=SyncStatus(stats.status),
            error="; ".join(stats.errors[:10]) or None,
            stats=stats,
        )
        session.commit()

        logger.info(
            "Project sync completed",
            extra={
                "project_key": project.project_key,
                "status": stats.status,
                "issues_processed": stats.issues_processed,
                "error_count": len(stats.errors),
            },
        )
        return stats

    async def _sync_issues(
        self,
        project: Project,
        created_after: datetime,
        *,
        client: Any,
        store: EntityStore,
        stats: ProjectSyncStats,
    ) -> None:
        config = client.config
        for page in range(1, config.max_pages + 1):
            if page > 1:
                await self._pause()

            response = await client.list_issues(
                project.project_key,
                created_after=created_after,
                page=page,
                page_size=config.page_size,
            )
            stats.pages_fetched += 1
            if response.is_failed:
                stats.errors.append(f"{project.project_key}: issues page {page} failed: {response.error}")
                logger.warning(
                    "Issue page fetch failed",
                    extra=sanitize_log_extra(project_key=project.project_key, page=page, error=response.error),
                )
                break
            if response.is_empty or response.data is None:
                break

            for payload in response.data.items:
                await self._upsert_issue(project, payload, client=client, store=store, stats=stats)

            if not response.data.has_more:
                break

    async def _upsert_issue(
        self,
        project: Project,
        payload: dict[str, Any],
        *,
        client: Any,
        store: EntityStore,
        stats: ProjectSyncStats,
    ) -> None:
        session = store.session
        stats.issues_processed += 1
        issue_key = payload.get("key")
        try:
            issue_key = issue_key_of(payload)
            developer, developer_created = await self._resolve_developer(
                author_key_of(payload), client=client, store=store
            )

            issue = store.find_issue_by_key(issue_key)
            created = issue is None
            if issue is None:
                issue = store.add(Issue())
            apply_issue_payload(issue, payload, project=project, developer=developer)
            session.commit()
        except Exception as exc:
            session.rollback()
            error = sanitize_for_log(str(exc))
            stats.errors.append(f"{project.project_key}: issue {issue_key}: {error}")
            logger.warning(
                "Issue upsert failed",
                extra=sanitize_log_extra(project_key=project.project_key, issue_key=issue_key, error=error),
            )
            return

        if developer_created:
            stats.developers_created += 1
        if created:
            stats.issues_created += 1
        else:
            stats.issues_updated += 1

    async def _resolve_developer(
        self,
        author_key: Optional[str],
        *,
        client: Any,
        store: EntityStore,
    ) -> tuple[Optional[Developer], bool]:
        if not author_key:
            return None, False

        developer = store.find_developer_by_key(author_key)
        if developer is not None:
            return developer, False

        user = await client.resolve_user(author_key)
        display_name = (user.display_name if user is not None else None) or format_display_name(author_key)
        email = user.email if user is not None else None
        if user is None:
            logger.info("No exact SonarQube user match, using formatted name", extra={"author_key": author_key})

        return store.add_developer(author_key, display_name, email), True

    async def _sync_measures(
        self,
        project: Project,
        now: datetime,
        *,
        client: Any,
        store: EntityStore,
        stats: ProjectSyncStats,
    ) -> None:
        response = await client.get_project_measures(project.project_key)
        if response.is_failed:
            stats.errors.append(f"{project.project_key}: measures fetch failed: {response.error}")
            logger.warning(
                "Project measures fetch failed",
                extra=sanitize_log_extra(project_key=project.project_key, error=response.error),
            )
            return
        if response.is_empty or not response.data:
            logger.info("No measures reported for project", extra={"project_key": project.project_key})
            return

        self._aggregator(store).record_project_measures(project, now.date(), response.data)
        store.session.commit()
        stats.measures_recorded = True

    def _aggregator(self, store: EntityStore) -> MetricsAggregator:
        return MetricsAggregator(store, loc_per_issue=self._settings.LOC_PER_ISSUE_ESTIMATE)

    async def _fetch_all_projects(self, client: Any) -> tuple[list[dict[str, Any]], list[str]]:
        """Page through project search until a short or empty page, or the page cap."""
        config = client.config
        projects: list[dict[str, Any]] = []
        errors: list[str] = []

        for page in range(1, config.max_pages + 1):
            if page > 1:
                await self._pause()

            response = await client.list_projects(page, config.page_size)
            if response.is_failed:
                errors.append(f"projects page {page} failed: {response.error}")
                logger.warning(
                    "Project page fetch failed",
                    extra=sanitize_log_extra(page=page, error=response.error),
                )
                break
            if response.is_empty or response.data is None:
                break

            projects.extend(response.data.items)
            if not response.data.has_more:
                break

        logger.info("Fetched SonarQube projects", extra={"project_count": len(projects)})
        return projects, errors

    def _upsert_projects(
        self,
        store: EntityStore,
        project_refs: list[dict[str, Any]],
        result: SyncResult,
    ) -> list[Project]:
        projects: list[Project] = []
        seen: set[str] = set()
        for ref in project_refs:
            project_key = str(ref.get("key") or "").strip()
            if not project_key or project_key in seen:
                continue
            seen.add(project_key)
            try:
                project, created = store.upsert_project(project_key, ref.get("name"))
                store.session.commit()
            except Exception as exc:
                store.session.rollback()
                result.errors.append(f"{project_key}: project upsert failed: {sanitize_for_log(str(exc))}")
                logger.warning(
                    "Project upsert failed",
                    extra=sanitize_log_extra(project_key=project_key, error=str(exc)),
                )
                continue
            if created:
                result.projects_created += 1
            projects.append(project)
        return projects

    def _watermark(self, store: EntityStore, project: Project, full_sync: bool, now: datetime) -> datetime:
        lookback = now - timedelta(days=self._settings.SYNC_HISTORICAL_DAYS)
        if full_sync:
            return lookback
        last_success = store.last_successful_sync(project.id)
        if last_success is None or last_success.end_time is None:
            return lookback
        return last_success.end_time

    async def _pause(self) -> None:
        delay_ms = self._settings.SYNC_REQUEST_DELAY_MS
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    def _finish_log(
        self,
        sync_log: SyncLog,
        *,
        status: SyncStatus,
        error: str | None = None,
        stats: ProjectSyncStats | None = None,
        processed: int = 0,
        created: int = 0,
        updated: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        if stats is not None:
            processed, created, updated = stats.issues_processed, stats.issues_created, stats.issues_updated
            details = {
                "projects": 1,
                "developers": stats.developers_created,
                "issues_created": stats.issues_created,
                "issues_updated": stats.issues_updated,
                "metrics": stats.metrics_updated,
            }
        sync_log.status = status.value
        sync_log.end_time = self._clock()
        sync_log.records_processed = processed
        sync_log.records_created = created
        sync_log.records_updated = updated
        sync_log.error_message = error
        sync_log.sync_details = json.dumps(details or {}, sort_keys=True)
