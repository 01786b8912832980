"""Import saved SonarQube API responses from JSON dumps."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from leaderboard.models import Developer, Issue, Project
from leaderboard.services.entity_store import EntityStore
from leaderboard.services.issue_mapper import apply_issue_payload, author_key_of, issue_key_of
from leaderboard.services.metrics_aggregator import MetricsAggregator
from leaderboard.utils.helpers import format_display_name

logger = logging.getLogger(__name__)

JsonSource = Union[str, bytes, Path, Mapping[str, Any]]


@dataclass(slots=True)
class ImportResult:
    success: bool
    message: str
    imported_count: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_json(source: JsonSource) -> Mapping[str, Any]:
    """Parse a dump given as a mapping, a JSON string/bytes, or a file path."""
    if isinstance(source, Mapping):
        return source
    if isinstance(source, Path):
        return json.loads(source.read_text(encoding="utf-8"))
    return json.loads(source)


class JsonImportService:
    """
    Loads `/api/issues/search`, `/api/components/search` and `/api/users/search`
    responses saved to disk

    Issues go through the same mapping and enum fallbacks as a live sync. Each
    record is committed on its own; a bad record is reported and skipped.
    Daily developer metrics are rebuilt for every day an imported issue was
    created or resolved on, so imported issues count in monthly rankings.
    """

    def __init__(self, store: EntityStore, aggregator: MetricsAggregator | None = None) -> None:
        self._store = store
        self._aggregator = aggregator or MetricsAggregator(store)

    def import_issues(self, source: JsonSource) -> ImportResult:
        result, touched = self._import(source, "issues", "issues", self._import_issue)
        days: dict[int, tuple[Project, set[date]]] = {}
        for project, issue_days in touched:
            days.setdefault(project.id, (project, set()))[1].update(issue_days)
        result.errors.extend(self._rebuild_daily_metrics(days.values()))
        return result

    def import_projects(self, source: JsonSource) -> ImportResult:
        return self._import(source, "components", "projects", self._import_project)[0]

    def import_developers(self, source: JsonSource) -> ImportResult:
        return self._import(source, "users", "developers", self._import_developer)[0]

    def _import(
        self,
        source: JsonSource,
        items_key: str,
        label: str,
        handler: Callable[[dict[str, Any]], Any],
    ) -> tuple[ImportResult, list[Any]]:
        """Run handler per item; also returns the handler values of committed items."""
        try:
            payload = load_json(source)
        except (OSError, ValueError) as exc:
            logger.warning("JSON import could not read input", extra={"label": label, "error": str(exc)})
            return ImportResult(success=False, message=f"Import failed: {exc}"), []

        items = [item for item in payload.get(items_key) or [] if isinstance(item, dict)]
        if not items:
            return ImportResult(success=False, message=f"No {label} found in JSON content"), []

        session = self._store.session
        committed: list[Any] = []
        errors: list[str] = []
        for item in items:
            try:
                outcome = handler(item)
                session.commit()
            except Exception as exc:
                session.rollback()
                errors.append(f"{label[:-1].capitalize()} {item.get('key') or item.get('login')}: {exc}")
                continue
            committed.append(outcome)

        imported = len(committed)
        logger.info(
            "JSON import finished",
            extra={"label": label, "imported_count": imported, "error_count": len(errors)},
        )
        result = ImportResult(
            success=imported > 0,
            message=f"{imported} {label} imported",
            imported_count=imported,
            errors=errors,
        )
        return result, committed

    def _import_issue(self, item: dict[str, Any]) -> tuple[Project, set[date]]:
        issue_key = issue_key_of(item)
        project_key = str(item.get("project") or "").strip()
        if not project_key:
            raise ValueError("issue has no project")

        project = self._store.find_project_by_key(project_key)
        if project is None:
            project, _ = self._store.upsert_project(project_key, project_key)

        developer = self._developer_for(author_key_of(item))
        issue = self._store.find_issue_by_key(issue_key)
        if issue is None:
            issue = self._store.add(Issue())
        # Days the issue used to count on need recounting too
        days = _issue_days(issue)
        apply_issue_payload(issue, item, project=project, developer=developer)
        return project, days | _issue_days(issue)

    def _rebuild_daily_metrics(self, touched: Iterable[tuple[Project, set[date]]]) -> list[str]:
        session = self._store.session
        rebuilt = 0
        errors: list[str] = []
        for project, days in touched:
            try:
                for day in sorted(days):
                    rebuilt += self._aggregator.compute_developer_metrics_for_date(project, day)
                session.commit()
            except Exception as exc:
                session.rollback()
                errors.append(f"Daily metrics for {project.project_key}: {exc}")
                logger.exception(
                    "Daily metrics rebuild failed after import",
                    extra={"project_key": project.project_key},
                )
        logger.info("Daily metrics rebuilt after import", extra={"metric_rows": rebuilt})
        return errors

    def _developer_for(self, author_key: Optional[str]) -> Optional[Developer]:
        if not author_key:
            return None
        developer = self._store.find_developer_by_key(author_key)
        if developer is None:
            developer = self._store.add_developer(author_key, format_display_name(author_key))
        return developer

    def _import_project(self, item: dict[str, Any]) -> None:
        project_key = str(item.get("key") or "").strip()
        if not project_key:
            raise ValueError("component has no key")
        self._store.upsert_project(project_key, item.get("name"))

    def _import_developer(self, item: dict[str, Any]) -> None:
        login = str(item.get("login") or "").strip()
        if not login:
            raise ValueError("user has no login")

        developer = self._store.find_developer_by_key(login)
        if developer is None:
            developer = self._store.add_developer(login, format_display_name(login))
        developer.display_name = (item.get("name") or "").strip() or developer.display_name
        developer.email = item.get("email") or developer.email
        developer.is_active = bool(item.get("active", True))


def _issue_days(issue: Issue) -> set[date]:
    return {value.date() for value in (issue.created_date, issue.resolved_date) if value is not None}
