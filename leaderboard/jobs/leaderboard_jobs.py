"""
Scheduler and CLI entry points for the quality leaderboard.

Sync runs pull SonarQube data into the local store; the monthly ranking run
scores the previous month and selects its champions. Each trigger returns a
plain result dict so a scheduler, HTTP layer or CLI can report it as-is.
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import date, datetime
import json
import logging
from pathlib import Path
import sys
import threading
import time
from typing import Any, Callable, Optional, Sequence

from leaderboard.config.database import get_session
from leaderboard.config.settings import settings
from leaderboard.models import ChampionCategory, EntityType
from leaderboard.orchestrator_sync import ProjectNotFoundError, SyncOrchestrator
from leaderboard.services.champion_selector import SCORE_COLUMNS, ChampionSelector
from leaderboard.services.entity_store import RANK_COLUMNS, EntityStore
from leaderboard.services.json_import import JsonImportService
from leaderboard.services.ranking_engine import RankingEngine
from leaderboard.utils.helpers import month_start, previous_month, utc_now
from leaderboard.utils.logger import setup_logger

logger = logging.getLogger(__name__)

__all__ = [
    "ProjectNotFoundError",
    "trigger_sync",
    "trigger_project_sync",
    "trigger_ranking_calculation",
    "leaderboard_snapshot",
    "import_dump",
    "main",
]

ALREADY_RUNNING = "{kind} is already running"

# One run of each kind per process
_sync_lock = threading.Lock()
_ranking_lock = threading.Lock()


def _result(
    success: bool,
    message: str,
    started: float,
    *,
    stats: dict[str, Any] | None = None,
    errors: Sequence[str] | None = None,
) -> dict[str, Any]:
    return {
        "success": success,
        "message": message,
        "duration_ms": int((time.perf_counter() - started) * 1000),
        "stats": stats or {},
        "errors": list(errors or []),
    }


async def trigger_sync(full_sync: bool = False, *, orchestrator: SyncOrchestrator | None = None) -> dict[str, Any]:
    """Sync every SonarQube project; full_sync re-pulls the whole lookback window."""
    started = time.perf_counter()
    if not _sync_lock.acquire(blocking=False):
        logger.warning("Sync trigger rejected, run in progress")
        return _result(False, ALREADY_RUNNING.format(kind="Sync"), started)

    try:
        orchestrator = orchestrator or SyncOrchestrator()
        result = await orchestrator.sync_all(full_sync)
        return _result(result.success, result.message, started, stats=result.to_dict(), errors=result.errors)
    finally:
        _sync_lock.release()


async def trigger_project_sync(
    project_key: str,
    full_sync: bool = False,
    *,
    orchestrator: SyncOrchestrator | None = None,
) -> dict[str, Any]:
    """Sync a single stored project."""
    started = time.perf_counter()
    if not _sync_lock.acquire(blocking=False):
        logger.warning("Project sync trigger rejected, run in progress", extra={"project_key": project_key})
        return _result(False, ALREADY_RUNNING.format(kind="Sync"), started)

    try:
        orchestrator = orchestrator or SyncOrchestrator()
        result = await orchestrator.sync_single_project(project_key, full_sync)
        return _result(result.success, result.message, started, stats=result.to_dict(), errors=result.errors)
    finally:
        _sync_lock.release()


async def trigger_ranking_calculation(
    period: Optional[date] = None,
    *,
    session_factory: Callable[[], Any] = get_session,
    clock: Callable[[], datetime] = utc_now,
) -> dict[str, Any]:
    """
    Rank the month containing period and rebuild its champions

    Args:
        period: Any date in the month to rank; defaults to the previous month
        session_factory: Source of the database session
        clock: Current time, used only for the default period

    Returns:
        Result dict with ranking counts and the champion count in stats
    """
    started = time.perf_counter()
    target = month_start(period) if period is not None else previous_month(clock().date())
    if not _ranking_lock.acquire(blocking=False):
        logger.warning("Ranking trigger rejected, run in progress", extra={"period": target.isoformat()})
        return _result(False, ALREADY_RUNNING.format(kind="Ranking calculation"), started)

    session = None
    try:
        session = session_factory()
        store = EntityStore(session)
        stats = RankingEngine(store).calculate_monthly_rankings(target)
        champions = ChampionSelector(store).select_champions(target)
        stats["champions"] = len(champions)

        if not stats["individual_rankings"] and not stats["project_rankings"]:
            message = f"No active developers or projects to rank for {target.isoformat()}"
        else:
            message = f"Rankings calculated for {target.isoformat()}"
        return _result(True, message, started, stats=stats)
    except Exception as exc:
        logger.exception("Ranking calculation failed", extra={"period": target.isoformat()})
        return _result(False, f"Ranking calculation failed: {exc}", started, errors=[str(exc)])
    finally:
        if session is not None:
            session.close()
        _ranking_lock.release()


def leaderboard_snapshot(
    period: date,
    *,
    limit: int = 3,
    session_factory: Callable[[], Any] = get_session,
) -> dict[str, Any]:
    """Top entries per category and the champions of one month."""
    period = month_start(period)
    session = session_factory()
    try:
        store = EntityStore(session)
        snapshot: dict[str, Any] = {"period": period.isoformat(), "champions": []}
        for entity_type in EntityType:
            board: dict[str, list[dict[str, Any]]] = {}
            for category in ChampionCategory:
                rows = store.top_rankings(period, category, entity_type, limit=limit)
                if rows:
                    board[category.value] = [_board_entry(row, category, entity_type) for row in rows]
            snapshot[entity_type.value.lower()] = board

        for champion in store.champions_for_period(period):
            snapshot["champions"].append(
                {
                    "category": champion.category,
                    "entity_type": champion.entity_type,
                    "entity_id": champion.entity_id,
                    "entity_name": champion.entity_name,
                    "score": float(champion.score),
                    "metric_details": json.loads(champion.metric_details or "{}"),
                }
            )
        return snapshot
    finally:
        session.close()


def _board_entry(row: Any, category: ChampionCategory, entity_type: EntityType) -> dict[str, Any]:
    if entity_type == EntityType.INDIVIDUAL:
        entity_id, name = row.developer_id, row.developer.display_name
    else:
        entity_id, name = row.project_id, row.project.project_name
    score = getattr(row, SCORE_COLUMNS[category])
    return {
        "rank": getattr(row, RANK_COLUMNS[category]),
        "entity_id": entity_id,
        "name": name,
        "score": float(score) if score is not None else None,
        "total_kloc": float(row.total_kloc),
    }


def import_dump(kind: str, path: Path, *, session_factory: Callable[[], Any] = get_session) -> dict[str, Any]:
    """Import a saved issues, projects or users search response."""
    started = time.perf_counter()
    session = session_factory()
    try:
        service = JsonImportService(EntityStore(session))
        importer = {
            "issues": service.import_issues,
            "projects": service.import_projects,
            "developers": service.import_developers,
        }[kind]
        result = importer(path)
        return _result(
            result.success,
            result.message,
            started,
            stats={"imported_count": result.imported_count},
            errors=result.errors,
        )
    finally:
        session.close()


def _parse_period(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leaderboard", description=settings.APP_NAME)
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Sync all SonarQube projects")
    sync.add_argument("--full", action="store_true", help="Re-pull the whole lookback window")

    project = commands.add_parser("project", help="Sync one stored project")
    project.add_argument("project_key")
    project.add_argument("--full", action="store_true")

    rank = commands.add_parser("rank", help="Calculate monthly rankings and champions")
    rank.add_argument("--period", type=_parse_period, default=None, help="Any date in the month (YYYY-MM-DD)")

    board = commands.add_parser("leaderboard", help="Show top rankings and champions")
    board.add_argument("--period", type=_parse_period, default=None)
    board.add_argument("--limit", type=int, default=3)

    for kind, help_text in (
        ("issues", "Import an /api/issues/search dump"),
        ("projects", "Import an /api/components/search dump"),
        ("developers", "Import an /api/users/search dump"),
    ):
        importer = commands.add_parser(f"import-{kind}", help=help_text)
        importer.add_argument("file", type=Path)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logger("", settings.LOG_LEVEL)

    if args.command == "sync":
        result = asyncio.run(trigger_sync(args.full))
    elif args.command == "project":
        result = asyncio.run(trigger_project_sync(args.project_key, args.full))
    elif args.command == "rank":
        result = asyncio.run(trigger_ranking_calculation(args.period))
    elif args.command == "leaderboard":
        period = args.period or previous_month(utc_now().date())
        result = {"success": True, **leaderboard_snapshot(period, limit=args.limit)}
    else:
        result = import_dump(args.command.removeprefix("import-"), args.file)

    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
