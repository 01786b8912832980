"""Monthly champion selection from stored rankings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
import json
import logging
from typing import Any, Optional, Sequence

from leaderboard.config.settings import settings
from leaderboard.models import ChampionCategory, EntityType, MonthlyChampion
from leaderboard.services.entity_store import RANK_COLUMNS, EntityStore
from leaderboard.utils.helpers import month_start, quantize

logger = logging.getLogger(__name__)

SCORE_COLUMNS = {
    ChampionCategory.DEFECT_TERMINATOR: "defect_terminator_score",
    ChampionCategory.CODE_ROCK: "code_rock_score",
    ChampionCategory.CODE_SHIELD: "code_shield_score",
    ChampionCategory.CRAFTSMAN: "craftsman_score",
    ChampionCategory.CLIMBER: "climber_score",
}

DETAIL_COLUMNS = {
    ChampionCategory.DEFECT_TERMINATOR: ("violations_resolved", "violations_introduced", "defect_terminator_score"),
    ChampionCategory.CODE_ROCK: ("bugs_introduced", "bugs_per_kloc", "total_kloc"),
    ChampionCategory.CODE_SHIELD: ("vulnerabilities_introduced", "vulnerabilities_per_kloc", "total_kloc"),
    ChampionCategory.CRAFTSMAN: ("code_smells_introduced", "code_smells_per_kloc", "total_kloc"),
    ChampionCategory.CLIMBER: (
        "climber_score",
        "defect_terminator_rank",
        "code_rock_rank",
        "code_shield_rank",
        "craftsman_rank",
    ),
}

DENSITY_CATEGORIES = (ChampionCategory.CODE_ROCK, ChampionCategory.CODE_SHIELD, ChampionCategory.CRAFTSMAN)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def metric_details_json(row: Any, category: ChampionCategory) -> str:
    details = {column: getattr(row, column) for column in DETAIL_COLUMNS[category]}
    return json.dumps(details, default=_json_default, ensure_ascii=False, sort_keys=True)


class ChampionSelector:
    """
    Picks one rank-1 winner per category and entity type for a period

    The period's champions are replaced as a whole in a single transaction.
    """

    def __init__(self, store: EntityStore, *, min_kloc: Decimal | float | None = None) -> None:
        self._store = store
        threshold = settings.RANKING_MIN_KLOC if min_kloc is None else min_kloc
        self._min_kloc = Decimal(str(threshold))

    def select_champions(self, period: date) -> list[MonthlyChampion]:
        period = month_start(period)
        champions: list[MonthlyChampion] = []

        individual_rows = self._store.individual_rankings_for_period(period)
        for category in ChampionCategory:
            champion = self._build(period, category, EntityType.INDIVIDUAL, individual_rows)
            if champion is not None:
                champions.append(champion)

        project_rows = self._store.project_rankings_for_period(period)
        for category in ChampionCategory:
            if category == ChampionCategory.CLIMBER:
                continue
            champion = self._build(period, category, EntityType.PROJECT, project_rows)
            if champion is not None:
                champions.append(champion)

        session = self._store.session
        try:
            self._store.replace_champions(period, champions)
            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info(
            "Monthly champions selected",
            extra={"period": period.isoformat(), "champion_count": len(champions)},
        )
        return champions

    def _build(
        self,
        period: date,
        category: ChampionCategory,
        entity_type: EntityType,
        rows: Sequence[Any],
    ) -> Optional[MonthlyChampion]:
        winner = self._pick_winner(category, rows)
        if winner is None:
            logger.info(
                "No champion for category",
                extra={"period": period.isoformat(), "category": category.value, "entity_type": entity_type.value},
            )
            return None

        entity_id, entity_name = self._entity_identity(winner, entity_type)
        score = getattr(winner, SCORE_COLUMNS[category])
        return MonthlyChampion(
            period=period,
            category=category.value,
            entity_type=entity_type.value,
            entity_id=entity_id,
            entity_name=entity_name,
            score=quantize(Decimal(str(score))),
            metric_details=metric_details_json(winner, category),
        )

    def _pick_winner(self, category: ChampionCategory, rows: Sequence[Any]) -> Optional[Any]:
        rank_column = RANK_COLUMNS[category]
        candidates = [row for row in rows if getattr(row, rank_column) == 1]

        if category in DENSITY_CATEGORIES:
            candidates = [row for row in candidates if Decimal(str(row.total_kloc)) >= self._min_kloc]
        elif category == ChampionCategory.CLIMBER:
            candidates = [row for row in candidates if Decimal(str(row.climber_score)) > 0]

        if not candidates:
            return None
        # Deterministic pick when stored ranks tie
        return min(candidates, key=self._entity_key)

    @staticmethod
    def _entity_key(row: Any) -> str:
        developer = getattr(row, "developer", None)
        if developer is not None:
            return developer.author_key
        return row.project.project_key

    @staticmethod
    def _entity_identity(row: Any, entity_type: EntityType) -> tuple[int, str]:
        if entity_type == EntityType.INDIVIDUAL:
            developer = row.developer
            return developer.id, developer.display_name or developer.author_key
        project = row.project
        return project.id, project.project_name or project.project_key
