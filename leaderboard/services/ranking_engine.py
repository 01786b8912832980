"""Monthly leaderboard ranking calculation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import Any, Callable, Optional, Sequence

from leaderboard.config.settings import settings
from leaderboard.models import UNRANKED, IndividualRanking, ProjectRanking
from leaderboard.services.entity_store import EntityStore
from leaderboard.services.metrics_aggregator import MetricsAggregator, PeriodCounts
from leaderboard.utils.helpers import month_end, month_start, per_kloc, previous_month, quantize

logger = logging.getLogger(__name__)

# (count field, density field, score field, rank field)
DENSITY_CATEGORIES = (
    ("bugs_introduced", "bugs_per_kloc", "code_rock_score", "code_rock_rank"),
    ("vulnerabilities_introduced", "vulnerabilities_per_kloc", "code_shield_score", "code_shield_rank"),
    ("code_smells_introduced", "code_smells_per_kloc", "craftsman_score", "craftsman_rank"),
)

CLIMB_RANK_FIELDS = ("defect_terminator_rank", "code_rock_rank", "code_shield_rank", "craftsman_rank")


@dataclass(slots=True)
class RankedEntity:
    """Scores and ranks of one developer or project before persistence."""

    entity_id: int
    entity_key: str
    counts: PeriodCounts
    total_kloc: Decimal
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def defect_terminator_score(self) -> int:
        return self.counts.violations_resolved - self.counts.violations_introduced


def assign_ranks(
    entities: Sequence[RankedEntity],
    score: Callable[[RankedEntity], Any],
    rank_field: str,
    *,
    descending: bool = False,
    qualifies: Callable[[RankedEntity], bool] | None = None,
) -> None:
    """
    Give qualified entities ranks 1..N in score order and everyone else UNRANKED

    Ties on score are broken by entity key ascending.
    """
    qualified = [entity for entity in entities if qualifies is None or qualifies(entity)]
    for entity in entities:
        entity.values[rank_field] = UNRANKED

    if descending:
        ordered = sorted(qualified, key=lambda entity: entity.entity_key)
        ordered.sort(key=score, reverse=True)
    else:
        ordered = sorted(qualified, key=lambda entity: (score(entity), entity.entity_key))

    for position, entity in enumerate(ordered, start=1):
        entity.values[rank_field] = position


def climber_score(previous: Optional[Any], current: dict[str, Any]) -> Decimal:
    """
    Average rank improvement across the four scored categories

    Stored ranks are compared as-is, so moving from UNRANKED into a ranked
    position counts as a climb. A missing rank on either side contributes
    nothing; no previous ranking scores zero.
    """
    if previous is None:
        return Decimal("0.00")

    improvement = 0
    for rank_field in CLIMB_RANK_FIELDS:
        before = getattr(previous, rank_field)
        after = current.get(rank_field)
        if before is None or after is None:
            continue
        improvement += max(before - after, 0)
    return quantize(Decimal(improvement) / Decimal(len(CLIMB_RANK_FIELDS)))


class RankingEngine:
    """Computes and persists individual and project rankings for one month."""

    def __init__(
        self,
        store: EntityStore,
        aggregator: MetricsAggregator | None = None,
        *,
        min_kloc: Decimal | float | None = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator or MetricsAggregator(store)
        threshold = settings.RANKING_MIN_KLOC if min_kloc is None else min_kloc
        self._min_kloc = Decimal(str(threshold))

    def calculate_monthly_rankings(self, period: date) -> dict[str, Any]:
        """
        Recompute the whole month and replace its ranking rows

        Returns:
            Stats with the normalized period and the number of rows per entity type
        """
        period = month_start(period)
        logger.info("Ranking calculation started", extra={"period": period.isoformat()})

        session = self._store.session
        try:
            individuals = self._rank_individuals(period)
            projects = self._rank_projects(period)
            session.commit()
        except Exception:
            session.rollback()
            raise

        stats = {
            "period": period.isoformat(),
            "individual_rankings": len(individuals),
            "project_rankings": len(projects),
        }
        logger.info("Ranking calculation completed", extra=stats)
        return stats

    def _rank_individuals(self, period: date) -> list[RankedEntity]:
        developers = self._store.list_active_developers()
        counts = self._aggregator.developer_month_counts(period)

        entities = [
            RankedEntity(
                entity_id=developer.id,
                entity_key=developer.author_key,
                counts=counts.get(developer.id) or PeriodCounts(),
                total_kloc=self._aggregator.developer_kloc(developer, period),
            )
            for developer in developers
        ]
        self._score(entities)

        prior_period = previous_month(period)
        for entity in entities:
            previous = self._store.find_individual_ranking(entity.entity_id, prior_period)
            entity.values["climber_score"] = climber_score(previous, entity.values)
        assign_ranks(entities, lambda entity: entity.values["climber_score"], "climber_rank", descending=True)

        kept = []
        for entity in entities:
            row = self._store.find_individual_ranking(entity.entity_id, period)
            if row is None:
                row = self._store.add(IndividualRanking(developer_id=entity.entity_id, ranking_period=period))
            self._apply(row, entity)
            kept.append(row)
        self._store.flush()
        self._store.delete_stale_rankings(IndividualRanking, period, (row.id for row in kept))
        return entities

    def _rank_projects(self, period: date) -> list[RankedEntity]:
        projects = self._store.list_active_projects()
        counts = self._aggregator.project_month_counts(period)
        as_of = month_end(period)

        entities = [
            RankedEntity(
                entity_id=project.id,
                entity_key=project.project_key,
                counts=counts.get(project.id) or PeriodCounts(),
                total_kloc=self._aggregator.project_kloc(project, as_of),
            )
            for project in projects
        ]
        self._score(entities)

        kept = []
        for entity in entities:
            row = self._store.find_project_ranking(entity.entity_id, period)
            if row is None:
                row = self._store.add(ProjectRanking(project_id=entity.entity_id, ranking_period=period))
            self._apply(row, entity)
            kept.append(row)
        self._store.flush()
        self._store.delete_stale_rankings(ProjectRanking, period, (row.id for row in kept))
        return entities

    def _score(self, entities: Sequence[RankedEntity]) -> None:
        for entity in entities:
            entity.values["violations_introduced"] = entity.counts.violations_introduced
            entity.values["violations_resolved"] = entity.counts.violations_resolved
            entity.values["defect_terminator_score"] = entity.defect_terminator_score
            entity.values["total_kloc"] = quantize(entity.total_kloc)
            for count_field, density_field, score_field, _ in DENSITY_CATEGORIES:
                count = getattr(entity.counts, count_field)
                density = per_kloc(count, entity.total_kloc)
                entity.values[count_field] = count
                entity.values[density_field] = density
                entity.values[score_field] = density

        assign_ranks(
            entities,
            lambda entity: entity.values["defect_terminator_score"],
            "defect_terminator_rank",
            descending=True,
        )
        for _, _, score_field, rank_field in DENSITY_CATEGORIES:
            assign_ranks(
                entities,
                lambda entity, score_field=score_field: entity.values[score_field],
                rank_field,
                qualifies=self._qualifies,
            )

    def _qualifies(self, entity: RankedEntity) -> bool:
        return entity.total_kloc >= self._min_kloc

    @staticmethod
    def _apply(row: Any, entity: RankedEntity) -> None:
        columns = set(type(row).__table__.columns.keys())
        for name, value in entity.values.items():
            if name in columns:
                setattr(row, name, value)

