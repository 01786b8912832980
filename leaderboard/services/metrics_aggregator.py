"""Daily and monthly issue aggregation plus KLOC estimates."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Mapping, Optional

from leaderboard.config.settings import settings
from leaderboard.models import Developer, DeveloperMetricsDaily, Issue, IssueType, Project, ProjectMetricsDaily
from leaderboard.services.entity_store import EntityStore
from leaderboard.utils.helpers import (
    FOUR_PLACES,
    kloc_from_ncloc,
    month_end,
    month_start,
    next_month,
    parse_decimal,
    parse_int,
    quantize,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PeriodCounts:
    """Issue counters for one entity over one period."""

    violations_introduced: int = 0
    violations_resolved: int = 0
    bugs_introduced: int = 0
    vulnerabilities_introduced: int = 0
    code_smells_introduced: int = 0

    def count_introduced(self, issue_type: str) -> None:
        self.violations_introduced += 1
        if issue_type == IssueType.BUG.value:
            self.bugs_introduced += 1
        elif issue_type == IssueType.VULNERABILITY.value:
            self.vulnerabilities_introduced += 1
        else:
            self.code_smells_introduced += 1

    def count_resolved(self) -> None:
        self.violations_resolved += 1

    def add_snapshot(self, row: DeveloperMetricsDaily) -> None:
        self.violations_introduced += row.violations_introduced or 0
        self.violations_resolved += row.violations_resolved or 0
        self.bugs_introduced += row.bugs_introduced or 0
        self.vulnerabilities_introduced += row.vulnerabilities_introduced or 0
        self.code_smells_introduced += row.code_smells_introduced or 0

    def add_counts(self, other: PeriodCounts) -> None:
        self.violations_introduced += other.violations_introduced
        self.violations_resolved += other.violations_resolved
        self.bugs_introduced += other.bugs_introduced
        self.vulnerabilities_introduced += other.vulnerabilities_introduced
        self.code_smells_introduced += other.code_smells_introduced


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


def _period_bounds(period: date) -> tuple[datetime, datetime]:
    start = datetime.combine(month_start(period), datetime.min.time())
    end = datetime.combine(next_month(period), datetime.min.time())
    return start, end


def _within(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    return value is not None and start <= value < end


class MetricsAggregator:
    """
    Turns stored issues into daily snapshots, monthly counters and KLOC figures

    Developer KLOC is an estimate. SonarQube has no per-author line counts, so a
    developer is credited with each project's KLOC in proportion to their share
    of that project's issues.
    """

    def __init__(self, store: EntityStore, *, loc_per_issue: int | None = None) -> None:
        self._store = store
        self._loc_per_issue = settings.LOC_PER_ISSUE_ESTIMATE if loc_per_issue is None else loc_per_issue

    def compute_developer_metrics_for_date(self, project: Project, day: date) -> int:
        """
        Recount every developer's counters for one project and day

        Existing rows for the day are zeroed first, so repeated runs converge on
        the same values. Returns the number of developer rows written.
        """
        rows: dict[int, DeveloperMetricsDaily] = {}
        for row in self._store.developer_metrics_for_date(project.id, day):
            row.reset_counters()
            rows[row.developer_id] = row

        start, end = _day_bounds(day)
        for issue in self._store.issues_touching_date(project.id, day):
            if issue.developer_id is None:
                continue

            row = rows.get(issue.developer_id)
            if row is None:
                row = self._store.get_or_create_developer_metrics(issue.developer_id, project.id, day)
                rows[issue.developer_id] = row

            if _within(issue.created_date, start, end):
                row.violations_introduced += 1
                if issue.issue_type == IssueType.BUG.value:
                    row.bugs_introduced += 1
                elif issue.issue_type == IssueType.VULNERABILITY.value:
                    row.vulnerabilities_introduced += 1
                else:
                    row.code_smells_introduced += 1
                # Approximation: a fixed line estimate per introduced issue
                row.lines_of_code_contributed += self._loc_per_issue

            if _within(issue.resolved_date, start, end):
                row.violations_resolved += 1

        return len(rows)

    def record_project_measures(
        self,
        project: Project,
        day: date,
        measures: Mapping[str, Any],
    ) -> tuple[ProjectMetricsDaily, bool]:
        """Store raw SonarQube measures as the project's snapshot for a day."""
        row, created = self._store.get_or_create_project_metrics(project.id, day)
        row.lines_of_code = parse_int(measures.get("ncloc"))
        row.bugs_count = parse_int(measures.get("bugs"))
        row.vulnerabilities_count = parse_int(measures.get("vulnerabilities"))
        row.code_smells_count = parse_int(measures.get("code_smells"))
        row.reliability_rating = self._rating(measures.get("reliability_rating"))
        row.security_rating = self._rating(measures.get("security_rating"))
        row.maintainability_rating = self._rating(measures.get("sqale_rating"))
        return row, created

    @staticmethod
    def _rating(raw: Any) -> Optional[Decimal]:
        value = parse_decimal(raw)
        return quantize(value) if value is not None else None

    def project_kloc(self, project: Project, as_of: date | None = None) -> Decimal:
        """ncloc / 1000 from the snapshot closest to as_of, zero when none exists."""
        snapshot = self._store.project_metrics_as_of(project.id, as_of or date.today())
        if snapshot is None:
            logger.info("No ncloc snapshot for project", extra={"project_key": project.project_key})
            return Decimal("0.00")
        return kloc_from_ncloc(snapshot.lines_of_code)

    def developer_kloc(self, developer: Developer, period: date) -> Decimal:
        """Sum of project KLOC weighted by the developer's share of each project's issues."""
        start, end = _period_bounds(period)
        per_project: dict[int, list[Issue]] = defaultdict(list)
        for issue in self._store.issues_created_between(start, end, developer_id=developer.id):
            per_project[issue.project_id].append(issue)

        total = Decimal("0")
        for project_id, issues in sorted(per_project.items()):
            project_total = self._store.count_issues_for_project(project_id)
            if project_total <= 0:
                continue
            ratio = quantize(Decimal(len(issues)) / Decimal(project_total), FOUR_PLACES)
            total += self.project_kloc(issues[0].project, month_end(period)) * ratio
        return quantize(total)

    def developer_month_counts(self, period: date) -> dict[int, PeriodCounts]:
        """Per-developer counters for the month of period."""
        counts: dict[int, PeriodCounts] = defaultdict(PeriodCounts)
        for (developer_id, _), pair_counts in self._pair_counts(period).items():
            if developer_id is not None:
                counts[developer_id].add_counts(pair_counts)
        return dict(counts)

    def project_month_counts(self, period: date) -> dict[int, PeriodCounts]:
        """Per-project counters for the month of period, anonymous issues included."""
        counts: dict[int, PeriodCounts] = defaultdict(PeriodCounts)
        for (_, project_id), pair_counts in self._pair_counts(period).items():
            counts[project_id].add_counts(pair_counts)
        return dict(counts)

    def _pair_counts(self, period: date) -> dict[tuple[Optional[int], int], PeriodCounts]:
        """
        Counters per (developer, project) for the month

        A pair with daily snapshots in the month is summed from them; any other
        pair (issues imported from dumps, anonymous issues) is counted from the
        issues directly.
        """
        first, last = month_start(period), month_end(period)
        counts: dict[tuple[Optional[int], int], PeriodCounts] = defaultdict(PeriodCounts)

        covered: set[tuple[Optional[int], int]] = set()
        for row in self._store.developer_metrics_between(first, last):
            pair = (row.developer_id, row.project_id)
            covered.add(pair)
            counts[pair].add_snapshot(row)

        start, end = _period_bounds(period)
        for issue in self._store.issues_created_between(start, end):
            pair = (issue.developer_id, issue.project_id)
            if pair not in covered:
                counts[pair].count_introduced(issue.issue_type)
        for issue in self._store.issues_resolved_between(start, end):
            pair = (issue.developer_id, issue.project_id)
            if pair not in covered:
                counts[pair].count_resolved()

        logger.info(
            "Aggregating month",
            extra={
                "period": first.isoformat(),
                "snapshot_pairs": len(covered),
                "issue_pairs": len(counts) - len(covered),
            },
        )
        return dict(counts)
