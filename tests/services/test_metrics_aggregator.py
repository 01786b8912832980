from datetime import date, datetime
from decimal import Decimal

from leaderboard.models import DeveloperMetricsDaily
from leaderboard.services.entity_store import EntityStore
from leaderboard.services.metrics_aggregator import MetricsAggregator


def _aggregator(db_session) -> MetricsAggregator:
    return MetricsAggregator(EntityStore(db_session), loc_per_issue=50)


def test_daily_metrics_count_by_type_and_are_idempotent(db_session, seed) -> None:
    project = seed.project("proj-a")
    john = seed.developer("john.doe")
    jane = seed.developer("jane")
    day = datetime(2024, 1, 10, 9, 0)
    seed.issue("I-1", project, john, issue_type="BUG", created=day)
    seed.issue("I-2", project, john, issue_type="VULNERABILITY", created=day)
    seed.issue("I-3", project, jane, issue_type="CODE_SMELL", created=day)
    seed.issue("I-4", project, jane, created=datetime(2024, 1, 2), resolved=datetime(2024, 1, 10, 17, 0))
    seed.issue("I-5", project, None, issue_type="BUG", created=day)
    seed.issue("I-6", project, john, created=datetime(2024, 1, 11))

    aggregator = _aggregator(db_session)
    assert aggregator.compute_developer_metrics_for_date(project, date(2024, 1, 10)) == 2
    db_session.commit()
    assert aggregator.compute_developer_metrics_for_date(project, date(2024, 1, 10)) == 2
    db_session.commit()

    rows = {
        row.developer_id: row
        for row in db_session.query(DeveloperMetricsDaily).filter_by(date_recorded=date(2024, 1, 10)).all()
    }
    assert len(rows) == 2
    assert rows[john.id].violations_introduced == 2
    assert rows[john.id].bugs_introduced == 1
    assert rows[john.id].vulnerabilities_introduced == 1
    assert rows[john.id].lines_of_code_contributed == 100
    assert rows[jane.id].violations_introduced == 1
    assert rows[jane.id].code_smells_introduced == 1
    assert rows[jane.id].violations_resolved == 1


def test_daily_metrics_zero_out_rows_that_no_longer_match(db_session, seed) -> None:
    project = seed.project("proj-a")
    john = seed.developer("john.doe")
    issue = seed.issue("I-1", project, john, created=datetime(2024, 1, 10, 9, 0))
    aggregator = _aggregator(db_session)
    aggregator.compute_developer_metrics_for_date(project, date(2024, 1, 10))
    db_session.commit()

    issue.created_date = datetime(2024, 1, 12)
    db_session.commit()
    aggregator.compute_developer_metrics_for_date(project, date(2024, 1, 10))
    db_session.commit()

    row = db_session.query(DeveloperMetricsDaily).one()
    assert row.violations_introduced == 0
    assert row.lines_of_code_contributed == 0


def test_project_kloc_uses_closest_snapshot(db_session, seed) -> None:
    aggregator = _aggregator(db_session)
    before = seed.project("before", ncloc=12345, snapshot_date=date(2024, 1, 20))
    after_only = seed.project("after", ncloc=2000, snapshot_date=date(2024, 3, 1))
    missing = seed.project("missing")

    assert aggregator.project_kloc(before, date(2024, 1, 31)) == Decimal("12.35")
    assert aggregator.project_kloc(after_only, date(2024, 1, 31)) == Decimal("2.00")
    assert aggregator.project_kloc(missing, date(2024, 1, 31)) == Decimal("0.00")


def test_developer_kloc_is_share_weighted_project_kloc(db_session, seed) -> None:
    big = seed.project("big", ncloc=10000)
    small = seed.project("small", ncloc=3000)
    john = seed.developer("john.doe")
    jane = seed.developer("jane")

    seed.issue("B-1", big, john)
    seed.issue("B-2", big, john)
    seed.issue("B-3", big, jane)
    seed.issue("B-4", big, jane)
    seed.issue("B-5", big, john, created=datetime(2023, 12, 5))
    seed.issue("S-1", small, john)
    seed.issue("S-2", small, jane)
    seed.issue("S-3", small, jane)

    aggregator = _aggregator(db_session)

    # big: 10.00 * 2/5 = 4.00, small: 3.00 * round(1/3, 4) = 0.9999
    assert aggregator.developer_kloc(john, date(2024, 1, 1)) == Decimal("5.00")
    assert aggregator.developer_kloc(jane, date(2024, 1, 1)) == Decimal("6.00")
    assert aggregator.developer_kloc(john, date(2024, 2, 1)) == Decimal("0.00")


def test_month_counts_fall_back_to_issues_without_snapshots(db_session, seed) -> None:
    project = seed.project("proj-a")
    john = seed.developer("john.doe")
    seed.issue("I-1", project, john, issue_type="BUG")
    seed.issue("I-2", project, john, created=datetime(2023, 12, 1), resolved=datetime(2024, 1, 5))
    seed.issue("I-3", project, None, issue_type="VULNERABILITY")
    seed.issue("I-4", project, john, created=datetime(2024, 2, 1))

    aggregator = _aggregator(db_session)
    developers = aggregator.developer_month_counts(date(2024, 1, 15))
    projects = aggregator.project_month_counts(date(2024, 1, 15))

    assert developers[john.id].violations_introduced == 1
    assert developers[john.id].bugs_introduced == 1
    assert developers[john.id].violations_resolved == 1
    assert projects[project.id].violations_introduced == 2
    assert projects[project.id].vulnerabilities_introduced == 1
    assert projects[project.id].violations_resolved == 1


def test_month_counts_sum_daily_snapshots_when_present(db_session, seed) -> None:
    project = seed.project("proj-a")
    john = seed.developer("john.doe")
    for day, introduced, resolved in ((date(2024, 1, 3), 2, 1), (date(2024, 1, 9), 1, 4), (date(2024, 2, 1), 9, 9)):
        db_session.add(
            DeveloperMetricsDaily(
                developer_id=john.id,
                project_id=project.id,
                date_recorded=day,
                violations_introduced=introduced,
                violations_resolved=resolved,
                bugs_introduced=introduced,
            )
        )
    db_session.commit()
    # Issues are ignored once snapshots exist for the month
    seed.issue("I-1", project, john, issue_type="BUG")

    aggregator = _aggregator(db_session)
    developers = aggregator.developer_month_counts(date(2024, 1, 1))
    projects = aggregator.project_month_counts(date(2024, 1, 1))

    assert developers[john.id].violations_introduced == 3
    assert developers[john.id].violations_resolved == 5
    assert developers[john.id].bugs_introduced == 3
    assert projects[project.id].violations_introduced == 3


def test_month_counts_mix_snapshot_and_issue_sources(db_session, seed) -> None:
    project = seed.project("proj-a")
    alice = seed.developer("alice")
    bob = seed.developer("bob")
    db_session.add(
        DeveloperMetricsDaily(
            developer_id=alice.id,
            project_id=project.id,
            date_recorded=date(2024, 1, 10),
            violations_introduced=1,
            bugs_introduced=1,
        )
    )
    db_session.commit()
    # alice's issue is already in her snapshot; bob and the anonymous issue have none
    seed.issue("A-1", project, alice, issue_type="BUG")
    seed.issue("B-1", project, bob, issue_type="BUG", created=datetime(2024, 1, 12))
    seed.issue("N-1", project, None, issue_type="VULNERABILITY")

    aggregator = _aggregator(db_session)
    developers = aggregator.developer_month_counts(date(2024, 1, 1))
    projects = aggregator.project_month_counts(date(2024, 1, 1))

    assert developers[alice.id].bugs_introduced == 1
    assert developers[alice.id].violations_introduced == 1
    assert developers[bob.id].bugs_introduced == 1
    assert projects[project.id].violations_introduced == 3
    assert projects[project.id].bugs_introduced == 2
    assert projects[project.id].vulnerabilities_introduced == 1
