from datetime import UTC, date, datetime
import logging
from decimal import Decimal

import pytest

from leaderboard.utils.helpers import (
    format_display_name,
    kloc_from_ncloc,
    month_end,
    month_start,
    parse_effort,
    parse_sonar_datetime,
    per_kloc,
    previous_month,
    utc_now,
)
from leaderboard.utils.logger import resolve_level, setup_logger


@pytest.mark.parametrize(
    "raw,minutes",
    [
        ("1h30min", 90),
        ("45min", 45),
        ("10min", 10),
        ("2h", 120),
        ("1d 2h", 600),
        ("15", 15),
        ("", 0),
        (None, 0),
        ("soon", 0),
    ],
)
def test_parse_effort(raw, minutes) -> None:
    assert parse_effort(raw) == minutes


@pytest.mark.parametrize(
    "author_key,expected",
    [
        ("john.doe", "John Doe"),
        ("jane_smith-x", "Jane Smith X"),
        ("ALICE", "Alice"),
        ("bob.builder@example.com", "Bob Builder"),
        ("", "Unknown"),
        (None, "Unknown"),
    ],
)
def test_format_display_name(author_key, expected) -> None:
    assert format_display_name(author_key) == expected


def test_parse_sonar_datetime_normalizes_to_naive_utc() -> None:
    assert parse_sonar_datetime("2024-01-15T10:30:00+0000") == datetime(2024, 1, 15, 10, 30)
    assert parse_sonar_datetime("2024-01-15T12:30:00+0200") == datetime(2024, 1, 15, 10, 30)
    assert parse_sonar_datetime("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30)
    assert parse_sonar_datetime("not a date") is None
    assert parse_sonar_datetime(None) is None


def test_kloc_from_ncloc_rounds_half_up() -> None:
    assert kloc_from_ncloc("12345") == Decimal("12.35")
    assert kloc_from_ncloc(1005) == Decimal("1.01")
    assert kloc_from_ncloc(None) == Decimal("0.00")
    assert kloc_from_ncloc("n/a") == Decimal("0.00")


def test_per_kloc_falls_back_to_raw_count_without_kloc() -> None:
    assert per_kloc(3, Decimal("2.00")) == Decimal("1.50")
    assert per_kloc(1, Decimal("3.00")) == Decimal("0.33")
    assert per_kloc(7, Decimal("0")) == Decimal("7.00")


def test_month_helpers() -> None:
    assert month_start(date(2024, 3, 17)) == date(2024, 3, 1)
    assert month_end(date(2024, 2, 10)) == date(2024, 2, 29)
    assert previous_month(date(2024, 1, 15)) == date(2023, 12, 1)


def test_setup_logger_quiets_http_client_logs() -> None:
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level("chatty") == logging.INFO

    logger = setup_logger("leaderboard.test", "INFO", quiet=("leaderboard.test.http",))

    assert logger.level == logging.INFO
    assert logging.getLogger("leaderboard.test.http").level == logging.WARNING
    logger.handlers.clear()


def test_utc_now_is_naive_utc() -> None:
    now = utc_now()
    aware = datetime.now(UTC)

    assert now.tzinfo is None
    assert abs((aware.replace(tzinfo=None) - now).total_seconds()) < 5
