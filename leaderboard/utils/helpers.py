"""Utility helper functions"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterator, Optional
import logging
import re

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")
THOUSAND = Decimal("1000")

# SonarQube technical debt uses an 8 hour day
_EFFORT_UNITS = {"d": 480, "h": 60, "min": 1}
_EFFORT_TOKEN = re.compile(r"(\d+)\s*(min|d|h)")
_OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_effort(effort: Optional[str]) -> int:
    """
    Parse a SonarQube effort string into minutes

    Args:
        effort: Compound duration such as "1h30min", "10min" or "2d 1h"

    Returns:
        Minutes, 0 when empty or unparsable
    """
    if not effort:
        return 0

    text = str(effort).strip().lower()
    if text.isdigit():
        return int(text)

    tokens = _EFFORT_TOKEN.findall(text)
    if not tokens or _EFFORT_TOKEN.sub("", text).strip():
        logger.debug("Could not parse effort", extra={"effort": effort})
        return 0

    return sum(int(amount) * _EFFORT_UNITS[unit] for amount, unit in tokens)


def format_display_name(author_key: Optional[str]) -> str:
    """
    Derive a readable name from an author key

    "john.doe" -> "John Doe", "jane_smith-x" -> "Jane Smith X"
    """
    if not author_key:
        return "Unknown"

    local_part = author_key.split("@", 1)[0]
    parts = [part for part in re.split(r"[._-]", local_part) if part]
    if not parts:
        return author_key

    return " ".join(part[0].upper() + part[1:].lower() for part in parts)


def utc_now() -> datetime:
    """Current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(UTC).replace(tzinfo=None)


def parse_sonar_datetime(raw: Any) -> Optional[datetime]:
    """Parse SonarQube timestamps ("2024-01-15T10:30:00+0000") into naive UTC."""
    if not isinstance(raw, str) or not raw.strip():
        return None

    text = raw.strip().replace("Z", "+00:00")
    text = _OFFSET_WITHOUT_COLON.sub(r"\1:\2", text)
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Could not parse datetime", extra={"value": raw})
        return None

    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


def format_sonar_datetime(value: datetime) -> str:
    """Format a naive UTC datetime the way SonarQube's createdAfter expects it."""
    return value.strftime("%Y-%m-%dT%H:%M:%S+0000")


def month_start(value: date) -> date:
    """Normalize a date to the first day of its month."""
    return value.replace(day=1)


def month_end(value: date) -> date:
    """Last day of the month containing value."""
    return next_month(value) - timedelta(days=1)


def next_month(value: date) -> date:
    first = month_start(value)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def previous_month(value: date) -> date:
    """First day of the month before value's month."""
    return month_start(month_start(value) - timedelta(days=1))


def daterange(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def quantize(value: Decimal, places: Decimal = TWO_PLACES) -> Decimal:
    """Round half-up to the given number of places."""
    return value.quantize(places, rounding=ROUND_HALF_UP)


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(str(value))
    except ValueError:
        logger.debug("Could not parse int", extra={"value": value})
        return default


def kloc_from_ncloc(ncloc: Any) -> Decimal:
    """
    Convert an ncloc measure into KLOC

    Args:
        ncloc: Raw measure value (string or number)

    Returns:
        ncloc / 1000 rounded half-up to 2 places, zero when absent or unparsable
    """
    lines = parse_decimal(ncloc)
    if lines is None:
        return Decimal("0.00")
    return quantize(lines / THOUSAND)


def per_kloc(count: int, kloc: Decimal) -> Decimal:
    """Density per KLOC; the raw count when KLOC is unavailable."""
    if kloc <= 0:
        return quantize(Decimal(count))
    return quantize(Decimal(count) / kloc)
