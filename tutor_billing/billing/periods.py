"""
Billing period helpers.

A period is a calendar month written as YYYY-MM. Month boundaries are
evaluated in the billing time zone so that a session starting at 00:30
local time on the 1st is not counted in the previous month.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

from .errors import ValidationError


PERIOD_PATTERN = re.compile(r'[0-9]{4}-[0-9]{2}')
DEFAULT_TIMEZONE = "Asia/Jerusalem"


@dataclass(frozen=True)
class Period:
    """
    A billing month.

    Attributes:
        year: Four-digit year
        month: Month number (1-12)

    Examples:
        >>> period = Period.parse("2024-03")
        >>> period.first_day, period.last_day
        (datetime.date(2024, 3, 1), datetime.date(2024, 3, 31))
    """

    year: int
    month: int

    @classmethod
    def parse(cls, value: str) -> 'Period':
        """
        Parse and validate a YYYY-MM string.

        Raises:
            ValidationError: If the value is not a valid period
        """
        if not isinstance(value, str) or not PERIOD_PATTERN.fullmatch(value):
            raise ValidationError(
                f"Invalid period format: {value!r}. Expected YYYY-MM",
                field="period"
            )

        year, month = (int(part) for part in value.split("-"))
        if not 1 <= month <= 12:
            raise ValidationError(
                f"Invalid period month: {value!r}. Month must be between 01 and 12",
                field="period"
            )
        return cls(year, month)

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return self.next().first_day - timedelta(days=1)

    def next(self) -> 'Period':
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def contains_date(self, value: date) -> bool:
        return self.first_day <= value <= self.last_day

    def contains(self, moment: datetime, timezone: str = DEFAULT_TIMEZONE) -> bool:
        """
        Check whether a timestamp falls inside the month.

        Aware timestamps are converted to the billing time zone first;
        naive timestamps are taken as already local.
        """
        if moment.tzinfo is not None:
            moment = moment.astimezone(ZoneInfo(timezone))
        return self.contains_date(moment.date())

    def __str__(self) -> str:
        return self.key


def validate_period(value: str) -> str:
    """Validate a period string and return it unchanged."""
    return Period.parse(value).key


def normalize_period_value(value: Any) -> Optional[str]:
    """
    Normalize a stored period tag to YYYY-MM.

    The store may keep the period as free text ("2024-03") or as a
    structured date ("2024-03-01", date, datetime).

    Returns:
        The YYYY-MM key, or None if the value carries no period
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        # Lookup fields arrive as single-element lists
        return normalize_period_value(value[0]) if value else None

    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-{value.month:02d}"

    text = str(value).strip()
    match = re.match(r'([0-9]{4})-([0-9]{2})', text)
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (with optional trailing Z)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date (YYYY-MM-DD, or the date part of a timestamp)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None
