"""
Canonical classification of session states and categories.

The store holds these values as free text in Hebrew and English, with
stray whitespace. Every calculator goes through the two functions below
so the billable/non-billable and solo/duo/group partitions are defined in
one place.
"""

from enum import Enum
from typing import Optional


class SessionState(Enum):
    """Lifecycle state of a session."""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CANCELLED_BY_STAFF = "cancelled_by_staff"
    UNKNOWN = "unknown"

    @property
    def is_cancelled(self) -> bool:
        return self in (SessionState.CANCELLED, SessionState.CANCELLED_BY_STAFF)

    @property
    def is_billable(self) -> bool:
        return self in (SessionState.SCHEDULED, SessionState.COMPLETED)


class SessionCategory(Enum):
    """Session category."""
    SOLO = "solo"
    DUO = "duo"
    GROUP = "group"
    UNKNOWN = "unknown"


_STATE_ALIASES = {
    # Completed
    "הסתיים": SessionState.COMPLETED,
    "בוצע": SessionState.COMPLETED,
    "completed": SessionState.COMPLETED,
    "attended": SessionState.COMPLETED,
    "done": SessionState.COMPLETED,
    # Scheduled
    "מתוכנן": SessionState.SCHEDULED,
    "אישר הגעה": SessionState.SCHEDULED,
    "scheduled": SessionState.SCHEDULED,
    "confirmed": SessionState.SCHEDULED,
    # Cancelled
    "בוטל": SessionState.CANCELLED,
    "cancelled": SessionState.CANCELLED,
    "canceled": SessionState.CANCELLED,
    'בוטל ע"י מנהל': SessionState.CANCELLED_BY_STAFF,
    "בוטל ע״י מנהל": SessionState.CANCELLED_BY_STAFF,
    "cancelled-by-staff": SessionState.CANCELLED_BY_STAFF,
    "cancelled_by_staff": SessionState.CANCELLED_BY_STAFF,
    "cancelled by staff": SessionState.CANCELLED_BY_STAFF,
}

_CATEGORY_ALIASES = {
    "פרטי": SessionCategory.SOLO,
    "solo": SessionCategory.SOLO,
    "private": SessionCategory.SOLO,
    "זוגי": SessionCategory.DUO,
    "duo": SessionCategory.DUO,
    "pair": SessionCategory.DUO,
    "קבוצתי": SessionCategory.GROUP,
    "group": SessionCategory.GROUP,
}


def _normalize(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def classify_state(value: Optional[str]) -> SessionState:
    """
    Classify a raw lifecycle state.

    Examples:
        >>> classify_state("מתוכנן ")
        <SessionState.SCHEDULED: 'scheduled'>
        >>> classify_state("no-show")
        <SessionState.UNKNOWN: 'unknown'>
    """
    return _STATE_ALIASES.get(_normalize(value), SessionState.UNKNOWN)


def classify_category(value: Optional[str]) -> SessionCategory:
    """
    Classify a raw session category.

    Examples:
        >>> classify_category("פרטי")
        <SessionCategory.SOLO: 'solo'>
    """
    return _CATEGORY_ALIASES.get(_normalize(value), SessionCategory.UNKNOWN)
