"""
Pure billing calculation functions.

These functions turn raw activity records into billable amounts. They
have no I/O and no side effects apart from debug logging.

Rules:
- Solo session: fixed unit price, or the session's explicit amount
- Duo/group session: no per-session charge (covered by a subscription)
- Late cancellation (<24h), approved: explicit charge, else derived from
  the linked session's category
- Late cancellation, not approved: pending, excluded from the total
- Subscription: monthly amount of each subscription active in the month
- total = sessions + cancellations + subscriptions (no tax)
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from ..models.invoice import InvoiceStatus
from ..models.records import Cancellation, Session, Subscription
from ..models.result import Result
from .classification import SessionCategory, classify_category, classify_state
from .errors import MissingField
from .periods import DEFAULT_TIMEZONE, Period


logger = logging.getLogger(__name__)

SOLO_UNIT_PRICE = 175.0
OPEN_ENDED_DATE = date(2099, 12, 31)

SessionLookup = Callable[[str], Optional[Session]]


@dataclass(frozen=True)
class SessionContribution:
    total: float
    count: int
    uncovered_count: int = 0


@dataclass(frozen=True)
class CancellationContribution:
    total: float
    count: int
    pending_count: int


@dataclass(frozen=True)
class SubscriptionContribution:
    total: float
    active_count: int


def session_in_period(
    session: Session,
    period: Period,
    timezone: str = DEFAULT_TIMEZONE
) -> bool:
    """
    Decide period membership of a session.

    The explicit period tag wins; without one the start timestamp is
    checked against the calendar month.
    """
    if session.period:
        return session.period == period.key
    if session.start is not None:
        return period.contains(session.start, timezone)
    return False


def calculate_session_amount(session: Session, unit_price: float = SOLO_UNIT_PRICE) -> float:
    """Charge of one solo session: the explicit amount if set, else the unit price."""
    if session.amount_override is not None:
        return session.amount_override
    return unit_price


def calculate_sessions_contribution(
    sessions: Iterable[Session],
    period: Period,
    customer_id: str,
    unit_price: float = SOLO_UNIT_PRICE,
    active_subscriptions: Optional[Sequence[Subscription]] = None,
    timezone: str = DEFAULT_TIMEZONE
) -> Result[SessionContribution]:
    """
    Reduce sessions to the customer's per-session charges for a period.

    Args:
        sessions: Sessions visible to the engine (filtered here)
        period: Target period
        customer_id: Target customer
        unit_price: Price of a solo session without an explicit amount
        active_subscriptions: Subscriptions active in the period, used only
            to count duo/group sessions no subscription covers
        timezone: Billing time zone for timestamp membership

    Returns:
        Result with SessionContribution, or a missing-data Result listing
        every solo session shared by several customers
    """
    total = 0.0
    count = 0
    uncovered = 0
    shared_solo_ids: List[str] = []
    has_subscription = bool(active_subscriptions)

    for session in sessions:
        if not session_in_period(session, period, timezone):
            continue

        state = classify_state(session.state)
        if state.is_cancelled or not state.is_billable:
            logger.debug(f"Session {session.id} skipped: state {session.state!r}")
            continue

        if customer_id not in session.customer_ids:
            continue

        category = classify_category(session.category)

        if len(session.customer_ids) > 1:
            if category == SessionCategory.SOLO:
                logger.debug(f"Session {session.id} skipped: solo session with several customers")
                shared_solo_ids.append(session.id)
                continue

        if category != SessionCategory.SOLO:
            if category in (SessionCategory.DUO, SessionCategory.GROUP) and not has_subscription:
                uncovered += 1
            continue

        amount = calculate_session_amount(session, unit_price)
        total += amount
        count += 1
        logger.debug(f"Session {session.id} billed: {amount}")

    if shared_solo_ids:
        return Result.missing([MissingField(
            table="lessons",
            field="full_name (multi-link)",
            why_needed=(
                "A solo session is linked to several customers. "
                "Decide how to split the amount: split evenly, "
                "charge each customer, or disallow shared solo sessions."
            ),
            example_values=["split_evenly", "charge_per_student", "disallow"],
            record_ids=shared_solo_ids,
        )])

    return Result.success(SessionContribution(total, count, uncovered))


def calculate_cancellation_amount(
    cancellation: Cancellation,
    linked_session: Optional[Session],
    unit_price: float = SOLO_UNIT_PRICE
) -> Optional[float]:
    """
    Resolve the charge of an approved late cancellation.

    Returns:
        The charge, or None if neither an explicit charge nor a linked
        session is available
    """
    if cancellation.charge is not None:
        return cancellation.charge

    if linked_session is None:
        return None

    category = classify_category(linked_session.category)
    if category == SessionCategory.SOLO:
        return unit_price

    # Duo/group: the subscription (if any) already covers the slot
    return 0.0


def calculate_cancellations_contribution(
    cancellations: Iterable[Cancellation],
    period: Period,
    session_lookup: Optional[SessionLookup] = None,
    unit_price: float = SOLO_UNIT_PRICE,
    active_subscriptions: Optional[Sequence[Subscription]] = None
) -> Result[CancellationContribution]:
    """
    Reduce cancellations to late-cancellation charges for a period.

    Args:
        cancellations: Cancellations of the customer
        period: Target period
        session_lookup: Session id -> Session, built by the caller from the
            sessions it already holds
        unit_price: Price of a solo session
        active_subscriptions: Subscriptions active in the period

    Returns:
        Result with CancellationContribution, or a missing-data Result
        listing every cancellation whose charge cannot be resolved
    """
    total = 0.0
    count = 0
    pending = 0
    unresolved_ids: List[str] = []

    for cancellation in cancellations:
        if cancellation.period != period.key:
            continue

        if not cancellation.is_lt_24h:
            continue

        if not cancellation.is_charged:
            pending += 1
            continue

        linked = None
        if cancellation.session_id and session_lookup is not None:
            linked = session_lookup(cancellation.session_id)

        amount = calculate_cancellation_amount(cancellation, linked, unit_price)

        if amount == 0 and linked is not None and not active_subscriptions:
            logger.debug(
                f"Cancellation {cancellation.id}: {linked.category!r} lesson "
                f"with no active subscription, charged 0"
            )

        if amount is None:
            unresolved_ids.append(cancellation.id)
            continue

        total += amount
        count += 1

    if unresolved_ids:
        return Result.missing([MissingField(
            table="cancellations",
            field="charge or lesson (linked record)",
            why_needed=(
                "Cannot determine the cancellation charge. Set the charge "
                "field explicitly, or link the cancelled lesson so the "
                "charge follows its lesson type."
            ),
            example_values=["175", "rec123 (lesson ID)"],
            record_ids=unresolved_ids,
        )])

    return Result.success(CancellationContribution(total, count, pending))


def is_subscription_active_for_month(subscription: Subscription, period: Period) -> bool:
    """
    Check whether a subscription is active in a period.

    Active means not paused, started on or before the last day of the
    month, and either open-ended or ending on or after the first day.
    """
    if subscription.paused:
        return False

    if subscription.start_date is None or subscription.start_date > period.last_day:
        return False

    if subscription.end_date is not None and subscription.end_date < period.first_day:
        return False

    return True


def active_subscriptions_for(
    subscriptions: Iterable[Subscription],
    period: Period
) -> List[Subscription]:
    return [s for s in subscriptions if is_subscription_active_for_month(s, period)]


def subscriptions_overlap(first: Subscription, second: Subscription) -> bool:
    """Check whether two subscription date ranges intersect."""
    end_first = first.end_date or OPEN_ENDED_DATE
    end_second = second.end_date or OPEN_ENDED_DATE
    return first.start_date <= end_second and second.start_date <= end_first


def parse_monthly_amount(amount) -> float:
    """
    Parse a monthly amount stored as a number or a currency string.

    Examples:
        >>> parse_monthly_amount("₪1,250.50")
        1250.5
        >>> parse_monthly_amount(-10)
        0.0
    """
    if amount is None or isinstance(amount, bool):
        return 0.0

    if isinstance(amount, (int, float)):
        value = float(amount)
    else:
        cleaned = re.sub(r'[^0-9.\-]', '', str(amount))
        if not cleaned:
            return 0.0
        try:
            value = float(cleaned)
        except ValueError:
            return 0.0

    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def calculate_subscriptions_contribution(
    subscriptions: Iterable[Subscription],
    period: Period
) -> Result[SubscriptionContribution]:
    """
    Sum the monthly amounts of the subscriptions active in a period.

    Args:
        subscriptions: Subscriptions of one customer
        period: Target period

    Returns:
        Result with SubscriptionContribution, or a missing-data Result when
        a start date is missing or active subscriptions overlap
    """
    subscriptions = list(subscriptions)
    undated_ids = [
        s.id for s in subscriptions
        if s.start_date is None and not s.paused
    ]

    if undated_ids:
        return Result.missing([MissingField(
            table="subscriptions",
            field="subscription_start_date",
            why_needed=(
                "A subscription has no start date, so it is unknown "
                "whether it covers this month."
            ),
            example_values=[period.first_day.isoformat()],
            record_ids=undated_ids,
        )])

    active = active_subscriptions_for(subscriptions, period)

    if len(active) > 1:
        overlapping_ids: List[str] = []
        for i, first in enumerate(active):
            for second in active[i + 1:]:
                if not subscriptions_overlap(first, second):
                    continue
                for sub in (first, second):
                    if sub.id not in overlapping_ids:
                        overlapping_ids.append(sub.id)
        if overlapping_ids:
            return Result.missing([MissingField(
                table="subscriptions",
                field="business_rule",
                why_needed=(
                    "Several overlapping subscriptions are active for the "
                    "same customer and month. Decide whether to sum them, "
                    "take the maximum, or prioritize one."
                ),
                example_values=["sum", "max", "priority_by_type"],
                record_ids=overlapping_ids,
            )])

    total = sum(parse_monthly_amount(s.monthly_amount) for s in active)
    return Result.success(SubscriptionContribution(total, len(active)))


def calculate_total(
    sessions_total: float,
    cancellations_total: float,
    subscriptions_total: float
) -> float:
    """Grand total (no tax)."""
    return sessions_total + cancellations_total + subscriptions_total


def resolve_status(pending_cancellations_count: int, is_paid: bool) -> InvoiceStatus:
    """
    Resolve the invoice status.

    Paid is sticky and wins; otherwise pending late cancellations keep
    the invoice waiting for approval.
    """
    if is_paid:
        return InvoiceStatus.PAID

    if pending_cancellations_count > 0:
        return InvoiceStatus.PENDING_APPROVAL

    return InvoiceStatus.APPROVED
