"""
Unit tests for the billing calculation functions.
"""

from datetime import date, datetime, timezone

import pytest

from tutor_billing.billing.periods import Period
from tutor_billing.billing.rules import (
    SOLO_UNIT_PRICE,
    calculate_cancellations_contribution,
    calculate_sessions_contribution,
    calculate_subscriptions_contribution,
    calculate_total,
    is_subscription_active_for_month,
    parse_monthly_amount,
    resolve_status,
    subscriptions_overlap,
)
from tutor_billing.models.invoice import InvoiceStatus
from tutor_billing.models.records import Session


MARCH = Period(2024, 3)
CUSTOMER = "recStudent1"


class TestSessionsContribution:
    """Test cases for calculate_sessions_contribution."""

    def test_four_solo_sessions(self, solo_session):
        """Test four completed solo sessions bill 4 x 175."""
        sessions = [solo_session(f"recL{i}") for i in range(4)]

        result = calculate_sessions_contribution(sessions, MARCH, CUSTOMER)

        contribution = result.unwrap()
        assert contribution.total == 700
        assert contribution.count == 4

    def test_duo_and_group_never_charged(self, solo_session):
        """Test duo/group sessions add no per-session charge."""
        sessions = [
            solo_session("recL1", category="duo"),
            solo_session("recL2", category="קבוצתי"),
        ]

        contribution = calculate_sessions_contribution(sessions, MARCH, CUSTOMER).unwrap()

        assert contribution.total == 0
        assert contribution.count == 0
        assert contribution.uncovered_count == 2

    def test_duo_covered_by_subscription_not_uncovered(self, solo_session, subscription):
        contribution = calculate_sessions_contribution(
            [solo_session("recL1", category="duo")],
            MARCH,
            CUSTOMER,
            active_subscriptions=[subscription("recSub1")]
        ).unwrap()

        assert contribution.uncovered_count == 0

    def test_cancelled_and_unknown_states_skipped(self, solo_session):
        sessions = [
            solo_session("recL1", state="בוטל"),
            solo_session("recL2", state="cancelled_by_staff"),
            solo_session("recL3", state="no-show"),
            solo_session("recL4", state="מתוכנן"),
        ]

        contribution = calculate_sessions_contribution(sessions, MARCH, CUSTOMER).unwrap()

        assert contribution.count == 1
        assert contribution.total == SOLO_UNIT_PRICE

    def test_other_customers_and_periods_skipped(self, solo_session):
        sessions = [
            solo_session("recL1", customer_id="recOther"),
            solo_session("recL2", period="2024-02"),
        ]

        contribution = calculate_sessions_contribution(sessions, MARCH, CUSTOMER).unwrap()

        assert contribution.count == 0

    def test_explicit_amount_overrides_unit_price(self, solo_session):
        sessions = [
            solo_session("recL1", amount_override=200.0),
            solo_session("recL2", amount_override=0.0),
        ]

        contribution = calculate_sessions_contribution(sessions, MARCH, CUSTOMER).unwrap()

        assert contribution.total == 200
        assert contribution.count == 2

    def test_start_timestamp_used_without_period_tag(self, solo_session):
        """Test membership by start time in the billing time zone."""
        sessions = [
            # 00:30 on March 1st in Jerusalem
            solo_session("recL1", period=None, start=datetime(2024, 2, 29, 22, 30, tzinfo=timezone.utc)),
            # 01:30 on April 1st in Jerusalem
            solo_session("recL2", period=None, start=datetime(2024, 3, 31, 22, 30, tzinfo=timezone.utc)),
            solo_session("recL3", period=None, start=None),
        ]

        contribution = calculate_sessions_contribution(sessions, MARCH, CUSTOMER).unwrap()

        assert contribution.count == 1

    def test_shared_solo_session_reports_missing_data(self, solo_session):
        """Test every shared solo session is reported, not charged."""
        sessions = [
            solo_session("recL1", customer_ids=(CUSTOMER, "recOther")),
            solo_session("recL2", customer_ids=(CUSTOMER, "recOther")),
            solo_session("recL3"),
        ]

        result = calculate_sessions_contribution(sessions, MARCH, CUSTOMER)

        assert result.is_missing_data
        assert len(result.missing_fields) == 1
        assert result.missing_fields[0].table == "lessons"
        assert result.missing_fields[0].record_ids == ["recL1", "recL2"]

    def test_shared_duo_session_skipped_silently(self, solo_session):
        sessions = [solo_session("recL1", category="duo", customer_ids=(CUSTOMER, "recOther"))]

        result = calculate_sessions_contribution(sessions, MARCH, CUSTOMER)

        assert result.is_success
        assert result.value.total == 0


class TestCancellationsContribution:
    """Test cases for calculate_cancellations_contribution."""

    @pytest.fixture
    def lookup(self):
        sessions = {
            "recSolo": Session(id="recSolo", category="solo"),
            "recDuo": Session(id="recDuo", category="duo"),
        }
        return sessions.get

    def test_linked_solo_charged_unit_price(self, late_cancellation, lookup):
        """Test an approved late cancellation of a solo lesson costs 175."""
        result = calculate_cancellations_contribution(
            [late_cancellation("recC1", session_id="recSolo")],
            MARCH,
            session_lookup=lookup
        )

        contribution = result.unwrap()
        assert contribution.total == 175
        assert contribution.count == 1
        assert contribution.pending_count == 0

    def test_linked_duo_charged_zero(self, late_cancellation, lookup, subscription):
        contribution = calculate_cancellations_contribution(
            [late_cancellation("recC1", session_id="recDuo")],
            MARCH,
            session_lookup=lookup,
            active_subscriptions=[subscription("recSub1")]
        ).unwrap()

        assert contribution.total == 0
        assert contribution.count == 1

    def test_explicit_charge_wins(self, late_cancellation, lookup):
        contribution = calculate_cancellations_contribution(
            [late_cancellation("recC1", session_id="recSolo", charge=90.0)],
            MARCH,
            session_lookup=lookup
        ).unwrap()

        assert contribution.total == 90

    def test_unapproved_is_pending(self, late_cancellation):
        contribution = calculate_cancellations_contribution(
            [late_cancellation("recC1", is_charged=False)],
            MARCH
        ).unwrap()

        assert contribution.total == 0
        assert contribution.count == 0
        assert contribution.pending_count == 1

    def test_early_and_other_period_ignored(self, late_cancellation):
        contribution = calculate_cancellations_contribution(
            [
                late_cancellation("recC1", is_lt_24h=False, charge=175.0),
                late_cancellation("recC2", period="2024-02", charge=175.0),
            ],
            MARCH
        ).unwrap()

        assert contribution.count == 0
        assert contribution.pending_count == 0

    def test_unresolvable_charge_reports_missing_data(self, late_cancellation, lookup):
        result = calculate_cancellations_contribution(
            [
                late_cancellation("recC1"),
                late_cancellation("recC2", session_id="recGone"),
            ],
            MARCH,
            session_lookup=lookup
        )

        assert result.is_missing_data
        assert result.missing_fields[0].table == "cancellations"
        assert result.missing_fields[0].record_ids == ["recC1", "recC2"]


class TestSubscriptionsContribution:
    """Test cases for subscriptions."""

    def test_single_active_subscription(self, subscription):
        contribution = calculate_subscriptions_contribution(
            [subscription("recSub1", monthly_amount="₪300")],
            MARCH
        ).unwrap()

        assert contribution.total == 300
        assert contribution.active_count == 1

    @pytest.mark.parametrize("start, end, paused, active", [
        (date(2024, 3, 31), None, False, True),
        (date(2024, 4, 1), None, False, False),
        (date(2024, 1, 1), date(2024, 3, 1), False, True),
        (date(2024, 1, 1), date(2024, 2, 29), False, False),
        (date(2024, 1, 1), None, True, False),
        (None, None, False, False),
    ])
    def test_active_for_month_boundaries(self, subscription, start, end, paused, active):
        sub = subscription("recSub1", start_date=start, end_date=end, paused=paused)

        assert is_subscription_active_for_month(sub, MARCH) is active

    def test_overlapping_subscriptions_report_missing_data(self, subscription):
        """Test overlapping active subscriptions are never summed."""
        result = calculate_subscriptions_contribution(
            [
                subscription("recSub1", start_date=date(2024, 1, 1)),
                subscription("recSub2", start_date=date(2024, 3, 15)),
            ],
            MARCH
        )

        assert result.is_missing_data
        entry = result.missing_fields[0]
        assert entry.table == "subscriptions"
        assert entry.example_values == ["sum", "max", "priority_by_type"]
        assert entry.record_ids == ["recSub1", "recSub2"]

    def test_consecutive_subscriptions_are_summed(self, subscription):
        """Test a subscription ending before another starts is not an overlap."""
        contribution = calculate_subscriptions_contribution(
            [
                subscription("recSub1", start_date=date(2024, 1, 1),
                             end_date=date(2024, 3, 10), monthly_amount=300),
                subscription("recSub2", start_date=date(2024, 3, 15), monthly_amount=200),
            ],
            MARCH
        ).unwrap()

        assert contribution.total == 500
        assert contribution.active_count == 2

    def test_open_ended_overlap(self, subscription):
        first = subscription("recSub1", start_date=date(2024, 1, 1))
        second = subscription("recSub2", start_date=date(2030, 1, 1), end_date=date(2030, 2, 1))

        assert subscriptions_overlap(first, second)

    def test_missing_start_date_reports_missing_data(self, subscription):
        result = calculate_subscriptions_contribution(
            [subscription("recSub1", start_date=None)],
            MARCH
        )

        assert result.is_missing_data
        assert result.missing_fields[0].field == "subscription_start_date"
        assert result.missing_fields[0].to_dict()["record_ids"] == ["recSub1"]

    def test_paused_without_start_date_ignored(self, subscription):
        contribution = calculate_subscriptions_contribution(
            [subscription("recSub1", start_date=None, paused=True)],
            MARCH
        ).unwrap()

        assert contribution.active_count == 0


class TestParseMonthlyAmount:
    """Test cases for parse_monthly_amount."""

    @pytest.mark.parametrize("value, expected", [
        (300, 300.0),
        ("₪1,250.50", 1250.5),
        ("300 ש\"ח", 300.0),
        ("", 0.0),
        ("free", 0.0),
        (-50, 0.0),
        ("-50", 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (None, 0.0),
        (True, 0.0),
    ])
    def test_values(self, value, expected):
        assert parse_monthly_amount(value) == expected


class TestTotalAndStatus:
    """Test cases for calculate_total and resolve_status."""

    def test_total_is_plain_sum(self):
        assert calculate_total(700, 175, 300) == 1175

    def test_paid_is_sticky(self):
        assert resolve_status(3, is_paid=True) == InvoiceStatus.PAID

    def test_pending_cancellations_wait_for_approval(self):
        assert resolve_status(1, is_paid=False) == InvoiceStatus.PENDING_APPROVAL

    def test_approved_otherwise(self):
        assert resolve_status(0, is_paid=False) == InvoiceStatus.APPROVED
