"""
Tests for BatchRunner.
"""

import threading
from datetime import date
from unittest.mock import patch

import pytest

from tutor_billing.billing.batch import BatchRunner, group_by_customer
from tutor_billing.billing.engine import BillingEngine
from tutor_billing.billing.errors import OutcomeKind
from tutor_billing.models.records import InvoiceRecord


PERIOD = "2024-03"


@pytest.fixture
def populated_store(store, solo_session, subscription):
    """
    Four active customers and one inactive:
    - recA: two solo sessions (create)
    - recB: one solo session and an existing invoice (update)
    - recC: nothing (skip)
    - recD: overlapping subscriptions (missing data)
    """
    for customer_id in ("recA", "recB", "recC", "recD"):
        store.add_customer(customer_id)
    store.add_customer("recInactive", is_active=False)

    store.sessions = [
        solo_session("recL1", customer_id="recA"),
        solo_session("recL2", customer_id="recA"),
        solo_session("recL3", customer_id="recB"),
        solo_session("recL4", customer_id="recInactive"),
    ]
    store.subscriptions = [
        subscription("recSub1", customer_id="recD", start_date=date(2024, 1, 1)),
        subscription("recSub2", customer_id="recD", start_date=date(2024, 3, 1)),
    ]
    store.add_invoice(InvoiceRecord(id="recInvB", customer_ids=("recB",), period=PERIOD))
    return store


class TestBatchRunner:
    """Test cases for BatchRunner.run."""

    def test_outcomes_are_bucketed(self, populated_store):
        """Test every active customer lands in exactly one bucket."""
        runner = BatchRunner(populated_store, BillingEngine(populated_store))

        report = runner.run(PERIOD, run_id="run_test")

        assert [o.customer_id for o in report.succeeded] == ["recA", "recB"]
        assert [o.customer_id for o in report.skipped] == ["recC"]
        assert [o.customer_id for o in report.errored] == ["recD"]
        assert report.errored[0].kind == OutcomeKind.MISSING_DATA

        counts = report.counts
        assert counts.customers_fetched == 4
        assert counts.sessions_fetched == 4
        assert counts.subscriptions_fetched == 2
        assert counts.invoices_fetched == 1
        assert (counts.created, counts.updated, counts.skipped, counts.errored) == (1, 1, 1, 1)
        assert report.total_billed == 525

    def test_report_dict_shape(self, populated_store):
        report = BatchRunner(populated_store, BillingEngine(populated_store)).run(PERIOD, run_id="run_test")

        data = report.to_dict()

        assert data["period"] == PERIOD
        assert data["run_id"] == "run_test"
        assert data["summary"]["created"] == 1
        assert data["errored"][0]["error"]["MISSING_FIELDS"][0]["table"] == "subscriptions"

    def test_one_failure_does_not_abort(self, populated_store):
        """Test a store failure for one customer leaves the others billed."""
        populated_store.fail_on_create_for.add("recA")
        runner = BatchRunner(populated_store, BillingEngine(populated_store))

        report = runner.run(PERIOD)

        assert [o.customer_id for o in report.succeeded] == ["recB"]
        failed = {o.customer_id: o.kind for o in report.errored}
        assert failed["recA"] == OutcomeKind.UNKNOWN

    def test_unexpected_exception_classified_unknown(self, populated_store):
        engine = BillingEngine(populated_store)
        runner = BatchRunner(populated_store, engine)

        with patch.object(engine, "build_customer_month", side_effect=RuntimeError("boom")):
            report = runner.run(PERIOD)

        assert report.counts.errored == 4
        assert all(o.kind == OutcomeKind.UNKNOWN for o in report.errored)
        assert report.errored[0].error.details["type"] == "RuntimeError"

    def test_duplicate_invoices_reported(self, populated_store):
        populated_store.add_invoice(InvoiceRecord(id="recInvB2", customer_ids=("recB",), period=PERIOD))

        report = BatchRunner(populated_store, BillingEngine(populated_store)).run(PERIOD)

        failed = {o.customer_id: o.kind for o in report.errored}
        assert failed["recB"] == OutcomeKind.DUPLICATE_INVOICE
        assert "recInvB2" not in [w[1] for w in populated_store.writes]

    def test_shared_session_billed_for_each_customer(self, store, solo_session, subscription):
        """Test a duo session is visible to both linked customers."""
        store.add_customer("recA")
        store.add_customer("recB")
        store.sessions = [solo_session("recL1", category="duo", customer_ids=("recA", "recB"))]
        store.subscriptions = [
            subscription("recSubA", customer_id="recA", monthly_amount=300),
            subscription("recSubB", customer_id="recB", monthly_amount=250),
        ]

        report = BatchRunner(store, BillingEngine(store)).run(PERIOD)

        totals = {r.customer_id: r.total for r in report.results}
        assert totals == {"recA": 300, "recB": 250}

    def test_parallel_run_matches_sequential(self, populated_store):
        report = BatchRunner(populated_store, BillingEngine(populated_store), max_workers=4).run(PERIOD)

        assert [o.customer_id for o in report.succeeded] == ["recA", "recB"]
        assert report.counts.errored == 1
        assert report.counts.not_processed == 0

    def test_cancelled_run_processes_nothing(self, populated_store):
        cancel = threading.Event()
        cancel.set()

        report = BatchRunner(populated_store, BillingEngine(populated_store)).run(PERIOD, cancel_event=cancel)

        assert report.counts.not_processed == 4
        assert populated_store.writes == []

    def test_dry_run_batch(self, populated_store):
        report = BatchRunner(populated_store, BillingEngine(populated_store, dry_run=True)).run(PERIOD)

        assert report.dry_run
        assert len(report.succeeded) == 2
        assert populated_store.writes == []


class TestGroupByCustomer:
    """Test cases for group_by_customer."""

    def test_indexed_under_each_customer(self, solo_session):
        session = solo_session("recL1", customer_ids=("recA", "recB"))

        index = group_by_customer([session])

        assert index == {"recA": [session], "recB": [session]}
