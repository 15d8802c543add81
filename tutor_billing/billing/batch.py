"""
Batch billing for all active customers.

Fetches every table once per run, slices the records per customer and
bills each customer independently. One customer's failure never stops
the batch; every outcome is classified into exactly one OutcomeKind.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, Iterable, List, Optional, TypeVar

from ..models.invoice import BatchReport, CustomerOutcome
from ..models.records import Customer
from ..store.interfaces import RecordStore
from ..utils.logger import generate_run_id
from .engine import BillingEngine, CustomerActivity, build_session_lookup
from .errors import DomainError, OutcomeKind, classify_outcome
from .periods import Period


logger = logging.getLogger(__name__)

R = TypeVar('R')


def group_by_customer(records: Iterable[R]) -> Dict[str, List[R]]:
    """
    Index records by linked customer id.

    A record linked to several customers is indexed under each of them.
    """
    index: Dict[str, List[R]] = {}
    for record in records:
        for customer_id in record.customer_ids:
            index.setdefault(customer_id, []).append(record)
    return index


class BatchRunner:
    """
    Runs the billing engine over all active customers of a period.

    Examples:
        >>> runner = BatchRunner(store, BillingEngine(store), max_workers=4)
        >>> report = runner.run("2024-03")
        >>> print(report.counts.created, report.counts.errored)
    """

    def __init__(self, store: RecordStore, engine: BillingEngine, max_workers: int = 1):
        """
        Initialize BatchRunner.

        Args:
            store: Record store
            engine: Billing engine (its dry_run flag applies to the batch)
            max_workers: Customers billed in parallel (1 = sequential)
        """
        self.store = store
        self.engine = engine
        self.max_workers = max(1, max_workers)

    def _bill_customer(
        self,
        customer: Customer,
        period: Period,
        activity: CustomerActivity,
        run_id: str,
        cancel_event: threading.Event
    ) -> Optional[CustomerOutcome]:
        """Bill one customer; None if the batch was cancelled first."""
        if cancel_event.is_set():
            return None

        try:
            result = self.engine.build_customer_month(
                customer.id,
                period.key,
                activity=activity,
                run_id=run_id
            )
        except DomainError as e:
            kind = classify_outcome(e)
            if kind == OutcomeKind.NO_BILLABLE_DATA:
                logger.info(f"[{run_id}] Customer {customer.id}: skipped, {e.message}")
            else:
                logger.error(f"[{run_id}] Customer {customer.id}: {e.code} {e.message}")
            return CustomerOutcome(customer.id, kind, error=e)
        except Exception as e:
            logger.exception(f"[{run_id}] Customer {customer.id}: unexpected error")
            error = DomainError(str(e), code="UNKNOWN_ERROR", details={"type": type(e).__name__})
            return CustomerOutcome(customer.id, OutcomeKind.UNKNOWN, error=error)

        if result.is_success:
            return CustomerOutcome(customer.id, OutcomeKind.SUCCESS, result=result.value)

        return CustomerOutcome(customer.id, classify_outcome(result.error), error=result.error)

    def run(
        self,
        period: str,
        cancel_event: Optional[threading.Event] = None,
        run_id: Optional[str] = None
    ) -> BatchReport:
        """
        Bill every active customer for a period.

        Args:
            period: Billing period (YYYY-MM)
            cancel_event: Stops scheduling further customers once set;
                customers already in progress finish
            run_id: Run identifier (generated if None)

        Returns:
            BatchReport with per-customer outcomes and counters

        Raises:
            ValidationError: If the period is malformed
            StoreError: If the initial fetch fails
        """
        target = Period.parse(period)
        run_id = run_id or generate_run_id()
        cancel_event = cancel_event or threading.Event()

        report = BatchReport(
            period=target.key,
            run_id=run_id,
            execution_time=datetime.now().isoformat(),
            dry_run=self.engine.dry_run,
        )

        logger.info(f"[{run_id}] Batch billing for {target} started")

        customers = self.store.list_active_customers()
        sessions = self.store.list_sessions(target.key)
        cancellations = self.store.list_cancellations(target.key)
        subscriptions = self.store.list_subscriptions()
        invoices = self.store.list_invoices(target.key)

        report.counts.customers_fetched = len(customers)
        report.counts.sessions_fetched = len(sessions)
        report.counts.cancellations_fetched = len(cancellations)
        report.counts.subscriptions_fetched = len(subscriptions)
        report.counts.invoices_fetched = len(invoices)

        logger.info(
            f"[{run_id}] Fetched {len(customers)} customers, {len(sessions)} sessions, "
            f"{len(cancellations)} cancellations, {len(subscriptions)} subscriptions, "
            f"{len(invoices)} invoices"
        )

        sessions_by_customer = group_by_customer(sessions)
        cancellations_by_customer = group_by_customer(cancellations)
        subscriptions_by_customer = group_by_customer(subscriptions)
        invoices_by_customer = group_by_customer(invoices)
        session_lookup = build_session_lookup(sessions)

        def activity_for(customer: Customer) -> CustomerActivity:
            return CustomerActivity(
                customer=customer,
                sessions=sessions_by_customer.get(customer.id, []),
                cancellations=cancellations_by_customer.get(customer.id, []),
                subscriptions=subscriptions_by_customer.get(customer.id, []),
                invoices=invoices_by_customer.get(customer.id, []),
                session_lookup=session_lookup,
            )

        if self.max_workers == 1:
            outcomes = [
                self._bill_customer(customer, target, activity_for(customer), run_id, cancel_event)
                for customer in customers
            ]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(
                        self._bill_customer,
                        customer,
                        target,
                        activity_for(customer),
                        run_id,
                        cancel_event
                    )
                    for customer in customers
                ]
                try:
                    outcomes = [future.result() for future in futures]
                except KeyboardInterrupt:
                    # Queued customers return at once; in-flight ones finish
                    cancel_event.set()
                    raise

        for outcome in outcomes:
            if outcome is None:
                report.counts.not_processed += 1
            else:
                report.add(outcome)

        counts = report.counts
        logger.info(
            f"[{run_id}] Batch billing for {target} finished: "
            f"created={counts.created} updated={counts.updated} skipped={counts.skipped} "
            f"errored={counts.errored} not_processed={counts.not_processed}"
        )

        return report
