"""
Pre-flight validation of a billing period.

Fetches the period's activity through the record store and runs the
record validators over it, so operators can fix data before billing.
Nothing is written.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from ..billing.periods import Period
from ..billing.rules import active_subscriptions_for, subscriptions_overlap
from ..store.interfaces import RecordStore
from .record_validators import CancellationValidator, SessionValidator, SubscriptionValidator
from .validators import Validator, ValidationResult


logger = logging.getLogger(__name__)


@dataclass
class PeriodValidationReport:
    """
    Validation results of one period, per table.

    Attributes:
        period: Validated period (YYYY-MM)
        sessions: Result over the period's sessions
        cancellations: Result over the period's cancellations
        subscriptions: Result over all subscriptions
        counts: Records checked per table
    """

    period: str
    sessions: ValidationResult = field(default_factory=lambda: ValidationResult(is_valid=True))
    cancellations: ValidationResult = field(default_factory=lambda: ValidationResult(is_valid=True))
    subscriptions: ValidationResult = field(default_factory=lambda: ValidationResult(is_valid=True))
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return all(r.is_valid for r in (self.sessions, self.cancellations, self.subscriptions))

    @property
    def error_count(self) -> int:
        return sum(len(r.errors) for r in (self.sessions, self.cancellations, self.subscriptions))

    @property
    def warning_count(self) -> int:
        return sum(len(r.warnings) for r in (self.sessions, self.cancellations, self.subscriptions))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "period": self.period,
            "is_valid": self.is_valid,
            "counts": dict(self.counts),
            "sessions": {"errors": self.sessions.errors, "warnings": self.sessions.warnings},
            "cancellations": {
                "errors": self.cancellations.errors,
                "warnings": self.cancellations.warnings,
            },
            "subscriptions": {
                "errors": self.subscriptions.errors,
                "warnings": self.subscriptions.warnings,
            },
        }


class PeriodValidator:
    """
    Runs record validators over the activity of a period.

    Examples:
        >>> report = PeriodValidator(store).validate("2024-03")
        >>> print(report.sessions.get_summary())
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.session_validator = SessionValidator()
        self.cancellation_validator = CancellationValidator()
        self.subscription_validator = SubscriptionValidator()

    @staticmethod
    def _validate_all(validator: Validator, records: Iterable[Any]) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        for record in records:
            result.merge(validator.validate(record), prefix=f"{record.id}: ")
        return result

    def validate(self, period: str) -> PeriodValidationReport:
        """
        Validate the activity of a period.

        Raises:
            ValidationError: If the period is malformed
            StoreError: If the store fails
        """
        target = Period.parse(period)

        sessions = self.store.list_sessions(target.key)
        cancellations = self.store.list_cancellations(target.key)
        subscriptions = self.store.list_subscriptions()

        report = PeriodValidationReport(period=target.key)
        report.counts = {
            "sessions": len(sessions),
            "cancellations": len(cancellations),
            "subscriptions": len(subscriptions),
        }

        report.sessions = self._validate_all(self.session_validator, sessions)
        report.cancellations = self._validate_all(self.cancellation_validator, cancellations)
        report.subscriptions = self._validate_all(self.subscription_validator, subscriptions)

        for customer_id, overlapping in self._overlapping_subscriptions(subscriptions, target).items():
            report.subscriptions.add_error(
                f"Customer {customer_id}: overlapping active subscriptions "
                f"{', '.join(overlapping)}"
            )

        logger.info(
            f"Validated {target}: {report.error_count} error(s), "
            f"{report.warning_count} warning(s)"
        )
        return report

    @staticmethod
    def _overlapping_subscriptions(subscriptions, period: Period) -> Dict[str, List[str]]:
        by_customer: Dict[str, list] = {}
        for subscription in active_subscriptions_for(subscriptions, period):
            for customer_id in subscription.customer_ids:
                by_customer.setdefault(customer_id, []).append(subscription)

        overlapping: Dict[str, List[str]] = {}
        for customer_id, active in by_customer.items():
            ids = []
            for i, first in enumerate(active):
                for second in active[i + 1:]:
                    if subscriptions_overlap(first, second):
                        for sub_id in (first.id, second.id):
                            if sub_id not in ids:
                                ids.append(sub_id)
            if ids:
                overlapping[customer_id] = ids
        return overlapping
