"""
Record validators.

Check normalized activity records for data problems an operator should
fix. Errors mark records the engine cannot bill correctly; warnings mark
records that are probably wrong but do not block billing.
"""

import re

from ..billing.classification import (
    SessionCategory,
    SessionState,
    classify_category,
    classify_state,
)
from ..models.records import Cancellation, Session, Subscription
from .validators import Validator, ValidationResult


class SessionValidator(Validator):
    """
    Validator for sessions.

    Validates:
    - Linked customers
    - Known lifecycle state and category
    - Period tag or start timestamp
    - Solo sessions shared by several customers
    - Explicit amount
    """

    def validate(self, data: Session) -> ValidationResult:
        result = ValidationResult(is_valid=True)

        error = self.validate_links(data.customer_ids, "customer")
        if error:
            result.add_error(error)

        if classify_state(data.state) == SessionState.UNKNOWN:
            result.add_warning(f"Unknown status: {data.state!r}")

        category = classify_category(data.category)
        if category == SessionCategory.UNKNOWN:
            result.add_warning(f"Unknown lesson type: {data.category!r}")

        if data.period is None and data.start is None:
            result.add_error("Missing both billing month and start time")
        elif data.period is not None:
            error = self.validate_period_format(data.period, "billing month")
            if error:
                result.add_error(error)

        if category == SessionCategory.SOLO and len(data.customer_ids) > 1:
            result.add_error(
                f"Solo lesson linked to {len(data.customer_ids)} customers"
            )

        if data.amount_override is not None:
            error = self.validate_non_negative_number(data.amount_override, "line amount")
            if error:
                result.add_error(error)

        return result


class CancellationValidator(Validator):
    """
    Validator for cancellations.

    An approved late cancellation needs either an explicit charge or a
    linked lesson, otherwise its charge cannot be resolved.
    """

    def validate(self, data: Cancellation) -> ValidationResult:
        result = ValidationResult(is_valid=True)

        error = self.validate_links(data.customer_ids, "customer")
        if error:
            result.add_error(error)

        if data.period is None:
            result.add_error("Missing billing month")

        if data.charge is not None:
            error = self.validate_non_negative_number(data.charge, "charge")
            if error:
                result.add_error(error)

        if data.is_lt_24h and data.is_charged and data.charge is None and not data.session_id:
            result.add_error("Approved late cancellation has neither a charge nor a linked lesson")

        if data.is_charged and not data.is_lt_24h:
            result.add_warning("Charge approved for a cancellation made 24h or more in advance")

        return result


class SubscriptionValidator(Validator):
    """
    Validator for subscriptions.

    Validates:
    - Linked customers
    - Start date, and end date not before it
    - Monthly amount parses as a non-negative number
    """

    def validate(self, data: Subscription) -> ValidationResult:
        result = ValidationResult(is_valid=True)

        error = self.validate_links(data.customer_ids, "customer")
        if error:
            result.add_error(error)

        if data.start_date is None:
            if data.paused:
                result.add_warning("Paused subscription has no start date")
            else:
                result.add_error("Missing subscription start date")

        if data.start_date and data.end_date and data.end_date < data.start_date:
            result.add_error(
                f"End date {data.end_date.isoformat()} is before "
                f"start date {data.start_date.isoformat()}"
            )

        amount = data.monthly_amount
        if amount is None or amount == "":
            result.add_warning("Missing monthly amount (billed as 0)")
        elif isinstance(amount, str):
            if not re.search(r'\d', amount):
                result.add_error(f"Monthly amount is not a number: {amount!r}")
            elif '-' in amount:
                result.add_error(f"Monthly amount must not be negative: {amount!r}")
        else:
            error = self.validate_non_negative_number(amount, "monthly amount")
            if error:
                result.add_error(error)

        return result
