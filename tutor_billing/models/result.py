"""
Result<T> Pattern for billing outcomes.

This module implements the Result pattern (Railway-oriented programming)
used by the contribution calculators and the billing engine. A Result
holds either a value or a missing-data outcome: a list of business fields
an operator has to fill in before the customer can be billed. Missing
data is a normal outcome, so it travels in a Result instead of being
raised.
"""

from dataclasses import dataclass
from typing import Optional, Generic, TypeVar, List, TYPE_CHECKING
from enum import Enum

if TYPE_CHECKING:
    from ..billing.errors import MissingField, MissingFieldsError


T = TypeVar('T')


class ResultStatus(Enum):
    """Status of a Result."""
    SUCCESS = "success"
    MISSING_DATA = "missing_data"


@dataclass
class Result(Generic[T]):
    """
    Outcome of a calculation: a value, or the business data it is missing.

    Attributes:
        status: Result status (SUCCESS or MISSING_DATA)
        value: The result value if successful (None otherwise)
        error: MissingFieldsError for MISSING_DATA (None if success)
        message: Optional message describing the result

    Examples:
        >>> result = Result.success(700, "4 solo sessions")
        >>> if result.is_success:
        ...     print(f"Total: {result.value}")

        >>> result = Result.missing([entry])
        >>> if result.is_missing_data:
        ...     for field in result.missing_fields:
        ...         print(field.table, field.field)
    """

    status: ResultStatus
    value: Optional[T] = None
    error: Optional["MissingFieldsError"] = None
    message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        """Check if the result represents success."""
        return self.status == ResultStatus.SUCCESS

    @property
    def is_missing_data(self) -> bool:
        """Check if the result asks an operator for missing business data."""
        return self.status == ResultStatus.MISSING_DATA

    @property
    def missing_fields(self) -> List["MissingField"]:
        """Missing-data entries (empty unless is_missing_data)."""
        if not self.is_missing_data or self.error is None:
            return []
        return list(getattr(self.error, "missing_fields", []))

    @classmethod
    def success(cls, value: T, message: Optional[str] = None) -> 'Result[T]':
        """
        Create a successful result.

        Args:
            value: The result value
            message: Optional success message

        Returns:
            Result instance with SUCCESS status
        """
        return cls(
            status=ResultStatus.SUCCESS,
            value=value,
            message=message
        )

    @classmethod
    def missing(cls, missing_fields: List["MissingField"]) -> 'Result[T]':
        """
        Create a missing-data result.

        Args:
            missing_fields: Every business field that blocks the calculation

        Returns:
            Result instance with MISSING_DATA status wrapping a
            MissingFieldsError
        """
        from ..billing.errors import MissingFieldsError

        error = MissingFieldsError(missing_fields)
        return cls(
            status=ResultStatus.MISSING_DATA,
            message=error.message,
            error=error
        )

    def unwrap(self) -> T:
        """
        Unwrap the result value.

        Returns:
            The result value if successful

        Raises:
            ValueError: If the result is not a success
        """
        if not self.is_success:
            raise ValueError(
                f"Cannot unwrap {self.status.value} result: {self.message}"
            )
        return self.value
