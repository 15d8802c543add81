"""
Validation framework with Strategy pattern.

This module provides:
- Abstract Validator interface
- ValidationResult for consistent validation reporting
- Shared checks used by the record validators
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from ..billing.periods import PERIOD_PATTERN


@dataclass
class ValidationResult:
    """
    Result of data validation.

    Attributes:
        is_valid: Whether validation passed
        errors: List of error messages
        warnings: List of warning messages (non-fatal)
    """

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> 'ValidationResult':
        """
        Add an error message.

        Args:
            message: Error message to add

        Returns:
            Self for method chaining

        Examples:
            >>> result = ValidationResult(is_valid=True)
            >>> result.add_error("Error 1").add_error("Error 2")
        """
        self.errors.append(message)
        self.is_valid = False
        return self

    def add_warning(self, message: str) -> 'ValidationResult':
        """
        Add a warning message.

        Args:
            message: Warning message to add

        Returns:
            Self for method chaining
        """
        self.warnings.append(message)
        return self

    def merge(self, other: 'ValidationResult', prefix: str = "") -> 'ValidationResult':
        """
        Fold another result into this one.

        Args:
            other: Result to merge
            prefix: Text prepended to every merged message (e.g. a record id)

        Returns:
            Self for method chaining
        """
        for error in other.errors:
            self.add_error(f"{prefix}{error}")
        for warning in other.warnings:
            self.add_warning(f"{prefix}{warning}")
        return self

    @property
    def has_errors(self) -> bool:
        """Check if there are errors."""
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        """Check if there are warnings."""
        return len(self.warnings) > 0

    def get_summary(self) -> str:
        """
        Get validation summary.

        Returns:
            Human-readable summary of validation results
        """
        if self.is_valid and not self.has_warnings:
            return "Validation passed"

        parts = []

        if self.has_errors:
            parts.append(f"Errors ({len(self.errors)}):")
            for error in self.errors:
                parts.append(f"  - {error}")

        if self.has_warnings:
            parts.append(f"Warnings ({len(self.warnings)}):")
            for warning in self.warnings:
                parts.append(f"  - {warning}")

        return "\n".join(parts)


class Validator(ABC):
    """
    Abstract base class for validators.

    Subclasses must implement the validate() method to perform
    specific validation logic.
    """

    @abstractmethod
    def validate(self, data: Any) -> ValidationResult:
        """
        Validate data.

        Args:
            data: Data to validate

        Returns:
            ValidationResult with errors and warnings
        """
        pass

    def validate_period_format(
        self,
        period: Any,
        field_name: str = "period"
    ) -> Optional[str]:
        """
        Validate period format (YYYY-MM, month 01-12).

        Args:
            period: Period string to validate
            field_name: Name of the field (for error message)

        Returns:
            Error message if invalid, None if valid
        """
        if not isinstance(period, str) or not PERIOD_PATTERN.fullmatch(period):
            return f"Invalid {field_name} format: {period} (expected YYYY-MM)"

        month = int(period[5:7])
        if not 1 <= month <= 12:
            return f"Invalid {field_name} month: {period} (expected 01-12)"

        return None

    def validate_links(
        self,
        links: Sequence[str],
        field_name: str
    ) -> Optional[str]:
        """
        Validate that a linked-record field is not empty.

        Args:
            links: Normalized linked record ids
            field_name: Name of the field (for error message)

        Returns:
            Error message if invalid, None if valid
        """
        if not links:
            return f"Missing linked record: {field_name}"
        return None

    def validate_non_negative_number(
        self,
        value: Any,
        field_name: str
    ) -> Optional[str]:
        """
        Validate that value is a number and not negative.

        Args:
            value: Value to validate
            field_name: Name of the field (for error message)

        Returns:
            Error message if invalid, None if valid
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"{field_name} must be a number, got {type(value).__name__}"

        if not math.isfinite(value):
            return f"{field_name} must be a finite number, got {value}"

        if value < 0:
            return f"{field_name} must not be negative, got {value}"

        return None
