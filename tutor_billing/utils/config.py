"""
Configuration management with environment variables.

This module provides centralized configuration management
with validation and type safety.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from ..store.field_map import FieldMap, TableNames


class SecureString:
    """
    Wrapper for sensitive strings that prevents accidental exposure.

    This class wraps sensitive data (like API tokens) to prevent
    accidental logging or printing.

    Examples:
        >>> token = SecureString("pat123.secret")
        >>> str(token)  # Returns "********"
        >>> token.get_value()  # Returns actual value
    """

    def __init__(self, value: str):
        """
        Initialize SecureString with sensitive value.

        Args:
            value: Sensitive string to protect
        """
        self._value = value

    def get_value(self) -> str:
        """
        Get the actual value (use with caution).

        Returns:
            The actual sensitive string value

        Warning:
            This exposes the sensitive value. Use only when necessary
            (e.g., for the Authorization header) and never log the result.
        """
        return self._value

    def __str__(self) -> str:
        """Return masked string representation."""
        return "********"

    def __repr__(self) -> str:
        """Return masked repr."""
        return "SecureString(********)"

    def __eq__(self, other) -> bool:
        """Compare SecureString values."""
        if isinstance(other, SecureString):
            return self._value == other._value
        return False


class Config:
    """
    Application configuration manager.

    Loads configuration from environment variables and provides
    validated access to configuration values.

    Attributes:
        airtable_api_key: Airtable personal access token
        airtable_base_id: Airtable base id
        airtable_api_url: Airtable REST API root
        solo_unit_price: Price of a solo session without an explicit amount
        timezone: Time zone used for month boundaries
        max_workers: Customers billed in parallel by batch runs
        store_timeout: Seconds per store request
        store_max_retries: Retries of a retryable store request
        output_dir: Output directory for logs and reports
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Examples:
        >>> config = Config()
        >>> if config.validate():
        ...     print(f"Billing base: {config.airtable_base_id}")
    """

    @staticmethod
    def _validate_url(url: str, name: str) -> str:
        """
        Validate URL format and scheme.

        Args:
            url: URL to validate
            name: Variable name for error message

        Returns:
            Validated URL

        Raises:
            ValueError: If URL is invalid
        """
        parsed = urlparse(url)

        if not parsed.scheme:
            raise ValueError(f"{name} must include URL scheme (http/https)")

        if parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{name} must use http or https scheme, got: {parsed.scheme}")

        if not parsed.netloc:
            raise ValueError(f"{name} must have a valid domain")

        return url

    @staticmethod
    def _read_number(name: str, default: str, cast=float):
        value = os.getenv(name, default)
        try:
            return cast(value)
        except ValueError:
            raise ValueError(f"{name} must be a number, got: {value!r}")

    def __init__(self):
        """Initialize configuration by loading environment variables."""
        # Load .env file if it exists
        load_dotenv()

        # Airtable credentials
        token = os.getenv("AIRTABLE_API_KEY")
        self._airtable_api_key = SecureString(token) if token else None
        self._airtable_base_id = os.getenv("AIRTABLE_BASE_ID")

        url = os.getenv("AIRTABLE_API_URL", "https://api.airtable.com/v0")
        self._airtable_api_url = self._validate_url(url, "AIRTABLE_API_URL")

        # Table names
        defaults = TableNames()
        self._tables = TableNames(
            students=os.getenv("AIRTABLE_TABLE_STUDENTS", defaults.students),
            lessons=os.getenv("AIRTABLE_TABLE_LESSONS", defaults.lessons),
            cancellations=os.getenv("AIRTABLE_TABLE_CANCELLATIONS", defaults.cancellations),
            subscriptions=os.getenv("AIRTABLE_TABLE_SUBSCRIPTIONS", defaults.subscriptions),
            monthly_bills=os.getenv("AIRTABLE_TABLE_MONTHLY_BILLS", defaults.monthly_bills),
        )

        # Billing settings
        self._solo_unit_price = self._read_number("BILLING_SOLO_UNIT_PRICE", "175")
        self._timezone = os.getenv("BILLING_TIMEZONE", "Asia/Jerusalem")
        self._max_workers = self._read_number("BILLING_MAX_WORKERS", "1", int)

        # Store settings
        self._store_timeout = self._read_number("STORE_TIMEOUT", "30")
        self._store_max_retries = self._read_number("STORE_MAX_RETRIES", "3", int)

        # Output settings
        self._output_dir = Path(os.getenv("OUTPUT_DIR", "output"))
        self._log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def airtable_api_key(self) -> Optional[SecureString]:
        """
        Get the Airtable token (wrapped in SecureString).

        Warning:
            Use get_value() only to build the Authorization header.
            Never log the result.
        """
        return self._airtable_api_key

    @property
    def airtable_base_id(self) -> str:
        """
        Get the Airtable base id.

        Raises:
            ValueError: If the base id is not set
        """
        if not self._airtable_base_id:
            raise ValueError("AIRTABLE_BASE_ID is not set in environment")
        return self._airtable_base_id

    @property
    def airtable_api_url(self) -> str:
        """Get the Airtable REST API root."""
        return self._airtable_api_url

    @property
    def tables(self) -> TableNames:
        """Get the configured table names."""
        return self._tables

    @property
    def solo_unit_price(self) -> float:
        """Get the solo session unit price."""
        return self._solo_unit_price

    @property
    def timezone(self) -> str:
        """Get the billing time zone name."""
        return self._timezone

    @property
    def max_workers(self) -> int:
        """Get the number of customers billed in parallel."""
        return self._max_workers

    @property
    def store_timeout(self) -> float:
        """Get the store request timeout in seconds."""
        return self._store_timeout

    @property
    def store_max_retries(self) -> int:
        """Get the retry count for retryable store requests."""
        return self._store_max_retries

    @property
    def output_dir(self) -> Path:
        """Get output directory path."""
        return self._output_dir

    @property
    def reports_dir(self) -> Path:
        """Get the directory for execution reports."""
        return self._output_dir / "billing_reports"

    @property
    def log_level(self) -> str:
        """Get logging level."""
        return self._log_level

    def field_map(self) -> FieldMap:
        """Build the field map with the configured table names."""
        return FieldMap(tables=self._tables)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if all required configuration is valid

        Raises:
            ValueError: If validation fails
        """
        errors = []

        # Check required fields
        if not self._airtable_api_key:
            errors.append("AIRTABLE_API_KEY is required")

        if not self._airtable_base_id:
            errors.append("AIRTABLE_BASE_ID is required")

        # Validate numeric values
        if self._solo_unit_price <= 0:
            errors.append("BILLING_SOLO_UNIT_PRICE must be positive")

        if self._max_workers < 1:
            errors.append("BILLING_MAX_WORKERS must be at least 1")

        if self._store_timeout <= 0:
            errors.append("STORE_TIMEOUT must be positive")

        if self._store_max_retries < 0:
            errors.append("STORE_MAX_RETRIES must not be negative")

        try:
            ZoneInfo(self._timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"BILLING_TIMEZONE is not a known time zone: {self._timezone}")

        # Validate log level
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self._log_level not in valid_levels:
            errors.append(
                f"LOG_LEVEL must be one of: {', '.join(valid_levels)}"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)

        return True

    def create_output_directories(self):
        """Create output directories if they don't exist."""
        directories = [
            self.output_dir / "billing_logs",
            self.reports_dir,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)


# Singleton instance
config = Config()
