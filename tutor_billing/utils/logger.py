"""
Logging utilities with security features.

This module provides logging setup with:
- Configurable log levels and output destinations
- Log rotation for file handlers
- Sensitive data masking (API tokens, bearer headers)
- Per-run identifiers for batch runs
"""

import logging
import re
import uuid
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def mask_token(token: str) -> str:
    """
    Mask an API token for safe logging.

    Args:
        token: Token to mask

    Returns:
        The first three characters followed by "***"

    Examples:
        >>> mask_token("patAbC123.secret")
        'pat***'
        >>> mask_token("")
        '***'
    """
    if not token:
        return "***"
    return token[:3] + "***"


def generate_run_id() -> str:
    """
    Generate an identifier for one billing run.

    Examples:
        >>> generate_run_id()  # doctest: +SKIP
        'run_20240401083015_a1b2c3'
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    return f"run_{timestamp}_{uuid.uuid4().hex[:6]}"


class SensitiveDataFilter(logging.Filter):
    """
    Logging filter that automatically masks sensitive information.

    This filter scans log messages for bearer headers, Airtable personal
    access tokens and api_key assignments and masks them before output.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Filter and mask sensitive data in log record.

        Args:
            record: Log record to filter

        Returns:
            Always True (allows all records through after masking)
        """
        # Mask "Bearer <token>" headers
        record.msg = re.sub(
            r'(Bearer\s+)[A-Za-z0-9._\-]+',
            r'\1********',
            str(record.msg),
            flags=re.IGNORECASE
        )

        # Mask Airtable personal access tokens
        record.msg = re.sub(
            r'\bpat[A-Za-z0-9]{8,}(\.[A-Za-z0-9]+)?',
            'pat********',
            str(record.msg)
        )

        # Mask "api_key=" or "token:" patterns
        record.msg = re.sub(
            r'(api_key|apikey|token)["\']?\s*[:=]\s*["\']?([^"\'\s]+)',
            r'\1: ********',
            str(record.msg),
            flags=re.IGNORECASE
        )

        return True


def setup_logger(
    name: str = "tutor_billing",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and configure a logger instance.

    Args:
        name: Logger name (default: "tutor_billing")
        level: Logging level (default: logging.INFO)
        log_file: Optional path to log file for file output

    Returns:
        Configured logger instance

    Examples:
        >>> # Basic console logging
        >>> logger = setup_logger()
        >>> logger.info("Billing started")

        >>> # File logging with rotation
        >>> logger = setup_logger(
        ...     level=logging.DEBUG,
        ...     log_file="output/billing_logs/billing.log"
        ... )
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    # Define log format
    formatter = logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    sensitive_filter = SensitiveDataFilter()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)
    logger.addHandler(console_handler)

    # File handler with rotation (if log file specified)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        logger.addHandler(file_handler)

    return logger
