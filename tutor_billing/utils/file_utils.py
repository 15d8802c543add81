"""
File operation utilities.

This module provides utilities for saving execution reports as JSON
and CSV files.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

import pandas as pd


logger = logging.getLogger(__name__)


def save_json(data: Dict[str, Any], filepath: Path) -> bool:
    """
    Save data to JSON file.

    Args:
        data: Dictionary data to save
        filepath: Path to save the JSON file

    Returns:
        True if save successful, False otherwise

    Examples:
        >>> save_json(report.to_dict(), Path("output/billing_reports/run.json"))
        True
    """
    try:
        # Ensure parent directory exists
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)

        logger.debug(f"Saved JSON file: {filepath}")
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to save JSON file {filepath}: {e}", exc_info=True)
        return False


def save_csv(df: pd.DataFrame, filepath: Path) -> bool:
    """
    Save DataFrame to CSV file.

    Args:
        df: Pandas DataFrame to save
        filepath: Path to save the CSV file

    Returns:
        True if save successful, False otherwise
    """
    try:
        # Ensure parent directory exists
        filepath.parent.mkdir(parents=True, exist_ok=True)

        # UTF-8 with BOM
        df.to_csv(filepath, index=False, encoding='utf-8-sig')

        logger.debug(f"Saved CSV file: {filepath}")
        return True

    except OSError as e:
        logger.error(f"Failed to save CSV file {filepath}: {e}", exc_info=True)
        return False


def generate_filename(prefix: str, extension: str) -> str:
    """
    Generate timestamped filename.

    Args:
        prefix: Filename prefix
        extension: File extension (without dot)

    Returns:
        Filename with timestamp (e.g., "prefix_20251101_103045.ext")
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}.{extension}"
