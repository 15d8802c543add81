"""
Unit tests for file helpers.
"""

import json
from datetime import date

import pandas as pd

from tutor_billing.utils.file_utils import generate_filename, save_csv, save_json


class TestFileUtils:
    """Test cases for save_json, save_csv and generate_filename."""

    def test_save_json_creates_directories(self, tmp_path):
        path = tmp_path / "reports" / "run.json"

        assert save_json({"period": "2024-03", "day": date(2024, 3, 1), "name": "נועה"}, path)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"period": "2024-03", "day": "2024-03-01", "name": "נועה"}

    def test_save_csv_writes_bom(self, tmp_path):
        path = tmp_path / "out.csv"

        assert save_csv(pd.DataFrame([{"customer_id": "recA", "total": 175.0}]), path)

        assert path.read_bytes().startswith(b"\xef\xbb\xbf")

    def test_generate_filename(self):
        name = generate_filename("kpi_2024-03", "json")

        assert name.startswith("kpi_2024-03_")
        assert name.endswith(".json")
