"""Shared test fixtures for the AMS Intake test suite."""

from __future__ import annotations

import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py reads a predictable
    environment: no live collaborators, no CloudWatch.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["METRICS_ENABLED"] = "false"
    for name in ("AZURE_SEARCH_ENDPOINT", "AZURE_SEARCH_INDEX", "AZURE_SEARCH_API_KEY",
                 "EMR_BASE_URL", "EMR_API_KEY", "AWS_EXECUTION_ENV"):
        os.environ[name] = ""


DIRECTORY_TEXT = """\ufeffAMS provider directory

prov_001  Allison Hill (PsyD) — Therapy
Styles: CBT, ACT
Languages: English, Spanish
Licensed States: AZ, NM
Insurance: Aetna, Cash
Email: allison.hill@example.org

prov_002  Marcus Henderson (MD) — Psychiatry
Languages: English
Licensed States: AZ, CO
Insurance: BCBS, Cash Pay
Email: marcus.henderson@example.org

prov_003  Daniel Smith (PMHNP-BC) — Psychiatry
Languages: English
Licensed States: NV, OR
Insurance: Medicare

prov_004  Rebecca Smith (LCSW) — Therapy
Lived Experience: Parent, Veteran
Languages: English, ASL
Licensed States: NV, AZ
Insurance: Tricare, Cash
"""

SCHEDULE_TEXT = """prov_001|2025-09-20|09:00
prov_001|2025-09-24|10:00
prov_001|2025-09-23|13:00
prov_002|2025-09-25|08:00
prov_003|2025-09-26|09:30
prov_004|2025-09-23|15:00
prov_004|2025-09-30|15:00
not a row
prov_009|2025-13-01|10:00
"""

# Monday 2025-09-22 12:00 in the reference timezone
NOW = datetime(2025, 9, 22, 12, 0)


@pytest.fixture
def directory_text() -> str:
    return DIRECTORY_TEXT


@pytest.fixture
def schedule_text() -> str:
    return SCHEDULE_TEXT


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def snapshot():
    from ams_intake.directory.store import build_snapshot

    return build_snapshot(DIRECTORY_TEXT, SCHEDULE_TEXT)


@pytest.fixture
def data_files(tmp_path):
    """Write the sample directory and schedule to disk; returns both paths."""
    providers = tmp_path / "providers.txt"
    schedule = tmp_path / "provider_schedule.txt"
    providers.write_text(DIRECTORY_TEXT, encoding="utf-8")
    schedule.write_text(SCHEDULE_TEXT, encoding="utf-8")
    return providers, schedule


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
