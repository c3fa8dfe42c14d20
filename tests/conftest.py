"""Shared test fixtures for the cardiac recovery engine tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("SURGERY_DATE", "")
    monkeypatch.setenv("DB_PATH", ":memory:")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Metric sets
# ---------------------------------------------------------------------------

@pytest.fixture
def full_scenario_metrics() -> dict[str, Any]:
    """A well-recovered 50-year-old female's day (every category populated)."""
    return {
        "mets": 12,
        "walkDistance": 560,
        "vo2Max": 25,
        "sdnn": 48,
        "hrRecovery": 21,
        "restingHR": 65,
        "ejectionFraction": 58,
        "dyspnea": 0,
        "chestPain": 0,
        "fatigue": 1,
        "edema": 0,
        "qualityOfLife": 82,
        "sleepQuality": 7,
        "bpSystolic": 118,
        "bpDiastolic": 76,
        "oxygenSat": 97,
    }


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def recovery_db():
    """Create an in-memory RecoveryDatabase for testing."""
    from crp.core.storage.database import RecoveryDatabase

    db = RecoveryDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def payload_cipher():
    """Create a PayloadCipher with a fresh test key."""
    from crp.core.storage.encryption import PayloadCipher

    return PayloadCipher(PayloadCipher.generate_key())


@pytest.fixture
def recovery_repository(recovery_db, payload_cipher):
    """Create a RecoveryRepository backed by in-memory SQLite."""
    from crp.core.storage.repository import RecoveryRepository

    return RecoveryRepository(recovery_db, payload_cipher)


@pytest.fixture
def recovery_log(recovery_repository):
    """Create a RecoveryLog over the in-memory repository."""
    from crp.domains.recovery.domain_logic.recovery_log import RecoveryLog

    return RecoveryLog(recovery_repository)
