import pytest
from fastapi.testclient import TestClient

from app import app

BASE = "http://soc.test/api/v1"


@pytest.fixture(autouse=True)
def soc_env(monkeypatch):
    """Deterministic upstream config; tests delete SOC_API_KEY when they need it missing."""
    monkeypatch.setenv("SOC_API_KEY", "secret")
    monkeypatch.setenv("SOC_API_BASE", BASE)
    monkeypatch.setenv("SOC_FINANCE_PATHS", "bilans,finances,profilfinancier")
    for name in ("SOC_AUTH_HEADER", "SOC_AUTH_PREFIX", "SOC_AMOUNT_UNIT", "SOC_PROFILE_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BATCH_DELAY_MS", "0")


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
