"""
Pytest fixtures for TX Shield tests. No network: collaborators are fakes
or absent, and the API runs against an injected ThreatCheckService.
"""

from __future__ import annotations

import pytest

from backend_txshield.analysis_engine.cache import ResultCache
from backend_txshield.analysis_engine.service import ThreatCheckService
from backend_txshield.oracle import Collaborators


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep collaborator settings from the developer's environment out of tests."""
    for name in (
        "PROTECTION_CONTRACT_ADDRESS",
        "THREAT_REGISTRY_ADDRESS",
        "ETH_RPC_URL",
        "ETH_RPC_URL_1",
        "ETH_RPC_URL_11155111",
        "ML_SCORER_URL",
        "SIMILARITY_INDEX_URL",
        "LLM_ASSESS_URL",
        "CACHE_TTL_SEC",
        "COLLABORATOR_TIMEOUT_SEC",
        "DEFAULT_GAS_PRICE_GWEI",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def service():
    """Service with no collaborators configured (every external term unavailable)."""
    return ThreatCheckService(collaborators=Collaborators(), cache=ResultCache(300), timeout=0.5)


@pytest.fixture
def client(service):
    """FastAPI TestClient bound to the injected service; lifespan is not run."""
    from fastapi.testclient import TestClient

    from backend_txshield.api_server.server import app, get_service

    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
