"""
Pytest tests for the TX Shield FastAPI endpoints (threat-check,
alternatives, simulate, health). Service is injected via conftest.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from backend_txshield.analysis_engine.cache import ResultCache
from backend_txshield.analysis_engine.service import ThreatCheckService
from backend_txshield.api_server.server import app, get_service
from backend_txshield.oracle import Collaborators
from txdata import MAX_UINT256, TOKEN, USER, approve_data


def _body(**overrides):
    body = {"to": TOKEN, "data": approve_data(MAX_UINT256), "value": "0", "from": USER, "chainId": 1}
    body.update(overrides)
    return body


def test_unlimited_approval_scenario(client):
    r = client.post("/api/threat-check", json=_body())
    assert r.status_code == 200
    data = r.json()
    assert data["threatLevel"] == "HIGH"
    assert data["confidence"] >= 0.8
    assert any("limited approval" in m for m in data["mitigationSuggestions"])
    assert data["details"]["llmAnalysis"]["assessment"] == "DANGEROUS"

    r = client.post("/api/alternatives", json=_body())
    assert r.status_code == 200
    alts = r.json()["alternatives"]
    assert len(alts) >= 3
    assert any(a.get("useProtectionContract") is True for a in alts)
    assert alts[0]["transactionData"]["value"] == "0"


def test_high_value_transfer_scenario(client):
    body = _body(to=USER, data="", value="2000000000000000000")
    r = client.post("/api/threat-check", json=body)
    assert r.status_code == 200
    assert r.json()["threatLevel"] == "SUSPICIOUS"

    alts = client.post("/api/alternatives", json=body).json()["alternatives"]
    split = [a for a in alts if a["title"] == "Split Transfer"]
    assert split
    assert 30 <= split[0]["riskReduction"] <= 50
    assert "replay" in split[0]["implementation"].lower()
    assert split[0]["transactionData"]["value"] == "1000000000000000000"


def test_unknown_selector_scenario(client):
    r = client.post("/api/threat-check", json=_body(data="0xdeadbeef" + "00" * 32))
    data = r.json()
    assert data["threatLevel"] in ("SUSPICIOUS", "HIGH", "CRITICAL")
    assert any("verify the contract address" in m.lower() for m in data["mitigationSuggestions"])


def test_defaults_and_hex_chain_id(client):
    r = client.post("/api/threat-check", json={"to": USER, "chainId": "0x1"})
    assert r.status_code == 200
    assert r.json()["threatLevel"] == "SAFE"


def test_threat_check_malformed_json_is_conservative(client):
    r = client.post("/api/threat-check", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 200
    data = r.json()
    assert data["threatLevel"] == "SUSPICIOUS"
    assert data["confidence"] == 0.5
    assert "error" in data
    assert data["mitigationSuggestions"][0] == "API error occurred - proceed with caution"


def test_threat_check_bad_value_is_conservative(client):
    r = client.post("/api/threat-check", json=_body(value="lots"))
    assert r.status_code == 200
    assert r.json()["threatLevel"] == "SUSPICIOUS"
    assert "lots" in r.json()["error"]


def test_threat_check_non_object_body(client):
    r = client.post("/api/threat-check", json=["0x"])
    assert r.status_code == 200
    assert r.json()["confidence"] == 0.5


def test_alternatives_malformed_is_400(client):
    r = client.post("/api/alternatives", json=_body(chainId="mainnet"))
    assert r.status_code == 400
    assert "detail" in r.json()


def test_simulate(client):
    r = client.post("/api/simulate", json=_body())
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["gasEstimate"]["gasUsed"] == "55000"
    assert data["warnings"]["customWarnings"] == ["Unlimited approval detected"]
    assert data["simulationId"].startswith("sim-")


def test_simulate_malformed_is_400(client):
    r = client.post("/api/simulate", content=b"nope", headers={"content-type": "application/json"})
    assert r.status_code == 400


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def _client_for(service):
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


@pytest.mark.parametrize(
    "collaborators",
    [
        Collaborators(ml_scorer=AsyncMock(ml_score=AsyncMock(return_value=None))),
        Collaborators(similarity_index=AsyncMock(
            similar_transactions=AsyncMock(return_value=[{"hash": "0xaa", "score": "n/a"}]),
        )),
        Collaborators(llm_reasoner=AsyncMock(llm_assess=AsyncMock(return_value={"assessment": "DANGEROUS"}))),
    ],
    ids=["ml-none", "similarity-bad-score", "llm-no-reasoning"],
)
def test_threat_check_survives_unusable_collaborator_answers(collaborators):
    svc = ThreatCheckService(collaborators=collaborators, cache=ResultCache(300), timeout=0.5)
    try:
        r = _client_for(svc).post("/api/threat-check", json=_body())
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 200
    data = r.json()
    assert data["threatLevel"] == "HIGH"
    assert data["details"]["llmAnalysis"]["assessment"] == "DANGEROUS"


def test_threat_check_unexpected_failure_is_conservative():
    svc = MagicMock()
    svc.assess = AsyncMock(side_effect=RuntimeError("scorer exploded"))
    try:
        r = _client_for(svc).post("/api/threat-check", json=_body())
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 200
    data = r.json()
    assert data["threatLevel"] == "SUSPICIOUS"
    assert data["error"] == "scorer exploded"
