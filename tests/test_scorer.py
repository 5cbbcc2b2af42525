"""
Tests for the threat scorer: rule table, weighted combination with
external signals, mitigation ordering and degrade-not-fail behavior.
"""

from __future__ import annotations

import re

import pytest

from backend_txshield.analysis_engine.decoder import classify
from backend_txshield.analysis_engine.models import (
    ExternalSignals,
    LlmAnalysis,
    Signal,
    SimilarTransaction,
    ThreatLevel,
    TransactionRequest,
)
from backend_txshield.analysis_engine.scorer import (
    DEFAULT_MITIGATIONS,
    MAX_MITIGATIONS,
    MITIGATION_LIMITED_APPROVAL,
    REGISTRY_FAILED,
    REGISTRY_OK,
    REGISTRY_PARTIAL,
    evaluate_rules,
    malformed_input_response,
    score,
    should_consult_llm,
    weighted_score,
)
from backend_txshield.analysis_engine.signatures import AttackSignature
from txdata import DAI, MAX_UINT256, ONE_ETH, TOKEN, USER, WETH, approve_data, swap_exact_out_data, swap_tokens_data


def _score(to=TOKEN, data="0x", value=0, external=None, **kwargs):
    tx = TransactionRequest.create(to=to, data=data, value=value, from_=USER)
    return score(tx, classify(tx.data), external, **kwargs)


def test_unlimited_approval_without_collaborators_is_high():
    a = _score(data=approve_data(MAX_UINT256))
    assert a.level is ThreatLevel.HIGH
    assert a.confidence >= 0.8
    assert a.mitigations[0] == MITIGATION_LIMITED_APPROVAL
    patterns = [s.pattern for s in a.rule_matches]
    assert "approval_unlimited" in patterns
    assert "unlimited_approval" in patterns
    assert a.ml_score == 0.0
    assert a.similar_transactions == ()


def test_unlimited_approval_with_strong_external_signals_is_critical():
    external = ExternalSignals(
        ml_score=0.9,
        similar_transactions=(
            SimilarTransaction("0xaa", 1.0, True),
            SimilarTransaction("0xbb", 0.5, False),
        ),
    )
    a = _score(data=approve_data(MAX_UINT256), external=external)
    # 0.4 * 0.9 + 0.4 * 0.85 + 0.2 * 1.0
    assert a.level is ThreatLevel.CRITICAL
    assert a.confidence == pytest.approx(0.9)


def test_limited_approval_is_suspicious():
    a = _score(data=approve_data(1000))
    assert a.level is ThreatLevel.SUSPICIOUS
    assert a.confidence == pytest.approx(0.65)


def test_high_value_eth_transfer_is_suspicious():
    a = _score(to=USER, value=str(2 * ONE_ETH))
    assert a.level is ThreatLevel.SUSPICIOUS
    assert a.confidence == pytest.approx(0.6)
    assert "Consider splitting into smaller transactions" in a.mitigations


def test_small_eth_transfer_is_safe():
    a = _score(to=USER, value=str(ONE_ETH // 2))
    assert a.level is ThreatLevel.SAFE
    assert a.confidence == pytest.approx(0.3)


def test_exactly_one_eth_is_not_high_value():
    rules = evaluate_rules(TransactionRequest.create(to=USER, value=ONE_ETH), classify("0x"))
    assert [r.pattern for r in rules] == ["eth_transfer"]


def test_unknown_selector_is_suspicious_and_says_verify():
    a = _score(data="0xdeadbeef" + "00" * 32)
    assert a.level.rank >= ThreatLevel.SUSPICIOUS.rank
    assert any("verify the contract address" in m.lower() for m in a.mitigations)


def test_swap_without_min_output_is_high():
    a = _score(to=USER, data=swap_tokens_data(10**18, 0, [DAI, WETH]))
    assert a.level is ThreatLevel.HIGH
    assert a.confidence == pytest.approx(0.9)


def test_swap_with_min_output_is_suspicious():
    a = _score(to=USER, data=swap_tokens_data(10**18, 5, [DAI, WETH]))
    assert a.level is ThreatLevel.SUSPICIOUS
    assert a.mitigations[0] == "Use an MEV-protected transaction"


def test_exact_output_swap_without_max_input_is_high():
    a = _score(to=USER, data=swap_exact_out_data(10**18, MAX_UINT256, [DAI, WETH]))
    assert a.level is ThreatLevel.HIGH
    assert a.confidence == pytest.approx(0.9)
    assert [m.pattern for m in a.rule_matches] == ["swap_no_max_input"]
    assert a.mitigations[0].startswith("Set a maximum input amount")


def test_exact_output_swap_with_max_input_is_suspicious():
    a = _score(to=USER, data=swap_exact_out_data(10**18, 2 * 10**18, [DAI, WETH]))
    assert a.level is ThreatLevel.SUSPICIOUS
    assert [m.pattern for m in a.rule_matches] == ["swap_mev_exposure"]


def test_decode_error_raises_caution():
    a = _score(data="0x095ea7b3" + "00" * 32)
    assert "decode_error" in [s.pattern for s in a.rule_matches]
    assert a.level is ThreatLevel.SUSPICIOUS


def test_contract_deployment():
    a = _score(to=None, data="0x60806040" + "00" * 8)
    assert a.rule_matches[0].pattern == "contract_deployment"
    assert a.level is ThreatLevel.SUSPICIOUS


def test_flagged_address_is_critical():
    a = _score(to=USER, value=1, external=ExternalSignals(address_flagged=True, signature_flagged=False))
    assert a.level is ThreatLevel.CRITICAL
    assert a.confidence == pytest.approx(0.95)
    assert a.on_chain.address_threat is True
    assert a.on_chain.reason == REGISTRY_OK


def test_flagged_calldata_is_at_least_high():
    a = _score(data=approve_data(1000), external=ExternalSignals(address_flagged=False, signature_flagged=True))
    assert a.level is ThreatLevel.HIGH
    assert a.on_chain.calldata_threat is True


def test_registry_reason_strings():
    assert _score().on_chain.reason == REGISTRY_FAILED
    assert _score(external=ExternalSignals(address_flagged=False)).on_chain.reason == REGISTRY_PARTIAL


def test_ml_score_lifts_level_above_rule_floor():
    a = _score(to=USER, value=1, external=ExternalSignals(ml_score=0.3))
    # 0.4 * 0.3 + 0.4 * 0.3 = 0.24
    assert a.level is ThreatLevel.SUSPICIOUS
    assert a.ml_score == pytest.approx(0.3)


def test_llm_is_informational_only():
    external = ExternalSignals(llm=LlmAnalysis("DANGEROUS", "looks bad"))
    a = _score(to=USER, value=1, external=external)
    assert a.level is ThreatLevel.SAFE
    assert a.llm == LlmAnalysis("DANGEROUS", "looks bad")


def test_llm_fallback_reasoning():
    a = _score(data=approve_data(MAX_UINT256))
    assert a.llm.assessment == "DANGEROUS"
    assert "unlimited token approval" in a.llm.reasoning


def test_mitigations_deduplicated_and_capped():
    noisy = tuple(
        AttackSignature(f"p{i}", "TEST", "test", 1, f"mitigation {i % 3}", re.compile(r"^0x"))
        for i in range(6)
    )
    a = _score(to=USER, value=1, signatures=noisy)
    assert len(a.mitigations) == MAX_MITIGATIONS
    assert len(set(a.mitigations)) == len(a.mitigations)
    assert a.mitigations[0] == "Double-check the recipient address"
    assert a.mitigations[-1] == DEFAULT_MITIGATIONS[0]


def test_weighted_score_only_counts_scam_similarity():
    matches = [Signal("x", "T", "d", 5.0)]
    similar = [SimilarTransaction("0x1", 0.8, True), SimilarTransaction("0x2", 0.2, True), SimilarTransaction("0x3", 1.0, False)]
    assert weighted_score(0.5, matches, similar) == pytest.approx(0.2 + 0.2 + 0.1)
    assert weighted_score(0.0, [], []) == 0.0


def test_should_consult_llm():
    safe = Signal("eth_transfer", "TRANSFER", "d", 3.0, level=ThreatLevel.SAFE)
    risky = Signal("approval_limited", "APPROVAL", "d", 6.5, level=ThreatLevel.SUSPICIOUS)
    pattern = Signal("unlimited_approval", "APPROVAL_PHISHING", "d", 8.0)
    assert not should_consult_llm(0.1, [safe])
    assert should_consult_llm(0.31, [safe])
    assert should_consult_llm(0.0, [risky])
    assert should_consult_llm(0.0, [pattern])


def test_to_response_shape():
    external = ExternalSignals(errors=(("ml_scorer", "ml_scorer timed out"),))
    body = _score(data=approve_data(MAX_UINT256), external=external).to_response()
    assert body["threatLevel"] == "HIGH"
    assert set(body["details"]) >= {"mlScore", "signatureMatches", "similarTransactions", "onChainData", "llmAnalysis"}
    assert body["details"]["collaboratorErrors"] == {"ml_scorer": "ml_scorer timed out"}
    match = body["details"]["signatureMatches"][0]
    assert set(match) == {"pattern", "type", "description", "severity"}


def test_malformed_input_response():
    body = malformed_input_response("Invalid value: 'abc'")
    assert body["threatLevel"] == "SUSPICIOUS"
    assert body["confidence"] == 0.5
    assert body["error"] == "Invalid value: 'abc'"
    assert len(body["mitigationSuggestions"]) == 3
    assert body["details"]["llmAnalysis"]["assessment"] == "SUSPICIOUS"
