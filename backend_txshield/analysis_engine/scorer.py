"""
Threat scoring: rule table plus weighted external signals.

Responsibilities:
- Evaluate the deterministic rule table against the decoded call. Runs
  with no collaborators at all.
- Combine rule severity, ML score and scam-similarity into one weighted
  score: 0.4 * ml + 0.4 * (max severity / 10) + 0.2 * avg scam similarity.
- Resolve the final level as the higher of the weighted-score level and
  the strongest matched rule's level; confidence is the higher of the
  weighted score and that rule's weight.
- Produce ordered, deduplicated mitigation suggestions (max 5).
"""

from __future__ import annotations

from typing import Any, Iterable

from backend_txshield.analysis_engine.decoder import CALLDATA_FIELD
from backend_txshield.analysis_engine.models import (
    WEI_PER_ETH,
    Category,
    DecodedCall,
    ExternalSignals,
    LlmAnalysis,
    OnChainCheck,
    Signal,
    SimilarTransaction,
    ThreatAssessment,
    ThreatLevel,
    TransactionRequest,
)
from backend_txshield.analysis_engine.abi import MAX_UINT256
from backend_txshield.analysis_engine.registry import MAX_INPUT_ARG, MIN_OUTPUT_ARG
from backend_txshield.analysis_engine.signatures import DEFAULT_SIGNATURES, AttackSignature, match_signatures
from backend_txshield.core.unavailable import is_available
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

ML_WEIGHT = 0.4
RULE_WEIGHT = 0.4
SIMILARITY_WEIGHT = 0.2

HIGH_VALUE_THRESHOLD_WEI = WEI_PER_ETH
# LLM is only consulted above this ML score or when any rule/pattern matched.
LLM_TRIGGER_ML_SCORE = 0.3
MAX_MITIGATIONS = 5

MITIGATION_LIMITED_APPROVAL = "Use a limited approval amount instead of unlimited"
MITIGATION_VERIFY_UNKNOWN = "Verify the contract address and decode the calldata before signing"
DEFAULT_MITIGATIONS = (
    "Verify the contract address on a trusted block explorer",
    "Use a hardware wallet for better security",
)

REGISTRY_OK = "On-chain registry check completed"
REGISTRY_PARTIAL = "On-chain registry check partially completed, proceeding with caution"
REGISTRY_FAILED = "Registry check failed, proceeding with caution"


def _rule(
    pattern: str,
    type_: str,
    description: str,
    level: ThreatLevel,
    weight: float,
    mitigation: str,
) -> Signal:
    return Signal(
        pattern=pattern,
        type=type_,
        description=description,
        severity=weight * 10,
        level=level,
        weight=weight,
        mitigation=mitigation,
    )


def _category_rule(tx: TransactionRequest, call: DecodedCall) -> Signal | None:
    cat = call.category
    if cat is Category.APPROVAL:
        if call.is_unlimited_approval:
            return _rule(
                "approval_unlimited", "APPROVAL_PHISHING", "Unlimited token approval",
                ThreatLevel.HIGH, 0.85, MITIGATION_LIMITED_APPROVAL,
            )
        return _rule(
            "approval_limited", "APPROVAL", "Token approval to a third-party spender",
            ThreatLevel.SUSPICIOUS, 0.65, "Check the reputation of the contract you're approving",
        )
    if cat.is_swap:
        if call.args.get(MAX_INPUT_ARG) == MAX_UINT256:
            return _rule(
                "swap_no_max_input", "SWAP_RISK", "Exact-output swap with no maximum input amount",
                ThreatLevel.HIGH, 0.9, "Set a maximum input amount (maximum slippage) for your swap",
            )
        if call.args.get(MIN_OUTPUT_ARG) == 0:
            return _rule(
                "swap_no_min_output", "SWAP_RISK", "Swap with no minimum output amount",
                ThreatLevel.HIGH, 0.9, "Set a minimum output amount (maximum slippage) for your swap",
            )
        return _rule(
            "swap_mev_exposure", "SWAP_RISK", "Token swap exposed to front-running",
            ThreatLevel.SUSPICIOUS, 0.6, "Use an MEV-protected transaction",
        )
    if cat is Category.ETH_TRANSFER:
        if tx.value > HIGH_VALUE_THRESHOLD_WEI:
            return _rule(
                "eth_transfer_high_value", "SUSPICIOUS_TRANSFER", "High value transfer",
                ThreatLevel.SUSPICIOUS, 0.6, "Consider splitting into smaller transactions",
            )
        return _rule(
            "eth_transfer", "TRANSFER", "Plain ETH transfer",
            ThreatLevel.SAFE, 0.3, "Double-check the recipient address",
        )
    if cat is Category.ERC20_TRANSFER:
        return _rule(
            "erc20_transfer", "TRANSFER", "ERC-20 token transfer",
            ThreatLevel.SAFE, 0.3, "Double-check the recipient address",
        )
    if cat in (Category.WETH_DEPOSIT, Category.WETH_WITHDRAW):
        return _rule(
            "weth_wrap", "WRAP", "WETH wrap or unwrap",
            ThreatLevel.SAFE, 0.2, "Confirm the WETH contract address for this network",
        )
    return _rule(
        "unknown_selector", "UNKNOWN_CALL", "Unrecognized function selector",
        ThreatLevel.SUSPICIOUS, 0.7, MITIGATION_VERIFY_UNKNOWN,
    )


def evaluate_rules(tx: TransactionRequest, call: DecodedCall) -> list[Signal]:
    """Deterministic rule matches, most specific first."""
    matches: list[Signal] = []
    if tx.is_deployment:
        matches.append(_rule(
            "contract_deployment", "DEPLOYMENT", "New contract deployment",
            ThreatLevel.SUSPICIOUS, 0.7, "Review the bytecode of contracts you deploy",
        ))
    if call.decode_error:
        what = "Calldata is not valid hex" if CALLDATA_FIELD in call.decode_errors else (
            "Could not decode: " + ", ".join(call.decode_errors)
        )
        matches.append(_rule(
            "decode_error", "DECODE_ERROR", what,
            ThreatLevel.SUSPICIOUS, 0.7, "Do not sign calldata that cannot be fully decoded",
        ))
    rule = _category_rule(tx, call)
    if rule is not None:
        matches.append(rule)
    return matches


def registry_rules(external: ExternalSignals) -> list[Signal]:
    matches: list[Signal] = []
    if external.address_flagged is True:
        matches.append(_rule(
            "flagged_address", "REGISTRY_THREAT", "Destination is flagged in the threat registry",
            ThreatLevel.CRITICAL, 0.95, "Do not interact: the destination address is flagged as a threat",
        ))
    if external.signature_flagged is True:
        matches.append(_rule(
            "flagged_calldata", "REGISTRY_THREAT", "Calldata is flagged in the threat registry",
            ThreatLevel.HIGH, 0.9, "Do not sign: this calldata matches a reported attack",
        ))
    return matches


def _clamp(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def weighted_score(
    ml_score: float,
    matches: Iterable[Signal],
    similar: Iterable[SimilarTransaction],
) -> float:
    """0.4 * ml + 0.4 * (max severity / 10) + 0.2 * avg similarity of scam matches."""
    severities = [m.severity for m in matches]
    max_severity = max(severities) if severities else 0.0
    scam = [s.similarity for s in similar if s.is_scam]
    avg_similarity = sum(scam) / len(scam) if scam else 0.0
    return (
        ML_WEIGHT * _clamp(ml_score)
        + RULE_WEIGHT * _clamp(max_severity / 10)
        + SIMILARITY_WEIGHT * _clamp(avg_similarity)
    )


def build_mitigations(matches: Iterable[Signal]) -> tuple[str, ...]:
    """One suggestion per match in order, then defaults; deduplicated, capped."""
    out: list[str] = []
    for text in [m.mitigation for m in matches if m.mitigation] + list(DEFAULT_MITIGATIONS):
        if text not in out:
            out.append(text)
    return tuple(out[:MAX_MITIGATIONS])


def default_reasoning(call: DecodedCall, level: ThreatLevel, tx: TransactionRequest) -> str:
    if call.is_unlimited_approval:
        return (
            "This transaction contains an unlimited token approval which gives the recipient "
            "contract complete control over your tokens. This is a common pattern in phishing attacks."
        )
    if call.category is Category.APPROVAL:
        return (
            "This transaction approves token spending to a third-party contract. While the approval "
            "amount is limited, verify the contract address carefully."
        )
    if call.category.is_swap:
        return (
            "This appears to be a token swap transaction, which may be subject to front-running "
            "or MEV attacks. Check slippage settings."
        )
    if call.category is Category.ETH_TRANSFER and tx.value > HIGH_VALUE_THRESHOLD_WEI:
        return "This is a high-value transaction. Verify the recipient address carefully."
    if call.category is Category.UNKNOWN:
        return "The function called is not recognized. Verify the contract address and calldata before signing."
    if level is not ThreatLevel.SAFE:
        return "This transaction contains suspicious patterns. Proceed with caution."
    return "This transaction appears to use standard parameters and doesn't match known threat patterns."


def llm_assessment_label(level: ThreatLevel) -> str:
    if level is ThreatLevel.SAFE:
        return "SAFE"
    if level is ThreatLevel.SUSPICIOUS:
        return "SUSPICIOUS"
    return "DANGEROUS"


def _on_chain_check(external: ExternalSignals) -> OnChainCheck:
    addr_ok = is_available(external.address_flagged)
    sig_ok = is_available(external.signature_flagged)
    if addr_ok and sig_ok:
        reason = REGISTRY_OK
    elif addr_ok or sig_ok:
        reason = REGISTRY_PARTIAL
    else:
        reason = REGISTRY_FAILED
    return OnChainCheck(
        address_threat=external.address_flagged is True,
        calldata_threat=external.signature_flagged is True,
        reason=reason,
    )


def should_consult_llm(ml_score: Any, matches: Iterable[Signal]) -> bool:
    """Above the ML trigger, or any pattern or non-SAFE rule matched."""
    ml = ml_score if is_available(ml_score) else 0.0
    flagged = any(m.level is None or m.level is not ThreatLevel.SAFE for m in matches)
    return ml > LLM_TRIGGER_ML_SCORE or flagged


def score(
    tx: TransactionRequest,
    call: DecodedCall,
    external: ExternalSignals | None = None,
    signatures: Iterable[AttackSignature] = DEFAULT_SIGNATURES,
) -> ThreatAssessment:
    """
    Score one transaction.

    Every external term that is UNAVAILABLE contributes 0; the result is
    always a complete assessment.
    """
    external = external or ExternalSignals()
    rules = registry_rules(external) + evaluate_rules(tx, call)
    patterns = match_signatures(call.raw_data, signatures)
    matches = rules + patterns

    ml = _clamp(external.ml_score) if is_available(external.ml_score) else 0.0
    similar = tuple(external.similar_transactions) if is_available(external.similar_transactions) else ()

    weighted = weighted_score(ml, matches, similar)
    floor_level = ThreatLevel.SAFE
    floor_weight = 0.0
    for r in rules:
        if r.level is not None and r.level.rank > floor_level.rank:
            floor_level = r.level
        floor_weight = max(floor_weight, r.weight)

    weighted_level = ThreatLevel.from_score(weighted)
    level = weighted_level if weighted_level.rank > floor_level.rank else floor_level
    confidence = round(_clamp(max(weighted, floor_weight)), 2)

    llm = external.llm if is_available(external.llm) else LlmAnalysis(
        assessment=llm_assessment_label(level),
        reasoning=default_reasoning(call, level, tx),
    )

    assessment = ThreatAssessment(
        level=level,
        confidence=confidence,
        rule_matches=tuple(matches),
        ml_score=round(ml, 4),
        similar_transactions=similar,
        mitigations=build_mitigations(matches),
        on_chain=_on_chain_check(external),
        llm=llm,
        collaborator_errors=external.errors,
    )
    logger.info(
        "threat_scored",
        category=call.category.value,
        level=level.value,
        confidence=confidence,
        weighted_score=round(weighted, 4),
        rules=[r.pattern for r in rules],
        patterns=[p.pattern for p in patterns],
    )
    return assessment


def malformed_input_response(message: str | None) -> dict[str, Any]:
    """Conservative SUSPICIOUS payload for a request that could not be parsed."""
    error = message or "Unknown error"
    return {
        "error": error,
        "threatLevel": ThreatLevel.SUSPICIOUS.value,
        "confidence": 0.5,
        "mitigationSuggestions": [
            "API error occurred - proceed with caution",
            "Verify the contract address on Etherscan before proceeding",
            "Consider using limited approval amounts for token contracts",
        ],
        "details": {
            "mlScore": 0.5,
            "signatureMatches": [],
            "similarTransactions": [],
            "onChainData": None,
            "llmAnalysis": {
                "assessment": "SUSPICIOUS",
                "reasoning": f"Unable to analyze the transaction completely. Error: {error}",
            },
        },
    }
