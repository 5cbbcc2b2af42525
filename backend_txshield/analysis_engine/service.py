"""
Composition root for threat checks.

ThreatCheckService owns the ResultCache and the Collaborators and runs
the pipeline: classify -> gather external signals -> score, with
alternatives and the static simulation built on the same decoded call.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any

from backend_txshield.analysis_engine.abi import calldata_hash
from backend_txshield.analysis_engine.alternatives import generate
from backend_txshield.analysis_engine.cache import ResultCache
from backend_txshield.analysis_engine.decoder import classify
from backend_txshield.analysis_engine.gas import GAS_SWAP, estimate_gas
from backend_txshield.analysis_engine.models import (
    AlternativeTransaction,
    Category,
    DecodedCall,
    ExternalSignals,
    LlmAnalysis,
    SimilarTransaction,
    ThreatAssessment,
    TransactionRequest,
)
from backend_txshield.analysis_engine.registry import slippage_unbounded
from backend_txshield.analysis_engine.scorer import evaluate_rules, score, should_consult_llm
from backend_txshield.analysis_engine.signatures import DEFAULT_SIGNATURES, AttackSignature, match_signatures
from backend_txshield.config import get_cache_ttl_sec, get_collaborator_timeout_sec, get_default_gas_price_wei
from backend_txshield.core.unavailable import UNAVAILABLE, is_available
from backend_txshield.oracle import Collaborators, call_guarded
from backend_txshield.txshield_logging import bind_request

# Static MEV exposure reported for swaps; no mempool data is consulted.
SWAP_MEV_EXPOSURE = {
    "sandwichRisk": 65,
    "frontrunningRisk": 40,
    "backrunningRisk": 25,
    "potentialMEVLoss": "0.015",
    "suggestedProtections": [
        "Use a private transaction service",
        "Set maximum slippage to 1%",
        "Execute through TX Shield contract",
    ],
}


def _ml_score(raw: Any) -> float:
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"non-finite ml score {raw!r}")
    return max(0.0, min(1.0, value))


def _similar(raw: Any) -> tuple[SimilarTransaction, ...]:
    return tuple(
        SimilarTransaction(
            hash=str(m.get("hash", "")),
            similarity=max(0.0, min(1.0, float(m.get("score", 0.0)))),
            is_scam=bool(m.get("isScam", False)),
        )
        for m in raw
    )


def _llm(raw: Any) -> LlmAnalysis:
    return LlmAnalysis(assessment=str(raw["assessment"]), reasoning=str(raw["reasoning"]))


class ThreatCheckService:
    def __init__(
        self,
        collaborators: Collaborators | None = None,
        cache: ResultCache | None = None,
        timeout: float | None = None,
        signatures: tuple[AttackSignature, ...] = DEFAULT_SIGNATURES,
    ) -> None:
        self.collaborators = collaborators or Collaborators()
        self.cache = cache if cache is not None else ResultCache(get_cache_ttl_sec())
        self.timeout = timeout if timeout is not None else get_collaborator_timeout_sec()
        self.signatures = signatures

    @classmethod
    def from_env(cls) -> "ThreatCheckService":
        return cls(collaborators=Collaborators.from_env())

    async def assess(self, tx: TransactionRequest) -> ThreatAssessment:
        """Cached by fingerprint; a hit returns the same assessment object."""
        return await self.cache.aget_or_compute(tx.fingerprint, lambda: self._compute(tx))

    async def _compute(self, tx: TransactionRequest) -> ThreatAssessment:
        call = classify(tx.data)
        external = await self.gather_signals(tx, call)
        return score(tx, call, external, self.signatures)

    async def gather_signals(self, tx: TransactionRequest, call: DecodedCall) -> ExternalSignals:
        """ML, similarity and registry concurrently; then the LLM if anything looks off."""
        log = bind_request(tx.fingerprint)
        c = self.collaborators
        errors: list[tuple[str, str]] = []
        has_data = tx.data != "0x" and tx.has_valid_hex_data

        ml, similar, address_flagged, signature_flagged = await asyncio.gather(
            call_guarded(
                "ml_scorer", c.ml_scorer.ml_score if c.ml_scorer else None, tx.data,
                timeout=self.timeout, errors=errors, parse=_ml_score,
            ),
            call_guarded(
                "similarity_index", c.similarity_index.similar_transactions if c.similarity_index else None, tx.data,
                timeout=self.timeout, errors=errors, parse=_similar,
            ),
            call_guarded(
                "threat_registry",
                c.threat_registry.is_address_flagged if c.threat_registry and tx.to else None,
                tx.to, tx.chain_id,
                timeout=self.timeout, errors=errors,
            ),
            call_guarded(
                "threat_registry",
                c.threat_registry.is_signature_flagged if c.threat_registry and has_data else None,
                calldata_hash(tx.data) if has_data else None, tx.chain_id,
                timeout=self.timeout, errors=errors,
            ),
        )

        llm: Any = UNAVAILABLE
        local_matches = evaluate_rules(tx, call) + match_signatures(call.raw_data, self.signatures)
        if c.llm_reasoner and should_consult_llm(ml, local_matches):
            llm = await call_guarded(
                "llm_reasoner", c.llm_reasoner.llm_assess,
                {"transaction": tx.to_dict(), "decoded": call.to_dict()},
                timeout=self.timeout, errors=errors, parse=_llm,
            )

        log.debug(
            "external_signals_gathered",
            ml_available=is_available(ml),
            similarity_available=is_available(similar),
            registry_available=is_available(address_flagged) or is_available(signature_flagged),
            llm_available=is_available(llm),
            errors=len(errors),
        )
        return ExternalSignals(
            ml_score=ml,
            similar_transactions=similar,
            address_flagged=address_flagged,
            signature_flagged=signature_flagged,
            llm=llm,
            errors=tuple(errors),
        )

    async def alternatives(self, tx: TransactionRequest) -> list[AlternativeTransaction]:
        call = classify(tx.data)
        assessment = await self.assess(tx)
        return generate(tx, call, assessment)

    async def simulate(self, tx: TransactionRequest) -> dict[str, Any]:
        """Static gas estimate plus MEV exposure and warnings. No state is simulated."""
        call = classify(tx.data)
        c = self.collaborators
        gas_price, eth_usd = await asyncio.gather(
            call_guarded(
                "gas_oracle", c.gas_oracle.get_gas_price_wei if c.gas_oracle else None, tx.chain_id,
                timeout=self.timeout, parse=int,
            ),
            call_guarded(
                "price_oracle", c.price_oracle.get_eth_usd_price if c.price_oracle else None,
                timeout=self.timeout, parse=float,
            ),
        )
        gas_price_wei = gas_price if is_available(gas_price) else get_default_gas_price_wei()
        gas = estimate_gas(call, gas_price_wei, eth_usd if is_available(eth_usd) else None)

        is_swap = call.category.is_swap
        custom: list[str] = []
        if call.is_unlimited_approval:
            custom.append("Unlimited approval detected")
        if tx.is_deployment:
            custom.append("Contract deployment")
        if call.category is Category.UNKNOWN and tx.data != "0x":
            custom.append("Unrecognized function selector")
        return {
            "success": True,
            "statusCode": 1,
            "gasEstimate": gas,
            "mevExposure": dict(SWAP_MEV_EXPOSURE) if is_swap else None,
            "warnings": {
                "highSlippage": is_swap and slippage_unbounded(call),
                "highGasUsage": int(gas["gasUsed"]) > GAS_SWAP,
                "priceImpact": is_swap,
                "mevExposure": is_swap,
                "revertRisk": call.decode_error,
                "customWarnings": custom,
            },
            "decoded": call.to_dict(),
            "simulationId": f"sim-{int(time.time() * 1000)}",
        }
