"""
External collaborator container and guarded invocation.

Every collaborator is optional. A missing one and one that raises or
times out are treated the same way: the call yields UNAVAILABLE and the
assessment continues without that term.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from backend_txshield.config import get_collaborator_timeout_sec
from backend_txshield.core.exceptions import CollaboratorUnavailable
from backend_txshield.core.unavailable import UNAVAILABLE
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)


class GasOracle(Protocol):
    async def get_gas_price_wei(self, chain_id: int) -> int: ...


class PriceOracle(Protocol):
    async def get_eth_usd_price(self) -> float: ...


class ThreatRegistry(Protocol):
    async def is_address_flagged(self, address: str, chain_id: int) -> bool: ...

    async def is_signature_flagged(self, signature_hash: str, chain_id: int) -> bool: ...


class MlScorer(Protocol):
    async def ml_score(self, calldata: str) -> float: ...


class SimilarityIndex(Protocol):
    async def similar_transactions(self, calldata: str) -> list[dict[str, Any]]: ...


class LlmReasoner(Protocol):
    async def llm_assess(self, transaction: dict[str, Any]) -> dict[str, str]: ...


@dataclass
class Collaborators:
    gas_oracle: GasOracle | None = None
    price_oracle: PriceOracle | None = None
    threat_registry: ThreatRegistry | None = None
    ml_scorer: MlScorer | None = None
    similarity_index: SimilarityIndex | None = None
    llm_reasoner: LlmReasoner | None = None

    @classmethod
    def from_env(cls) -> "Collaborators":
        """Build httpx-backed collaborators; optional scorers only when their URL is set."""
        from backend_txshield.oracle.clients import (
            CoinGeckoPriceOracle,
            HttpLlmReasoner,
            HttpMlScorer,
            HttpSimilarityIndex,
            RpcGasOracle,
            RpcThreatRegistry,
        )
        from backend_txshield.config.env import get_service_url

        ml_url = get_service_url("ML_SCORER_URL")
        sim_url = get_service_url("SIMILARITY_INDEX_URL")
        llm_url = get_service_url("LLM_ASSESS_URL")
        return cls(
            gas_oracle=RpcGasOracle(),
            price_oracle=CoinGeckoPriceOracle(),
            threat_registry=RpcThreatRegistry(),
            ml_scorer=HttpMlScorer(ml_url) if ml_url else None,
            similarity_index=HttpSimilarityIndex(sim_url) if sim_url else None,
            llm_reasoner=HttpLlmReasoner(llm_url) if llm_url else None,
        )


def _reason(name: str, err: BaseException) -> str:
    if isinstance(err, asyncio.TimeoutError):
        return f"{name} timed out"
    if isinstance(err, CollaboratorUnavailable):
        return str(err)
    return f"{name} failed: {err}" if str(err) else f"{name} failed: {type(err).__name__}"


async def call_guarded(
    name: str,
    fn: Callable[..., Awaitable[Any]] | None,
    *args: Any,
    timeout: float | None = None,
    errors: list[tuple[str, str]] | None = None,
    parse: Callable[[Any], Any] | None = None,
) -> Any:
    """
    Await fn(*args) under a timeout. Returns the value (run through `parse`
    when given), or UNAVAILABLE when fn is None, raises, times out, or its
    answer cannot be parsed. Failures are appended to `errors` as
    (collaborator, reason).
    """
    if fn is None:
        return UNAVAILABLE
    limit = timeout if timeout is not None else get_collaborator_timeout_sec()
    try:
        value = await asyncio.wait_for(fn(*args), timeout=limit)
        return parse(value) if parse is not None else value
    except Exception as e:
        reason = _reason(name, e)
        logger.warning("collaborator_unavailable", collaborator=name, error=reason)
        if errors is not None:
            errors.append((name, reason))
        return UNAVAILABLE
