"""
httpx-backed collaborator implementations.

- RpcGasOracle: eth_gasPrice over JSON-RPC.
- CoinGeckoPriceOracle: ETH/USD from the CoinGecko simple price API.
- RpcThreatRegistry: eth_call against the on-chain threat registry.
- HttpMlScorer / HttpSimilarityIndex / HttpLlmReasoner: optional scoring
  services reached over plain HTTP POST.

Each method raises on any failure; the caller (call_guarded) turns that
into UNAVAILABLE.
"""

from __future__ import annotations

import re
from typing import Any

import httpx

from backend_txshield.analysis_engine.abi import AbiField, address_field, encode_call, function_selector
from backend_txshield.analysis_engine.features import SIMILARITY_FEATURES, calldata_features
from backend_txshield.config import get_collaborator_timeout_sec
from backend_txshield.config.env import get_coingecko_api_key, get_rpc_url, get_threat_registry_address
from backend_txshield.core.exceptions import CollaboratorUnavailable
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"
SIMILARITY_TOP_K = 5

IS_THREAT_SELECTOR = function_selector("isThreat(address)")
IS_SIGNATURE_THREAT_SELECTOR = function_selector("isSignatureThreat(bytes32)")

_ASSESSMENT_RE = re.compile(r"Assessment:\s*(SAFE|SUSPICIOUS|DANGEROUS)", re.IGNORECASE)
_REASONING_RE = re.compile(r"Reasoning:\s*(.+)", re.IGNORECASE | re.DOTALL)


async def _rpc(rpc_url: str, method: str, params: list[Any], timeout: float) -> Any:
    """Single JSON-RPC call. Raises CollaboratorUnavailable on RPC-level error."""
    body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    logger.debug("rpc_call", method=method)
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url.rstrip("/"), json=body)
        resp.raise_for_status()
        data = resp.json()
    err = data.get("error")
    if err:
        raise CollaboratorUnavailable("rpc", str(err))
    if "result" not in data:
        raise CollaboratorUnavailable("rpc", f"{method} returned no result")
    return data["result"]


def _require_rpc_url(name: str, chain_id: int) -> str:
    url = get_rpc_url(chain_id)
    if not url:
        raise CollaboratorUnavailable(name, f"no RPC URL configured for chain {chain_id}")
    return url


class RpcGasOracle:
    name = "gas_oracle"

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout or get_collaborator_timeout_sec()

    async def get_gas_price_wei(self, chain_id: int) -> int:
        url = _require_rpc_url(self.name, chain_id)
        result = await _rpc(url, "eth_gasPrice", [], self._timeout)
        return int(result, 16)


class CoinGeckoPriceOracle:
    name = "price_oracle"

    def __init__(self, api_key: str | None = None, timeout: float | None = None) -> None:
        self._api_key = api_key or get_coingecko_api_key()
        self._timeout = timeout or get_collaborator_timeout_sec()

    async def get_eth_usd_price(self) -> float:
        headers = {"x-cg-demo-api-key": self._api_key} if self._api_key else {}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(
                COINGECKO_URL,
                params={"ids": "ethereum", "vs_currencies": "usd"},
                headers=headers,
            )
            resp.raise_for_status()
            data = resp.json()
        try:
            return float(data["ethereum"]["usd"])
        except (KeyError, TypeError, ValueError) as e:
            raise CollaboratorUnavailable(self.name, "unexpected price payload") from e


class RpcThreatRegistry:
    """Boolean oracle over the ThreatRegistry contract (isThreat / isSignatureThreat)."""

    name = "threat_registry"

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout or get_collaborator_timeout_sec()

    async def _call_bool(self, chain_id: int, data: str) -> bool:
        registry = get_threat_registry_address(chain_id)
        if not registry:
            raise CollaboratorUnavailable(self.name, f"no registry deployed on chain {chain_id}")
        url = _require_rpc_url(self.name, chain_id)
        result = await _rpc(url, "eth_call", [{"to": registry, "data": data}, "latest"], self._timeout)
        if not isinstance(result, str) or not result.startswith("0x") or len(result) < 3:
            raise CollaboratorUnavailable(self.name, "empty eth_call result")
        return int(result, 16) != 0

    async def is_address_flagged(self, address: str, chain_id: int) -> bool:
        data = encode_call(IS_THREAT_SELECTOR, [address_field(address)])
        if data == IS_THREAT_SELECTOR:
            raise CollaboratorUnavailable(self.name, f"cannot encode address {address!r}")
        return await self._call_bool(chain_id, data)

    async def is_signature_flagged(self, signature_hash: str, chain_id: int) -> bool:
        data = encode_call(IS_SIGNATURE_THREAT_SELECTOR, [AbiField(signature_hash)])
        if data == IS_SIGNATURE_THREAT_SELECTOR:
            raise CollaboratorUnavailable(self.name, f"cannot encode hash {signature_hash!r}")
        return await self._call_bool(chain_id, data)


class _HttpScorer:
    name = "scorer"

    def __init__(self, url: str, timeout: float | None = None) -> None:
        self._url = url
        self._timeout = timeout or get_collaborator_timeout_sec()

    async def _post(self, payload: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._url, json=payload)
            resp.raise_for_status()
            if "json" in resp.headers.get("content-type", ""):
                return resp.json()
            return resp.text


class HttpMlScorer(_HttpScorer):
    name = "ml_scorer"

    async def ml_score(self, calldata: str) -> float:
        data = await self._post({"calldata": calldata, "features": calldata_features(calldata)})
        try:
            score = float(data["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise CollaboratorUnavailable(self.name, "response has no numeric score") from e
        return max(0.0, min(1.0, score))


class HttpSimilarityIndex(_HttpScorer):
    name = "similarity_index"

    async def similar_transactions(self, calldata: str) -> list[dict[str, Any]]:
        features = calldata_features(calldata)[:SIMILARITY_FEATURES]
        data = await self._post({"vector": features, "topK": SIMILARITY_TOP_K})
        if not isinstance(data, dict) or not isinstance(data.get("matches"), list):
            raise CollaboratorUnavailable(self.name, "response has no matches list")
        out = []
        for m in data["matches"]:
            if not isinstance(m, dict):
                continue
            out.append({
                "hash": str(m.get("hash") or m.get("id") or ""),
                "score": float(m.get("score") or 0.0),
                "isScam": bool(m.get("isScam", False)),
            })
        return out


def parse_llm_text(text: str) -> dict[str, str]:
    """Parse 'Assessment: X\\nReasoning: Y' free text. Missing parts fall back to SUSPICIOUS / raw text."""
    assessment = _ASSESSMENT_RE.search(text)
    reasoning = _REASONING_RE.search(text)
    return {
        "assessment": assessment.group(1).upper() if assessment else "SUSPICIOUS",
        "reasoning": reasoning.group(1).strip() if reasoning else text.strip(),
    }


class HttpLlmReasoner(_HttpScorer):
    name = "llm_reasoner"

    async def llm_assess(self, transaction: dict[str, Any]) -> dict[str, str]:
        data = await self._post(transaction)
        if isinstance(data, dict):
            if "assessment" in data and "reasoning" in data:
                return {"assessment": str(data["assessment"]).upper(), "reasoning": str(data["reasoning"])}
            text = data.get("text") or data.get("response")
            if isinstance(text, str):
                return parse_llm_text(text)
            raise CollaboratorUnavailable(self.name, "unrecognized response")
        if isinstance(data, str) and data.strip():
            return parse_llm_text(data)
        raise CollaboratorUnavailable(self.name, "empty response")
