"""
Environment variable loading for TX Shield.

- CACHE_TTL_SEC: analysis cache lifetime (default: 300)
- COLLABORATOR_TIMEOUT_SEC: per-call timeout for external oracles (default: 3.0)
- ETH_RPC_URL / ETH_RPC_URL_<chainId>: JSON-RPC endpoint for gas price and registry calls
- COINGECKO_API_KEY: optional key for the ETH/USD price oracle
- THREAT_REGISTRY_ADDRESS: on-chain registry consulted for flagged addresses
- PROTECTION_CONTRACT_ADDRESS: overrides the per-chain protection contract table
- ML_SCORER_URL, SIMILARITY_INDEX_URL, LLM_ASSESS_URL: optional scorer endpoints
- DEFAULT_GAS_PRICE_GWEI: used when the gas oracle is unavailable (default: 30)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_txshield/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CHAIN_MAINNET = 1
CHAIN_SEPOLIA = 11155111
CHAIN_POLYGON = 137
CHAIN_ARBITRUM = 42161
CHAIN_LINEA = 59144

# Deployed protection (TX Shield) contracts; zero address = not deployed
PROTECTION_CONTRACTS: dict[int, str] = {
    CHAIN_MAINNET: ZERO_ADDRESS,
    CHAIN_SEPOLIA: "0xc076d95f95021d1fbbfe2bdb9692d656b7ddc846",
    CHAIN_POLYGON: ZERO_ADDRESS,
    CHAIN_ARBITRUM: ZERO_ADDRESS,
    CHAIN_LINEA: "0xb31a5cdc928ee7a3ac915d5d196b733eb2c1b17b",
}

THREAT_REGISTRIES: dict[int, str] = {
    CHAIN_SEPOLIA: "0xe6597458679e0d8ca9ad31b7da118e77560028e6",
    CHAIN_LINEA: "0x963cd3e7231fec38cb658d23279df9d25203b8f8",
}

DEFAULT_CACHE_TTL_SEC = 300.0
DEFAULT_COLLABORATOR_TIMEOUT_SEC = 3.0
DEFAULT_GAS_PRICE_GWEI = 30.0


def load_txshield_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    load_dotenv(_ENV_PATH)


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_cache_ttl_sec() -> float:
    """Lifetime of a cached threat assessment, in seconds."""
    load_txshield_env()
    return _float_env("CACHE_TTL_SEC", DEFAULT_CACHE_TTL_SEC)


def get_collaborator_timeout_sec() -> float:
    load_txshield_env()
    return _float_env("COLLABORATOR_TIMEOUT_SEC", DEFAULT_COLLABORATOR_TIMEOUT_SEC)


def get_default_gas_price_wei() -> int:
    """Gas price assumed when no oracle answers (DEFAULT_GAS_PRICE_GWEI, in wei)."""
    load_txshield_env()
    return int(_float_env("DEFAULT_GAS_PRICE_GWEI", DEFAULT_GAS_PRICE_GWEI) * 10**9)


def get_rpc_url(chain_id: int) -> str | None:
    """
    Resolve the JSON-RPC URL for a chain.
    Order: ETH_RPC_URL_<chainId> > ETH_RPC_URL > None.
    """
    load_txshield_env()
    url = (os.getenv(f"ETH_RPC_URL_{chain_id}") or "").strip()
    if url:
        return url
    return (os.getenv("ETH_RPC_URL") or "").strip() or None


def get_coingecko_api_key() -> str | None:
    load_txshield_env()
    return (os.getenv("COINGECKO_API_KEY") or "").strip() or None


def get_threat_registry_address(chain_id: int) -> str | None:
    """THREAT_REGISTRY_ADDRESS from env, or the known deployment for the chain."""
    load_txshield_env()
    addr = (os.getenv("THREAT_REGISTRY_ADDRESS") or "").strip().lower()
    if addr:
        return addr
    return THREAT_REGISTRIES.get(chain_id)


def get_protection_contract_address(chain_id: int) -> str:
    """
    Return the protection contract for a chain.
    PROTECTION_CONTRACT_ADDRESS wins; unknown chains resolve to the zero address.
    """
    load_txshield_env()
    addr = (os.getenv("PROTECTION_CONTRACT_ADDRESS") or "").strip().lower()
    if addr:
        return addr
    return PROTECTION_CONTRACTS.get(chain_id, ZERO_ADDRESS)


def get_service_url(name: str) -> str | None:
    """Return an optional collaborator endpoint (ML_SCORER_URL, SIMILARITY_INDEX_URL, LLM_ASSESS_URL)."""
    load_txshield_env()
    return (os.getenv(name) or "").strip() or None


def get_api_bind() -> tuple[str, int]:
    load_txshield_env()
    host = (os.getenv("API_HOST") or "0.0.0.0").strip()
    port = int((os.getenv("API_PORT") or "8000").strip() or "8000")
    return host, port
