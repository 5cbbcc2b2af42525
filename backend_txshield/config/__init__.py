"""
Configuration management for Backend TX Shield.

Loads settings from environment variables and an optional .env file.
Exposes plain getter functions as the single source of truth.
"""

from backend_txshield.config.env import (  # noqa: F401
    get_cache_ttl_sec,
    get_collaborator_timeout_sec,
    get_default_gas_price_wei,
    get_protection_contract_address,
    load_txshield_env,
)

__all__ = [
    "get_cache_ttl_sec",
    "get_collaborator_timeout_sec",
    "get_default_gas_price_wei",
    "get_protection_contract_address",
    "load_txshield_env",
]
