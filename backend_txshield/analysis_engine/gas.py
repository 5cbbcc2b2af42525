"""
Static gas table and cost estimation.

Per-operation gas figures used for alternative gas deltas and for the
simulate endpoint's cost estimate. No node-side estimation.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from typing import Any

from backend_txshield.analysis_engine.models import Category, DecodedCall, WEI_PER_ETH

GAS_ETH_TRANSFER = 21_000
GAS_ERC20_TRANSFER = 51_000
GAS_APPROVAL_UNLIMITED = 55_000
GAS_APPROVAL_LIMITED = 46_000
GAS_SWAP = 150_000
GAS_WETH_DEPOSIT = 45_000
GAS_WETH_WITHDRAW = 35_000
GAS_UNKNOWN = 100_000
# Added on top of the wrapped operation when routed through the protection contract.
GAS_PROTECTION_OVERHEAD = 30_000
PRIVATE_RELAY_GAS_PCT = 10
GAS_LIMIT_MULTIPLIER = Decimal("1.5")

# Protection contract fee: 0.1% of value, at least 0.0005 ETH for non-zero value.
PROTECTION_FEE_BPS = 10
PROTECTION_MIN_FEE_WEI = 5 * 10**14

_CATEGORY_GAS = {
    Category.ETH_TRANSFER: GAS_ETH_TRANSFER,
    Category.ERC20_TRANSFER: GAS_ERC20_TRANSFER,
    Category.SWAP_V2_TOKENS: GAS_SWAP,
    Category.SWAP_V2_ETH_IN: GAS_SWAP,
    Category.WETH_DEPOSIT: GAS_WETH_DEPOSIT,
    Category.WETH_WITHDRAW: GAS_WETH_WITHDRAW,
    Category.UNKNOWN: GAS_UNKNOWN,
}


def base_gas(call: DecodedCall) -> int:
    """Static gas estimate of the operation as submitted."""
    if call.category is Category.APPROVAL:
        return GAS_APPROVAL_UNLIMITED if call.is_unlimited_approval else GAS_APPROVAL_LIMITED
    return _CATEGORY_GAS[call.category]


def gas_delta_pct(base: int, alternative: int) -> int:
    """Signed percentage change, rounded to the nearest integer."""
    if base <= 0:
        return 0
    return int(round((alternative - base) * 100 / base))


def protection_fee_wei(value_wei: int) -> int:
    fee = value_wei * PROTECTION_FEE_BPS // 10_000
    if value_wei > 0 and fee < PROTECTION_MIN_FEE_WEI:
        return PROTECTION_MIN_FEE_WEI
    return fee


def estimate_gas(call: DecodedCall, gas_price_wei: int, eth_usd: float | None) -> dict[str, Any]:
    """gasUsed, gasLimit (1.5x), gasCost in ETH, gasCostUSD (None when the price is unknown)."""
    used = base_gas(call)
    cost_eth = Decimal(used * gas_price_wei) / WEI_PER_ETH
    return {
        "gasUsed": str(used),
        "gasLimit": str(int((used * GAS_LIMIT_MULTIPLIER).to_integral_value(rounding=ROUND_CEILING))),
        "gasPriceWei": str(gas_price_wei),
        "gasCost": f"{cost_eth:.6f}",
        "gasCostUSD": round(float(cost_eth) * eth_usd, 2) if eth_usd is not None else None,
    }
