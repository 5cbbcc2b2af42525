"""
Function registry: 4-byte selector -> function spec.

Selectors are computed from canonical signatures at import time. The
registry is built once and exposed read-only; each argument is declared
with its type and the byte offset of its head word in the argument area.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from backend_txshield.analysis_engine.abi import MAX_UINT256, WORD_BYTES, function_selector
from backend_txshield.analysis_engine.models import Category, DecodedCall


class ArgType(str, Enum):
    ADDRESS = "address"
    UINT256 = "uint256"
    ADDRESS_ARRAY = "address[]"


@dataclass(frozen=True)
class ArgSpec:
    name: str
    type: ArgType
    byte_offset: int


@dataclass(frozen=True)
class FunctionSpec:
    selector: str
    name: str
    signature: str
    arg_shape: tuple[ArgSpec, ...]
    category: Category

    @property
    def arg_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.arg_shape)


# Slippage bounds on swap functions: exact-input swaps carry a minimum
# output, exact-output swaps a maximum input.
MIN_OUTPUT_ARG = "amountOutMin"
MAX_INPUT_ARG = "amountInMax"


def _spec(signature: str, category: Category, *arg_names: str) -> FunctionSpec:
    """Build a spec from a canonical signature; head words sit at 32 * index."""
    name, _, params = signature.partition("(")
    types = [t for t in params.rstrip(")").split(",") if t]
    if len(types) != len(arg_names):
        raise ValueError(f"{signature}: expected {len(types)} names, got {len(arg_names)}")
    shape = tuple(
        ArgSpec(arg_name, ArgType(t), i * WORD_BYTES)
        for i, (arg_name, t) in enumerate(zip(arg_names, types))
    )
    return FunctionSpec(
        selector=function_selector(signature),
        name=name,
        signature=signature,
        arg_shape=shape,
        category=category,
    )


_SPECS = (
    # ERC-20
    _spec("transfer(address,uint256)", Category.ERC20_TRANSFER, "recipient", "amount"),
    _spec("transferFrom(address,address,uint256)", Category.ERC20_TRANSFER, "sender", "recipient", "amount"),
    _spec("approve(address,uint256)", Category.APPROVAL, "spender", "amount"),
    # Protection contract approval entrypoint
    _spec("safeApprove(address,address,uint256)", Category.APPROVAL, "token", "spender", "amount"),
    # Uniswap V2 router, exact-input swaps
    _spec(
        "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)",
        Category.SWAP_V2_TOKENS,
        "amountIn", MIN_OUTPUT_ARG, "path", "to", "deadline",
    ),
    _spec(
        "swapExactTokensForETH(uint256,uint256,address[],address,uint256)",
        Category.SWAP_V2_TOKENS,
        "amountIn", MIN_OUTPUT_ARG, "path", "to", "deadline",
    ),
    _spec(
        "swapExactETHForTokens(uint256,address[],address,uint256)",
        Category.SWAP_V2_ETH_IN,
        MIN_OUTPUT_ARG, "path", "to", "deadline",
    ),
    # Uniswap V2 router, exact-output swaps
    _spec(
        "swapTokensForExactTokens(uint256,uint256,address[],address,uint256)",
        Category.SWAP_V2_TOKENS,
        "amountOut", MAX_INPUT_ARG, "path", "to", "deadline",
    ),
    _spec(
        "swapTokensForExactETH(uint256,uint256,address[],address,uint256)",
        Category.SWAP_V2_TOKENS,
        "amountOut", MAX_INPUT_ARG, "path", "to", "deadline",
    ),
    # input capped by msg.value
    _spec(
        "swapETHForExactTokens(uint256,address[],address,uint256)",
        Category.SWAP_V2_ETH_IN,
        "amountOut", "path", "to", "deadline",
    ),
    # WETH
    _spec("deposit()", Category.WETH_DEPOSIT),
    _spec("withdraw(uint256)", Category.WETH_WITHDRAW, "wad"),
)

FUNCTION_REGISTRY: Mapping[str, FunctionSpec] = MappingProxyType({s.selector: s for s in _SPECS})

APPROVE_SELECTOR = function_selector("approve(address,uint256)")
SAFE_APPROVE_SELECTOR = function_selector("safeApprove(address,address,uint256)")
# Protection contract forwarding call: target, value, then the original calldata as an opaque tail.
SECURE_EXECUTE_SELECTOR = function_selector("secureExecute(address,uint256,bytes,string)")


def lookup(selector: str | None) -> FunctionSpec | None:
    if not selector:
        return None
    return FUNCTION_REGISTRY.get(selector.lower())


def slippage_unbounded(call: DecodedCall) -> bool:
    """
    True for a swap that accepts any price: no minimum output on an
    exact-input swap, or an uncapped maximum input on an exact-output swap.
    A bound that failed to decode counts as missing.
    """
    spec = lookup(call.selector)
    if spec is None:
        return False
    if MAX_INPUT_ARG in spec.arg_names:
        return call.args.get(MAX_INPUT_ARG) in (None, MAX_UINT256)
    if MIN_OUTPUT_ARG in spec.arg_names:
        return call.args.get(MIN_OUTPUT_ARG) in (None, 0)
    return False
