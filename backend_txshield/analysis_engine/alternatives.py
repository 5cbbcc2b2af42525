"""
Alternative generator: safer rewrites of a submitted transaction.

Policy per category:
- unlimited approval: bounded 100-unit and 10-unit approvals, plus a
  protection-contract approval.
- limited approval: protection-contract approval with the same amount.
- swap: slippage notice (informational), private-relay copy, wrapped swap.
- ETH transfer above 1 ETH: split-in-two transfer, wrapped transfer.
- everything else: wrapped version only.

The result is never empty; a generic wrapper is appended when nothing
category-specific applies.
"""

from __future__ import annotations

from typing import Callable

from backend_txshield.analysis_engine.abi import MAX_UINT256, address_field, encode_call, uint_field
from backend_txshield.analysis_engine.gas import (
    GAS_APPROVAL_LIMITED,
    GAS_ETH_TRANSFER,
    GAS_PROTECTION_OVERHEAD,
    PRIVATE_RELAY_GAS_PCT,
    base_gas,
    gas_delta_pct,
    protection_fee_wei,
)
from backend_txshield.analysis_engine.models import (
    WEI_PER_ETH,
    AlternativeTransaction,
    Category,
    DecodedCall,
    ThreatAssessment,
    TransactionRequest,
)
from backend_txshield.analysis_engine.registry import (
    APPROVE_SELECTOR,
    MAX_INPUT_ARG,
    MIN_OUTPUT_ARG,
    SAFE_APPROVE_SELECTOR,
    SECURE_EXECUTE_SELECTOR,
)
from backend_txshield.analysis_engine.scorer import HIGH_VALUE_THRESHOLD_WEI
from backend_txshield.config import get_protection_contract_address
from backend_txshield.config.env import ZERO_ADDRESS
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

# Bounded approval amounts, in base units of an 18-decimal token.
TOKEN_DECIMALS_ASSUMED = 18
BOUNDED_APPROVAL_AMOUNT = 100 * 10**TOKEN_DECIMALS_ASSUMED
STRICT_APPROVAL_AMOUNT = 10 * 10**TOKEN_DECIMALS_ASSUMED

RISK_REDUCTION_BOUNDED = 85
RISK_REDUCTION_STRICT = 90
RISK_REDUCTION_PROTECTED_UNLIMITED = 95
RISK_REDUCTION_PROTECTED_APPROVAL = 60
RISK_REDUCTION_SLIPPAGE = 70
RISK_REDUCTION_PRIVATE_RELAY = 40
RISK_REDUCTION_PROTECTED_SWAP = 80
RISK_REDUCTION_SPLIT = 40
RISK_REDUCTION_PROTECTED_TRANSFER = 50
RISK_REDUCTION_PROTECTED_DEFAULT = 60

SPLIT_PARTS = 2

_DECIMALS_NOTE = (
    f"Amount assumes a {TOKEN_DECIMALS_ASSUMED}-decimal token; "
    "rescale it if the token uses different decimals."
)


def _protection_note(protection_address: str, chain_id: int) -> str:
    if protection_address == ZERO_ADDRESS:
        return f" The TX Shield contract is not deployed on chain {chain_id}; do not submit this as-is."
    return ""


def _wrapped_call(tx: TransactionRequest) -> tuple[str, int]:
    """secureExecute(target, value) with the original calldata forwarded as a tail."""
    data = encode_call(
        SECURE_EXECUTE_SELECTOR,
        [address_field(tx.to), uint_field(tx.value)],
        tail=tx.data if tx.data != "0x" else None,
    )
    return data, tx.value + protection_fee_wei(tx.value)


def _wrapped(
    tx: TransactionRequest,
    call: DecodedCall,
    protection_address: str,
    title: str,
    description: str,
    risk_reduction: int,
) -> AlternativeTransaction:
    data, value = _wrapped_call(tx)
    base = base_gas(call)
    return AlternativeTransaction(
        title=title,
        description=description,
        risk_reduction=risk_reduction,
        gas_delta=gas_delta_pct(base, base + GAS_PROTECTION_OVERHEAD),
        to=protection_address,
        data=data,
        value=value,
        implementation=(
            "Routes the call through the TX Shield contract, which re-validates it before forwarding. "
            "Value includes the protection fee (0.1%, minimum 0.0005 ETH)."
            + _protection_note(protection_address, tx.chain_id)
        ),
        use_protection_contract=True,
    )


def _approval_token(tx: TransactionRequest, call: DecodedCall) -> str | None:
    """The ERC-20 being approved; safeApprove names it as an argument."""
    return call.args.get("token", tx.to) if call.function_name == "safeApprove" else tx.to


def _bounded_approval(
    tx: TransactionRequest,
    call: DecodedCall,
    amount: int,
    title: str,
    risk_reduction: int,
) -> AlternativeTransaction:
    units = amount // 10**TOKEN_DECIMALS_ASSUMED
    return AlternativeTransaction(
        title=title,
        description=f"Approve at most {units} tokens instead of an unlimited amount",
        risk_reduction=risk_reduction,
        gas_delta=gas_delta_pct(base_gas(call), GAS_APPROVAL_LIMITED),
        to=_approval_token(tx, call),
        data=encode_call(APPROVE_SELECTOR, [address_field(call.args.get("spender")), uint_field(amount)]),
        value=0,
        implementation=f"approve(spender, {amount}). {_DECIMALS_NOTE}",
    )


def _protected_approval(
    tx: TransactionRequest,
    call: DecodedCall,
    protection_address: str,
) -> AlternativeTransaction:
    if call.is_unlimited_approval:
        amount = BOUNDED_APPROVAL_AMOUNT
        risk_reduction = RISK_REDUCTION_PROTECTED_UNLIMITED
        note = f" Amount capped at {BOUNDED_APPROVAL_AMOUNT // 10**TOKEN_DECIMALS_ASSUMED} tokens. {_DECIMALS_NOTE}"
    else:
        amount = call.args.get("amount", 0)
        risk_reduction = RISK_REDUCTION_PROTECTED_APPROVAL
        note = ""
    token = _approval_token(tx, call)
    data = encode_call(
        SAFE_APPROVE_SELECTOR,
        [address_field(token), address_field(call.args.get("spender")), uint_field(amount)],
    )
    return AlternativeTransaction(
        title="Protected Token Approval",
        description="Approve through the TX Shield contract, which checks the spender against the threat registry",
        risk_reduction=risk_reduction,
        gas_delta=gas_delta_pct(base_gas(call), GAS_APPROVAL_LIMITED + GAS_PROTECTION_OVERHEAD),
        to=protection_address,
        data=data,
        value=0,
        implementation="safeApprove(token, spender, amount) on the TX Shield contract."
        + note
        + _protection_note(protection_address, tx.chain_id),
        use_protection_contract=True,
    )


def _approval_alternatives(tx, call, protection_address):
    out = []
    if call.is_unlimited_approval:
        out.append(_bounded_approval(tx, call, BOUNDED_APPROVAL_AMOUNT, "Limited Token Approval", RISK_REDUCTION_BOUNDED))
        out.append(_bounded_approval(tx, call, STRICT_APPROVAL_AMOUNT, "Strict Token Approval", RISK_REDUCTION_STRICT))
    out.append(_protected_approval(tx, call, protection_address))
    return out


def _slippage_note(tx: TransactionRequest, title: str, description: str, arg: str) -> AlternativeTransaction:
    # No quote source, so the calldata is left unchanged.
    return AlternativeTransaction(
        title=title,
        description=description,
        risk_reduction=RISK_REDUCTION_SLIPPAGE,
        gas_delta=0,
        to=tx.to,
        data=tx.data,
        value=tx.value,
        implementation=f"Informational only: calldata is unchanged. Set {arg} from a fresh price quote in your wallet or DEX interface.",
        informational=True,
    )


def _swap_alternatives(tx, call, protection_address):
    out = []
    base = base_gas(call)
    if call.args.get(MIN_OUTPUT_ARG) == 0:
        out.append(_slippage_note(
            tx, "Set Minimum Output Amount",
            "This swap accepts any output amount. Re-create it with a minimum output (max 1% slippage).",
            MIN_OUTPUT_ARG,
        ))
    elif call.args.get(MAX_INPUT_ARG) == MAX_UINT256:
        out.append(_slippage_note(
            tx, "Set Maximum Input Amount",
            "This swap may spend any amount of input tokens. Re-create it with a maximum input (max 1% slippage).",
            MAX_INPUT_ARG,
        ))
    out.append(AlternativeTransaction(
        title="Private Transaction",
        description="Send the same swap through a private relay so it is not visible in the public mempool",
        risk_reduction=RISK_REDUCTION_PRIVATE_RELAY,
        gas_delta=PRIVATE_RELAY_GAS_PCT,
        to=tx.to,
        data=tx.data,
        value=tx.value,
        implementation="Submit via a private transaction service (e.g. Flashbots Protect) instead of the public mempool.",
        is_private_relay=True,
    ))
    out.append(_wrapped(
        tx, call, protection_address,
        title="MEV-Protected Swap",
        description="Execute the swap through the TX Shield contract with front-running checks",
        risk_reduction=RISK_REDUCTION_PROTECTED_SWAP,
    ))
    return out


def _transfer_alternatives(tx, call, protection_address):
    out = []
    if tx.value > HIGH_VALUE_THRESHOLD_WEI:
        part = tx.value // SPLIT_PARTS
        remainder = tx.value - part * SPLIT_PARTS
        note = f"Replay this transaction {SPLIT_PARTS} times to send the full amount."
        if remainder:
            note += f" Add the remaining {remainder} wei to the last transfer."
        out.append(AlternativeTransaction(
            title="Split Transfer",
            description=f"Send {part / WEI_PER_ETH:g} ETH in each of {SPLIT_PARTS} transfers to limit exposure to a wrong address",
            risk_reduction=RISK_REDUCTION_SPLIT,
            gas_delta=gas_delta_pct(GAS_ETH_TRANSFER, GAS_ETH_TRANSFER * SPLIT_PARTS),
            to=tx.to,
            data="0x",
            value=part,
            implementation=note,
            extra={"replayCount": SPLIT_PARTS},
        ))
    out.append(_wrapped(
        tx, call, protection_address,
        title="Protected Transfer",
        description="Send through the TX Shield contract, which checks the recipient against the threat registry",
        risk_reduction=RISK_REDUCTION_PROTECTED_TRANSFER,
    ))
    return out


def _wrapped_only(tx, call, protection_address):
    return [_wrapped(
        tx, call, protection_address,
        title="TX Shield Secure Execution",
        description="Execute this transaction through the TX Shield contract",
        risk_reduction=RISK_REDUCTION_PROTECTED_DEFAULT,
    )]


_POLICY: dict[Category, Callable[..., list[AlternativeTransaction]]] = {
    Category.APPROVAL: _approval_alternatives,
    Category.SWAP_V2_TOKENS: _swap_alternatives,
    Category.SWAP_V2_ETH_IN: _swap_alternatives,
    Category.ETH_TRANSFER: _transfer_alternatives,
    Category.ERC20_TRANSFER: _wrapped_only,
    Category.WETH_DEPOSIT: _wrapped_only,
    Category.WETH_WITHDRAW: _wrapped_only,
}


def generate(
    tx: TransactionRequest,
    call: DecodedCall,
    assessment: ThreatAssessment | None = None,
    protection_address: str | None = None,
) -> list[AlternativeTransaction]:
    """Return safer rewrites of `tx`, most protective first. Never empty."""
    protection = (protection_address or get_protection_contract_address(tx.chain_id)).lower()
    policy = _POLICY.get(call.category)
    alternatives = policy(tx, call, protection) if policy else []
    if not alternatives:
        alternatives = _wrapped_only(tx, call, protection)
    logger.info(
        "alternatives_generated",
        category=call.category.value,
        level=assessment.level.value if assessment else None,
        count=len(alternatives),
        titles=[a.title for a in alternatives],
    )
    return alternatives
