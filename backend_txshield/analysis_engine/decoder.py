"""
Calldata classification: selector lookup plus typed argument decoding.

classify() is a pure function of the calldata. A failing argument never
aborts the call: it is left out of `args` and named in `decode_errors`.
"""

from __future__ import annotations

from typing import Any

from backend_txshield.analysis_engine import abi
from backend_txshield.analysis_engine.models import (
    SUB_TYPE_LIMITED,
    SUB_TYPE_UNLIMITED,
    Category,
    DecodedCall,
    normalize_calldata,
)
from backend_txshield.analysis_engine.registry import ArgSpec, ArgType, FunctionSpec, lookup
from backend_txshield.core.exceptions import DecodeFailure
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

# Whole-calldata failure marker in decode_errors.
CALLDATA_FIELD = "calldata"


def _decode_arg(args_hex: str, arg: ArgSpec) -> Any:
    try:
        if arg.type is ArgType.ADDRESS:
            return abi.decode_address(abi.read_word(args_hex, arg.byte_offset))
        if arg.type is ArgType.UINT256:
            return abi.decode_uint256(abi.read_word(args_hex, arg.byte_offset))
        if arg.type is ArgType.ADDRESS_ARRAY:
            return abi.decode_address_array(args_hex, arg.byte_offset)
    except ValueError as e:
        raise DecodeFailure(arg.name, str(e)) from e
    raise DecodeFailure(arg.name, f"unsupported type {arg.type}")


def _approval_sub_type(spec: FunctionSpec, args: dict[str, Any]) -> str | None:
    if spec.category is not Category.APPROVAL or "amount" not in args:
        return None
    return SUB_TYPE_UNLIMITED if args["amount"] == abi.MAX_UINT256 else SUB_TYPE_LIMITED


def classify(data: str | None) -> DecodedCall:
    """
    Classify calldata.

    Empty or "0x" is an ETH transfer. An unregistered selector, or calldata
    too short to hold one, is `unknown`. Non-hex calldata is `unknown` with a
    whole-calldata decode error.
    """
    data = normalize_calldata(data)
    if data == "0x":
        return DecodedCall(selector=None, category=Category.ETH_TRANSFER, args={}, raw_data=data)

    body = data[2:]
    if not all(c in "0123456789abcdef" for c in body):
        logger.debug("calldata_not_hex", length=len(data))
        return DecodedCall(
            selector=data[:10] if len(data) >= 10 else None,
            category=Category.UNKNOWN,
            args={},
            raw_data=data,
            decode_errors=(CALLDATA_FIELD,),
        )

    selector = data[:10] if len(data) >= 10 else None
    spec = lookup(selector)
    if spec is None:
        logger.debug("calldata_classified", selector=selector, category=Category.UNKNOWN.value)
        return DecodedCall(selector=selector, category=Category.UNKNOWN, args={}, raw_data=data)

    args_hex = data[10:]
    args: dict[str, Any] = {}
    errors: list[str] = []
    for arg in spec.arg_shape:
        try:
            args[arg.name] = _decode_arg(args_hex, arg)
        except DecodeFailure as e:
            errors.append(e.field)
            logger.info("calldata_arg_decode_failed", selector=selector, field=e.field, reason=e.reason)

    call = DecodedCall(
        selector=selector,
        category=spec.category,
        args=args,
        raw_data=data,
        function_name=spec.name,
        sub_type=_approval_sub_type(spec, args),
        decode_errors=tuple(errors),
    )
    logger.debug(
        "calldata_classified",
        selector=selector,
        category=call.category.value,
        function=spec.name,
        sub_type=call.sub_type,
        decode_errors=list(call.decode_errors),
    )
    return call
