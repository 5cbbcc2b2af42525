"""
structlog setup for the threat-check pipeline.

Every line is one JSON object (or a console line with LOG_FORMAT=console)
keyed by event_type. The pipeline emits, in order of a request:
    calldata_classified / calldata_not_hex / calldata_arg_decode_failed
    cache_hit / cache_miss / cache_expired
    rpc_call, collaborator_unavailable
    external_signals_gathered (bound to request_id), threat_scored
    threat_check_malformed_input / threat_check_failed at the API edge

Hex payloads longer than a 32-byte hash are shortened before rendering,
so raw calldata never lands in the logs whole.

No backend_txshield imports here; every other module imports this one.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# "json" or "console"
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

# 0x + 64 hex chars: a tx hash or calldata hash fits, calldata usually does not.
MAX_LOGGED_HEX = 66
HEX_KEEP = 18
_HEX_RE = re.compile(r"0[xX][0-9a-fA-F]*")


def _timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional event becomes event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def shorten_hex(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_LOGGED_HEX and _HEX_RE.fullmatch(value):
        return f"{value[:HEX_KEEP]}...({(len(value) - 2) // 2} bytes)"
    return value


def _shorten_hex_fields(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        event_dict[key] = shorten_hex(value)
    return event_dict


def configure_structlog() -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _timestamp,
        _event_type,
        _shorten_hex_fields,
    ]
    if LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger. Event name first, then keyword fields:
        logger.info("threat_scored", level="HIGH", confidence=0.85)
    """
    return structlog.get_logger(name).bind(logger=name)


def request_id_for(fingerprint: str) -> str:
    """Short stable id for one transaction fingerprint."""
    return hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:12]


def bind_request(fingerprint: str) -> structlog.BoundLogger:
    return get_logger("backend_txshield").bind(request_id=request_id_for(fingerprint))
