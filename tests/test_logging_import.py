"""
Tests for txshield_logging: import without cycles, request binding, and
shortening of calldata-sized hex before it is rendered.
"""

from __future__ import annotations

from backend_txshield.txshield_logging import bind_request, get_logger, request_id_for
from backend_txshield.txshield_logging.logger import MAX_LOGGED_HEX, _event_type, shorten_hex


def test_logger_smoke():
    logger = get_logger("test")
    logger.info("threat_scored", level="SAFE", confidence=0.1)
    logger.debug("cache_miss")


def test_bind_request_is_deterministic():
    fingerprint = "0xabc-0x-0-None-1"
    a = bind_request(fingerprint)
    b = bind_request(fingerprint)
    assert a._context["request_id"] == b._context["request_id"] == request_id_for(fingerprint)
    assert len(request_id_for(fingerprint)) == 12
    assert request_id_for(fingerprint) != request_id_for("0xabc-0x-0-None-11155111")
    a.info("external_signals_gathered", errors=0)


def test_calldata_is_shortened():
    calldata = "0x095ea7b3" + "ff" * 64
    short = shorten_hex(calldata)
    assert short.startswith("0x095ea7b3")
    assert short.endswith("(68 bytes)")
    assert len(short) < len(calldata)


def test_hashes_and_other_values_kept():
    tx_hash = "0x" + "ab" * 32
    assert len(tx_hash) == MAX_LOGGED_HEX
    assert shorten_hex(tx_hash) == tx_hash
    assert shorten_hex("not hex " * 20) == "not hex " * 20
    assert shorten_hex(42) == 42


def test_event_renamed_to_event_type():
    out = _event_type(None, "info", {"event": "cache_hit"})
    assert out == {"event_type": "cache_hit"}
    kept = _event_type(None, "info", {"event": "x", "event_type": "cache_hit"})
    assert kept["event_type"] == "cache_hit"


def test_fingerprint_is_not_mistaken_for_calldata():
    fingerprint = "0x" + "ab" * 20 + "-0x095ea7b3" + "00" * 40 + "-0-None-1"
    assert shorten_hex(fingerprint) == fingerprint
