"""
Structured logging for Backend TX Shield (structlog, one JSON object per event).
"""

from backend_txshield.txshield_logging.logger import bind_request, get_logger, request_id_for

__all__ = ["bind_request", "get_logger", "request_id_for"]
