"""
Application-level exceptions.

None of these reach an HTTP client as a hard failure of the threat check:
each has a degrade path (conservative assessment, per-field decode error,
zero-weight collaborator term, bare-selector calldata).
"""

from __future__ import annotations


class TxShieldError(Exception):
    """Base class for TX Shield errors."""


class MalformedInput(TxShieldError):
    """Request body or transaction field could not be parsed."""


class DecodeFailure(TxShieldError):
    """A single calldata argument could not be decoded."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class CollaboratorUnavailable(TxShieldError):
    """An external oracle or scorer failed, timed out, or is not configured."""

    def __init__(self, collaborator: str, reason: str = "unavailable") -> None:
        super().__init__(f"{collaborator}: {reason}")
        self.collaborator = collaborator
        self.reason = reason


class EncodingFailure(TxShieldError):
    """A value could not be encoded into a 32-byte ABI word."""
