"""
Sentinel for an external collaborator that produced no answer.

A collaborator call returns either its value or UNAVAILABLE; the scorer
treats UNAVAILABLE as a zero contribution.
"""

from __future__ import annotations

from typing import Any


class _Unavailable:
    _instance: "_Unavailable | None" = None

    def __new__(cls) -> "_Unavailable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = _Unavailable()


def is_available(value: Any) -> bool:
    return value is not UNAVAILABLE
