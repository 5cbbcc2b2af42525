"""
Known attack signature patterns.

Each signature optionally carries a calldata matcher; signatures without
one (flash-loan, honeypot) only match when supplied by an external feed.
Matches feed the weighted score but do not set a level floor.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from backend_txshield.analysis_engine.models import Signal


@dataclass(frozen=True)
class AttackSignature:
    pattern: str
    type: str
    description: str
    severity: int
    """1-10 scale."""
    mitigation: str
    matcher: re.Pattern[str] | None = None

    def matches(self, data: str) -> bool:
        return self.matcher is not None and bool(self.matcher.search(data))

    def to_signal(self) -> Signal:
        return Signal(
            pattern=self.pattern,
            type=self.type,
            description=self.description,
            severity=float(self.severity),
            mitigation=self.mitigation,
        )


DEFAULT_SIGNATURES: tuple[AttackSignature, ...] = (
    AttackSignature(
        pattern="unlimited_approval",
        type="APPROVAL_PHISHING",
        description="Requesting unlimited token approval",
        severity=8,
        mitigation="Use a time-limited or amount-limited approval instead of unlimited",
        matcher=re.compile(r"^0x095ea7b3[0-9a-f]{64}f{64}", re.IGNORECASE),
    ),
    AttackSignature(
        pattern="multiple_approvals",
        type="APPROVAL_FARMING",
        description="Multiple token approvals in single transaction",
        severity=7,
        mitigation="Revoke unnecessary approvals after use via https://revoke.cash",
    ),
    AttackSignature(
        pattern="flashloan_attack",
        type="PRICE_MANIPULATION",
        description="Pattern matching flash loan attack",
        severity=9,
        mitigation="Use contracts with price manipulation protections",
    ),
    AttackSignature(
        pattern="honeypot_contract",
        type="LIQUIDITY_TRAP",
        description="Contract with withdrawal restrictions",
        severity=10,
        mitigation="Test with a small amount first and verify withdrawal functionality",
    ),
)


def match_signatures(data: str, signatures: Iterable[AttackSignature] = DEFAULT_SIGNATURES) -> list[Signal]:
    """Return one signal per signature whose matcher hits the calldata."""
    return [s.to_signal() for s in signatures if s.matches(data)]
