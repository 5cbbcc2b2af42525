"""
Data models for analysis engine input and output.

TransactionRequest is the immutable input; DecodedCall, ThreatAssessment
and AlternativeTransaction are derived per request. All are value types;
ThreatAssessment is frozen so a cached instance can be handed out as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from backend_txshield.core.exceptions import MalformedInput
from backend_txshield.core.unavailable import UNAVAILABLE

WEI_PER_ETH = 10**18
_HEX_RE = re.compile(r"^0x[0-9a-f]*$")


class Category(str, Enum):
    ETH_TRANSFER = "eth_transfer"
    ERC20_TRANSFER = "erc20_transfer"
    APPROVAL = "approval"
    SWAP_V2_TOKENS = "swap_v2_tokens"
    SWAP_V2_ETH_IN = "swap_v2_eth_in"
    WETH_DEPOSIT = "weth_deposit"
    WETH_WITHDRAW = "weth_withdraw"
    UNKNOWN = "unknown"

    @property
    def is_swap(self) -> bool:
        return self in (Category.SWAP_V2_TOKENS, Category.SWAP_V2_ETH_IN)


class ThreatLevel(str, Enum):
    SAFE = "SAFE"
    SUSPICIOUS = "SUSPICIOUS"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @classmethod
    def from_score(cls, score: float) -> "ThreatLevel":
        """>= 0.8 CRITICAL; >= 0.5 HIGH; >= 0.2 SUSPICIOUS; else SAFE."""
        if score >= 0.8:
            return cls.CRITICAL
        if score >= 0.5:
            return cls.HIGH
        if score >= 0.2:
            return cls.SUSPICIOUS
        return cls.SAFE


_LEVEL_ORDER = (ThreatLevel.SAFE, ThreatLevel.SUSPICIOUS, ThreatLevel.HIGH, ThreatLevel.CRITICAL)

SUB_TYPE_UNLIMITED = "unlimited"
SUB_TYPE_LIMITED = "limited"


def normalize_calldata(data: str | None) -> str:
    """Lower-case calldata with a 0x prefix; None/empty becomes "0x"."""
    raw = (data or "").strip().lower()
    if not raw:
        return "0x"
    if not raw.startswith("0x"):
        raw = "0x" + raw
    return raw


def normalize_address(address: str | None) -> str | None:
    raw = (address or "").strip().lower()
    return raw or None


def parse_wei(value: Any) -> int:
    """
    Parse a transaction value: hex string ("0x1bc1..."), decimal string in wei,
    or an integer. Empty/None is zero. Raises MalformedInput otherwise.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise MalformedInput(f"Invalid value: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise MalformedInput("Transaction value must be non-negative")
        return value
    text = str(value).strip().lower()
    if not text:
        return 0
    try:
        if text.startswith("0x"):
            parsed = int(text, 16) if len(text) > 2 else 0
        else:
            dec = Decimal(text)
            if dec != dec.to_integral_value():
                raise MalformedInput(f"Transaction value must be whole wei: {value!r}")
            parsed = int(dec)
    except (ValueError, InvalidOperation) as e:
        raise MalformedInput(f"Invalid value: {value!r}") from e
    if parsed < 0:
        raise MalformedInput("Transaction value must be non-negative")
    return parsed


def parse_chain_id(chain_id: Any, default: int = 1) -> int:
    if chain_id is None or chain_id == "":
        return default
    if isinstance(chain_id, bool):
        raise MalformedInput(f"Invalid chainId: {chain_id!r}")
    if isinstance(chain_id, int):
        return chain_id
    text = str(chain_id).strip().lower()
    try:
        return int(text, 16) if text.startswith("0x") else int(text)
    except ValueError as e:
        raise MalformedInput(f"Invalid chainId: {chain_id!r}") from e


@dataclass(frozen=True)
class TransactionRequest:
    """
    Unsigned transaction as submitted for analysis.

    `to` absent means contract deployment; `data` is "0x" for plain transfers;
    `value` is held in wei.
    """

    to: str | None
    data: str = "0x"
    value: int = 0
    from_: str | None = None
    chain_id: int = 1

    @classmethod
    def create(
        cls,
        to: str | None = None,
        data: str | None = "0x",
        value: Any = "0",
        from_: str | None = None,
        chain_id: Any = 1,
    ) -> "TransactionRequest":
        """Normalize raw request fields. Raises MalformedInput on unparseable values."""
        calldata = normalize_calldata(data)
        return cls(
            to=normalize_address(to),
            data=calldata,
            value=parse_wei(value),
            from_=normalize_address(from_),
            chain_id=parse_chain_id(chain_id),
        )

    @property
    def fingerprint(self) -> str:
        """Deterministic cache key over (to, data, value, from, chainId)."""
        return f"{self.to}-{self.data}-{self.value}-{self.from_}-{self.chain_id}"

    @property
    def is_deployment(self) -> bool:
        return self.to is None and self.data != "0x"

    @property
    def has_valid_hex_data(self) -> bool:
        return bool(_HEX_RE.match(self.data))

    @property
    def value_eth(self) -> Decimal:
        return Decimal(self.value) / WEI_PER_ETH

    def to_dict(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "data": self.data,
            "value": str(self.value),
            "from": self.from_,
            "chainId": self.chain_id,
        }


@dataclass(frozen=True)
class DecodedCall:
    """
    Result of classifying calldata against the function registry.

    `args` keys are a subset of the matched spec's argument names: a field
    whose decode failed is omitted and its name listed in `decode_errors`.
    """

    selector: str | None
    category: Category
    args: dict[str, Any]
    raw_data: str
    function_name: str | None = None
    sub_type: str | None = None
    decode_errors: tuple[str, ...] = ()

    @property
    def decode_error(self) -> bool:
        return bool(self.decode_errors)

    @property
    def is_unlimited_approval(self) -> bool:
        return self.category is Category.APPROVAL and self.sub_type == SUB_TYPE_UNLIMITED

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "category": self.category.value,
            "functionName": self.function_name,
            "subType": self.sub_type,
            "args": {k: (str(v) if isinstance(v, int) else v) for k, v in self.args.items()},
            "decodeErrors": list(self.decode_errors),
        }


@dataclass(frozen=True)
class Signal:
    """
    One matched rule or attack pattern.

    Rule-table signals carry a `level` floor; pattern signatures only feed
    the weighted score (level is None).
    """

    pattern: str
    type: str
    description: str
    severity: float
    """0-10 scale; rule weight x 10."""
    level: ThreatLevel | None = None
    weight: float = 0.0
    mitigation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "type": self.type,
            "description": self.description,
            "severity": round(self.severity, 2),
        }


@dataclass(frozen=True)
class SimilarTransaction:
    hash: str
    similarity: float
    is_scam: bool

    def to_dict(self) -> dict[str, Any]:
        return {"txHash": self.hash, "similarityScore": self.similarity, "isScam": self.is_scam}


@dataclass(frozen=True)
class OnChainCheck:
    address_threat: bool
    calldata_threat: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "addressThreat": self.address_threat,
            "calldataThreat": self.calldata_threat,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class LlmAnalysis:
    assessment: str
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {"assessment": self.assessment, "reasoning": self.reasoning}


@dataclass(frozen=True)
class ExternalSignals:
    """
    Answers from external collaborators. Each field holds the value or
    UNAVAILABLE; `errors` lists (collaborator, human-readable reason).
    """

    ml_score: Any = UNAVAILABLE
    similar_transactions: Any = UNAVAILABLE
    address_flagged: Any = UNAVAILABLE
    signature_flagged: Any = UNAVAILABLE
    llm: Any = UNAVAILABLE
    errors: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ThreatAssessment:
    """Scored verdict for one transaction. Never mutated after creation."""

    level: ThreatLevel
    confidence: float
    rule_matches: tuple[Signal, ...]
    ml_score: float
    similar_transactions: tuple[SimilarTransaction, ...]
    mitigations: tuple[str, ...]
    on_chain: OnChainCheck | None = None
    llm: LlmAnalysis | None = None
    collaborator_errors: tuple[tuple[str, str], ...] = ()

    def to_response(self) -> dict[str, Any]:
        """Threat-check API payload."""
        details: dict[str, Any] = {
            "mlScore": self.ml_score,
            "signatureMatches": [s.to_dict() for s in self.rule_matches],
            "similarTransactions": [t.to_dict() for t in self.similar_transactions],
            "onChainData": self.on_chain.to_dict() if self.on_chain else None,
            "llmAnalysis": self.llm.to_dict() if self.llm else None,
        }
        if self.collaborator_errors:
            details["collaboratorErrors"] = dict(self.collaborator_errors)
        return {
            "threatLevel": self.level.value,
            "confidence": self.confidence,
            "mitigationSuggestions": list(self.mitigations),
            "details": details,
        }


@dataclass(frozen=True)
class AlternativeTransaction:
    """A rewritten, safer version of the submitted transaction."""

    title: str
    description: str
    risk_reduction: int
    gas_delta: int
    """Signed percentage against the base operation's static gas estimate."""
    to: str | None
    data: str
    value: int
    implementation: str
    use_protection_contract: bool = False
    is_private_relay: bool = False
    informational: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def gas_difference(self) -> str:
        return f"{self.gas_delta:+d}%"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "riskReduction": self.risk_reduction,
            "gasDifference": self.gas_difference,
            "implementation": self.implementation,
            "transactionData": {"to": self.to, "data": self.data, "value": str(self.value)},
        }
        if self.use_protection_contract:
            out["useProtectionContract"] = True
        if self.is_private_relay:
            out["isPrivateRelay"] = True
        if self.informational:
            out["informational"] = True
        out.update(self.extra)
        return out
