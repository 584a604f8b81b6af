"""Value types for node state and transaction pipeline records."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def to_hex(value: Any) -> str:
    """Normalize a byte identifier (bytes, int list or hex string) to lowercase hex."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        try:
            return bytes(value).hex()
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid byte list: {exc}") from exc
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        try:
            bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid hex identifier '{value}'") from exc
        return text
    raise ValueError(f"cannot convert {type(value).__name__} to hex")


def from_hex(value: Any) -> bytes:
    return bytes.fromhex(to_hex(value))


def _require(record: Dict[str, Any], key: str) -> Any:
    if not isinstance(record, dict):
        raise ValueError(f"expected an object, got {type(record).__name__}")
    if key not in record:
        raise ValueError(f"record missing required field '{key}'")
    return record[key]


@dataclass(frozen=True)
class EpochSnapshot:
    current_epoch: int

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EpochSnapshot":
        return cls(current_epoch=int(_require(record, "current_epoch")))


@dataclass(frozen=True)
class IdentitySnapshot:
    """Identity of the inspected node. Fetched once per session."""

    public_key: bytes
    node_id: str = ""
    public_address: str = ""

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "IdentitySnapshot":
        return cls(
            public_key=from_hex(_require(record, "public_key")),
            node_id=str(record.get("node_id") or ""),
            public_address=str(record.get("public_address") or ""),
        )

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


class PipelinePhase(Enum):
    """Consensus pipeline phase, derived from a node's height."""
    UNKNOWN = 0
    PREPARE = 1
    PRECOMMIT = 2
    COMMIT = 3
    DECIDE = 4

    @classmethod
    def from_height(cls, height: int) -> "PipelinePhase":
        if isinstance(height, int) and not isinstance(height, bool) and 1 <= height <= 4:
            return cls(height)
        return cls.UNKNOWN

    @property
    def label(self) -> str:
        return self.name.capitalize()


class QcOutcome(Enum):
    GENESIS = "Genesis"
    ACCEPT = "Accept"
    REJECT = "Reject"


@dataclass(frozen=True)
class QuorumCertificate:
    """Decoded justification of a consensus node.

    A certificate with ``local_node_height == 0`` is the synthetic genesis
    certificate: it carries neither a decision nor votes.
    """

    local_node_height: int
    decision: str = "Accept"
    reject_reason: Optional[str] = None
    validators_metadata: Tuple[Any, ...] = ()

    @property
    def is_genesis(self) -> bool:
        return self.local_node_height == 0

    @classmethod
    def from_justify(cls, justify: Any) -> "QuorumCertificate":
        if isinstance(justify, (str, bytes)):
            try:
                justify = json.loads(justify)
            except json.JSONDecodeError as exc:
                raise ValueError(f"justify is not valid JSON: {exc}") from exc
        height = int(_require(justify, "local_node_height"))

        raw_decision = justify.get("decision")
        decision = "Accept"
        reason = None
        if isinstance(raw_decision, dict) and "Reject" in raw_decision:
            decision = "Reject"
            reason = str(raw_decision["Reject"])
        elif raw_decision == "Reject":
            decision = "Reject"

        metadata = justify.get("validators_metadata") or []
        return cls(
            local_node_height=height,
            decision=decision,
            reject_reason=reason,
            validators_metadata=tuple(metadata),
        )


@dataclass(frozen=True)
class ConsensusNode:
    """One pipeline step of a transaction on a single shard."""

    shard: str
    height: int
    timestamp: Any
    justify: QuorumCertificate
    payload_height: Optional[int] = None
    epoch: Optional[int] = None
    proposed_by: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ConsensusNode":
        height = int(_require(record, "height"))
        if height < 0:
            raise ValueError(f"node height must be >= 0, got {height}")
        proposed_by = record.get("proposed_by")
        payload_height = record.get("payload_height")
        epoch = record.get("epoch")
        return cls(
            shard=to_hex(_require(record, "shard")),
            height=height,
            timestamp=record.get("timestamp"),
            justify=QuorumCertificate.from_justify(_require(record, "justify")),
            payload_height=int(payload_height) if payload_height is not None else None,
            epoch=int(epoch) if epoch is not None else None,
            proposed_by=to_hex(proposed_by) if proposed_by is not None else None,
        )


@dataclass(frozen=True)
class AnnotatedNode:
    node: ConsensusNode
    phase: PipelinePhase
    outcome: QcOutcome
    reject_reason: Optional[str] = None
    vote_count: Optional[int] = None

    @property
    def label(self) -> str:
        if self.outcome is QcOutcome.GENESIS:
            return f"{self.phase.label}/Genesis"
        details = []
        if self.reject_reason:
            details.append(self.reject_reason)
        details.append(f"votes={self.vote_count}")
        return f"{self.phase.label}/{self.outcome.value}({', '.join(details)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "height": self.node.height,
            "phase": self.phase.label,
            "outcome": self.outcome.value,
            "reject_reason": self.reject_reason,
            "votes": self.vote_count,
            "timestamp": self.node.timestamp,
            "label": self.label,
        }


@dataclass(frozen=True)
class LeaderState:
    shard: str
    leader: str
    leader_round: int
    timestamp: Any = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "LeaderState":
        shard = record.get("shard_id", record.get("shard")) if isinstance(record, dict) else None
        if shard is None:
            raise ValueError("leader state missing shard")
        return cls(
            shard=to_hex(shard),
            leader=to_hex(_require(record, "leader")),
            leader_round=int(_require(record, "leader_round")),
            timestamp=record.get("timestamp"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leader": self.leader,
            "leader_round": self.leader_round,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Substate:
    """A version of a ledger object, bounded by its creation and destruction points."""

    address: str
    data: Any = None
    created_at: Any = None
    destroyed_at: Any = None

    def __post_init__(self):
        if self.created_at is not None and self.destroyed_at is not None:
            if self.created_at > self.destroyed_at:
                raise ValueError(
                    f"substate {self.address} destroyed ({self.destroyed_at}) "
                    f"before it was created ({self.created_at})"
                )

    @property
    def is_live(self) -> bool:
        return self.destroyed_at is None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Substate":
        address = _require(record, "address")
        return cls(
            address=str(address),
            data=record.get("data"),
            created_at=record.get("created_at", record.get("created_height")),
            destroyed_at=record.get("destroyed_at", record.get("destroyed_height")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "data": self.data,
            "created_at": self.created_at,
            "destroyed_at": self.destroyed_at,
        }


@dataclass
class ShardTimeline:
    shard: str
    nodes: List[AnnotatedNode] = field(default_factory=list)
    leader_state: Optional[LeaderState] = None
    substates: List[Substate] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "leader_state": self.leader_state.to_dict() if self.leader_state else None,
            "substates": [substate.to_dict() for substate in self.substates],
            "error": self.error,
        }


@dataclass
class TransactionView:
    """Per-shard pipeline timeline of one transaction."""

    transaction_id: str
    shards: Dict[str, ShardTimeline] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return any(timeline.error for timeline in self.shards.values())

    def failed_shards(self) -> List[str]:
        return [shard for shard, timeline in self.shards.items() if timeline.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "partial": self.partial,
            "shards": {shard: timeline.to_dict() for shard, timeline in self.shards.items()},
        }
