"""Read-only inspector core for a validator node (epoch sync, shard key, transaction pipeline)."""

from .config import NodeSpec, SyncConfig, ClientConfig, AggregatorConfig, InspectorConfig
from .errors import InspectorError, RemoteCallError, AggregationError
from .models import (
    EpochSnapshot,
    IdentitySnapshot,
    PipelinePhase,
    QcOutcome,
    QuorumCertificate,
    ConsensusNode,
    AnnotatedNode,
    LeaderState,
    Substate,
    ShardTimeline,
    TransactionView,
)
from .resilience import RetryWithBackoff, CircuitBreaker
from .proxies import RemoteNodeClient, open_client
from .hooks import HookManager, HookEvents
from .metrics import MetricsTracker
from .node_state import NodeStateSnapshot, NodeStateStore
from .epoch_sync import EpochSyncLoop
from .shard_key import ShardKeyResolver
from .aggregator import (
    TransactionPipelineAggregator,
    annotate_node,
    partition_nodes,
    partition_leader_states,
)
from .facade import InspectorSession

__all__ = [
    "NodeSpec",
    "SyncConfig",
    "ClientConfig",
    "AggregatorConfig",
    "InspectorConfig",
    "InspectorError",
    "RemoteCallError",
    "AggregationError",
    "EpochSnapshot",
    "IdentitySnapshot",
    "PipelinePhase",
    "QcOutcome",
    "QuorumCertificate",
    "ConsensusNode",
    "AnnotatedNode",
    "LeaderState",
    "Substate",
    "ShardTimeline",
    "TransactionView",
    "RetryWithBackoff",
    "CircuitBreaker",
    "RemoteNodeClient",
    "open_client",
    "HookManager",
    "HookEvents",
    "MetricsTracker",
    "NodeStateSnapshot",
    "NodeStateStore",
    "EpochSyncLoop",
    "ShardKeyResolver",
    "TransactionPipelineAggregator",
    "annotate_node",
    "partition_nodes",
    "partition_leader_states",
    "InspectorSession",
]
