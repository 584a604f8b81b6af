"""Assembles the per-shard pipeline timeline of a single transaction."""

import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import AggregationError
from .hooks import HookEvents, HookManager
from .metrics import MetricsTracker
from .models import (
    AnnotatedNode,
    ConsensusNode,
    LeaderState,
    PipelinePhase,
    QcOutcome,
    ShardTimeline,
    Substate,
    TransactionView,
)
from .proxies import RemoteNodeClient


def annotate_node(node: ConsensusNode) -> AnnotatedNode:
    """Classify a node's phase from its height and its outcome from its QC."""
    phase = PipelinePhase.from_height(node.height)
    qc = node.justify
    if qc.is_genesis:
        return AnnotatedNode(node=node, phase=phase, outcome=QcOutcome.GENESIS)
    outcome = QcOutcome.REJECT if qc.decision == "Reject" else QcOutcome.ACCEPT
    return AnnotatedNode(
        node=node,
        phase=phase,
        outcome=outcome,
        reject_reason=qc.reject_reason,
        vote_count=len(qc.validators_metadata),
    )


def partition_nodes(nodes: Iterable[ConsensusNode]) -> Dict[str, List[ConsensusNode]]:
    """Group nodes by shard, in order of first appearance, each list sorted by height."""
    by_shard: Dict[str, List[ConsensusNode]] = {}
    for node in nodes:
        by_shard.setdefault(node.shard, []).append(node)
    for shard_nodes in by_shard.values():
        shard_nodes.sort(key=lambda n: n.height)
    return by_shard


def _timestamp_key(timestamp: Any) -> Tuple[int, Any]:
    if timestamp is None:
        return (0, 0)
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        return (1, float(timestamp))
    return (2, str(timestamp))


def partition_leader_states(states: Iterable[LeaderState]) -> Dict[str, LeaderState]:
    """One leader state per shard; the newest timestamp wins, later input breaks ties."""
    by_shard: Dict[str, LeaderState] = {}
    for state in states:
        current = by_shard.get(state.shard)
        if current is None or _timestamp_key(state.timestamp) >= _timestamp_key(current.timestamp):
            by_shard[state.shard] = state
    return by_shard


class TransactionPipelineAggregator:
    """
    Fans out node queries for one transaction and joins them per shard.
    All remote calls go through a bounded worker pool.
    """

    def __init__(
        self,
        client: RemoteNodeClient,
        max_workers: int = 8,
        partial_results: bool = False,
        metrics: Optional[MetricsTracker] = None,
        hooks: Optional[HookManager] = None,
    ):
        self._client = client
        self._partial_results = partial_results
        self._metrics = metrics or MetricsTracker()
        self._hooks = hooks
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="Aggregator"
        )

    def load_transaction_view(
        self, transaction_id: str, allow_partial: Optional[bool] = None
    ) -> TransactionView:
        """
        Build the per-shard timeline for ``transaction_id``.

        In strict mode any failed substate fetch aborts the whole call with
        AggregationError. With ``allow_partial`` the failed shards carry an
        error string instead and every other shard is returned intact.
        """
        partial = self._partial_results if allow_partial is None else allow_partial
        start = time.time()
        try:
            view = self._build_view(transaction_id, partial)
        except AggregationError as exc:
            duration_ms = (time.time() - start) * 1000
            self._metrics.record_failure(duration_ms)
            print(f"[Aggregator] transaction {transaction_id} failed after {duration_ms:.1f}ms: {exc}", flush=True)
            if self._hooks is not None:
                self._hooks.trigger_hook(
                    HookEvents.TRANSACTION_FAILED,
                    transaction_id=transaction_id,
                    error=str(exc),
                )
            raise

        duration_ms = (time.time() - start) * 1000
        self._metrics.record_completion(duration_ms, len(view.shards), view.partial)
        print(
            f"[Aggregator] transaction {transaction_id}: {len(view.shards)} shards, "
            f"{sum(len(t.nodes) for t in view.shards.values())} nodes, {duration_ms:.1f}ms"
            + (f", failed shards={view.failed_shards()}" if view.partial else ""),
            flush=True,
        )
        if self._hooks is not None:
            self._hooks.trigger_hook(
                HookEvents.TRANSACTION_LOADED,
                transaction_id=transaction_id,
                shard_count=len(view.shards),
                partial=view.partial,
            )
        return view

    def _build_view(self, transaction_id: str, partial: bool) -> TransactionView:
        nodes_future = self._executor.submit(self._client.get_transaction_nodes, transaction_id)
        leaders_future = self._executor.submit(self._client.get_leader_states, transaction_id)
        wait([nodes_future, leaders_future])
        try:
            nodes = nodes_future.result()
            leader_states = leaders_future.result()
        except Exception as exc:
            raise AggregationError(transaction_id, str(exc)) from exc

        nodes_by_shard = partition_nodes(nodes)
        leaders_by_shard = partition_leader_states(leader_states)

        if partial:
            substates, errors = self._fetch_substates_partial(transaction_id, list(nodes_by_shard))
        else:
            substates, errors = self._fetch_substates_strict(transaction_id, list(nodes_by_shard)), {}

        view = TransactionView(transaction_id=transaction_id)
        for shard, shard_nodes in nodes_by_shard.items():
            view.shards[shard] = ShardTimeline(
                shard=shard,
                nodes=[annotate_node(node) for node in shard_nodes],
                leader_state=leaders_by_shard.get(shard),
                substates=substates.get(shard, []),
                error=errors.get(shard),
            )
        return view

    def _submit_substates(self, transaction_id: str, shards: List[str]) -> Dict[Future, str]:
        return {
            self._executor.submit(self._client.get_substates, transaction_id, shard): shard
            for shard in shards
        }

    def _fetch_substates_strict(
        self, transaction_id: str, shards: List[str]
    ) -> Dict[str, List[Substate]]:
        futures = self._submit_substates(transaction_id, shards)
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is None:
                continue
            for other in pending:
                other.cancel()
            raise AggregationError(transaction_id, str(exc), shard=futures[future]) from exc
        return {shard: future.result() for future, shard in futures.items()}

    def _fetch_substates_partial(
        self, transaction_id: str, shards: List[str]
    ) -> Tuple[Dict[str, List[Substate]], Dict[str, str]]:
        futures = self._submit_substates(transaction_id, shards)
        substates: Dict[str, List[Substate]] = {}
        errors: Dict[str, str] = {}
        for future, shard in futures.items():
            try:
                substates[shard] = future.result()
            except Exception as exc:
                substates[shard] = []
                errors[shard] = str(exc)
        return substates, errors

    def shutdown(self, wait_for_pending: bool = True):
        self._executor.shutdown(wait=wait_for_pending)
