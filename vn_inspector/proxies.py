import json
import threading
from typing import Any, Callable, Dict, List, Optional

import grpc

from .config import ClientConfig, NodeSpec
from .errors import RemoteCallError
from .models import (
    ConsensusNode,
    EpochSnapshot,
    IdentitySnapshot,
    LeaderState,
    Substate,
)
from .resilience import CircuitBreaker, retry


def _encode_json(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _decode_json(raw: bytes) -> Any:
    return json.loads(raw.decode("utf-8")) if raw else None


def _describe_rpc_error(exc: grpc.RpcError) -> str:
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None)
    if callable(code) and callable(details):
        return f"{code()}: {details()}"
    return str(exc) or exc.__class__.__name__


def _as_list(response: Any, key: str) -> List[Any]:
    """Accept either a bare JSON list or an object wrapping it under ``key``."""
    if response is None:
        return []
    if isinstance(response, dict):
        response = response.get(key, [])
    if not isinstance(response, list):
        raise ValueError(f"expected a list of {key}, got {type(response).__name__}")
    return response


class RemoteNodeClient:
    """Read-only query client for a validator node, over a gRPC channel with a JSON codec."""

    def __init__(
        self,
        spec: NodeSpec,
        channel: grpc.Channel,
        config: Optional[ClientConfig] = None,
    ):
        self.spec = spec
        self._channel = channel
        self._config = config or ClientConfig()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=self._config.failure_threshold,
            recovery_timeout=self._config.recovery_timeout,
        )
        self._invoke_with_retry = retry(
            max_retries=self._config.max_retries,
            initial_delay=0.2,
            exceptions=(grpc.RpcError,),
        )(self._invoke)
        self._methods: Dict[str, Callable] = {}
        self._lock = threading.Lock()

    @property
    def address(self) -> str:
        return self.spec.address

    def _method(self, name: str) -> Callable:
        with self._lock:
            method = self._methods.get(name)
            if method is None:
                method = self._channel.unary_unary(
                    f"/{self.spec.service}/{name}",
                    request_serializer=_encode_json,
                    response_deserializer=_decode_json,
                )
                self._methods[name] = method
            return method

    def _invoke(self, name: str, payload: Dict[str, Any]) -> Any:
        return self._method(name)(payload, timeout=self._config.timeout)

    def _call(self, name: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        if not self._circuit_breaker.allow_request():
            raise RemoteCallError(name, "circuit breaker is open")
        try:
            response = self._invoke_with_retry(name, payload or {})
        except grpc.RpcError as exc:
            self._circuit_breaker.record_failure()
            raise RemoteCallError(name, _describe_rpc_error(exc)) from exc
        except ValueError as exc:
            # grpc raises ValueError for calls on a closed channel.
            self._circuit_breaker.record_failure()
            raise RemoteCallError(name, str(exc)) from exc
        self._circuit_breaker.record_success()
        return response

    def _decode(self, name: str, decoder: Callable[[], Any]) -> Any:
        try:
            return decoder()
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteCallError(name, f"malformed response: {exc}") from exc

    def get_epoch_stats(self) -> EpochSnapshot:
        response = self._call("GetEpochManagerStats")
        return self._decode("GetEpochManagerStats", lambda: EpochSnapshot.from_record(response))

    def get_identity(self) -> IdentitySnapshot:
        response = self._call("GetIdentity")
        return self._decode("GetIdentity", lambda: IdentitySnapshot.from_record(response))

    def get_shard_key(self, height: int, public_key: bytes) -> Optional[str]:
        response = self._call(
            "GetShardKey", {"height": int(height), "public_key": public_key.hex()}
        )

        def decode() -> Optional[str]:
            if not isinstance(response, dict):
                raise ValueError("shard key response is not an object")
            key = response.get("shard_key")
            return None if key is None else str(key)

        return self._decode("GetShardKey", decode)

    def get_transaction_nodes(self, transaction_id: str) -> List[ConsensusNode]:
        response = self._call("GetTransaction", {"payload_id": transaction_id})
        return self._decode(
            "GetTransaction",
            lambda: [ConsensusNode.from_record(r) for r in _as_list(response, "nodes")],
        )

    def get_leader_states(self, transaction_id: str) -> List[LeaderState]:
        response = self._call("GetCurrentLeaderState", {"payload_id": transaction_id})
        return self._decode(
            "GetCurrentLeaderState",
            lambda: [LeaderState.from_record(r) for r in _as_list(response, "states")],
        )

    def get_substates(self, transaction_id: str, shard: str) -> List[Substate]:
        response = self._call("GetSubstates", {"payload_id": transaction_id, "shard": shard})
        return self._decode(
            "GetSubstates",
            lambda: [Substate.from_record(r) for r in _as_list(response, "substates")],
        )

    def get_recent_transactions(self) -> List[Dict[str, Any]]:
        response = self._call("GetRecentTransactions")
        return self._decode(
            "GetRecentTransactions",
            lambda: [dict(r) for r in _as_list(response, "transactions")],
        )

    def close(self):
        self._channel.close()


def open_client(spec: NodeSpec, config: Optional[ClientConfig] = None) -> RemoteNodeClient:
    """Open an insecure channel to the node and wrap it in a client."""
    keepalive_options = [
        ('grpc.keepalive_time_ms', 10000),
        ('grpc.keepalive_timeout_ms', 5000),
        ('grpc.keepalive_permit_without_calls', True),
        ('grpc.http2.min_time_between_pings_ms', 10000),
        ('grpc.http2.max_pings_without_data', 0),
    ]
    channel = grpc.insecure_channel(spec.address, options=keepalive_options)
    return RemoteNodeClient(spec, channel, config)
