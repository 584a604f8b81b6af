import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


DEFAULT_SERVICE = "tari.validator_node.rpc.ValidatorNodeQuery"


@dataclass(frozen=True)
class NodeSpec:
    """Immutable description of the validator node being inspected."""

    host: str
    port: int
    service: str = DEFAULT_SERVICE

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SyncConfig:
    """Epoch synchronization settings."""

    refresh_interval: float = 120.0
    # Protocol constant owned by the node: epoch number -> epoch height.
    epoch_height_multiplier: int = 10

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "SyncConfig":
        if not data:
            return cls()
        interval = float(data.get("refresh_interval", 120.0))
        if interval <= 0:
            raise ValueError("sync.refresh_interval must be positive.")
        return cls(
            refresh_interval=interval,
            epoch_height_multiplier=int(data.get("epoch_height_multiplier", 10)),
        )


@dataclass(frozen=True)
class ClientConfig:
    """Per-call behaviour of the remote node client."""

    timeout: float = 10.0
    max_retries: int = 0
    failure_threshold: int = 5
    recovery_timeout: float = 10.0

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ClientConfig":
        if not data:
            return cls()
        return cls(
            timeout=float(data.get("timeout", 10.0)),
            max_retries=max(0, int(data.get("max_retries", 0))),
            failure_threshold=int(data.get("failure_threshold", 5)),
            recovery_timeout=float(data.get("recovery_timeout", 10.0)),
        )


@dataclass(frozen=True)
class AggregatorConfig:
    """Fan-out settings for transaction lookups."""

    max_workers: int = 8
    partial_results: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "AggregatorConfig":
        if not data:
            return cls()
        workers = int(data.get("max_workers", 8))
        if workers < 1:
            raise ValueError("aggregator.max_workers must be at least 1.")
        return cls(
            max_workers=workers,
            partial_results=bool(data.get("partial_results", False)),
        )


class InspectorConfig:
    """Config facade that hides JSON parsing and defaults."""

    def __init__(self, config_path: Optional[str] = None, payload: Optional[Dict] = None):
        if payload is None:
            if config_path is None:
                raise ValueError("Either config_path or payload must be given.")
            path = Path(config_path)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            with path.open("r", encoding="utf-8") as stream:
                payload = json.load(stream)

        node = payload.get("node")
        if not node:
            raise ValueError("Configuration must include a 'node' section.")
        try:
            self._node = NodeSpec(
                host=node["host"],
                port=int(node["port"]),
                service=node.get("service", DEFAULT_SERVICE),
            )
        except KeyError as exc:
            missing = exc.args[0]
            raise ValueError(f"Node section missing required field '{missing}'.") from exc

        self._sync = SyncConfig.from_dict(payload.get("sync"))
        self._client = ClientConfig.from_dict(payload.get("client"))
        self._aggregator = AggregatorConfig.from_dict(payload.get("aggregator"))

    @classmethod
    def from_dict(cls, payload: Dict) -> "InspectorConfig":
        return cls(payload=payload)

    @property
    def node(self) -> NodeSpec:
        return self._node

    @property
    def sync(self) -> SyncConfig:
        return self._sync

    @property
    def client(self) -> ClientConfig:
        return self._client

    @property
    def aggregator(self) -> AggregatorConfig:
        return self._aggregator
