"""Messages exchanged between the brig client and server."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    return data


def _value(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field {key!r}") from None


def _string(data: Mapping[str, Any], key: str) -> str:
    value = _value(data, key)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _unsigned(data: Mapping[str, Any], key: str) -> int:
    value = _value(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field {key!r} must be a non-negative integer")
    return value


def _list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = _value(data, key)
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be a list")
    return value


@dataclass(frozen=True)
class SnapshotEntry:
    """One snapshot on a server: pool, dataset and snapshot name."""

    pool: str
    dataset: str
    snapshot: str

    def to_dict(self) -> dict[str, str]:
        return {"pool": self.pool, "dataset": self.dataset, "snapshot": self.snapshot}

    @classmethod
    def from_dict(cls, data: Any) -> SnapshotEntry:
        data = _mapping(data, "snapshot entry")
        return cls(
            pool=_string(data, "pool"),
            dataset=_string(data, "dataset"),
            snapshot=_string(data, "snapshot"),
        )


@dataclass(frozen=True)
class ServerSnapshots:
    """All snapshots found on one server."""

    server: str
    datasets: list[SnapshotEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "datasets": [entry.to_dict() for entry in self.datasets],
        }

    @classmethod
    def from_dict(cls, data: Any) -> ServerSnapshots:
        data = _mapping(data, "server snapshots")
        return cls(
            server=_string(data, "server"),
            datasets=[SnapshotEntry.from_dict(item) for item in _list(data, "datasets")],
        )


@dataclass(frozen=True)
class SwitchRequest:
    """Request to move ownership of a dataset to another server."""

    dataset: str
    new_server: str

    def to_dict(self) -> dict[str, str]:
        return {"dataset": self.dataset, "new_server": self.new_server}

    @classmethod
    def from_dict(cls, data: Any) -> SwitchRequest:
        data = _mapping(data, "switch request")
        return cls(dataset=_string(data, "dataset"), new_server=_string(data, "new_server"))


@dataclass(frozen=True)
class SyncRequest:
    """Request to replicate the named datasets."""

    datasets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"datasets": list(self.datasets)}

    @classmethod
    def from_dict(cls, data: Any) -> SyncRequest:
        data = _mapping(data, "sync request")
        names = _list(data, "datasets")
        if not all(isinstance(name, str) for name in names):
            raise ValueError("field 'datasets' must hold strings")
        return cls(datasets=list(names))


@dataclass
class SyncState:
    """Progress of one dataset being sent from one server to another."""

    dataset: str = ""
    src: str = ""
    dst: str = ""
    total_bytes: int = 0
    sent_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataset": self.dataset,
            "src": self.src,
            "dst": self.dst,
            "total_bytes": self.total_bytes,
            "sent_bytes": self.sent_bytes,
        }

    @classmethod
    def from_dict(cls, data: Any) -> SyncState:
        data = _mapping(data, "sync state")
        return cls(
            dataset=_string(data, "dataset"),
            src=_string(data, "src"),
            dst=_string(data, "dst"),
            total_bytes=_unsigned(data, "total_bytes"),
            sent_bytes=_unsigned(data, "sent_bytes"),
        )