"""Server configuration: replicating servers and the datasets they hold."""

from __future__ import annotations

import copy
import dataclasses
import json
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import BrigError, ErrorKind


def _strings(data: Any, what: str, names: tuple[str, ...]) -> dict[str, str]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    values: dict[str, str] = {}
    for name in names:
        if name not in data:
            raise ValueError(f"{what} is missing field {name!r}")
        if not isinstance(data[name], str):
            raise ValueError(f"{what} field {name!r} must be a string")
        values[name] = data[name]
    return values


@dataclass(frozen=True)
class Server:
    """A ZFS host reachable over SSH."""

    name: str
    user: str
    address: str
    pool: str

    def to_dict(self) -> dict[str, str]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Server:
        return cls(**_strings(data, "server", ("name", "user", "address", "pool")))


@dataclass(frozen=True)
class DatasetConfig:
    """A replicated dataset, the server that owns it and its snapshot lifetime."""

    name: str
    owner: str
    server: str
    snapshot_lifetime: str

    def to_dict(self) -> dict[str, str]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> DatasetConfig:
        return cls(
            **_strings(data, "dataset", ("name", "owner", "server", "snapshot_lifetime"))
        )


@dataclass
class Config:
    """The full server configuration."""

    servers: list[Server] = field(default_factory=list)
    datasets: list[DatasetConfig] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "servers": [server.to_dict() for server in self.servers],
            "datasets": [dataset.to_dict() for dataset in self.datasets],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        if not isinstance(data, Mapping):
            raise ValueError("config must be an object")
        for key in ("servers", "datasets"):
            if not isinstance(data.get(key), list):
                raise ValueError(f"config field {key!r} must be a list")
        return cls(
            servers=[Server.from_dict(item) for item in data["servers"]],
            datasets=[DatasetConfig.from_dict(item) for item in data["datasets"]],
        )

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> Config:
        """Read a configuration from a JSON file."""
        with open(path, encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    def find_server(self, name: str) -> Server | None:
        return next((s for s in self.servers if s.name == name), None)

    def find_dataset(self, name: str) -> DatasetConfig | None:
        return next((d for d in self.datasets if d.name == name), None)


class ConfigStore:
    """A configuration shared between request handlers, backed by a file."""

    def __init__(self, config: Config, path: str | os.PathLike[str]) -> None:
        self._config = config
        self.path = Path(path)
        self._lock = threading.RLock()

    def snapshot(self) -> Config:
        """Return an independent copy of the current configuration."""
        with self._lock:
            return copy.deepcopy(self._config)

    def set_dataset_server(self, dataset: str, server_name: str) -> None:
        """Make ``server_name`` the owner of ``dataset``."""
        with self._lock:
            for index, entry in enumerate(self._config.datasets):
                if entry.name == dataset:
                    self._config.datasets[index] = dataclasses.replace(
                        entry, server=server_name
                    )
                    return
        raise BrigError(ErrorKind.DATASET_NOT_FOUND_IN_CONFIG, dataset=dataset)

    def save(self) -> None:
        """Write the configuration back to its file as indented JSON."""
        with self._lock:
            text = json.dumps(self._config.to_dict(), indent=2)
            try:
                self.path.write_text(text, encoding="utf-8")
            except OSError as exc:
                raise BrigError(
                    ErrorKind.ERROR_WRITING_CONFIG_FILE, path=self.path
                ) from exc