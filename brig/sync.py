"""Replicate datasets from their owning server to every other server."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from contextlib import closing
from typing import Any

from .config import Config, ConfigStore, DatasetConfig, Server
from .errors import BrigError, ErrorKind
from .models import SyncRequest, SyncState
from .remote import (
    create_snapshot,
    create_ssh_session,
    estimate_send_size,
    find_latest_common_snapshot,
    list_snapshots,
    send_bytes,
)

Connector = Callable[[str, str], Any]

_log = logging.getLogger(__name__)


class SyncRegistry:
    """The transfers currently running, shared between request handlers."""

    def __init__(self) -> None:
        self._states: list[SyncState] = []
        self._lock = threading.Lock()

    def add(self, state: SyncState) -> None:
        with self._lock:
            self._states.append(state)

    def in_progress(self, dataset: str) -> bool:
        with self._lock:
            return any(state.dataset == dataset for state in self._states)

    def remove_dataset(self, dataset: str) -> bool:
        """Drop the first transfer of ``dataset``; tell whether one was found."""
        with self._lock:
            for index, state in enumerate(self._states):
                if state.dataset == dataset:
                    del self._states[index]
                    return True
        return False

    def snapshot(self) -> list[SyncState]:
        """Return copies of all running transfers."""
        with self._lock:
            return [dataclasses.replace(state) for state in self._states]


def sync_dataset(
    state: SyncState,
    registry: SyncRegistry,
    src: Server,
    dst: Server,
    dataset: DatasetConfig,
    ready: threading.Event,
    connect: Connector = create_ssh_session,
) -> None:
    """Snapshot ``dataset`` on ``src`` and send it incrementally to ``dst``.

    ``ready`` is set once the transfer size is known, or when the sync fails
    before that point.
    """
    try:
        with closing(connect(src.user, src.address)) as src_session, closing(
            connect(dst.user, dst.address)
        ) as dst_session:
            src_snapshots = list_snapshots(src_session, src.pool, dataset.name)
            dst_snapshots = list_snapshots(dst_session, dst.pool, dataset.name)
            common = find_latest_common_snapshot(
                dataset.name, src_snapshots, dst_snapshots
            )
            new_snapshot = create_snapshot(src_session, src.pool, dataset.name)
            state.total_bytes = estimate_send_size(src_session, common, new_snapshot)
            ready.set()
            send_bytes(
                src_session, dst_session, common, new_snapshot, dst, dataset, state
            )
    finally:
        ready.set()
    registry.remove_dataset(dataset.name)


def _run_sync(*args: Any) -> None:
    state = args[0]
    try:
        sync_dataset(*args)
    except Exception:
        _log.exception(
            "sync of %s from %s to %s failed", state.dataset, state.src, state.dst
        )


def _start_dataset(
    dataset: DatasetConfig,
    config: Config,
    registry: SyncRegistry,
    connect: Connector,
) -> list[threading.Event]:
    src = config.find_server(dataset.server)
    if src is None:
        raise BrigError(
            ErrorKind.SERVER_NOT_FOUND_FROM_DATASET,
            dataset=dataset.name,
            server_name=dataset.server,
        )
    events = []
    for dst in config.servers:
        if dst.name == src.name:
            continue
        state = SyncState(dataset=dataset.name, src=src.name, dst=dst.name)
        ready = threading.Event()
        registry.add(state)
        threading.Thread(
            target=_run_sync,
            args=(state, registry, src, dst, dataset, ready, connect),
            name=f"sync-{dataset.name}-{dst.name}",
            daemon=True,
        ).start()
        events.append(ready)
    return events


def _await(events: list[threading.Event]) -> None:
    for event in events:
        event.wait()


def sync_all(
    store: ConfigStore,
    registry: SyncRegistry,
    connect: Connector = create_ssh_session,
) -> list[SyncState]:
    """Start syncing every dataset not already in progress; return all running transfers."""
    config = store.snapshot()
    events: list[threading.Event] = []
    for dataset in config.datasets:
        if registry.in_progress(dataset.name):
            print(f"dataset {dataset.name} is already in progress")
            continue
        events.extend(_start_dataset(dataset, config, registry, connect))
    _await(events)
    return registry.snapshot()


def sync(
    request: SyncRequest,
    store: ConfigStore,
    registry: SyncRegistry,
    connect: Connector = create_ssh_session,
) -> list[SyncState] | None:
    """Start syncing the requested datasets.

    Returns ``None`` as soon as a requested dataset is found already in
    progress, otherwise all running transfers.
    """
    config = store.snapshot()
    events: list[threading.Event] = []
    for name in request.datasets:
        dataset = config.find_dataset(name)
        if dataset is None:
            raise BrigError(ErrorKind.DATASET_NOT_FOUND_IN_CONFIG, dataset=name)
        if registry.in_progress(dataset.name):
            print(f"dataset {dataset.name} is already in progress")
            return None
        events.extend(_start_dataset(dataset, config, registry, connect))
    _await(events)
    return registry.snapshot()