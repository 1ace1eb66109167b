"""Hand ownership of a dataset from one server to another."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import closing
from typing import Any

import paramiko

from .config import Config, ConfigStore, DatasetConfig, Server
from .errors import BrigError, ErrorKind
from .models import SwitchRequest
from .remote import create_ssh_session, get_latest_snapshot, set_readonly

Connector = Callable[[str, str], Any]

_COMMAND_ERRORS = (OSError, paramiko.SSHException)


def is_synced(
    dataset: DatasetConfig,
    config: Config,
    connect: Connector = create_ssh_session,
) -> bool:
    """Tell whether every server holds the same latest snapshot and the owner has no changes since."""
    latest_snapshots = []
    for server in config.servers:
        with closing(connect(server.user, server.address)) as session:
            latest_snapshots.append(
                get_latest_snapshot(session, server.pool, dataset.name)
            )

    if not latest_snapshots:
        return False
    latest = latest_snapshots[0]
    if any(snapshot != latest for snapshot in latest_snapshots):
        return False

    owner = config.find_server(dataset.server)
    if owner is None:
        raise BrigError(
            ErrorKind.SERVER_NOT_FOUND_FROM_DATASET,
            dataset=dataset.name,
            server_name=dataset.server,
        )

    with closing(connect(owner.user, owner.address)) as session:
        try:
            result = session.run(["zfs", "diff", latest])
        except _COMMAND_ERRORS as exc:
            raise BrigError(
                ErrorKind.ZFS_COMMAND_ERROR, msg=f"unable to zfs diff {latest}"
            ) from exc
    return not result.stdout


def switch_dataset(
    store: ConfigStore,
    dataset: str,
    old_server: Server,
    new_server: Server,
    connect: Connector = create_ssh_session,
) -> None:
    """Make the old copy read-only, the new one writable, and record the new owner."""
    with closing(connect(old_server.user, old_server.address)) as old_session, closing(
        connect(new_server.user, new_server.address)
    ) as new_session:
        set_readonly(old_session, old_server, dataset, True)
        set_readonly(new_session, new_server, dataset, False)
    store.set_dataset_server(dataset, new_server.name)


def switch(
    request: SwitchRequest,
    store: ConfigStore,
    connect: Connector = create_ssh_session,
) -> None:
    """Carry out a switch request and persist the changed configuration."""
    config = store.snapshot()
    dataset = config.find_dataset(request.dataset)
    if dataset is None:
        raise BrigError(ErrorKind.DATASET_NOT_FOUND_IN_CONFIG, dataset=request.dataset)

    if not is_synced(dataset, config, connect):
        raise BrigError(ErrorKind.DATASET_NOT_SYNCED, dataset=dataset.name)

    old_server = config.find_server(dataset.server)
    if old_server is None:
        raise BrigError(
            ErrorKind.SERVER_NOT_FOUND_FROM_DATASET,
            dataset=dataset.name,
            server_name=dataset.server,
        )

    new_server = config.find_server(request.new_server)
    if new_server is None:
        raise BrigError(
            ErrorKind.SERVER_NOT_FOUND_FROM_REQUEST, server_name=request.new_server
        )

    switch_dataset(store, request.dataset, old_server, new_server, connect)
    store.save()