"""Collect the snapshots present on every configured server."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .config import Config
from .models import ServerSnapshots, SnapshotEntry
from .remote import create_ssh_session

_LIST_ARGS = ["zfs", "list", "-t", "snapshot", "-o", "name"]


def parse_snapshot_line(line: str) -> SnapshotEntry:
    """Split ``pool/dataset@snapshot`` into its parts."""
    pool, slash, rest = line.partition("/")
    dataset, at, _ = rest.partition("@")
    _, at_whole, snapshot = line.partition("@")
    if not slash or not at or not at_whole:
        raise ValueError(f"not a snapshot name: {line!r}")
    return SnapshotEntry(pool=pool, dataset=dataset, snapshot=snapshot)


def _snapshot_names(output: str) -> list[str]:
    lines = output.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    stripped = (line.strip() for line in lines[1:])
    return [line for line in stripped if line]


def parse_snapshot_listing(output: str) -> list[SnapshotEntry]:
    """Parse ``zfs list -o name`` output, skipping its header and blank lines."""
    return [parse_snapshot_line(line) for line in _snapshot_names(output)]


def collect_status(
    config: Config,
    connect: Callable[[str, str], Any] = create_ssh_session,
) -> list[ServerSnapshots]:
    """List every snapshot on every server in the configuration."""
    response = []
    for server in config.servers:
        session = connect(server.user, server.address)
        try:
            result = session.run(_LIST_ARGS)
        finally:
            session.close()
        names = _snapshot_names(result.stdout.decode("utf-8"))
        entries = ServerSnapshots(server=server.address)
        print(f"Datasets on {entries.server}:")
        for name in names:
            entries.datasets.append(parse_snapshot_line(name))
            print(f"  {name}")
        response.append(entries)
    return response