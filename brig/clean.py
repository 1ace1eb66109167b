"""Destroy brig snapshots that have outlived their dataset's lifetime."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from .config import Config
from .remote import create_ssh_session

_BRIG_SNAPSHOT = re.compile(r"@brig-(\d{14})\Z")
_SIGNED = re.compile(r"[+-]?[0-9]+")
_UNIT_DAYS = {"M": 30, "w": 7, "d": 1}


def parse_lifetime(lifetime: str) -> timedelta:
    """Parse a lifetime such as ``3d``, ``2w`` or ``1M`` (30 days)."""
    if not lifetime:
        raise ValueError("snapshot lifetime is empty")
    unit = lifetime[-1]
    if unit not in _UNIT_DAYS:
        raise ValueError(f"unknown snapshot lifetime unit in {lifetime!r}")
    count = lifetime.rstrip(unit)
    if _SIGNED.fullmatch(count) is None:
        raise ValueError(f"snapshot lifetime {lifetime!r} is not a number of units")
    return timedelta(days=_UNIT_DAYS[unit] * int(count))


def expiration_cutoff(lifetime: str, now: datetime | None = None) -> str:
    """Timestamp before which brig snapshots count as expired."""
    moment = (now or datetime.now()) - parse_lifetime(lifetime)
    return moment.strftime("%Y%m%d%H%M%S")


def expired_snapshots(
    lines: Iterable[str], pool: str, dataset: str, cutoff: str
) -> list[str]:
    """Select brig snapshots of ``pool/dataset`` taken before ``cutoff``."""
    prefix = f"{pool}/{dataset}@brig-"
    expired = []
    for line in lines:
        if not line.startswith(prefix):
            continue
        match = _BRIG_SNAPSHOT.search(line)
        if match and match.group(1) < cutoff:
            expired.append(line)
    return expired


def clean(
    config: Config,
    connect: Callable[[str, str], Any] = create_ssh_session,
    now: datetime | None = None,
) -> list[str]:
    """Destroy expired brig snapshots on every server; return what was destroyed."""
    destroyed = []
    for dataset in config.datasets:
        cutoff = expiration_cutoff(dataset.snapshot_lifetime, now)
        for server in config.servers:
            session = connect(server.user, server.address)
            try:
                result = session.run(
                    [
                        "zfs",
                        "list",
                        "-t",
                        "snapshot",
                        "-o",
                        "name",
                        "-s",
                        "creation",
                        f"{server.pool}/{dataset.name}",
                    ]
                )
                listing = result.stdout.decode("utf-8", errors="replace").splitlines()
                for snapshot in expired_snapshots(
                    listing, server.pool, dataset.name, cutoff
                ):
                    session.run(["zfs", "destroy", snapshot])
                    destroyed.append(snapshot)
            finally:
                session.close()
    return destroyed