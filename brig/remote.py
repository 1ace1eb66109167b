"""Remote ZFS operations carried out over SSH sessions."""

from __future__ import annotations

import re
import shlex
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import paramiko

from .config import DatasetConfig, Server
from .errors import BrigError, ErrorKind
from .models import SyncState

_CHUNK_SIZE = 64 * 1024
_COMMAND_ERRORS = (OSError, paramiko.SSHException)
_UNSIGNED = re.compile(r"\+?[0-9]+")
_U64_LIMIT = 2**64


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished remote command."""

    stdout: bytes = b""
    stderr: bytes = b""
    exit_status: int = 0


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _lines(text: str) -> list[str]:
    """Split text into lines the way line-oriented tools print them."""
    if not text:
        return []
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


class _RemoteReader:
    """Standard output of a running remote command."""

    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel

    def read(self, size: int) -> bytes:
        return self._channel.recv(size)

    def wait(self) -> int:
        return self._channel.recv_exit_status()

    def close(self) -> None:
        self._channel.close()


class _RemoteWriter:
    """Standard input of a running remote command."""

    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel

    def write(self, data: bytes) -> None:
        self._channel.sendall(data)

    def shutdown(self) -> None:
        self._channel.shutdown_write()

    def wait(self) -> int:
        return self._channel.recv_exit_status()

    def close(self) -> None:
        self._channel.close()


class SshSession:
    """An SSH connection on which commands are executed."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def connect(cls, user: str, address: str) -> SshSession:
        """Connect to ``address`` as ``user``, accepting only known host keys."""
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())
        try:
            client.connect(address, username=user)
        except BaseException:
            client.close()
            raise
        return cls(client)

    def _open(self, args: Sequence[str]) -> Any:
        transport = self._client.get_transport()
        if transport is None:
            raise paramiko.SSHException("session is not connected")
        channel = transport.open_session()
        channel.exec_command(shlex.join(args))
        return channel

    def run(self, args: Sequence[str]) -> CommandResult:
        """Run a command to completion and capture its output."""
        channel = self._open(args)
        try:
            channel.shutdown_write()
            with ThreadPoolExecutor(max_workers=1) as pool:
                stderr_future = pool.submit(channel.makefile_stderr("rb").read)
                stdout = channel.makefile("rb").read()
                stderr = stderr_future.result()
            status = channel.recv_exit_status()
        finally:
            channel.close()
        return CommandResult(stdout=stdout, stderr=stderr, exit_status=status)

    def open_reader(self, args: Sequence[str]) -> _RemoteReader:
        """Start a command and return a stream of its standard output."""
        return _RemoteReader(self._open(args))

    def open_writer(self, args: Sequence[str]) -> _RemoteWriter:
        """Start a command and return a stream feeding its standard input."""
        return _RemoteWriter(self._open(args))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SshSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_ssh_session(user: str, address: str) -> SshSession:
    """Open a session, reporting failure as a :class:`BrigError`."""
    try:
        return SshSession.connect(user, address)
    except _COMMAND_ERRORS as exc:
        raise BrigError(ErrorKind.SSH_SESSION_FAIL, user=user, ip=address) from exc


def set_readonly(session: Any, server: Server, dataset: str, is_on: bool) -> None:
    """Switch the readonly property of ``dataset`` on ``server``."""
    args = [
        "sudo",
        "zfs",
        "set",
        "readonly=on" if is_on else "readonly=off",
        f"{server.pool}/{dataset}",
    ]
    try:
        session.run(args)
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.READ_ONLY_FAIL, user=server.user, ip=server.address
        ) from exc


def _snapshot_listing_args(pool: str, dataset: str) -> list[str]:
    return ["zfs", "list", "-t", "snapshot", "-o", "name", "-S", "creation", f"{pool}/{dataset}"]


def list_snapshots(session: Any, pool: str, dataset: str) -> list[str]:
    """Return snapshot names of a dataset, newest first."""
    try:
        result = session.run(_snapshot_listing_args(pool, dataset))
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR,
            msg=f"failed to list snapshots: {pool}/{dataset}",
        ) from exc
    if result.stderr:
        raise BrigError(ErrorKind.ZFS_COMMAND_ERROR, msg=_decode(result.stderr))
    return _lines(_decode(result.stdout))[1:]


def find_latest_common_snapshot(
    dataset: str, src_snapshots: Sequence[str], dst_snapshots: Sequence[str]
) -> str:
    """Return the first source snapshot whose short name appears on the destination."""
    for src_snapshot in src_snapshots:
        _, sep, short_name = src_snapshot.partition("@")
        if not sep:
            raise ValueError(f"not a snapshot name: {src_snapshot!r}")
        if short_name in dst_snapshots:
            return src_snapshot
    raise BrigError(ErrorKind.NO_COMMON_SNAPSHOT, dataset=dataset)


def snapshot_name(pool: str, dataset: str, now: datetime) -> str:
    """Name of the snapshot brig takes at time ``now``."""
    return f"{pool}/{dataset}@brig-{now:%Y%m%d%H%M%S}"


def create_snapshot(
    session: Any, pool: str, dataset: str, now: datetime | None = None
) -> str:
    """Take a timestamped snapshot and return its full name."""
    snapshot = snapshot_name(pool, dataset, now or datetime.now())
    try:
        session.run(["zfs", "snapshot", snapshot])
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR, msg=f"failed to take snapshot {snapshot}"
        ) from exc
    return snapshot


def parse_send_size(stdout: str) -> int:
    """Extract the byte count from dry-run ``zfs send -P`` output."""
    size_line = next((line for line in _lines(stdout) if line.startswith("size")), None)
    fields = size_line.split() if size_line is not None else []
    if len(fields) < 2:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR, msg=f"couldn't find size for: {stdout}"
        )
    token = fields[1]
    if _UNSIGNED.fullmatch(token) is None or int(token) >= _U64_LIMIT:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR,
            msg=f"size is not a number!\ntried to parse {token}\nfrom: {stdout}",
        )
    return int(token)


def estimate_send_size(session: Any, source: str, target: str) -> int:
    """Estimate how many bytes an incremental send would transfer."""
    try:
        result = session.run(["zfs", "send", "-n", "-P", "-i", source, target])
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR,
            msg=f"failed to estimate size from {source} to {target}",
        ) from exc
    if result.stderr:
        raise BrigError(ErrorKind.ZFS_COMMAND_ERROR, msg=_decode(result.stderr))
    return parse_send_size(_decode(result.stdout))


def _pump(sender: Any, receiver: Any, state: SyncState) -> None:
    total = 0
    while True:
        try:
            chunk = sender.read(_CHUNK_SIZE)
        except _COMMAND_ERRORS as exc:
            raise BrigError(ErrorKind.FAILED_TO_READ_SEND_OUTPUT_TO_BUFFER) from exc
        if not chunk:
            break
        try:
            receiver.write(chunk)
        except _COMMAND_ERRORS as exc:
            raise BrigError(ErrorKind.FAILED_TO_WRITE_BUFFER_TO_RECV_INPUT) from exc
        total += len(chunk)
        state.sent_bytes = total
    try:
        receiver.shutdown()
    except _COMMAND_ERRORS as exc:
        raise BrigError(ErrorKind.FAILED_TO_SHUTDOWN_OUTPUT_STREAM) from exc
    try:
        sender.wait()
    except _COMMAND_ERRORS as exc:
        raise BrigError(ErrorKind.FAILED_TO_WAIT_FOR_ZFS_SEND) from exc
    try:
        receiver.wait()
    except _COMMAND_ERRORS as exc:
        raise BrigError(ErrorKind.FAILED_TO_WAIT_FOR_ZFS_RECV) from exc


def send_bytes(
    src_session: Any,
    dst_session: Any,
    source: str,
    target: str,
    dst: Server,
    dataset: DatasetConfig,
    state: SyncState,
) -> None:
    """Stream an incremental send into a receive on the destination, tracking progress."""
    try:
        sender = src_session.open_reader(["zfs", "send", "-i", source, target])
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR,
            msg=f"failed to spawn zfs send! from {source} to {target}",
        ) from exc
    try:
        try:
            receiver = dst_session.open_writer(
                ["zfs", "recv", "-F", f"{dst.pool}/{dataset.name}"]
            )
        except _COMMAND_ERRORS as exc:
            raise BrigError(
                ErrorKind.ZFS_COMMAND_ERROR,
                msg=f"failed to spawn zfs recv! from {source} to {target}",
            ) from exc
        try:
            _pump(sender, receiver, state)
        finally:
            receiver.close()
    finally:
        sender.close()


def get_latest_snapshot(session: Any, pool: str, dataset: str) -> str:
    """Return the newest snapshot of a dataset."""
    try:
        result = session.run(_snapshot_listing_args(pool, dataset))
    except _COMMAND_ERRORS as exc:
        raise BrigError(
            ErrorKind.ZFS_COMMAND_ERROR,
            msg=f"unable to list snapshots for {pool}/{dataset}",
        ) from exc
    lines = _lines(_decode(result.stdout))
    if len(lines) < 2:
        raise BrigError(ErrorKind.NO_SNAPSHOTS_FOUND, pool=pool, dataset=dataset)
    return lines[1]