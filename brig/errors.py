"""Error kinds reported by the brig server and client."""

from __future__ import annotations

import enum
import os
from typing import Any


class ErrorKind(enum.Enum):
    """Every failure the server can report, named as on the wire."""

    UNAUTHORIZED = "Unauthorized"
    SSH_SESSION_FAIL = "SshSessionFail"
    READ_ONLY_FAIL = "ReadOnlyFail"
    DATASET_NOT_FOUND_IN_CONFIG = "DatasetNotFoundInConfig"
    SERVER_NOT_FOUND_FROM_DATASET = "ServerNotFoundFromDataset"
    SERVER_NOT_FOUND_FROM_REQUEST = "ServerNotFoundFromRequest"
    ZFS_COMMAND_ERROR = "ZfsCommandError"
    CONFIG_IS_INVALID_JSON = "ConfigIsInvalidJson"
    ERROR_WRITING_CONFIG_FILE = "ErrorWritingConfigFile"
    DATASET_NOT_SYNCED = "DatasetNotSynced"
    NO_COMMON_SNAPSHOT = "NoCommonSnapshot"
    FAILED_TO_TAKE_STDOUT = "FailedToTakeStdout"
    FAILED_TO_TAKE_STDIN = "FailedToTakeStdin"
    FAILED_TO_READ_SEND_OUTPUT_TO_BUFFER = "FailedToReadSendOutputToBuffer"
    FAILED_TO_WRITE_BUFFER_TO_RECV_INPUT = "FailedToWriteBufferToRecvInput"
    FAILED_TO_SHUTDOWN_OUTPUT_STREAM = "FailedToShutdownOutputStream"
    FAILED_TO_WAIT_FOR_ZFS_SEND = "FailedToWaitForZfsSend"
    FAILED_TO_WAIT_FOR_ZFS_RECV = "FailedToWaitForZfsRecv"
    NO_SNAPSHOTS_FOUND = "NoSnapshotsFound"

    @property
    def fields(self) -> tuple[str, ...]:
        """Names of the details this kind carries, in wire order."""
        return _FIELDS.get(self, ())


_FIELDS: dict[ErrorKind, tuple[str, ...]] = {
    ErrorKind.SSH_SESSION_FAIL: ("user", "ip"),
    ErrorKind.READ_ONLY_FAIL: ("user", "ip"),
    ErrorKind.DATASET_NOT_FOUND_IN_CONFIG: ("dataset",),
    ErrorKind.SERVER_NOT_FOUND_FROM_DATASET: ("dataset", "server_name"),
    ErrorKind.SERVER_NOT_FOUND_FROM_REQUEST: ("server_name",),
    ErrorKind.ZFS_COMMAND_ERROR: ("msg",),
    ErrorKind.ERROR_WRITING_CONFIG_FILE: ("path",),
    ErrorKind.DATASET_NOT_SYNCED: ("dataset",),
    ErrorKind.NO_COMMON_SNAPSHOT: ("dataset",),
    ErrorKind.FAILED_TO_TAKE_STDOUT: ("to", "from"),
    ErrorKind.FAILED_TO_TAKE_STDIN: ("to", "from"),
    ErrorKind.NO_SNAPSHOTS_FOUND: ("pool", "dataset"),
}


class BrigError(Exception):
    """A failure of a given kind with its string details.

    Details whose names are Python keywords may be passed with a trailing
    underscore, e.g. ``from_="pool/ds@a"``.
    """

    def __init__(self, kind: ErrorKind | str, **kwargs: Any) -> None:
        kind = ErrorKind(kind)
        fields: dict[str, str] = {}
        for key, value in kwargs.items():
            name = key[:-1] if key.endswith("_") else key
            if isinstance(value, os.PathLike):
                value = os.fspath(value)
            if not isinstance(value, str):
                raise TypeError(f"{kind.value}.{name} must be a string")
            fields[name] = value
        if set(fields) != set(kind.fields):
            raise TypeError(
                f"{kind.value} takes fields {list(kind.fields)}, got {sorted(fields)}"
            )
        self.kind = kind
        self.fields = {name: fields[name] for name in kind.fields}
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.fields:
            return self.kind.value
        details = ", ".join(f"{k}={v}" for k, v in self.fields.items())
        return f"{self.kind.value} ({details})"

    def __repr__(self) -> str:
        return f"BrigError({self.kind.value!r}, {self.fields!r})"

    def to_json(self) -> str | dict[str, dict[str, str]]:
        """Return the wire form: a bare name, or a name mapped to its details."""
        if not self.kind.fields:
            return self.kind.value
        return {self.kind.value: dict(self.fields)}


def error_from_json(data: Any) -> BrigError:
    """Build a :class:`BrigError` from its wire form."""
    if isinstance(data, str):
        name, details = data, {}
    elif isinstance(data, dict) and len(data) == 1:
        ((name, details),) = data.items()
        if details is None:
            details = {}
        if not isinstance(details, dict):
            raise ValueError(f"details of {name!r} must be an object")
    else:
        raise ValueError(f"not an error value: {data!r}")
    try:
        kind = ErrorKind(name)
    except ValueError:
        raise ValueError(f"unknown error kind {name!r}") from None
    try:
        return BrigError(kind, **details)
    except TypeError as exc:
        raise ValueError(str(exc)) from exc