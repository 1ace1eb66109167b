"""Command-line client that queries a brig server."""

from __future__ import annotations

import argparse
import json
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from .models import ServerSnapshots

CONFIG_FILE = Path("config.json")
_VERSION = "0.1.0"


@dataclass(frozen=True)
class ClientConfig:
    """Where the client finds the server."""

    server_url: str

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> ClientConfig:
        with open(path, encoding="utf-8") as handle:
            data: Any = json.load(handle)
        if not isinstance(data, dict) or not isinstance(data.get("server_url"), str):
            raise ValueError("client config needs a string 'server_url'")
        return cls(server_url=data["server_url"])


def fetch_status(server_url: str) -> list[ServerSnapshots]:
    """Ask the server for the snapshots held on every replica."""
    response = requests.get(f"{server_url}/status")
    data = json.loads(response.text)
    if not isinstance(data, list):
        raise ValueError("status response must be a list")
    return [ServerSnapshots.from_dict(item) for item in data]


def format_status(entries: Iterable[ServerSnapshots]) -> str:
    """Render status entries as indented JSON."""
    return json.dumps([entry.to_dict() for entry in entries], indent=2)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="brig", description="Brig Client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_VERSION}")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("list", help="list snapshots on every server")
    args = parser.parse_args(argv)

    config = ClientConfig.load(CONFIG_FILE)
    if args.command == "list":
        print(format_status(fetch_status(config.server_url)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())