"""HTTP server exposing status, sync, clean and switch operations."""

from __future__ import annotations

import argparse
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

from flask import Flask, abort, request

from .clean import clean
from .config import Config, ConfigStore
from .errors import BrigError
from .models import SwitchRequest, SyncRequest
from .remote import create_ssh_session
from .status import collect_status
from .switch import switch
from .sync import SyncRegistry, sync, sync_all

HOST = "0.0.0.0"
PORT = 3030
_VERSION = "0.1.0"


def create_app(
    store: ConfigStore,
    registry: SyncRegistry | None = None,
    connect: Callable[[str, str], Any] = create_ssh_session,
) -> Flask:
    """Build the web application around a configuration store and sync registry."""
    registry = registry if registry is not None else SyncRegistry()
    app = Flask(__name__)

    def reply(value: Any) -> Any:
        return app.response_class(json.dumps(value), mimetype="application/json")

    def body(model: Any) -> Any:
        try:
            return model.from_dict(request.get_json(silent=True))
        except ValueError:
            abort(400)

    @app.errorhandler(BrigError)
    def _brig_error(exc: BrigError) -> Any:
        return reply(exc.to_json())

    @app.route("/status", methods=["GET"])
    def _status() -> Any:
        entries = collect_status(store.snapshot(), connect)
        return reply([entry.to_dict() for entry in entries])

    @app.route("/sync", methods=["GET"])
    def _sync_all() -> Any:
        states = sync_all(store, registry, connect)
        return reply([state.to_dict() for state in states])

    @app.route("/sync", methods=["POST"])
    def _sync() -> Any:
        states = sync(body(SyncRequest), store, registry, connect)
        if states is None:
            return reply(None)
        return reply([state.to_dict() for state in states])

    @app.route("/clean", methods=["GET"])
    def _clean() -> Any:
        clean(store.snapshot(), connect)
        return reply(None)

    @app.route("/switch", methods=["POST"])
    def _switch() -> Any:
        switch(body(SwitchRequest), store, connect)
        return reply(None)

    return app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="brig-server", description="Snap Conductor Server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_VERSION}")
    parser.add_argument(
        "-c",
        "--config",
        dest="config_file",
        type=Path,
        default=Path("./config.json"),
        help="config file",
    )
    args = parser.parse_args(argv)

    store = ConfigStore(Config.load(args.config_file), args.config_file)
    app = create_app(store, SyncRegistry())
    app.run(host=HOST, port=PORT)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())