import json
from unittest import mock

import pytest

from brig.config import Config, ConfigStore, DatasetConfig, Server
from brig.models import SyncState
from brig.remote import CommandResult
from brig.server import create_app, main
from brig.sync import SyncRegistry

SERVER_A = Server(name="a", user="admin", address="10.0.0.1", pool="tank")
SERVER_B = Server(name="b", user="admin", address="10.0.0.2", pool="backup")
DATASET = DatasetConfig(name="data", owner="alice", server="a", snapshot_lifetime="1d")


class FakeHost:
    def __init__(self, snapshots=()):
        self.snapshots = list(snapshots)
        self.commands = []


class FakeSession:
    def __init__(self, host):
        self.host = host

    def run(self, args):
        args = list(args)
        self.host.commands.append(args)
        if args[:2] == ["zfs", "list"]:
            listing = "NAME\n" + "".join(f"{s}\n" for s in self.host.snapshots)
            return CommandResult(stdout=listing.encode())
        return CommandResult()

    def close(self):
        pass


def make_client(tmp_path, hosts, registry=None):
    store = ConfigStore(
        Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET]), tmp_path / "config.json"
    )
    app = create_app(store, registry or SyncRegistry(), lambda user, address: FakeSession(hosts[address]))
    return app.test_client()


def test_status_lists_snapshots_per_server(tmp_path):
    hosts = {"10.0.0.1": FakeHost(["tank/data@s1"]), "10.0.0.2": FakeHost(["backup/data@s1"])}
    response = make_client(tmp_path, hosts).get("/status")
    assert response.status_code == 200
    assert response.get_json() == [
        {"server": "10.0.0.1", "datasets": [{"pool": "tank", "dataset": "data", "snapshot": "s1"}]},
        {"server": "10.0.0.2", "datasets": [{"pool": "backup", "dataset": "data", "snapshot": "s1"}]},
    ]


def test_clean_destroys_expired_snapshots(tmp_path):
    hosts = {
        "10.0.0.1": FakeHost(["tank/data@brig-20000101000000", "tank/data@manual"]),
        "10.0.0.2": FakeHost([]),
    }
    response = make_client(tmp_path, hosts).get("/clean")
    assert response.get_json() is None
    assert ["zfs", "destroy", "tank/data@brig-20000101000000"] in hosts["10.0.0.1"].commands
    assert not any(c[:2] == ["zfs", "destroy"] for c in hosts["10.0.0.2"].commands)


def test_switch_unknown_dataset_reports_error(tmp_path):
    response = make_client(tmp_path, {}).post(
        "/switch", json={"dataset": "nope", "new_server": "b"}
    )
    assert response.status_code == 200
    assert response.get_json() == {"DatasetNotFoundInConfig": {"dataset": "nope"}}


def test_switch_rejects_malformed_body(tmp_path):
    response = make_client(tmp_path, {}).post("/switch", json={"dataset": "data"})
    assert response.status_code == 400


def test_sync_rejects_non_json_body(tmp_path):
    response = make_client(tmp_path, {}).post("/sync", data="datasets")
    assert response.status_code == 400


def test_sync_unknown_dataset_reports_error(tmp_path):
    response = make_client(tmp_path, {}).post("/sync", json={"datasets": ["nope"]})
    assert response.get_json() == {"DatasetNotFoundInConfig": {"dataset": "nope"}}


def test_sync_all_returns_running_transfers(tmp_path):
    registry = SyncRegistry()
    registry.add(SyncState(dataset="data", src="a", dst="b", total_bytes=10, sent_bytes=3))
    hosts = {"10.0.0.1": FakeHost(), "10.0.0.2": FakeHost()}
    response = make_client(tmp_path, hosts, registry).get("/sync")
    assert response.get_json() == [
        {"dataset": "data", "src": "a", "dst": "b", "total_bytes": 10, "sent_bytes": 3}
    ]
    assert hosts["10.0.0.1"].commands == []


def test_sync_in_progress_returns_null(tmp_path):
    registry = SyncRegistry()
    registry.add(SyncState(dataset="data", src="a", dst="b"))
    response = make_client(tmp_path, {}, registry).post("/sync", json={"datasets": ["data"]})
    assert response.get_json() is None


def test_main_serves_on_port_3030(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(Config(servers=[SERVER_A], datasets=[DATASET]).to_dict()))
    with mock.patch("flask.Flask.run") as run:
        assert main(["-c", str(path)]) == 0
    run.assert_called_once_with(host="0.0.0.0", port=3030)


def test_main_fails_without_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        main(["--config", str(tmp_path / "missing.json")])