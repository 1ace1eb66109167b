from pathlib import Path

import pytest

from brig.config import Config, ConfigStore, DatasetConfig, Server
from brig.errors import BrigError, ErrorKind
from brig.models import SwitchRequest
from brig.remote import CommandResult
from brig.switch import is_synced, switch, switch_dataset

SERVER_A = Server(name="a", user="admin", address="10.0.0.1", pool="tank")
SERVER_B = Server(name="b", user="admin", address="10.0.0.2", pool="tank")
DATASET = DatasetConfig(name="data", owner="alice", server="a", snapshot_lifetime="1d")


class FakeHost:
    def __init__(self, snapshots=(), diff=b"", fail_diff=False):
        self.snapshots = list(snapshots)
        self.diff = diff
        self.fail_diff = fail_diff
        self.commands = []


class FakeSession:
    def __init__(self, host):
        self.host = host
        self.closed = False

    def run(self, args):
        args = list(args)
        self.host.commands.append(args)
        if args[:2] == ["zfs", "list"]:
            listing = "NAME\n" + "".join(f"{s}\n" for s in self.host.snapshots)
            return CommandResult(stdout=listing.encode())
        if args[:2] == ["zfs", "diff"]:
            if self.host.fail_diff:
                raise OSError("connection dropped")
            return CommandResult(stdout=self.host.diff)
        return CommandResult()

    def close(self):
        self.closed = True


class Connector:
    def __init__(self, hosts):
        self.hosts = hosts
        self.sessions = []

    def __call__(self, user, address):
        session = FakeSession(self.hosts[address])
        self.sessions.append(session)
        return session


def synced_hosts():
    return {
        "10.0.0.1": FakeHost(["tank/data@s2", "tank/data@s1"]),
        "10.0.0.2": FakeHost(["tank/data@s2", "tank/data@s1"]),
    }


def make_store(tmp_path: Path, dataset=DATASET) -> ConfigStore:
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[dataset])
    return ConfigStore(config, tmp_path / "config.json")


def test_is_synced_when_latest_matches_and_no_diff():
    hosts = synced_hosts()
    connect = Connector(hosts)
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET])
    assert is_synced(DATASET, config, connect) is True
    assert ["zfs", "diff", "tank/data@s2"] in hosts["10.0.0.1"].commands
    assert all(session.closed for session in connect.sessions)


def test_not_synced_when_latest_differs():
    hosts = synced_hosts()
    hosts["10.0.0.2"].snapshots = ["tank/data@s1"]
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET])
    assert is_synced(DATASET, config, Connector(hosts)) is False
    assert not any(c[:2] == ["zfs", "diff"] for c in hosts["10.0.0.1"].commands)


def test_not_synced_when_owner_has_changes():
    hosts = synced_hosts()
    hosts["10.0.0.1"].diff = b"M\t/tank/data/notes.txt\n"
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET])
    assert is_synced(DATASET, config, Connector(hosts)) is False


def test_not_synced_without_servers():
    config = Config(servers=[], datasets=[DATASET])
    assert is_synced(DATASET, config, Connector({})) is False


def test_is_synced_reports_missing_owner():
    dataset = DatasetConfig(name="data", owner="alice", server="z", snapshot_lifetime="1d")
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[dataset])
    with pytest.raises(BrigError) as info:
        is_synced(dataset, config, Connector(synced_hosts()))
    assert info.value.kind is ErrorKind.SERVER_NOT_FOUND_FROM_DATASET
    assert info.value.fields == {"dataset": "data", "server_name": "z"}


def test_is_synced_reports_diff_failure():
    hosts = synced_hosts()
    hosts["10.0.0.1"].fail_diff = True
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET])
    with pytest.raises(BrigError) as info:
        is_synced(DATASET, config, Connector(hosts))
    assert info.value.kind is ErrorKind.ZFS_COMMAND_ERROR
    assert info.value.fields == {"msg": "unable to zfs diff tank/data@s2"}


def test_is_synced_reports_missing_snapshots():
    hosts = synced_hosts()
    hosts["10.0.0.2"].snapshots = []
    config = Config(servers=[SERVER_A, SERVER_B], datasets=[DATASET])
    with pytest.raises(BrigError) as info:
        is_synced(DATASET, config, Connector(hosts))
    assert info.value.kind is ErrorKind.NO_SNAPSHOTS_FOUND


def test_switch_dataset_sets_readonly_and_owner(tmp_path):
    hosts = synced_hosts()
    store = make_store(tmp_path)
    switch_dataset(store, "data", SERVER_A, SERVER_B, Connector(hosts))
    assert ["sudo", "zfs", "set", "readonly=on", "tank/data"] in hosts["10.0.0.1"].commands
    assert ["sudo", "zfs", "set", "readonly=off", "tank/data"] in hosts["10.0.0.2"].commands
    assert store.snapshot().find_dataset("data").server == "b"


def test_switch_writes_new_owner_to_file(tmp_path):
    store = make_store(tmp_path)
    connect = Connector(synced_hosts())
    switch(SwitchRequest(dataset="data", new_server="b"), store, connect)
    saved = Config.load(tmp_path / "config.json")
    assert saved.find_dataset("data").server == "b"
    assert all(session.closed for session in connect.sessions)


def test_switch_unknown_dataset(tmp_path):
    store = make_store(tmp_path)
    with pytest.raises(BrigError) as info:
        switch(SwitchRequest(dataset="nope", new_server="b"), store, Connector(synced_hosts()))
    assert info.value.kind is ErrorKind.DATASET_NOT_FOUND_IN_CONFIG
    assert info.value.fields == {"dataset": "nope"}


def test_switch_refuses_unsynced_dataset(tmp_path):
    hosts = synced_hosts()
    hosts["10.0.0.1"].diff = b"+\t/tank/data/new.txt\n"
    store = make_store(tmp_path)
    with pytest.raises(BrigError) as info:
        switch(SwitchRequest(dataset="data", new_server="b"), store, Connector(hosts))
    assert info.value.kind is ErrorKind.DATASET_NOT_SYNCED
    assert not (tmp_path / "config.json").exists()
    assert store.snapshot().find_dataset("data").server == "a"


def test_switch_unknown_new_server(tmp_path):
    store = make_store(tmp_path)
    with pytest.raises(BrigError) as info:
        switch(SwitchRequest(dataset="data", new_server="z"), store, Connector(synced_hosts()))
    assert info.value.kind is ErrorKind.SERVER_NOT_FOUND_FROM_REQUEST
    assert info.value.fields == {"server_name": "z"}
    assert store.snapshot().find_dataset("data").server == "a"