# brig

brig keeps ZFS datasets replicated between several servers and tracks
which server currently owns each dataset. A small HTTP server reaches
every machine over SSH and runs `zfs` there; a command-line client asks
the server what snapshots exist.

## Installation

```
pip install .
```

For the tests:

```
pip install .[test]
pytest
```

The server host needs key-based SSH access to every server in its
configuration. Host keys must already be known (system `known_hosts`);
unknown hosts are rejected. The remote users must be allowed to run
`zfs`, and `sudo zfs set readonly=...` for switching ownership.

## Server

Start the server with a configuration file (default `./config.json`):

```
brig-server -c ./config.json
```

It listens on port 3030 on all interfaces. An example configuration:

```json
{
  "servers": [
    {"name": "alpha", "user": "backup", "address": "10.0.0.1", "pool": "tank"},
    {"name": "beta",  "user": "backup", "address": "10.0.0.2", "pool": "tank"}
  ],
  "datasets": [
    {"name": "home", "owner": "ops", "server": "alpha", "snapshot_lifetime": "2w"}
  ]
}
```

`server` names the server that owns the dataset. `snapshot_lifetime` is a
number followed by `d` (days), `w` (weeks, 7 days) or `M` (months,
30 days).

### Endpoints

| Method | Path      | Body                                        | Reply |
|--------|-----------|---------------------------------------------|-------|
| GET    | `/status` |                                             | For every server (labelled by its address), the snapshots `zfs list -t snapshot` shows, split into pool, dataset and snapshot |
| GET    | `/sync`   |                                             | Starts replicating every dataset not already in progress from its owner to each other server; replies with all running transfers |
| POST   | `/sync`   | `{"datasets": ["home"]}`                    | Same for the named datasets; replies `null` if one of them is already in progress |
| GET    | `/clean`  |                                             | Destroys `@brig-YYYYmmddHHMMSS` snapshots older than their dataset's lifetime on every server; replies `null` |
| POST   | `/switch` | `{"dataset": "home", "new_server": "beta"}` | Moves ownership and saves the configuration file; replies `null` |

A sync takes a new snapshot `pool/dataset@brig-<timestamp>` on the owner,
finds the newest snapshot the destination also has, and streams
`zfs send -i` into `zfs recv -F` on the destination. The reply comes once
every started transfer knows its size; each entry gives `dataset`, `src`,
`dst`, `total_bytes` and `sent_bytes`. A transfer leaves the list when
it finishes.

A switch goes ahead only when every server has the same latest snapshot
of the dataset and `zfs diff` against it on the owner shows no changes.
The old owner's copy is then set `readonly=on`, the new one
`readonly=off`, and the configuration file is rewritten as indented JSON.

Failures are returned as a JSON error value: a bare name such as
`"FailedToWaitForZfsSend"`, or a name mapped to its details, for example
`{"DatasetNotSynced": {"dataset": "home"}}`. A request body that is not
valid for its endpoint gets HTTP 400.

## Client

The client reads `config.json` from the current directory:

```json
{"server_url": "http://localhost:3030"}
```

and prints the server's `/status` reply as indented JSON:

```
brig list
```

## Python use

The pieces can be used directly:

- `brig.config`: `Config` (`load`, `find_server`, `find_dataset`),
  `Server`, `DatasetConfig`, and `ConfigStore` (`snapshot`,
  `set_dataset_server`, `save`).
- `brig.server.create_app(store, registry, connect)` returns the Flask
  application; `connect(user, address)` opens a session and defaults to
  `brig.remote.create_ssh_session`.
- `brig.status.collect_status`, `brig.clean.clean`, `brig.switch.switch`,
  `brig.sync.sync` and `brig.sync.sync_all` carry out the endpoints.
- `brig.remote` holds the individual `zfs` operations and `SshSession`.
- `brig.errors.BrigError` carries an `ErrorKind` and its details;
  `to_json()` and `error_from_json()` convert the wire form.
- `brig.client.fetch_status` and `format_status` are what `brig list` uses.

## Limitations

- There is no authentication on the HTTP endpoints.
- Sync is incremental only: the destination must already hold a snapshot
  in common with the owner, otherwise it fails with `NoCommonSnapshot`.
  There is no initial full send.
- Running transfers are kept in memory; they are not visible after a
  server restart, and a failed transfer is only logged.
- The client has a single command, `list`.