# scannode

Building blocks for a scan node that runs detection bots in containers and
hands them blocks, transactions and alerts to evaluate.

## What is in the package

- `scannode.config` – the node's YAML configuration as dataclasses (`Config`,
  `LocalModeConfig`, `LogConfig`, …) with their defaults. `config_from_dict`
  builds a `Config` from parsed YAML, `load_config_file` and
  `get_config_for_container` read it from a directory, `apply_context_defaults`
  sets the in-container paths, `init_log_level` sets the root log level
  (`trace` is accepted as well as the usual levels). Errors raise `ConfigError`.
- `scannode.agents` – `AgentConfig` and `ShardConfig`: container naming, image
  hashes (`split_image_ref`), sharding and config comparison (`equal`).
- `scannode.resources` – `get_agent_resource_limits`, `cpus_to_microseconds`
  and `mib_to_bytes` for per-bot CPU and memory limits.
- `scannode.botreq` – request, response and result types, and
  `make_result_channels()`, which returns a `ResultChannels` of queues.
- `scannode.botvalidation` – response and finding validation
  (`ValidationError`), block-range and shard rules (`should_process_block`,
  `is_on_alert_shard`), hex block number decoding and combiner subscriptions.
- `scannode.bot_client` – `BotClient`, which dials a bot, initializes it,
  records its alert subscriptions and processes its tx, block and combination
  request queues on background threads with periodic health checks;
  `BotClientFactory` creates clients that share dependencies.
- `scannode.sender` – `Sender`, which fans requests out to the bots of a pool,
  counts dropped requests when a bot's buffer is full and reports health as
  `HealthReport` items.
- `scannode.containers` – `BotContainerClient` launches, stops and tears down
  bot containers; `new_bot_container_config` describes a bot's container.
- `scannode.manifest` – builds the JSON release manifest.
- `scannode.errorcounter` (`ErrorCounter`), `scannode.health`
  (`default_health_server_err_handler`, which raises `HealthServerError` for
  anything but a shutdown), `scannode.release` (build release info) and
  `scannode.constants` (container names, ports, paths and environment
  variable names).

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Building a release manifest

The `scannode-manifest` command reads its inputs from the environment and
prints the manifest as indented JSON. It exits with status 1 if the embedded
release configuration is invalid.

| Variable        | Meaning                               |
|-----------------|---------------------------------------|
| `VERSION`       | release version, e.g. `v0.5.0`        |
| `GITHUB_SHA`    | commit hash of the release            |
| `IMAGE_REF`     | node image used for both services     |
| `RELEASE_NOTES` | release notes, may embed a config     |

```
VERSION=v0.5.0 GITHUB_SHA=abc IMAGE_REF=registry.example.com/a@sha256:b scannode-manifest
```

Release notes can carry a YAML release configuration between the markers
`# @begin release_config` and `# @end release_config`:

```yaml
# @begin release_config
autoUpdateInHours: 4
deprecationPolicy:
  supportedVersions:
    - v0.4.0
    - v0.3.0
  activatesInHours: 72
# @end release_config
```

Missing values fall back to defaults: the release version as the only
supported version, 168 hours before a deprecation activates and 24 hours for
auto-update.

From Python:

```python
from datetime import datetime, timezone

from scannode.manifest import build_manifest_with_timestamp

ts = datetime(2020, 1, 1, 12, 0, tzinfo=timezone.utc)
print(build_manifest_with_timestamp(ts, "v0.5.0", "abc", "registry.example.com/a@sha256:b", ""))
```

## Loading the node configuration

`get_config_for_container(forta_dir, chain_trace_enabled)` loads exactly one
of `config.yml` or `wrapped-config.yml` (the latter holding the configuration
under the `x-forta-config` key) from the directory, fills in defaults, sets
the key directory and combiner cache paths under it, enables tracing when
`chain_trace_enabled` is true and local mode is off, and creates the combiner
cache file as `{}` if it does not exist. It raises `ConfigError` when neither
file or both files are present, or when the wrapped file lacks the key.

## What the package does not do

- It has no container-engine client, bot RPC dialer, message bus client or bot
  pool of its own. `BotContainerClient`, `BotClient` and `Sender` work through
  objects you pass in that provide the methods they call.
- It does not load or decrypt the node's private key.
- It has no command that runs a node; the only command is
  `scannode-manifest`.