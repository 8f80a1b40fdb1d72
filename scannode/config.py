"""Node configuration: the YAML file layout, defaults and loading."""

import logging
import os
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Dict, List, Optional, Union, get_args, get_origin

import yaml

from .constants import (
    DEFAULT_COMBINER_CACHE_FILE_NAME,
    DEFAULT_CONFIG_FILE_NAME,
    DEFAULT_CONFIG_WRAPPER_KEY,
    DEFAULT_CONTAINER_FORTA_DIR_PATH,
    DEFAULT_KEYS_DIR_NAME,
    DEFAULT_WRAPPED_CONFIG_FILE_NAME,
)
from .resources import ResourcesConfig


class ConfigError(Exception):
    """The configuration could not be read or is not valid."""


def _field(
    default: Any = MISSING,
    *,
    factory: Any = None,
    key: Optional[str] = None,
    fallback: bool = False,
    runtime: bool = False,
) -> Any:
    """Declare a config field.

    ``fallback`` marks fields whose default also replaces a zero value read
    from the file; ``runtime`` marks fields that are never read from the file.
    """
    meta: Dict[str, Any] = {"fallback": fallback, "runtime": runtime}
    if key is not None:
        meta["key"] = key
    if factory is not None:
        return field(default_factory=factory, metadata=meta)
    return field(default=default, metadata=meta)


@dataclass
class JsonRpcConfig:
    url: str = ""
    headers: Dict[str, str] = _field(factory=dict)


@dataclass
class RateLimitConfig:
    rate: float = 0.0
    burst: int = 0


@dataclass
class PublicAPIProxyConfig:
    url: str = _field("https://api.forta.network", fallback=True)
    headers: Dict[str, str] = _field(factory=dict)
    rate_limit: Optional[RateLimitConfig] = None


@dataclass
class ScannerConfig:
    json_rpc: JsonRpcConfig = _field(factory=JsonRpcConfig)
    disable_autostart: bool = False
    block_rate_limit: int = _field(200, fallback=True)
    block_max_age_seconds: int = _field(600, fallback=True)
    retry_interval_seconds: int = _field(8, fallback=True)
    alert_api_url: str = _field(
        "https://api.forta.network/graphql", key="apiUrl", fallback=True
    )


@dataclass
class TraceConfig:
    json_rpc: JsonRpcConfig = _field(factory=JsonRpcConfig)
    enabled: bool = False


@dataclass
class JsonRpcProxyConfig:
    json_rpc: JsonRpcConfig = _field(factory=JsonRpcConfig)
    rate_limit: Optional[RateLimitConfig] = None


@dataclass
class LogConfig:
    level: str = _field("info", fallback=True)
    max_log_size: str = _field("50m", fallback=True)
    max_log_files: int = _field(10, fallback=True)


@dataclass
class IPFSConfig:
    gateway_url: str = _field("https://ipfs.forta.network", fallback=True)
    api_url: str = _field("https://ipfs.forta.network", fallback=True)
    username: str = ""
    password: str = ""


@dataclass
class RegistryConfig:
    chain_id: int = _field(137, fallback=True)
    json_rpc: JsonRpcConfig = _field(
        factory=lambda: JsonRpcConfig(url="https://polygon-rpc.com"), fallback=True
    )
    ipfs: IPFSConfig = _field(factory=IPFSConfig)
    container_registry: str = _field("disco.forta.network", fallback=True)
    username: str = ""
    password: str = ""
    disable: bool = False
    check_interval_seconds: int = _field(15, fallback=True)
    release_distribution_url: str = _field(
        "https://dist.forta.network/manifests/releases", fallback=True
    )


@dataclass
class BatchConfig:
    skip_empty: bool = False
    interval_seconds: Optional[int] = _field(15, fallback=True)
    metrics_bucket_interval_seconds: Optional[int] = _field(60, fallback=True)
    max_alerts: Optional[int] = _field(1000, fallback=True)


@dataclass
class PublisherConfig:
    skip_publish: bool = False
    always_publish: bool = False
    api_url: str = _field("https://alerts.forta.network", fallback=True)
    ipfs: IPFSConfig = _field(factory=IPFSConfig)
    batch: BatchConfig = _field(factory=BatchConfig)


@dataclass
class ENSConfig:
    default_contract: bool = False
    contract_address: str = _field(
        "0x08f42fcc52a9C2F391bF507C4E8688D0b53e1bd7", fallback=True
    )
    override: bool = False


@dataclass
class TelemetryConfig:
    url: str = _field("https://alerts.forta.network/telemetry", fallback=True)
    custom_url: str = ""
    disable: bool = False


@dataclass
class AutoUpdateConfig:
    disable: bool = False
    update_delay: Optional[int] = None
    track_prereleases: bool = False
    check_interval_seconds: int = _field(60, fallback=True)


@dataclass
class AgentLogsConfig:
    url: str = _field("https://alerts.forta.network/logs/agents", fallback=True)
    disable: bool = False
    send_interval_seconds: int = _field(60, fallback=True)


@dataclass
class ContainerRegistryConfig:
    username: str = ""
    password: str = ""


@dataclass
class RuntimeLimits:
    start_block: Optional[int] = None
    stop_block: Optional[int] = None
    stop_timeout_seconds: int = _field(30, fallback=True)
    start_combiner: int = 0
    stop_combiner: int = 0


@dataclass
class RedisConfig:
    address: str = ""
    password: str = ""
    db: int = 0


@dataclass
class RedisClusterConfig:
    addresses: List[str] = _field(factory=list)
    password: str = ""
    db: int = 0


@dataclass
class DeduplicationConfig:
    ttl_seconds: int = _field(300, fallback=True)
    redis: Optional[RedisConfig] = None
    redis_cluster: Optional[RedisClusterConfig] = None


@dataclass
class StandaloneModeConfig:
    enable: bool = False
    bot_containers: List[str] = _field(factory=list)


@dataclass
class LocalShardedBot:
    bot_image: Optional[str] = None
    shards: int = 0  # number of shards for the bot
    target: int = 0  # target per shard


@dataclass
class LocalModeConfig:
    enable: bool = False
    include_metrics: bool = False
    bot_ids: List[str] = _field(factory=list)
    bot_images: List[str] = _field(factory=list)
    webhook_url: str = ""
    log_file_name: str = ""
    log_to_stdout: bool = False
    container_registry: Optional[ContainerRegistryConfig] = None
    runtime_limits: RuntimeLimits = _field(factory=RuntimeLimits)
    force_enable_inspection: bool = False
    deduplication: Optional[DeduplicationConfig] = None
    sharded_bots: List[Optional[LocalShardedBot]] = _field(factory=list)
    private_key_hex: str = ""
    standalone: StandaloneModeConfig = _field(factory=StandaloneModeConfig)

    def is_standalone(self) -> bool:
        """Standalone mode only counts as a setting of local mode."""
        return self.enable and self.standalone.enable


@dataclass
class InspectionConfig:
    block_interval: Optional[int] = None
    network_saving_mode: bool = False
    inspect_at_startup: Optional[bool] = _field(True, fallback=True)


@dataclass
class StorageConfig:
    provide: str = _field("https://ipfs-router.forta.network/provide", fallback=True)
    reframe: str = _field("https://ipfs-router.forta.network/reframe", fallback=True)


@dataclass
class CombinerConfig:
    alert_api_url: str = _field("http://forta-public-api:8535", fallback=True)
    combiner_cache_path: str = _field("", key="alertCachePath")
    query_interval: int = 0


@dataclass
class AdvancedConfig:
    safe_offset: bool = False
    ipfs_experiment: bool = False
    multicall_address: str = ""


@dataclass
class Config:
    # runtime values, never read from the file
    development: bool = _field(False, runtime=True)
    forta_dir: str = _field("", runtime=True)
    key_dir_path: str = _field("", runtime=True)
    passphrase: str = _field("", runtime=True)

    chain_id: int = _field(1, fallback=True)
    scan: ScannerConfig = _field(factory=ScannerConfig)
    trace: TraceConfig = _field(factory=TraceConfig)
    registry: RegistryConfig = _field(factory=RegistryConfig)
    publish: PublisherConfig = _field(factory=PublisherConfig)
    json_rpc_proxy: JsonRpcProxyConfig = _field(factory=JsonRpcProxyConfig)
    public_api_proxy: PublicAPIProxyConfig = _field(factory=PublicAPIProxyConfig)
    log: LogConfig = _field(factory=LogConfig)
    resources: ResourcesConfig = _field(factory=ResourcesConfig)
    ens: ENSConfig = _field(factory=ENSConfig)
    telemetry: TelemetryConfig = _field(factory=TelemetryConfig)
    auto_update: AutoUpdateConfig = _field(factory=AutoUpdateConfig)
    agent_logs: AgentLogsConfig = _field(factory=AgentLogsConfig)
    local_mode: LocalModeConfig = _field(factory=LocalModeConfig)
    inspection: InspectionConfig = _field(factory=InspectionConfig)
    storage: StorageConfig = _field(factory=StorageConfig)
    combiner: CombinerConfig = _field(factory=CombinerConfig)
    advanced: AdvancedConfig = _field(factory=AdvancedConfig)

    def config_file_path(self) -> str:
        return os.path.join(self.forta_dir, DEFAULT_CONFIG_FILE_NAME)

    def bots_to_wait(self) -> int:
        """Count the bots to wait for in local mode."""
        if not self.local_mode.enable:
            return 0
        count = len(self.local_mode.bot_images) + len(self.local_mode.standalone.bot_containers)
        # sharded bots run on several containers: shards * target
        count += sum(bot.target * bot.shards for bot in self.local_mode.sharded_bots if bot is not None)
        return count


_SIMPLE_TYPES = {"int": int, "float": float, "bool": bool, "str": str}


def _field_type(f: Any) -> Any:
    """Return the declared type of a dataclass field as a type object."""
    tp = f.type
    if isinstance(tp, str):
        resolved = _SIMPLE_TYPES.get(tp)
        if resolved is None:
            raise ConfigError(f"{f.name}: unsupported type {tp!r}")
        return resolved
    return tp


def _camel(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(part.capitalize() for part in rest)


def _is_zero(value: Any, tp: Any) -> bool:
    if get_origin(tp) is Union:
        return value is None
    if is_dataclass(tp):
        return value == tp()
    return not value


def _convert(tp: Any, raw: Any, path: str) -> Any:
    origin = get_origin(tp)
    if origin is Union:
        if raw is None:
            return None
        inner = next(arg for arg in get_args(tp) if arg is not type(None))
        return _convert(inner, raw, path)
    if is_dataclass(tp):
        return _load(tp, raw, path)
    if origin is list:
        if not isinstance(raw, list):
            raise ConfigError(f"{path}: expected a list")
        (elem,) = get_args(tp)
        return [_convert(elem, item, f"{path}[{pos}]") for pos, item in enumerate(raw)]
    if origin is dict:
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{path}: expected a mapping")
        key_tp, value_tp = get_args(tp)
        return {
            _convert(key_tp, k, path): _convert(value_tp, v, f"{path}.{k}")
            for k, v in raw.items()
        }
    if tp is bool:
        if isinstance(raw, bool):
            return raw
        raise ConfigError(f"{path}: expected a boolean")
    if tp is int:
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        raise ConfigError(f"{path}: expected an integer")
    if tp is float:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
        raise ConfigError(f"{path}: expected a number")
    if tp is str:
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, (str, int, float)):
            return str(raw)
        raise ConfigError(f"{path}: expected a string")
    raise ConfigError(f"{path}: unsupported type {tp!r}")


def _load(cls: type, data: Any, where: str) -> Any:
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where or 'config'}: expected a mapping")
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.metadata.get("runtime"):
            continue
        key = f.metadata.get("key") or _camel(f.name)
        raw = data.get(key)
        if raw is None:
            continue
        path = f"{where}.{key}" if where else key
        tp = _field_type(f)
        value = _convert(tp, raw, path)
        if f.metadata.get("fallback") and _is_zero(value, tp):
            continue
        kwargs[f.name] = value
    return cls(**kwargs)


def config_from_dict(data: Any) -> Config:
    """Build a Config from parsed YAML data and fill in the defaults."""
    return _load(Config, data, "")


def _apply_context_defaults(cfg: Config, chain_trace_enabled: bool, forta_dir: str) -> None:
    if chain_trace_enabled and not cfg.local_mode.enable:
        cfg.trace.enabled = True
    if cfg.ens.default_contract:
        cfg.ens.contract_address = ""
    cfg.forta_dir = forta_dir
    cfg.key_dir_path = os.path.join(forta_dir, DEFAULT_KEYS_DIR_NAME)
    cfg.combiner.combiner_cache_path = os.path.join(forta_dir, DEFAULT_COMBINER_CACHE_FILE_NAME)


def apply_context_defaults(cfg: Config, chain_trace_enabled: bool = False) -> None:
    """Apply the defaults that hold inside the node containers."""
    _apply_context_defaults(cfg, chain_trace_enabled, DEFAULT_CONTAINER_FORTA_DIR_PATH)


def read_yaml_file(filename: str) -> Any:
    """Parse one YAML document from a file."""
    try:
        with open(filename, encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise ConfigError(f"failed to read {filename}: {exc}") from exc
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse {filename}: {exc}") from exc
    if not documents:
        raise ConfigError(f"failed to parse {filename}: EOF")
    return documents[0]


def _check_config_file_exists(config_path: str) -> Optional[str]:
    """Return None when the file exists, otherwise the reason it cannot be used."""
    try:
        os.stat(config_path)
    except FileNotFoundError:
        return "config file not found"
    except OSError as exc:
        return f"failed to check if config file exists: {exc}"
    return None


def load_config_file(forta_dir: str = DEFAULT_CONTAINER_FORTA_DIR_PATH) -> Config:
    """Load the plain or the wrapped config file from ``forta_dir``; exactly one must exist."""
    loaded: List[Config] = []
    problems: List[str] = []

    plain_path = os.path.join(forta_dir, DEFAULT_CONFIG_FILE_NAME)
    problem = _check_config_file_exists(plain_path)
    if problem is None:
        loaded.append(config_from_dict(read_yaml_file(plain_path)))
    else:
        problems.append(problem)

    wrapped_path = os.path.join(forta_dir, DEFAULT_WRAPPED_CONFIG_FILE_NAME)
    problem = _check_config_file_exists(wrapped_path)
    if problem is None:
        wrapped = read_yaml_file(wrapped_path)
        if not isinstance(wrapped, Mapping) or wrapped.get(DEFAULT_CONFIG_WRAPPER_KEY) is None:
            raise ConfigError(
                "wrapped config file was found but did not have the config under "
                f"'{DEFAULT_CONFIG_WRAPPER_KEY}'"
            )
        loaded.append(config_from_dict(wrapped[DEFAULT_CONFIG_WRAPPER_KEY]))
    else:
        problems.append(problem)

    if len(loaded) == 2:
        raise ConfigError(
            "multiple config files found in the forta dir - please use only one of them"
        )
    if not loaded:
        raise ConfigError(f"failed to load any of the config files: {', '.join(problems)}")
    return loaded[0]


def get_config_for_container(
    forta_dir: str = DEFAULT_CONTAINER_FORTA_DIR_PATH, chain_trace_enabled: bool = False
) -> Config:
    """Load the config as a node container sees it and prepare the combiner cache file."""
    cfg = load_config_file(forta_dir)
    _apply_context_defaults(cfg, chain_trace_enabled, forta_dir)

    cache_path = cfg.combiner.combiner_cache_path
    if cache_path and not os.path.exists(cache_path):
        try:
            with open(cache_path, "w", encoding="utf-8") as fh:
                fh.write("{}")
            os.chmod(cache_path, 0o666)
        except OSError as exc:
            raise ConfigError(f"failed to create {cache_path}: {exc}") from exc
    return cfg


def parse_big_int(num: int) -> Optional[int]:
    """Return ``num``, or None for zero."""
    return num if num != 0 else None


TRACE_LEVEL = 5

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE_LEVEL,
}


def init_log_level(cfg: Config) -> int:
    """Set the root log level from the config and return it."""
    if cfg.log.level:
        level = _LEVELS.get(cfg.log.level.lower())
        if level is None:
            raise ConfigError(f"not a valid log level: {cfg.log.level!r}")
    else:
        level = logging.INFO
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%Y-%m-%dT%H:%M:%S%z"
    )
    for handler in root.handlers:
        handler.setFormatter(formatter)
    return level