"""Management of detection bot containers through a Docker client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from .agents import AgentConfig
from .config import LogConfig
from .constants import (
    DEFAULT_JSON_RPC_PROXY_PORT,
    DEFAULT_JWT_PROVIDER_PORT,
    DEFAULT_PUBLIC_API_PROXY_PORT,
    DOCKER_JSON_RPC_PROXY_CONTAINER_NAME,
    DOCKER_JWT_PROVIDER_CONTAINER_NAME,
    DOCKER_PUBLIC_API_PROXY_CONTAINER_NAME,
    DOCKER_SCANNER_CONTAINER_NAME,
    ENV_AGENT_GRPC_PORT,
    ENV_FORTA_BOT_ID,
    ENV_FORTA_BOT_OWNER,
    ENV_FORTA_CHAIN_ID,
    ENV_JSON_RPC_HOST,
    ENV_JSON_RPC_PORT,
    ENV_JWT_PROVIDER_HOST,
    ENV_JWT_PROVIDER_PORT,
    ENV_PUBLIC_API_PROXY_HOST,
    ENV_PUBLIC_API_PROXY_PORT,
)
from .resources import ResourcesConfig, get_agent_resource_limits

logger = logging.getLogger(__name__)

# Timeouts, in seconds
BOT_PULL_TIMEOUT = 10 * 60.0
BOT_START_TIMEOUT = 5 * 60.0
BOT_SHUTDOWN_TIMEOUT = 60.0

IMAGE_PULL_COOLDOWN_THRESHOLD = 5
IMAGE_PULL_COOLDOWN_DURATION = 10 * 60.0

# Label keys
LABEL_FORTA_IS_BOT = "network.forta.is-bot"
LABEL_FORTA_SUPERVISOR_STRATEGY_VERSION = "network.forta.supervisor-strategy-version"
LABEL_FORTA_BOT_ID = "network.forta.bot-id"

# Label values
# Keeps the supervisor's Docker client on the containers the supervisor manages.
LABEL_FORTA_SUPERVISOR = "supervisor"
LABEL_VALUE_FORTA_IS_BOT = "true"
# Versions critical changes in the container management strategy; decides
# whether a bot container should be re-created.
LABEL_VALUE_STRATEGY_VERSION = "2023-06-16T15:00:00Z"


class ContainerNotFoundError(LookupError):
    """No container has the requested name."""


@dataclass
class ContainerConfig:
    name: str
    image: str
    network_id: str = ""
    link_network_ids: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    max_log_files: int = 0
    max_log_size: str = ""
    cpu_quota: int = 0
    memory: int = 0
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ImagePull:
    name: str
    ref: str


@dataclass
class Container:
    id: str = ""
    image: str = ""
    names: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)


class _DockerClient(Protocol):
    def set_image_pull_cooldown(self, threshold: int, duration: float) -> None: ...

    def ensure_local_images(self, timeout: float, image_pulls: Sequence[ImagePull]) -> List[Exception]: ...

    def ensure_public_network(self, name: str) -> str: ...

    def get_container_by_name(self, name: str) -> Optional[Container]: ...

    def get_containers_by_label(self, key: str, value: str) -> List[Container]: ...

    def start_container(self, config: ContainerConfig) -> Optional[Container]: ...

    def start_container_with_id(self, container_id: str) -> None: ...

    def wait_container_start(self, container_id: str) -> None: ...

    def attach_network(self, container_id: str, network_id: str) -> None: ...

    def detach_network(self, container_id: str, network_name: str) -> None: ...

    def shutdown_container(self, container_id: str, timeout: float) -> None: ...

    def stop_container(self, container_id: str) -> None: ...

    def remove_container(self, container_id: str) -> None: ...

    def remove_network_by_name(self, name: str) -> None: ...

    def remove_image(self, image: str) -> None: ...


def new_bot_container_config(
    network_id: str,
    bot_config: AgentConfig,
    log_config: LogConfig,
    resources_config: ResourcesConfig,
) -> ContainerConfig:
    """Describe the container a bot runs in."""
    limits = get_agent_resource_limits(resources_config)
    return ContainerConfig(
        name=bot_config.container_name(),
        image=bot_config.image,
        network_id=network_id,
        link_network_ids=[],
        env={
            ENV_JSON_RPC_HOST: DOCKER_JSON_RPC_PROXY_CONTAINER_NAME,
            ENV_JSON_RPC_PORT: DEFAULT_JSON_RPC_PROXY_PORT,
            ENV_JWT_PROVIDER_HOST: DOCKER_JWT_PROVIDER_CONTAINER_NAME,
            ENV_JWT_PROVIDER_PORT: DEFAULT_JWT_PROVIDER_PORT,
            ENV_PUBLIC_API_PROXY_HOST: DOCKER_PUBLIC_API_PROXY_CONTAINER_NAME,
            ENV_PUBLIC_API_PROXY_PORT: DEFAULT_PUBLIC_API_PROXY_PORT,
            ENV_AGENT_GRPC_PORT: bot_config.grpc_port(),
            ENV_FORTA_BOT_ID: bot_config.id,
            ENV_FORTA_BOT_OWNER: bot_config.owner,
            ENV_FORTA_CHAIN_ID: str(bot_config.chain_id),
        },
        max_log_files=log_config.max_log_files,
        max_log_size=log_config.max_log_size,
        cpu_quota=limits.cpu_quota,
        memory=limits.memory,
        labels={
            LABEL_FORTA_IS_BOT: LABEL_VALUE_FORTA_IS_BOT,
            LABEL_FORTA_SUPERVISOR_STRATEGY_VERSION: LABEL_VALUE_STRATEGY_VERSION,
            LABEL_FORTA_BOT_ID: bot_config.id,
        },
    )


def has_same_label_value(container: Container, key: str, value: str) -> bool:
    """Tell if the container's label ``key`` has ``value``; a missing label counts as empty."""
    return container.labels.get(key, "") == value


def is_bot_container(container: Container) -> bool:
    return has_same_label_value(container, LABEL_FORTA_IS_BOT, LABEL_VALUE_FORTA_IS_BOT)


def service_container_names() -> List[str]:
    """Names of the service containers that every bot network is attached to."""
    return [
        DOCKER_SCANNER_CONTAINER_NAME,
        DOCKER_JSON_RPC_PROXY_CONTAINER_NAME,
        DOCKER_JWT_PROVIDER_CONTAINER_NAME,
        DOCKER_PUBLIC_API_PROXY_CONTAINER_NAME,
    ]


class BotContainerClient:
    """Launches, stops and tears down bot containers."""

    def __init__(
        self,
        log_config: LogConfig,
        resources_config: ResourcesConfig,
        client: _DockerClient,
        bot_image_client: _DockerClient,
    ):
        bot_image_client.set_image_pull_cooldown(
            IMAGE_PULL_COOLDOWN_THRESHOLD, IMAGE_PULL_COOLDOWN_DURATION
        )
        self._log_config = log_config
        self._resources_config = resources_config
        self._client = client
        self._bot_image_client = bot_image_client

    def ensure_bot_images(self, bot_configs: Sequence[AgentConfig]) -> List[Exception]:
        """Make sure every bot image is available locally; return the pull errors."""
        pulls = [ImagePull(name=cfg.id, ref=cfg.image) for cfg in bot_configs]
        return self._bot_image_client.ensure_local_images(BOT_PULL_TIMEOUT, pulls)

    def launch_bot(self, bot_config: AgentConfig) -> None:
        """Start the bot container unless it exists and attach the service containers to its network."""
        name = bot_config.container_name()
        try:
            network_id = self._client.ensure_public_network(name)
        except Exception as err:
            raise RuntimeError(f"error creating public network: {err}") from err

        try:
            self._client.get_container_by_name(name)
        except ContainerNotFoundError:
            container_cfg = new_bot_container_config(
                network_id, bot_config, self._log_config, self._resources_config
            )
            try:
                self._client.start_container(container_cfg)
            except Exception as err:
                raise RuntimeError(f"failed to start bot container: {err}") from err
        except Exception as err:
            raise RuntimeError(
                f"unexpected error while getting the bot container '{name}': {err}"
            ) from err

        self._attach_service_containers(network_id)

    def _attach_service_containers(self, network_id: str) -> None:
        for container_id in self._service_container_ids():
            try:
                self._client.attach_network(container_id, network_id)
            except Exception as err:
                raise RuntimeError(
                    f"failed to attach service container '{container_id}' "
                    f"to bot network '{network_id}': {err}"
                ) from err

    def _service_container_ids(self) -> List[str]:
        ids = []
        for name in service_container_names():
            try:
                container = self._client.get_container_by_name(name)
            except Exception as err:
                raise RuntimeError(f"failed to get service container ids: {err}") from err
            ids.append(container.id)
        return ids

    def tear_down_bot(self, container_name: str, remove_image: bool) -> None:
        """Shut down and remove the bot container, its network and optionally its image.

        Failures after the lookups are logged and the cleanup goes on.
        """
        try:
            container = self._client.get_container_by_name(container_name)
        except Exception as err:
            raise RuntimeError(f"failed to get the bot container to tear down: {err}") from err
        try:
            service_ids = self._service_container_ids()
        except RuntimeError as err:
            raise RuntimeError(
                f"failed to get service container ids during bot cleanup: {err}"
            ) from err

        try:
            for service_id in service_ids:
                try:
                    self._client.detach_network(service_id, container_name)
                except Exception as err:  # noqa: BLE001
                    logger.warning(
                        "failed to detach service container %s from bot network %s: %s",
                        service_id, container_name, err,
                    )
            try:
                self._client.shutdown_container(container.id, BOT_SHUTDOWN_TIMEOUT)
            except Exception as err:  # noqa: BLE001
                logger.warning(
                    "failed to terminate the bot container %s (%s): %s",
                    container_name, container.id, err,
                )
            try:
                self._client.remove_container(container.id)
            except Exception as err:  # noqa: BLE001
                logger.warning(
                    "failed to remove the bot container %s (%s): %s",
                    container_name, container.id, err,
                )
            try:
                self._client.remove_network_by_name(container_name)
            except Exception as err:  # noqa: BLE001
                logger.warning("failed to destroy the bot network %s: %s", container_name, err)
            if remove_image:
                try:
                    self._client.remove_image(container.image)
                except Exception as err:  # noqa: BLE001
                    logger.warning(
                        "failed to remove image %s of the destroyed bot container: %s",
                        container.image, err,
                    )
        finally:
            logger.info(
                "done tearing down the bot %s and the associated docker resources", container_name
            )

    def stop_bot(self, bot_config: AgentConfig) -> None:
        """Stop the bot's container."""
        try:
            container = self._client.get_container_by_name(bot_config.container_name())
        except Exception as err:
            raise RuntimeError(f"failed to get the bot container to stop: {err}") from err
        try:
            self._client.stop_container(container.id)
        except Exception as err:
            raise RuntimeError(f"failed to stop the container: {err}") from err

    def load_bot_containers(self) -> List[Container]:
        """Return the bot containers of the running scanner."""
        return self._client.get_containers_by_label(LABEL_FORTA_IS_BOT, LABEL_VALUE_FORTA_IS_BOT)

    def start_wait_bot_container(self, container_id: str) -> None:
        """Start the container with the given id and wait for it to come up."""
        try:
            self._client.start_container_with_id(container_id)
        except Exception as err:
            raise RuntimeError(f"failed to start container with id: {err}") from err
        self._client.wait_container_start(container_id)