"""Container names, default paths, ports and environment variable names."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

CONTAINER_NAME_PREFIX = "forta"

# Files and directories
DEFAULT_KEYS_DIR_NAME = ".keys"
DEFAULT_COMBINER_CACHE_FILE_NAME = ".combiner_cache.json"
DEFAULT_CONFIG_FILE_NAME = "config.yml"
DEFAULT_WRAPPED_CONFIG_FILE_NAME = "wrapped-config.yml"
DEFAULT_CONFIG_WRAPPER_KEY = "x-forta-config"

# Ports
DEFAULT_NATS_PORT = "4222"
DEFAULT_CONTAINER_PORT = "8089"
DEFAULT_HEALTH_PORT = "8090"
DEFAULT_JWT_PROVIDER_PORT = "8515"
DEFAULT_STORAGE_PORT = "8525"
DEFAULT_PUBLIC_API_PROXY_PORT = "8535"
DEFAULT_JSON_RPC_PROXY_PORT = "8545"

# The path of the common binary inside the container image
DEFAULT_FORTA_NODE_BINARY_PATH = "/forta-node"

# Docker images and container names
DOCKER_SUPERVISOR_IMAGE = "forta-network/forta-node:latest"
DOCKER_UPDATER_IMAGE = "forta-network/forta-node:latest"
USE_DOCKER_IMAGES = "local"

DOCKER_SUPERVISOR_MANAGED_CONTAINERS = 6
DOCKER_UPDATER_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-updater"
DOCKER_SUPERVISOR_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-supervisor"
DOCKER_NATS_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-nats"
DOCKER_IPFS_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-ipfs"
DOCKER_SCANNER_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-scanner"
DOCKER_INSPECTOR_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-inspector"
DOCKER_JSON_RPC_PROXY_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-json-rpc"
DOCKER_PUBLIC_API_PROXY_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-public-api"
DOCKER_JWT_PROVIDER_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-jwt-provider"
DOCKER_STORAGE_CONTAINER_NAME = f"{CONTAINER_NAME_PREFIX}-storage"

DOCKER_NETWORK_NAME = DOCKER_SCANNER_CONTAINER_NAME

DEFAULT_CONTAINER_FORTA_DIR_PATH = "/.forta"
DEFAULT_CONTAINER_CONFIG_PATH = posixpath.join(
    DEFAULT_CONTAINER_FORTA_DIR_PATH, DEFAULT_CONFIG_FILE_NAME
)
DEFAULT_CONTAINER_WRAPPED_CONFIG_PATH = posixpath.join(
    DEFAULT_CONTAINER_FORTA_DIR_PATH, DEFAULT_WRAPPED_CONFIG_FILE_NAME
)
DEFAULT_CONTAINER_KEY_DIR_PATH = posixpath.join(
    DEFAULT_CONTAINER_FORTA_DIR_PATH, DEFAULT_KEYS_DIR_NAME
)

# Environment variables
ENV_HOST_FORTA_DIR = "HOST_FORTA_DIR"
ENV_DEVELOPMENT = "FORTA_DEVELOPMENT"
ENV_RELEASE_INFO = "FORTA_RELEASE_INFO"

# Bot environment variables
ENV_JSON_RPC_HOST = "JSON_RPC_HOST"
ENV_JSON_RPC_PORT = "JSON_RPC_PORT"
ENV_JWT_PROVIDER_HOST = "FORTA_JWT_PROVIDER_HOST"
ENV_JWT_PROVIDER_PORT = "FORTA_JWT_PROVIDER_PORT"
ENV_PUBLIC_API_PROXY_HOST = "FORTA_PUBLIC_API_PROXY_HOST"
ENV_PUBLIC_API_PROXY_PORT = "FORTA_PUBLIC_API_PROXY_PORT"
ENV_AGENT_GRPC_PORT = "AGENT_GRPC_PORT"
ENV_FORTA_BOT_ID = "FORTA_BOT_ID"
ENV_FORTA_BOT_OWNER = "FORTA_BOT_OWNER"
ENV_FORTA_CHAIN_ID = "FORTA_CHAIN_ID"


@dataclass(frozen=True)
class EnvDefaults:
    """Default values for one environment."""

    disco_subdomain: str


def get_env_defaults(development: bool) -> EnvDefaults:
    """Return the defaults for the development or the production environment."""
    if development:
        return EnvDefaults(disco_subdomain="disco-dev")
    return EnvDefaults(disco_subdomain="disco")