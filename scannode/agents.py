"""Detection bot configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .constants import CONTAINER_NAME_PREFIX

AGENT_GRPC_PORT = "50051"


def split_image_ref(ref: str) -> tuple[str, str]:
    """Split an image reference into its name and its sha256 digest."""
    name, sep, digest = ref.partition("@")
    if not sep:
        return ref, ""
    if digest.startswith("sha256:"):
        digest = digest[len("sha256:"):]
    return name, digest


def shorten_string(value: str, length: int) -> str:
    """Return at most the first ``length`` characters of ``value``."""
    return value[:length] if len(value) > length else value


@dataclass
class ShardConfig:
    shard_id: int = 0
    shards: int = 0
    target: int = 0


@dataclass(frozen=True)
class AgentInfo:
    id: str
    image: str
    image_hash: str
    manifest: str


@dataclass
class AgentConfig:
    id: str = ""
    image: str = ""
    manifest: str = ""
    is_local: bool = False
    is_standalone: bool = False
    start_block: Optional[int] = None
    stop_block: Optional[int] = None
    owner: str = ""
    chain_id: int = 0
    shard_config: Optional[ShardConfig] = None

    def is_sharded(self) -> bool:
        """Tell whether this bot runs on more than one shard."""
        return self.shard_config is not None and self.shard_config.shards > 1

    def shard_id(self) -> int:
        """Return the shard id, or -1 when the bot is not sharded."""
        if not self.is_sharded():
            return -1
        return self.shard_config.shard_id

    def shard_details(self) -> str:
        if not self.is_sharded():
            return ""
        return f"shard={self.shard_config.shard_id}"

    def equal(self, other: AgentConfig) -> bool:
        """Compare identity, manifest and sharding of two bot configs."""
        if self.id.casefold() != other.id.casefold():
            return False
        if self.manifest.casefold() != other.manifest.casefold():
            return False
        if self.shard_config is None and other.shard_config is None:
            return True
        if self.shard_config is None or other.shard_config is None:
            return False
        return (
            self.shard_config.shard_id == other.shard_config.shard_id
            and self.shard_config.shards == other.shard_config.shards
        )

    def image_hash(self) -> str:
        _, digest = split_image_ref(self.image)
        return digest

    def to_agent_info(self) -> AgentInfo:
        return AgentInfo(
            id=self.id,
            image=self.image,
            image_hash=self.image_hash(),
            manifest=self.manifest,
        )

    def container_name(self) -> str:
        if self.is_standalone:
            # the container is already running under its own name
            return self.id
        if self.is_local:
            return f"{CONTAINER_NAME_PREFIX}-agent-{shorten_string(self.id, 8)}"
        parts = [
            CONTAINER_NAME_PREFIX,
            "agent",
            shorten_string(self.id, 8),
            shorten_string(self.image_hash(), 4),
        ]
        if self.is_sharded():
            parts.append(str(self.shard_config.shard_id))
        return "-".join(parts)

    def grpc_port(self) -> str:
        return AGENT_GRPC_PORT