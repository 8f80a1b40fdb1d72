"""Resource limits for bot containers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ResourcesConfig:
    disable_agent_limits: bool = False
    agent_max_memory_mib: int = 0
    agent_max_cpus: float = 0.0


@dataclass
class BotResourceLimits:
    """Zero values mean no limit."""

    cpu_quota: int = 0  # microseconds
    memory: int = 0  # bytes


def cpus_to_microseconds(cpus: float) -> int:
    """Convert a CPU amount to a CFS quota in microseconds."""
    return int(cpus * 100000)


def mib_to_bytes(mib: int) -> int:
    return mib * 1048580


def _default_cpu_quota_per_agent() -> int:
    return cpus_to_microseconds(0.2)


def _default_memory_per_agent() -> int:
    return mib_to_bytes(1000)


def get_agent_resource_limits(resources_cfg: ResourcesConfig) -> BotResourceLimits:
    """Work out a bot's limits from the configuration."""
    if resources_cfg.disable_agent_limits:
        return BotResourceLimits()
    cpu_quota = _default_cpu_quota_per_agent()
    if resources_cfg.agent_max_cpus > 0:
        cpu_quota = cpus_to_microseconds(resources_cfg.agent_max_cpus)
    memory = _default_memory_per_agent()
    if resources_cfg.agent_max_memory_mib > 0:
        memory = mib_to_bytes(resources_cfg.agent_max_memory_mib)
    return BotResourceLimits(cpu_quota=cpu_quota, memory=memory)