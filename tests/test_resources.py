from scannode.resources import (
    BotResourceLimits,
    ResourcesConfig,
    cpus_to_microseconds,
    get_agent_resource_limits,
    mib_to_bytes,
)


def test_default_limits():
    limits = get_agent_resource_limits(ResourcesConfig())
    assert limits.cpu_quota == cpus_to_microseconds(0.2)
    assert limits.memory == mib_to_bytes(1000)


def test_custom_limits():
    limits = get_agent_resource_limits(
        ResourcesConfig(agent_max_memory_mib=12, agent_max_cpus=0.1)
    )
    assert limits.cpu_quota == cpus_to_microseconds(0.1)
    assert limits.memory == mib_to_bytes(12)


def test_disabled_limits():
    limits = get_agent_resource_limits(
        ResourcesConfig(disable_agent_limits=True, agent_max_memory_mib=12)
    )
    assert limits == BotResourceLimits(cpu_quota=0, memory=0)


def test_conversions_truncate():
    assert cpus_to_microseconds(0.2) == 20000
    assert mib_to_bytes(1) == 1048580