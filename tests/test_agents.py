import pytest

from scannode.agents import (
    AgentConfig,
    ShardConfig,
    shorten_string,
    split_image_ref,
)

TEST_ID = "0x04f65c638f234548104790d7c692c9273d41f82d784b174ff2fdc3e8e5bf1636"
TEST_DIGEST = "de866feeb97cba4cad6343c4137cb48bc798be0136015bec16d97c8ef28852b9"
TEST_IMAGE = (
    "bafybeibvkqkf7i3c5ouehviwjb2dzbukgqied3cg36axl7gzm23r6ielnu@sha256:" + TEST_DIGEST
)


def test_container_name():
    cfg = AgentConfig(id=TEST_ID, image=TEST_IMAGE)
    assert cfg.container_name() == "forta-agent-0x04f65c-de86"


def test_container_name_sharded():
    cfg = AgentConfig(
        id=TEST_ID,
        image=TEST_IMAGE,
        shard_config=ShardConfig(shards=5, shard_id=3, target=4),
    )
    assert cfg.container_name() == "forta-agent-0x04f65c-de86-3"


def test_container_name_local_and_standalone():
    assert AgentConfig(id=TEST_ID, is_local=True).container_name() == "forta-agent-0x04f65c"
    assert AgentConfig(id="my-bot", is_standalone=True).container_name() == "my-bot"


def _cfg(manifest="manifest1", shard=ShardConfig(shard_id=1, shards=2, target=3)):
    return AgentConfig(
        id="agent1",
        image="image1",
        manifest=manifest,
        is_local=True,
        is_standalone=False,
        owner="owner1",
        chain_id=123,
        shard_config=shard,
    )


@pytest.mark.parametrize(
    "ac1, ac2, want",
    [
        (_cfg(), _cfg(), True),
        (_cfg(), _cfg(shard=ShardConfig(shard_id=2, shards=4, target=5)), False),
        (_cfg(), _cfg(manifest="manifest2"), False),
        (_cfg(shard=None), _cfg(shard=None), True),
        (_cfg(shard=None), _cfg(), False),
    ],
    ids=["identical", "different-shard", "different-manifest", "no-shards", "one-shard"],
)
def test_equal(ac1, ac2, want):
    assert ac1.equal(ac2) is want


def test_equal_ignores_case():
    assert AgentConfig(id="ABC", manifest="Qm").equal(AgentConfig(id="abc", manifest="qM"))


def test_shard_id_and_details():
    unsharded = AgentConfig(id=TEST_ID, shard_config=ShardConfig(shard_id=0, shards=1))
    assert unsharded.shard_id() == -1
    assert unsharded.shard_details() == ""
    sharded = AgentConfig(id=TEST_ID, shard_config=ShardConfig(shard_id=3, shards=5))
    assert sharded.shard_id() == 3
    assert sharded.shard_details() == "shard=3"


def test_agent_info_and_image_hash():
    cfg = AgentConfig(id=TEST_ID, image=TEST_IMAGE, manifest="Qm1")
    info = cfg.to_agent_info()
    assert info.image_hash == TEST_DIGEST
    assert (info.id, info.image, info.manifest) == (TEST_ID, TEST_IMAGE, "Qm1")


def test_split_and_shorten():
    assert split_image_ref(TEST_IMAGE)[1] == TEST_DIGEST
    assert split_image_ref("plain-image") == ("plain-image", "")
    assert shorten_string("abc", 8) == "abc"
    assert shorten_string(TEST_ID, 8) == "0x04f65c"


def test_grpc_port():
    assert AgentConfig().grpc_port() == "50051"