from scannode.release import (
    BuildInfo,
    get_build_release_info,
    get_build_release_summary,
)


def test_summary_empty():
    assert get_build_release_summary(BuildInfo()) is None
    assert get_build_release_summary() is None


def test_summary_non_empty():
    build = BuildInfo(
        commit_hash="some hash", version="some version", release_cid="some release cid"
    )
    summary = get_build_release_summary(build)
    assert summary.commit == "some hash"
    assert summary.version == "some version"
    assert summary.ipfs == "some release cid"


def test_release_info_from_build():
    build = BuildInfo(commit_hash="abc", version="v1", release_cid="cid")
    info = get_build_release_info(build)
    assert info.from_build is True
    assert (info.commit, info.version, info.ipfs) == ("abc", "v1", "cid")