"""Release information taken from build values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BuildInfo:
    """Values stamped into a build."""

    commit_hash: str = ""
    release_cid: str = ""
    version: str = ""


BUILD_INFO = BuildInfo()


@dataclass(frozen=True)
class ReleaseSummary:
    commit: str
    ipfs: str
    version: str


@dataclass(frozen=True)
class ReleaseInfo:
    from_build: bool
    ipfs: str
    version: str
    commit: str


def get_build_release_summary(build: Optional[BuildInfo] = None) -> Optional[ReleaseSummary]:
    """Return the release summary, or None when the build has no commit hash."""
    build = BUILD_INFO if build is None else build
    if not build.commit_hash:
        return None
    return ReleaseSummary(
        commit=build.commit_hash, ipfs=build.release_cid, version=build.version
    )


def get_build_release_info(build: Optional[BuildInfo] = None) -> ReleaseInfo:
    """Collect the release info from the build values."""
    build = BUILD_INFO if build is None else build
    return ReleaseInfo(
        from_build=True,
        ipfs=build.release_cid,
        version=build.version,
        commit=build.commit_hash,
    )