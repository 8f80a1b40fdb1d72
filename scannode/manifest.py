"""Building of release manifests."""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import yaml

BEGIN_RELEASE_CONFIGURATION = "# @begin release_config"
END_RELEASE_CONFIGURATION = "# @end release_config"

REPOSITORY = "https://github.com/forta-network/forta-node"
DEFAULT_DEPRECATION_HOURS = 168
DEFAULT_AUTO_UPDATE_HOURS = 24

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _empty_config() -> dict[str, Any]:
    return {
        "autoUpdateInHours": 0,
        "deprecationPolicy": {"supportedVersions": [], "activatesInHours": 0},
    }


def _as_int(value: Any, key: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"release config field {key!r} must be an integer")
    return value


def parse_release_config(release_notes: str) -> dict[str, Any]:
    """Read the release configuration block embedded in release notes."""
    parts = release_notes.split(BEGIN_RELEASE_CONFIGURATION)
    if len(parts) != 2:
        return _empty_config()
    parts = parts[1].split(END_RELEASE_CONFIGURATION)
    if len(parts) != 2:
        return _empty_config()
    config_str = parts[0]
    if not config_str:
        return _empty_config()
    try:
        data = yaml.safe_load(config_str)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid release config: {exc}") from exc
    config = _empty_config()
    if data is None:
        return config
    if not isinstance(data, dict):
        raise ValueError("release config must be a mapping")
    config["autoUpdateInHours"] = _as_int(data.get("autoUpdateInHours"), "autoUpdateInHours")
    policy = data.get("deprecationPolicy")
    if policy is None:
        return config
    if not isinstance(policy, dict):
        raise ValueError("deprecationPolicy must be a mapping")
    versions = policy.get("supportedVersions") or []
    if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
        raise ValueError("supportedVersions must be a list of strings")
    config["deprecationPolicy"] = {
        "supportedVersions": list(versions),
        "activatesInHours": _as_int(policy.get("activatesInHours"), "activatesInHours"),
    }
    return config


def _to_json(obj: Any) -> str:
    text = json.dumps(obj, indent=2, ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def build_manifest_with_timestamp(
    ts: datetime, version: str, commit_sha: str, node_image: str, release_notes: str
) -> str:
    """Build a release manifest stamped with ``ts``; naive times count as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    timestamp = ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    config = parse_release_config(release_notes)
    policy = config["deprecationPolicy"]
    if policy["activatesInHours"] == 0:
        policy["activatesInHours"] = DEFAULT_DEPRECATION_HOURS
    if not policy["supportedVersions"]:
        policy["supportedVersions"] = [version]
    if config["autoUpdateInHours"] == 0:
        config["autoUpdateInHours"] = DEFAULT_AUTO_UPDATE_HOURS

    manifest = {
        "release": {
            "timestamp": timestamp,
            "repository": REPOSITORY,
            "version": version,
            "commit": commit_sha,
            "services": {"updater": node_image, "supervisor": node_image},
            "config": config,
        }
    }
    return _to_json(manifest)


def build_manifest(version: str, commit_sha: str, node_image: str, release_notes: str) -> str:
    """Build a release manifest stamped with the current time."""
    return build_manifest_with_timestamp(
        datetime.now(timezone.utc), version, commit_sha, node_image, release_notes
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print a manifest built from the VERSION, GITHUB_SHA, IMAGE_REF and RELEASE_NOTES variables."""
    try:
        manifest = build_manifest(
            os.environ.get("VERSION", ""),
            os.environ.get("GITHUB_SHA", ""),
            os.environ.get("IMAGE_REF", ""),
            os.environ.get("RELEASE_NOTES", ""),
        )
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(manifest)
    return 0


if __name__ == "__main__":
    sys.exit(main())