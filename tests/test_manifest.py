import json
from datetime import datetime, timezone

import pytest

from scannode.manifest import (
    BEGIN_RELEASE_CONFIGURATION,
    END_RELEASE_CONFIGURATION,
    build_manifest,
    build_manifest_with_timestamp,
    main,
    parse_release_config,
)

TEST_TS = datetime(2020, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
IMAGE = "disco.forta.network/a@sha256:b"

RELEASE_KEY_ORDER = ["timestamp", "repository", "version", "commit", "services", "config"]

RELEASE_NOTES = "\n".join(
    [
        "",
        "# Improvements",
        "",
        "Some description about the release.",
        "",
        "- Baz1",
        "- Baz2",
        "",
        "```yaml" + BEGIN_RELEASE_CONFIGURATION,
        "autoUpdateInHours: 4",
        "deprecationPolicy:",
        "  supportedVersions:",
        "    - v0.4.0",
        "    - v0.3.0",
        "  activatesInHours: 72",
        END_RELEASE_CONFIGURATION + "```",
        "# What's Changed",
        "",
    ]
)


def expected_release(auto_update, supported, activates):
    return {
        "timestamp": "2020-01-01T12:00:00Z",
        "version": "v0.5.0",
        "commit": "abc",
        "services": {"updater": IMAGE, "supervisor": IMAGE},
        "config": {
            "autoUpdateInHours": auto_update,
            "deprecationPolicy": {
                "supportedVersions": supported,
                "activatesInHours": activates,
            },
        },
    }


def check_result(result, expected):
    assert result.startswith('{\n  "release": {\n    "timestamp": "2020-01-01T12:00:00Z",\n')
    assert result.endswith("\n  }\n}")
    data = json.loads(result)
    assert list(data) == ["release"]
    release = data["release"]
    assert list(release) == RELEASE_KEY_ORDER
    assert list(release["config"]) == ["autoUpdateInHours", "deprecationPolicy"]
    assert release.pop("repository").endswith("/forta-node")
    assert release == expected


def test_build_manifest_with_default_values():
    result = build_manifest_with_timestamp(TEST_TS, "v0.5.0", "abc", IMAGE, "")
    check_result(result, expected_release(24, ["v0.5.0"], 168))
    assert '        "supportedVersions": [\n          "v0.5.0"\n        ],' in result


def test_build_manifest_with_custom_values():
    result = build_manifest_with_timestamp(TEST_TS, "v0.5.0", "abc", IMAGE, RELEASE_NOTES)
    check_result(result, expected_release(4, ["v0.4.0", "v0.3.0"], 72))


def test_missing_end_marker_gives_empty_config():
    config = parse_release_config(BEGIN_RELEASE_CONFIGURATION + "\nautoUpdateInHours: 4\n")
    assert config["autoUpdateInHours"] == 0
    assert config["deprecationPolicy"]["supportedVersions"] == []


def test_invalid_yaml_raises():
    notes = BEGIN_RELEASE_CONFIGURATION + "\nautoUpdateInHours: [1\n" + END_RELEASE_CONFIGURATION
    with pytest.raises(ValueError):
        parse_release_config(notes)
    with pytest.raises(ValueError):
        build_manifest_with_timestamp(TEST_TS, "v1", "abc", IMAGE, notes)


def test_build_manifest_uses_current_time():
    data = json.loads(build_manifest("v0.5.0", "abc", IMAGE, ""))
    stamp = datetime.strptime(data["release"]["timestamp"], "%Y-%m-%dT%H:%M:%SZ")
    assert stamp.year >= 2020
    assert data["release"]["version"] == "v0.5.0"


def test_main_prints_manifest(monkeypatch, capsys):
    monkeypatch.setenv("VERSION", "v0.5.0")
    monkeypatch.setenv("GITHUB_SHA", "abc")
    monkeypatch.setenv("IMAGE_REF", IMAGE)
    monkeypatch.setenv("RELEASE_NOTES", RELEASE_NOTES)
    assert main() == 0
    data = json.loads(capsys.readouterr().out)
    assert data["release"]["commit"] == "abc"
    assert data["release"]["config"]["autoUpdateInHours"] == 4