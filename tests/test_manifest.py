"""Tests for manifest parsing."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import TWO_ACTION_MANIFEST, write_manifest

from fnapp.manifest import load_manifest, parse_manifest
from fnapp.types import ManifestAction


class TestLoadManifest:
    def test_two_actions_in_order(self, tmp_path: Path):
        actions = load_manifest(write_manifest(tmp_path, TWO_ACTION_MANIFEST))

        assert actions == [
            ManifestAction(package="demo", name="a", function="actions/a.js", web=True),
            ManifestAction(
                package="demo",
                name="b",
                function="actions/b",
                inputs={"LOG_LEVEL": "debug"},
            ),
        ]
        assert [a.qualified_name for a in actions] == ["demo/a", "demo/b"]

    def test_missing_file_means_no_actions(self, tmp_path: Path):
        assert load_manifest(tmp_path / "manifest.yml") == []

    def test_empty_file(self, tmp_path: Path):
        assert load_manifest(write_manifest(tmp_path, "")) == []


class TestParseManifest:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"web": "yes"}, True),
            ({"web": "raw"}, True),
            ({"web": True}, True),
            ({"web-export": "true"}, True),
            ({"web": "no"}, False),
            ({"web": False}, False),
            ({}, False),
        ],
    )
    def test_web_flag(self, raw, expected):
        data = {"packages": {"p": {"actions": {"x": {"function": "f.js", **raw}}}}}
        assert parse_manifest(data)[0].web is expected

    def test_skips_action_without_function(self):
        data = {
            "packages": {
                "p": {"actions": {"broken": {"web": "yes"}, "ok": {"function": "ok.js"}}}
            }
        }
        assert [a.name for a in parse_manifest(data)] == ["ok"]

    def test_runtime_kept(self):
        data = {"packages": {"p": {"actions": {"x": {"function": "f.py", "runtime": "python:3"}}}}}
        assert parse_manifest(data)[0].runtime == "python:3"

    def test_multiple_packages(self):
        data = {
            "packages": {
                "one": {"actions": {"a": {"function": "a.js"}}},
                "two": {"actions": {"b": {"function": "b.js"}}},
                "empty": {},
            }
        }
        assert [a.qualified_name for a in parse_manifest(data)] == ["one/a", "two/b"]

    @pytest.mark.parametrize("data", [None, [], "text", {"packages": ["x"]}])
    def test_malformed_top_level(self, data):
        assert parse_manifest(data) == []
