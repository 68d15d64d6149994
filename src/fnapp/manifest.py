"""Manifest loader: the packages and actions a project deploys.

Only the parts the tooling acts on are read::

    packages:
      my-app:
        actions:
          hello:
            function: actions/hello/index.js
            web: 'yes'
            runtime: 'nodejs:18'
            inputs:
              LOG_LEVEL: debug

Schema validation is not attempted; malformed entries are skipped with a
warning.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from fnapp.logger import logger
from fnapp.types import ManifestAction

_TRUE_STRINGS = frozenset({"true", "yes", "raw"})


def _is_web(raw: dict[str, Any]) -> bool:
    value = raw.get("web", raw.get("web-export", False))
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def parse_manifest(data: Any) -> list[ManifestAction]:
    """Flatten a parsed manifest into actions, in declaration order."""
    if not isinstance(data, dict):
        return []
    packages = data.get("packages") or {}
    if not isinstance(packages, dict):
        return []

    actions: list[ManifestAction] = []
    for package_name, package in packages.items():
        if not isinstance(package, dict):
            continue
        for action_name, raw in (package.get("actions") or {}).items():
            if not isinstance(raw, dict) or not raw.get("function"):
                logger.warning(
                    "Skipping manifest action without a function",
                    package=package_name,
                    action=action_name,
                )
                continue
            inputs = raw.get("inputs") or {}
            actions.append(
                ManifestAction(
                    package=str(package_name),
                    name=str(action_name),
                    function=str(raw["function"]),
                    web=_is_web(raw),
                    inputs=dict(inputs) if isinstance(inputs, dict) else {},
                    runtime=raw.get("runtime"),
                )
            )
    return actions


def load_manifest(path: Path) -> list[ManifestAction]:
    """Read the manifest at *path*; a missing file means no actions."""
    if not path.exists():
        return []
    return parse_manifest(yaml.safe_load(path.read_text()))
