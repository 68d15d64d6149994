"""Shared test fixtures for fnapp."""

from __future__ import annotations

from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset(
    {
        "project_root",
        "actions_src_dir",
        "actions_dist_dir",
        "manifest_path",
        "web_src_dir",
        "web_dist_dev_dir",
        "env_file_path",
        "env_backup_path",
        "runtime_jar_path",
        "launch_file_path",
        "launch_backup_path",
        "debug_props_path",
    }
)


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Accepts both model fields (web, local_runtime, etc.) and cached property
    overrides (project_root, runtime_jar_path, etc.).  Paths derived from
    project_root follow it unless overridden.

    Usage::

        s = make_settings(project_root=tmp_path)
        s = make_settings(project_root=tmp_path, web=WebConfig(bundler_command=[]))
    """
    from fnapp.config import (
        ActionsConfig,
        CredentialsConfig,
        DebugConfig,
        LocalRuntimeConfig,
        LoggingConfig,
        Settings,
        WebConfig,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "actions": ActionsConfig(),
        "web": WebConfig(),
        "credentials": CredentialsConfig(),
        "local_runtime": LocalRuntimeConfig(),
        "debug": DebugConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


def write_manifest(root: Path, text: str) -> Path:
    path = root / "manifest.yml"
    path.write_text(text)
    return path


TWO_ACTION_MANIFEST = """\
packages:
  demo:
    actions:
      a:
        function: actions/a.js
        web: 'yes'
      b:
        function: actions/b
        inputs:
          LOG_LEVEL: debug
"""


def make_project(root: Path, *, frontend: bool = False) -> Path:
    """Lay out a two-action project (single file + directory package)."""
    actions = root / "actions"
    (actions / "b").mkdir(parents=True)
    (actions / "a.js").write_text("function main() { return {} }\nexports.main = main\n")
    (actions / "b" / "package.json").write_text('{"name": "b", "main": "lib/main.js"}')
    (actions / "b" / "lib").mkdir()
    (actions / "b" / "lib" / "main.js").write_text("exports.main = () => ({})\n")
    write_manifest(root, TWO_ACTION_MANIFEST)
    if frontend:
        (root / "web-src" / "src").mkdir(parents=True)
        (root / "web-src" / "index.html").write_text("<html><body>hi</body></html>\n")
    return root


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_credentials_env(monkeypatch):
    """Keep runtime credentials from the developer's shell out of tests."""
    for key in ("RUNTIME_NAMESPACE", "RUNTIME_AUTH", "RUNTIME_APIHOST"):
        monkeypatch.delenv(key, raising=False)
    yield
    from fnapp.config import reset_settings

    reset_settings()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    return make_project(tmp_path)


@pytest.fixture
def registry():
    from fnapp.registry import ResourceRegistry

    return ResourceRegistry()


def env_keys() -> tuple[str, str, str]:
    return ("RUNTIME_NAMESPACE", "RUNTIME_AUTH", "RUNTIME_APIHOST")
