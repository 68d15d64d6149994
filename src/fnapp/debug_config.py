"""VS Code launch configuration for debugging actions and the frontend.

The document is rebuilt from the manifest on every session and written to
``.vscode/launch.json`` as a reversible resource, so a developer's own
launch.json comes back untouched after the session.

Paths are expressed relative to ``${workspaceFolder}`` and entries follow
manifest order, so the same manifest and endpoints always render to the same
bytes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from fnapp.config import Settings
from fnapp.registry import ResourceRecord, ResourceRegistry, write_managed_file
from fnapp.types import Endpoint, ManifestAction

WEB_CONFIG_NAME = "Web"
ACTIONS_COMPOUND = "Actions"
WEB_AND_ACTIONS_COMPOUND = "WebAndActions"
DEFAULT_PACKAGE_ENTRY = "index.js"


def _workspace_path(project_root: Path, path: Path) -> str:
    try:
        relative = path.resolve().relative_to(project_root.resolve())
    except ValueError:
        return path.as_posix()
    rel = relative.as_posix()
    return "${workspaceFolder}" if rel == "." else f"${{workspaceFolder}}/{rel}"


def resolve_action_entry(project_root: Path, action: ManifestAction) -> tuple[Path, Path]:
    """Return ``(local_root, entry_file)`` for *action*.

    A directory package names its entry in package.json's ``main`` field,
    falling back to ``index.js``; a single-file action is its own entry.
    """
    source = project_root / action.function
    if source.is_dir():
        main = DEFAULT_PACKAGE_ENTRY
        package_json = source / "package.json"
        if package_json.exists():
            try:
                main = json.loads(package_json.read_text()).get("main") or main
            except (ValueError, AttributeError):
                main = DEFAULT_PACKAGE_ENTRY
        return source, source / main
    return source.parent, source


def _action_entry(
    action: ManifestAction,
    endpoint: Endpoint | None,
    *,
    project_root: Path,
    settings: Settings,
) -> dict[str, Any]:
    local_root, entry = resolve_action_entry(project_root, action)
    env: dict[str, str] = {
        "WSK_CONFIG_FILE": _workspace_path(project_root, settings.debug_props_path),
    }
    if endpoint is not None:
        env["ACTION_URL"] = endpoint.url
    return {
        "type": "node",
        "request": "launch",
        "name": f"Action:{action.qualified_name}",
        "runtimeExecutable": settings.debug.launcher,
        "env": env,
        "timeout": settings.debug.timeout_ms,
        "localRoot": _workspace_path(project_root, local_root),
        "remoteRoot": settings.debug.remote_root,
        "outputCapture": "std",
        "attachSimplePort": 0,
        "runtimeArgs": [
            action.qualified_name,
            _workspace_path(project_root, entry),
            "-v",
        ],
    }


def _web_entry(frontend_url: str, *, project_root: Path, settings: Settings) -> dict[str, Any]:
    web_root = _workspace_path(project_root, settings.web_src_dir)
    return {
        "type": "chrome",
        "request": "launch",
        "name": WEB_CONFIG_NAME,
        "url": frontend_url,
        "webRoot": web_root,
        "breakOnLoad": True,
        "sourceMapPathOverrides": {"*": f"{web_root}/*"},
    }


def generate_debug_config(
    actions: list[ManifestAction],
    endpoints: list[Endpoint],
    frontend_enabled: bool,
    frontend_url: str | None,
    *,
    project_root: Path,
    settings: Settings,
) -> dict[str, Any]:
    """Build the launch.json document for *actions* and the optional frontend."""
    by_name = {e.name: e for e in endpoints}
    configurations = [
        _action_entry(
            action,
            by_name.get(action.qualified_name),
            project_root=project_root,
            settings=settings,
        )
        for action in actions
    ]
    action_names = [c["name"] for c in configurations]
    compounds = [{"name": ACTIONS_COMPOUND, "configurations": action_names}]

    if frontend_enabled and frontend_url:
        configurations.append(
            _web_entry(frontend_url, project_root=project_root, settings=settings)
        )
        compounds.append(
            {
                "name": WEB_AND_ACTIONS_COMPOUND,
                "configurations": [WEB_CONFIG_NAME, *action_names],
            }
        )

    return {"version": "0.2.0", "configurations": configurations, "compounds": compounds}


def render_debug_config(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2) + "\n"


def write_debug_config(
    path: Path,
    document: dict[str, Any],
    *,
    registry: ResourceRegistry,
    backup: Path,
) -> ResourceRecord:
    return write_managed_file(registry, path, render_debug_config(document), backup=backup)
