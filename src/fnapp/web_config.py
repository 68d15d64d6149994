"""Write the deployed action URLs where the frontend can read them.

Writes ``{"<package>/<action>": "<url>", ...}`` into the web source tree
(``web.config_file``) so the dev build calls the actions this session
deployed.
"""

from __future__ import annotations

import json
from pathlib import Path

from fnapp.registry import ResourceRecord, ResourceRegistry, write_managed_file
from fnapp.types import Endpoint


def render_web_config(endpoints: list[Endpoint]) -> str:
    return json.dumps({e.name: e.url for e in endpoints}, indent=2) + "\n"


def inject_web_config(
    path: Path,
    endpoints: list[Endpoint],
    *,
    registry: ResourceRegistry,
) -> ResourceRecord:
    return write_managed_file(
        registry,
        path,
        render_web_config(endpoints),
        backup=path.with_name(path.name + ".fnapp.save"),
    )


def refresh_web_config(path: Path, endpoints: list[Endpoint]) -> None:
    """Rewrite an already-registered web config after a redeploy."""
    if path.exists():
        path.write_text(render_web_config(endpoints))
