"""Zip every manifest action into the dist directory.

A single-file action is zipped on its own; a directory package is zipped
whole (including its package.json and node_modules).  Zips are written to
``<dist>/<package>/<action>.zip``.
"""

from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path

from fnapp.config import Settings
from fnapp.errors import BuildError
from fnapp.logger import logger
from fnapp.types import ManifestAction


def action_zip_path(dist_dir: Path, action: ManifestAction) -> Path:
    return dist_dir / action.package / f"{action.name}.zip"


def _zip_action(source: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_suffix(".zip.tmp")
    with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        if source.is_dir():
            for file in sorted(p for p in source.rglob("*") if p.is_file()):
                zf.write(file, file.relative_to(source).as_posix())
        else:
            zf.write(source, source.name)
    tmp.replace(dest)


def build_actions_sync(
    project_root: Path,
    dist_dir: Path,
    actions: list[ManifestAction],
) -> list[Path]:
    built: list[Path] = []
    for action in actions:
        source = (project_root / action.function).resolve()
        if not source.exists():
            raise BuildError(
                f"Source for action {action.qualified_name} not found: {action.function}"
            )
        dest = action_zip_path(dist_dir, action)
        try:
            _zip_action(source, dest)
        except OSError as exc:
            raise BuildError(f"Failed to package {action.qualified_name}: {exc}") from exc
        built.append(dest)
    return built


async def build_actions(settings: Settings, actions: list[ManifestAction]) -> list[Path]:
    """Package all *actions*; runs the zipping in a worker thread."""
    built = await asyncio.to_thread(
        build_actions_sync, settings.project_root, settings.actions_dist_dir, actions
    )
    logger.info("Built actions", count=len(built), dist=str(settings.actions_dist_dir))
    return built
