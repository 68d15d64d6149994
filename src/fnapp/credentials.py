"""Load runtime credentials and swap in the local guest identity.

Credentials live in the project's env file as three ``KEY=value`` lines
whose key names come from ``[credentials]`` in fnapp.toml.  The process
environment wins over the file, matching how the settings loader treats
``.env``.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values

from fnapp.config import reset_settings
from fnapp.logger import logger
from fnapp.registry import (
    ResourceRecord,
    ResourceRegistry,
    UnsetEnvironment,
    write_managed_file,
)
from fnapp.types import RuntimeCredentials

CredentialKeys = tuple[str, str, str]  # (namespace, auth, apihost) variable names


def load_credentials(env_file: Path, keys: CredentialKeys) -> RuntimeCredentials | None:
    """Read credentials from *env_file* and ``os.environ``.

    Returns None when any of the three values is missing or empty.
    """
    file_vars = dotenv_values(env_file) if env_file.exists() else {}
    merged = {**file_vars, **os.environ}
    namespace, auth, apihost = (merged.get(k) or "" for k in keys)
    if not (namespace and auth and apihost):
        return None
    return RuntimeCredentials(namespace=namespace, auth=auth, apihost=apihost)


def render_env_file(
    credentials: RuntimeCredentials,
    keys: CredentialKeys,
    *,
    existing: str = "",
) -> str:
    """Build env file content holding *credentials*.

    Lines of *existing* that do not set one of the credential keys are kept
    in order; the credential lines are appended.
    """
    kept: list[str] = []
    for line in existing.splitlines():
        key = line.split("=", 1)[0].strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        if key in keys:
            continue
        kept.append(line)
    while kept and not kept[-1].strip():
        kept.pop()
    namespace_var, auth_var, apihost_var = keys
    lines = [
        *kept,
        f"{namespace_var}={credentials.namespace}",
        f"{auth_var}={credentials.auth}",
        f"{apihost_var}={credentials.apihost}",
    ]
    return "\n".join(lines) + "\n"


def invalidate_cached_credentials(keys: CredentialKeys) -> dict[str, str]:
    """Drop in-process copies so the next read comes from the env file.

    Returns the removed ``os.environ`` values so they can be put back.
    """
    removed = {key: os.environ.pop(key) for key in keys if key in os.environ}
    reset_settings()
    return removed


def install_local_credentials(
    env_file: Path,
    backup_path: Path,
    host: str,
    namespace: str,
    auth: str,
    *,
    registry: ResourceRegistry,
    keys: CredentialKeys,
) -> ResourceRecord:
    """Point the project at the local runtime's guest credentials.

    Without an env file a fresh one is created and deleted on teardown.
    With one, the original is moved to *backup_path* and restored on
    teardown, byte for byte.  Credential variables already exported in
    this process are unset for the session and restored on teardown.
    """
    existing = env_file.read_text() if env_file.exists() else ""
    content = render_env_file(
        RuntimeCredentials(namespace=namespace, auth=auth, apihost=host),
        keys,
        existing=existing,
    )
    record = write_managed_file(registry, env_file, content, backup=backup_path)
    removed = invalidate_cached_credentials(keys)
    if removed:
        registry.add(UnsetEnvironment(values=removed))
    logger.info(
        "Using local runtime credentials",
        env_file=str(env_file),
        namespace=namespace,
        apihost=host,
        backed_up=record.kind == "file-overwritten-with-backup",
    )
    return record


def write_debug_credentials(
    path: Path,
    credentials: RuntimeCredentials,
    *,
    registry: ResourceRegistry,
) -> ResourceRecord:
    """Write the props file the action debugger reads its target from."""
    content = (
        f"NAMESPACE={credentials.namespace}\n"
        f"AUTH={credentials.auth}\n"
        f"APIHOST={credentials.apihost}\n"
    )
    return write_managed_file(
        registry, path, content, backup=path.with_name(path.name + ".fnapp.save")
    )
