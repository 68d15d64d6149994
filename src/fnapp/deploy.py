"""Action deployment over the function platform's REST API.

Each manifest package is created (or overwritten) first, then each action
is uploaded as a base64 zip built by :mod:`fnapp.build`.
"""

from __future__ import annotations

import base64
from urllib.parse import urlsplit

import aiohttp

from fnapp.build import action_zip_path
from fnapp.config import Settings
from fnapp.errors import DeployError
from fnapp.logger import logger
from fnapp.types import Endpoint, ManifestAction, RuntimeCredentials


def action_url(
    credentials: RuntimeCredentials,
    action: ManifestAction,
    *,
    is_local_dev: bool,
) -> str:
    """URL a client calls to reach *action* once deployed.

    Web actions on a hosted platform are served from a per-namespace
    subdomain; the local runtime serves every namespace under one host.
    """
    apihost = credentials.apihost.rstrip("/")
    if "://" not in apihost:
        apihost = f"https://{apihost}"
    ns = credentials.namespace
    if not action.web:
        return f"{apihost}/api/v1/namespaces/{ns}/actions/{action.package}/{action.name}"
    if is_local_dev:
        return f"{apihost}/api/v1/web/{ns}/{action.package}/{action.name}"
    parts = urlsplit(apihost)
    return f"https://{ns}.{parts.netloc}/api/v1/web/{action.package}/{action.name}"


def _action_body(settings: Settings, action: ManifestAction) -> dict[str, object]:
    code = action_zip_path(settings.actions_dist_dir, action).read_bytes()
    annotations = [{"key": "web-export", "value": action.web}]
    if action.web:
        annotations.append({"key": "final", "value": True})
    return {
        "exec": {
            "kind": action.runtime or settings.actions.default_kind,
            "code": base64.b64encode(code).decode("ascii"),
            "binary": True,
        },
        "parameters": [{"key": k, "value": v} for k, v in action.inputs.items()],
        "annotations": annotations,
    }


async def _put(session: aiohttp.ClientSession, url: str, body: dict[str, object]) -> None:
    async with session.put(url, params={"overwrite": "true"}, json=body) as resp:
        if resp.status >= 400:
            detail = await resp.text()
            raise DeployError(f"PUT {url} failed with HTTP {resp.status}: {detail[:500]}")


async def deploy_actions(
    settings: Settings,
    actions: list[ManifestAction],
    credentials: RuntimeCredentials,
    *,
    is_local_dev: bool,
) -> list[Endpoint]:
    """Upload every action and return their endpoints in manifest order."""
    user, _, key = credentials.auth.partition(":")
    base = credentials.apihost.rstrip("/")
    if "://" not in base:
        base = f"https://{base}"
    api = f"{base}/api/v1/namespaces/{credentials.namespace}"

    try:
        bodies = [(action, _action_body(settings, action)) for action in actions]
    except FileNotFoundError as exc:
        raise DeployError(f"Action package missing, build before deploying: {exc}") from exc

    endpoints: list[Endpoint] = []
    try:
        async with aiohttp.ClientSession(
            auth=aiohttp.BasicAuth(user, key),
            timeout=aiohttp.ClientTimeout(total=300),
        ) as session:
            for package in dict.fromkeys(a.package for a in actions):
                await _put(session, f"{api}/packages/{package}", {})
            for action, body in bodies:
                await _put(session, f"{api}/actions/{action.package}/{action.name}", body)
                url = action_url(credentials, action, is_local_dev=is_local_dev)
                endpoints.append(Endpoint(name=action.qualified_name, url=url))
                logger.debug("Deployed action", action=action.qualified_name, url=url)
    except (aiohttp.ClientError, OSError, TimeoutError) as exc:
        raise DeployError(f"Could not reach {base}: {exc}") from exc

    logger.info("Deployed actions", count=len(endpoints), apihost=base)
    return endpoints
