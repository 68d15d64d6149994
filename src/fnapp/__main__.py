"""Entry point for `python -m fnapp` / `fnapp`.

Subcommands:
    fnapp dev           Run actions and frontend locally until Ctrl+C
    fnapp dev --remote  Same, but deploy actions to the remote namespace
    fnapp build         Package every action in the manifest
    fnapp deploy        Build, then deploy every action with .env credentials
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from fnapp.errors import CredentialError, FnappError


def _dev(*, remote: bool, port: int | None) -> None:
    from fnapp.config import get_settings
    from fnapp.logger import set_level
    from fnapp.session import DevSession

    s = get_settings()
    set_level(s.logging.level)

    async def _main() -> None:
        session = DevSession(s, is_local=not remote, port=port)
        await session.run()

    asyncio.run(_main())


def _build() -> None:
    from fnapp.build import build_actions
    from fnapp.config import get_settings
    from fnapp.manifest import load_manifest

    s = get_settings()
    actions = load_manifest(s.manifest_path)
    built = asyncio.run(build_actions(s, actions))
    for path in built:
        print(path)


def _deploy() -> None:
    from fnapp.build import build_actions
    from fnapp.config import get_settings
    from fnapp.credentials import load_credentials
    from fnapp.deploy import deploy_actions
    from fnapp.manifest import load_manifest

    s = get_settings()
    creds = load_credentials(s.env_file_path, s.credentials.keys)
    if creds is None:
        raise CredentialError(
            f"Missing runtime credentials: set {', '.join(s.credentials.keys)} in .env"
        )
    actions = load_manifest(s.manifest_path)

    async def _main() -> None:
        await build_actions(s, actions)
        endpoints = await deploy_actions(s, actions, creds, is_local_dev=False)
        for endpoint in endpoints:
            print(f"{endpoint.name} -> {endpoint.url}")

    asyncio.run(_main())


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="fnapp",
        description="Build, run locally, and deploy serverless actions and their frontend",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    dev = sub.add_parser("dev", help="Run a local development session")
    dev.add_argument(
        "--remote",
        action="store_true",
        help="Deploy actions to the namespace in .env instead of a local runtime",
    )
    dev.add_argument("--port", type=int, default=None, help="Preferred UI dev server port")
    sub.add_parser("build", help="Package every action in the manifest")
    sub.add_parser("deploy", help="Build and deploy every action")

    args = parser.parse_args()

    try:
        match args.command:
            case "dev":
                _dev(remote=args.remote, port=args.port)
            case "build":
                _build()
            case "deploy":
                _deploy()
    except FnappError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
