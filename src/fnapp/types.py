"""Data models for fnapp."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ManifestAction:
    package: str
    name: str
    function: str  # path to a single file or a directory package, relative to project root
    web: bool = False
    inputs: dict[str, Any] = field(default_factory=dict)
    runtime: str | None = None  # action kind; None → actions.default_kind

    @property
    def qualified_name(self) -> str:
        return f"{self.package}/{self.name}"


@dataclass(frozen=True)
class Endpoint:
    name: str  # "<package>/<action>"
    url: str


@dataclass(frozen=True)
class RuntimeCredentials:
    namespace: str
    auth: str
    apihost: str


@dataclass
class SessionInfo:
    """The single active development run."""

    has_backend: bool = False
    has_frontend: bool = False
    is_local: bool = True
    ui_port: int = 9080  # requested; the bound port ends up in frontend_url
    frontend_url: str | None = None
    endpoints: list[Endpoint] = field(default_factory=list)
