"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Project settings live in fnapp.toml at the project root. Environment
variables override them using ``__`` as the nested delimiter (e.g.
``LOCAL_RUNTIME__TIMEOUT_MS=120000``).

Priority (highest wins): init args > env vars > .env > fnapp.toml

Runtime credentials are *not* settings fields: they live in the env file
under configurable key names and are read by :mod:`fnapp.credentials`.

Usage::

    from fnapp.config import get_settings

    s = get_settings()
    print(s.web.port)
    print(s.manifest_path)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in fnapp.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class ActionsConfig(_StrictModel):
    src: str = "actions"
    dist: str = "dist/actions"
    manifest: str = "manifest.yml"
    default_kind: str = "nodejs:default"


class WebConfig(_StrictModel):
    src: str = "web-src"
    dist_dev: str = "dist/web-src-dev"
    entry: str = "index.html"
    config_file: str = "src/config.json"  # relative to web.src; receives action URLs
    host: str = "127.0.0.1"  # bind address; the frontend URL always says localhost
    port: int = 9080
    # {entry} and {dist} are substituted; empty list = serve dist_dev as-is
    bundler_command: list[str] = [
        "npx",
        "parcel",
        "watch",
        "{entry}",
        "--dist-dir",
        "{dist}",
        "--no-hmr",
    ]

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError(f"Invalid port: {v}")
        return v


class CredentialsConfig(_StrictModel):
    env_file: str = ".env"
    backup_file: str = ".env.fnapp.save"
    namespace_var: str = "RUNTIME_NAMESPACE"
    auth_var: str = "RUNTIME_AUTH"
    apihost_var: str = "RUNTIME_APIHOST"

    @property
    def keys(self) -> tuple[str, str, str]:
        return (self.namespace_var, self.auth_var, self.apihost_var)


# Guest identity baked into the OpenWhisk standalone server
_GUEST_AUTH = (
    "23bc46b1-71f6-4ed5-8c54-816aa4f8c502:"
    "123zO3xZCLrMN6v2BKK1dXYFpXlPkccOFqm12CdAsMgRU4VrNZ9lyGVCGuMDGIwP"
)


class LocalRuntimeConfig(_StrictModel):
    jar_url: str = (
        "https://github.com/adobe/aio-run-detached/releases/download/v1.0.1/"
        "openwhisk-standalone.jar"
    )
    jar_path: str = "~/.fnapp/openwhisk-standalone.jar"
    host: str = "http://localhost:3233"
    namespace: str = "guest"
    auth: str = _GUEST_AUTH
    java_args: list[str] = ["-Dwhisk.concurrency-limit.max=10"]
    required_tools: list[str] = ["java", "docker"]
    init_wait_ms: int = 2000
    poll_interval_ms: int = 500
    timeout_ms: int = 60000

    @field_validator("init_wait_ms", "poll_interval_ms", "timeout_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Durations must not be negative")
        return v


class DebugConfig(_StrictModel):
    launch_file: str = ".vscode/launch.json"
    backup_file: str = ".vscode/launch.json.fnapp.save"
    props_file: str = ".wskdebug.props.tmp"
    launcher: str = "${workspaceFolder}/node_modules/.bin/wskdebug"
    remote_root: str = "/code"
    timeout_ms: int = 30000


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="fnapp.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    actions: ActionsConfig = ActionsConfig()
    web: WebConfig = WebConfig()
    credentials: CredentialsConfig = CredentialsConfig()
    local_runtime: LocalRuntimeConfig = LocalRuntimeConfig()
    debug: DebugConfig = DebugConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > fnapp.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def project_root(self) -> Path:
        return Path.cwd()

    @cached_property
    def actions_src_dir(self) -> Path:
        return (self.project_root / self.actions.src).resolve()

    @cached_property
    def actions_dist_dir(self) -> Path:
        return (self.project_root / self.actions.dist).resolve()

    @cached_property
    def manifest_path(self) -> Path:
        return self.project_root / self.actions.manifest

    @cached_property
    def web_src_dir(self) -> Path:
        return (self.project_root / self.web.src).resolve()

    @cached_property
    def web_dist_dev_dir(self) -> Path:
        return (self.project_root / self.web.dist_dev).resolve()

    @cached_property
    def env_file_path(self) -> Path:
        return self.project_root / self.credentials.env_file

    @cached_property
    def env_backup_path(self) -> Path:
        return self.project_root / self.credentials.backup_file

    @cached_property
    def runtime_jar_path(self) -> Path:
        return Path(self.local_runtime.jar_path).expanduser()

    @cached_property
    def launch_file_path(self) -> Path:
        return self.project_root / self.debug.launch_file

    @cached_property
    def launch_backup_path(self) -> Path:
        return self.project_root / self.debug.backup_file

    @cached_property
    def debug_props_path(self) -> Path:
        return self.project_root / self.debug.props_file


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton so the next get_settings() re-reads its sources."""
    global _settings
    _settings = None
