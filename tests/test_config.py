"""Tests for settings loading from fnapp.toml, .env and the environment."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from fnapp.config import LocalRuntimeConfig, Settings, WebConfig, get_settings, reset_settings


@pytest.fixture
def in_project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in ("WEB__PORT", "LOCAL_RUNTIME__TIMEOUT_MS", "LOGGING__LEVEL"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


class TestSettings:
    def test_defaults(self, in_project: Path):
        s = Settings()

        assert s.web.port == 9080
        assert s.local_runtime.host == "http://localhost:3233"
        assert s.local_runtime.namespace == "guest"
        assert (s.local_runtime.init_wait_ms, s.local_runtime.poll_interval_ms) == (2000, 500)
        assert s.local_runtime.timeout_ms == 60000
        assert s.credentials.keys == ("RUNTIME_NAMESPACE", "RUNTIME_AUTH", "RUNTIME_APIHOST")
        assert s.manifest_path == in_project / "manifest.yml"
        assert s.launch_file_path == in_project / ".vscode" / "launch.json"

    def test_toml_sections(self, in_project: Path):
        (in_project / "fnapp.toml").write_text(
            "[web]\nport = 9100\n\n[local_runtime]\ntimeout_ms = 5000\n"
        )

        s = Settings()

        assert s.web.port == 9100
        assert s.local_runtime.timeout_ms == 5000

    def test_env_overrides_toml(self, in_project: Path, monkeypatch):
        (in_project / "fnapp.toml").write_text("[web]\nport = 9100\n")
        monkeypatch.setenv("WEB__PORT", "9200")

        assert Settings().web.port == 9200

    def test_dotenv_read_and_credentials_ignored(self, in_project: Path):
        (in_project / ".env").write_text(
            "LOGGING__LEVEL=debug\nRUNTIME_AUTH=user:key\nUNRELATED=1\n"
        )

        s = Settings()

        assert s.logging.level == "DEBUG"

    def test_unknown_section_key_rejected(self, in_project: Path):
        (in_project / "fnapp.toml").write_text("[web]\nprot = 9100\n")

        with pytest.raises(ValidationError):
            Settings()

    def test_runtime_jar_path_expands_home(self, in_project: Path):
        s = Settings()
        assert "~" not in str(s.runtime_jar_path)
        assert s.runtime_jar_path.name == "openwhisk-standalone.jar"


class TestValidators:
    @pytest.mark.parametrize("port", [-1, 65536])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError, match="Invalid port"):
            WebConfig(port=port)

    def test_port_zero_allowed(self):
        assert WebConfig(port=0).port == 0

    def test_negative_duration(self):
        with pytest.raises(ValidationError, match="negative"):
            LocalRuntimeConfig(poll_interval_ms=-1)


class TestSingleton:
    def test_cached_until_reset(self, in_project: Path):
        first = get_settings()
        assert get_settings() is first

        reset_settings()

        assert get_settings() is not first
