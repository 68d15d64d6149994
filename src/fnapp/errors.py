"""Exceptions raised by the dev orchestrator and its collaborators."""

from __future__ import annotations


class FnappError(Exception):
    """Base for every error fnapp raises on purpose."""


class DevEnvironmentError(FnappError):
    """Required local tooling is missing or not running."""


class RuntimeStartTimeoutError(FnappError):
    """The local function runtime never answered its readiness probe."""


class BuildError(FnappError):
    """Packaging one or more actions failed."""


class DeployError(FnappError):
    """Pushing actions to the function platform failed."""


class CredentialError(FnappError):
    """Runtime credentials needed for a remote backend are absent."""


class StaleBackupError(FnappError):
    """A backup left by an earlier session blocks writing a managed file.

    The backup holds the only copy of the original, so it is never
    overwritten.
    """

    def __init__(self, path: object, backup: object) -> None:
        self.path = path
        self.backup = backup
        super().__init__(
            f"Cannot back up {path}: {backup} already exists from an earlier session. "
            f"Move it back over {path} (or delete it) and try again."
        )


class TeardownError(FnappError):
    """One or more resources could not be released.

    Raised only after every registered resource had its undo attempted.
    """

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        self.failures = failures
        described = ", ".join(f"{name} ({exc})" for name, exc in failures)
        super().__init__(f"Failed to release {len(failures)} resource(s): {described}")
