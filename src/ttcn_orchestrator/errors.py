"""Exception taxonomy shared by the orchestrator and its CLI boundary."""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for orchestrator failures that end an invocation."""


class ConfigError(OrchestratorError, ValueError):
    """Configuration or suite resolution failed before any job ran."""


class SuiteConfigError(ConfigError):
    """Raised when no suite manifest is found or it is malformed."""


class PersistenceError(OrchestratorError):
    """Raised when the run record cannot be written."""


class TestsFailedError(OrchestratorError):
    """One or more jobs finished with a non-pass verdict or an error."""

    __test__ = False

    def __init__(self, error_count: int, *, circuit_broken: bool = False) -> None:
        self.error_count = error_count
        self.circuit_broken = circuit_broken
        message = f"command failed: {error_count} error(s) occurred"
        if circuit_broken:
            message += " (stopped after too many errors)"
        super().__init__(message)


class DelegateFailedError(OrchestratorError):
    """The delegate executor exited with a non-zero status."""

    def __init__(self, executable: str, returncode: int) -> None:
        self.executable = executable
        self.returncode = returncode
        super().__init__(f"{executable} exited with status {returncode}")


__all__ = [
    "ConfigError",
    "DelegateFailedError",
    "OrchestratorError",
    "PersistenceError",
    "SuiteConfigError",
    "TestsFailedError",
]
