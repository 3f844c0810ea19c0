from __future__ import annotations


class ExecutionError(RuntimeError):
    """Raised when the runner process fails outside of a normal run result."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code


class SpawnError(ExecutionError):
    """Raised when the runner process cannot be started."""
