"""Custom exceptions for the smoke runner."""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """Base harness exception with a structured error payload."""

    exit_code: int = 1
    error_code: str = "HARNESS_ERROR"
    message: str = "Integration test harness failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.exit_code = exit_code if exit_code is not None else self.exit_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for reports and structured logs."""
        return {
            "error": self.error_code,
            "message": self.message,
            "exit_code": self.exit_code,
            **({"details": self.details} if self.details else {}),
        }


class BinaryNotFoundError(HarnessError):
    """Worker executable does not resolve."""

    error_code = "BINARY_NOT_FOUND"
    message = "CLI binary not found"

    def __init__(self, binary_path: str):
        super().__init__(
            message=f"CLI binary not found at: {binary_path}",
            details={"binary_path": binary_path},
        )
        self.binary_path = binary_path


class NoCandidatesConfiguredError(HarnessError):
    """Resolved candidate pool is empty."""

    error_code = "NO_CANDIDATES_CONFIGURED"
    message = "No node IDs configured (environment, argument and fallback list are all empty)"


class TerminationEscalationRequired(HarnessError):
    """Worker ignored the graceful stop signal; a forced kill follows."""

    error_code = "TERMINATION_ESCALATION_REQUIRED"
    message = "Process did not stop after the graceful signal"

    def __init__(self, pid: int, grace_seconds: float):
        super().__init__(
            message=f"Process {pid} still alive {grace_seconds:g}s after SIGTERM, sending SIGKILL",
            details={"pid": pid, "grace_seconds": grace_seconds},
        )
        self.pid = pid


class OperatorAbort(HarnessError):
    """Run was interrupted by the operator or by the CI runner."""

    exit_code = 130
    error_code = "OPERATOR_ABORT"
    message = "Run aborted by signal"
