"""Shared error types for the execution engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runbox.runtime.policy.models import PolicyViolation


class RunboxError(Exception):
    """Base error for all execution engine failures."""


class ConfigError(RunboxError):
    """Engine configuration could not be read or validated."""


class RequestValidationError(RunboxError):
    """A submission was malformed or oversized and never reached a sandbox."""


class PolicyViolationError(RunboxError):
    """A submission uses a capability the headless sandbox cannot provide."""

    def __init__(self, violation: PolicyViolation) -> None:
        self.violation = violation
        super().__init__(f"Unsupported capability: {violation.capability}")


class SandboxError(RunboxError):
    """A sandbox operation failed (creation, execution, or cleanup)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class SandboxTimeoutError(SandboxError):
    """A sandboxed step exceeded its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Execution timed out after {timeout}s")
