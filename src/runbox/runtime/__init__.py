"""Execution runtime: policy screening, build plans, sandboxes and classification."""

from runbox.runtime.errors import (
    ConfigError,
    PolicyViolationError,
    RequestValidationError,
    RunboxError,
    SandboxError,
    SandboxTimeoutError,
)

__all__ = [
    "ConfigError",
    "PolicyViolationError",
    "RequestValidationError",
    "RunboxError",
    "SandboxError",
    "SandboxTimeoutError",
]
