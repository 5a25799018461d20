"""Tests for the engine error hierarchy."""

from runbox.runtime.errors import (
    ConfigError,
    PolicyViolationError,
    RequestValidationError,
    RunboxError,
    SandboxError,
    SandboxTimeoutError,
)
from runbox.runtime.policy.models import PolicyViolation


class TestErrorHierarchy:
    def test_sandbox_error_is_runbox_error(self) -> None:
        assert issubclass(SandboxError, RunboxError)

    def test_sandbox_timeout_error_is_sandbox_error(self) -> None:
        assert issubclass(SandboxTimeoutError, SandboxError)

    def test_rejections_are_runbox_errors(self) -> None:
        assert issubclass(RequestValidationError, RunboxError)
        assert issubclass(PolicyViolationError, RunboxError)
        assert issubclass(ConfigError, RunboxError)


class TestSandboxError:
    def test_message_with_detail(self) -> None:
        err = SandboxError("container crashed")
        assert "container crashed" in str(err)
        assert err.detail == "container crashed"

    def test_message_without_detail(self) -> None:
        err = SandboxError()
        assert "Sandbox error" in str(err)


class TestSandboxTimeoutError:
    def test_attributes(self) -> None:
        err = SandboxTimeoutError(5.0)
        assert err.timeout == 5.0
        assert "5.0s" in str(err)


class TestPolicyViolationError:
    def test_carries_violation(self) -> None:
        violation = PolicyViolation(capability="Playwright", human_reason="no browser")
        err = PolicyViolationError(violation)
        assert err.violation is violation
        assert "Playwright" in str(err)
