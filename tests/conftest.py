"""Shared fixtures: a recording sandbox double and engine/config helpers."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any

import pytest

from runbox.config import EngineConfig
from runbox.runtime.sandbox.models import RawExecutionResult


class FakeSandbox:
    """Records every context it creates and destroys.

    Each ``run()`` counts one creation and registers one destruction with
    the reclaimer, so ``created == destroyed`` after any call proves the
    1:1 allocation/release invariant.
    """

    def __init__(
        self,
        result: RawExecutionResult | None = None,
        *,
        error: BaseException | None = None,
        fail_release: bool = False,
    ) -> None:
        self.result = result or RawExecutionResult(stdout="ok\n", exit_status=0, steps_run=("run",))
        self.error = error
        self.fail_release = fail_release
        self.created = 0
        self.destroyed = 0
        self.calls: list[tuple[Any, Any, Any]] = []
        self.cleaned_up = False

    async def run(self, plan: Any, unit: Any, spec: Any, reclaimer: Any) -> RawExecutionResult:
        self.created += 1
        self.calls.append((plan, unit, spec))

        async def _destroy() -> None:
            self.destroyed += 1
            if self.fail_release:
                raise RuntimeError("container removal failed")

        reclaimer.defer("fake context", _destroy)
        if self.error is not None:
            raise self.error
        return self.result

    async def cleanup(self) -> None:
        self.cleaned_up = True


@pytest.fixture
def fake_sandbox() -> FakeSandbox:
    return FakeSandbox()


@pytest.fixture
def fake_sandbox_cls() -> type[FakeSandbox]:
    return FakeSandbox


@pytest.fixture
def local_config() -> Callable[..., EngineConfig]:
    """Config factory for host-local runs using the current interpreter."""

    def _make(**overrides: Any) -> EngineConfig:
        values: dict[str, Any] = {
            "isolation_enabled": False,
            "python_command": sys.executable,
            "execution_timeout_ms": 10_000,
        }
        values.update(overrides)
        return EngineConfig(**values)

    return _make
