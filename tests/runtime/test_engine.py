"""Tests for ExecutionEngine."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from runbox.config import EngineConfig
from runbox.models import ExecutionStatus, Language, ProjectType, SourceUnit
from runbox.runtime.engine import ExecutionEngine, default_sandbox
from runbox.runtime.errors import PolicyViolationError, RequestValidationError
from runbox.runtime.plans import PlanKind
from runbox.runtime.sandbox.docker_sandbox import DockerSandbox
from runbox.runtime.sandbox.local_sandbox import LocalSandbox
from runbox.runtime.sandbox.models import RawExecutionResult

_POM = "<project><modelVersion>4.0.0</modelVersion></project>"
_SELENIUM = "import org.openqa.selenium.WebDriver;\npublic class Main {}"


class _BlockingSandbox:
    """Holds every run open until ``release`` is set."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.created = 0
        self.destroyed = 0
        self.release = asyncio.Event()

    async def run(self, plan: Any, unit: Any, spec: Any, reclaimer: Any) -> RawExecutionResult:
        self.created += 1

        async def _destroy() -> None:
            self.destroyed += 1

        reclaimer.defer("blocking context", _destroy)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return RawExecutionResult(stdout="done", exit_status=0)

    async def cleanup(self) -> None:
        pass


async def _wait_for(predicate: Any) -> None:
    for _ in range(500):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition never became true")


class TestRejections:
    async def test_oversized_code_never_allocates(self, fake_sandbox) -> None:
        engine = ExecutionEngine(EngineConfig(max_code_bytes=10), sandbox=fake_sandbox)
        outcome = await engine.execute(SourceUnit(code="x" * 11))
        assert outcome.status == ExecutionStatus.INVALID
        assert "too long" in (outcome.diagnostic or "")
        assert fake_sandbox.created == 0

    async def test_blank_code_rejected(self, fake_sandbox) -> None:
        engine = ExecutionEngine(sandbox=fake_sandbox)
        outcome = await engine.execute(SourceUnit(code="   \n"))
        assert outcome.status == ExecutionStatus.INVALID
        assert fake_sandbox.created == 0

    async def test_oversized_input_rejected(self, fake_sandbox) -> None:
        engine = ExecutionEngine(EngineConfig(max_input_bytes=4), sandbox=fake_sandbox)
        outcome = await engine.execute(SourceUnit(code="class Main {}", stdin="12345"))
        assert outcome.status == ExecutionStatus.INVALID
        assert fake_sandbox.created == 0

    async def test_policy_violation_never_allocates(self, fake_sandbox) -> None:
        engine = ExecutionEngine(sandbox=fake_sandbox)
        unit = SourceUnit(code=_SELENIUM, project_type=ProjectType.DECLARATIVE, build_descriptor=_POM)
        outcome = await engine.execute(unit)
        assert outcome.status == ExecutionStatus.POLICY_VIOLATION
        assert "Selenium WebDriver" in (outcome.diagnostic or "")
        assert fake_sandbox.created == 0

    def test_preflight_raises(self, fake_sandbox) -> None:
        engine = ExecutionEngine(EngineConfig(max_code_bytes=5), sandbox=fake_sandbox)
        with pytest.raises(RequestValidationError):
            engine.preflight(SourceUnit(code="public class Main {}"))
        with pytest.raises(PolicyViolationError):
            ExecutionEngine(sandbox=fake_sandbox).preflight(SourceUnit(code=_SELENIUM))

    def test_preflight_returns_plan(self, fake_sandbox) -> None:
        plan = ExecutionEngine(sandbox=fake_sandbox).preflight(SourceUnit(code="print(1)", language=Language.PYTHON))
        assert plan.kind == PlanKind.SCRIPTED_RUN


class TestExecute:
    async def test_success(self, fake_sandbox_cls) -> None:
        sandbox = fake_sandbox_cls(RawExecutionResult(stdout="HELLO\n", exit_status=0, peak_memory_kb=4096))
        engine = ExecutionEngine(sandbox=sandbox)
        outcome = await engine.execute(SourceUnit(code="public class Main {}", stdin="hello"))
        assert outcome.status == ExecutionStatus.SUCCESS
        assert outcome.stdout == "HELLO"
        assert outcome.memory_estimate_kb == 4096
        assert sandbox.created == sandbox.destroyed == 1

        plan, unit, spec = sandbox.calls[0]
        assert plan.kind == PlanKind.STANDALONE_COMPILE_RUN
        assert unit.stdin == "hello"
        assert spec.memory_mb == 256
        assert spec.network_enabled is False

    async def test_runner_exception_is_infra_failure(self, fake_sandbox_cls) -> None:
        sandbox = fake_sandbox_cls(error=RuntimeError("socket closed"))
        outcome = await ExecutionEngine(sandbox=sandbox).execute(SourceUnit(code="public class Main {}"))
        assert outcome.status == ExecutionStatus.INFRA_FAILED
        assert "socket closed" not in (outcome.diagnostic or "")
        assert sandbox.created == sandbox.destroyed == 1

    async def test_reported_infra_error(self, fake_sandbox_cls) -> None:
        sandbox = fake_sandbox_cls(RawExecutionResult(infra_error="docker create failed"))
        outcome = await ExecutionEngine(sandbox=sandbox).execute(SourceUnit(code="public class Main {}"))
        assert outcome.status == ExecutionStatus.INFRA_FAILED

    async def test_failed_release_keeps_classification(self, fake_sandbox_cls) -> None:
        sandbox = fake_sandbox_cls(fail_release=True)
        outcome = await ExecutionEngine(sandbox=sandbox).execute(SourceUnit(code="public class Main {}"))
        assert outcome.status == ExecutionStatus.SUCCESS
        assert sandbox.destroyed == 1

    async def test_annotated_declarative_uses_test_plan(self, fake_sandbox_cls) -> None:
        sandbox = fake_sandbox_cls(
            RawExecutionResult(stdout="Tests run: 1, Failures: 0, Errors: 0\nBUILD SUCCESS\n", exit_status=0)
        )
        unit = SourceUnit(
            code="class MainTest { @Test void ok() {} }",
            project_type=ProjectType.DECLARATIVE,
            build_descriptor=_POM,
        )
        outcome = await ExecutionEngine(sandbox=sandbox).execute(unit)
        assert outcome.status == ExecutionStatus.SUCCESS
        plan = sandbox.calls[0][0]
        assert plan.kind == PlanKind.DECLARATIVE_BUILD_AND_TEST
        assert len(plan.steps) == 1

    async def test_identical_inputs_identical_outcomes(self, fake_sandbox) -> None:
        engine = ExecutionEngine(sandbox=fake_sandbox)
        unit = SourceUnit(code="public class Main {}")
        first = await engine.execute(unit)
        second = await engine.execute(unit)
        assert first == second
        assert fake_sandbox.created == fake_sandbox.destroyed == 2

    async def test_concurrency_is_bounded(self) -> None:
        sandbox = _BlockingSandbox()
        engine = ExecutionEngine(EngineConfig(max_concurrent_executions=2), sandbox=sandbox)
        unit = SourceUnit(code="public class Main {}")

        tasks = [asyncio.create_task(engine.execute(unit)) for _ in range(5)]
        await _wait_for(lambda: sandbox.active == 2)
        await asyncio.sleep(0.01)
        assert sandbox.created == 2
        assert engine.gate.in_flight == 2

        sandbox.release.set()
        outcomes = await asyncio.gather(*tasks)
        assert all(o.status == ExecutionStatus.SUCCESS for o in outcomes)
        assert sandbox.peak == 2
        assert sandbox.created == sandbox.destroyed == 5

    async def test_cancellation_releases_context(self) -> None:
        sandbox = _BlockingSandbox()
        engine = ExecutionEngine(sandbox=sandbox)
        task = asyncio.create_task(engine.execute(SourceUnit(code="public class Main {}")))
        await _wait_for(lambda: sandbox.active == 1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sandbox.destroyed == 1
        assert engine.gate.in_flight == 0

    async def test_aclose_cleans_up_runner(self, fake_sandbox) -> None:
        engine = ExecutionEngine(sandbox=fake_sandbox)
        await engine.aclose()
        assert fake_sandbox.cleaned_up


class TestHandle:
    async def test_success_payload(self, fake_sandbox) -> None:
        response = await ExecutionEngine(sandbox=fake_sandbox).handle({"code": "public class Main {}", "input": "x"})
        payload = response.to_payload()
        assert payload["success"] is True
        assert payload["output"] == "ok"
        assert "error" not in payload

    @pytest.mark.parametrize("payload", [{}, {"code": 42}, {"code": ""}, {"code": "x", "projectType": "gradle"}])
    async def test_malformed_request(self, fake_sandbox, payload: dict[str, Any]) -> None:
        response = await ExecutionEngine(sandbox=fake_sandbox).handle(payload)
        assert response.success is False
        assert (response.error or "").startswith("Invalid request")
        assert fake_sandbox.created == 0

    async def test_declarative_without_descriptor(self, fake_sandbox) -> None:
        response = await ExecutionEngine(sandbox=fake_sandbox).handle({"code": "x", "projectType": "maven"})
        assert response.success is False
        assert fake_sandbox.created == 0

    async def test_policy_violation_payload(self, fake_sandbox) -> None:
        response = await ExecutionEngine(sandbox=fake_sandbox).handle(
            {"code": _SELENIUM, "projectType": "maven", "pom": _POM}
        )
        assert response.success is False
        assert "Selenium WebDriver" in (response.error or "")
        assert response.compilation_error is None
        assert fake_sandbox.created == 0


class TestDefaultSandbox:
    def test_isolated(self) -> None:
        assert isinstance(default_sandbox(EngineConfig()), DockerSandbox)

    @pytest.mark.filterwarnings("ignore:LocalSandbox")
    def test_unisolated(self) -> None:
        assert isinstance(default_sandbox(EngineConfig(isolation_enabled=False)), LocalSandbox)


@pytest.mark.filterwarnings("ignore:LocalSandbox")
class TestLocalEndToEnd:
    """Scripted plans run for real on the host interpreter."""

    async def test_uppercase_echo(self, local_config) -> None:
        engine = ExecutionEngine(local_config())
        unit = SourceUnit(
            code="import sys\nprint(sys.stdin.read().upper())\n",
            stdin="hello",
            language=Language.PYTHON,
        )
        outcome = await engine.execute(unit)
        assert outcome.status == ExecutionStatus.SUCCESS
        assert outcome.stdout == "HELLO"
        assert outcome.memory_estimate_kb is None

    async def test_infinite_loop_times_out(self, local_config) -> None:
        engine = ExecutionEngine(local_config(execution_timeout_ms=500))
        unit = SourceUnit(code="while True:\n    pass\n", language=Language.PYTHON)
        outcome = await engine.execute(unit)
        assert outcome.status == ExecutionStatus.TIMED_OUT
        assert outcome.diagnostic == "Execution timeout (max 500ms)"

    async def test_syntax_error_is_build_failure(self, local_config) -> None:
        config = local_config()
        engine = ExecutionEngine(config)
        outcome = await engine.execute(SourceUnit(code="print(\n", language=Language.PYTHON))
        assert outcome.status == ExecutionStatus.BUILD_FAILED
        assert "SyntaxError" in (outcome.diagnostic or "")
        assert f"{config.python_command} main.py" not in (outcome.diagnostic or "")

    async def test_printed_syntax_error_text_is_success(self, local_config) -> None:
        engine = ExecutionEngine(local_config())
        outcome = await engine.execute(
            SourceUnit(code='print("SyntaxError: not really")\n', language=Language.PYTHON)
        )
        assert outcome.status == ExecutionStatus.SUCCESS
        assert outcome.stdout == "SyntaxError: not really"

    async def test_uncaught_exception_is_runtime_failure(self, local_config) -> None:
        engine = ExecutionEngine(local_config())
        outcome = await engine.execute(
            SourceUnit(code="print('before')\nraise ValueError('bad')\n", language=Language.PYTHON)
        )
        assert outcome.status == ExecutionStatus.RUNTIME_FAILED
        assert "ValueError: bad" in (outcome.diagnostic or "")
        assert "before" in outcome.stdout
