"""ExecutionEngine: the single entry point that runs one submission safely.

Control flow for :meth:`ExecutionEngine.execute`:

1. **Validation**: size caps from the config; oversized units are refused.
2. **Policy screening**: denylisted capabilities are refused.
3. **Plan selection**: pick the build/run strategy.
4. **Admission**: wait for a free slot in the concurrency gate.
5. **Sandbox run**: inside a :class:`ResourceReclaimer` scope, so the
   isolated context is torn down on every exit path.
6. **Classification**: partition the raw result into one status.

Steps 1 and 2 never allocate a sandbox.  Every failure mode comes back as a
structured :class:`~runbox.models.ExecutionOutcome`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from runbox.config import EngineConfig
from runbox.models import ExecutionOutcome, ExecutionRequest, ExecutionStatus
from runbox.runtime.admission import AdmissionGate
from runbox.runtime.classifier import ResultClassifier
from runbox.runtime.errors import PolicyViolationError, RequestValidationError
from runbox.runtime.plans import PlanSelector, uses_annotated_tests
from runbox.runtime.policy.policy import DependencyPolicy
from runbox.runtime.sandbox.models import RawExecutionResult, SandboxSpec
from runbox.runtime.sandbox.reclaimer import ResourceReclaimer
from runbox.utils.telemetry import (
    ATTR_CAPABILITY,
    ATTR_IN_FLIGHT,
    ATTR_LANGUAGE,
    ATTR_PLAN,
    ATTR_PROJECT_TYPE,
    get_tracer,
    record_outcome,
)

if TYPE_CHECKING:
    from runbox.models import ExecutionResponse, SourceUnit
    from runbox.runtime.plans import BuildPlan
    from runbox.runtime.sandbox.executor import SandboxRunner

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


def default_sandbox(config: EngineConfig) -> SandboxRunner:
    """Pick the runner the config asks for."""
    if config.isolation_enabled:
        from runbox.runtime.sandbox.docker_sandbox import DockerSandbox

        return DockerSandbox(config)

    from runbox.runtime.sandbox.local_sandbox import LocalSandbox

    return LocalSandbox(config)


class ExecutionEngine:
    """Validate, screen, plan, run and classify one submission at a time.

    Instances are safe to share between concurrent tasks: the only shared
    state is the read-only config and the admission gate.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        sandbox: SandboxRunner | None = None,
        policy: DependencyPolicy | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._sandbox = sandbox or default_sandbox(self._config)
        self._policy = policy or DependencyPolicy(self._config.policy)
        self._selector = PlanSelector(self._config)
        self._classifier = ResultClassifier(self._config)
        self._gate = AdmissionGate(self._config.max_concurrent_executions)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def sandbox(self) -> SandboxRunner:
        return self._sandbox

    @property
    def gate(self) -> AdmissionGate:
        return self._gate

    def preflight(self, unit: SourceUnit) -> BuildPlan:
        """Validate and screen *unit*, then return the plan it would run.

        Raises:
            RequestValidationError: If the unit exceeds a configured size cap.
            PolicyViolationError: If the unit uses a denylisted capability.
        """
        self._validate(unit)
        self._policy.enforce(unit)
        return self._selector.select(
            unit.language,
            unit.project_type,
            uses_annotated_tests(unit.code),
        )

    async def execute(self, unit: SourceUnit) -> ExecutionOutcome:
        """Run *unit* to completion or failure and classify the result."""
        with _tracer.start_as_current_span("runbox.execute") as span:
            span.set_attribute(ATTR_LANGUAGE, unit.language.value)
            span.set_attribute(ATTR_PROJECT_TYPE, unit.project_type.value)

            try:
                plan = self.preflight(unit)
            except RequestValidationError as exc:
                outcome = ExecutionOutcome.rejected(ExecutionStatus.INVALID, str(exc))
            except PolicyViolationError as exc:
                span.set_attribute(ATTR_CAPABILITY, exc.violation.capability)
                outcome = ExecutionOutcome.rejected(
                    ExecutionStatus.POLICY_VIOLATION,
                    exc.violation.human_reason,
                )
            else:
                span.set_attribute(ATTR_PLAN, plan.kind.value)
                outcome = await self._run(plan, unit, span)

            record_outcome(span, outcome)
            return outcome

    async def handle(self, payload: Mapping[str, Any]) -> ExecutionResponse:
        """Boundary entry point: raw request mapping in, flattened response out."""
        try:
            unit = ExecutionRequest.model_validate(dict(payload)).to_source_unit()
        except ValidationError as exc:
            detail = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
                for err in exc.errors()
            )
            outcome = ExecutionOutcome.rejected(ExecutionStatus.INVALID, f"Invalid request: {detail}")
            return outcome.to_response()

        outcome = await self.execute(unit)
        return outcome.to_response()

    async def aclose(self) -> None:
        """Release anything the sandbox runner still tracks."""
        await self._sandbox.cleanup()

    async def _run(self, plan: BuildPlan, unit: SourceUnit, span: Any) -> ExecutionOutcome:
        spec = SandboxSpec.from_plan(plan, self._config)

        async with self._gate:
            span.set_attribute(ATTR_IN_FLIGHT, self._gate.in_flight)
            started = time.monotonic()
            try:
                async with ResourceReclaimer() as reclaimer:
                    raw = await self._sandbox.run(plan, unit, spec, reclaimer)
            except Exception as exc:
                logger.exception("Sandbox runner crashed while running %s", plan.kind.value)
                raw = RawExecutionResult(
                    infra_error=f"{type(exc).__name__}: {exc}",
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                )

        outcome = self._classifier.classify(raw, plan)
        if outcome.status == ExecutionStatus.INFRA_FAILED:
            logger.error("Infrastructure failure for %s: %s", plan.kind.value, raw.infra_error)
            span.set_status(Status(StatusCode.ERROR, "sandbox infrastructure failure"))
        return outcome

    def _validate(self, unit: SourceUnit) -> None:
        cfg = self._config
        code_size = len(unit.code.encode("utf-8"))
        if code_size > cfg.max_code_bytes:
            raise RequestValidationError(
                f"Code is too long ({code_size} bytes, max {cfg.max_code_bytes})"
            )
        if not unit.code.strip():
            raise RequestValidationError("Code is required")
        input_size = len(unit.stdin.encode("utf-8"))
        if input_size > cfg.max_input_bytes:
            raise RequestValidationError(
                f"Input is too long ({input_size} bytes, max {cfg.max_input_bytes})"
            )
        descriptor = unit.build_descriptor or ""
        if len(descriptor.encode("utf-8")) > cfg.max_code_bytes:
            raise RequestValidationError(
                f"Build descriptor is too long (max {cfg.max_code_bytes} bytes)"
            )
