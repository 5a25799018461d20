"""ResultClassifier: turns a raw sandbox result into an :class:`ExecutionOutcome`.

Decision order:

1. infrastructure fault            -> ``infra_failed``
2. timeout                         -> ``timed_out``
3. build-and-test plan whose tool summary reports passing tests
                                   -> ``success``
4. build-failure marker without a build-success marker (only while the
   build is not known to have passed), or a failed build step
                                   -> ``build_failed``
5. non-zero exit or runtime marker -> ``runtime_failed``
6. otherwise                       -> ``success``

Toolchain output markers live in :data:`MARKERS`; the rules above never
mention a specific tool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from runbox.models import ExecutionOutcome, ExecutionStatus
from runbox.runtime.plans import PlanKind, StepKind, Toolchain

if TYPE_CHECKING:
    from runbox.config import EngineConfig
    from runbox.runtime.plans import BuildPlan
    from runbox.runtime.sandbox.models import RawExecutionResult

INFRA_MESSAGE = "Execution environment unavailable. The failure has been reported; please retry later."

# Lines that look like a sandbox invocation never reach a diagnostic.
_INVOCATION_NOISE = ("docker create", "docker exec", "docker run", "Command failed:")


def _patterns(*exprs: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expr, re.MULTILINE) for expr in exprs)


@dataclass(frozen=True)
class ToolchainMarkers:
    """Output markers for one toolchain."""

    build_failure: tuple[re.Pattern[str], ...] = ()
    build_success: tuple[re.Pattern[str], ...] = ()
    runtime_failure: tuple[re.Pattern[str], ...] = ()
    tests_passed: tuple[re.Pattern[str], ...] = ()


MARKERS: dict[Toolchain, ToolchainMarkers] = {
    Toolchain.JAVAC: ToolchainMarkers(
        build_failure=_patterns(r"\.java:\d+: error:", r"^error: "),
        runtime_failure=_patterns(r"^Exception in thread ", r"^Caused by: "),
    ),
    Toolchain.MAVEN: ToolchainMarkers(
        build_failure=_patterns(
            r"COMPILATION ERROR",
            r"\[ERROR\] .*\.java:\[\d+,\d+\]",
            r"Could not resolve dependencies",
            r"or one of its dependencies could not be resolved",
            r"in offline mode and the artifact",
            r"Non-resolvable",
            r"Malformed POM",
            r"Non-parseable POM",
        ),
        build_success=_patterns(r"BUILD SUCCESS"),
        runtime_failure=_patterns(
            r"There are test failures",
            r"Tests run: \d+, Failures: [1-9]",
            r"Tests run: \d+, Failures: \d+, Errors: [1-9]",
            r"^Exception in thread ",
            r"exec-maven-plugin.*An exception occurred while executing the Java class",
        ),
        tests_passed=_patterns(r"Tests run: [1-9]\d*, Failures: 0, Errors: 0", r"BUILD SUCCESS"),
    ),
    Toolchain.PYTHON: ToolchainMarkers(
        build_failure=_patterns(r"^\s*(?:SyntaxError|IndentationError|TabError): "),
        # A traceback means the module compiled and started running.
        build_success=_patterns(r"^Traceback \(most recent call last\):"),
        runtime_failure=_patterns(r"^Traceback \(most recent call last\):"),
    ),
}


def _any(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def scrub(text: str, invocations: list[str], redactions: tuple[str, ...] = ()) -> str:
    """Remove invocation lines and replace host-specific names in *text*."""
    kept: list[str] = []
    for line in text.splitlines():
        if any(inv and inv in line for inv in invocations):
            continue
        if any(noise in line for noise in _INVOCATION_NOISE):
            continue
        kept.append(line)
    cleaned = "\n".join(kept)
    for secret in redactions:
        if secret:
            cleaned = cleaned.replace(secret, "<sandbox>")
    return cleaned


class ResultClassifier:
    """Partition a :class:`RawExecutionResult` into exactly one status."""

    def __init__(self, config: EngineConfig) -> None:
        self._diagnostic_limit = config.max_diagnostic_chars
        self._output_limit = config.max_output_bytes

    def classify(self, raw: RawExecutionResult, plan: BuildPlan) -> ExecutionOutcome:
        if raw.infra_error is not None:
            return self._outcome(ExecutionStatus.INFRA_FAILED, raw, plan, diagnostic=INFRA_MESSAGE)

        output = raw.combined_output

        if raw.timed_out:
            limit = raw.time_limit_ms or int(plan.deadline * 1000)
            return self._outcome(
                ExecutionStatus.TIMED_OUT,
                raw,
                plan,
                diagnostic=f"Execution timeout (max {limit}ms)",
                stdout=output,
            )

        markers = MARKERS[plan.toolchain]
        succeeded = raw.exit_status in (0, None)

        if (
            plan.kind == PlanKind.DECLARATIVE_BUILD_AND_TEST
            and succeeded
            and _any(markers.tests_passed, output)
        ):
            return self._success(raw, plan, output)

        runtime_hit = _any(markers.runtime_failure, output)
        build_hit = (
            not self._build_passed(raw, plan)
            and _any(markers.build_failure, output)
            and not _any(markers.build_success, output)
        )
        if build_hit or (raw.failed_step == StepKind.BUILD and not runtime_hit):
            return self._outcome(
                ExecutionStatus.BUILD_FAILED,
                raw,
                plan,
                diagnostic=self._diagnostic(output, raw, plan, fallback="Build failed"),
            )

        if not succeeded or runtime_hit:
            fallback = f"Process exited with status {raw.exit_status}"
            return self._outcome(
                ExecutionStatus.RUNTIME_FAILED,
                raw,
                plan,
                diagnostic=self._diagnostic(output, raw, plan, fallback=fallback),
                stdout=output,
            )

        return self._success(raw, plan, output)

    @staticmethod
    def _build_passed(raw: RawExecutionResult, plan: BuildPlan) -> bool:
        """Whether the program itself produced the output.

        A zero exit means every step passed.  A run step that started after a
        build step means that build exited cleanly, since a failed step stops
        the plan.
        """
        if raw.exit_status in (0, None) and raw.failed_step is None:
            return True
        started = set(raw.steps_run)
        built = False
        for step in plan.steps:
            if step.kind == StepKind.BUILD:
                built = True
            elif step.kind == StepKind.RUN and built and step.name in started:
                return True
        return False

    def _success(self, raw: RawExecutionResult, plan: BuildPlan, output: str) -> ExecutionOutcome:
        return self._outcome(
            ExecutionStatus.SUCCESS,
            raw,
            plan,
            stdout=output,
            memory_estimate_kb=raw.peak_memory_kb,
        )

    def _outcome(
        self,
        status: ExecutionStatus,
        raw: RawExecutionResult,
        plan: BuildPlan,
        *,
        diagnostic: str | None = None,
        stdout: str = "",
        memory_estimate_kb: int | None = None,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            status=status,
            stdout=stdout.strip()[: self._output_limit],
            diagnostic=diagnostic,
            elapsed_ms=raw.elapsed_ms,
            memory_estimate_kb=memory_estimate_kb,
            plan=plan.kind.value,
        )

    def _diagnostic(self, text: str, raw: RawExecutionResult, plan: BuildPlan, *, fallback: str) -> str:
        cleaned = scrub(text, plan.invocations, raw.redactions).strip()
        return cleaned[: self._diagnostic_limit] or fallback
