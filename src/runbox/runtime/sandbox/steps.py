"""Step sequencing shared by every sandbox runner.

Runs a plan's steps in order under the plan deadline.  A step that exits
non-zero short-circuits the rest; a step that overruns its timeout ends the
run with ``timed_out`` set.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from runbox.runtime.errors import SandboxTimeoutError
from runbox.runtime.sandbox.models import RawExecutionResult, StepOutput

if TYPE_CHECKING:
    from runbox.models import SourceUnit
    from runbox.runtime.plans import BuildPlan, BuildStep, StepKind

StepLauncher = Callable[["BuildStep", float, "bytes | None"], Awaitable[StepOutput]]


async def run_plan_steps(
    plan: BuildPlan,
    unit: SourceUnit,
    launch: StepLauncher,
    *,
    deadline: float | None = None,
) -> RawExecutionResult:
    """Launch each step of *plan* via *launch* and collect a raw result.

    *launch* receives the step, its effective timeout in seconds and the
    stdin bytes (``None`` when the step does not read stdin).  It must raise
    :class:`SandboxTimeoutError` after terminating the step on expiry.
    """
    budget = plan.deadline if deadline is None else deadline
    stdin = unit.stdin.encode("utf-8")
    stdout_parts: list[str] = []
    stderr_parts: list[str] = []
    steps_run: list[str] = []
    exit_status: int | None = None
    started = time.monotonic()

    def _result(
        *,
        timed_out: bool = False,
        time_limit_ms: int | None = None,
        failed_step: StepKind | None = None,
    ) -> RawExecutionResult:
        return RawExecutionResult(
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            exit_status=exit_status,
            timed_out=timed_out,
            time_limit_ms=time_limit_ms,
            failed_step=failed_step,
            steps_run=tuple(steps_run),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )

    for step in plan.steps:
        remaining = budget - (time.monotonic() - started)
        if remaining <= 0:
            return _result(timed_out=True, time_limit_ms=int(budget * 1000))

        timeout = min(step.timeout, remaining)
        limit = step.timeout if step.timeout <= remaining else budget
        steps_run.append(step.name)
        try:
            output = await launch(step, timeout, stdin if step.pipe_stdin else None)
        except SandboxTimeoutError:
            return _result(timed_out=True, time_limit_ms=int(limit * 1000))

        stdout_parts.append(output.stdout)
        stderr_parts.append(output.stderr)
        exit_status = output.exit_code
        if output.exit_code != 0:
            return _result(failed_step=step.kind)

    return _result()


def decode_output(data: bytes | None, limit: int) -> str:
    """Decode captured bytes, keeping at most *limit* bytes."""
    if not data:
        return ""
    return data[:limit].decode("utf-8", errors="replace")
