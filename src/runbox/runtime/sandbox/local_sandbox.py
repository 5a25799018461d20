"""LocalSandbox: runs build plans on the host with loud warnings.

This is the runner used when isolation is disabled.  It gets a private temp
workspace, a per-step process group and the same timeouts, but **no**
memory, CPU, process-count or network isolation.  It emits prominent
warnings every time it is instantiated or used.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import os
import signal
import time
import warnings
from typing import TYPE_CHECKING

from runbox.config import EngineConfig
from runbox.runtime.errors import SandboxError, SandboxTimeoutError
from runbox.runtime.sandbox.models import RawExecutionResult, StepOutput
from runbox.runtime.sandbox.steps import decode_output, run_plan_steps
from runbox.runtime.sandbox.workspace import create_workspace, write_sources
from runbox.utils.telemetry import ATTR_PLAN, ATTR_SANDBOX, get_tracer

if TYPE_CHECKING:
    from pathlib import Path

    from runbox.models import SourceUnit
    from runbox.runtime.plans import BuildPlan, BuildStep
    from runbox.runtime.sandbox.models import SandboxSpec
    from runbox.runtime.sandbox.reclaimer import ResourceReclaimer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_WARNING_MSG = (
    "LocalSandbox executes submissions directly on the host with NO isolation. "
    "Enable isolation (DockerSandbox) for production workloads."
)


class LocalSandbox:
    """Host-local plan runner (no isolation).

    Satisfies the :class:`~runbox.runtime.sandbox.executor.SandboxRunner`
    protocol but provides **zero** sandboxing.  Peak memory is never
    reported: there is no per-execution cgroup to sample from.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()
        warnings.warn(_WARNING_MSG, stacklevel=2)
        logger.warning(_WARNING_MSG)

    async def run(
        self,
        plan: BuildPlan,
        unit: SourceUnit,
        spec: SandboxSpec,
        reclaimer: ResourceReclaimer,
    ) -> RawExecutionResult:
        """Run *plan* on the host inside a temp workspace."""
        logger.warning("LocalSandbox: running %s on host (UNSANDBOXED)", plan.kind.value)
        redactions: list[str] = []
        started = time.monotonic()

        with _tracer.start_as_current_span("runbox.sandbox.run") as span:
            span.set_attribute(ATTR_SANDBOX, "local")
            span.set_attribute(ATTR_PLAN, plan.kind.value)
            try:
                workspace = create_workspace(self._config.workspace_root)
                redactions.append(str(workspace))
                reclaimer.defer_path(workspace)
                await asyncio.to_thread(write_sources, workspace, plan, unit)

                result = await run_plan_steps(
                    plan,
                    unit,
                    functools.partial(self._run_step, workspace, spec),
                    deadline=spec.deadline,
                )
            except SandboxError as exc:
                logger.error("Local execution failed: %s", exc)
                span.record_exception(exc)
                return RawExecutionResult(
                    infra_error=exc.detail or str(exc),
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                    redactions=tuple(redactions),
                )

        return result.model_copy(update={"redactions": tuple(redactions)})

    async def cleanup(self) -> None:
        """No-op: workspaces are released per call by the reclaimer."""

    @staticmethod
    async def _run_step(
        workspace: Path,
        spec: SandboxSpec,
        step: BuildStep,
        timeout: float,
        stdin: bytes | None,
    ) -> StepOutput:
        """Run one step in its own session; kill the whole group on timeout."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *step.argv,
                cwd=workspace,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise SandboxError(f"Cannot start {step.argv[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(input=stdin), timeout=timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(proc.pid, signal.SIGKILL)
            await proc.wait()
            raise SandboxTimeoutError(timeout)

        return StepOutput(
            exit_code=proc.returncode if proc.returncode is not None else 1,
            stdout=decode_output(stdout, spec.max_output_bytes),
            stderr=decode_output(stderr, spec.max_output_bytes),
        )
