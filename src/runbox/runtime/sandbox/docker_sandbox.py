"""DockerSandbox: runs build plans in ephemeral Docker containers.

Uses the ``docker`` CLI via subprocess argument lists (no docker-py
dependency and no shell).  Each ``run()`` call:

1. Stages the submission files in a host temp directory.
2. ``docker create`` an idle container with resource limits, network
   isolation and an anonymous volume as the working directory.
3. ``docker cp`` the staged files into the container.
4. ``docker start``, then ``docker exec`` each plan step with stdin piped.
5. Samples the container's peak memory from its cgroup.
6. ``docker rm -f -v`` and removal of the staging directory, both through
   the :class:`~runbox.runtime.sandbox.reclaimer.ResourceReclaimer`.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
import uuid
from typing import TYPE_CHECKING

from runbox.config import EngineConfig
from runbox.runtime.errors import SandboxError, SandboxTimeoutError
from runbox.runtime.sandbox.models import RawExecutionResult, StepOutput
from runbox.runtime.sandbox.steps import decode_output, run_plan_steps
from runbox.runtime.sandbox.workspace import create_workspace, write_sources
from runbox.utils.telemetry import ATTR_PLAN, ATTR_SANDBOX, get_tracer

if TYPE_CHECKING:
    from runbox.models import SourceUnit
    from runbox.runtime.plans import BuildPlan, BuildStep
    from runbox.runtime.sandbox.models import SandboxSpec
    from runbox.runtime.sandbox.reclaimer import ResourceReclaimer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_IDLE_COMMAND = ("tail", "-f", "/dev/null")

# cgroup v2 first, then the v1 location.
_PEAK_MEMORY_FILES = (
    "/sys/fs/cgroup/memory.peak",
    "/sys/fs/cgroup/memory/memory.max_usage_in_bytes",
)

_DAEMON_ERROR_MARKERS = (
    "Error response from daemon",
    "Cannot connect to the Docker daemon",
    "OCI runtime exec failed",
)


class DockerSandbox:
    """Ephemeral Docker container sandbox.

    Satisfies the :class:`~runbox.runtime.sandbox.executor.SandboxRunner`
    protocol.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()
        self._active_containers: set[str] = set()

    async def run(
        self,
        plan: BuildPlan,
        unit: SourceUnit,
        spec: SandboxSpec,
        reclaimer: ResourceReclaimer,
    ) -> RawExecutionResult:
        """Run *plan* inside a fresh container."""
        container_name = f"runbox-{uuid.uuid4().hex[:12]}"
        redactions = [container_name]
        started = time.monotonic()

        with _tracer.start_as_current_span("runbox.sandbox.run") as span:
            span.set_attribute(ATTR_SANDBOX, "docker")
            span.set_attribute(ATTR_PLAN, plan.kind.value)
            try:
                staging = create_workspace(self._config.workspace_root)
                redactions.append(str(staging))
                reclaimer.defer_path(staging)
                await asyncio.to_thread(write_sources, staging, plan, unit)

                # Registered before create so a half-created container is removed too.
                reclaimer.defer(
                    f"container {container_name}",
                    functools.partial(self._remove_container, container_name),
                )
                await self._run_docker(self._build_create_command(container_name, spec))
                self._active_containers.add(container_name)

                await self._run_docker(
                    ["docker", "cp", f"{staging}/.", f"{container_name}:{spec.workdir}"]
                )
                await self._run_docker(["docker", "start", container_name])

                result = await run_plan_steps(
                    plan,
                    unit,
                    functools.partial(self._exec_step, container_name, spec),
                    deadline=spec.deadline,
                )
                if not result.timed_out:
                    peak = await self._sample_peak_memory(container_name)
                    result = result.model_copy(update={"peak_memory_kb": peak})
            except SandboxError as exc:
                logger.error("Sandbox %s failed: %s", container_name, exc)
                span.record_exception(exc)
                return RawExecutionResult(
                    infra_error=exc.detail or str(exc),
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                    redactions=tuple(redactions),
                )

        return result.model_copy(update={"redactions": tuple(redactions)})

    async def cleanup(self) -> None:
        """Remove all tracked containers."""
        for name in list(self._active_containers):
            with contextlib.suppress(SandboxError):
                await self._remove_container(name)

    def _build_create_command(self, container_name: str, spec: SandboxSpec) -> list[str]:
        """Build the ``docker create`` command with resource limits."""
        exec_flag = "exec" if spec.exec_storage else "noexec"
        cmd: list[str] = [
            "docker", "create",
            "--name", container_name,
            "--init",
            "--memory", f"{spec.memory_mb}m",
            "--memory-swap", f"{spec.memory_mb}m",
            "--cpus", str(spec.cpu_limit),
            "--pids-limit", str(spec.pids_limit),
            "--cap-drop", "ALL",
            "--security-opt", "no-new-privileges",
            "--read-only",
            "--tmpfs", f"/tmp:rw,{exec_flag},nosuid,size={spec.tmpfs_size_mb}m",
            "--mount", f"type=volume,destination={spec.workdir}",
            "--workdir", spec.workdir,
        ]

        if not spec.network_enabled:
            cmd.extend(["--network", "none"])

        if spec.cache_dir:
            cmd.extend(["--tmpfs", f"{spec.cache_dir}:rw,exec,nosuid,size={spec.cache_size_mb}m"])

        if spec.repository_source is not None and spec.repository_dir:
            source = spec.repository_source.absolute()
            mount = f"type=bind,source={source},destination={spec.repository_dir},readonly"
            cmd.extend(["--mount", mount])

        cmd.append(spec.image)
        cmd.extend(_IDLE_COMMAND)
        return cmd

    async def _exec_step(
        self,
        container_name: str,
        spec: SandboxSpec,
        step: BuildStep,
        timeout: float,
        stdin: bytes | None,
    ) -> StepOutput:
        """Run one step with ``docker exec``; kill the container on timeout."""
        cmd = ["docker", "exec"]
        if stdin is not None:
            cmd.append("-i")
        cmd.extend(["--workdir", spec.workdir, container_name, *step.argv])

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SandboxError(f"Failed to run docker: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(input=stdin), timeout=timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            # Killing the container takes down every process the step forked.
            await self._run_docker(["docker", "kill", container_name], ignore_errors=True)
            raise SandboxTimeoutError(timeout)

        err_text = decode_output(stderr, spec.max_output_bytes)
        if proc.returncode != 0 and _is_daemon_error(err_text):
            raise SandboxError(err_text.strip())

        return StepOutput(
            exit_code=proc.returncode if proc.returncode is not None else 1,
            stdout=decode_output(stdout, spec.max_output_bytes),
            stderr=err_text,
        )

    async def _sample_peak_memory(self, container_name: str) -> int | None:
        """Read the container's peak memory in KB, or ``None`` if unavailable."""
        for path in _PEAK_MEMORY_FILES:
            out = await self._run_docker(
                ["docker", "exec", container_name, "cat", path],
                ignore_errors=True,
            )
            value = out.stdout.strip()
            if value.isdigit():
                return int(value) // 1024
        logger.debug("Peak memory unavailable for %s", container_name)
        return None

    async def _remove_container(self, name: str) -> None:
        """Force-remove a container and its anonymous volumes."""
        try:
            await self._run_docker(["docker", "rm", "-f", "-v", name])
        except SandboxError as exc:
            if "No such container" not in exc.detail:
                raise
        finally:
            self._active_containers.discard(name)

    @staticmethod
    async def _run_docker(
        cmd: list[str],
        *,
        ignore_errors: bool = False,
    ) -> _DockerOutput:
        """Run a docker CLI command and return its output."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, stderr_bytes = await proc.communicate()
        except OSError as exc:
            if ignore_errors:
                return _DockerOutput()
            raise SandboxError(f"Failed to run docker: {exc}") from exc

        stdout = stdout_bytes.decode(errors="replace").strip() if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace").strip() if stderr_bytes else ""

        if proc.returncode != 0 and not ignore_errors:
            raise SandboxError(f"docker {cmd[1]} failed (rc={proc.returncode}): {stderr or stdout}")

        return _DockerOutput(stdout=stdout, stderr=stderr)


def _is_daemon_error(stderr: str) -> bool:
    return any(marker in stderr for marker in _DAEMON_ERROR_MARKERS)


class _DockerOutput:
    """Simple container for docker CLI output."""

    __slots__ = ("stdout", "stderr")

    def __init__(self, stdout: str = "", stderr: str = "") -> None:
        self.stdout = stdout
        self.stderr = stderr
