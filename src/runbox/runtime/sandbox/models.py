"""Data models for the sandbox subsystem."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from runbox.runtime.plans import StepKind

if TYPE_CHECKING:
    from runbox.config import EngineConfig
    from runbox.runtime.plans import BuildPlan


class SandboxSpec(BaseModel):
    """Resource ceilings and isolation flags for one isolated context.

    Derived from a :class:`~runbox.runtime.plans.BuildPlan` and the engine
    config only; callers never set these directly.
    """

    model_config = ConfigDict(frozen=True)

    image: str
    memory_mb: int = Field(..., description="Memory ceiling (swap included).")
    cpu_limit: float = Field(..., description="CPU quota (number of cores).")
    pids_limit: int = Field(..., description="Process/thread ceiling.")
    network_enabled: bool = Field(default=False, description="Allow network access inside the sandbox.")
    exec_storage: bool = Field(default=False, description="Mount ephemeral storage with exec permitted.")
    tmpfs_size_mb: int = 64
    cache_dir: str | None = None
    cache_size_mb: int = 400
    repository_source: Path | None = Field(default=None, description="Host path of the seeded repository.")
    repository_dir: str | None = None
    workdir: str = "/workspace"
    deadline: float = Field(..., description="Wall-clock ceiling for the whole plan, in seconds.")
    max_output_bytes: int = 1024 * 1024

    @classmethod
    def from_plan(cls, plan: BuildPlan, config: EngineConfig) -> SandboxSpec:
        return cls(
            image=plan.image,
            memory_mb=config.memory_limit_mb,
            cpu_limit=config.cpu_limit,
            pids_limit=config.pids_limit,
            network_enabled=plan.needs_network and config.build_network_enabled,
            exec_storage=plan.exec_storage,
            tmpfs_size_mb=config.tmpfs_size_mb,
            cache_dir=plan.cache_dir,
            cache_size_mb=config.cache_size_mb,
            repository_source=config.maven_repository if plan.repository_dir else None,
            repository_dir=plan.repository_dir,
            workdir=plan.workdir,
            deadline=plan.deadline,
            max_output_bytes=config.max_output_bytes,
        )


class StepOutput(BaseModel):
    """Captured result of a single step process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class RawExecutionResult(BaseModel):
    """Unclassified result of running a plan inside a sandbox."""

    model_config = ConfigDict(frozen=True)

    stdout: str = Field(default="", description="Concatenated stdout of every step that ran.")
    stderr: str = Field(default="", description="Concatenated stderr of every step that ran.")
    exit_status: int | None = Field(default=None, description="Exit code of the last step that ran.")
    timed_out: bool = False
    time_limit_ms: int | None = Field(default=None, description="The limit that expired, when timed out.")
    infra_error: str | None = Field(default=None, description="Sandbox fault, distinct from program failure.")
    failed_step: StepKind | None = Field(default=None, description="Kind of the step that exited non-zero.")
    steps_run: tuple[str, ...] = ()
    elapsed_ms: int = 0
    peak_memory_kb: int | None = Field(default=None, description="Sampled peak RSS; None when unmeasured.")
    redactions: tuple[str, ...] = Field(
        default=(),
        description="Host paths and sandbox names that must not reach a diagnostic.",
    )

    @property
    def combined_output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr
