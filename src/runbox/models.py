"""Submission and outcome models shared by every engine component."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Language(str, Enum):
    """Source languages the engine knows how to build and run."""

    JAVA = "java"
    PYTHON = "python"

    @property
    def scripted(self) -> bool:
        """Scripted languages run through an interpreter with no compile step."""
        return self is Language.PYTHON


class ProjectType(str, Enum):
    """How a submission is laid out: one file, or a build-descriptor project."""

    STANDALONE = "standalone"
    DECLARATIVE = "declarative"


class ExecutionStatus(str, Enum):
    """Classification of a single execution."""

    SUCCESS = "success"
    BUILD_FAILED = "build_failed"
    RUNTIME_FAILED = "runtime_failed"
    TIMED_OUT = "timed_out"
    INFRA_FAILED = "infra_failed"
    INVALID = "invalid"
    POLICY_VIOLATION = "policy_violation"


class SourceUnit(BaseModel):
    """One submission: code, stdin and an optional build descriptor.

    ``build_descriptor`` must be present exactly when ``project_type`` is
    ``declarative``.  Size caps are configurable and therefore enforced by
    the engine, not here.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    stdin: str = ""
    language: Language = Language.JAVA
    project_type: ProjectType = ProjectType.STANDALONE
    build_descriptor: str | None = None

    @model_validator(mode="after")
    def _validate_layout(self) -> SourceUnit:
        if self.project_type == ProjectType.DECLARATIVE:
            if not self.build_descriptor:
                msg = "declarative projects require a build descriptor"
                raise ValueError(msg)
            if self.language.scripted:
                msg = f"{self.language.value} does not support declarative projects"
                raise ValueError(msg)
        elif self.build_descriptor is not None:
            msg = "a build descriptor is only accepted for declarative projects"
            raise ValueError(msg)
        return self


class ExecutionRequest(BaseModel):
    """Boundary input, as callers send it (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: str = Field(..., min_length=1, description="Source code to run.")
    input: str = Field(default="", description="Text piped to the program's stdin.")
    language: Language = Field(default=Language.JAVA)
    project_type: ProjectType = Field(default=ProjectType.STANDALONE, alias="projectType")
    build_descriptor: str | None = Field(default=None, alias="buildDescriptor")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("projectType") == "maven":
                data["projectType"] = ProjectType.DECLARATIVE.value
            if "pom" in data and "buildDescriptor" not in data:
                data["buildDescriptor"] = data.pop("pom")
            if data.get("input") is None:
                data.pop("input", None)
        return data

    @field_validator("build_descriptor")
    @classmethod
    def _blank_descriptor_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    def to_source_unit(self) -> SourceUnit:
        return SourceUnit(
            code=self.code,
            stdin=self.input,
            language=self.language,
            project_type=self.project_type,
            build_descriptor=self.build_descriptor,
        )


class ExecutionResponse(BaseModel):
    """Flattened boundary projection of an :class:`ExecutionOutcome`."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    output: str | None = None
    error: str | None = None
    compilation_error: str | None = Field(default=None, alias="compilationError")
    execution_time_ms: int = Field(default=0, alias="executionTimeMs")
    memory_usage_kb: int | None = Field(default=None, alias="memoryUsageKB")

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready mapping with camelCase keys and no empty fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ExecutionOutcome(BaseModel):
    """The classified, bounded result of one execution."""

    model_config = ConfigDict(frozen=True)

    status: ExecutionStatus
    stdout: str = ""
    diagnostic: str | None = None
    elapsed_ms: int = 0
    memory_estimate_kb: int | None = None
    plan: str | None = Field(default=None, description="Name of the build plan that ran, if any.")

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @classmethod
    def rejected(cls, status: ExecutionStatus, diagnostic: str) -> ExecutionOutcome:
        """Build an outcome for a submission refused before any sandbox existed."""
        return cls(status=status, diagnostic=diagnostic)

    def to_response(self) -> ExecutionResponse:
        if self.status == ExecutionStatus.SUCCESS:
            return ExecutionResponse(
                success=True,
                output=self.stdout,
                execution_time_ms=self.elapsed_ms,
                memory_usage_kb=self.memory_estimate_kb,
            )
        if self.status == ExecutionStatus.BUILD_FAILED:
            return ExecutionResponse(
                success=False,
                compilation_error=self.diagnostic,
                execution_time_ms=self.elapsed_ms,
            )
        return ExecutionResponse(
            success=False,
            error=self.diagnostic or "Execution failed",
            execution_time_ms=self.elapsed_ms,
        )
