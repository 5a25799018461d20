"""Engine configuration: limits, timeouts, images and policy settings.

An :class:`EngineConfig` is built once at process start and handed to every
component.  Nothing below the engine reads the environment on its own.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from runbox.runtime.errors import ConfigError
from runbox.runtime.policy.models import PolicyConfig

ENV_PREFIX = "RUNBOX_"


class EngineConfig(BaseModel):
    """Process-wide, read-only settings for the execution engine."""

    model_config = ConfigDict(frozen=True)

    execution_timeout_ms: int = Field(default=5_000, gt=0, description="Short timeout for run steps.")
    build_timeout_ms: int = Field(default=240_000, gt=0, description="Timeout for dependency-resolving builds.")
    plan_timeout_ms: int = Field(default=300_000, gt=0, description="Wall-clock ceiling for a declarative plan.")
    declarative_run_timeout_ms: int = Field(
        default=30_000, gt=0, description="Run-step timeout for declarative projects."
    )
    memory_limit_mb: int = Field(default=256, gt=0)
    cpu_limit: float = Field(default=1.0, gt=0)
    pids_limit: int = Field(default=50, gt=0, description="Process/thread ceiling inside the sandbox.")
    tmpfs_size_mb: int = Field(default=64, gt=0)
    cache_size_mb: int = Field(default=400, gt=0, description="Size of the ephemeral dependency cache.")
    isolation_enabled: bool = Field(default=True, description="Run inside containers; False runs on the host.")
    build_network_enabled: bool = Field(
        default=False, description="Let declarative builds reach the network to resolve dependencies."
    )
    max_concurrent_executions: int = Field(default=4, gt=0)
    max_code_bytes: int = Field(default=50_000, gt=0)
    max_input_bytes: int = Field(default=1_000_000, gt=0)
    max_output_bytes: int = Field(default=1024 * 1024, gt=0, description="Per-stream capture limit.")
    max_diagnostic_chars: int = Field(default=2_000, gt=0)
    java_image: str = "eclipse-temurin:17-jdk-alpine"
    maven_image: str = "maven:3.9-eclipse-temurin-17-alpine"
    python_image: str = "python:3.12-slim"
    python_command: str = Field(default="python3", description="Interpreter used by the scripted plan.")
    maven_repository: Path | None = Field(
        default=None,
        description="Host directory holding a pre-populated Maven repository for offline builds.",
    )
    workspace_root: Path | None = Field(default=None, description="Parent directory for ephemeral workspaces.")
    policy: PolicyConfig = Field(default_factory=PolicyConfig)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        base: Mapping[str, Any] | None = None,
    ) -> EngineConfig:
        """Build a config from ``RUNBOX_<FIELD>`` variables layered over *base*.

        Raises:
            ConfigError: If a variable holds a value the field rejects.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = dict(base or {})
        for name in cls.model_fields:
            if name == "policy":
                continue
            value = env.get(ENV_PREFIX + name.upper())
            if value is not None and value != "":
                data[name] = value
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def load_config(path: Path | str | None = None, *, environ: Mapping[str, str] | None = None) -> EngineConfig:
    """Read a YAML config file (optional), then apply environment overrides.

    ``${VAR}`` references in the file are expanded with
    :func:`os.path.expandvars` before parsing.

    Raises:
        ConfigError: On unreadable files, YAML errors or invalid values.
    """
    if path is None:
        return EngineConfig.from_env(environ)

    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {p}: {exc}") from exc

    try:
        data: Any = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")

    return EngineConfig.from_env(environ, base=data)
