"""Sandbox subsystem: isolated execution of build plans."""

from runbox.runtime.sandbox.docker_sandbox import DockerSandbox
from runbox.runtime.sandbox.executor import SandboxRunner
from runbox.runtime.sandbox.local_sandbox import LocalSandbox
from runbox.runtime.sandbox.models import RawExecutionResult, SandboxSpec, StepOutput
from runbox.runtime.sandbox.reclaimer import ResourceReclaimer

__all__ = [
    "DockerSandbox",
    "LocalSandbox",
    "RawExecutionResult",
    "ResourceReclaimer",
    "SandboxRunner",
    "SandboxSpec",
    "StepOutput",
]
