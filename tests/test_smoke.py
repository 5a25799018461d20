"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import runbox

    assert runbox.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from runbox.cli import main

    assert callable(main)


def test_runtime_imports() -> None:
    from runbox.runtime.policy import DependencyPolicy, PolicyConfig, PolicyViolation
    from runbox.runtime.sandbox import (
        DockerSandbox,
        LocalSandbox,
        RawExecutionResult,
        ResourceReclaimer,
        SandboxRunner,
        SandboxSpec,
    )

    assert DependencyPolicy is not None
    assert PolicyConfig is not None
    assert PolicyViolation is not None
    assert DockerSandbox is not None
    assert LocalSandbox is not None
    assert RawExecutionResult is not None
    assert ResourceReclaimer is not None
    assert SandboxRunner is not None
    assert SandboxSpec is not None


def test_lazy_import_from_runbox() -> None:
    import runbox

    assert runbox.ExecutionEngine is not None
    assert runbox.EngineConfig is not None
