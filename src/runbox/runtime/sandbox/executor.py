"""SandboxRunner protocol: the common interface for sandbox implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from runbox.models import SourceUnit
    from runbox.runtime.plans import BuildPlan
    from runbox.runtime.sandbox.models import RawExecutionResult, SandboxSpec
    from runbox.runtime.sandbox.reclaimer import ResourceReclaimer


@runtime_checkable
class SandboxRunner(Protocol):
    """Runs one build plan inside one isolated execution context.

    Implementations allocate exactly one context per ``run()`` call and
    register its release with *reclaimer* so teardown happens on every exit
    path.  Faults of the context itself are reported through
    ``RawExecutionResult.infra_error``, never as a program failure.
    """

    async def run(
        self,
        plan: BuildPlan,
        unit: SourceUnit,
        spec: SandboxSpec,
        reclaimer: ResourceReclaimer,
    ) -> RawExecutionResult:
        """Execute *plan* for *unit* under *spec* and return the raw result."""
        ...

    async def cleanup(self) -> None:
        """Release anything still held by this runner (process shutdown)."""
        ...
