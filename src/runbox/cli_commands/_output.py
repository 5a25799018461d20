"""Shared CLI output formatters."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from runbox.models import ExecutionOutcome, ExecutionStatus  # noqa: TC001
from runbox.runtime.plans import BuildPlan  # noqa: TC001
from runbox.runtime.policy.models import PolicyViolation  # noqa: TC001

console = Console()

_STATUS_STYLES = {
    ExecutionStatus.SUCCESS: "green",
    ExecutionStatus.BUILD_FAILED: "red",
    ExecutionStatus.RUNTIME_FAILED: "red",
    ExecutionStatus.TIMED_OUT: "yellow",
    ExecutionStatus.INFRA_FAILED: "magenta",
    ExecutionStatus.INVALID: "yellow",
    ExecutionStatus.POLICY_VIOLATION: "yellow",
}


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; DEBUG when *verbose*."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def print_outcome(outcome: ExecutionOutcome, *, as_json: bool = False) -> None:
    """Pretty-print an execution outcome, or its boundary JSON."""
    if as_json:
        console.print_json(data=outcome.to_response().to_payload())
        return

    style = _STATUS_STYLES.get(outcome.status, "white")
    memory = f"{outcome.memory_estimate_kb} KB" if outcome.memory_estimate_kb is not None else "n/a"
    console.print(
        f"[bold {style}]{outcome.status.value}[/bold {style}]"
        f"  plan={outcome.plan or '-'}  time={outcome.elapsed_ms}ms  memory={memory}"
    )

    if outcome.stdout:
        console.print(Panel(Text(outcome.stdout), title="Output", expand=False))
    if outcome.diagnostic:
        console.print(Panel(Text(outcome.diagnostic), title="Diagnostic", border_style=style, expand=False))


def print_plan(plan: BuildPlan) -> None:
    """Pretty-print a build plan as a table of steps."""
    table = Table(title=f"Build plan: {plan.kind.value}")
    table.add_column("Step", style="cyan")
    table.add_column("Kind")
    table.add_column("Command")
    table.add_column("Timeout", justify="right")
    table.add_column("Stdin")

    for step in plan.steps:
        table.add_row(
            step.name,
            step.kind.value,
            _truncate(" ".join(step.argv)),
            f"{step.timeout:g}s",
            "yes" if step.pipe_stdin else "-",
        )

    console.print(table)
    console.print(f"  Image: {plan.image}")
    console.print(f"  Deadline: {plan.deadline:g}s")
    console.print(f"  Source path: {plan.source_path}")


def print_violation(violation: PolicyViolation) -> None:
    console.print(f"[red]Policy violation:[/red] {violation.capability} (in {violation.source})")
    console.print(violation.human_reason)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
