"""``runbox run``: execute one source file in the sandbox."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from pydantic import ValidationError

from runbox.cli_commands._output import configure_logging, console, print_outcome, print_plan, print_violation
from runbox.models import Language, ProjectType

if TYPE_CHECKING:
    from runbox.models import ExecutionOutcome


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--input", "-i", "input_text", default=None, help="Text piped to the program's stdin.")
@click.option(
    "--input-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File piped to the program's stdin.",
)
@click.option(
    "--language",
    "-l",
    type=click.Choice([lang.value for lang in Language]),
    default=None,
    help="Source language (default: inferred from the file extension).",
)
@click.option(
    "--project-type",
    "-p",
    type=click.Choice([ptype.value for ptype in ProjectType]),
    default=None,
    help="Project layout (default: declarative when a build descriptor is given).",
)
@click.option(
    "--build-descriptor",
    "-b",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Build descriptor (e.g. pom.xml) for declarative projects.",
)
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the flattened JSON response.")
@click.option("--dry-run", is_flag=True, help="Screen and select a plan only, do not execute.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.option("--telemetry", is_flag=True, help="Export tracing spans to the console.")
@click.option(
    "--otlp-endpoint",
    envvar="RUNBOX_OTLP_ENDPOINT",
    default=None,
    help="Export tracing spans to this OTLP/gRPC collector.",
)
def run(
    source: str,
    input_text: str | None,
    input_file: str | None,
    language: str | None,
    project_type: str | None,
    build_descriptor: str | None,
    config_path: str | None,
    as_json: bool,
    dry_run: bool,
    verbose: bool,
    telemetry: bool,
    otlp_endpoint: str | None,
) -> None:
    """Build and run SOURCE inside a sandbox and report the outcome."""
    from runbox.config import load_config
    from runbox.models import SourceUnit
    from runbox.runtime.engine import ExecutionEngine
    from runbox.runtime.errors import ConfigError, PolicyViolationError, RequestValidationError

    configure_logging(verbose)

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(1)

    if telemetry or otlp_endpoint:
        from runbox.utils.telemetry import configure_telemetry

        try:
            configure_telemetry(export_to_console=telemetry, otlp_endpoint=otlp_endpoint)
        except ImportError as exc:
            console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    source_path = Path(source)
    if input_file is not None:
        stdin = Path(input_file).read_text(encoding="utf-8")
    else:
        stdin = input_text or ""

    descriptor = (Path(build_descriptor).read_text(encoding="utf-8") or None) if build_descriptor else None
    effective_language = language or _infer_language(source_path).value
    effective_project = project_type or (
        ProjectType.DECLARATIVE.value if descriptor is not None else ProjectType.STANDALONE.value
    )

    try:
        unit = SourceUnit(
            code=source_path.read_text(encoding="utf-8"),
            stdin=stdin,
            language=Language(effective_language),
            project_type=ProjectType(effective_project),
            build_descriptor=descriptor,
        )
    except ValidationError as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        sys.exit(1)

    engine = ExecutionEngine(config)

    if dry_run:
        try:
            plan = engine.preflight(unit)
        except RequestValidationError as exc:
            console.print(f"[red]Validation error:[/red] {exc}")
            sys.exit(1)
        except PolicyViolationError as exc:
            print_violation(exc.violation)
            sys.exit(1)
        console.print("[green]Submission accepted.[/green]")
        print_plan(plan)
        return

    if verbose:
        console.print(f"Running {source_path.name} ({effective_language}, {effective_project})")

    async def _execute() -> ExecutionOutcome:
        try:
            return await engine.execute(unit)
        finally:
            await engine.aclose()

    outcome = asyncio.run(_execute())
    print_outcome(outcome, as_json=as_json)
    if not outcome.succeeded:
        sys.exit(1)


def _infer_language(path: Path) -> Language:
    if path.suffix == ".py":
        return Language.PYTHON
    return Language.JAVA
