"""``runbox screen``: check a submission against the dependency policy."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from runbox.cli_commands._output import console, print_violation


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--build-descriptor",
    "-b",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Build descriptor (e.g. pom.xml) to screen alongside the source.",
)
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None)
def screen(source: str, build_descriptor: str | None, config_path: str | None) -> None:
    """Screen SOURCE for capabilities the sandbox cannot provide."""
    from runbox.config import load_config
    from runbox.models import ProjectType, SourceUnit
    from runbox.runtime.errors import ConfigError
    from runbox.runtime.policy.policy import DependencyPolicy

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(1)

    descriptor = (Path(build_descriptor).read_text(encoding="utf-8") or None) if build_descriptor else None
    unit = SourceUnit(
        code=Path(source).read_text(encoding="utf-8"),
        project_type=ProjectType.DECLARATIVE if descriptor else ProjectType.STANDALONE,
        build_descriptor=descriptor,
    )

    violation = DependencyPolicy(config.policy).screen(unit)
    if violation is not None:
        print_violation(violation)
        sys.exit(1)

    console.print("[green]No unsupported capabilities detected.[/green]")
