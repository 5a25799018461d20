"""runbox CLI entrypoint."""

from __future__ import annotations

import click

from runbox import __version__


@click.group()
@click.version_option(version=__version__, prog_name="runbox")
def main() -> None:
    """runbox: run untrusted code in a sandbox and classify the result."""


# Register subcommands
from runbox.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
