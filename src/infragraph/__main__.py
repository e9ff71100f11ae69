"""Command-line runner: provision the stack against the in-memory provider.

Usage::

    $ infragraph                        # reads ./stack.yaml, or defaults if absent
    $ infragraph --stack-file prod.yaml --verbose
    $ python -m infragraph

On success the stack outputs are printed as YAML. A configuration error or a
failed resource exits with status 1.
"""

import asyncio
import logging
import os
import sys
from typing import Optional

import click
import yaml

from infragraph.config import STACK_FILE, StackConfig
from infragraph.errors import ConfigError, ProvisionFailure
from infragraph.program import run_stack
from infragraph.provider import InMemoryProvider

log = logging.getLogger("infragraph")


def load_config(stack_file: Optional[str]) -> StackConfig:
    """Parse ``stack_file``; without one, parse ./stack.yaml if it exists."""
    if stack_file is None:
        if not os.path.exists(STACK_FILE):
            log.info("No %s found, using default stack settings", STACK_FILE)
            return StackConfig()
        stack_file = STACK_FILE
    return StackConfig.parse(stack_file)


@click.command()
@click.option(
    "--stack-file", "-f",
    type=click.Path(dir_okay=False),
    help=f"Stack configuration file [default: {STACK_FILE}]",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every declaration.")
def cli(stack_file, verbose):
    """Declare the stack and provision it, printing its outputs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        config = load_config(stack_file)
        outputs = asyncio.run(run_stack(InMemoryProvider(), config))
    except (ConfigError, ProvisionFailure) as ex:
        click.echo(click.style(f"ERROR: {ex}", fg="red", bold=True), err=True)
        sys.exit(1)

    click.echo(click.style(f"\nOutputs of {config.project}/{config.stack}:\n", bold=True))
    click.echo(yaml.safe_dump(outputs, sort_keys=True, default_flow_style=False))


if __name__ == "__main__":
    cli()
