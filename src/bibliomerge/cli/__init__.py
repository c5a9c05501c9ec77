# ABOUTME: CLI package for bibliomerge, built on Click.
# ABOUTME: Defines the root command group, logging setup, and registers subcommands.

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from bibliomerge.cli.commands import inspect_cmd, lookup_cmd


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(package_name="bibliomerge")
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug detail (-vv).")
def cli(verbose: int) -> None:
    """bibliomerge - aggregate and reconcile book metadata from many sources."""
    _configure_logging(verbose)


cli.add_command(inspect_cmd.inspect)
cli.add_command(lookup_cmd.lookup)
