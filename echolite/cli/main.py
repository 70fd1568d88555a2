"""Main CLI command group for EchoLite."""

from __future__ import annotations

import click

import echolite


@click.group()
@click.version_option(version=echolite.__version__, prog_name="echolite")
def cli() -> None:
    """EchoLite: ask questions about audio files."""
