"""`echolite config` commands — read and update the server's profiles."""

from __future__ import annotations

import json
import sys
from typing import Any

import click

from echolite.cli.ask import DEFAULT_SERVER_URL, exit_with_error
from echolite.cli.main import cli

_ENDPOINT = "/api/config/models"


def _get_document(server: str) -> dict[str, Any]:
    import httpx

    try:
        response = httpx.get(f"{server.rstrip('/')}{_ENDPOINT}", timeout=10.0)
    except httpx.ConnectError:
        click.echo(
            f"Error: server not available at {server}. Run 'echolite serve' first.",
            err=True,
        )
        sys.exit(1)
    if response.status_code != 200:
        exit_with_error(response)
    return response.json()  # type: ignore[no-any-return]


def _parse_assignment(assignment: str) -> tuple[str, str, Any]:
    """``section.field=value`` with ``value`` parsed as JSON when possible."""
    key, sep, raw = assignment.partition("=")
    section, dot, field = key.partition(".")
    if not sep or not dot or not section or not field:
        raise click.BadParameter(f"expected section.field=value, got '{assignment}'")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return section, field, value


@cli.group()
def config() -> None:
    """Shows or updates the backend profiles on a running server."""


@config.command()
@click.option("--server", default=DEFAULT_SERVER_URL, show_default=True, help="Server URL.")
def show(server: str) -> None:
    """Prints the current profiles as JSON."""
    document = _get_document(server)
    click.echo(json.dumps(document, indent=2, ensure_ascii=False))


@config.command()
@click.option("--server", default=DEFAULT_SERVER_URL, show_default=True, help="Server URL.")
def path(server: str) -> None:
    """Prints where the server stores its profiles."""
    document = _get_document(server)
    click.echo(document.get("_meta", {}).get("path", "?"))


@config.command("set")
@click.argument("assignments", nargs=-1, required=True)
@click.option("--server", default=DEFAULT_SERVER_URL, show_default=True, help="Server URL.")
def set_(assignments: tuple[str, ...], server: str) -> None:
    """Updates profile fields, e.g. ``askText.model=qwen3:8b``.

    The current document is fetched first so that fields not named keep
    their values.
    """
    import httpx

    document = _get_document(server)
    document.pop("_meta", None)
    for assignment in assignments:
        section, field, value = _parse_assignment(assignment)
        if not isinstance(document.get(section), dict):
            raise click.BadParameter(f"unknown section '{section}'")
        document[section][field] = value

    response = httpx.post(f"{server.rstrip('/')}{_ENDPOINT}", json=document, timeout=10.0)
    if response.status_code != 200:
        exit_with_error(response)
    click.echo("Saved.")
