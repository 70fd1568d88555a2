"""`echolite transcribe`, `ask-audio` and `ask` commands — thin HTTP clients."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import IO, Any, NoReturn

import click

from echolite.cli.main import cli
from echolite.config.settings import get_settings

_s = get_settings()
DEFAULT_SERVER_URL = _s.cli.server_url
_HTTP_TIMEOUT_S = _s.cli.http_timeout_s

_server_option = click.option(
    "--server",
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="EchoLite server URL.",
)


def exit_with_error(response: Any) -> NoReturn:
    """Print the server's error body and exit."""
    response.read()
    try:
        body = response.json()
        msg = f"{body.get('error', 'error')}: {body.get('detail', response.text)}"
    except ValueError:
        msg = response.text
    click.echo(f"Error ({response.status_code}): {msg}", err=True)
    sys.exit(1)


def _stream_text(server_url: str, endpoint: str, **request_kwargs: Any) -> None:
    """POST to ``endpoint`` and echo the text body as it arrives."""
    import httpx

    url = f"{server_url.rstrip('/')}{endpoint}"
    try:
        with httpx.stream("POST", url, timeout=_HTTP_TIMEOUT_S, **request_kwargs) as response:
            if response.status_code != 200:
                exit_with_error(response)
            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type:
                import json

                response.read()
                click.echo(json.dumps(response.json(), indent=2, ensure_ascii=False))
                return
            for text in response.iter_text():
                click.echo(text, nl=False)
            click.echo()
    except httpx.ConnectError:
        click.echo(
            f"Error: server not available at {server_url}. Run 'echolite serve' first.",
            err=True,
        )
        sys.exit(1)
    except httpx.RemoteProtocolError as exc:
        click.echo(f"\nError: answer interrupted ({exc})", err=True)
        sys.exit(1)


def _audio_part(file_path: Path) -> tuple[str, bytes, str]:
    return (file_path.name, file_path.read_bytes(), "application/octet-stream")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "-f",
    "response_format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Response format (default: the profile's responseFormat).",
)
@_server_option
def transcribe(file: Path, response_format: str | None, server: str) -> None:
    """Transcribes an audio file with the configured engine."""
    data = {"response_format": response_format} if response_format else {}
    _stream_text(server, "/api/transcribe", files={"audio": _audio_part(file)}, data=data)


@cli.command("ask-audio")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("instruction")
@_server_option
def ask_audio(file: Path, instruction: str, server: str) -> None:
    """Asks INSTRUCTION about an audio FILE and streams the answer."""
    _stream_text(
        server,
        "/api/ask-audio",
        files={"audio": _audio_part(file)},
        data={"instruction": instruction},
    )


@cli.command()
@click.argument("transcript_file", type=click.File("r", encoding="utf-8"))
@click.argument("instruction")
@_server_option
def ask(transcript_file: IO[str], instruction: str, server: str) -> None:
    """Asks INSTRUCTION about a transcript (use '-' to read stdin)."""
    transcript = transcript_file.read()
    _stream_text(
        server,
        "/api/complete",
        json={"transcript": transcript, "instruction": instruction},
    )
