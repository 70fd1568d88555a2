"""`echolite serve` command — starts the HTTP gateway."""

from __future__ import annotations

import asyncio
import signal

import click

from echolite.cli.main import cli
from echolite.config.settings import get_settings
from echolite.logging import configure_logging, get_logger

logger = get_logger("cli.serve")

_s = get_settings()
DEFAULT_HOST = _s.server.host
DEFAULT_PORT = _s.server.port
DEFAULT_CONFIG_PATH = _s.server.config_path


@cli.command()
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="HTTP host.")
@click.option("--port", default=DEFAULT_PORT, type=int, show_default=True, help="HTTP port.")
@click.option(
    "--config",
    "config_path",
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Profile document (JSON). Created with defaults if missing.",
)
@click.option(
    "--cors-origins",
    default=_s.server.cors_origins,
    help="CORS origins (comma-separated). Ex: http://localhost:5173",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Log format.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
    help="Log level.",
)
def serve(
    host: str,
    port: int,
    config_path: str,
    cors_origins: str,
    log_format: str,
    log_level: str,
) -> None:
    """Starts the EchoLite gateway."""
    configure_logging(log_format=log_format, level=log_level)
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()] if cors_origins else []
    asyncio.run(_serve(host, port, config_path, cors_origins=origins))


async def _serve(
    host: str,
    port: int,
    config_path: str,
    *,
    cors_origins: list[str] | None = None,
) -> None:
    """Main async flow for serve."""
    from pathlib import Path

    import httpx
    import uvicorn

    from echolite.config.store import JsonSettingsStore
    from echolite.gateway.orchestrator import Gateway
    from echolite.gateway.workspace import WorkspaceFactory
    from echolite.server.app import create_app
    from echolite.workers.process import ProcessRunner

    settings = get_settings()
    gw = settings.gateway

    # 1. Profiles (bootstraps the document on first load)
    store = JsonSettingsStore(Path(config_path).expanduser().resolve())
    store.load()

    # 2. Gateway collaborators
    workspaces = WorkspaceFactory(gw.temp_root)
    runner = ProcessRunner(
        diagnostics_limit=gw.process_diagnostics_limit,
        stop_grace_s=gw.process_stop_grace_s,
    )
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(gw.backend_read_timeout_s, connect=gw.backend_connect_timeout_s)
    )
    gateway = Gateway(store, workspaces, runner, http_client, ffmpeg_path=gw.ffmpeg_path)

    logger.info(
        "server_starting",
        host=host,
        port=port,
        config_path=store.location,
        temp_root=str(workspaces.root),
        ffmpeg=gw.ffmpeg_path,
    )

    # 3. Create app
    app = create_app(
        settings_provider=store,
        gateway=gateway,
        http_client=http_client,
        max_upload_bytes=settings.server.max_file_size_bytes,
        cors_origins=cors_origins,
    )

    # 4. Setup shutdown
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(s: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=s.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # 5. Run uvicorn
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)

    server_task = asyncio.create_task(server.serve())

    # Wait for shutdown signal or server to stop
    _done, _ = await asyncio.wait(
        [server_task, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    # 6. Graceful shutdown
    if not server_task.done():
        server.should_exit = True
        await server_task

    if not http_client.is_closed:
        await http_client.aclose()
    logger.info("server_stopped")
