"""EchoLite CLI.

Registers every command on the main group.
"""

from echolite.cli.ask import ask, ask_audio, transcribe
from echolite.cli.config import config
from echolite.cli.main import cli
from echolite.cli.serve import serve

__all__ = [
    "ask",
    "ask_audio",
    "cli",
    "config",
    "serve",
    "transcribe",
]
