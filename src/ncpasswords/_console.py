"""Shared Rich Console instances for logging and command output."""

from rich.console import Console

# Logs go to stderr so stdout stays clean for piping command output.
console = Console(stderr=True)

# Tables and JSON printed by CLI commands.
out = Console()
