"""
Operator-facing terminal output for `status` and `stop`.

The hook never goes through here: its stdout carries the reply line.
"""

import sys
from pathlib import Path
from typing import Optional, TextIO

ANSI_CODES = {
    "green": "32;1",
    "yellow": "33;1",
    "red": "31;1",
    "gray": "90",
}


def colorize(text: str, color: str) -> str:
    """
    Wrap text in an ANSI color sequence.

    Raises:
        ValueError: If the specified color is not supported
    """
    if color not in ANSI_CODES:
        raise ValueError(f"Unsupported color: {color}. Available colors: {', '.join(ANSI_CODES)}")
    return f"\u001b[{ANSI_CODES[color]}m{text}\u001b[0m"


class UIManager:
    """Prints daemon state for the operator commands."""

    def __init__(self, file: Optional[TextIO] = None, color: Optional[bool] = None):
        self.file = file or sys.stdout
        # Plain text when piped
        self.color = self.file.isatty() if color is None else color

    def success(self, message: str) -> None:
        self._print(message, "green")

    def warning(self, message: str) -> None:
        self._print(message, "yellow")

    def error(self, message: str) -> None:
        self._print(message, "red")

    def dim(self, message: str) -> None:
        self._print(message, "gray")

    def daemon_status(
        self,
        pid: Optional[int],
        reachable: bool,
        socket_path: Path,
        log_path: Path,
    ) -> None:
        """Report the liveness marker and socket state of the daemon."""
        if pid is None:
            self.warning("Daemon is not running")
            return

        if reachable:
            self.success(f"Daemon running (pid {pid})")
        else:
            self.error(f"Daemon process {pid} is alive but not accepting connections")
        self.dim(f"Socket: {socket_path}")
        self.dim(f"Log: {log_path}")

    def _print(self, message: str, color: str) -> None:
        text = colorize(message, color) if self.color else message
        print(text, file=self.file)
        self.file.flush()
