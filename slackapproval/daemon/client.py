"""Lightweight client for daemon communication.

This module provides a thin client that connects to the daemon via Unix socket.
It's designed for minimal imports so the hook stays fast: it never imports
the Slack SDK.

Usage:
    client = DaemonClient()
    client.ensure_daemon_running()
    reply = client.send_request({"tool_name": "Bash", ...})
"""

import os
import signal
import socket
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from slackapproval.daemon.protocol import ProtocolError, decode_message, encode_message

RUNTIME_DIR_ENV = "SLACKAPPROVAL_RUNTIME_DIR"

# Timeout for a reply (5 minutes for manual approval)
REPLY_TIMEOUT = 5 * 60.0


class DaemonError(Exception):
    """Raised when the daemon cannot be reached or does not answer."""


def get_runtime_dir() -> Path:
    """Directory holding the socket, PID marker and log."""
    override = os.environ.get(RUNTIME_DIR_ENV)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / "claude-slack-approval"


def get_default_paths() -> Tuple[Path, Path, Path]:
    """Get default paths for socket, PID file, and log file."""
    runtime_dir = get_runtime_dir()
    return (
        runtime_dir / "server.sock",
        runtime_dir / "server.pid",
        runtime_dir / "server.log",
    )


def ensure_runtime_dir(runtime_dir: Optional[Path] = None) -> Path:
    """Create the runtime directory with owner-only permissions."""
    runtime_dir = runtime_dir or get_runtime_dir()
    runtime_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return runtime_dir


def write_pid_file(pid_path: Path, pid: Optional[int] = None) -> None:
    ensure_runtime_dir(pid_path.parent)
    pid_path.write_text(str(pid if pid is not None else os.getpid()))
    os.chmod(pid_path, 0o600)


def remove_runtime_files(socket_path: Path, pid_path: Path) -> None:
    """Remove socket and PID marker, ignoring files that are already gone."""
    for path in (socket_path, pid_path):
        try:
            path.unlink(missing_ok=True)
        except OSError:
            pass


def get_running_daemon_pid(
    pid_path: Optional[Path] = None,
    socket_path: Optional[Path] = None,
) -> Optional[int]:
    """
    Return the PID recorded in the liveness marker if that process is alive.

    A stale marker (unreadable, or process gone) is removed together with
    the socket and treated as absent.
    """
    default_socket, default_pid, _ = get_default_paths()
    pid_path = pid_path or default_pid
    socket_path = socket_path or default_socket

    if not pid_path.exists():
        return None

    try:
        pid = int(pid_path.read_text().strip())
    except (ValueError, OSError):
        # Unreadable or garbled marker - treat as stale
        remove_runtime_files(socket_path, pid_path)
        return None

    try:
        # Check if process exists
        os.kill(pid, 0)
        return pid
    except PermissionError:
        # Alive, owned by someone else
        return pid
    except OSError:
        # Stale PID file - remove it
        remove_runtime_files(socket_path, pid_path)
        return None


class DaemonClient:
    """
    Lightweight client for daemon communication.

    Designed for minimal overhead:
    - Uses stdlib socket (no external deps)
    - One newline-terminated JSON line each way
    - Fast connection check
    """

    def __init__(
        self,
        socket_path: Optional[Path] = None,
        pid_path: Optional[Path] = None,
        timeout: float = REPLY_TIMEOUT,
    ):
        """
        Initialize client.

        Args:
            socket_path: Path to Unix socket
            pid_path: Path to the daemon PID marker
            timeout: Seconds to wait for a reply line
        """
        default_socket, default_pid, _ = get_default_paths()
        self.socket_path = socket_path or default_socket
        self.pid_path = pid_path or default_pid
        self.timeout = timeout

    def can_connect(self, timeout: float = 1.0) -> bool:
        if not self.socket_path.exists():
            return False
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(str(self.socket_path))
            return True
        except OSError:
            return False
        finally:
            sock.close()

    def ensure_daemon_running(self, max_wait: float = 10.0) -> None:
        """
        Ensure daemon is running, starting it in the background if needed.

        Raises:
            DaemonError: If the daemon does not come up within max_wait
        """
        if get_running_daemon_pid(self.pid_path, self.socket_path) is not None:
            return

        print("[Hook] Starting server...", file=sys.stderr)
        self._start_daemon()

        if not self.wait_for_daemon(max_wait):
            raise DaemonError(f"Server failed to start within {max_wait:.0f} seconds")
        print("[Hook] Server started", file=sys.stderr)

    def _start_daemon(self) -> None:
        """Spawn the daemon detached from the hook process."""
        command = [sys.executable, "-m", "slackapproval.daemon.server", "--daemonize"]
        if self.socket_path != get_default_paths()[0]:
            command += ["--socket-path", str(self.socket_path)]
        try:
            subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise DaemonError(f"Failed to start server: {e}") from e

    def wait_for_daemon(self, max_wait: float = 10.0, interval: float = 0.1) -> bool:
        """Poll until the socket accepts connections or max_wait elapses."""
        deadline = time.monotonic() + max_wait
        while time.monotonic() < deadline:
            if self.can_connect():
                return True
            time.sleep(interval)
        return False

    def send_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one request and block until the reply line arrives.

        Raises:
            DaemonError: On connection failure, timeout, early close or an
                unparseable reply
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)

        try:
            sock.connect(str(self.socket_path))
            sock.sendall(encode_message(request))

            buffer = b""
            while b"\n" not in buffer:
                chunk = sock.recv(65536)
                if not chunk:
                    raise DaemonError("Socket closed before receiving response")
                buffer += chunk

            line = buffer.split(b"\n", 1)[0]
            return decode_message(line)

        except socket.timeout as e:
            raise DaemonError("Socket timeout waiting for approval") from e
        except ProtocolError as e:
            raise DaemonError(f"Failed to parse response: {e}") from e
        except OSError as e:
            raise DaemonError(f"Socket error: {e}") from e
        finally:
            sock.close()

    def stop_daemon(self) -> bool:
        """
        Ask the daemon to shut down via SIGTERM.

        Returns True if a running daemon was signalled.
        """
        pid = get_running_daemon_pid(self.pid_path, self.socket_path)
        if pid is None:
            return False
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError:
            return False
        return True
