"""Async Unix socket server for the approval daemon.

This module implements the long-running daemon process that:
1. Keeps one Slack Socket Mode session open for all hooks
2. Accepts one request line per hook connection and keeps the connection
   open until a human decides
3. Periodically sweeps stale requests

Usage:
    python -m slackapproval.daemon.server [--socket-path PATH] [--daemonize]

    Or use the CLI:
    slackapproval server
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, Set

from slackapproval.channel.base import ChannelError, DecisionChannel
from slackapproval.core.configs import DaemonSettings
from slackapproval.daemon.client import (
    ensure_runtime_dir,
    get_default_paths,
    remove_runtime_files,
    write_pid_file,
)
from slackapproval.daemon.protocol import (
    MALFORMED_REPLY,
    ProtocolError,
    decode_request,
    encode_message,
)
from slackapproval.daemon.state import ApprovalRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Requests larger than this are rejected as malformed
MAX_LINE_BYTES = 1024 * 1024

SHUTDOWN_MESSAGE = "Approval server shutting down"


class StartupError(Exception):
    """Raised when the daemon cannot bind its socket or reach the channel."""


class ClientConnection:
    """
    One hook connection, as seen by the registry.

    Wraps the stream writer so the registry and the multiplexer never touch
    asyncio streams directly.
    """

    def __init__(self, writer: asyncio.StreamWriter):
        self.writer = writer
        self.closed = False

    def send(self, payload: bytes) -> None:
        if self.closed or self.writer.is_closing():
            raise ConnectionError("Connection already closed")
        self.writer.write(payload)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.writer.close()


class DaemonServer:
    """
    Async Unix socket server for daemon.

    Handles concurrent client connections using asyncio.
    Each connection is handled independently; all decision state lives in
    the ApprovalRegistry.
    """

    def __init__(
        self,
        channel: Optional[DecisionChannel] = None,
        socket_path: Optional[Path] = None,
        pid_path: Optional[Path] = None,
        settings: Optional[DaemonSettings] = None,
    ):
        """
        Initialize daemon server.

        Args:
            channel: Decision channel (default: Slack, built from configuration)
            socket_path: Path to Unix socket
            pid_path: Path to PID file
            settings: Registry timings
        """
        default_socket, default_pid, _ = get_default_paths()
        self.socket_path = socket_path or default_socket
        self.pid_path = pid_path or default_pid
        self.settings = settings or DaemonSettings()
        self.channel = channel

        self.registry: Optional[ApprovalRegistry] = None
        self.server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[ClientConnection] = set()
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._sweeper: Optional[asyncio.Task] = None
        self._stopped = False

    async def start(self) -> None:
        """
        Start the daemon and serve until shutdown.

        Raises:
            StartupError: If the channel or the socket cannot be set up
        """
        logger.info("Starting approval daemon...")
        write_pid_file(self.pid_path)

        try:
            await self._open()
        except Exception:
            await self._cleanup()
            raise

        # Setup signal handlers
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        self._sweeper = asyncio.create_task(self._sweep_watcher())

        # Serve until shutdown
        await self._shutdown_event.wait()

        await self._cleanup()

    async def _open(self) -> None:
        if self.channel is None:
            self.channel = _build_slack_channel()

        self.registry = ApprovalRegistry(
            self.channel,
            dedup_window=self.settings.dedup_window,
            stale_after=self.settings.stale_after,
        )

        try:
            await self.channel.start(self.registry)
        except ChannelError as e:
            raise StartupError(str(e)) from e

        # Clean up stale socket
        ensure_runtime_dir(self.socket_path.parent)
        self.socket_path.unlink(missing_ok=True)

        try:
            self.server = await asyncio.start_unix_server(
                self._handle_client,
                path=str(self.socket_path),
                limit=MAX_LINE_BYTES,
            )
        except OSError as e:
            raise StartupError(f"Cannot bind {self.socket_path}: {e}") from e

        # Set socket permissions (owner only)
        os.chmod(self.socket_path, 0o600)

        logger.info(f"Unix socket server listening at {self.socket_path}")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle a single hook connection."""
        connection = ClientConnection(writer)
        self._connections.add(connection)
        try:
            try:
                line = await reader.readline()
            except ValueError as e:
                # Line longer than MAX_LINE_BYTES
                logger.warning(f"Rejected oversized request: {e}")
                self._reply_malformed(connection)
                return

            if not line:
                # Connection probe: closed without sending anything
                return

            try:
                request = decode_request(line)
            except ProtocolError as e:
                logger.error(f"Failed to process request: {e}")
                self._reply_malformed(connection)
                return

            await self.registry.submit(request, connection)

            # Hold the connection until the reply is written or the hook
            # goes away; anything else it sends is ignored.
            while not connection.closed:
                chunk = await reader.read(65536)
                if not chunk:
                    break

        except (ConnectionError, OSError) as e:
            logger.warning(f"Socket error: {e}")
        except Exception as e:
            logger.exception(f"Error handling client: {e}")
            if not connection.closed:
                self._reply_malformed(connection)
        finally:
            self._connections.discard(connection)
            if self.registry is not None:
                await self.registry.on_connection_closed(connection)
            connection.close()

    @staticmethod
    def _reply_malformed(connection: ClientConnection) -> None:
        try:
            connection.send(encode_message(MALFORMED_REPLY))
        except (ConnectionError, OSError) as e:
            logger.warning(f"Failed to send deny reply: {e}")
        finally:
            connection.close()

    async def _sweep_watcher(self) -> None:
        """Evict stale requests every sweep interval."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.settings.sweep_interval
                )
                break
            except asyncio.TimeoutError:
                pass

            evicted = self.registry.sweep()
            if evicted:
                logger.info(f"Swept {len(evicted)} stale request(s)")
                await self.registry.expire_prompts(evicted)
            logger.debug(f"Registry stats: {self.registry.get_stats()}")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _signal_handler(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        if self._shutdown_event.is_set():
            logger.info("Shutdown already in progress")
            return
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _cleanup(self) -> None:
        """Cleanup on shutdown. Runs once."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Shutting down...")

        # Stop accepting new connections
        if self.server:
            self.server.close()

        if self._sweeper:
            self._sweeper.cancel()

        # Deny and close waiting hooks, then idle connections
        if self.registry:
            self.registry.close_all(SHUTDOWN_MESSAGE)
        for connection in list(self._connections):
            connection.close()

        if self.server:
            await self.server.wait_closed()

        if self.channel:
            await self.channel.stop()

        # Remove socket and PID file
        remove_runtime_files(self.socket_path, self.pid_path)

        logger.info("Daemon stopped")


def _build_slack_channel() -> DecisionChannel:
    """Build the Slack channel from configuration."""
    from slackapproval.channel.slack import SlackChannel
    from slackapproval.core.configs import get_slack_config

    try:
        config = get_slack_config()
    except ValueError as e:
        raise StartupError(str(e)) from e
    return SlackChannel(config)


def run_daemon(
    socket_path: Optional[str] = None,
    daemonize: bool = False,
    settings: Optional[DaemonSettings] = None,
) -> None:
    """
    Run the daemon server.

    Args:
        socket_path: Path to Unix socket (default: <tmp>/claude-slack-approval/server.sock)
        daemonize: Fork to background (Unix only)
        settings: Registry timings (default: from configuration)
    """
    if daemonize:
        # Double-fork to daemonize
        pid = os.fork()
        if pid > 0:
            # Parent exits
            sys.exit(0)

        os.setsid()

        pid = os.fork()
        if pid > 0:
            sys.exit(0)

        sys.stdin.close()

        # Redirect stdout/stderr to log file
        _, _, log_path = get_default_paths()
        ensure_runtime_dir(log_path.parent)
        log_file = open(log_path, "a")
        os.dup2(log_file.fileno(), sys.stdout.fileno())
        os.dup2(log_file.fileno(), sys.stderr.fileno())

    if settings is None:
        from slackapproval.core.configs import get_daemon_settings
        settings = get_daemon_settings()

    server = DaemonServer(
        socket_path=Path(socket_path) if socket_path else None,
        settings=settings,
    )

    try:
        asyncio.run(server.start())
    except StartupError as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Slack approval daemon server")
    parser.add_argument(
        "--socket-path",
        help="Path to Unix socket",
    )
    parser.add_argument(
        "--daemonize",
        action="store_true",
        help="Fork to background",
    )

    args = parser.parse_args()

    run_daemon(
        socket_path=args.socket_path,
        daemonize=args.daemonize,
    )
