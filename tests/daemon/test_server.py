"""
Tests for daemon/server.py - the Unix socket daemon.

These tests run a real DaemonServer on a socket in a temporary directory,
with the Slack channel replaced by an in-memory one.
"""

import asyncio
import json
import shutil
import tempfile
import unittest
from pathlib import Path

from registry_fakes import FakeChannel

from slackapproval.core.configs import DaemonSettings
from slackapproval.core.models import Signal, SignalKind
from slackapproval.daemon.server import SHUTDOWN_MESSAGE, DaemonServer, StartupError

BASH_REQUEST = {
    "type": "permission_request",
    "tool_name": "Bash",
    "tool_input": {"command": "git push"},
    "session_id": "session-1",
}


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


class TestDaemonServer(unittest.IsolatedAsyncioTestCase):
    """Test cases for the daemon's socket handling."""

    async def asyncSetUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.socket_path = Path(self.temp_dir) / "server.sock"
        self.pid_path = Path(self.temp_dir) / "server.pid"
        self.channel = FakeChannel()
        self.server = DaemonServer(
            channel=self.channel,
            socket_path=self.socket_path,
            pid_path=self.pid_path,
            settings=DaemonSettings(sweep_interval=3600),
        )
        self.task = asyncio.create_task(self.server.start())
        await wait_until(lambda: self.server.server is not None)

    async def asyncTearDown(self):
        self.server.request_shutdown()
        await asyncio.wait_for(self.task, timeout=5)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def send(self, payload):
        reader, writer = await asyncio.open_unix_connection(str(self.socket_path))
        data = payload if isinstance(payload, bytes) else (json.dumps(payload) + "\n").encode()
        writer.write(data)
        await writer.drain()
        return reader, writer

    async def test_startup_writes_pid_and_restricts_socket(self):
        self.assertTrue(self.channel.started)
        self.assertTrue(self.pid_path.exists())
        self.assertEqual(self.socket_path.stat().st_mode & 0o777, 0o600)

    async def test_malformed_line_gets_deny_and_close(self):
        reader, writer = await self.send(b"this is not json\n")

        reply = await asyncio.wait_for(reader.readline(), timeout=2)
        self.assertEqual(json.loads(reply), {"decision": "deny"})
        self.assertEqual(await asyncio.wait_for(reader.read(), timeout=2), b"")
        writer.close()

    async def test_blank_line_gets_deny_and_close(self):
        for payload in (b"\n", b"   \n"):
            reader, writer = await self.send(payload)

            reply = await asyncio.wait_for(reader.readline(), timeout=2)
            self.assertEqual(json.loads(reply), {"decision": "deny"})
            self.assertEqual(await asyncio.wait_for(reader.read(), timeout=2), b"")
            writer.close()

        self.assertEqual(self.server.registry.pending, {})

    async def test_probe_connection_is_ignored(self):
        reader, writer = await asyncio.open_unix_connection(str(self.socket_path))
        writer.close()
        await writer.wait_closed()

        await asyncio.sleep(0.05)
        self.assertEqual(self.server.registry.pending, {})

    async def test_approval_round_trip(self):
        reader, writer = await self.send(BASH_REQUEST)
        await wait_until(lambda: len(self.channel.published) == 1)

        request_id = self.channel.published[0][0]
        await self.server.registry.on_signal(request_id, Signal(SignalKind.APPROVE), "U1")

        reply = json.loads(await asyncio.wait_for(reader.readline(), timeout=2))
        self.assertEqual(reply["hookSpecificOutput"]["decision"]["behavior"], "allow")
        writer.close()

    async def test_duplicates_share_one_prompt_and_identical_replies(self):
        first_reader, first_writer = await self.send(BASH_REQUEST)
        await wait_until(lambda: len(self.channel.published) == 1)
        second_reader, second_writer = await self.send(BASH_REQUEST)
        await wait_until(
            lambda: len(next(iter(self.server.registry.pending.values())).connections) == 2
        )

        request_id = self.channel.published[0][0]
        await self.server.registry.on_signal(request_id, Signal(SignalKind.REACTION, "+1"), "U1")

        first = await asyncio.wait_for(first_reader.readline(), timeout=2)
        second = await asyncio.wait_for(second_reader.readline(), timeout=2)
        self.assertEqual(first, second)
        self.assertEqual(len(self.channel.published), 1)
        first_writer.close()
        second_writer.close()

    async def test_cached_approval_is_answered_immediately(self):
        reader, writer = await self.send(BASH_REQUEST)
        await wait_until(lambda: len(self.channel.published) == 1)
        await self.server.registry.on_signal(
            self.channel.published[0][0], Signal(SignalKind.APPROVE), "U1")
        await reader.readline()
        writer.close()

        reader, writer = await self.send(BASH_REQUEST)
        reply = json.loads(await asyncio.wait_for(reader.readline(), timeout=2))

        self.assertEqual(reply["hookSpecificOutput"]["decision"]["behavior"], "allow")
        self.assertEqual(len(self.channel.published), 1)
        writer.close()

    async def test_client_disconnect_expires_request(self):
        reader, writer = await self.send(BASH_REQUEST)
        await wait_until(lambda: len(self.channel.published) == 1)

        writer.close()
        await writer.wait_closed()
        await wait_until(lambda: len(self.channel.updates) == 1)

        request_id = self.channel.published[0][0]
        self.assertEqual(self.server.registry.pending[request_id].status.value, "expired")

    async def test_shutdown_denies_waiting_clients_and_cleans_up(self):
        reader, writer = await self.send(BASH_REQUEST)
        await wait_until(lambda: len(self.channel.published) == 1)

        self.server.request_shutdown()
        reply = json.loads(await asyncio.wait_for(reader.readline(), timeout=2))
        await asyncio.wait_for(self.task, timeout=5)

        self.assertEqual(
            reply["hookSpecificOutput"]["decision"],
            {"behavior": "deny", "message": SHUTDOWN_MESSAGE},
        )
        self.assertTrue(self.channel.stopped)
        self.assertFalse(self.socket_path.exists())
        self.assertFalse(self.pid_path.exists())
        writer.close()

        # A second shutdown request is harmless
        self.server._signal_handler()
        await self.server._cleanup()


class TestDaemonStartup(unittest.IsolatedAsyncioTestCase):
    """Test cases for startup failures."""

    async def test_channel_failure_aborts_startup_and_removes_marker(self):
        temp_dir = tempfile.mkdtemp()
        try:
            pid_path = Path(temp_dir) / "server.pid"
            server = DaemonServer(
                channel=FakeChannel(fail_start=True),
                socket_path=Path(temp_dir) / "server.sock",
                pid_path=pid_path,
            )

            with self.assertRaises(StartupError):
                await server.start()
            self.assertFalse(pid_path.exists())
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == "__main__":
    unittest.main()
