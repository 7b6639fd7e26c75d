"""
Hook Mode - the agent-side client.

Reads one request from stdin, waits out the notification delay, forwards the
request to the daemon and prints the daemon's reply on stdout. Questions are
answered immediately and forwarded by a detached notifier process.
"""

import json
import subprocess
import sys
import time
from typing import Any, Callable, Dict, Optional, TextIO

from ..core.configs import HookSettings
from ..daemon.client import DaemonClient, DaemonError
from ..daemon.protocol import MALFORMED_REPLY, is_question_payload
from ..utils.detection import is_screen_locked

LOCK_CHECK_INTERVAL = 0.5

QUESTION_NOTIFIED_REPLY: Dict[str, Any] = {
    "hookSpecificOutput": {
        "hookEventName": "PreToolUse",
        "permissionDecision": "allow",
        "permissionDecisionReason": "Question notification sent to Slack",
    }
}

TEST_REQUEST: Dict[str, Any] = {
    "type": "permission_request",
    "session_id": "test-session",
    "tool_name": "Test",
    "tool_input": {
        "command": 'echo "This is a test notification"',
        "description": "Test notification to verify Slack configuration",
    },
}


class HookMode:
    """Forwards one hook invocation to the approval daemon."""

    def __init__(
        self,
        settings: Optional[HookSettings] = None,
        client: Optional[DaemonClient] = None,
        lock_check: Callable[[], bool] = is_screen_locked,
        out: TextIO = sys.stdout,
        err: TextIO = sys.stderr,
    ):
        """
        Initialize with injected dependencies.

        Args:
            settings: Delay, lock and timeout behaviour
            client: Daemon client (default: standard socket path)
            lock_check: Returns True while the screen is locked
            out: Stream the reply line is written to
            err: Stream for diagnostics
        """
        self.settings = settings or HookSettings()
        self.client = client or DaemonClient(timeout=self.settings.reply_timeout)
        self.lock_check = lock_check
        self.out = out
        self.err = err

    def run(self, raw_request: str) -> int:
        """
        Main entry point for hook mode.

        Returns the process exit code. Any failure prints a deny reply.
        """
        try:
            request = json.loads(raw_request)
            if not isinstance(request, dict):
                raise ValueError("Request must be a JSON object")
        except ValueError as e:
            self._log(f"Failed to parse stdin: {e}")
            self._emit(MALFORMED_REPLY)
            return 1

        self._log(f"Received request: {json.dumps(request, indent=2)}")

        if is_question_payload(request):
            return self._notify_question(raw_request)

        try:
            self.wait_before_notify()
            self.client.ensure_daemon_running()
            self._log("Sending request to server...")
            response = self.client.send_request(request)
        except DaemonError as e:
            self._log(f"Hook error: {e}")
            self._emit(MALFORMED_REPLY)
            return 1

        self._log(f"Response received: {json.dumps(response)}")
        self._emit(response)
        return 0

    def _notify_question(self, raw_request: str) -> int:
        """Allow immediately and hand the question to a detached notifier."""
        self._log("AskUserQuestion detected - notification only mode")
        self._emit(QUESTION_NOTIFIED_REPLY)
        try:
            spawn_notifier(raw_request)
        except OSError as e:
            self._log(f"Failed to spawn notifier: {e}")
        return 0

    def wait_before_notify(self) -> bool:
        """
        Wait for the configured delay.

        Returns True if the wait was cut short because the screen locked.
        """
        delay = self.settings.delay
        if delay <= 0:
            return False

        deadline = time.monotonic() + delay
        while time.monotonic() < deadline:
            if self.settings.notify_immediately_on_lock and self.lock_check():
                self._log("Screen locked, notifying immediately")
                return True
            time.sleep(min(LOCK_CHECK_INTERVAL, max(deadline - time.monotonic(), 0)))

        self._log(f"Delay completed ({delay:.0f}s)")
        return False

    def send_test_notification(self) -> int:
        """Send a fixed test request through the daemon."""
        try:
            self.client.ensure_daemon_running()
            self._log("Sending test notification to Slack...")
            self._log(f"Socket path: {self.client.socket_path}")
            response = self.client.send_request(TEST_REQUEST)
        except DaemonError as e:
            self._log(f"Test failed: {e}")
            return 1

        self._log(f"Response received: {json.dumps(response)}")
        self._log("Test completed successfully!")
        return 0

    def _emit(self, payload: Dict[str, Any]) -> None:
        print(json.dumps(payload), file=self.out)
        self.out.flush()

    def _log(self, message: str) -> None:
        print(f"[Hook] {message}", file=self.err)


def spawn_notifier(raw_request: str) -> None:
    """Start the question notifier fully detached from the hook."""
    subprocess.Popen(
        [sys.executable, "-m", "slackapproval.main", "notify", raw_request],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def run_notifier(raw_request: str, client: Optional[DaemonClient] = None) -> int:
    """
    Forward a question to the daemon and wait for it to be answered.

    Failures are reported on stderr and never propagate: the agent already
    received its reply, so the notifier always exits 0.
    """
    client = client or DaemonClient()
    try:
        request = json.loads(raw_request)
        client.ensure_daemon_running()
        client.send_request(request)
    except (ValueError, DaemonError) as e:
        print(f"[Notify] Error: {e}", file=sys.stderr)
    return 0
