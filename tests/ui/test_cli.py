"""
Tests for ui/cli.py - the typer application.

HookMode and the daemon helpers are patched so no daemon is started.
"""

import json
import unittest
from unittest.mock import patch

from typer.testing import CliRunner

from slackapproval.core.configs import HookSettings
from slackapproval.ui.cli import app

DENY_LINE = json.dumps({"decision": "deny"})


class TestHookCommand(unittest.TestCase):
    """Test cases for `slackapproval hook`."""

    def setUp(self):
        self.runner = CliRunner()
        settings_patch = patch("slackapproval.ui.cli.get_hook_settings",
                               return_value=HookSettings())
        settings_patch.start()
        self.addCleanup(settings_patch.stop)

    def test_options_override_settings(self):
        with patch("slackapproval.ui.cli.HookMode") as mode_cls:
            mode_cls.return_value.run.return_value = 0
            result = self.runner.invoke(
                app,
                ["hook", "--delay", "1m30s", "--no-notify-immediately-on-lock"],
                input='{"tool_name": "Bash"}',
            )

        self.assertEqual(result.exit_code, 0)
        settings = mode_cls.call_args.kwargs["settings"]
        self.assertEqual(settings.delay, 90)
        self.assertFalse(settings.notify_immediately_on_lock)
        mode_cls.return_value.run.assert_called_once_with('{"tool_name": "Bash"}')

    def test_exit_code_follows_hook_mode(self):
        with patch("slackapproval.ui.cli.HookMode") as mode_cls:
            mode_cls.return_value.run.return_value = 1
            result = self.runner.invoke(app, ["hook"], input="{}")

        self.assertEqual(result.exit_code, 1)

    def test_test_flag_sends_test_notification(self):
        with patch("slackapproval.ui.cli.HookMode") as mode_cls:
            mode_cls.return_value.send_test_notification.return_value = 0
            result = self.runner.invoke(app, ["hook", "--test"])

        self.assertEqual(result.exit_code, 0)
        mode_cls.return_value.send_test_notification.assert_called_once()
        mode_cls.return_value.run.assert_not_called()

    def test_invalid_delay_denies(self):
        result = self.runner.invoke(app, ["hook", "--delay", "soon"], input="{}")

        self.assertEqual(result.exit_code, 1)
        self.assertIn(DENY_LINE, result.output)

    def test_unexpected_error_denies(self):
        with patch("slackapproval.ui.cli.HookMode", side_effect=RuntimeError("boom")):
            result = self.runner.invoke(app, ["hook"], input="{}")

        self.assertEqual(result.exit_code, 1)
        self.assertIn(DENY_LINE, result.output)


class TestOperatorCommands(unittest.TestCase):
    """Test cases for `status` and `stop`."""

    def setUp(self):
        self.runner = CliRunner()

    def test_status_when_not_running(self):
        with patch("slackapproval.ui.cli.get_running_daemon_pid", return_value=None):
            result = self.runner.invoke(app, ["status"])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Daemon is not running", result.output)

    def test_status_when_running(self):
        with patch("slackapproval.ui.cli.get_running_daemon_pid", return_value=4321), \
                patch("slackapproval.ui.cli.DaemonClient") as client_cls:
            client_cls.return_value.can_connect.return_value = True
            result = self.runner.invoke(app, ["status"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Daemon running (pid 4321)", result.output)
        self.assertIn("server.sock", result.output)

    def test_stop(self):
        with patch("slackapproval.ui.cli.DaemonClient") as client_cls:
            client_cls.return_value.stop_daemon.return_value = True
            result = self.runner.invoke(app, ["stop"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Shutdown requested", result.output)


if __name__ == "__main__":
    unittest.main()
