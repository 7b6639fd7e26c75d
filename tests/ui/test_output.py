"""
Tests for ui/output.py - operator status output.
"""

import io
import unittest
from pathlib import Path

from slackapproval.ui.output import UIManager, colorize


class TestOutput(unittest.TestCase):

    def test_colorize(self):
        self.assertEqual(colorize("ok", "green"), "\u001b[32;1mok\u001b[0m")
        with self.assertRaises(ValueError):
            colorize("ok", "purple")

    def test_plain_text_when_color_disabled(self):
        stream = io.StringIO()
        UIManager(file=stream, color=False).success("done")
        self.assertEqual(stream.getvalue(), "done\n")

    def test_daemon_status_running(self):
        stream = io.StringIO()
        UIManager(file=stream, color=False).daemon_status(
            12, True, Path("/tmp/x/server.sock"), Path("/tmp/x/server.log"))

        self.assertEqual(stream.getvalue().splitlines(), [
            "Daemon running (pid 12)",
            "Socket: /tmp/x/server.sock",
            "Log: /tmp/x/server.log",
        ])

    def test_daemon_status_unreachable_and_stopped(self):
        stream = io.StringIO()
        ui = UIManager(file=stream, color=False)
        ui.daemon_status(12, False, Path("s"), Path("l"))
        ui.daemon_status(None, False, Path("s"), Path("l"))

        lines = stream.getvalue().splitlines()
        self.assertIn("alive but not accepting connections", lines[0])
        self.assertEqual(lines[-1], "Daemon is not running")


if __name__ == "__main__":
    unittest.main()
