"""
Tests for utils - duration parsing, prompt formatting and lock detection.
"""

import json
import unittest
from unittest.mock import patch

from slackapproval.utils.detection import is_screen_locked
from slackapproval.utils.durations import parse_duration
from slackapproval.utils.formatting import (
    format_tool_input,
    get_tool_description,
    short_session_id,
)


class TestParseDuration(unittest.TestCase):

    def test_valid_durations(self):
        cases = {
            "0": 0,
            "30s": 30,
            "1m": 60,
            "1m30s": 90,
            "5m": 300,
            "1h": 3600,
            "1h30m": 5400,
            " 2m ": 120,
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(parse_duration(text), expected)

    def test_invalid_durations(self):
        for text in ("", "abc", "1d", "m", "30 s", "-1m"):
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    parse_duration(text)


class TestFormatting(unittest.TestCase):

    def test_bash_shows_command(self):
        self.assertEqual(format_tool_input("Bash", {"command": "ls -la"}), "ls -la")

    def test_write_shows_file_and_truncated_content(self):
        text = format_tool_input("Write", {"file_path": "/tmp/a.txt", "content": "x" * 600})

        self.assertTrue(text.startswith("File: /tmp/a.txt\n\n"))
        self.assertTrue(text.endswith("x" * 500 + "..."))

    def test_edit_shows_old_and_new(self):
        text = format_tool_input(
            "Edit", {"file_path": "a.py", "old_string": "foo", "new_string": "bar"})
        self.assertEqual(text, "File: a.py\nOld: foo\nNew: bar")

    def test_other_tools_are_pretty_json(self):
        tool_input = {"url": "https://example.com", "prompt": "summarise"}
        self.assertEqual(json.loads(format_tool_input("WebFetch", tool_input)), tool_input)
        self.assertIn("\n  ", format_tool_input("WebFetch", tool_input))

    def test_description_and_session(self):
        self.assertEqual(get_tool_description({"description": "List files"}), "List files")
        self.assertIsNone(get_tool_description({"command": "ls"}))
        self.assertEqual(short_session_id("0123456789abcdef"), "01234567...")


class TestDetection(unittest.TestCase):

    def test_screen_lock_is_false_off_macos(self):
        with patch("slackapproval.utils.detection.platform.system", return_value="Linux"):
            self.assertFalse(is_screen_locked())


if __name__ == "__main__":
    unittest.main()
