"""Utilities for the Slack approval daemon."""

from slackapproval.utils.detection import is_screen_locked
from slackapproval.utils.durations import parse_duration
from slackapproval.utils.formatting import (
    format_tool_input,
    get_tool_description,
    short_session_id,
)

__all__ = [
    "is_screen_locked",
    "parse_duration",
    "format_tool_input",
    "get_tool_description",
    "short_session_id",
]
