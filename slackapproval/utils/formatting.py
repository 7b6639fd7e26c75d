"""Text helpers for rendering requests in prompts."""

import json
from typing import Any, Dict, Optional

MAX_INPUT_CHARS = 2900
WRITE_PREVIEW_CHARS = 500


def format_tool_input(tool_name: str, tool_input: Dict[str, Any]) -> str:
    """
    Render a tool call input for display.

    Bash shows the command, Write the target file and the start of its
    content, Edit the file with old/new strings. Anything else is pretty
    printed JSON.
    """
    if tool_name == "Bash" and tool_input.get("command"):
        return str(tool_input["command"])

    if tool_name == "Write" and tool_input.get("file_path"):
        content = str(tool_input.get("content") or "")[:WRITE_PREVIEW_CHARS]
        ellipsis = "..." if len(content) >= WRITE_PREVIEW_CHARS else ""
        return f"File: {tool_input['file_path']}\n\n{content}{ellipsis}"

    if tool_name == "Edit" and tool_input.get("file_path"):
        return (
            f"File: {tool_input['file_path']}\n"
            f"Old: {tool_input.get('old_string')}\n"
            f"New: {tool_input.get('new_string')}"
        )

    return json.dumps(tool_input, indent=2, ensure_ascii=False, default=str)


def get_tool_description(tool_input: Dict[str, Any]) -> Optional[str]:
    """Return the agent-supplied description of the call, if any."""
    description = tool_input.get("description")
    return description if isinstance(description, str) else None


def short_session_id(session_id: str) -> str:
    return f"{session_id[:8]}..."


def truncate(text: str, limit: int = MAX_INPUT_CHARS) -> str:
    return text[:limit]
