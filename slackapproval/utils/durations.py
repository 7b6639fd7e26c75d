"""Human-readable duration parsing for hook options."""

import re

_DURATION_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")


def parse_duration(duration: str) -> float:
    """
    Parse a duration string into seconds.

    Supports: 0, 30s, 1m, 1m30s, 5m, 1h, 1h30m, ...

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = duration.strip()
    if text == "0":
        return 0.0

    match = _DURATION_RE.match(text)
    if not text or not match:
        raise ValueError(
            f"Invalid duration format: {duration}. Use format like 30s, 1m, 5m, 1h"
        )

    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return float(hours * 3600 + minutes * 60 + seconds)
