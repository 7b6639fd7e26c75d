"""
Desktop state detection.

Used by the hook to skip the notification delay when the user has walked
away from the machine.
"""

import platform
import shutil
import subprocess

_QUARTZ_PROBE = "import Quartz; print(Quartz.CGSessionCopyCurrentDictionary())"


def is_screen_locked(timeout: float = 5.0) -> bool:
    """
    Check whether the macOS screen is locked.

    Returns False on any other platform, and whenever the lock state
    cannot be determined.
    """
    if platform.system() != "Darwin":
        return False

    try:
        result = subprocess.run(
            ["python3", "-c", _QUARTZ_PROBE],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
        return "'CGSSessionScreenIsLocked': 1" in result.stdout
    except (OSError, subprocess.SubprocessError):
        pass

    # Fallback: ioreg exposes the same key without PyObjC
    if not shutil.which("ioreg"):
        return False
    try:
        result = subprocess.run(
            ["ioreg", "-n", "Root", "-d1", "-a"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return False

    lines = result.stdout.splitlines()
    for index, line in enumerate(lines):
        if "CGSSessionScreenIsLocked" in line:
            following = lines[index + 1] if index + 1 < len(lines) else ""
            return "true" in line.lower() or "<true/>" in following
    return False
