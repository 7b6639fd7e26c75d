#!/usr/bin/env python3
"""
Main entry point for the Typer-based slackapproval CLI.

This delegates to the UI layer in slackapproval.ui.cli to keep the
console script mapping stable; the hook spawns the notifier through
`python -m slackapproval.main notify`.
"""

from slackapproval.ui.cli import run as slackapproval


if __name__ == "__main__":
    slackapproval()
