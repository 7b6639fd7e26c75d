"""
Modes module for the Slack approval hook.
Contains the agent-side operation modes (hook, question notifier).
"""

from .hook_mode import HookMode, run_notifier, spawn_notifier

__all__ = ["HookMode", "run_notifier", "spawn_notifier"]
