"""Slack approval: pause agent tool calls until a human decides in Slack."""

__version__ = "0.1.0"
