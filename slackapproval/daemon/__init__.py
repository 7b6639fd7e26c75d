"""Approval daemon for the Slack approval hook.

This module provides a long-running background process that holds the Slack
session and all pending decisions, so each hook invocation only needs a
short Unix socket round trip.

Architecture:
- ApprovalRegistry: In-memory pending requests, dedup index and session cache
- ResponseMultiplexer: Writes a decision to every client waiting on it
- DaemonServer: Async Unix socket server handling hook connections
- DaemonClient: Lightweight client that connects to daemon via socket
"""

from slackapproval.daemon.client import DaemonClient, DaemonError
from slackapproval.daemon.protocol import (
    ProtocolError,
    build_reply,
    decode_request,
    encode_message,
)
from slackapproval.daemon.responder import ResponseMultiplexer
from slackapproval.daemon.state import ApprovalRegistry, PendingRequest

__all__ = [
    "ApprovalRegistry",
    "PendingRequest",
    "ResponseMultiplexer",
    "DaemonClient",
    "DaemonError",
    "ProtocolError",
    "build_reply",
    "decode_request",
    "encode_message",
]
