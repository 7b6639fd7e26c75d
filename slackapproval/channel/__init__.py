"""Decision channels.

The Slack implementation lives in slackapproval.channel.slack and is imported
lazily by the daemon, so the hook never loads the Slack SDK.
"""

from slackapproval.channel.base import (
    ChannelError,
    ChannelRef,
    DecisionChannel,
    PromptState,
    SignalSink,
)

__all__ = [
    "ChannelError",
    "ChannelRef",
    "DecisionChannel",
    "PromptState",
    "SignalSink",
]
