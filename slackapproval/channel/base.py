"""Decision channel boundary.

The daemon talks to the human side through a DecisionChannel: it publishes
one prompt per pending request and later replaces the prompt with its final
state. Inbound human events are translated by the channel into Signals and
pushed into a SignalSink (the registry).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from slackapproval.core.models import Request, Signal


class ChannelError(Exception):
    """Raised when the channel cannot publish or update a prompt."""


@dataclass(frozen=True)
class ChannelRef:
    """Handle of a published prompt message."""
    channel: str
    ts: str


class PromptState(Enum):
    APPROVED = "approved"
    DENIED = "denied"
    ANSWERED = "answered"
    TIMED_OUT = "timed_out"


class SignalSink(ABC):
    """Receiver of human signals; implemented by the registry."""

    @abstractmethod
    async def on_signal(self, request_id: str, signal: Signal, actor_id: str) -> None:
        """Apply a human signal to a pending request."""

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[Request]:
        """Return the request still pending under request_id, if any."""

    @abstractmethod
    def request_for_message(self, ts: str) -> Optional[str]:
        """Map a prompt message timestamp back to its request id."""

    @abstractmethod
    def latest_approval_in_channel(self, channel: str) -> Optional[str]:
        """Most recent open approval whose prompt was posted to channel."""


class DecisionChannel(ABC):
    """Publishes prompts and feeds human decisions back to a SignalSink."""

    @abstractmethod
    async def start(self, sink: SignalSink) -> None:
        """
        Open the channel session and start delivering signals to sink.

        Raises:
            ChannelError: If the session cannot be established
        """

    @abstractmethod
    async def stop(self) -> None:
        """Close the channel session."""

    @abstractmethod
    async def publish(self, request_id: str, request: Request) -> ChannelRef:
        """
        Post a prompt for a new pending request.

        Raises:
            ChannelError: If the prompt could not be posted
        """

    @abstractmethod
    async def update(
        self,
        ref: ChannelRef,
        request: Request,
        state: PromptState,
        actor_id: Optional[str] = None,
        answers: Optional[Dict[int, Tuple[str, ...]]] = None,
    ) -> None:
        """
        Replace a published prompt with its final state.

        Raises:
            ChannelError: If the prompt could not be updated
        """
