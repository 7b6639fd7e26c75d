"""Fan-out of terminal decisions to waiting clients."""

import logging
from typing import TYPE_CHECKING, Any

from slackapproval.core.models import DecisionOutcome, Request
from slackapproval.daemon.protocol import build_reply, encode_message

if TYPE_CHECKING:
    from slackapproval.daemon.state import ApprovalRegistry, PendingRequest

logger = logging.getLogger(__name__)


class ResponseMultiplexer:
    """
    Writes one reply line to every client attached to a request.

    The reply is encoded once, so duplicate-attached clients receive
    byte-identical lines. Releasing the registry entry is the last step of
    every delivery, which makes a second delivery for the same id a no-op.
    """

    def __init__(self, registry: "ApprovalRegistry"):
        self.registry = registry

    def deliver(self, pending: "PendingRequest", outcome: DecisionOutcome) -> int:
        """
        Send outcome to all attached clients and release the request.

        Returns the number of clients that were written to.
        """
        if pending.id not in self.registry.pending:
            return 0

        payload = encode_message(build_reply(pending.request, outcome))
        logger.info(f"Sending response for {pending.id}: {payload.decode('utf-8').strip()}")

        delivered = 0
        for connection in list(pending.connections):
            if self._write(connection, payload):
                delivered += 1

        if not pending.connections:
            logger.info(f"No client attached anymore for: {pending.id}")

        self.registry.release(pending.id)
        return delivered

    def reply(self, connection: Any, request: Request, outcome: DecisionOutcome) -> bool:
        """Answer a single client that has no registry entry."""
        return self._write(connection, encode_message(build_reply(request, outcome)))

    @staticmethod
    def _write(connection: Any, payload: bytes) -> bool:
        try:
            connection.send(payload)
            return True
        except (ConnectionError, OSError, RuntimeError) as e:
            logger.warning(f"Failed to send response to client: {e}")
            return False
        finally:
            connection.close()
