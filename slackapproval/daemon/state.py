"""In-memory registry of pending approval decisions.

The registry is the single owner of the daemon's mutable state:
- pending: outstanding decisions by request id
- dedup_index: fingerprint of recent requests (30s window) to collapse
  duplicate submissions into one prompt
- session_approvals: approved tool calls per session, auto-granted on repeat

Thread safety: This class is NOT thread-safe. The daemon runs on a single
asyncio loop and every mutation happens in synchronous code between awaits,
so no locking is needed.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from slackapproval.channel.base import (
    ChannelRef,
    DecisionChannel,
    PromptState,
    SignalSink,
)
from slackapproval.core.models import (
    ActionApproval,
    Decision,
    DecisionOutcome,
    OpenQuestion,
    Request,
    Signal,
    SignalKind,
    interpret_signal,
)
from slackapproval.daemon.protocol import approval_key, request_fingerprint
from slackapproval.daemon.responder import ResponseMultiplexer

logger = logging.getLogger(__name__)

DEDUP_WINDOW_SECONDS = 30.0
STALE_AFTER_SECONDS = 2 * 60 * 60.0

PUBLISH_FAILED_MESSAGE = "Failed to send approval request to Slack"
EXPIRED_MESSAGE = "Approval request expired"
NO_QUESTIONS_MESSAGE = "No questions to answer"


class RequestStatus(Enum):
    OPEN = "open"
    EXPIRED = "expired"      # every client went away; kept until the sweep
    RESOLVED = "resolved"


class QuestionState(Enum):
    COLLECTING = "collecting"
    AUTO_RESOLVED = "auto_resolved"
    CONFIRMED = "confirmed"


@dataclass
class DedupEntry:
    request_id: str
    timestamp: float


@dataclass
class PendingRequest:
    """One outstanding decision."""
    id: str
    request: Request
    fingerprint: str
    created_at: float
    connections: List[Any] = field(default_factory=list)
    channel_ref: Optional[ChannelRef] = None
    answers: Dict[int, List[str]] = field(default_factory=dict)
    status: RequestStatus = RequestStatus.OPEN
    question_state: Optional[QuestionState] = None

    @property
    def is_question(self) -> bool:
        return isinstance(self.request, OpenQuestion)

    def frozen_answers(self) -> Dict[int, Tuple[str, ...]]:
        return {index: tuple(labels) for index, labels in self.answers.items()}


def generate_request_id() -> str:
    return uuid.uuid4().hex


class ApprovalRegistry(SignalSink):
    """
    Pending-request registry.

    Decides whether a submitted request is a duplicate, a cached approval
    or a new prompt, applies human signals, and hands terminal outcomes to
    the ResponseMultiplexer.
    """

    def __init__(
        self,
        channel: DecisionChannel,
        dedup_window: float = DEDUP_WINDOW_SECONDS,
        stale_after: float = STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.channel = channel
        self.dedup_window = dedup_window
        self.stale_after = stale_after
        self.clock = clock
        self.start_time = clock()

        self.responder = ResponseMultiplexer(self)

        # {request_id: PendingRequest}
        self.pending: Dict[str, PendingRequest] = {}
        # {fingerprint: DedupEntry}
        self.dedup_index: Dict[str, DedupEntry] = {}
        # {session_id: {approval_key}}
        self.session_approvals: Dict[str, Set[str]] = {}

        # Lookup indices kept in step with pending
        self._owners: Dict[Any, str] = {}       # connection -> request id
        self._messages: Dict[str, str] = {}     # prompt ts -> request id

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, request: Request, connection: Any) -> None:
        """
        Accept a decoded request arriving on connection.

        Duplicates attach to the existing prompt, cached approvals are
        answered immediately, everything else is published to the channel.
        Publishing failures are answered with deny.
        """
        now = self.clock()
        fingerprint = request_fingerprint(request)

        existing = self._find_duplicate(fingerprint, now)
        if existing is not None:
            logger.info(f"Duplicate request detected, attaching to existing: {existing.id}")
            self._attach(existing, connection)
            return

        if isinstance(request, ActionApproval) and self.is_cached_approval(request):
            logger.info(
                f"Cache hit: {request.tool_name} (session: {request.session_id[:8]})"
            )
            self.responder.reply(connection, request, DecisionOutcome(Decision.ALLOW))
            return

        if isinstance(request, OpenQuestion) and not request.questions:
            self.responder.reply(
                connection,
                request,
                DecisionOutcome(Decision.ALLOW, message=NO_QUESTIONS_MESSAGE),
            )
            return

        pending = PendingRequest(
            id=generate_request_id(),
            request=request,
            fingerprint=fingerprint,
            created_at=now,
            question_state=QuestionState.COLLECTING if isinstance(request, OpenQuestion) else None,
        )
        self.pending[pending.id] = pending
        self.dedup_index[fingerprint] = DedupEntry(request_id=pending.id, timestamp=now)
        self._attach(pending, connection)

        kind = "question" if pending.is_question else "request"
        logger.info(f"New {kind}: {pending.id}")

        try:
            ref = await self.channel.publish(pending.id, request)
        except Exception as e:
            logger.error(f"Failed to send Slack message for {pending.id}: {e}")
            self.responder.deliver(
                pending, DecisionOutcome(Decision.DENY, message=PUBLISH_FAILED_MESSAGE)
            )
            return

        pending.channel_ref = ref
        if pending.id not in self.pending:
            # Swept or shut down while the prompt was being posted
            await self._update_prompt(pending, PromptState.TIMED_OUT)
            return

        self._messages[ref.ts] = pending.id

        if pending.status is RequestStatus.EXPIRED:
            await self._update_prompt(pending, PromptState.TIMED_OUT)

    def _find_duplicate(self, fingerprint: str, now: float) -> Optional[PendingRequest]:
        entry = self.dedup_index.get(fingerprint)
        if entry is None or now - entry.timestamp >= self.dedup_window:
            return None
        pending = self.pending.get(entry.request_id)
        if pending is None or pending.status is not RequestStatus.OPEN:
            return None
        return pending

    def _attach(self, pending: PendingRequest, connection: Any) -> None:
        pending.connections.append(connection)
        self._owners[connection] = pending.id

    def is_cached_approval(self, request: ActionApproval) -> bool:
        approved = self.session_approvals.get(request.session_id)
        return bool(approved) and approval_key(request.tool_name, request.tool_input) in approved

    def _remember_approval(self, request: ActionApproval) -> None:
        self.session_approvals.setdefault(request.session_id, set()).add(
            approval_key(request.tool_name, request.tool_input)
        )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def record_signal(self, request_id: str, signal: Signal) -> Optional[DecisionOutcome]:
        """
        Apply one human signal.

        Returns the terminal DecisionOutcome, or None while the request is
        still pending. Signals for unknown, resolved or expired requests and
        signals outside the vocabulary are ignored.
        """
        pending = self.pending.get(request_id)
        if pending is None or pending.status is not RequestStatus.OPEN:
            logger.debug(f"Ignoring signal for inactive request: {request_id}")
            return None

        if isinstance(pending.request, ActionApproval):
            outcome = self._apply_approval_signal(signal)
        else:
            outcome = self._apply_question_signal(pending, signal)

        if outcome is None:
            return None

        pending.status = RequestStatus.RESOLVED
        if outcome.allowed and isinstance(pending.request, ActionApproval):
            self._remember_approval(pending.request)
        return outcome

    def _apply_approval_signal(self, signal: Signal) -> Optional[DecisionOutcome]:
        decision = interpret_signal(signal)
        if decision is None:
            return None
        return DecisionOutcome(decision)

    def _apply_question_signal(
        self, pending: PendingRequest, signal: Signal
    ) -> Optional[DecisionOutcome]:
        request = pending.request
        assert isinstance(request, OpenQuestion)

        if signal.kind in (SignalKind.SELECT_OPTION, SignalKind.CUSTOM_ANSWER):
            if not 0 <= signal.question_index < len(request.questions):
                return None
            if not signal.value.strip():
                return None
            self._apply_answer(pending, signal)
            if not request.has_multi_select and self._all_answered(pending):
                pending.question_state = QuestionState.AUTO_RESOLVED
                return DecisionOutcome(Decision.ALLOW, answers=pending.frozen_answers())
            return None

        if signal.kind is SignalKind.CONFIRM:
            if request.has_multi_select and self._all_answered(pending):
                pending.question_state = QuestionState.CONFIRMED
                return DecisionOutcome(Decision.ALLOW, answers=pending.frozen_answers())
            return None

        return None

    def _apply_answer(self, pending: PendingRequest, signal: Signal) -> None:
        request = pending.request
        question = request.questions[signal.question_index]

        if not question.multi_select:
            pending.answers[signal.question_index] = [signal.value]
            return

        selected = pending.answers.setdefault(signal.question_index, [])
        if signal.kind is SignalKind.CUSTOM_ANSWER:
            if signal.value not in selected:
                selected.append(signal.value)
        elif signal.value in selected:
            selected.remove(signal.value)
        else:
            selected.append(signal.value)

        if not selected:
            del pending.answers[signal.question_index]

    def _all_answered(self, pending: PendingRequest) -> bool:
        return all(
            pending.answers.get(index)
            for index in range(len(pending.request.questions))
        )

    async def on_signal(self, request_id: str, signal: Signal, actor_id: str) -> None:
        """Record a signal and, once terminal, deliver and update the prompt."""
        outcome = self.record_signal(request_id, signal)
        if outcome is None:
            return

        pending = self.pending[request_id]
        delivered = self.responder.deliver(pending, outcome)
        logger.info(
            f"{self._describe(pending.request)} {outcome.decision.value} by {actor_id} "
            f"({request_id}, {delivered} client(s))"
        )

        if pending.is_question:
            state = PromptState.ANSWERED
        elif outcome.allowed:
            state = PromptState.APPROVED
        else:
            state = PromptState.DENIED
        await self._update_prompt(pending, state, actor_id=actor_id, answers=outcome.answers)

    # ------------------------------------------------------------------
    # Lookups for the channel
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> Optional[Request]:
        pending = self.pending.get(request_id)
        return pending.request if pending else None

    def request_for_message(self, ts: str) -> Optional[str]:
        return self._messages.get(ts)

    def latest_approval_in_channel(self, channel: str) -> Optional[str]:
        candidates = [
            p for p in self.pending.values()
            if p.status is RequestStatus.OPEN
            and not p.is_question
            and p.channel_ref is not None
            and p.channel_ref.channel == channel
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.created_at).id

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_connection_closed(self, connection: Any) -> None:
        """
        Detach a closed connection.

        A request left without clients is marked expired: it stays in the
        registry until the sweep, ignores later signals, and its prompt is
        marked timed out.
        """
        request_id = self._owners.pop(connection, None)
        if request_id is None:
            return
        pending = self.pending.get(request_id)
        if pending is None:
            return

        if connection in pending.connections:
            pending.connections.remove(connection)
        if pending.connections or pending.status is not RequestStatus.OPEN:
            return

        logger.info(f"Socket closed (timeout): {request_id}")
        pending.status = RequestStatus.EXPIRED
        self._drop_dedup_entry(pending)
        if pending.channel_ref is not None:
            await self._update_prompt(pending, PromptState.TIMED_OUT)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def release(self, request_id: str) -> None:
        """Remove a request and its index entries. Safe to call twice."""
        pending = self.pending.pop(request_id, None)
        if pending is None:
            return
        self._drop_dedup_entry(pending)
        if pending.channel_ref is not None:
            self._messages.pop(pending.channel_ref.ts, None)
        for connection in pending.connections:
            if self._owners.get(connection) == request_id:
                del self._owners[connection]

    def _drop_dedup_entry(self, pending: PendingRequest) -> None:
        entry = self.dedup_index.get(pending.fingerprint)
        if entry is not None and entry.request_id == pending.id:
            del self.dedup_index[pending.fingerprint]

    def sweep(self, now: Optional[float] = None) -> List[PendingRequest]:
        """
        Evict stale requests and expired dedup entries.

        Returns the evicted requests. Clients still attached to an evicted
        request receive a deny.
        """
        now = self.clock() if now is None else now

        evicted = [
            p for p in self.pending.values()
            if now - p.created_at > self.stale_after
        ]
        for pending in evicted:
            logger.info(f"Cleaning up stale request: {pending.id}")
            if pending.connections and pending.status is RequestStatus.OPEN:
                self.responder.deliver(
                    pending, DecisionOutcome(Decision.DENY, message=EXPIRED_MESSAGE)
                )
            else:
                self.release(pending.id)

        for fingerprint, entry in list(self.dedup_index.items()):
            if now - entry.timestamp > self.dedup_window:
                del self.dedup_index[fingerprint]

        return evicted

    async def expire_prompts(self, evicted: List[PendingRequest]) -> None:
        """Mark prompts of swept requests as timed out, unless already done."""
        for pending in evicted:
            if pending.channel_ref is not None and pending.status is not RequestStatus.EXPIRED:
                await self._update_prompt(pending, PromptState.TIMED_OUT)

    def close_all(self, message: str) -> int:
        """Deny and close every attached client. Used on shutdown."""
        closed = 0
        for pending in list(self.pending.values()):
            if pending.connections:
                closed += self.responder.deliver(
                    pending, DecisionOutcome(Decision.DENY, message=message)
                )
            else:
                self.release(pending.id)
        return closed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _update_prompt(
        self,
        pending: PendingRequest,
        state: PromptState,
        actor_id: Optional[str] = None,
        answers: Optional[Dict[int, Tuple[str, ...]]] = None,
    ) -> None:
        """Best-effort prompt update; failures never affect clients."""
        if pending.channel_ref is None:
            return
        try:
            await self.channel.update(
                pending.channel_ref, pending.request, state, actor_id=actor_id, answers=answers
            )
        except Exception as e:
            logger.warning(f"Failed to update Slack message for {pending.id}: {e}")

    @staticmethod
    def _describe(request: Request) -> str:
        if isinstance(request, ActionApproval):
            return request.tool_name
        return "Question"

    def get_stats(self) -> Dict[str, Any]:
        """Registry statistics, logged after each sweep."""
        return {
            "uptime_seconds": self.clock() - self.start_time,
            "pending_requests": len(self.pending),
            "dedup_entries": len(self.dedup_index),
            "cached_sessions": len(self.session_approvals),
        }
