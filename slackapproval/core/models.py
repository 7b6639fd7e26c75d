"""Request, signal and decision types shared by the daemon and the channel.

A request arriving from the hook is decoded once into one of two variants:

- ActionApproval: a tool call waiting for approve/deny
- OpenQuestion: one or more multiple-choice questions waiting for answers

Human input from the decision channel is normalised into a Signal before it
reaches the registry, and the registry answers with a DecisionOutcome once a
request is terminal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

ASK_USER_QUESTION_TOOL = "AskUserQuestion"
USER_QUESTION_TYPE = "user_question"


@dataclass(frozen=True)
class QuestionOption:
    label: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Question:
    question: str
    options: Tuple[QuestionOption, ...] = ()
    header: Optional[str] = None
    multi_select: bool = False


@dataclass
class ActionApproval:
    """A sensitive tool call the agent wants to run."""
    session_id: str
    tool_name: str
    tool_input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OpenQuestion:
    """
    Questions the agent wants a human to answer.

    tool_input keeps the payload the questions were read from, so the
    reply can echo it back with the answers merged in.
    """
    session_id: str
    questions: List[Question] = field(default_factory=list)
    tool_input: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_multi_select(self) -> bool:
        return any(q.multi_select for q in self.questions)


Request = Union[ActionApproval, OpenQuestion]


class SignalKind(Enum):
    APPROVE = "approve"
    DENY = "deny"
    REACTION = "reaction"
    TEXT = "text"
    SELECT_OPTION = "select_option"
    CUSTOM_ANSWER = "custom_answer"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class Signal:
    """
    One human-originated event.

    value carries the reaction name, reply text, option label or custom
    answer depending on kind. question_index is only meaningful for
    SELECT_OPTION and CUSTOM_ANSWER.
    """
    kind: SignalKind
    value: str = ""
    question_index: int = -1


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class DecisionOutcome:
    decision: Decision
    answers: Optional[Dict[int, Tuple[str, ...]]] = None
    message: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


# Human vocabulary for reactions and free-text replies
APPROVE_REACTIONS = frozenset({"+1", "thumbsup", "white_check_mark", "heavy_check_mark"})
DENY_REACTIONS = frozenset({"-1", "thumbsdown", "x", "no_entry"})
APPROVE_WORDS = frozenset({"ok", "approve", "yes", "y", "allow", "go"})
DENY_WORDS = frozenset({"no", "deny", "reject", "n", "stop", "cancel"})


def interpret_signal(signal: Signal) -> Optional[Decision]:
    """
    Map an approve/deny style signal to a decision.

    Returns None for anything outside the vocabulary, including signals
    that only make sense for questions.
    """
    if signal.kind is SignalKind.APPROVE:
        return Decision.ALLOW
    if signal.kind is SignalKind.DENY:
        return Decision.DENY

    if signal.kind is SignalKind.REACTION:
        if signal.value in APPROVE_REACTIONS:
            return Decision.ALLOW
        if signal.value in DENY_REACTIONS:
            return Decision.DENY
        return None

    if signal.kind is SignalKind.TEXT:
        text = signal.value.strip().lower()
        if text in APPROVE_WORDS:
            return Decision.ALLOW
        if text in DENY_WORDS:
            return Decision.DENY

    return None
