"""Newline-delimited JSON protocol between the hook and the daemon.

Each connection carries exactly one request line and one reply line.

Request formats:
    {
        "type": str,
        "tool_name": str,
        "tool_input": {...},
        "session_id": str
    }
    {
        "type": "user_question",
        "session_id": str,
        "questions": [
            {
                "question": str,
                "header": str,              # optional
                "options": [{"label": str, "description": str}],
                "multiSelect": bool         # optional
            }
        ]
    }

A PermissionRequest for the AskUserQuestion tool is treated as a question,
with the questions read from tool_input.

Reply formats:
    {"hookSpecificOutput": {"hookEventName": "PermissionRequest",
                            "decision": {"behavior": "allow" | "deny",
                                         "message": str}}}
    {"hookSpecificOutput": {"hookEventName": "PreToolUse",
                            "permissionDecision": "allow" | "deny",
                            "permissionDecisionReason": str,
                            "updatedInput": {..., "answers": {...}}}}

A line that cannot be decoded is answered with {"decision": "deny"}.
"""

import json
from typing import Any, Dict, List, Tuple

from slackapproval.core.models import (
    ASK_USER_QUESTION_TOOL,
    USER_QUESTION_TYPE,
    ActionApproval,
    DecisionOutcome,
    OpenQuestion,
    Question,
    QuestionOption,
    Request,
)

MALFORMED_REPLY: Dict[str, Any] = {"decision": "deny"}

APPROVED_REASON = "Approved via Slack"
DENIED_REASON = "Denied via Slack"


class ProtocolError(ValueError):
    """Raised when a request line cannot be decoded."""


def encode_message(payload: Dict[str, Any]) -> bytes:
    """Serialize one message as a UTF-8, newline-terminated JSON line."""
    return (json.dumps(payload) + "\n").encode("utf-8")


def decode_message(line: bytes) -> Dict[str, Any]:
    """
    Deserialize one JSON line.

    Raises:
        ProtocolError: If the line is not a JSON object
    """
    try:
        payload = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ProtocolError("Request must be a JSON object")
    return payload


def is_question_payload(payload: Dict[str, Any]) -> bool:
    return (
        payload.get("type") == USER_QUESTION_TYPE
        or payload.get("tool_name") == ASK_USER_QUESTION_TOOL
    )


def decode_request(line: bytes) -> Request:
    """
    Decode a request line into an ActionApproval or an OpenQuestion.

    Raises:
        ProtocolError: If the line is not a well-formed request
    """
    payload = decode_message(line)
    session_id = str(payload.get("session_id") or "")

    if is_question_payload(payload):
        if "questions" in payload:
            raw_questions = payload.get("questions")
            tool_input = {"questions": raw_questions}
        else:
            tool_input = _as_mapping(payload.get("tool_input"), "tool_input")
            raw_questions = tool_input.get("questions", [])
        return OpenQuestion(
            session_id=session_id,
            questions=_decode_questions(raw_questions),
            tool_input=tool_input,
        )

    tool_name = payload.get("tool_name")
    if not isinstance(tool_name, str) or not tool_name:
        raise ProtocolError("Missing 'tool_name'")

    return ActionApproval(
        session_id=session_id,
        tool_name=tool_name,
        tool_input=_as_mapping(payload.get("tool_input"), "tool_input"),
    )


def _as_mapping(value: Any, name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProtocolError(f"'{name}' must be an object")
    return value


def _decode_questions(raw_questions: Any) -> List[Question]:
    if raw_questions is None:
        return []
    if not isinstance(raw_questions, list):
        raise ProtocolError("'questions' must be a list")

    questions = []
    for raw in raw_questions:
        if not isinstance(raw, dict) or not isinstance(raw.get("question"), str):
            raise ProtocolError("Each question needs a 'question' string")
        raw_options = raw.get("options") or []
        if not isinstance(raw_options, list):
            raise ProtocolError("'options' must be a list")

        options = []
        for option in raw_options:
            if not isinstance(option, dict) or not isinstance(option.get("label"), str):
                raise ProtocolError("Each option needs a 'label' string")
            description = option.get("description")
            options.append(
                QuestionOption(
                    label=option["label"],
                    description=description if isinstance(description, str) else None,
                )
            )

        header = raw.get("header")
        questions.append(
            Question(
                question=raw["question"],
                options=tuple(options),
                header=header if isinstance(header, str) else None,
                multi_select=bool(raw.get("multiSelect", False)),
            )
        )
    return questions


def fingerprint_json(value: Any) -> str:
    """Canonical JSON: sorted keys, no whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def approval_key(tool_name: str, tool_input: Dict[str, Any]) -> str:
    """Key of an approval in the session approval cache."""
    return f"{tool_name}:{fingerprint_json(tool_input)}"


def request_fingerprint(request: Request) -> str:
    """Deterministic fingerprint of (kind, session, content) for deduplication."""
    if isinstance(request, OpenQuestion):
        texts = [q.question for q in request.questions]
        return f"q:{request.session_id}:{json.dumps(texts)}"
    return f"p:{request.session_id}:{approval_key(request.tool_name, request.tool_input)}"


def build_reply(request: Request, outcome: DecisionOutcome) -> Dict[str, Any]:
    """Build the hook-facing reply for a terminal outcome."""
    if isinstance(request, OpenQuestion):
        return _build_question_reply(request, outcome)
    return _build_approval_reply(outcome)


def _build_approval_reply(outcome: DecisionOutcome) -> Dict[str, Any]:
    decision: Dict[str, Any] = {"behavior": outcome.decision.value}
    if not outcome.allowed:
        decision["message"] = outcome.message or DENIED_REASON
    return {
        "hookSpecificOutput": {
            "hookEventName": "PermissionRequest",
            "decision": decision,
        }
    }


def _build_question_reply(request: OpenQuestion, outcome: DecisionOutcome) -> Dict[str, Any]:
    default_reason = APPROVED_REASON if outcome.allowed else DENIED_REASON
    output: Dict[str, Any] = {
        "hookEventName": "PreToolUse",
        "permissionDecision": outcome.decision.value,
        "permissionDecisionReason": outcome.message or default_reason,
    }

    if outcome.allowed and outcome.answers is not None:
        output["updatedInput"] = {
            **request.tool_input,
            "answers": answers_by_question(request, outcome.answers),
        }

    return {"hookSpecificOutput": output}


def answers_by_question(
    request: OpenQuestion, answers: Dict[int, Tuple[str, ...]]
) -> Dict[str, str]:
    """Key answers by full question text; multiple labels are joined by ', '."""
    keyed = {}
    for index, labels in sorted(answers.items()):
        if 0 <= index < len(request.questions):
            keyed[request.questions[index].question] = ", ".join(labels)
    return keyed
