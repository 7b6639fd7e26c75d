"""Slack Block Kit layouts for approval and question prompts."""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from slackapproval.core.models import ActionApproval, OpenQuestion, Question
from slackapproval.utils.formatting import (
    format_tool_input,
    get_tool_description,
    short_session_id,
    truncate,
)

Blocks = List[Dict[str, Any]]

APPROVE_ACTION = "approve"
DENY_ACTION = "deny"
OTHER_MODAL_CALLBACK = "question_other_submit"
CUSTOM_ANSWER_BLOCK = "custom_answer_block"
CUSTOM_ANSWER_ACTION = "custom_answer"

OTHER_OPTION_INDEX = -1


def _mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": _mrkdwn(text)}


def _header(text: str) -> Dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [_mrkdwn(text)]}


def _button(text: str, action_id: str, value: str, style: Optional[str] = None) -> Dict[str, Any]:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text[:75], "emoji": True},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def _mention(mention_user_id: Optional[str]) -> str:
    return f"<@{mention_user_id}> " if mention_user_id else ""


def _timestamp() -> str:
    now = time.time()
    iso = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
    return f"<!date^{int(now)}^{{date_short_pretty}} {{time}}|{iso}>"


def _request_details(request: ActionApproval) -> Blocks:
    formatted_input = format_tool_input(request.tool_name, request.tool_input)
    blocks: Blocks = [
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Tool:*\n{request.tool_name}"),
                _mrkdwn(f"*Session:*\n`{short_session_id(request.session_id)}`"),
            ],
        },
        _section(f"*Command/Input:*\n```{truncate(formatted_input)}```"),
    ]
    description = get_tool_description(request.tool_input)
    if description:
        blocks.append(_section(f"*Description:*\n{description}"))
    return blocks


def approval_text(request: ActionApproval, mention_user_id: Optional[str] = None) -> str:
    """Notification text, shown on mobile and watch notifications."""
    preview = format_tool_input(request.tool_name, request.tool_input)[:100]
    return f"{_mention(mention_user_id)}🔔 {request.tool_name}: {preview}"


def approval_blocks(
    request_id: str, request: ActionApproval, mention_user_id: Optional[str] = None
) -> Blocks:
    blocks: Blocks = [_section(f"{_mention(mention_user_id)}*🔔 Approval Request*")]
    blocks.extend(_request_details(request))
    blocks.append(
        {
            "type": "actions",
            "block_id": f"approval_{request_id}",
            "elements": [
                _button("✅ Approve", APPROVE_ACTION, request_id, style="primary"),
                _button("❌ Deny", DENY_ACTION, request_id, style="danger"),
            ],
        }
    )
    return blocks


def result_blocks(request: ActionApproval, approved: bool, actor_id: str) -> Blocks:
    status = "Approved" if approved else "Denied"
    emoji = "✅" if approved else "❌"
    blocks: Blocks = [_header(f"{emoji} Request {status}")]
    blocks.extend(_request_details(request))
    blocks.append(_context(f"{status} by <@{actor_id}> at {_timestamp()}"))
    return blocks


def question_text(request: OpenQuestion, mention_user_id: Optional[str] = None) -> str:
    preview = request.questions[0].question if request.questions else "Question"
    return f"{_mention(mention_user_id)}❓ {preview}"


def question_action_id(question_index: int, option_index: int) -> str:
    suffix = "other" if option_index == OTHER_OPTION_INDEX else str(option_index)
    return f"question_{question_index}_{suffix}"


def _option_value(request_id: str, question_index: int, option_index: int, label: str) -> str:
    return json.dumps(
        {
            "requestId": request_id,
            "questionIndex": question_index,
            "optionIndex": option_index,
            "label": label,
        }
    )


def _question_title(question: Question) -> str:
    header = f"[{question.header}] " if question.header else ""
    return f"*{header}{question.question}*"


def question_blocks(
    request_id: str, request: OpenQuestion, mention_user_id: Optional[str] = None
) -> Blocks:
    blocks: Blocks = [
        _section(f"{_mention(mention_user_id)}*❓ Question*"),
        _section(f"*Session:* `{short_session_id(request.session_id)}`"),
    ]

    for q_index, question in enumerate(request.questions):
        hint = " _(select one or more, then confirm)_" if question.multi_select else ""
        blocks.append(_section(_question_title(question) + hint))

        described = [
            f"• {opt.label}: {opt.description}" for opt in question.options if opt.description
        ]
        if described:
            blocks.append(_context("\n".join(described)))

        elements = [
            _button(opt.label, question_action_id(q_index, o_index),
                    _option_value(request_id, q_index, o_index, opt.label))
            for o_index, opt in enumerate(question.options)
        ]
        elements.append(
            _button(
                "Other...",
                question_action_id(q_index, OTHER_OPTION_INDEX),
                _option_value(request_id, q_index, OTHER_OPTION_INDEX, ""),
            )
        )
        blocks.append({"type": "actions", "block_id": f"question_{request_id}_{q_index}",
                       "elements": elements})

    if request.has_multi_select:
        blocks.append(
            {
                "type": "actions",
                "block_id": f"confirm_{request_id}",
                "elements": [
                    _button(
                        "Confirm",
                        f"confirm_multiselect_{len(request.questions)}",
                        json.dumps({"requestId": request_id}),
                        style="primary",
                    )
                ],
            }
        )
    return blocks


def answered_blocks(
    request: OpenQuestion, answers: Dict[int, Tuple[str, ...]], actor_id: str
) -> Blocks:
    blocks: Blocks = [
        _header("✅ Question Answered"),
        _section(f"*Session:* `{short_session_id(request.session_id)}`"),
    ]
    for index, question in enumerate(request.questions):
        answer = ", ".join(answers.get(index, ())) or "No answer"
        blocks.append(_section(f"*Q: {question.question}*\nA: {answer}"))
    blocks.append(_context(f"Answered by <@{actor_id}> at {_timestamp()}"))
    return blocks


def timeout_blocks(request) -> Blocks:
    closed = _context(f"⏱️ Connection closed at {_timestamp()}")
    if isinstance(request, OpenQuestion):
        first = request.questions[0].question if request.questions else "Unknown"
        return [
            _header("⏱️ Question Timed Out"),
            _section(f"*Session:* `{short_session_id(request.session_id)}`"),
            _section(f"*Question:* {first}"),
            closed,
        ]

    blocks: Blocks = [_header("⏱️ Request Timed Out")]
    blocks.extend(_request_details(request)[:2])
    blocks.append(closed)
    return blocks


def custom_answer_view(request_id: str, question_index: int, question: str) -> Dict[str, Any]:
    """Modal asking for a free-text answer to one question."""
    return {
        "type": "modal",
        "callback_id": OTHER_MODAL_CALLBACK,
        "private_metadata": json.dumps(
            {"requestId": request_id, "questionIndex": question_index}
        ),
        "title": {"type": "plain_text", "text": "Custom Answer"},
        "submit": {"type": "plain_text", "text": "Submit"},
        "blocks": [
            {
                "type": "input",
                "block_id": CUSTOM_ANSWER_BLOCK,
                "element": {
                    "type": "plain_text_input",
                    "action_id": CUSTOM_ANSWER_ACTION,
                    "placeholder": {"type": "plain_text", "text": "Enter your answer..."},
                },
                "label": {"type": "plain_text", "text": question[:2000]},
            }
        ],
    }
