"""
Slack decision channel.

Posts prompts with the Slack Web API (chat.postMessage / chat.update) and
receives button clicks, modal submissions, reactions and replies through
Socket Mode, so no public HTTP endpoint is needed.

Requires:
  SLACK_BOT_TOKEN:   Bot User OAuth Token (xoxb-...)
  SLACK_APP_TOKEN:   App-level token with connections:write (xapp-...)
  SLACK_CHANNEL_ID:  Channel (C...) or user (U...) that receives prompts

Setup:
  1. Create a Slack App at api.slack.com and enable Socket Mode
  2. Enable Interactivity
  3. Subscribe to: reaction_added, message.channels, message.im
  4. Bot scopes: chat:write, reactions:read, channels:history, im:history
  5. Install app to workspace, copy Bot Token and App Token
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from aiohttp import ClientError
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from slackapproval.channel import blocks as layouts
from slackapproval.channel.base import (
    ChannelError,
    ChannelRef,
    DecisionChannel,
    PromptState,
    SignalSink,
)
from slackapproval.core.configs import SlackConfig
from slackapproval.core.models import (
    ActionApproval,
    OpenQuestion,
    Request,
    Signal,
    SignalKind,
)

logger = logging.getLogger(__name__)

QUESTION_ACTION_RE = re.compile(r"^question_(\d+)_(\d+|other)$")
CONFIRM_ACTION_RE = re.compile(r"^confirm_multiselect_\d+$")

SLACK_ERRORS = (SlackApiError, ClientError, asyncio.TimeoutError)


class SlackChannel(DecisionChannel):
    """
    Slack Socket Mode decision channel.

    One channel destination is configured at a time; prompts mention
    SLACK_USER_ID when it is set.
    """

    def __init__(
        self,
        config: SlackConfig,
        web_client: Optional[AsyncWebClient] = None,
        socket_client: Optional[SocketModeClient] = None,
    ):
        self.config = config
        self.web_client = web_client or AsyncWebClient(token=config.bot_token)
        self.socket_client = socket_client
        self.sink: Optional[SignalSink] = None

    async def start(self, sink: SignalSink) -> None:
        self.sink = sink
        try:
            auth = await self.web_client.auth_test()
            logger.info(f"Slack authenticated as {auth.get('user')} ({auth.get('team')})")

            if self.socket_client is None:
                self.socket_client = SocketModeClient(
                    app_token=self.config.app_token,
                    web_client=self.web_client,
                )
            self.socket_client.socket_mode_request_listeners.append(self._process)
            await self.socket_client.connect()
        except SLACK_ERRORS as e:
            raise ChannelError(f"Failed to connect to Slack: {e}") from e

        logger.info("Slack Socket Mode connected")
        logger.info(f"Channel: {self.config.channel_id}")

    async def stop(self) -> None:
        if self.socket_client is None:
            return
        try:
            await self.socket_client.close()
        except SLACK_ERRORS as e:
            logger.warning(f"Error closing Slack session: {e}")

    async def publish(self, request_id: str, request: Request) -> ChannelRef:
        mention = self.config.mention_user_id
        if isinstance(request, OpenQuestion):
            text = layouts.question_text(request, mention)
            blocks = layouts.question_blocks(request_id, request, mention)
        else:
            text = layouts.approval_text(request, mention)
            blocks = layouts.approval_blocks(request_id, request, mention)

        try:
            response = await self.web_client.chat_postMessage(
                channel=self.config.channel_id,
                text=text,
                blocks=blocks,
            )
        except SLACK_ERRORS as e:
            raise ChannelError(f"chat.postMessage failed: {e}") from e

        # For DMs the response carries the real conversation id
        return ChannelRef(channel=response["channel"], ts=response["ts"])

    async def update(
        self,
        ref: ChannelRef,
        request: Request,
        state: PromptState,
        actor_id: Optional[str] = None,
        answers: Optional[Dict[int, Tuple[str, ...]]] = None,
    ) -> None:
        actor = actor_id or "unknown"
        if state is PromptState.TIMED_OUT:
            kind = "Question" if isinstance(request, OpenQuestion) else "Request"
            text = f"⏱️ {kind} Timed Out"
            blocks = layouts.timeout_blocks(request)
        elif isinstance(request, OpenQuestion):
            text = "✅ Question Answered"
            blocks = layouts.answered_blocks(request, answers or {}, actor)
        else:
            approved = state is PromptState.APPROVED
            text = "✅ Request Approved" if approved else "❌ Request Denied"
            blocks = layouts.result_blocks(request, approved, actor)

        try:
            await self.web_client.chat_update(
                channel=ref.channel, ts=ref.ts, text=text, blocks=blocks
            )
        except SLACK_ERRORS as e:
            raise ChannelError(f"chat.update failed: {e}") from e

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def _process(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        """Acknowledge a Socket Mode envelope, then translate it."""
        await client.send_socket_mode_response(
            SocketModeResponse(envelope_id=req.envelope_id)
        )

        try:
            if req.type == "events_api":
                await self.handle_event(req.payload.get("event", {}))
            elif req.type == "interactive":
                await self.handle_interaction(req.payload)
        except Exception:
            logger.exception(f"Error handling Slack {req.type} payload")

    async def handle_interaction(self, payload: Dict[str, Any]) -> None:
        payload_type = payload.get("type")
        actor_id = (payload.get("user") or {}).get("id", "unknown")

        if payload_type == "block_actions":
            for action in payload.get("actions", []):
                await self._handle_action(action, actor_id, payload.get("trigger_id"))
        elif payload_type == "view_submission":
            await self._handle_view_submission(payload.get("view", {}), actor_id)

    async def _handle_action(
        self, action: Dict[str, Any], actor_id: str, trigger_id: Optional[str]
    ) -> None:
        action_id = action.get("action_id", "")
        value = action.get("value")
        if not isinstance(value, str):
            return

        if action_id == layouts.APPROVE_ACTION:
            await self.sink.on_signal(value, Signal(SignalKind.APPROVE), actor_id)
            return
        if action_id == layouts.DENY_ACTION:
            await self.sink.on_signal(value, Signal(SignalKind.DENY), actor_id)
            return

        if QUESTION_ACTION_RE.match(action_id):
            data = json.loads(value)
            request_id = data["requestId"]
            question_index = int(data["questionIndex"])
            if int(data["optionIndex"]) == layouts.OTHER_OPTION_INDEX:
                await self._open_custom_answer(request_id, question_index, trigger_id)
                return
            signal = Signal(
                SignalKind.SELECT_OPTION,
                value=data["label"],
                question_index=question_index,
            )
            await self.sink.on_signal(request_id, signal, actor_id)
            return

        if CONFIRM_ACTION_RE.match(action_id):
            data = json.loads(value)
            await self.sink.on_signal(data["requestId"], Signal(SignalKind.CONFIRM), actor_id)

    async def _open_custom_answer(
        self, request_id: str, question_index: int, trigger_id: Optional[str]
    ) -> None:
        request = self.sink.get_request(request_id)
        if not isinstance(request, OpenQuestion) or trigger_id is None:
            logger.error(f"Pending request not found: {request_id}")
            return
        if not 0 <= question_index < len(request.questions):
            return

        view = layouts.custom_answer_view(
            request_id, question_index, request.questions[question_index].question
        )
        try:
            await self.web_client.views_open(trigger_id=trigger_id, view=view)
        except SLACK_ERRORS as e:
            logger.warning(f"Failed to open custom answer modal for {request_id}: {e}")

    async def _handle_view_submission(self, view: Dict[str, Any], actor_id: str) -> None:
        if view.get("callback_id") != layouts.OTHER_MODAL_CALLBACK:
            return
        metadata = json.loads(view.get("private_metadata") or "{}")
        values = view.get("state", {}).get("values", {})
        answer = (
            values.get(layouts.CUSTOM_ANSWER_BLOCK, {})
            .get(layouts.CUSTOM_ANSWER_ACTION, {})
            .get("value")
        ) or ""

        signal = Signal(
            SignalKind.CUSTOM_ANSWER,
            value=answer,
            question_index=int(metadata.get("questionIndex", -1)),
        )
        await self.sink.on_signal(metadata.get("requestId", ""), signal, actor_id)

    async def handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "reaction_added":
            await self._handle_reaction(event)
        elif event_type == "message":
            await self._handle_message(event)

    async def _handle_reaction(self, event: Dict[str, Any]) -> None:
        message_ts = event.get("item", {}).get("ts", "")
        request_id = self.sink.request_for_message(message_ts)
        if request_id is None:
            return
        if not isinstance(self.sink.get_request(request_id), ActionApproval):
            logger.info(f"Reaction ignored for question: {request_id}")
            return

        signal = Signal(SignalKind.REACTION, value=event.get("reaction", ""))
        await self.sink.on_signal(request_id, signal, event.get("user", "unknown"))

    async def _handle_message(self, event: Dict[str, Any]) -> None:
        # Skip bot messages and message edits
        if event.get("subtype") or event.get("bot_id"):
            return

        thread_ts = event.get("thread_ts")
        if thread_ts:
            request_id = self.sink.request_for_message(thread_ts)
        else:
            request_id = self.sink.latest_approval_in_channel(event.get("channel", ""))

        if request_id is None:
            logger.debug("No matching pending request found for message")
            return
        if not isinstance(self.sink.get_request(request_id), ActionApproval):
            logger.info(f"Thread reply ignored for question: {request_id}")
            return

        signal = Signal(SignalKind.TEXT, value=event.get("text") or "")
        await self.sink.on_signal(request_id, signal, event.get("user", "unknown"))
