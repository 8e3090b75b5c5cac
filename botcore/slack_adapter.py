"""
Translation between Slack payloads and the engine's event types.

Kept free of network calls (apart from AdminResolver) so the mapping can
be tested with plain dicts. main.py wires these into slack_bolt.

Slack slash commands have no per-option autocomplete. Suggesters are
reached only through external_select elements whose action_id is
`autocomplete:<command>:<option>`, and no view this bot posts renders
one yet, so on Slack registered suggesters stay dormant until such a
view exists.
"""

import time
import logging
from typing import Any, Awaitable, Callable, Optional

from .models import (
    Button,
    InteractionEvent,
    InteractionKind,
    MessageEvent,
    StructuredCommandDef,
)

logger = logging.getLogger(__name__)

AUTOCOMPLETE_PREFIX = "autocomplete:"
MAX_BUTTON_LABEL = 75
MAX_BUTTONS = 25
ADMIN_CACHE_TTL = 300.0


# ============================================================================
# BLOCK KIT RENDERING
# ============================================================================

def truncate_label(label: str, limit: int = MAX_BUTTON_LABEL) -> str:
    text = str(label or "")
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[:limit - 3] + "..."


def render_blocks(text: str, buttons: Optional[list[Button]] = None) -> Optional[list[dict]]:
    """Section block for text plus one actions block for buttons."""
    if not buttons:
        return None

    elements = []
    for button in buttons[:MAX_BUTTONS]:
        label = truncate_label(button.label)
        if not label or not button.custom_id:
            continue
        element = {
            "type": "button",
            "text": {"type": "plain_text", "text": label},
            "action_id": button.custom_id,
            "value": button.custom_id,
        }
        if button.style in ("primary", "danger"):
            element["style"] = button.style
        elements.append(element)

    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text or " "}}]
    if elements:
        blocks.append({"type": "actions", "elements": elements})
    return blocks


def render_choices(choices: list[str]) -> list[dict]:
    return [
        {"text": {"type": "plain_text", "text": truncate_label(choice)}, "value": str(choice)}
        for choice in choices[:100]
    ]


# ============================================================================
# REPLY FACTORIES
# ============================================================================

def say_reply(say: Callable[..., Awaitable[Any]], thread_ts: Optional[str] = None):
    """reply_fn for messages, backed by slack_bolt's say()."""

    async def reply_fn(text: str, buttons: Optional[list[Button]] = None):
        return await say(text=text, blocks=render_blocks(text, buttons), thread_ts=thread_ts)

    return reply_fn


def respond_reply(respond: Callable[..., Awaitable[Any]]):
    """reply_fn for slash commands and button presses, backed by respond()."""

    async def reply_fn(text: str, ephemeral: bool = False, buttons: Optional[list[Button]] = None):
        return await respond(
            text=text,
            blocks=render_blocks(text, buttons),
            response_type="ephemeral" if ephemeral else "in_channel",
            replace_original=False,
        )

    return reply_fn


def client_reply(client: Any, channel_id: str, user_id: str):
    """reply_fn for modal submissions, which have no response_url."""

    async def reply_fn(text: str, ephemeral: bool = False, buttons: Optional[list[Button]] = None):
        blocks = render_blocks(text, buttons)
        if ephemeral:
            return await client.chat_postEphemeral(
                channel=channel_id, user=user_id, text=text, blocks=blocks
            )
        return await client.chat_postMessage(channel=channel_id, text=text, blocks=blocks)

    return reply_fn


def build_modal_view(custom_id: str, title: str, fields: list[str], channel_id: str = "") -> dict:
    """Modal with one text input per field; action ids are the field names."""
    return {
        "type": "modal",
        "callback_id": custom_id,
        "private_metadata": channel_id or "",
        "title": {"type": "plain_text", "text": truncate_label(title, 24)},
        "submit": {"type": "plain_text", "text": "Save"},
        "blocks": [
            {
                "type": "input",
                "block_id": field,
                "label": {"type": "plain_text", "text": field},
                "element": {"type": "plain_text_input", "action_id": field},
            }
            for field in fields
        ],
    }


def modal_opener(client: Any, trigger_id: Optional[str], channel_id: str = ""):
    """modal_fn for interactions that carry a trigger_id."""

    async def modal_fn(custom_id: str, title: str, fields: list[str]):
        if not trigger_id:
            logger.warning(f"Cannot open modal {custom_id!r}: no trigger_id")
            return None
        return await client.views_open(
            trigger_id=trigger_id,
            view=build_modal_view(custom_id, title, fields, channel_id),
        )

    return modal_fn


# ============================================================================
# PAYLOAD TRANSLATION
# ============================================================================

def is_bot_message(event: dict) -> bool:
    return bool(event.get("bot_id")) or event.get("subtype") == "bot_message"


def message_from_slack(
    event: dict,
    reply_fn,
    is_admin: bool = False,
    team_id: Optional[str] = None
) -> MessageEvent:
    """Message event as a MessageEvent; team_id fills in when the event omits it."""
    return MessageEvent(
        community_id=event.get("team") or team_id,
        channel_id=event.get("channel", ""),
        user_id=event.get("user") or event.get("bot_id", ""),
        text=event.get("text", "") or "",
        reply_fn=reply_fn,
        is_bot=is_bot_message(event),
        is_admin=is_admin,
        raw=event,
    )


def parse_option_text(definition: Optional[StructuredCommandDef], text: str) -> dict[str, str]:
    """
    Map slash command text onto declared options.

    `name:value` tokens fill options by name; otherwise the text is split
    positionally and the last option receives the remainder.
    """
    text = (text or "").strip()
    if definition is None or not definition.options or not text:
        return {}

    by_name = {option.name.lower(): option.name for option in definition.options}
    named = {}
    for token in text.split():
        name, sep, value = token.partition(":")
        if sep and name.lower() in by_name and value:
            named[by_name[name.lower()]] = value
    if named:
        return named

    parts = text.split(None, len(definition.options) - 1)
    return {option.name: part for option, part in zip(definition.options, parts)}


def slash_command_interaction(
    body: dict,
    reply_fn,
    definition: Optional[StructuredCommandDef] = None,
    is_admin: bool = False
) -> InteractionEvent:
    return InteractionEvent(
        kind=InteractionKind.COMMAND,
        community_id=body.get("team_id"),
        channel_id=body.get("channel_id", ""),
        user_id=body.get("user_id", ""),
        reply_fn=reply_fn,
        is_admin=is_admin,
        command_name=str(body.get("command", "")).lstrip("/").lower(),
        options=parse_option_text(definition, body.get("text", "")),
        raw=body,
    )


def _team_id(body: dict) -> Optional[str]:
    team = body.get("team") or {}
    return team.get("id") or (body.get("user") or {}).get("team_id")


def _action_value(action: dict) -> Optional[str]:
    if action.get("selected_option"):
        return action["selected_option"].get("value")
    if action.get("selected_options"):
        return None
    return action.get("value")


def block_action_interaction(body: dict, reply_fn, is_admin: bool = False) -> InteractionEvent:
    """First action of a block_actions payload as a component activation."""
    actions = body.get("actions") or [{}]
    action = actions[0]
    values = [opt.get("value") for opt in action.get("selected_options") or []]
    single = _action_value(action)
    if single is not None:
        values = [single]

    return InteractionEvent(
        kind=InteractionKind.COMPONENT,
        community_id=_team_id(body),
        channel_id=(body.get("channel") or {}).get("id", ""),
        user_id=(body.get("user") or {}).get("id", ""),
        reply_fn=reply_fn,
        is_admin=is_admin,
        custom_id=action.get("action_id", ""),
        values=values,
        raw=body,
    )


def view_submission_interaction(body: dict, reply_fn, is_admin: bool = False) -> InteractionEvent:
    """
    A modal submission. The view's callback_id is the custom id and its
    private_metadata carries the originating channel id.
    """
    view = body.get("view") or {}
    options = {}
    for block_values in ((view.get("state") or {}).get("values") or {}).values():
        for action_id, field in block_values.items():
            value = field.get("value")
            if value is None and field.get("selected_option"):
                value = field["selected_option"].get("value")
            options[action_id] = value

    return InteractionEvent(
        kind=InteractionKind.MODAL,
        community_id=_team_id(body),
        channel_id=view.get("private_metadata", "") or "",
        user_id=(body.get("user") or {}).get("id", ""),
        reply_fn=reply_fn,
        is_admin=is_admin,
        custom_id=view.get("callback_id", ""),
        options=options,
        raw=body,
    )


def suggestion_interaction(body: dict, choices_fn, reply_fn=None) -> Optional[InteractionEvent]:
    """
    An options request for an `autocomplete:<command>:<option>` element.

    Nothing here renders such elements; this only answers them when a
    view supplies one. Returns None for action ids that do not follow that convention.
    """
    action_id = str(body.get("action_id", ""))
    if not action_id.startswith(AUTOCOMPLETE_PREFIX):
        return None
    command, _, option = action_id[len(AUTOCOMPLETE_PREFIX):].partition(":")

    async def no_reply(*args, **kwargs):
        return None

    return InteractionEvent(
        kind=InteractionKind.AUTOCOMPLETE,
        community_id=_team_id(body),
        channel_id=(body.get("channel") or {}).get("id", ""),
        user_id=(body.get("user") or {}).get("id", ""),
        reply_fn=reply_fn or no_reply,
        choices_fn=choices_fn,
        command_name=command.lower(),
        focused_name=option or None,
        focused_value=str(body.get("value", "")),
        raw=body,
    )


# ============================================================================
# PRIVILEGE
# ============================================================================

class AdminResolver:
    """
    Decides whether a user is privileged in a workspace.

    Configured privileged user ids always count; otherwise Slack's
    is_admin/is_owner flags are looked up and cached briefly.
    """

    def __init__(self, client: Any, privileged_user_ids: Optional[list[str]] = None, ttl: float = ADMIN_CACHE_TTL):
        self.client = client
        self.privileged = set(privileged_user_ids or [])
        self.ttl = ttl
        self._cache: dict[str, tuple[float, bool]] = {}

    async def is_admin(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        if user_id in self.privileged:
            return True

        cached = self._cache.get(user_id)
        now = time.monotonic()
        if cached and now - cached[0] < self.ttl:
            return cached[1]

        try:
            response = await self.client.users_info(user=user_id)
            user = response.get("user") or {}
            result = bool(user.get("is_admin") or user.get("is_owner"))
        except Exception as e:
            logger.warning(f"users_info failed for {user_id}: {e}")
            return False

        self._cache[user_id] = (now, result)
        return result
