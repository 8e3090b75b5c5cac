"""
Data models for the command engine.

Registration entries, policy values and the platform-neutral invocation
contexts handed to command handlers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


PRIMARY_PREFIX = "!"
ALTERNATE_PREFIX = "?"
TEXT_PREFIXES = (PRIMARY_PREFIX, ALTERNATE_PREFIX)

DEFAULT_CATEGORY = "Other"
ADMIN_CATEGORY = "Admin"
HELP_PLACEHOLDER = "{cmd}"


class Exposure(Enum):
    """How a logical command is presented in a community."""
    PRIMARY = "primary"
    ALTERNATE = "alternate"
    DISABLED = "disabled"

    @property
    def prefix(self) -> Optional[str]:
        if self is Exposure.PRIMARY:
            return PRIMARY_PREFIX
        if self is Exposure.ALTERNATE:
            return ALTERNATE_PREFIX
        return None


class StructuredExposure(Enum):
    ON = "on"
    OFF = "off"


class HelpTier(Enum):
    PRIMARY = "primary"
    NORMAL = "normal"


class InteractionKind(Enum):
    COMMAND = "command"
    AUTOCOMPLETE = "autocomplete"
    MODAL = "modal"
    COMPONENT = "component"


class DispatchType(Enum):
    """Invocation kind used as the `type` label in logs and metrics."""
    TEXT = "text"
    SLASH = "slash"
    AUTOCOMPLETE = "autocomplete"
    MODAL = "modal"
    COMPONENT = "component"
    RETRY = "retry"
    HOOK = "hook"


# ============================================================================
# PLATFORM-NEUTRAL EVENTS
# ============================================================================

@dataclass
class Button:
    """A clickable element attached to a reply."""
    label: str
    custom_id: str
    style: str = "default"


@dataclass
class MessageEvent:
    """
    An inbound chat message.

    reply_fn is supplied by the platform adapter and is awaited with
    (text, buttons) whenever a handler or the engine replies.
    """
    community_id: Optional[str]
    channel_id: str
    user_id: str
    text: str
    reply_fn: Callable[..., Awaitable[Any]]
    is_bot: bool = False
    is_admin: bool = False
    raw: Any = None

    async def reply(self, text: str, buttons: Optional[list[Button]] = None) -> Any:
        return await self.reply_fn(text, buttons)


@dataclass
class InteractionEvent:
    """
    A structured command, autocomplete request, modal submission or
    component activation.
    """
    kind: InteractionKind
    community_id: Optional[str]
    channel_id: str
    user_id: str
    reply_fn: Callable[..., Awaitable[Any]]
    choices_fn: Optional[Callable[[list[str]], Awaitable[Any]]] = None
    modal_fn: Optional[Callable[[str, str, list[str]], Awaitable[Any]]] = None
    is_admin: bool = False
    command_name: Optional[str] = None
    custom_id: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)
    values: list[str] = field(default_factory=list)
    focused_name: Optional[str] = None
    focused_value: str = ""
    raw: Any = None

    async def reply(
        self,
        text: str,
        ephemeral: bool = False,
        buttons: Optional[list[Button]] = None
    ) -> Any:
        return await self.reply_fn(text, ephemeral, buttons)

    async def respond_choices(self, choices: list[str]) -> Any:
        if self.choices_fn is None:
            return None
        return await self.choices_fn(choices)

    async def open_modal(self, custom_id: str, title: str, fields: list[str]) -> Any:
        """Ask the platform to show a form; its submission comes back as a MODAL event."""
        if self.modal_fn is None:
            return None
        return await self.modal_fn(custom_id, title, fields)


@dataclass
class RetryMessage(MessageEvent):
    """
    A message synthesized from a "did you mean" button press.

    Carries the same identity, channel and community as the interaction
    so a text handler can run unchanged. Handlers may rely on
    community_id, channel_id, user_id, is_admin, text and reply().
    Replies go back through the originating interaction.
    """
    interaction: Optional[InteractionEvent] = None

    @classmethod
    def from_interaction(cls, interaction: InteractionEvent, text: str) -> "RetryMessage":
        async def reply_fn(reply_text, buttons=None):
            return await interaction.reply(reply_text, False, buttons)

        return cls(
            community_id=interaction.community_id,
            channel_id=interaction.channel_id,
            user_id=interaction.user_id,
            text=text,
            reply_fn=reply_fn,
            is_admin=interaction.is_admin,
            raw=interaction.raw,
            interaction=interaction,
        )


# ============================================================================
# HANDLER CONTEXTS
# ============================================================================

@dataclass
class CommandContext:
    """Argument passed to text command handlers."""
    message: MessageEvent
    cmd: str
    rest: str


@dataclass
class InteractionContext:
    """Argument passed to structured, autocomplete, modal and component handlers."""
    interaction: InteractionEvent


@dataclass
class HookContext:
    """Argument passed to passive hooks."""
    message: MessageEvent
    is_command: bool
    command_key: Optional[str] = None


@dataclass
class RetryTarget:
    """Text command a retry resolver wants re-run."""
    cmd: str
    rest: str = ""


TextHandler = Callable[[CommandContext], Awaitable[Any]]
InteractionHandler = Callable[[InteractionContext], Awaitable[Any]]
HookHandler = Callable[[HookContext], Awaitable[Any]]
RetryResolver = Callable[[InteractionEvent], Awaitable[Optional[RetryTarget]]]


# ============================================================================
# REGISTRATION ENTRIES
# ============================================================================

@dataclass(frozen=True)
class ExposeMeta:
    """Marks a text entry registered through the exposable path."""
    logical_id: str
    base_name: str


@dataclass
class CommandEntry:
    key: str
    handler: TextHandler
    help: str = ""
    admin: bool = False
    admin_category: Optional[str] = None
    canonical: bool = True
    category: str = DEFAULT_CATEGORY
    hide_from_help: bool = False
    help_tier: HelpTier = HelpTier.NORMAL
    expose_meta: Optional[ExposeMeta] = None
    alias_of: Optional[str] = None


@dataclass
class CommandOption:
    """One option of a structured command."""
    name: str
    description: str = ""
    type: str = "string"
    required: bool = False
    choices: list[str] = field(default_factory=list)
    autocomplete: bool = False


@dataclass
class StructuredCommandDef:
    name: str
    description: str
    options: list[CommandOption] = field(default_factory=list)


@dataclass
class HelpMeta:
    admin: bool = False
    admin_category: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    hide_from_help: bool = False
    help_tier: HelpTier = HelpTier.NORMAL


@dataclass
class StructuredEntry:
    name: str
    definition: StructuredCommandDef
    handler: InteractionHandler
    autocomplete: Optional[InteractionHandler] = None
    meta: HelpMeta = field(default_factory=HelpMeta)

    @property
    def description(self) -> str:
        return self.definition.description

    @property
    def options(self) -> list[CommandOption]:
        return self.definition.options


@dataclass
class ComponentEntry:
    prefix: str
    handler: InteractionHandler


@dataclass
class RetryEntry:
    prefix: str
    resolver: RetryResolver


# ============================================================================
# POLICY & HELP
# ============================================================================

@dataclass(frozen=True)
class ChannelPolicy:
    """Per-community, per-command channel restriction."""
    allow: Optional[frozenset] = None
    deny: Optional[frozenset] = None
    silent: bool = True
    allow_admin_bypass: bool = False


@dataclass(frozen=True)
class ChannelDecision:
    allowed: bool
    silent: bool = True


@dataclass
class HelpPage:
    category: str
    lines: list[str] = field(default_factory=list)
