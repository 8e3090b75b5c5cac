"""
Central dispatcher for the command engine.

Handles:
- Inbound messages: passive hooks first, then text command routing
- Structured (slash) commands, autocomplete, modal submissions and
  component activations
- "Did you mean" retries that re-run a text command from a button press
- Policy gating, instrumentation and per-handler error isolation
"""

import logging
from typing import Optional

from .instrumentation import CommandMetrics, instrumented, serialize_error
from .models import (
    TEXT_PREFIXES,
    CommandContext,
    CommandEntry,
    DispatchType,
    HookContext,
    InteractionContext,
    InteractionEvent,
    InteractionKind,
    MessageEvent,
    RetryMessage,
    StructuredExposure,
)
from .registry import NAME_DISABLED, REFUSAL_TEXT, CommandRegistry, bare_name

logger = logging.getLogger(__name__)


def parse_command(text: str) -> Optional[tuple[str, str]]:
    """
    Split a message into (key, rest).

    Returns None unless the text starts with a recognized prefix followed
    by at least one character. The key is lowercased; rest is the raw
    remainder with surrounding whitespace trimmed.
    """
    stripped = (text or "").strip()
    if len(stripped) < 2 or stripped[0] not in TEXT_PREFIXES:
        return None
    parts = stripped.split(None, 1)
    key = parts[0].lower()
    rest = parts[1].strip() if len(parts) > 1 else ""
    return key, rest


class Dispatcher:
    """Routes platform-neutral events to registered handlers."""

    def __init__(self, registry: CommandRegistry, metrics: Optional[CommandMetrics] = None):
        self.registry = registry
        self.metrics = metrics if metrics is not None else CommandMetrics()

    @property
    def policy(self):
        return self.registry.policy

    def list_text(self) -> list[str]:
        return self.registry.list_text()

    def list_structured(self) -> list[str]:
        return self.registry.list_structured()

    # ================================================================ messages

    async def dispatch_message(self, message: MessageEvent) -> None:
        """
        Handle an inbound chat message.

        Passive hooks always run first. Unknown commands are ignored
        silently; handler failures are logged and counted, never raised.
        """
        if message.is_bot:
            await self._run_hooks(message, is_command=False, command_key=None)
            return

        parsed = parse_command(message.text)
        entry = self.registry.get_text(parsed[0]) if parsed else None
        canonical = self.registry.canonical_key(entry.key) if entry else None

        await self._run_hooks(message, is_command=entry is not None, command_key=canonical)

        if entry is None:
            return

        key, rest = parsed
        await self._invoke_text(message, entry, key, rest, DispatchType.TEXT)

    async def _invoke_text(
        self,
        message: MessageEvent,
        entry: CommandEntry,
        key: str,
        rest: str,
        dispatch_type: DispatchType
    ) -> None:
        if entry.expose_meta is None and self._bare_disabled(message.community_id, entry):
            logger.debug(
                f"command.blocked {dispatch_type.value} {entry.key} (disabled)",
                extra={"type": dispatch_type.value, "cmd": entry.key, "reason": NAME_DISABLED.reason},
            )
            await message.reply(REFUSAL_TEXT)
            return

        ctx = CommandContext(message=message, cmd=key, rest=rest)
        await instrumented(
            self.metrics,
            dispatch_type,
            entry.key,
            lambda: entry.handler(ctx),
            community_id=message.community_id,
            channel_id=message.channel_id,
            user_id=message.user_id,
        )

    def _bare_disabled(self, community_id: Optional[str], entry: CommandEntry) -> bool:
        names = {bare_name(entry.key)}
        if entry.alias_of:
            names.add(bare_name(entry.alias_of))
        return any(self.policy.bare_name_disabled(community_id, name) for name in names)

    async def _run_hooks(self, message: MessageEvent, is_command: bool, command_key: Optional[str]) -> None:
        """Run every passive hook; one failing hook does not stop the others."""
        for hook in self.registry.hooks:
            name = getattr(hook, "__name__", repr(hook))
            try:
                await hook(HookContext(message=message, is_command=is_command, command_key=command_key))
            except Exception as e:
                self.metrics.record(DispatchType.HOOK, name, "error", 0.0)
                logger.error(
                    f"hook.error {name}: {e}",
                    extra={
                        "type": DispatchType.HOOK.value,
                        "cmd": name,
                        "status": "error",
                        "error": serialize_error(e),
                        "community_id": message.community_id,
                        "channel_id": message.channel_id,
                        "user_id": message.user_id,
                    },
                )

    # ============================================================ interactions

    async def dispatch_interaction(self, interaction: InteractionEvent) -> None:
        """Handle a structured command, autocomplete, modal or component event."""
        if interaction.kind is InteractionKind.AUTOCOMPLETE:
            await self._dispatch_autocomplete(interaction)
        elif interaction.kind is InteractionKind.COMMAND:
            await self._dispatch_structured(interaction)
        elif interaction.kind is InteractionKind.MODAL:
            await self._dispatch_component(interaction, DispatchType.MODAL)
        else:
            await self._dispatch_component(interaction, DispatchType.COMPONENT)

    def _fields(self, interaction: InteractionEvent) -> dict:
        return {
            "community_id": interaction.community_id,
            "channel_id": interaction.channel_id,
            "user_id": interaction.user_id,
        }

    def _structured_disabled(self, interaction: InteractionEvent, name: str) -> bool:
        state = self.policy.structured_exposure(interaction.community_id, name)
        return state is StructuredExposure.OFF

    async def _dispatch_structured(self, interaction: InteractionEvent) -> None:
        entry = self.registry.get_structured(interaction.command_name or "")
        if entry is None:
            logger.debug(f"Unknown structured command: {interaction.command_name}")
            return

        if self._structured_disabled(interaction, entry.name):
            logger.debug(
                f"command.blocked slash {entry.name} (disabled)",
                extra={"type": DispatchType.SLASH.value, "cmd": entry.name, "reason": "disabled"},
            )
            await interaction.reply(REFUSAL_TEXT, ephemeral=True)
            return

        ctx = InteractionContext(interaction=interaction)
        await instrumented(
            self.metrics,
            DispatchType.SLASH,
            entry.name,
            lambda: entry.handler(ctx),
            **self._fields(interaction),
        )

    async def _dispatch_autocomplete(self, interaction: InteractionEvent) -> None:
        entry = self.registry.get_structured(interaction.command_name or "")
        if entry is None or entry.autocomplete is None:
            await interaction.respond_choices([])
            return

        if self._structured_disabled(interaction, entry.name):
            await interaction.respond_choices([])
            return

        ctx = InteractionContext(interaction=interaction)
        await instrumented(
            self.metrics,
            DispatchType.AUTOCOMPLETE,
            entry.name,
            lambda: entry.autocomplete(ctx),
            **self._fields(interaction),
        )

    async def _dispatch_component(self, interaction: InteractionEvent, dispatch_type: DispatchType) -> None:
        custom_id = interaction.custom_id or ""

        if await self._try_retry(interaction, custom_id):
            return

        entry = self.registry.match_component(custom_id)
        if entry is None:
            logger.debug(f"No component handler for {custom_id!r}")
            return

        ctx = InteractionContext(interaction=interaction)
        await instrumented(
            self.metrics,
            dispatch_type,
            entry.prefix,
            lambda: entry.handler(ctx),
            **self._fields(interaction),
        )

    async def _try_retry(self, interaction: InteractionEvent, custom_id: str) -> bool:
        """
        Give "did you mean" resolvers the first look at an identifier.

        Returns True if a resolver produced a known text command and it was
        re-run. A resolver that raises or yields nothing falls through.
        """
        for retry in self.registry.match_retries(custom_id):
            try:
                target = await retry.resolver(interaction)
            except Exception as e:
                self.metrics.record(DispatchType.RETRY, retry.prefix, "error", 0.0)
                logger.error(
                    f"retry.failed {retry.prefix}: {e}",
                    extra={
                        "type": DispatchType.RETRY.value,
                        "cmd": retry.prefix,
                        "status": "error",
                        "error": serialize_error(e),
                        **self._fields(interaction),
                    },
                )
                continue

            if not target:
                continue

            entry = self.registry.get_text(target.cmd)
            if entry is None:
                logger.warning(f"Retry {retry.prefix} resolved to unknown command {target.cmd!r}")
                continue

            text = f"{entry.key} {target.rest}".strip()
            message = RetryMessage.from_interaction(interaction, text)
            await self._invoke_text(message, entry, entry.key, target.rest.strip(), DispatchType.RETRY)
            return True

        return False
