"""
Command registration tables.

Feature modules populate a CommandRegistry once at startup. The tables
are read-only afterwards; the Dispatcher and the help builder only read
them.

Every key, structured name, component prefix and retry prefix is
lowercased before storage and must be unique. A duplicate raises
DuplicateRegistrationError immediately so an ambiguous routing table
never reaches the first user.
"""

import logging
from typing import Iterable, Optional, Union

from .errors import DuplicateRegistrationError
from .models import (
    ALTERNATE_PREFIX,
    DEFAULT_CATEGORY,
    PRIMARY_PREFIX,
    TEXT_PREFIXES,
    CommandContext,
    CommandEntry,
    ComponentEntry,
    ExposeMeta,
    Exposure,
    HelpMeta,
    HelpTier,
    HookHandler,
    InteractionHandler,
    RetryEntry,
    RetryResolver,
    StructuredCommandDef,
    StructuredEntry,
    TextHandler,
)
from .policy import ExposurePolicy

logger = logging.getLogger(__name__)

REFUSAL_TEXT = "That command isn't available here."


class Blocked:
    """Returned by a policy-gated handler that decided not to run."""

    def __init__(self, reason: str):
        self.reason = reason

    def __repr__(self) -> str:
        return f"Blocked({self.reason!r})"


EXPOSURE_MISMATCH = Blocked("exposure")
CHANNEL_BLOCKED = Blocked("channel")
NAME_DISABLED = Blocked("disabled")


def _tier(value: Union[str, HelpTier]) -> HelpTier:
    return value if isinstance(value, HelpTier) else HelpTier(str(value).lower())


def bare_name(key: str) -> str:
    """Strip the leading text prefix from a command key."""
    if key[:1] in TEXT_PREFIXES:
        return key[1:]
    return key


class CommandRegistry:
    """In-memory routing tables for text, structured, component and retry handlers."""

    def __init__(self, policy: Optional[ExposurePolicy] = None):
        self.policy = policy if policy is not None else ExposurePolicy()
        self.text: dict[str, CommandEntry] = {}
        self.structured: dict[str, StructuredEntry] = {}
        self.components: dict[str, ComponentEntry] = {}
        self.retries: dict[str, RetryEntry] = {}
        self.hooks: list[HookHandler] = []

    # ------------------------------------------------------------------ text

    def register_text(
        self,
        key: str,
        handler: TextHandler,
        help: str = "",
        *,
        admin: bool = False,
        admin_category: Optional[str] = None,
        category: Optional[str] = None,
        hide_from_help: bool = False,
        help_tier: Union[str, HelpTier] = HelpTier.NORMAL,
        aliases: Iterable[str] = (),
        expose_meta: Optional[ExposeMeta] = None
    ) -> CommandEntry:
        """
        Register a text command under its full key (e.g. "!roll").

        Each alias becomes a non-canonical entry sharing the handler and
        policy of the canonical one; aliases never show up in help.

        Raises:
            ValueError: If a key does not start with a text prefix
            DuplicateRegistrationError: If a key or alias is already taken
        """
        entry = CommandEntry(
            key=self._text_key(key),
            handler=handler,
            help=help or "",
            admin=bool(admin),
            admin_category=admin_category,
            canonical=True,
            category=category or DEFAULT_CATEGORY,
            hide_from_help=bool(hide_from_help),
            help_tier=_tier(help_tier),
            expose_meta=expose_meta,
        )
        alias_keys = [self._text_key(alias) for alias in aliases]

        for candidate in [entry.key, *alias_keys]:
            if candidate in self.text:
                raise DuplicateRegistrationError("command", candidate)
        if len(set(alias_keys + [entry.key])) != len(alias_keys) + 1:
            raise DuplicateRegistrationError("command alias", ", ".join(alias_keys))

        self.text[entry.key] = entry
        for alias_key in alias_keys:
            self.text[alias_key] = CommandEntry(
                key=alias_key,
                handler=entry.handler,
                help=entry.help,
                admin=entry.admin,
                admin_category=entry.admin_category,
                canonical=False,
                category=entry.category,
                hide_from_help=entry.hide_from_help,
                help_tier=entry.help_tier,
                expose_meta=entry.expose_meta,
                alias_of=entry.key,
            )

        logger.debug(f"Registered text command {entry.key} (aliases: {alias_keys})")
        return entry

    def register_exposable(
        self,
        logical_id: str,
        name: str,
        handler: TextHandler,
        help: str = "",
        *,
        aliases: Iterable[str] = (),
        **options
    ) -> tuple[CommandEntry, CommandEntry]:
        """
        Register a command reachable as both !name and ?name.

        Which form actually runs is decided per invocation from the
        community's exposure mode for logical_id; the channel policy for
        logical_id is checked next. Aliases are bare names and get both
        prefixed forms.

        Returns:
            (primary entry, alternate entry)
        """
        base = name.strip().lower()
        if not base or base[:1] in TEXT_PREFIXES:
            raise ValueError(f"Exposable command names must be bare, got {name!r}")
        bare_aliases = [alias.strip().lower() for alias in aliases]
        meta = ExposeMeta(logical_id=logical_id, base_name=base)

        primary = self.register_text(
            PRIMARY_PREFIX + base,
            self._gate(logical_id, Exposure.PRIMARY, handler),
            help,
            aliases=[PRIMARY_PREFIX + alias for alias in bare_aliases],
            expose_meta=meta,
            **options,
        )

        alternate_options = dict(options)
        alternate_options["hide_from_help"] = True
        alternate = self.register_text(
            ALTERNATE_PREFIX + base,
            self._gate(logical_id, Exposure.ALTERNATE, handler),
            help,
            aliases=[ALTERNATE_PREFIX + alias for alias in bare_aliases],
            expose_meta=meta,
            **alternate_options,
        )
        return primary, alternate

    def _gate(self, logical_id: str, served: Exposure, handler: TextHandler) -> TextHandler:
        policy = self.policy

        async def gated(ctx: CommandContext):
            message = ctx.message
            if policy.exposure(message.community_id, logical_id) is not served:
                return EXPOSURE_MISMATCH

            decision = policy.channel(
                message.community_id, message.channel_id, logical_id, message.is_admin
            )
            if not decision.allowed:
                if not decision.silent:
                    await message.reply(REFUSAL_TEXT)
                return CHANNEL_BLOCKED

            return await handler(ctx)

        gated.__name__ = getattr(handler, "__name__", "gated")
        gated.__wrapped__ = handler
        return gated

    @staticmethod
    def _text_key(key: str) -> str:
        normalized = key.strip().lower()
        if len(normalized) < 2 or normalized[0] not in TEXT_PREFIXES:
            raise ValueError(f"Text command keys must start with '!' or '?', got {key!r}")
        return normalized

    # ------------------------------------------------------------ structured

    def register_structured(
        self,
        definition: StructuredCommandDef,
        handler: InteractionHandler,
        *,
        autocomplete: Optional[InteractionHandler] = None,
        admin: bool = False,
        admin_category: Optional[str] = None,
        category: Optional[str] = None,
        hide_from_help: bool = False,
        help_tier: Union[str, HelpTier] = HelpTier.NORMAL
    ) -> StructuredEntry:
        """Register a slash-style command by name."""
        name = definition.name.strip().lstrip("/").lower()
        if not name:
            raise ValueError("Structured commands need a name")
        if name in self.structured:
            raise DuplicateRegistrationError("structured command", name)

        entry = StructuredEntry(
            name=name,
            definition=definition,
            handler=handler,
            autocomplete=autocomplete,
            meta=HelpMeta(
                admin=bool(admin),
                admin_category=admin_category,
                category=category or DEFAULT_CATEGORY,
                hide_from_help=bool(hide_from_help),
                help_tier=_tier(help_tier),
            ),
        )
        self.structured[name] = entry
        logger.debug(f"Registered structured command /{name}")
        return entry

    # ------------------------------------------------- components and retries

    def register_component(self, prefix: str, handler: InteractionHandler) -> ComponentEntry:
        """Route interactions whose identifier starts with prefix to handler."""
        key = prefix.lower()
        if not key:
            raise ValueError("Component prefixes must not be empty")
        if key in self.components:
            raise DuplicateRegistrationError("component prefix", key)
        entry = ComponentEntry(prefix=key, handler=handler)
        self.components[key] = entry
        return entry

    def register_retry(self, prefix: str, resolver: RetryResolver) -> RetryEntry:
        """Register a "did you mean" resolver for an identifier family."""
        key = prefix.lower()
        if not key:
            raise ValueError("Retry prefixes must not be empty")
        if key in self.retries:
            raise DuplicateRegistrationError("retry prefix", key)
        entry = RetryEntry(prefix=key, resolver=resolver)
        self.retries[key] = entry
        return entry

    def register_hook(self, handler: HookHandler) -> HookHandler:
        """Add a passive listener that sees every inbound message."""
        self.hooks.append(handler)
        return handler

    def with_category(self, category: str) -> "CategoryScopedRegistrar":
        return CategoryScopedRegistrar(self, category)

    def checkpoint(self) -> tuple:
        """Copy of every table, for rollback()."""
        return (
            dict(self.text),
            dict(self.structured),
            dict(self.components),
            dict(self.retries),
            list(self.hooks),
        )

    def rollback(self, checkpoint: tuple) -> None:
        """Drop everything registered since checkpoint() was taken."""
        text, structured, components, retries, hooks = checkpoint
        self.text = dict(text)
        self.structured = dict(structured)
        self.components = dict(components)
        self.retries = dict(retries)
        self.hooks = list(hooks)

    # --------------------------------------------------------------- lookups

    def get_text(self, key: str) -> Optional[CommandEntry]:
        return self.text.get(key.lower())

    def get_structured(self, name: str) -> Optional[StructuredEntry]:
        return self.structured.get(name.lstrip("/").lower())

    def match_component(self, custom_id: str) -> Optional[ComponentEntry]:
        """Longest registered prefix of custom_id, if any."""
        ident = (custom_id or "").lower()
        best = None
        for prefix, entry in self.components.items():
            if ident.startswith(prefix) and (best is None or len(prefix) > len(best.prefix)):
                best = entry
        return best

    def match_retries(self, custom_id: str) -> list[RetryEntry]:
        """Retry resolvers whose prefix matches, longest first."""
        ident = (custom_id or "").lower()
        matches = [entry for prefix, entry in self.retries.items() if ident.startswith(prefix)]
        return sorted(matches, key=lambda entry: len(entry.prefix), reverse=True)

    def canonical_key(self, key: str) -> Optional[str]:
        """Key of the canonical entry a (possibly alias) key belongs to."""
        entry = self.get_text(key)
        if entry is None:
            return None
        return entry.alias_of or entry.key

    def list_text(self) -> list[str]:
        return sorted(self.text)

    def list_structured(self) -> list[str]:
        return sorted(self.structured)


class CategoryScopedRegistrar:
    """
    Registrar view that fills in a default category.

    Anything registered through it lands in `category` unless the call
    passes its own category. Component, retry and hook registration pass
    straight through.
    """

    def __init__(self, base: CommandRegistry, category: str):
        self.base = base
        self.category = category

    def register_text(self, key: str, handler: TextHandler, help: str = "", **options) -> CommandEntry:
        options.setdefault("category", self.category)
        return self.base.register_text(key, handler, help, **options)

    def register_exposable(self, logical_id: str, name: str, handler: TextHandler, help: str = "", **options):
        options.setdefault("category", self.category)
        return self.base.register_exposable(logical_id, name, handler, help, **options)

    def register_structured(self, definition: StructuredCommandDef, handler: InteractionHandler, **options):
        options.setdefault("category", self.category)
        return self.base.register_structured(definition, handler, **options)

    def register_component(self, prefix: str, handler: InteractionHandler) -> ComponentEntry:
        return self.base.register_component(prefix, handler)

    def register_retry(self, prefix: str, resolver: RetryResolver) -> RetryEntry:
        return self.base.register_retry(prefix, resolver)

    def register_hook(self, handler: HookHandler) -> HookHandler:
        return self.base.register_hook(handler)

    def with_category(self, category: str) -> "CategoryScopedRegistrar":
        return CategoryScopedRegistrar(self.base, category)

    @property
    def policy(self) -> ExposurePolicy:
        return self.base.policy
