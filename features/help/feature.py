"""
Help surfaces.

Registers:
- !help (aliases !helpme, !h): points at /help, or shows one category
  publicly with `!help <category>`; `!help categories` lists them
- /help [category]: private categorized help with category buttons
- helpcat:<index> buttons to switch category

Pages always come from the help model at request time so they reflect
both the community's exposure policy and the viewer's privilege.
"""

import logging
from collections import OrderedDict
from typing import Optional

from botcore.models import (
    ADMIN_CATEGORY,
    Button,
    CommandContext,
    CommandOption,
    HelpPage,
    InteractionContext,
    StructuredCommandDef,
)

logger = logging.getLogger(__name__)

CATEGORY = "Info"
MAX_PUBLIC_LENGTH = 3000
MAX_CHOICES = 25
MAX_REMEMBERED = 1000

# (community_id, user_id) -> last page index, oldest first
_last_page: "OrderedDict[tuple[Optional[str], str], int]" = OrderedDict()


def clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


def index_for_category(pages: list[HelpPage], category: Optional[str]) -> Optional[int]:
    key = str(category or "").strip().lower()
    for idx, page in enumerate(pages):
        if page.category.lower() == key:
            return idx
    return None


def default_index(pages: list[HelpPage], community_id: Optional[str], user_id: Optional[str]) -> int:
    remembered = _last_page.get((community_id, user_id)) if user_id else None
    if remembered is not None and 0 <= remembered < len(pages):
        return remembered
    return 0


def remember_index(community_id: Optional[str], user_id: Optional[str], idx: int) -> None:
    if not user_id:
        return
    key = (community_id, user_id)
    _last_page[key] = idx
    _last_page.move_to_end(key)
    while len(_last_page) > MAX_REMEMBERED:
        _last_page.popitem(last=False)


def public_pages(pages: list[HelpPage]) -> list[HelpPage]:
    return [page for page in pages if page.category != ADMIN_CATEGORY]


def render_page(pages: list[HelpPage], idx: int) -> str:
    page = pages[idx]
    body = "\n".join(f"• {line}" for line in page.lines) or "_No commands in this category._"
    return f"*{page.category}*\n{body}\n_Category {idx + 1} / {len(pages)}_"


def render_public(page: HelpPage) -> str:
    body = "\n".join(f"• {line}" for line in page.lines if line.strip())
    out = f"*{page.category}*\n{body or '_No commands in this category._'}"
    if len(out) <= MAX_PUBLIC_LENGTH:
        return out
    return out[:MAX_PUBLIC_LENGTH - 10] + "\n…"


def category_buttons(pages: list[HelpPage], active: int) -> list[Button]:
    return [
        Button(
            label=page.category,
            custom_id=f"helpcat:{idx}",
            style="primary" if idx == active else "default",
        )
        for idx, page in enumerate(pages)
    ]


def register(registrar, services):
    help_model = services.help_model

    async def bang_help(ctx: CommandContext):
        message = ctx.message
        arg = ctx.rest.strip()
        pages = public_pages(help_model(message.community_id, message))

        if arg.lower() in ("categories", "allcategories"):
            if not pages:
                await message.reply("No help categories available. Use `/help` (private).")
                return
            cats = "\n".join(f"• {page.category}" for page in pages)
            await message.reply(
                f"*Help categories ({len(pages)}):*\n{cats}\n"
                "Use `!help <category>` or `/help`."
            )
            return

        if not arg or not pages:
            await message.reply("Use `/help` for the full command list (private).")
            return

        idx = index_for_category(pages, arg)
        if idx is None:
            await message.reply(
                f"Unknown help category: *{arg}*.\nUse `/help` (private) to browse categories."
            )
            return

        await message.reply(render_public(pages[idx]))

    async def slash_help(ctx: InteractionContext):
        interaction = ctx.interaction
        pages = help_model(interaction.community_id, interaction)
        if not pages:
            await interaction.reply("No commands available.", ephemeral=True)
            return

        idx = index_for_category(pages, interaction.options.get("category"))
        if idx is None:
            idx = default_index(pages, interaction.community_id, interaction.user_id)
        idx = clamp(idx, 0, len(pages) - 1)
        remember_index(interaction.community_id, interaction.user_id, idx)

        await interaction.reply(
            render_page(pages, idx),
            ephemeral=True,
            buttons=category_buttons(pages, idx),
        )

    async def switch_category(ctx: InteractionContext):
        interaction = ctx.interaction
        pages = help_model(interaction.community_id, interaction)
        if not pages:
            await interaction.reply("No commands available.", ephemeral=True)
            return

        raw = (interaction.custom_id or "").split(":", 1)[-1]
        try:
            idx = int(raw)
        except ValueError:
            idx = 0
        idx = clamp(idx, 0, len(pages) - 1)
        remember_index(interaction.community_id, interaction.user_id, idx)

        await interaction.reply(
            render_page(pages, idx),
            ephemeral=True,
            buttons=category_buttons(pages, idx),
        )

    async def suggest_categories(ctx: InteractionContext):
        interaction = ctx.interaction
        typed = interaction.focused_value.strip().lower()
        pages = help_model(interaction.community_id, interaction)
        matches = [page.category for page in pages if page.category.lower().startswith(typed)]
        await interaction.respond_choices(matches[:MAX_CHOICES])

    registrar.register_text(
        "!help",
        bang_help,
        "{cmd} — redirects to /help, or `{cmd} <category>` to show one category",
        aliases=["!helpme", "!h"],
    )
    registrar.register_structured(
        StructuredCommandDef(
            name="help",
            description="Show a categorized help menu (private)",
            options=[
                CommandOption(
                    name="category",
                    description="Open directly to a category (optional)",
                    autocomplete=True,
                ),
            ],
        ),
        slash_help,
        autocomplete=suggest_categories,
    )
    registrar.register_component("helpcat:", switch_category)
