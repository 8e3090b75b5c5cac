"""
Wiki lookup with "did you mean" buttons.

`!wiki <term>` links matching wiki pages. When no title matches the term
exactly, the reply carries one button per suggestion; pressing it re-runs
`!wiki` with that title through the engine's retry flow.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote, unquote

from botcore.models import Button, CommandContext, InteractionEvent, RetryTarget
from features.wiki.search import search_wiki

logger = logging.getLogger(__name__)

CATEGORY = "Info"
RETRY_PREFIX = "wiki_retry:"
MAX_RESULTS = 5
MAX_SUGGESTIONS = 3


def build_retry_id(user_id: str, title: str) -> str:
    return f"{RETRY_PREFIX}{user_id}:{quote(title, safe='')}"


def split_retry_id(custom_id: str) -> Optional[tuple[str, str]]:
    """(user_id, title) from a retry id, or None if it is not one."""
    if not custom_id.startswith(RETRY_PREFIX):
        return None
    user_id, sep, payload = custom_id[len(RETRY_PREFIX):].partition(":")
    if not sep or not user_id:
        return None
    return user_id, unquote(payload)


async def handle_wiki(ctx: CommandContext):
    query = ctx.rest.strip()
    if not query:
        return

    results = await asyncio.to_thread(search_wiki, query, MAX_RESULTS)
    if not results:
        return

    lines = "\n".join(f"• <{r.link}|{r.title}>" for r in results)
    exact = any(r.title.lower() == query.lower() for r in results)
    if exact:
        await ctx.message.reply(lines)
        return

    buttons = [
        Button(label=r.title, custom_id=build_retry_id(ctx.message.user_id, r.title))
        for r in results[:MAX_SUGGESTIONS]
    ]
    await ctx.message.reply(f"{lines}\nDid you mean:", buttons=buttons)


async def resolve_retry(interaction: InteractionEvent) -> Optional[RetryTarget]:
    parsed = split_retry_id(interaction.custom_id or "")
    if parsed is None:
        return None

    user_id, title = parsed
    if user_id != interaction.user_id:
        await interaction.reply("Only the person who searched can use these buttons.", ephemeral=True)
        return None
    return RetryTarget(cmd="!wiki", rest=title)


def register(registrar, services):
    registrar.register_text(
        "!wiki",
        handle_wiki,
        "{cmd} <term> — links matching wiki pages",
    )
    registrar.register_retry(RETRY_PREFIX, resolve_retry)
