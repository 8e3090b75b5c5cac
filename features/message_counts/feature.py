"""
Message counts.

A passive hook counts every non-command message per community and user.
Admins read the counts with !messagecount or /messagecounts and can reset
them through a confirmation button, optionally leaving a note in a modal.
"""

import os
import asyncio
import logging

from botcore.models import (
    Button,
    CommandContext,
    CommandOption,
    HookContext,
    InteractionContext,
    StructuredCommandDef,
)
from botcore.storage import MessageCountStore
from botcore.mentions import mention, target_user_id

logger = logging.getLogger(__name__)

CATEGORY = "Tools"
RESET_PREFIX = "msgcount:reset:"
NOTE_PREFIX = "msgcount:note:"
LEADERBOARD_SIZE = 10


def tracked_channels() -> set[str]:
    raw = os.getenv("MESSAGE_COUNT_CHANNELS", "")
    return {part.strip() for part in raw.split(",") if part.strip()}


def register(registrar, services):
    store = services.extras.get("message_counts") or MessageCountStore()

    async def count_message(ctx: HookContext):
        message = ctx.message
        if ctx.is_command or message.is_bot or not message.community_id:
            return
        channels = tracked_channels()
        if channels and message.channel_id not in channels:
            return
        await asyncio.to_thread(store.increment, message.community_id, message.user_id)

    async def bang_messagecount(ctx: CommandContext):
        message = ctx.message
        if not message.is_admin:
            await message.reply("You do not have permission to run that.")
            return
        uid = target_user_id(ctx.rest, message.user_id)
        count = await asyncio.to_thread(store.get_count, message.community_id, uid)
        await message.reply(f"{mention(uid)} has sent {count} messages.")

    async def slash_messagecounts(ctx: InteractionContext):
        interaction = ctx.interaction
        if not interaction.is_admin:
            await interaction.reply("You do not have permission to run that.", ephemeral=True)
            return

        user = interaction.options.get("user")
        if user:
            uid = target_user_id(user, user)
            count = await asyncio.to_thread(store.get_count, interaction.community_id, uid)
            await interaction.reply(f"{mention(uid)} has sent {count} messages.", ephemeral=True)
            return

        top = await asyncio.to_thread(store.top_users, interaction.community_id, LEADERBOARD_SIZE)
        if not top:
            await interaction.reply("No messages counted yet.", ephemeral=True)
            return

        lines = [f"{idx}. {mention(uid)} — {count}" for idx, (uid, count) in enumerate(top, 1)]
        note = await asyncio.to_thread(store.last_reset_note, interaction.community_id)
        if note:
            lines.append(f"_Last reset: {note}_")
        await interaction.reply(
            "*Message counts*\n" + "\n".join(lines),
            ephemeral=True,
            buttons=[Button("Reset counts", f"{RESET_PREFIX}{interaction.community_id}", "danger")],
        )

    async def suggest_users(ctx: InteractionContext):
        interaction = ctx.interaction
        typed = interaction.focused_value.strip()
        top = await asyncio.to_thread(store.top_users, interaction.community_id, 25, typed)
        await interaction.respond_choices([uid for uid, _ in top])

    async def confirm_reset(ctx: InteractionContext):
        interaction = ctx.interaction
        if not interaction.is_admin:
            await interaction.reply("You do not have permission to do that.", ephemeral=True)
            return

        community_id = (interaction.custom_id or "")[len(RESET_PREFIX):]
        if not community_id or community_id != interaction.community_id:
            await interaction.reply("That reset button belongs to another workspace.", ephemeral=True)
            return

        removed = await asyncio.to_thread(store.reset, community_id, interaction.user_id)
        logger.info(f"Message counts reset in {community_id} by {interaction.user_id}")
        await interaction.reply(
            f"Message counts reset ({removed} users cleared).",
            ephemeral=True,
            buttons=[Button("Add a note", f"{NOTE_PREFIX}open")],
        )

    async def reset_note(ctx: InteractionContext):
        interaction = ctx.interaction
        if not interaction.is_admin:
            await interaction.reply("You do not have permission to do that.", ephemeral=True)
            return

        if interaction.custom_id == f"{NOTE_PREFIX}open":
            await interaction.open_modal(f"{NOTE_PREFIX}submit", "Reset note", ["note"])
            return

        note = str(interaction.options.get("note") or "").strip()
        if not note:
            return
        saved = await asyncio.to_thread(store.set_last_reset_note, interaction.community_id, note)
        if saved:
            await interaction.reply("Note saved.", ephemeral=True)
        else:
            await interaction.reply("There is no reset to attach a note to.", ephemeral=True)

    registrar.register_hook(count_message)
    registrar.register_text(
        "!messagecount",
        bang_messagecount,
        "{cmd} [@user] — shows how many messages someone has sent",
        admin=True,
    )
    registrar.register_structured(
        StructuredCommandDef(
            name="messagecounts",
            description="Show the message count leaderboard",
            options=[CommandOption(name="user", description="Only this user", autocomplete=True)],
        ),
        slash_messagecounts,
        autocomplete=suggest_users,
        admin=True,
    )
    registrar.register_component(RESET_PREFIX, confirm_reset)
    registrar.register_component(NOTE_PREFIX, reset_note)
