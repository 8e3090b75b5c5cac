"""
Random toys: awesome, roll and choose.

All three are exposable so a community can move them to the `?` prefix
(or switch them off) when they collide with another bot.
"""

import os
import re
import random
import logging
from typing import Optional

from botcore.mentions import mention, strip_mentions, target_user_id
from botcore.models import CommandContext

logger = logging.getLogger(__name__)

CATEGORY = "Fun"
ROLL_RE = re.compile(r"^(\d+)d(\d+)$", re.IGNORECASE)


def rand_int_inclusive(lo: int, hi: int) -> int:
    return random.randint(lo, hi)


def parse_roll(arg: str) -> Optional[tuple[int, int]]:
    """Parse `NdM` into (N, M); None if malformed."""
    match = ROLL_RE.match((arg or "").strip())
    if not match:
        return None
    count, sides = int(match.group(1)), int(match.group(2))
    if count < 1:
        return None
    return count, sides


async def handle_awesome(ctx: CommandContext):
    uid = target_user_id(ctx.rest, ctx.message.user_id)
    await ctx.message.reply(f"{mention(uid)} is {rand_int_inclusive(0, 101)}% awesome!")


async def handle_roll(ctx: CommandContext):
    max_n = int(os.getenv("MAX_ROLL_N", 50))
    max_m = int(os.getenv("MAX_ROLL_M", 100000))

    parsed = parse_roll(strip_mentions(ctx.rest))
    if parsed is None:
        await ctx.message.reply("Invalid format. Please use a format like `1d100`")
        return

    count, sides = parsed
    if count > max_n:
        await ctx.message.reply(f"Too many rolls. Max is {max_n}.")
        return
    if sides > max_m:
        await ctx.message.reply(f"Range too large. Max m is {max_m}.")
        return

    uid = target_user_id(ctx.rest, ctx.message.user_id)
    rolls = [rand_int_inclusive(0, sides) for _ in range(count)]
    await ctx.message.reply(f"{mention(uid)} {', '.join(str(r) for r in rolls)}")


async def handle_choose(ctx: CommandContext):
    options = ctx.rest.split()
    if not options:
        await ctx.message.reply(f"Usage: `{ctx.cmd} option1 option2 ...`")
        return
    await ctx.message.reply(random.choice(options))


def register(registrar, services):
    registrar.register_exposable(
        "rng.awesome",
        "awesome",
        handle_awesome,
        "{cmd} [@user] — tells you how awesome someone is (0–101%)",
    )
    registrar.register_exposable(
        "rng.roll",
        "roll",
        handle_roll,
        "{cmd} NdM — rolls N numbers from 0..M (example: {cmd} 1d100)",
        aliases=["r"],
    )
    registrar.register_exposable(
        "rng.choose",
        "choose",
        handle_choose,
        "{cmd} a b c — randomly chooses one option",
    )
