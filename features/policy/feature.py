"""
Runtime reload of the command exposure configuration.
"""

import logging

from botcore.errors import ConfigError
from botcore.models import CommandContext

logger = logging.getLogger(__name__)

CATEGORY = "Admin"


def register(registrar, services):
    policy = registrar.policy

    async def exposure_reload(ctx: CommandContext):
        message = ctx.message
        if not message.is_admin:
            await message.reply("You do not have permission to run that. (Admins only)")
            return

        try:
            config = policy.reload()
        except ConfigError as e:
            logger.error(f"Exposure reload failed: {e}")
            await message.reply("Reload failed (check the logs and the config file formatting).")
            return

        await message.reply(
            f"Reloaded exposure config ({len(config.exposure_by_community)} community overrides, "
            f"{len(config.channel_policy_by_community)} channel policies)."
        )

    registrar.register_text(
        "!exposurereload",
        exposure_reload,
        "{cmd} — reloads the command exposure config",
        admin=True,
    )
