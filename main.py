"""
Community Command Bot - Main Entry Point

Wires the command engine to Slack:
- Message events -> passive hooks and text commands
- Slash commands -> structured commands
- Button presses, modal submissions and external-select suggestions ->
  components, modals and autocomplete
"""

import os
import re
import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path

from prometheus_client import start_http_server
from slack_bolt.async_app import AsyncApp
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler

from botcore.config import Settings, load_settings
from botcore.dispatcher import Dispatcher
from botcore.help import build_help
from botcore.instrumentation import CommandMetrics
from botcore.logging_config import setup_logging
from botcore.plugin_loader import FeatureServices, PluginLoader
from botcore.policy import ExposurePolicy
from botcore.registry import CommandRegistry
from botcore.storage import configure_storage
from botcore.slack_adapter import (
    AdminResolver,
    block_action_interaction,
    client_reply,
    message_from_slack,
    modal_opener,
    render_choices,
    respond_reply,
    say_reply,
    slash_command_interaction,
    suggestion_interaction,
    view_submission_interaction,
)

BOT_DIR = Path(__file__).parent

logger = logging.getLogger(__name__)

# Message subtypes that still carry a user's text.
TEXT_SUBTYPES = {None, "bot_message", "thread_broadcast", "file_share"}


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Community Command Bot")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to bot config JSON file (e.g., bots/community.json)"
    )
    return parser.parse_args()


def load_bot_config(path: str | None) -> dict:
    if not path:
        return {}
    config_path = BOT_DIR / path
    with open(config_path) as f:
        config = json.load(f)
    return config


def load_environment(config: dict) -> Settings:
    """Load .env, apply bot config overrides and validate required variables."""
    env_file = BOT_DIR / config["env_file"] if config.get("env_file") else None
    settings = load_settings(env_file)

    if config.get("data_dir"):
        settings.data_dir = BOT_DIR / config["data_dir"]
    if config.get("exposure_config"):
        settings.exposure_config_path = BOT_DIR / config["exposure_config"]

    required_vars = ["SLACK_BOT_TOKEN", "SLACK_APP_TOKEN"]
    missing = [var for var in required_vars if not os.getenv(var)]

    if missing:
        logger.error(
            f"Missing required environment variables: {', '.join(missing)}"
        )
        sys.exit(1)

    return settings


# ============================================================================
# ENGINE
# ============================================================================

def build_dispatcher(settings: Settings, allowed_features: list[str] | None = None) -> Dispatcher:
    """Load policy, register every feature and return a ready dispatcher."""
    configure_storage(settings.data_dir)

    policy = ExposurePolicy.from_file(settings.exposure_config_path)
    registry = CommandRegistry(policy)
    services = FeatureServices(
        help_model=lambda community_id, viewer: build_help(registry, community_id, viewer),
        settings=settings,
    )

    loader = PluginLoader(allowed_features=allowed_features)
    loaded = loader.register_all(registry, services)
    logger.info(f"Loaded {len(loaded)} features: {', '.join(loaded)}")

    return Dispatcher(registry, CommandMetrics(enabled=settings.metrics_enabled))


# ============================================================================
# SLACK HANDLERS
# ============================================================================

def register_handlers(app: AsyncApp, dispatcher: Dispatcher, settings: Settings):
    admins = AdminResolver(app.client, settings.privileged_user_ids)
    allowed_channels = set(settings.allowed_channel_ids)

    @app.event("message")
    async def handle_message(event, body, say):
        """Every channel message goes through hooks and text routing."""
        if event.get("subtype") not in TEXT_SUBTYPES:
            return

        channel_id = event.get("channel", "")
        if allowed_channels and channel_id not in allowed_channels:
            return

        user_id = event.get("user")
        is_admin = await admins.is_admin(user_id) if user_id and not event.get("bot_id") else False
        message = message_from_slack(
            event,
            say_reply(say, event.get("thread_ts")),
            is_admin=is_admin,
            team_id=body.get("team_id"),
        )
        await dispatcher.dispatch_message(message)

    def slash_handler(name: str):
        async def handler(ack, command, respond):
            await ack()
            entry = dispatcher.registry.get_structured(name)
            interaction = slash_command_interaction(
                command,
                respond_reply(respond),
                definition=entry.definition if entry else None,
                is_admin=await admins.is_admin(command.get("user_id")),
            )
            await dispatcher.dispatch_interaction(interaction)

        return handler

    for name in dispatcher.list_structured():
        app.command(f"/{name}")(slash_handler(name))
        logger.info(f"Registered slash command: /{name}")

    @app.action(re.compile(".*"))
    async def handle_action(ack, body, respond, client):
        await ack()
        user_id = (body.get("user") or {}).get("id")
        interaction = block_action_interaction(
            body,
            respond_reply(respond),
            is_admin=await admins.is_admin(user_id),
        )
        interaction.modal_fn = modal_opener(client, body.get("trigger_id"), interaction.channel_id)
        await dispatcher.dispatch_interaction(interaction)

    @app.view(re.compile(".*"))
    async def handle_view(ack, body, client):
        await ack()
        user_id = (body.get("user") or {}).get("id", "")
        channel_id = (body.get("view") or {}).get("private_metadata", "") or user_id
        interaction = view_submission_interaction(
            body,
            client_reply(client, channel_id, user_id),
            is_admin=await admins.is_admin(user_id),
        )
        await dispatcher.dispatch_interaction(interaction)

    @app.options(re.compile("^autocomplete:"))
    async def handle_suggestion(ack, body):
        acked = {"done": False}

        async def choices_fn(choices):
            acked["done"] = True
            await ack(options=render_choices(choices))

        interaction = suggestion_interaction(body, choices_fn)
        if interaction is not None:
            user_id = (body.get("user") or {}).get("id")
            interaction.is_admin = await admins.is_admin(user_id)
            await dispatcher.dispatch_interaction(interaction)

        if not acked["done"]:
            await ack(options=[])


# ============================================================================
# MAIN
# ============================================================================

async def run(settings: Settings, config: dict):
    dispatcher = build_dispatcher(settings, config.get("features"))

    if settings.metrics_enabled and settings.metrics_port:
        start_http_server(settings.metrics_port, registry=dispatcher.metrics.registry)
        logger.info(f"Metrics exposed on port {settings.metrics_port}")

    app = AsyncApp(token=os.environ["SLACK_BOT_TOKEN"])
    register_handlers(app, dispatcher, settings)

    logger.info(f"Text commands: {', '.join(dispatcher.list_text())}")
    logger.info(f"Structured commands: {', '.join(dispatcher.list_structured())}")
    logger.info("Bot is running! Press Ctrl+C to stop.")

    handler = AsyncSocketModeHandler(app, os.environ["SLACK_APP_TOKEN"])
    await handler.start_async()


def main():
    """Start the bot."""
    args = parse_args()
    config = load_bot_config(args.config)
    settings = load_environment(config)
    setup_logging(settings.log_level, settings.log_format)

    logger.info(f"Starting {config.get('name', 'Community Command Bot')}...")
    asyncio.run(run(settings, config))


if __name__ == "__main__":
    main()
