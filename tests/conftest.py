"""
Shared fixtures for engine tests.
"""

from unittest.mock import AsyncMock

import pytest

from botcore.config import ExposureConfig
from botcore.dispatcher import Dispatcher
from botcore.instrumentation import CommandMetrics
from botcore.models import InteractionEvent, InteractionKind, MessageEvent
from botcore.policy import ExposurePolicy
from botcore.registry import CommandRegistry


@pytest.fixture
def make_registry():
    """Build a registry whose policy comes from a raw exposure dict."""

    def factory(config: dict | None = None) -> CommandRegistry:
        return CommandRegistry(ExposurePolicy(ExposureConfig.from_dict(config or {})))

    return factory


@pytest.fixture
def registry(make_registry):
    return make_registry()


@pytest.fixture
def metrics():
    return CommandMetrics()


@pytest.fixture
def make_dispatcher(metrics):
    def factory(registry: CommandRegistry) -> Dispatcher:
        return Dispatcher(registry, metrics)

    return factory


@pytest.fixture
def make_message():
    def factory(
        text: str,
        community_id: str | None = "g1",
        channel_id: str = "c1",
        user_id: str = "U1",
        is_bot: bool = False,
        is_admin: bool = False
    ) -> MessageEvent:
        return MessageEvent(
            community_id=community_id,
            channel_id=channel_id,
            user_id=user_id,
            text=text,
            reply_fn=AsyncMock(),
            is_bot=is_bot,
            is_admin=is_admin,
        )

    return factory


@pytest.fixture
def make_interaction():
    def factory(kind: InteractionKind, **fields) -> InteractionEvent:
        fields.setdefault("community_id", "g1")
        fields.setdefault("channel_id", "c1")
        fields.setdefault("user_id", "U1")
        return InteractionEvent(
            kind=kind,
            reply_fn=AsyncMock(),
            choices_fn=AsyncMock(),
            modal_fn=AsyncMock(),
            **fields,
        )

    return factory


@pytest.fixture
def replies():
    """Texts passed to an event's mocked reply_fn, in order."""

    def collect(event) -> list[str]:
        return [call.args[0] for call in event.reply_fn.await_args_list]

    return collect
