"""
Tests for the shipped feature modules, driven through the dispatcher.
"""

import json
import threading
from unittest.mock import MagicMock

import pytest
import requests

from botcore.help import build_help
from botcore.models import Exposure, InteractionKind
from botcore.plugin_loader import FeatureServices
from botcore.policy import ExposurePolicy
from botcore.registry import CommandRegistry
from botcore.storage import MessageCountStore, configure_storage
from features.help import feature as help_feature
from features.message_counts import feature as counts_feature
from features.policy import feature as policy_feature
from features.rng import feature as rng_feature
from features.wiki import feature as wiki_feature
from features.wiki import search as wiki_search
from features.wiki.search import WikiResult


def load(registry: CommandRegistry, *modules, extras=None):
    services = FeatureServices(
        help_model=lambda community_id, viewer: build_help(registry, community_id, viewer),
        extras=extras or {},
    )
    for module in modules:
        module.register(registry.with_category(module.CATEGORY), services)
    return services


# ============================================================================
# RNG
# ============================================================================

@pytest.mark.parametrize("arg, expected", [
    ("1d100", (1, 100)),
    ("3D6", (3, 6)),
    (" 2d8 ", (2, 8)),
    ("0d6", None),
    ("d6", None),
    ("1d", None),
    ("roll", None),
    ("", None),
])
def test_parse_roll(arg, expected):
    assert rng_feature.parse_roll(arg) == expected


@pytest.mark.asyncio
async def test_roll_and_limits(registry, make_dispatcher, make_message, replies, monkeypatch):
    load(registry, rng_feature)
    monkeypatch.setattr(rng_feature, "rand_int_inclusive", lambda lo, hi: hi)
    monkeypatch.setenv("MAX_ROLL_N", "5")
    dispatcher = make_dispatcher(registry)

    ok = make_message("!r 2d6 <@U2>", community_id="g0")
    too_many = make_message("!roll 9d6", community_id="g0")
    bad = make_message("!roll six", community_id="g0")
    for message in (ok, too_many, bad):
        await dispatcher.dispatch_message(message)

    assert replies(ok) == ["<@U2> 6, 6"]
    assert replies(too_many) == ["Too many rolls. Max is 5."]
    assert replies(bad) == ["Invalid format. Please use a format like `1d100`"]


@pytest.mark.asyncio
async def test_rng_follows_exposure(make_registry, make_dispatcher, make_message, replies, monkeypatch):
    registry = make_registry({"exposure_by_community": {"g1": {"rng.awesome": "alternate"}}})
    load(registry, rng_feature)
    monkeypatch.setattr(rng_feature, "rand_int_inclusive", lambda lo, hi: 50)
    dispatcher = make_dispatcher(registry)

    bang = make_message("!awesome", community_id="g1", user_id="U1")
    question = make_message("?awesome", community_id="g1", user_id="U1")
    await dispatcher.dispatch_message(bang)
    await dispatcher.dispatch_message(question)

    assert replies(bang) == []
    assert replies(question) == ["<@U1> is 50% awesome!"]


@pytest.mark.asyncio
async def test_choose(registry, make_dispatcher, make_message, replies):
    load(registry, rng_feature)
    dispatcher = make_dispatcher(registry)

    empty = make_message("!choose")
    single = make_message("!choose tea")
    await dispatcher.dispatch_message(empty)
    await dispatcher.dispatch_message(single)

    assert replies(empty) == ["Usage: `!choose option1 option2 ...`"]
    assert replies(single) == ["tea"]


# ============================================================================
# HELP
# ============================================================================

@pytest.fixture
def help_registry(registry):
    help_feature._last_page.clear()
    load(registry, help_feature, rng_feature, policy_feature)
    return registry


@pytest.mark.asyncio
async def test_bang_help_redirects_and_lists(help_registry, make_dispatcher, make_message, replies):
    dispatcher = make_dispatcher(help_registry)

    bare = make_message("!help")
    cats = make_message("!h categories", is_admin=True)
    await dispatcher.dispatch_message(bare)
    await dispatcher.dispatch_message(cats)

    assert replies(bare) == ["Use `/help` for the full command list (private)."]
    listing = replies(cats)[0]
    assert "• Fun" in listing
    assert "• Info" in listing
    assert "Admin" not in listing


@pytest.mark.asyncio
async def test_bang_help_category(help_registry, make_dispatcher, make_message, replies):
    dispatcher = make_dispatcher(help_registry)

    fun = make_message("!help FUN")
    admin = make_message("!help admin", is_admin=True)
    await dispatcher.dispatch_message(fun)
    await dispatcher.dispatch_message(admin)

    assert "• !roll NdM" in replies(fun)[0]
    assert replies(admin)[0].startswith("Unknown help category: *admin*")


@pytest.mark.asyncio
async def test_bang_help_uses_community_exposure(make_registry, make_dispatcher, make_message, replies):
    registry = make_registry({"exposure_by_community": {"g1": {"rng.roll": "alternate"}}})
    load(registry, help_feature, rng_feature)

    message = make_message("!help fun", community_id="g1")
    await make_dispatcher(registry).dispatch_message(message)

    assert "• ?roll NdM" in replies(message)[0]
    assert "!roll" not in replies(message)[0]


@pytest.mark.asyncio
async def test_slash_help_and_category_buttons(help_registry, make_dispatcher, make_interaction):
    dispatcher = make_dispatcher(help_registry)

    interaction = make_interaction(InteractionKind.COMMAND, command_name="help", options={"category": "fun"})
    await dispatcher.dispatch_interaction(interaction)

    text, ephemeral, buttons = interaction.reply_fn.await_args.args
    assert text.startswith("*Fun*")
    assert ephemeral is True
    assert [b.custom_id for b in buttons] == ["helpcat:0", "helpcat:1"]
    assert buttons[0].style == "primary"

    press = make_interaction(InteractionKind.COMPONENT, custom_id="helpcat:1")
    await dispatcher.dispatch_interaction(press)

    text, ephemeral, buttons = press.reply_fn.await_args.args
    assert text.startswith("*Info*")
    assert buttons[1].style == "primary"
    assert help_feature._last_page[("g1", "U1")] == 1


@pytest.mark.asyncio
async def test_slash_help_remembers_page_per_community(help_registry, make_dispatcher, make_interaction):
    dispatcher = make_dispatcher(help_registry)

    await dispatcher.dispatch_interaction(make_interaction(InteractionKind.COMPONENT, custom_id="helpcat:1"))

    same = make_interaction(InteractionKind.COMMAND, command_name="help")
    other = make_interaction(InteractionKind.COMMAND, command_name="help", community_id="g2")
    await dispatcher.dispatch_interaction(same)
    await dispatcher.dispatch_interaction(other)

    assert same.reply_fn.await_args.args[0].startswith("*Info*")
    assert other.reply_fn.await_args.args[0].startswith("*Fun*")


def test_page_memory_is_bounded(monkeypatch):
    monkeypatch.setattr(help_feature, "MAX_REMEMBERED", 2)
    help_feature._last_page.clear()

    for user_id in ("U1", "U2", "U3"):
        help_feature.remember_index("g1", user_id, 1)

    assert list(help_feature._last_page) == [("g1", "U2"), ("g1", "U3")]
    help_feature._last_page.clear()


@pytest.mark.asyncio
async def test_slash_help_admin_sees_admin_page(help_registry, make_dispatcher, make_interaction):
    interaction = make_interaction(InteractionKind.COMMAND, command_name="help", is_admin=True, options={"category": "admin"})
    await make_dispatcher(help_registry).dispatch_interaction(interaction)

    text = interaction.reply_fn.await_args.args[0]
    assert text.startswith("*Admin*")
    assert "!exposurereload" in text


@pytest.mark.asyncio
async def test_help_category_autocomplete(help_registry, make_dispatcher, make_interaction):
    interaction = make_interaction(
        InteractionKind.AUTOCOMPLETE, command_name="help", focused_name="category", focused_value="f"
    )
    await make_dispatcher(help_registry).dispatch_interaction(interaction)

    interaction.choices_fn.assert_awaited_once_with(["Fun"])


def test_help_helpers():
    assert help_feature.clamp(9, 0, 3) == 3
    assert help_feature.clamp(-1, 0, 3) == 0


# ============================================================================
# WIKI
# ============================================================================

def test_retry_id_round_trip_keeps_separators():
    custom_id = wiki_feature.build_retry_id("U1", "Mr. Mime: Galar")

    assert custom_id.startswith("wiki_retry:U1:")
    assert wiki_feature.split_retry_id(custom_id) == ("U1", "Mr. Mime: Galar")
    assert wiki_feature.split_retry_id("helpcat:1") is None
    assert wiki_feature.split_retry_id("wiki_retry:nouser") is None


def test_search_wiki_parses_opensearch(monkeypatch):
    response = MagicMock()
    response.json.return_value = [
        "pika",
        ["Pikachu", "Pikablu"],
        ["", ""],
        ["https://wiki.example/Pikachu", "not-a-url"],
    ]
    get = MagicMock(return_value=response)
    monkeypatch.setattr(wiki_search.requests, "get", get)

    results = wiki_search.search_wiki("pika", 3)

    assert results == [WikiResult(title="Pikachu", link="https://wiki.example/Pikachu")]
    assert get.call_args.kwargs["params"]["search"] == "pika"


def test_search_wiki_failure_is_empty(monkeypatch):
    monkeypatch.setattr(
        wiki_search.requests, "get", MagicMock(side_effect=requests.exceptions.ConnectionError("down"))
    )

    assert wiki_search.search_wiki("pika") == []
    assert wiki_search.search_wiki("   ") == []


@pytest.mark.asyncio
async def test_wiki_offers_suggestions_and_retry(registry, make_dispatcher, make_message, make_interaction, replies, monkeypatch):
    load(registry, wiki_feature)
    searches = []

    def fake_search(query, limit):
        searches.append(query)
        return [
            WikiResult("Pikachu", "https://wiki.example/Pikachu"),
            WikiResult("Pikablu", "https://wiki.example/Pikablu"),
        ]

    monkeypatch.setattr(wiki_feature, "search_wiki", fake_search)
    dispatcher = make_dispatcher(registry)

    message = make_message("!wiki pika", user_id="U1")
    await dispatcher.dispatch_message(message)

    text, buttons = message.reply_fn.await_args.args
    assert "Did you mean" in text
    assert [b.label for b in buttons] == ["Pikachu", "Pikablu"]

    stranger = make_interaction(InteractionKind.COMPONENT, custom_id=buttons[0].custom_id, user_id="U2")
    await dispatcher.dispatch_interaction(stranger)
    stranger.reply_fn.assert_awaited_once_with("Only the person who searched can use these buttons.", True, None)

    owner = make_interaction(InteractionKind.COMPONENT, custom_id=buttons[0].custom_id, user_id="U1")
    await dispatcher.dispatch_interaction(owner)

    assert searches == ["pika", "Pikachu"]
    text, ephemeral, buttons = owner.reply_fn.await_args.args
    assert "<https://wiki.example/Pikachu|Pikachu>" in text
    assert ephemeral is False
    assert buttons is None


@pytest.mark.asyncio
async def test_wiki_exact_match_has_no_buttons(registry, make_dispatcher, make_message, monkeypatch):
    load(registry, wiki_feature)
    monkeypatch.setattr(
        wiki_feature, "search_wiki", lambda query, limit: [WikiResult("Pikachu", "https://wiki.example/Pikachu")]
    )

    message = make_message("!wiki pikachu")
    await make_dispatcher(registry).dispatch_message(message)

    message.reply_fn.assert_awaited_once_with("• <https://wiki.example/Pikachu|Pikachu>", None)


# ============================================================================
# MESSAGE COUNTS
# ============================================================================

@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.delenv("MESSAGE_COUNT_CHANNELS", raising=False)
    configure_storage(tmp_path)
    return MessageCountStore()


@pytest.mark.asyncio
async def test_hook_counts_only_plain_messages(registry, make_dispatcher, make_message, replies, store):
    load(registry, counts_feature, rng_feature, extras={"message_counts": store})
    dispatcher = make_dispatcher(registry)

    for text in ("hello", "again", "!roll 1d6"):
        await dispatcher.dispatch_message(make_message(text, user_id="U2"))
    await dispatcher.dispatch_message(make_message("beep", user_id="B1", is_bot=True))

    assert store.get_count("g1", "U2") == 2
    assert store.get_count("g1", "B1") == 0

    denied = make_message("!messagecount <@U2>")
    allowed = make_message("!messagecount <@U2>", is_admin=True)
    await dispatcher.dispatch_message(denied)
    await dispatcher.dispatch_message(allowed)

    assert replies(denied) == ["You do not have permission to run that."]
    assert replies(allowed) == ["<@U2> has sent 2 messages."]


@pytest.mark.asyncio
async def test_tracked_channels_filter(registry, make_dispatcher, make_message, store, monkeypatch):
    load(registry, counts_feature, extras={"message_counts": store})
    monkeypatch.setenv("MESSAGE_COUNT_CHANNELS", "c1")
    dispatcher = make_dispatcher(registry)

    await dispatcher.dispatch_message(make_message("in", channel_id="c1"))
    await dispatcher.dispatch_message(make_message("out", channel_id="c2"))

    assert store.get_count("g1", "U1") == 1


@pytest.mark.asyncio
async def test_leaderboard_reset_and_note(registry, make_dispatcher, make_interaction, store):
    load(registry, counts_feature, extras={"message_counts": store})
    dispatcher = make_dispatcher(registry)
    for user_id in ("U2", "U2", "U3"):
        store.increment("g1", user_id)

    board = make_interaction(InteractionKind.COMMAND, command_name="messagecounts", is_admin=True)
    await dispatcher.dispatch_interaction(board)
    text, ephemeral, buttons = board.reply_fn.await_args.args
    assert "1. <@U2> — 2" in text
    assert "2. <@U3> — 1" in text
    assert buttons[0].custom_id == "msgcount:reset:g1"

    reset = make_interaction(InteractionKind.COMPONENT, custom_id=buttons[0].custom_id, is_admin=True)
    await dispatcher.dispatch_interaction(reset)
    text, _, buttons = reset.reply_fn.await_args.args
    assert text == "Message counts reset (2 users cleared)."
    assert store.top_users("g1") == []

    opener = make_interaction(InteractionKind.COMPONENT, custom_id=buttons[0].custom_id, is_admin=True)
    await dispatcher.dispatch_interaction(opener)
    opener.modal_fn.assert_awaited_once_with("msgcount:note:submit", "Reset note", ["note"])

    submit = make_interaction(
        InteractionKind.MODAL, custom_id="msgcount:note:submit", options={"note": "season end"}, is_admin=True
    )
    await dispatcher.dispatch_interaction(submit)
    submit.reply_fn.assert_awaited_once_with("Note saved.", True, None)
    assert store.last_reset_note("g1") == "season end"


@pytest.mark.asyncio
async def test_leaderboard_requires_admin_and_autocompletes(registry, make_dispatcher, make_interaction, store):
    load(registry, counts_feature, extras={"message_counts": store})
    dispatcher = make_dispatcher(registry)
    store.increment("g1", "U20")
    store.increment("g1", "U31")

    denied = make_interaction(InteractionKind.COMMAND, command_name="messagecounts")
    await dispatcher.dispatch_interaction(denied)
    denied.reply_fn.assert_awaited_once_with("You do not have permission to run that.", True, None)

    suggest = make_interaction(InteractionKind.AUTOCOMPLETE, command_name="messagecounts", focused_value="U2")
    await dispatcher.dispatch_interaction(suggest)
    suggest.choices_fn.assert_awaited_once_with(["U20"])


class ThreadRecordingStore(MessageCountStore):
    def __init__(self):
        self.threads = []

    def increment(self, community_id, user_id):
        self.threads.append(threading.get_ident())
        return super().increment(community_id, user_id)


@pytest.mark.asyncio
async def test_counting_runs_off_the_event_loop(registry, make_dispatcher, make_message, store):
    recording = ThreadRecordingStore()
    load(registry, counts_feature, extras={"message_counts": recording})

    await make_dispatcher(registry).dispatch_message(make_message("hello"))

    assert len(recording.threads) == 1
    assert recording.threads[0] != threading.get_ident()
    assert recording.get_count("g1", "U1") == 1


@pytest.mark.asyncio
async def test_reset_button_from_another_workspace_is_refused(registry, make_dispatcher, make_interaction, store):
    load(registry, counts_feature, extras={"message_counts": store})
    store.increment("g1", "U2")
    store.increment("g2", "U2")

    press = make_interaction(
        InteractionKind.COMPONENT, custom_id="msgcount:reset:g2", community_id="g1", is_admin=True
    )
    await make_dispatcher(registry).dispatch_interaction(press)

    press.reply_fn.assert_awaited_once_with("That reset button belongs to another workspace.", True, None)
    assert store.get_count("g1", "U2") == 1
    assert store.get_count("g2", "U2") == 1


def test_note_without_reset(store):
    assert store.set_last_reset_note("g9", "nothing to attach") is False
    assert store.last_reset_note("g9") is None


# ============================================================================
# POLICY
# ============================================================================

@pytest.mark.asyncio
async def test_exposure_reload(tmp_path, make_dispatcher, make_message, replies):
    path = tmp_path / "exposure.json"
    path.write_text(json.dumps({}))
    registry = CommandRegistry(ExposurePolicy.from_file(path))
    load(registry, policy_feature)
    dispatcher = make_dispatcher(registry)

    path.write_text(json.dumps({"exposure_by_community": {"g1": {"rng.roll": "q"}}}))

    member = make_message("!exposurereload")
    await dispatcher.dispatch_message(member)
    assert replies(member) == ["You do not have permission to run that. (Admins only)"]
    assert registry.policy.exposure("g1", "rng.roll") is Exposure.PRIMARY

    admin = make_message("!exposurereload", is_admin=True)
    await dispatcher.dispatch_message(admin)
    assert replies(admin)[0].startswith("Reloaded exposure config (1 community overrides")
    assert registry.policy.exposure("g1", "rng.roll") is Exposure.ALTERNATE


@pytest.mark.asyncio
async def test_exposure_reload_keeps_old_tables_on_bad_json(tmp_path, make_dispatcher, make_message, replies):
    path = tmp_path / "exposure.json"
    path.write_text(json.dumps({"exposure_by_community": {"g1": {"rng.roll": "off"}}}))
    registry = CommandRegistry(ExposurePolicy.from_file(path))
    load(registry, policy_feature)

    path.write_text("{broken")
    admin = make_message("!exposurereload", is_admin=True)
    await make_dispatcher(registry).dispatch_message(admin)

    assert replies(admin)[0].startswith("Reload failed")
    assert registry.policy.exposure("g1", "rng.roll") is Exposure.DISABLED
