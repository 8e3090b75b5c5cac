"""
Tests for feature discovery and registration.
"""

import textwrap

import pytest

from botcore.errors import DuplicateRegistrationError
from botcore.plugin_loader import FeatureServices, PluginLoader


def write_feature(root, name, body):
    folder = root / name
    folder.mkdir()
    (folder / "feature.py").write_text(textwrap.dedent(body))


@pytest.fixture
def services():
    return FeatureServices(help_model=lambda community_id, viewer: [])


def test_discover_features(tmp_path):
    write_feature(tmp_path, "beta", "def register(r, s): pass\n")
    write_feature(tmp_path, "alpha", "def register(r, s): pass\n")
    (tmp_path / "notes").mkdir()
    (tmp_path / "__pycache__").mkdir()

    assert PluginLoader(tmp_path).discover_features() == ["alpha", "beta"]
    assert PluginLoader(tmp_path, allowed_features=["beta"]).discover_features() == ["beta"]


def test_category_applies_to_registrations(tmp_path, registry, services):
    write_feature(tmp_path, "fun", """
        CATEGORY = "Fun"

        async def joke(ctx):
            pass

        def register(registrar, services):
            registrar.register_text("!joke", joke, "{cmd} — tells a joke")
    """)

    loaded = PluginLoader(tmp_path).register_all(registry, services)

    assert loaded == ["fun"]
    assert registry.get_text("!joke").category == "Fun"


def test_broken_feature_is_skipped(tmp_path, registry, services):
    write_feature(tmp_path, "broken", "import not_a_real_module_anywhere\n")
    write_feature(tmp_path, "noregister", "VALUE = 1\n")
    write_feature(tmp_path, "raises", """
        def register(registrar, services):
            raise RuntimeError("nope")
    """)
    write_feature(tmp_path, "works", """
        async def ok(ctx):
            pass

        def register(registrar, services):
            registrar.register_text("!ok", ok)
    """)

    loaded = PluginLoader(tmp_path).register_all(registry, services)

    assert loaded == ["works"]
    assert registry.get_text("!ok") is not None


def test_failed_feature_leaves_nothing_registered(tmp_path, registry, services):
    write_feature(tmp_path, "alpha", """
        async def ok(ctx):
            pass

        def register(registrar, services):
            registrar.register_text("!ok", ok)
    """)
    write_feature(tmp_path, "beta", """
        async def half(ctx):
            pass

        async def listen(ctx):
            pass

        def register(registrar, services):
            registrar.register_hook(listen)
            registrar.register_text("!half", half)
            registrar.register_component("half:", half)
            raise RuntimeError("config missing")
    """)

    loaded = PluginLoader(tmp_path).register_all(registry, services)

    assert loaded == ["alpha"]
    assert registry.get_text("!ok") is not None
    assert registry.get_text("!half") is None
    assert registry.match_component("half:1") is None
    assert registry.hooks == []


def test_duplicate_registration_aborts(tmp_path, registry, services):
    body = """
        async def ping(ctx):
            pass

        def register(registrar, services):
            registrar.register_text("!ping", ping)
    """
    write_feature(tmp_path, "first", body)
    write_feature(tmp_path, "second", body)

    with pytest.raises(DuplicateRegistrationError):
        PluginLoader(tmp_path).register_all(registry, services)


def test_shipped_features_register_cleanly(registry, services):
    loaded = PluginLoader().register_all(registry, services)

    assert set(loaded) >= {"help", "rng", "wiki", "message_counts", "policy"}
    assert registry.get_text("!roll").category == "Fun"
    assert registry.get_text("!exposurereload").admin is True
    assert registry.get_structured("help") is not None
    assert registry.get_structured("messagecounts").meta.admin is True
    assert registry.match_component("helpcat:3") is not None
    assert registry.match_retries("wiki_retry:U1:Pikachu")
