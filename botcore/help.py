"""
Help model builder.

Produces the categorized command list for one community and one viewer.
Pages are rebuilt on every call because they depend on the viewer's
privilege and on the community's live exposure policy.
"""

import logging
from typing import Any, Optional

from .models import (
    ADMIN_CATEGORY,
    HELP_PLACEHOLDER,
    Exposure,
    HelpPage,
    HelpTier,
    StructuredExposure,
)
from .registry import CommandRegistry, bare_name

logger = logging.getLogger(__name__)

# Categories that only list primary-tier entries.
PRIMARY_TIER_CATEGORIES = {"games"}

# /events is never listed in help, whatever the policy says. This is a
# single named exception kept from the original bot, not a rule for other
# commands; pending product clarification.
HELP_EXCLUDED_STRUCTURED = "events"


def render_help(template: str, command: str) -> str:
    """Substitute the active command form for the {cmd} placeholder."""
    return template.replace(HELP_PLACEHOLDER, command)


def _viewer_is_admin(viewer: Any) -> bool:
    return bool(viewer is not None and getattr(viewer, "is_admin", False))


def _bucket_for(admin: bool, admin_category: Optional[str], category: str) -> str:
    if admin:
        return admin_category or ADMIN_CATEGORY
    return category


def _tier_hidden(bucket: str, tier: HelpTier) -> bool:
    return bucket.lower() in PRIMARY_TIER_CATEGORIES and tier is not HelpTier.PRIMARY


def build_help(
    registry: CommandRegistry,
    community_id: Optional[str] = None,
    viewer: Any = None
) -> list[HelpPage]:
    """
    Build help pages for a community as seen by a viewer.

    Args:
        registry: Populated command registry
        community_id: Community whose policy applies, or None for defaults
        viewer: Anything with an `is_admin` attribute, or None

    Returns:
        Pages sorted by category, with the Admin page last
    """
    policy = registry.policy
    is_admin = _viewer_is_admin(viewer)
    buckets: dict[str, list[str]] = {}

    for entry in registry.text.values():
        if not entry.canonical or not entry.help or entry.hide_from_help:
            continue
        if entry.admin and not is_admin:
            continue

        if entry.expose_meta is not None:
            mode = policy.exposure(community_id, entry.expose_meta.logical_id)
            if mode is Exposure.DISABLED:
                continue
            line = render_help(entry.help, mode.prefix + entry.expose_meta.base_name)
        else:
            if policy.bare_name_disabled(community_id, bare_name(entry.key)):
                continue
            line = render_help(entry.help, entry.key)

        bucket = _bucket_for(entry.admin, entry.admin_category, entry.category)
        if _tier_hidden(bucket, entry.help_tier):
            continue
        buckets.setdefault(bucket, []).append(line)

    for entry in registry.structured.values():
        if entry.name == HELP_EXCLUDED_STRUCTURED:
            continue
        meta = entry.meta
        if meta.hide_from_help:
            continue
        if meta.admin and not is_admin:
            continue
        if policy.structured_exposure(community_id, entry.name) is StructuredExposure.OFF:
            continue

        bucket = _bucket_for(meta.admin, meta.admin_category, meta.category)
        if _tier_hidden(bucket, meta.help_tier):
            continue
        line = render_help(entry.description, f"/{entry.name}")
        buckets.setdefault(bucket, []).append(f"/{entry.name} — {line}")

    categories = sorted(name for name in buckets if name != ADMIN_CATEGORY)
    if ADMIN_CATEGORY in buckets and is_admin:
        categories.append(ADMIN_CATEGORY)

    return [HelpPage(category=name, lines=sorted(buckets[name])) for name in categories]
