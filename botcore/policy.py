"""
Exposure and channel policy resolution.

All lookups read the live ExposureConfig on every call; nothing is cached,
so swapping the config (see ExposurePolicy.reload) takes effect on the
next dispatch.
"""

import logging
from pathlib import Path
from typing import Optional

from .config import ExposureConfig, load_exposure_config
from .models import ChannelDecision, Exposure, StructuredExposure

logger = logging.getLogger(__name__)

UNRESTRICTED = ChannelDecision(allowed=True)


def resolve_exposure(config: ExposureConfig, community_id: Optional[str], logical_id: str) -> Exposure:
    """Exposure mode of a logical command in a community."""
    if community_id is not None:
        overrides = config.exposure_by_community.get(str(community_id))
        if overrides and logical_id in overrides:
            return overrides[logical_id]
    return config.default_exposure


def resolve_structured_exposure(
    config: ExposureConfig,
    community_id: Optional[str],
    name: str
) -> StructuredExposure:
    """On/off state of a structured command in a community."""
    if community_id is not None:
        overrides = config.slash_exposure_by_community.get(str(community_id))
        if overrides:
            state = overrides.get(name.lower())
            if state is not None:
                return state
    return config.default_slash_exposure


def is_bare_name_disabled(config: ExposureConfig, community_id: Optional[str], bare_name: str) -> bool:
    """True if a directly registered command's bare name is switched off for the community."""
    if community_id is None:
        return False
    overrides = config.exposure_by_community.get(str(community_id))
    if not overrides:
        return False
    return overrides.get(bare_name) is Exposure.DISABLED


def resolve_channel(
    config: ExposureConfig,
    community_id: Optional[str],
    channel_id: Optional[str],
    logical_id: str,
    is_admin: bool = False
) -> ChannelDecision:
    """
    Whether a logical command may run in a channel.

    No policy means unrestricted. An allow list admits only its channels;
    a deny list rejects its channels. Privileged viewers skip the check
    when the policy sets allowAdminBypass.
    """
    if community_id is None:
        return UNRESTRICTED
    policy = config.channel_policy_by_community.get(str(community_id), {}).get(logical_id)
    if policy is None:
        return UNRESTRICTED
    if policy.allow_admin_bypass and is_admin:
        return ChannelDecision(allowed=True, silent=policy.silent)

    channel = str(channel_id) if channel_id is not None else None
    if policy.allow is not None and channel not in policy.allow:
        return ChannelDecision(allowed=False, silent=policy.silent)
    if policy.deny is not None and channel in policy.deny:
        return ChannelDecision(allowed=False, silent=policy.silent)
    return ChannelDecision(allowed=True, silent=policy.silent)


class ExposurePolicy:
    """Holds the current ExposureConfig and answers policy questions against it."""

    def __init__(self, config: Optional[ExposureConfig] = None, source: Optional[Path] = None):
        self.config = config if config is not None else ExposureConfig()
        self.source = Path(source) if source is not None else None

    @classmethod
    def from_file(cls, path: Path) -> "ExposurePolicy":
        return cls(load_exposure_config(path), source=path)

    def reload(self) -> ExposureConfig:
        """Re-read the source file and swap in the new tables."""
        if self.source is None:
            logger.warning("Exposure policy has no source file; nothing to reload")
            return self.config
        self.config = load_exposure_config(self.source)
        return self.config

    def exposure(self, community_id: Optional[str], logical_id: str) -> Exposure:
        return resolve_exposure(self.config, community_id, logical_id)

    def structured_exposure(self, community_id: Optional[str], name: str) -> StructuredExposure:
        return resolve_structured_exposure(self.config, community_id, name)

    def bare_name_disabled(self, community_id: Optional[str], bare_name: str) -> bool:
        return is_bare_name_disabled(self.config, community_id, bare_name)

    def channel(
        self,
        community_id: Optional[str],
        channel_id: Optional[str],
        logical_id: str,
        is_admin: bool = False
    ) -> ChannelDecision:
        return resolve_channel(self.config, community_id, channel_id, logical_id, is_admin)
