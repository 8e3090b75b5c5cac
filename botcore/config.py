"""
Configuration loading.

Two sources:
- Environment variables (optionally from a .env file via python-dotenv)
- The command exposure JSON file (per-community exposure, slash exposure
  and channel policy overrides)

Malformed exposure values never stop the bot: they are normalized to the
safe default and reported once as a warning while loading.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .models import ChannelPolicy, Exposure, StructuredExposure

logger = logging.getLogger(__name__)

BOT_ROOT = Path(__file__).parent.parent
DEFAULT_EXPOSURE_CONFIG = BOT_ROOT / "configs" / "command_exposure.json"
DEFAULT_DATA_DIR = BOT_ROOT / "data"

LEGACY_EXPOSURE_NAMES = {
    "bang": Exposure.PRIMARY,
    "q": Exposure.ALTERNATE,
    "off": Exposure.DISABLED,
}
CHANNEL_POLICY_KEYS = {"allow", "deny", "silent", "allowAdminBypass"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("false", "0", "off", "no")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Process-wide settings read from the environment."""
    log_level: str = "INFO"
    log_format: str = "text"
    metrics_enabled: bool = True
    metrics_port: Optional[int] = None
    allowed_channel_ids: list[str] = field(default_factory=list)
    privileged_user_ids: list[str] = field(default_factory=list)
    exposure_config_path: Path = DEFAULT_EXPOSURE_CONFIG
    data_dir: Path = DEFAULT_DATA_DIR

    @classmethod
    def from_env(cls) -> "Settings":
        port_raw = os.getenv("METRICS_PORT", "").strip()
        metrics_port = None
        if port_raw:
            try:
                metrics_port = int(port_raw)
            except ValueError:
                logger.warning(f"Ignoring non-numeric METRICS_PORT={port_raw!r}")

        log_format = os.getenv("LOG_FORMAT", "text").strip().lower()
        if log_format not in ("text", "json"):
            logger.warning(f"Unknown LOG_FORMAT={log_format!r}, using text")
            log_format = "text"

        exposure_path = os.getenv("COMMAND_EXPOSURE_CONFIG")
        data_dir = os.getenv("DATA_DIR")

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_format=log_format,
            metrics_enabled=_env_flag("METRICS_ENABLED", True),
            metrics_port=metrics_port,
            allowed_channel_ids=_env_list("ALLOWED_CHANNEL_IDS"),
            privileged_user_ids=_env_list("PRIVILEGED_USER_IDS"),
            exposure_config_path=Path(exposure_path) if exposure_path else DEFAULT_EXPOSURE_CONFIG,
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
        )


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load .env (if present) and build Settings from the environment."""
    load_dotenv(env_file or BOT_ROOT / ".env")
    return Settings.from_env()


# ============================================================================
# EXPOSURE CONFIG
# ============================================================================

def parse_exposure(value: Any, where: str = "default_exposure") -> Exposure:
    """
    Normalize a configured exposure value.

    Accepts primary/alternate/disabled and the legacy bang/q/off names.
    Anything else becomes Exposure.PRIMARY and is reported.
    """
    if isinstance(value, Exposure):
        return value
    key = str(value).strip().lower() if value is not None else ""
    if key in LEGACY_EXPOSURE_NAMES:
        return LEGACY_EXPOSURE_NAMES[key]
    try:
        return Exposure(key)
    except ValueError:
        logger.warning(f"Invalid exposure value {value!r} at {where}; using 'primary'")
        return Exposure.PRIMARY


def parse_slash_exposure(value: Any, where: str = "default_slash_exposure") -> StructuredExposure:
    if isinstance(value, StructuredExposure):
        return value
    key = str(value).strip().lower() if value is not None else ""
    try:
        return StructuredExposure(key)
    except ValueError:
        logger.warning(f"Invalid slash exposure value {value!r} at {where}; using 'on'")
        return StructuredExposure.ON


def _channel_set(value: Any, where: str) -> Optional[frozenset]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, frozenset)) and all(isinstance(v, str) for v in value):
        return frozenset(value)
    logger.warning(f"Ignoring channel list at {where}: expected a list of strings, got {value!r}")
    return None


def parse_channel_policy(value: Any, where: str) -> Optional[ChannelPolicy]:
    """Normalize one channel policy object; returns None if unusable."""
    if not isinstance(value, dict):
        logger.warning(f"Ignoring channel policy at {where}: expected an object, got {value!r}")
        return None

    unknown = set(value) - CHANNEL_POLICY_KEYS
    if unknown:
        logger.warning(f"Unknown channel policy keys at {where}: {sorted(unknown)}")

    silent = value.get("silent", True)
    if not isinstance(silent, bool):
        logger.warning(f"Non-boolean silent={silent!r} at {where}; using true")
        silent = True

    bypass = value.get("allowAdminBypass", False)
    if not isinstance(bypass, bool):
        logger.warning(f"Non-boolean allowAdminBypass={bypass!r} at {where}; using false")
        bypass = False

    return ChannelPolicy(
        allow=_channel_set(value.get("allow"), f"{where}.allow"),
        deny=_channel_set(value.get("deny"), f"{where}.deny"),
        silent=silent,
        allow_admin_bypass=bypass,
    )


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Ignoring {where}: expected an object, got {type(value).__name__}")
        return {}
    return value


@dataclass
class ExposureConfig:
    """Normalized exposure and channel policy tables."""
    default_exposure: Exposure = Exposure.PRIMARY
    default_slash_exposure: StructuredExposure = StructuredExposure.ON
    exposure_by_community: dict[str, dict[str, Exposure]] = field(default_factory=dict)
    slash_exposure_by_community: dict[str, dict[str, StructuredExposure]] = field(default_factory=dict)
    channel_policy_by_community: dict[str, dict[str, ChannelPolicy]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ExposureConfig":
        """Build a config from raw JSON-shaped data, normalizing bad values."""
        data = _mapping(data, "exposure config")

        exposure_by_community = {}
        for community_id, overrides in _mapping(data.get("exposure_by_community"), "exposure_by_community").items():
            exposure_by_community[str(community_id)] = {
                str(logical_id): parse_exposure(mode, f"exposure_by_community.{community_id}.{logical_id}")
                for logical_id, mode in _mapping(overrides, f"exposure_by_community.{community_id}").items()
            }

        slash_by_community = {}
        for community_id, overrides in _mapping(data.get("slash_exposure_by_community"), "slash_exposure_by_community").items():
            slash_by_community[str(community_id)] = {
                str(name).lower(): parse_slash_exposure(mode, f"slash_exposure_by_community.{community_id}.{name}")
                for name, mode in _mapping(overrides, f"slash_exposure_by_community.{community_id}").items()
            }

        channel_by_community = {}
        for community_id, policies in _mapping(data.get("channel_policy_by_community"), "channel_policy_by_community").items():
            parsed = {}
            for logical_id, raw_policy in _mapping(policies, f"channel_policy_by_community.{community_id}").items():
                policy = parse_channel_policy(raw_policy, f"channel_policy_by_community.{community_id}.{logical_id}")
                if policy is not None:
                    parsed[str(logical_id)] = policy
            channel_by_community[str(community_id)] = parsed

        return cls(
            default_exposure=parse_exposure(data.get("default_exposure", "primary")),
            default_slash_exposure=parse_slash_exposure(data.get("default_slash_exposure", "on")),
            exposure_by_community=exposure_by_community,
            slash_exposure_by_community=slash_by_community,
            channel_policy_by_community=channel_by_community,
        )


def load_exposure_config(path: Path) -> ExposureConfig:
    """
    Read the exposure JSON file.

    Args:
        path: Location of the JSON file

    Returns:
        Normalized ExposureConfig (all defaults if the file is missing)

    Raises:
        ConfigError: If the file exists but is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Exposure config not found at {path}; using defaults")
        return ExposureConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read exposure config {path}: {e}") from e

    config = ExposureConfig.from_dict(data)
    logger.info(
        f"Loaded exposure config from {path} "
        f"({len(config.exposure_by_community)} community overrides)"
    )
    return config
