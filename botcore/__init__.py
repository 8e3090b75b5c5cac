"""
Core module for the community command bot.

Contains the command registration tables, exposure and channel policy,
help rendering and the dispatcher that routes chat events to features.
"""

from .errors import BotError, ConfigError, DuplicateRegistrationError
from .models import (
    Button,
    CommandContext,
    CommandOption,
    Exposure,
    HelpPage,
    HelpTier,
    HookContext,
    InteractionContext,
    InteractionEvent,
    InteractionKind,
    MessageEvent,
    RetryMessage,
    RetryTarget,
    StructuredCommandDef,
    StructuredExposure,
)
from .config import ExposureConfig, Settings, load_exposure_config, load_settings
from .policy import ExposurePolicy
from .registry import REFUSAL_TEXT, CategoryScopedRegistrar, CommandRegistry
from .help import build_help
from .instrumentation import CommandMetrics
from .dispatcher import Dispatcher
from .plugin_loader import FeatureServices, PluginLoader

__all__ = [
    'BotError',
    'ConfigError',
    'DuplicateRegistrationError',
    'Button',
    'CommandContext',
    'CommandOption',
    'Exposure',
    'HelpPage',
    'HelpTier',
    'HookContext',
    'InteractionContext',
    'InteractionEvent',
    'InteractionKind',
    'MessageEvent',
    'RetryMessage',
    'RetryTarget',
    'StructuredCommandDef',
    'StructuredExposure',
    'ExposureConfig',
    'Settings',
    'load_exposure_config',
    'load_settings',
    'ExposurePolicy',
    'REFUSAL_TEXT',
    'CategoryScopedRegistrar',
    'CommandRegistry',
    'build_help',
    'CommandMetrics',
    'Dispatcher',
    'FeatureServices',
    'PluginLoader',
]
