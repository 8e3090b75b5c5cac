"""
Plugin loader for feature modules.
"""

import importlib.util
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional

from .errors import DuplicateRegistrationError
from .registry import CommandRegistry

logger = logging.getLogger(__name__)

BOT_ROOT = Path(__file__).parent.parent
FEATURES_DIR = BOT_ROOT / "features"


@dataclass
class FeatureServices:
    """Shared collaborators handed to every feature's register()."""
    help_model: Callable[..., list]
    settings: Any = None
    extras: dict[str, Any] = field(default_factory=dict)


class PluginLoader:
    """
    Discovers feature modules and lets them register commands.

    Each feature folder must contain:
    - feature.py with a register(registrar, services) function
    - optionally a module-level CATEGORY used as the default help category
    """

    def __init__(self, root_dir: Path | None = None, allowed_features: list[str] | None = None):
        self.root_dir = root_dir if root_dir is not None else FEATURES_DIR
        self.allowed_features = allowed_features
        self.excluded_dirs = {'__pycache__', '.git', '.venv', '.tmp'}

    def discover_features(self) -> list[str]:
        """
        Find all directories that contain a feature module.

        Returns:
            Sorted list of feature directory names
        """
        features = []

        for item in sorted(self.root_dir.iterdir()):
            if not item.is_dir():
                continue
            if item.name in self.excluded_dirs or item.name.startswith('.'):
                continue
            if self.allowed_features is not None and item.name not in self.allowed_features:
                continue

            if (item / "feature.py").exists():
                features.append(item.name)
                logger.debug(f"Discovered feature: {item.name}")

        return features

    def load_feature(self, name: str) -> Optional[ModuleType]:
        """
        Import a single feature module by directory name.

        Returns:
            The module, or None if it is missing or fails to import
        """
        feature_path = self.root_dir / name / "feature.py"

        if not feature_path.exists():
            logger.error(f"Feature file not found: {feature_path}")
            return None

        try:
            spec = importlib.util.spec_from_file_location(
                f"{self.root_dir.name}.{name}.feature",
                feature_path
            )
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            logger.exception(f"Failed to load feature '{name}': {e}")
            return None

        if not callable(getattr(module, "register", None)):
            logger.error(f"No register() in {name}/feature.py")
            return None
        return module

    def register_all(self, registry: CommandRegistry, services: FeatureServices) -> list[str]:
        """
        Load every discovered feature and call its register().

        A feature that fails to import or register is logged and skipped,
        and anything it registered before failing is rolled back. Duplicate
        registrations abort startup.

        Returns:
            Names of the features that registered successfully
        """
        registered = []

        for name in self.discover_features():
            module = self.load_feature(name)
            if module is None:
                continue

            category = getattr(module, "CATEGORY", None)
            registrar = registry.with_category(category) if category else registry

            checkpoint = registry.checkpoint()
            try:
                module.register(registrar, services)
            except DuplicateRegistrationError:
                logger.error(f"Feature '{name}' made a duplicate registration")
                raise
            except Exception as e:
                registry.rollback(checkpoint)
                logger.exception(f"Feature '{name}' failed to register: {e}")
                continue

            registered.append(name)
            logger.info(f"Registered feature: {name}")

        return registered
