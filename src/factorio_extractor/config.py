"""
Extractor Configuration

Loads configuration from a YAML file or environment variables.
Explicit overrides (e.g. from the command line) win over both.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from factorio_extractor.constants import DATA_FILES, DATA_TYPES, DEFAULT_OUTPUT, ITEM_TYPES
from factorio_extractor.mods.loader import LoaderOptions

logger = logging.getLogger(__name__)


# Default configuration file locations (checked in order)
CONFIG_SEARCH_PATHS = [
    Path.home() / ".factorio-extractor" / "config.yaml",
    Path(__file__).parent / "config.yaml",
]


DEFAULT_CONFIG: Dict[str, Any] = {
    # Factorio install - contains "data", "mods", "config", ...
    "factorio_path": None,
    "data_path": None,       # defaults to <factorio_path>/data
    "mod_path": None,        # defaults to <factorio_path>/mods
    "mod_list": None,        # defaults to <mod_path>/mod-list.json
    "output": DEFAULT_OUTPUT,

    # Discovery
    "vanilla": True,
    "added": True,
    "strict_dependencies": False,   # fail on dependency cycles instead of dropping

    # Extraction
    "data_files": list(DATA_FILES),
    "item_types": list(ITEM_TYPES),
    "data_types": list(DATA_TYPES),
    "cleanup_workers": 4,
}


ENV_MAPPINGS = {
    "FACTORIO_PATH": "factorio_path",
    "FACTORIO_DATA_PATH": "data_path",
    "FACTORIO_MOD_PATH": "mod_path",
    "FACTORIO_MOD_LIST": "mod_list",
    "FACTORIO_EXTRACTOR_OUTPUT": "output",
}


class ExtractorConfig:
    """Configuration for an extraction run."""

    def __init__(self, config_path: Optional[Path] = None,
                 overrides: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = {
            k: list(v) if isinstance(v, list) else v for k, v in DEFAULT_CONFIG.items()
        }
        self._config_path: Optional[Path] = None

        self._load_config(config_path)
        self._apply_env_overrides()
        if overrides:
            self._config.update({k: v for k, v in overrides.items() if v is not None})

    def with_overrides(self, **overrides: Any) -> "ExtractorConfig":
        """Copy of this configuration with the given (non-None) values replaced."""
        clone = ExtractorConfig.__new__(ExtractorConfig)
        clone._config = dict(self._config)
        clone._config.update({k: v for k, v in overrides.items() if v is not None})
        clone._config_path = self._config_path
        return clone

    def _load_config(self, explicit_path: Optional[Path] = None) -> None:
        """Load configuration from the first YAML file found."""
        search_paths = [Path(explicit_path)] if explicit_path else CONFIG_SEARCH_PATHS

        for config_path in search_paths:
            if config_path and config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        user_config = yaml.safe_load(f) or {}
                    if not isinstance(user_config, dict):
                        raise ValueError("top level must be a mapping")
                    self._config.update(user_config)
                    self._config_path = config_path
                    return
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"Failed to load config from {config_path}: {e}")

    def _apply_env_overrides(self) -> None:
        for env_var, config_key in ENV_MAPPINGS.items():
            if os.environ.get(env_var):
                self._config[config_key] = os.environ[env_var]

    @staticmethod
    def _path(value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @property
    def config_path(self) -> Optional[Path]:
        """Path to the loaded config file, or None if using defaults."""
        return self._config_path

    @property
    def factorio_path(self) -> Optional[Path]:
        return self._path(self._config.get("factorio_path"))

    @property
    def data_path(self) -> Optional[Path]:
        path = self._path(self._config.get("data_path"))
        if path is None and self.factorio_path is not None:
            path = self.factorio_path / "data"
        return path

    @property
    def mod_path(self) -> Optional[Path]:
        path = self._path(self._config.get("mod_path"))
        if path is None and self.factorio_path is not None:
            path = self.factorio_path / "mods"
        return path

    @property
    def mod_list(self) -> Optional[Path]:
        path = self._path(self._config.get("mod_list"))
        if path is None and self.mod_path is not None:
            path = self.mod_path / "mod-list.json"
        return path

    @property
    def output(self) -> Optional[Path]:
        return self._path(self._config.get("output"))

    @property
    def vanilla(self) -> bool:
        return bool(self._config.get("vanilla", True))

    @property
    def added(self) -> bool:
        return bool(self._config.get("added", True))

    @property
    def strict_dependencies(self) -> bool:
        return bool(self._config.get("strict_dependencies", False))

    @property
    def data_files(self) -> List[str]:
        return list(self._config.get("data_files") or DATA_FILES)

    @property
    def item_types(self) -> List[str]:
        return list(self._config.get("item_types") or ITEM_TYPES)

    @property
    def data_types(self) -> List[str]:
        return list(self._config.get("data_types") or DATA_TYPES)

    @property
    def cleanup_workers(self) -> int:
        return max(1, int(self._config.get("cleanup_workers", 4)))

    def loader_options(self) -> LoaderOptions:
        """Discovery options for ModLoader."""
        return LoaderOptions(
            factorio_path=self.factorio_path,
            data_path=self.data_path,
            mod_path=self.mod_path,
            mod_list=self.mod_list,
            vanilla=self.vanilla,
            added=self.added,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dict."""
        def text(path):
            return str(path) if path is not None else None

        return {
            "factorio_path": text(self.factorio_path),
            "data_path": text(self.data_path),
            "mod_path": text(self.mod_path),
            "mod_list": text(self.mod_list),
            "output": text(self.output),
            "vanilla": self.vanilla,
            "added": self.added,
            "strict_dependencies": self.strict_dependencies,
            "data_files": self.data_files,
            "item_types": self.item_types,
            "data_types": self.data_types,
            "cleanup_workers": self.cleanup_workers,
            "config_file": text(self._config_path),
        }


# Global config instance (lazy-loaded)
_config: Optional[ExtractorConfig] = None


def get_config(config_path: Optional[Path] = None) -> ExtractorConfig:
    """Get the global config instance, loading if needed."""
    global _config
    if _config is None or config_path is not None:
        _config = ExtractorConfig(config_path)
    return _config


def write_default_config(path: Optional[Path] = None) -> Path:
    """
    Write a default configuration file.

    Returns the path where config was written.
    """
    if path is None:
        path = CONFIG_SEARCH_PATHS[0]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    config_content = """# factorio-extractor configuration
#
# Any setting can also be given on the command line, and the paths via
# FACTORIO_PATH, FACTORIO_DATA_PATH, FACTORIO_MOD_PATH, FACTORIO_MOD_LIST.

# Factorio installation (contains data/ and mods/)
# factorio_path: "~/.factorio"

# Override the derived locations
# data_path: "~/.factorio/data"
# mod_path: "~/.factorio/mods"
# mod_list: "~/.factorio/mods/mod-list.json"

# Where the JSON document is written
output: "factorio-data.json"

# Include the built-in mods (core, base) and user-added mods
vanilla: true
added: true

# Raise an error on dependency cycles instead of skipping the mods involved
strict_dependencies: false

# Parallel workers used to remove unpacked mod archives
cleanup_workers: 4
"""

    with open(path, 'w', encoding='utf-8') as f:
        f.write(config_content)

    return path
