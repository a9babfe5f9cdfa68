"""
factorio_extractor.mods - Mod Model, Discovery and Load Order

1. Parse versions and dependency strings from info.json
2. Load mods from folders and zip archives
3. Filter by mod-list.json and sort by dependencies
"""

from .models import (
    DEFAULT_VERSION, Dependency, DependencyType,
    parse_version, format_version, version_greater,
)
from .mod import Mod, ManifestError, read_manifest
from .loader import (
    ModLoader, LoaderOptions, ModListError, DependencyCycleError,
    read_enabled_names, filter_enabled, sort_by_dependencies, cleanup_quietly,
)

__all__ = [
    # Models
    "DEFAULT_VERSION",
    "Dependency",
    "DependencyType",
    "parse_version",
    "format_version",
    "version_greater",
    # Mod
    "Mod",
    "ManifestError",
    "read_manifest",
    # Loader
    "ModLoader",
    "LoaderOptions",
    "ModListError",
    "DependencyCycleError",
    "read_enabled_names",
    "filter_enabled",
    "sort_by_dependencies",
    "cleanup_quietly",
]
