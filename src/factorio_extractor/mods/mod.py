"""
Factorio Mod

One content package (the base game's ``core``/``base`` or a user-added mod),
read from its ``info.json`` manifest.
"""

import json
import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from factorio_extractor.mods.models import (
    DEFAULT_VERSION,
    Dependency,
    DependencyType,
    Version,
    VersionLike,
    parse_version,
    version_greater,
)

logger = logging.getLogger(__name__)


MANIFEST_NAME = "info.json"

PathLike = Union[str, Path]


class ManifestError(Exception):
    """Raised when a mod's info.json is missing or malformed."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Bad manifest in {source}: {reason}")


def read_manifest(path: Path, source: Optional[str] = None) -> Dict[str, Any]:
    """Read and validate an info.json file."""
    source = source or str(path)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            manifest = json.load(f)
    except FileNotFoundError:
        raise ManifestError(source, f"no {MANIFEST_NAME}")
    except (OSError, ValueError) as e:
        raise ManifestError(source, str(e))

    if not isinstance(manifest, dict):
        raise ManifestError(source, "manifest is not a JSON object")
    if not manifest.get("name"):
        raise ManifestError(source, "manifest has no 'name'")
    return manifest


class Mod:
    """
    A Factorio mod.

    Read-only once constructed, apart from the cleanup tasks a loader
    registers (e.g. removing the directory a zip was unpacked into).
    """

    def __init__(self, manifest: Optional[Dict[str, Any]] = None,
                 directory: Optional[PathLike] = None):
        self.manifest: Dict[str, Any] = manifest if manifest is not None else {}
        self.directory: Optional[Path] = Path(directory) if directory is not None else None
        self.archive: Optional[Path] = None
        self._cleanup_tasks: List[Callable[[], None]] = []
        self._cleaned_up = False
        self._parsed: Optional[List[Dependency]] = None

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load_from_directory(cls, path: PathLike) -> "Mod":
        """Load an unpacked mod; ``path`` is the folder holding info.json."""
        path = Path(path)
        manifest = read_manifest(path / MANIFEST_NAME, str(path))
        return cls(manifest, directory=path)

    load_from_manifest = load_from_directory

    @classmethod
    def load_from_zip(cls, path: PathLike) -> "Mod":
        """
        Load a zipped mod.

        The archive is unpacked into a temporary directory which is removed
        by ``cleanup()``. Factorio zips usually hold a single ``name_version/``
        folder; info.json is looked for there and at the archive root.
        """
        path = Path(path)
        tmp_dir = Path(tempfile.mkdtemp(prefix="factorio-extractor-"))
        try:
            with zipfile.ZipFile(path) as archive:
                archive.extractall(tmp_dir)
            root = _find_manifest_root(tmp_dir)
            if root is None:
                raise ManifestError(str(path), f"no {MANIFEST_NAME} in archive")
            manifest = read_manifest(root / MANIFEST_NAME, str(path))
        except zipfile.BadZipFile as e:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise ManifestError(str(path), f"bad zip file: {e}")
        except BaseException:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise

        mod = cls(manifest, directory=root)
        mod.archive = path
        mod.add_cleanup(lambda: shutil.rmtree(tmp_dir))
        logger.debug(f"Unpacked {path.name} to {tmp_dir}")
        return mod

    # =========================================================================
    # Manifest fields
    # =========================================================================

    @property
    def name(self) -> Optional[str]:
        return self.manifest.get("name")

    @property
    def title(self) -> str:
        return self.manifest.get("title") or self.name or ""

    @property
    def version(self) -> str:
        return self.manifest.get("version") or DEFAULT_VERSION

    @property
    def version_info(self) -> Version:
        return parse_version(self.version)

    @property
    def dependencies(self) -> List[Any]:
        """
        Dependencies as written in the manifest.

        ``base`` always depends on ``core`` even though its info.json does not
        say so.
        """
        deps = list(self.manifest.get("dependencies") or [])
        if self.name == "base" and not any(_dependency_name(d) == "core" for d in deps):
            deps.append("core")
        return deps

    @property
    def parsed_dependencies(self) -> List[Dependency]:
        if self._parsed is None:
            self._parsed = [Dependency.from_value(d) for d in self.dependencies]
        return self._parsed

    # =========================================================================
    # Dependency checks
    # =========================================================================

    @staticmethod
    def version_greater(version: VersionLike, test: VersionLike) -> bool:
        return version_greater(version, test)

    def satisfies_dependency(self, dependency: Any) -> bool:
        """Check whether this mod fulfils ``dependency``."""
        dep = Dependency.from_value(dependency)
        if dep.name != self.name:
            return False
        if dep.type == DependencyType.NONE:
            return True

        own = self.version_info
        if dep.type in (DependencyType.EQUAL, DependencyType.GREATER_THAN_OR_EQUAL):
            if own == dep.version:
                return True
        if dep.type in (DependencyType.GREATER_THAN, DependencyType.GREATER_THAN_OR_EQUAL):
            if version_greater(own, dep.version):
                return True
        return False

    def depends_on(self, other: "Mod", ignore_optional: bool = False) -> bool:
        """True if any of our dependencies is satisfied by ``other``."""
        for dep in self.parsed_dependencies:
            if ignore_optional and dep.optional:
                continue
            if other.satisfies_dependency(dep):
                return True
        return False

    # =========================================================================
    # Cleanup
    # =========================================================================

    def add_cleanup(self, task: Callable[[], None]) -> None:
        self._cleanup_tasks.append(task)

    def cleanup(self) -> None:
        """
        Run the registered cleanup tasks.

        Runs at most once per mod. Every task is attempted; the first failure
        is re-raised afterwards.
        """
        if self._cleaned_up:
            return
        self._cleaned_up = True

        first_error = None
        for task in self._cleanup_tasks:
            try:
                task()
            except Exception as e:
                logger.warning(f"Cleanup failed for {self.name}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def __repr__(self):
        return f"Mod({self.name} {self.version})"


def _dependency_name(value: Any) -> Optional[str]:
    try:
        return Dependency.from_value(value).name
    except (TypeError, ValueError, KeyError):
        return None


def _find_manifest_root(directory: Path) -> Optional[Path]:
    if (directory / MANIFEST_NAME).is_file():
        return directory
    for child in sorted(directory.iterdir()):
        if child.is_dir() and (child / MANIFEST_NAME).is_file():
            return child
    return None
