"""
Mod Discovery and Load Order

Finds the built-in mods (``data/*/info.json``) and user-added mods
(``mods/*.zip`` and unpacked folders), filters them by ``mod-list.json`` and
sorts them so every mod loads after the mods it depends on.
"""

import json
import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Type, Union

from factorio_extractor.mods.mod import MANIFEST_NAME, Mod

logger = logging.getLogger(__name__)


PathLike = Union[str, Path]


class ModListError(Exception):
    """Raised when the enabled-mods list cannot be read."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read mod list {path}: {reason}")


class DependencyCycleError(Exception):
    """Raised by a strict sort when mods depend on each other in a loop."""
    def __init__(self, names: List[str]):
        self.names = names
        super().__init__(f"Mods unreachable because of a dependency cycle: {', '.join(names)}")


@dataclass
class LoaderOptions:
    """
    Where to look for mods.

    None means unset: paths are derived from ``factorio_path`` and the
    switches default to True when resolved.
    """
    factorio_path: Optional[Path] = None
    data_path: Optional[Path] = None        # defaults to factorio_path/data
    mod_path: Optional[Path] = None         # defaults to factorio_path/mods
    mod_list: Optional[Path] = None         # defaults to mod_path/mod-list.json
    vanilla: Optional[bool] = None          # include the built-in mods
    added: Optional[bool] = None            # include user-added mods

    def merged(self, other: Optional["LoaderOptions"]) -> "LoaderOptions":
        """Return a copy with every field ``other`` sets taken from ``other``."""
        if other is None:
            return replace(self)
        changes = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(other, f.name) is not None
        }
        return replace(self, **changes)

    def resolve(self) -> "LoaderOptions":
        """Fill in the derived paths and default switches."""
        opts = replace(self)
        if opts.vanilla is None:
            opts.vanilla = True
        if opts.added is None:
            opts.added = True
        if opts.factorio_path is not None:
            opts.factorio_path = Path(opts.factorio_path)
        if opts.data_path is None and opts.factorio_path is not None:
            opts.data_path = opts.factorio_path / "data"
        if opts.mod_path is None and opts.factorio_path is not None:
            opts.mod_path = opts.factorio_path / "mods"
        if opts.mod_list is None and opts.mod_path is not None:
            opts.mod_list = Path(opts.mod_path) / "mod-list.json"
        return opts


class ModLoader:
    """
    Locates Factorio mods, filters by enabled mods and determines load order.

    ``mod_class`` may be swapped (e.g. in tests) to control how mods are built.
    """

    def __init__(self, options: Optional[LoaderOptions] = None,
                 mod_class: Type[Mod] = Mod):
        self._options = options or LoaderOptions()
        self.mod_class = mod_class

    def parse_options(self, options: Optional[LoaderOptions] = None) -> LoaderOptions:
        """Merge per-call options over the instance options."""
        return self._options.merged(options).resolve()

    # =========================================================================
    # Discovery
    # =========================================================================

    def vanilla(self, data_path: PathLike) -> List[Mod]:
        """Load every built-in mod under the game's ``data`` directory."""
        data_path = Path(data_path)
        manifests = sorted(data_path.glob(f"*/{MANIFEST_NAME}"))
        return [self.mod_class.load_from_directory(m.parent) for m in manifests]

    def added(self, mod_path: PathLike) -> List[Mod]:
        """Load every user-added mod, zipped or unpacked."""
        mod_path = Path(mod_path)
        if not mod_path.is_dir():
            logger.debug(f"No mod directory at {mod_path}")
            return []

        candidates = sorted(
            list(mod_path.glob("*.zip")) +
            [m.parent for m in mod_path.glob(f"*/{MANIFEST_NAME}")]
        )
        mods: List[Mod] = []
        try:
            for candidate in candidates:
                if candidate.suffix == ".zip" and candidate.is_file():
                    mods.append(self.mod_class.load_from_zip(candidate))
                else:
                    mods.append(self.mod_class.load_from_directory(candidate))
        except BaseException:
            cleanup_quietly(mods)
            raise
        return mods

    def all(self, options: Optional[LoaderOptions] = None) -> List[Mod]:
        """
        Find every installed mod: built-in first, then user-added.

        Both searches run concurrently; each must finish before this returns.
        """
        opts = self.parse_options(options)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="mod-discovery") as executor:
            vanilla = executor.submit(
                self.vanilla, opts.data_path) if opts.vanilla and opts.data_path else None
            added = executor.submit(
                self.added, opts.mod_path) if opts.added and opts.mod_path else None

        found: List[Mod] = []
        errors = []
        for label, future in (("built-in", vanilla), ("added", added)):
            if future is None:
                continue
            error = future.exception()
            if error is not None:
                errors.append((label, error))
            else:
                found.extend(future.result())

        if errors:
            cleanup_quietly(found)
            label, error = errors[0]
            logger.error(f"Discovery of {label} mods failed: {error}")
            raise error

        logger.info(f"Found {len(found)} mods")
        return found

    def enabled(self, mods: Optional[Sequence[Mod]] = None,
                options: Optional[LoaderOptions] = None) -> List[Mod]:
        """
        Keep only the mods marked enabled in mod-list.json.

        Searches for all mods when ``mods`` is not given.
        """
        opts = self.parse_options(options)
        if opts.mod_list is None:
            raise ModListError("<unset>", "no mod list path configured")
        names = read_enabled_names(opts.mod_list)
        if mods is None:
            mods = self.all(options)
        return filter_enabled(mods, names)

    def sorted_dependencies(self, mods: Optional[Sequence[Mod]] = None,
                            strict: bool = False) -> List[Mod]:
        """Sort mods so dependencies come first. Searches for all mods if none given."""
        if mods is None:
            mods = self.all()
        return sort_by_dependencies(mods, strict=strict)


# =============================================================================
# Enablement
# =============================================================================

def read_enabled_names(path: PathLike) -> List[str]:
    """Read ``{"mods": [{"name": ..., "enabled": ...}]}`` and return enabled names."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            mod_list = json.load(f)
    except (OSError, ValueError) as e:
        raise ModListError(str(path), str(e))

    entries = mod_list.get("mods") if isinstance(mod_list, dict) else None
    if not isinstance(entries, list):
        raise ModListError(str(path), "expected a 'mods' list")

    return [
        entry["name"] for entry in entries
        if isinstance(entry, dict) and entry.get("enabled") is True and "name" in entry
    ]


def filter_enabled(mods: Iterable[Mod], enabled_names: Iterable[str]) -> List[Mod]:
    """Return the mods whose name is enabled, in their original order."""
    enabled = set(enabled_names)
    return [mod for mod in mods if mod.name in enabled]


# =============================================================================
# Load order
# =============================================================================

def sort_by_dependencies(mods: Sequence[Mod], strict: bool = False) -> List[Mod]:
    """
    Order mods so that each one comes after everything it depends on.

    Breadth-first topological sort over an adjacency matrix where
    ``matrix[i][j]`` means mod i depends on mod j (optional dependencies
    included). Mods nothing depends on seed a FIFO queue; each dequeued mod
    releases its edges and any dependency left without dependents is queued.
    The visit order is reversed at the end.

    Mods in a dependency cycle, and the mods they depend on, never reach the
    queue. They are left out (with a warning), or reported with
    DependencyCycleError when ``strict``.
    """
    mods = list(mods)
    n = len(mods)
    matrix = [[1 if mods[i].depends_on(mods[j]) else 0 for j in range(n)] for i in range(n)]

    # Mods with no incoming dependency edges. Seeded (and released) from the
    # back so that unrelated mods keep their input order once reversed.
    queue = deque(i for i in reversed(range(n)) if all(matrix[j][i] == 0 for j in range(n)))
    visited: List[int] = []

    while queue:
        index = queue.popleft()
        visited.append(index)
        for dep in reversed(range(n)):
            if matrix[index][dep] == 0:
                continue
            matrix[index][dep] = 0
            if all(matrix[i][dep] == 0 for i in range(n)):
                queue.append(dep)

    if len(visited) < n:
        seen = set(visited)
        dropped = [str(mods[i].name) for i in range(n) if i not in seen]
        if strict:
            raise DependencyCycleError(dropped)
        logger.warning(f"Dropping mods unreachable because of a dependency cycle: {', '.join(dropped)}")

    return [mods[i] for i in reversed(visited)]


def cleanup_quietly(mods: Iterable[Mod]) -> None:
    """Clean up mods while another error is already propagating."""
    for mod in mods:
        try:
            mod.cleanup()
        except Exception as e:
            logger.warning(f"Cleanup of {mod.name} failed: {e}")
