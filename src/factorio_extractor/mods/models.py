"""
Version and Dependency Models

Dotted four-component versions and the dependency strings found in a mod's
info.json, e.g. ``"base >= 0.15.0"`` or ``"? bobplates > 0.14"``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Tuple, Union


DEFAULT_VERSION = "0.0.0.0"

Version = Tuple[int, ...]
VersionLike = Union[str, Sequence[int], None]


def parse_version(value: VersionLike) -> Version:
    """
    Parse a dotted version into a tuple of ints.

    ``None`` and empty strings become DEFAULT_VERSION. Blank components
    (``"1..2"``) count as 0.
    """
    if value is None:
        value = DEFAULT_VERSION
    if isinstance(value, str):
        text = value.strip() or DEFAULT_VERSION
        parts = []
        for part in text.split("."):
            part = part.strip()
            if not part:
                parts.append(0)
            elif part.isdigit():
                parts.append(int(part))
            else:
                raise ValueError(f"Invalid version component {part!r} in {value!r}")
        return tuple(parts)
    return tuple(int(p) for p in value)


def format_version(version: VersionLike) -> str:
    """Render a version as dot-separated text."""
    return ".".join(str(p) for p in parse_version(version))


def version_greater(version: VersionLike, test: VersionLike) -> bool:
    """
    Return True if ``version`` is greater than ``test``.

    Only the first ``len(test)`` components are walked. An index past the end
    of ``version`` decides nothing, so ``version_greater("5", "10.0.0.0")`` and
    ``version_greater("10.0.0.0", "5")`` disagree only where the shorter side
    runs out.
    """
    a = parse_version(version)
    b = parse_version(test)
    for i in range(len(b)):
        if i >= len(a):
            continue
        if a[i] > b[i]:
            return True
        if a[i] < b[i]:
            return False
    return False


class DependencyType(Enum):
    """Comparator between a dependency and the version it names."""

    EQUAL = "="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="

    # No comparator given - any version of the named mod will do
    NONE = ""

    @classmethod
    def from_symbol(cls, symbol: Optional[str]) -> "DependencyType":
        if not symbol:
            return cls.NONE
        for member in cls:
            if member.value == symbol:
                return member
        raise ValueError(f"Unknown dependency comparator: {symbol!r}")


# [? | (?)] name [comparator version]
_DEPENDENCY_RE = re.compile(
    r"""^\s*
    (?P<optional>\(\?\)|\?)?\s*
    (?P<name>[^<>=?(\s][^<>=]*?)\s*
    (?:(?P<op>>=|=|>)\s*(?P<version>[0-9][0-9.]*)?)?
    \s*$""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class Dependency:
    """A single parsed entry from a manifest's ``dependencies`` list."""
    name: str
    type: DependencyType = DependencyType.NONE
    version: Version = (0, 0, 0, 0)
    optional: bool = False

    @classmethod
    def parse(cls, text: str) -> "Dependency":
        """Parse the compact textual form used in info.json."""
        match = _DEPENDENCY_RE.match(text or "")
        if not match:
            raise ValueError(f"Invalid dependency: {text!r}")
        return cls(
            name=match.group("name").strip(),
            type=DependencyType.from_symbol(match.group("op")),
            version=parse_version(match.group("version")),
            optional=match.group("optional") is not None,
        )

    @classmethod
    def from_value(cls, value: Any) -> "Dependency":
        """Build a Dependency from a string, a mapping, or another Dependency."""
        if isinstance(value, Dependency):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, dict):
            kind = value.get("type", value.get("constraint"))
            if isinstance(kind, DependencyType):
                dep_type = kind
            else:
                dep_type = DependencyType.from_symbol(kind)
            return cls(
                name=value["name"],
                type=dep_type,
                version=parse_version(value.get("version")),
                optional=bool(value.get("optional", False)),
            )
        raise TypeError(f"Cannot build a dependency from {type(value).__name__}")

    def __str__(self):
        prefix = "? " if self.optional else ""
        if self.type == DependencyType.NONE:
            return f"{prefix}{self.name}"
        return f"{prefix}{self.name} {self.type.value} {format_version(self.version)}"
