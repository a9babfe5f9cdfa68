"""
Output Normalizer

Projects the raw ``data.raw`` table into the output document, dropping fields
whose value is implied by where the entry sits:

- ``name`` equal to the entry's own key
- ``type`` (and for items ``subgroup``) equal to the category name
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from factorio_extractor.constants import DATA_TYPES, ITEM_TYPES

logger = logging.getLogger(__name__)


class _Absent:
    def __repr__(self):
        return "ABSENT"


# Returned by a filter to remove the field
ABSENT = _Absent()


@dataclass(frozen=True)
class Equal:
    """Remove the field when it equals ``value``."""
    value: Any

    def apply(self, current: Any) -> Any:
        return ABSENT if current == self.value else current


@dataclass(frozen=True)
class Transform:
    """Replace the field with ``fn(current)``; ABSENT removes it."""
    fn: Callable[[Any], Any]

    def apply(self, current: Any) -> Any:
        return self.fn(current)


FieldFilter = Union[Equal, Transform]


def _is_table(value: Any) -> bool:
    # dicts and Lua tables both define items() on their type
    return callable(getattr(type(value), "items", None))


def _items(table: Any):
    return table.items() if _is_table(table) else ()


def filter_fields(
    entries: Any,
    filters: Mapping[str, FieldFilter],
    convert: Optional[Callable[[Any], Any]] = None,
) -> Dict[str, Dict[str, Any]]:
    """
    Filter every entry of a category bucket.

    Args:
        entries: ``{key: {field: value}}``; None is treated as empty,
            entries that are not tables are skipped
        filters: per-field filters
        convert: applied to each kept value (e.g. Lua table -> dict)

    Returns:
        New ``{key: {field: value}}`` without the redundant fields
    """
    out: Dict[str, Dict[str, Any]] = {}
    if entries is not None and not _is_table(entries):
        logger.debug(f"Ignoring category that is not a table: {entries!r}")
    for key, entry in _items(entries):
        if not _is_table(entry):
            logger.debug(f"Skipping {key!r}: not a table")
            continue
        kept: Dict[str, Any] = {}
        for field_name, value in _items(entry):
            if field_name == "name" and value == key:
                continue
            field_filter = filters.get(field_name)
            if field_filter is not None:
                value = field_filter.apply(value)
                if value is ABSENT:
                    continue
            kept[str(field_name)] = convert(value) if convert else value
        out[str(key)] = kept
    return out


def camel_case(text: str) -> str:
    """``assembling-machine`` -> ``assemblingMachine``."""
    return re.sub(r"[-_]([a-zA-Z])", lambda m: m.group(1).upper(), text)


def plural_key(category: str) -> str:
    """Top-level document key for a data category."""
    return camel_case(category) + "s"


class Normalizer:
    """Builds the output document from a raw table."""

    def __init__(self, item_types: Sequence[str] = ITEM_TYPES,
                 data_types: Sequence[str] = DATA_TYPES,
                 convert: Optional[Callable[[Any], Any]] = None):
        self.item_types = list(item_types)
        self.data_types = list(data_types)
        self.convert = convert

    def normalize(self, raw: Any) -> Dict[str, Any]:
        document: Dict[str, Any] = {"items": {}}
        for category in self.item_types:
            filters = {"type": Equal(category), "subgroup": Equal(category)}
            document["items"][category] = filter_fields(
                self._bucket(raw, category), filters, self.convert)
        for category in self.data_types:
            document[plural_key(category)] = filter_fields(
                self._bucket(raw, category), {"type": Equal(category)}, self.convert)
        return document

    @staticmethod
    def _bucket(raw: Any, category: str) -> Any:
        if not _is_table(raw):
            return None
        if isinstance(raw, Mapping):
            return raw.get(category)
        # Lua tables yield nil (None) for missing keys
        return raw[category]


def write_document(document: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write the document as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, ensure_ascii=False)
    return path
