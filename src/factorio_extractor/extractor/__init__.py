"""
factorio_extractor.extractor - Data-stage Pipeline

1. Bootstrap the Lua environment
2. Run the three data passes over all enabled mods
3. Normalize ``data.raw`` into the output document
"""

from .state import ScriptFailure, ExtractionState, ExtractionResult
from .normalizer import (
    ABSENT, Equal, Transform, FieldFilter, Normalizer,
    filter_fields, camel_case, plural_key, write_document,
)
from .run_log import ExtractionLogger, LogEntry, read_log_entries
from .pipeline import Extractor, BootstrapError, CleanupError, cleanup_mods

__all__ = [
    # State
    "ScriptFailure",
    "ExtractionState",
    "ExtractionResult",
    # Normalizer
    "ABSENT",
    "Equal",
    "Transform",
    "FieldFilter",
    "Normalizer",
    "filter_fields",
    "camel_case",
    "plural_key",
    "write_document",
    # Run log
    "ExtractionLogger",
    "LogEntry",
    "read_log_entries",
    # Pipeline
    "Extractor",
    "BootstrapError",
    "CleanupError",
    "cleanup_mods",
]
