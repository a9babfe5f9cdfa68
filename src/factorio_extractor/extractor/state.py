"""
Extraction State

What one extraction run owns: the collected ``data.raw`` table and the
script failures recorded along the way.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class ScriptFailure:
    """A data script that raised during a pass."""
    mod: str
    data_file: str
    message: str

    def __repr__(self):
        return f"ScriptFailure({self.mod}/{self.data_file}: {self.message})"


@dataclass
class ExtractionState:
    """
    Single-writer state for one run.

    ``raw`` holds the engine's ``data.raw`` by reference once collected.
    """
    raw: Any = None
    failures: List[ScriptFailure] = field(default_factory=list)
    scripts_run: int = 0
    scripts_missing: int = 0

    @property
    def error_count(self) -> int:
        return len(self.failures)

    def record_failure(self, mod: str, data_file: str, message: str) -> ScriptFailure:
        failure = ScriptFailure(mod=mod, data_file=data_file, message=message)
        self.failures.append(failure)
        return failure


@dataclass
class ExtractionResult:
    """What ``Extractor.extract()`` hands back."""
    document: Dict[str, Any]
    error_count: int = 0
    failures: List[ScriptFailure] = field(default_factory=list)
    mods: List[str] = field(default_factory=list)  # In load order
    output: Optional[Path] = None

    def __repr__(self):
        return (f"ExtractionResult({len(self.mods)} mods, "
                f"{self.error_count} errors, output={self.output})")
