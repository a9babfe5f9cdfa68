"""
Extraction Pipeline

Builds the Factorio data-stage state from the base game plus enabled mods by:
1. Bootstrapping the Lua engine (core lualib, dataloader.lua, shim)
2. Discovering, filtering and ordering mods
3. Running data.lua, data-updates.lua and data-final-fixes.lua for every
   mod, one pass at a time
4. Collecting ``data.raw`` and normalizing it into the output document
5. Cleaning up every discovered mod, whatever happened before
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from factorio_extractor.config import ExtractorConfig
from factorio_extractor.extractor.normalizer import Normalizer, write_document
from factorio_extractor.extractor.run_log import ExtractionLogger
from factorio_extractor.extractor.state import ExtractionResult, ExtractionState
from factorio_extractor.lua.engine import LupaEngine, ScriptEngine, ScriptError
from factorio_extractor.lua.shim import UTIL_SCRIPT, mods_table
from factorio_extractor.mods.loader import ModLoader
from factorio_extractor.mods.mod import Mod

logger = logging.getLogger(__name__)


PathLike = Union[str, Path]


class BootstrapError(Exception):
    """Raised when the Lua environment cannot be prepared."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Lua bootstrap failed: {reason}")


class CleanupError(Exception):
    """Raised after all cleanups ran when at least one of them failed."""
    def __init__(self, failures: List[Tuple[Mod, BaseException]]):
        self.failures = failures
        names = ", ".join(str(mod.name) for mod, _ in failures)
        super().__init__(f"Cleanup failed for {len(failures)} mods: {names}")


def cleanup_mods(mods: List[Mod], max_workers: int = 4) -> List[Tuple[Mod, BaseException]]:
    """
    Clean up every mod concurrently.

    Every cleanup is attempted even if others fail. Returns the failures.
    """
    if not mods:
        return []

    failures: List[Tuple[Mod, BaseException]] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mod-cleanup") as executor:
        futures = [(mod, executor.submit(mod.cleanup)) for mod in mods]

    for mod, future in futures:
        error = future.exception()
        if error is not None:
            failures.append((mod, error))
    return failures


class Extractor:
    """
    Extracts data from a Factorio installation.

    The engine is a single shared interpreter: passes and mods run strictly
    one after another against it.
    """

    def __init__(
        self,
        game_path: Optional[PathLike] = None,
        output: Optional[PathLike] = None,
        config: Optional[ExtractorConfig] = None,
        loader: Optional[ModLoader] = None,
        engine_factory: Callable[[], ScriptEngine] = LupaEngine,
        run_log: Optional[ExtractionLogger] = None,
    ):
        config = config or ExtractorConfig()
        if game_path is not None:
            config = config.with_overrides(factorio_path=str(game_path))
        if config.factorio_path is None and config.data_path is None:
            raise ValueError("A Factorio path is required")

        self.config = config
        self.output: Optional[Path] = Path(output) if output is not None else None
        self.loader = loader or ModLoader(config.loader_options())
        self.engine_factory = engine_factory
        self.run_log = run_log

        self.engine: Optional[ScriptEngine] = None
        self.state = ExtractionState()
        self._base_path: Optional[str] = None
        self._discovered: List[Mod] = []
        self._mods: List[Mod] = []

    @property
    def game_path(self) -> Optional[Path]:
        return self.config.factorio_path

    @property
    def lualib_path(self) -> Path:
        return self.config.data_path / "core" / "lualib"

    @property
    def mods(self) -> List[Mod]:
        """Enabled mods in load order (after discovery)."""
        return list(self._mods)

    # =========================================================================
    # Run
    # =========================================================================

    def extract(self) -> ExtractionResult:
        """
        Run the whole extraction.

        Script failures are counted and skipped. Bootstrap and mod-list
        failures abort the run. Discovered mods are always cleaned up.
        """
        self.state = ExtractionState()
        self._discovered = []
        self._mods = []
        if self.run_log:
            self.run_log.run_start(str(self.game_path or self.config.data_path))

        try:
            result = self._run()
        except BaseException as e:
            logger.error(f"Extraction failed: {e}")
            if self.run_log:
                self.run_log.run_failed(str(e))
            self._finalize(raise_errors=False)
            raise

        try:
            self._finalize(raise_errors=True)
        except CleanupError as e:
            if self.run_log:
                self.run_log.run_failed(str(e))
            raise

        if self.run_log:
            self.run_log.run_complete(len(result.mods), result.error_count)
        return result

    def _run(self) -> ExtractionResult:
        self.bootstrap()
        mods = self.discover()
        self.run_passes(mods)
        raw = self.collect()
        document = self.normalize(raw)

        output = None
        if self.output is not None:
            output = write_document(document, self.output)
            logger.info(f"Wrote {output}")

        return ExtractionResult(
            document=document,
            error_count=self.state.error_count,
            failures=list(self.state.failures),
            mods=[mod.name for mod in mods],
            output=output,
        )

    # =========================================================================
    # Stages
    # =========================================================================

    def bootstrap(self) -> None:
        """Create the engine, load core's dataloader and the shim."""
        lualib = self.lualib_path
        try:
            self.engine = self.engine_factory()
            self.engine.add_package_path(lualib)
            self._base_path = self.engine.get_package_path()
            self.engine.load_library_file(lualib / "dataloader.lua")
            self.engine.evaluate_source(UTIL_SCRIPT, "=shim")
        except ScriptError as e:
            raise BootstrapError(str(e))
        logger.debug(f"Lua bootstrapped from {lualib}")

    def discover(self) -> List[Mod]:
        """Find all mods, keep the enabled ones and sort them."""
        self._discovered = self.loader.all()
        enabled = self.loader.enabled(self._discovered)
        self._mods = self.loader.sorted_dependencies(
            enabled, strict=self.config.strict_dependencies)

        logger.info(f"Load order: {', '.join(str(m.name) for m in self._mods)}")
        self.engine.set_global("mods", mods_table(self._mods))
        return self._mods

    def run_passes(self, mods: List[Mod]) -> None:
        """Run each data file across all mods, one pass at a time."""
        for data_file in self.config.data_files:
            logger.info(f"Running {data_file}")
            if self.run_log:
                self.run_log.pass_start(data_file, len(mods))
            for mod in mods:
                self.run_script(mod, data_file)
        logger.info(f"Ignoring {self.state.error_count} Lua errors.")

    def run_script(self, mod: Mod, data_file: str) -> bool:
        """
        Run one mod's data file. Returns True if it ran cleanly.

        The search path is reset to the bootstrap baseline plus the mod's own
        folder, and the module cache is cleared: mods share relative module
        names, so a cached ``require`` would hand back another mod's file.
        """
        if mod.directory is None:
            logger.debug(f"{mod.name} has no script directory")
            return False

        engine = self.engine
        engine.set_package_path(self._base_path)
        engine.add_package_path(mod.directory)
        engine.clear_loaded_packages()

        script_path = mod.directory / data_file
        try:
            source = script_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self.state.scripts_missing += 1
            logger.debug(f"{mod.name} has no {data_file}")
            return False
        except (OSError, UnicodeDecodeError) as e:
            self._record_failure(mod, data_file, f"cannot read {script_path}: {e}")
            return False

        try:
            engine.evaluate_source(source, f"@{script_path.as_posix()}")
        except ScriptError as e:
            self._record_failure(mod, data_file, e.message)
            return False

        self.state.scripts_run += 1
        return True

    def _record_failure(self, mod: Mod, data_file: str, message: str) -> None:
        self.state.record_failure(str(mod.name), data_file, message)
        logger.warning(f"Lua error in {mod.name}/{data_file}: {message}")
        logger.info("Continuing.")
        if self.run_log:
            self.run_log.script_error(str(mod.name), data_file, message)

    def collect(self) -> Any:
        """Take ``data.raw`` from the engine by reference."""
        raw = self.engine.get_global_table("data.raw")
        if raw is None:
            logger.warning("No data.raw table after running the data stage")
        self.state.raw = raw
        return raw

    def normalize(self, raw: Any) -> Dict[str, Any]:
        normalizer = Normalizer(
            item_types=self.config.item_types,
            data_types=self.config.data_types,
            convert=self.engine.to_python,
        )
        return normalizer.normalize(raw)

    def _finalize(self, raise_errors: bool) -> None:
        """Clean up every discovered mod exactly once."""
        mods, self._discovered = self._discovered, []
        failures = cleanup_mods(mods, max_workers=self.config.cleanup_workers)
        if not failures:
            return
        for mod, error in failures:
            logger.warning(f"Cleanup of {mod.name} failed: {error}")
        if raise_errors:
            raise CleanupError(failures)
