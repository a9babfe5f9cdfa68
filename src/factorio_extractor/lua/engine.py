"""
Lua Script Engine

The extraction pipeline only talks to the ScriptEngine interface below.
LupaEngine implements it on an embedded Lua interpreter (lupa).

Every script runs in the same interpreter and mutates the same globals, so an
engine must never be shared between threads.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

import lupa
from lupa import LuaRuntime

logger = logging.getLogger(__name__)


PathLike = Union[str, Path]

# Tables nested deeper than this are not converted
MAX_TABLE_DEPTH = 64


class ScriptError(Exception):
    """Raised when a Lua chunk fails to compile or raises at runtime."""
    def __init__(self, chunk: str, message: str):
        self.chunk = chunk
        self.message = message
        super().__init__(f"{chunk}: {message}")


class ScriptEngine(ABC):
    """What the pipeline needs from a script interpreter."""

    @abstractmethod
    def load_library_file(self, path: PathLike) -> None:
        """Execute a Lua file as library code."""

    @abstractmethod
    def evaluate_source(self, text: str, chunk_name: Optional[str] = None) -> Any:
        """Compile and run a chunk of Lua source."""

    @abstractmethod
    def set_package_path(self, value: str) -> None:
        """Replace ``package.path``."""

    @abstractmethod
    def get_package_path(self) -> str:
        """Return the current ``package.path``."""

    @abstractmethod
    def get_global_table(self, name: str) -> Any:
        """Return a global table (dotted names allowed) by reference, or None."""

    @abstractmethod
    def set_global(self, name: str, value: Any) -> None:
        """Set a global, converting dicts and lists to tables."""

    @abstractmethod
    def clear_loaded_packages(self) -> None:
        """Forget cached modules so the next ``require`` resolves again."""

    def add_package_path(self, directory: PathLike) -> None:
        """Append ``directory/?.lua`` to the module search path."""
        pattern = f"{Path(directory).as_posix()}/?.lua"
        current = self.get_package_path()
        self.set_package_path(f"{current};{pattern}" if current else pattern)

    def to_python(self, value: Any) -> Any:
        """Convert an engine value to plain Python data."""
        return value


_RUN_CHUNK = """
function(source, name)
  local chunk, err = (loadstring or load)(source, name)
  if not chunk then
    error(err, 0)
  end
  return chunk()
end
"""


class LupaEngine(ScriptEngine):
    """ScriptEngine backed by a lupa LuaRuntime."""

    def __init__(self, runtime: Optional[LuaRuntime] = None):
        self._lua = runtime or LuaRuntime(unpack_returned_tuples=True)
        self._globals = self._lua.globals()
        self._run_chunk = self._lua.eval(_RUN_CHUNK)
        # Standard libraries stay cached when the module cache is cleared
        self._builtin_modules = set(self._globals.package.loaded.keys())

    @property
    def runtime(self) -> LuaRuntime:
        return self._lua

    def load_library_file(self, path: PathLike) -> None:
        path = Path(path)
        try:
            self._globals.dofile(str(path))
        except lupa.LuaError as e:
            raise ScriptError(str(path), _lua_message(e))

    def evaluate_source(self, text: str, chunk_name: Optional[str] = None) -> Any:
        chunk = chunk_name or "=(source)"
        if text.startswith("\ufeff"):
            text = text[1:]
        try:
            return self._run_chunk(text, chunk)
        except lupa.LuaError as e:
            raise ScriptError(chunk.lstrip("@="), _lua_message(e))

    def set_package_path(self, value: str) -> None:
        self._globals.package.path = value

    def get_package_path(self) -> str:
        return self._globals.package.path

    def get_global_table(self, name: str) -> Any:
        value = self._globals
        for part in name.split("."):
            if value is None or lupa.lua_type(value) != "table":
                return None
            value = value[part]
        return value

    def set_global(self, name: str, value: Any) -> None:
        self._globals[name] = self._to_lua(value)

    def clear_loaded_packages(self) -> None:
        loaded = self._globals.package.loaded
        for key in list(loaded.keys()):
            if key not in self._builtin_modules:
                loaded[key] = None

    def to_python(self, value: Any) -> Any:
        # Lua table keyed by the tables on the current conversion path
        return self._convert(value, 0, self._lua.table())

    def _convert(self, value: Any, depth: int, path: Any) -> Any:
        kind = lupa.lua_type(value)
        if kind is None:
            return value
        if kind != "table":
            # functions, userdata and coroutines have no data representation
            return None
        if path[value]:
            logger.debug("Dropping reference to a table being converted")
            return None
        if depth >= MAX_TABLE_DEPTH:
            logger.debug("Table nesting too deep, truncating")
            return None

        items = []
        path[value] = True
        try:
            for key, item in value.items():
                converted = self._convert(item, depth + 1, path)
                if converted is None and lupa.lua_type(item) is not None:
                    continue
                items.append((key, converted))
        finally:
            path[value] = None

        keys = [k for k, _ in items]
        if keys and all(isinstance(k, int) and not isinstance(k, bool) for k in keys) \
                and sorted(keys) == list(range(1, len(keys) + 1)):
            return [v for _, v in sorted(items, key=lambda kv: kv[0])]
        return {_key_text(k): v for k, v in items}

    def _to_lua(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._lua.table_from({k: self._to_lua(v) for k, v in value.items()})
        if isinstance(value, (list, tuple)):
            return self._lua.table_from([self._to_lua(v) for v in value])
        return value


def _key_text(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="replace")
    return str(key)


def _lua_message(error: Exception) -> str:
    message = error.args[0] if error.args else str(error)
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return str(message)
