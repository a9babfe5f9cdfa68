"""
factorio_extractor.lua - Embedded Lua interpreter for data-stage scripts
"""

from .engine import ScriptEngine, LupaEngine, ScriptError
from .shim import UTIL_SCRIPT, mods_table

__all__ = [
    "ScriptEngine",
    "LupaEngine",
    "ScriptError",
    "UTIL_SCRIPT",
    "mods_table",
]
