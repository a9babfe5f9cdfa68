"""
Data-stage environment shim.

Factorio's data scripts expect a few globals the game itself provides. This
stubs the ones needed by core/lualib and most mods when the scripts run in a
bare Lua interpreter.
"""

from typing import Dict, Iterable

UTIL_SCRIPT = """
function module(modname, ...)
end

require "util"
util = util or {}
util.table = util.table or {}
util.table.deepcopy = util.table.deepcopy or table.deepcopy
util.multiplystripes = util.multiplystripes or multiplystripes
util.by_pixel = util.by_pixel or by_pixel
util.format_number = util.format_number or format_number
util.increment = util.increment or increment

function log(...)
end

defines = {}
defines.difficulty_settings = {}
defines.difficulty_settings.recipe_difficulty = {}
defines.difficulty_settings.technology_difficulty = {}
defines.difficulty_settings.recipe_difficulty.normal = 1
defines.difficulty_settings.technology_difficulty.normal = 1
defines.direction = {}
defines.direction.north = 1
defines.direction.east = 2
defines.direction.south = 3
defines.direction.west = 4

settings = settings or {}
settings.startup = settings.startup or {}

data.raw["gui-style"] = {}
data.raw["gui-style"]["default"] = {}
"""


def mods_table(mods: Iterable) -> Dict[str, str]:
    """The ``mods`` global: active mod name -> version string."""
    return {mod.name: mod.version for mod in mods if mod.name}
