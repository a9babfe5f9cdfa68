"""Shared names used across the extractor."""

# Data-stage scripts, run as three passes over all mods in this order
DATA_FILES = ("data.lua", "data-updates.lua", "data-final-fixes.lua")

# Item categories, stored under document["items"][category]
ITEM_TYPES = (
    "item", "fluid", "capsule", "module", "ammo", "gun", "armor", "blueprint",
    "deconstruction-item", "mining-tool", "repair-tool", "tool",
)

# Other categories, stored at the top level under a plural camel-case key
DATA_TYPES = (
    "recipe", "assembling-machine", "furnace", "mining-drill", "resource", "module",
)

DEFAULT_OUTPUT = "factorio-data.json"
