"""
factorio_extractor - Factorio Mod Data Extractor

Runs the data stage of Factorio (base game plus enabled mods) in an embedded
Lua interpreter and writes the resulting prototypes as a JSON document.
"""

__version__ = "0.1.0"
__author__ = "factorio-extractor contributors"

from factorio_extractor.mods import Mod, ModLoader, Dependency, DependencyType
from factorio_extractor.extractor import Extractor, ExtractionResult
