"""
Pytest configuration and shared fixtures.
"""

import json
import sys
import zipfile
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from factorio_extractor.mods import Mod


# =============================================================================
# LUA SOURCES FOR SYNTHETIC INSTALLS
# =============================================================================

DATALOADER_LUA = """
data = {}
data.raw = {}

function data.extend(self, otherdata)
  for _, e in ipairs(otherdata) do
    if not self.raw[e.type] then
      self.raw[e.type] = {}
    end
    self.raw[e.type][e.name] = e
  end
end
"""

UTIL_LUA = """
util = {}
util.table = {}

function util.table.deepcopy(object)
  local lookup = {}
  local function copy(o)
    if type(o) ~= "table" then
      return o
    elseif lookup[o] then
      return lookup[o]
    end
    local new = {}
    lookup[o] = new
    for k, v in pairs(o) do
      new[copy(k)] = copy(v)
    end
    return setmetatable(new, getmetatable(o))
  end
  return copy(object)
end

function util.by_pixel(x, y)
  return {x / 32, y / 32}
end

return util
"""


# =============================================================================
# BUILDERS
# =============================================================================

def _manifest(name, version, dependencies):
    info = {"name": name, "version": version, "title": name.title()}
    if dependencies is not None:
        info["dependencies"] = dependencies
    return json.dumps(info)


def write_mod(root, name, version="1.0.0", dependencies=None, files=None, folder=None):
    """Write an unpacked mod folder; returns its path."""
    mod_dir = Path(root) / (folder or name)
    mod_dir.mkdir(parents=True, exist_ok=True)
    (mod_dir / "info.json").write_text(_manifest(name, version, dependencies), encoding="utf-8")
    for rel, text in (files or {}).items():
        path = mod_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return mod_dir


def write_zip_mod(root, name, version="1.0.0", dependencies=None, files=None, nested=True):
    """Write a zipped mod, by default with the usual ``name_version/`` folder."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    zip_path = root / f"{name}_{version}.zip"
    prefix = f"{name}_{version}/" if nested else ""
    with zipfile.ZipFile(zip_path, "w") as archive:
        archive.writestr(prefix + "info.json", _manifest(name, version, dependencies))
        for rel, text in (files or {}).items():
            archive.writestr(prefix + rel, text)
    return zip_path


def write_mod_list(mod_root, enabled, disabled=()):
    """Write mod-list.json marking ``enabled`` on and ``disabled`` off."""
    mod_root = Path(mod_root)
    mod_root.mkdir(parents=True, exist_ok=True)
    entries = [{"name": n, "enabled": True} for n in enabled]
    entries += [{"name": n, "enabled": False} for n in disabled]
    path = mod_root / "mod-list.json"
    path.write_text(json.dumps({"mods": entries}), encoding="utf-8")
    return path


def make_mod(name, version="1.0.0", dependencies=None):
    """In-memory mod, no files."""
    manifest = {"name": name, "version": version}
    if dependencies is not None:
        manifest["dependencies"] = dependencies
    return Mod(manifest)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mod_builder():
    """Functions that write mods and mod lists."""
    class Builder:
        mod = staticmethod(write_mod)
        zip = staticmethod(write_zip_mod)
        mod_list = staticmethod(write_mod_list)
        memory = staticmethod(make_mod)
    return Builder


@pytest.fixture
def factorio_dir(tmp_path):
    """
    Minimal Factorio install: core (with lualib) and base under data/, an
    empty mods/ folder.
    """
    root = tmp_path / "factorio"
    write_mod(root / "data", "core", version="0.15.0", files={
        "lualib/dataloader.lua": DATALOADER_LUA,
        "lualib/util.lua": UTIL_LUA,
    })
    write_mod(root / "data", "base", version="0.15.0", dependencies=[])
    (root / "mods").mkdir()
    return root


@pytest.fixture
def unpack_dir(tmp_path, monkeypatch):
    """Redirect temporary directories so unpacked zips can be inspected."""
    import tempfile

    target = tmp_path / "unpack"
    target.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(target))
    return target


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's config file and FACTORIO_* variables out of tests."""
    from factorio_extractor import config

    monkeypatch.setattr(config, "CONFIG_SEARCH_PATHS", [tmp_path / "no-config.yaml"])
    for env_var in config.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setattr(config, "_config", None)
