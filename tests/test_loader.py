"""
Tests for mod discovery, the enabled filter and dependency ordering.
"""

import itertools

import pytest

from factorio_extractor.mods import (
    DependencyCycleError,
    LoaderOptions,
    ManifestError,
    ModListError,
    ModLoader,
    filter_enabled,
    read_enabled_names,
    sort_by_dependencies,
)


def names(mods):
    return [m.name for m in mods]


def assert_dependencies_first(ordered):
    position = {m.name: i for i, m in enumerate(ordered)}
    for mod in ordered:
        for other in ordered:
            if mod is not other and mod.depends_on(other):
                assert position[other.name] < position[mod.name], \
                    f"{other.name} must load before {mod.name}"


class TestDiscovery:
    """Test finding built-in and added mods."""

    def test_vanilla(self, factorio_dir):
        """Built-in mods come from data/*/info.json."""
        mods = ModLoader().vanilla(factorio_dir / "data")
        assert names(mods) == ["base", "core"]
        assert all(m.archive is None for m in mods)

    def test_added_mixed(self, factorio_dir, mod_builder, unpack_dir):
        """Added mods include zips and unpacked folders."""
        mods_dir = factorio_dir / "mods"
        mod_builder.zip(mods_dir, "alpha")
        mod_builder.mod(mods_dir, "beta")
        mod_builder.mod_list(mods_dir, ["alpha", "beta"])

        mods = ModLoader().added(mods_dir)
        try:
            assert sorted(names(mods)) == ["alpha", "beta"]
        finally:
            for mod in mods:
                mod.cleanup()

    def test_added_missing_dir(self, tmp_path):
        """A missing mods folder yields no mods."""
        assert ModLoader().added(tmp_path / "nope") == []

    def test_added_bad_zip_cleans_up(self, factorio_dir, mod_builder, unpack_dir):
        """A bad archive cleans up mods already unpacked."""
        mods_dir = factorio_dir / "mods"
        mod_builder.zip(mods_dir, "alpha")
        (mods_dir / "zz_broken.zip").write_bytes(b"broken")

        with pytest.raises(ManifestError):
            ModLoader().added(mods_dir)
        assert not list(unpack_dir.iterdir())

    def test_all_vanilla_first(self, factorio_dir, mod_builder, unpack_dir):
        """all() returns built-in mods before added ones."""
        mod_builder.zip(factorio_dir / "mods", "alpha")
        loader = ModLoader(LoaderOptions(factorio_path=factorio_dir))
        mods = loader.all()
        try:
            assert names(mods) == ["base", "core", "alpha"]
        finally:
            for mod in mods:
                mod.cleanup()

    def test_all_respects_flags(self, factorio_dir, mod_builder):
        """vanilla/added switches skip a source."""
        mod_builder.mod(factorio_dir / "mods", "beta")
        loader = ModLoader(LoaderOptions(factorio_path=factorio_dir))
        assert names(loader.all(LoaderOptions(vanilla=False))) == ["beta"]
        assert names(loader.all(LoaderOptions(added=False))) == ["base", "core"]

    def test_all_restores_default_flag(self, factorio_dir, mod_builder):
        """Per-call options can switch a source back on."""
        mod_builder.mod(factorio_dir / "mods", "beta")
        loader = ModLoader(LoaderOptions(factorio_path=factorio_dir, vanilla=False))
        assert names(loader.all()) == ["beta"]
        assert names(loader.all(LoaderOptions(vanilla=True))) == ["base", "core", "beta"]

    def test_options_resolve(self, tmp_path):
        """Unset paths derive from the Factorio path."""
        opts = LoaderOptions(factorio_path=tmp_path).resolve()
        assert opts.data_path == tmp_path / "data"
        assert opts.mod_path == tmp_path / "mods"
        assert opts.mod_list == tmp_path / "mods" / "mod-list.json"
        assert opts.vanilla is True and opts.added is True

    def test_options_merge(self, tmp_path):
        """Per-call options override instance options."""
        base = LoaderOptions(factorio_path=tmp_path)
        merged = base.merged(LoaderOptions(vanilla=False))
        assert merged.factorio_path == tmp_path
        assert merged.vanilla is False
        assert merged.added is None

        restored = LoaderOptions(factorio_path=tmp_path, vanilla=False).merged(
            LoaderOptions(vanilla=True))
        assert restored.vanilla is True
        assert restored.factorio_path == tmp_path


class TestEnabled:
    """Test the mod-list.json filter."""

    def test_read_enabled_names(self, tmp_path, mod_builder):
        """Only entries with enabled == true count."""
        path = mod_builder.mod_list(tmp_path, ["base", "alpha"], disabled=["beta"])
        assert read_enabled_names(path) == ["base", "alpha"]

    def test_enabled_must_be_true(self, tmp_path):
        """Truthy values other than true do not enable."""
        path = tmp_path / "mod-list.json"
        path.write_text('{"mods": [{"name": "a", "enabled": "true"}, {"name": "b", "enabled": true}]}',
                        encoding="utf-8")
        assert read_enabled_names(path) == ["b"]

    def test_filter_keeps_order(self, mod_builder):
        """Filtering keeps the input order."""
        mods = [mod_builder.memory(n) for n in ("c", "a", "b")]
        assert names(filter_enabled(mods, ["b", "c"])) == ["c", "b"]

    def test_missing_list(self, tmp_path):
        """An unreadable list is fatal."""
        with pytest.raises(ModListError):
            read_enabled_names(tmp_path / "mod-list.json")

    def test_malformed_list(self, tmp_path):
        """A list without 'mods' is fatal."""
        path = tmp_path / "mod-list.json"
        path.write_text('{"other": []}', encoding="utf-8")
        with pytest.raises(ModListError):
            read_enabled_names(path)

    def test_loader_enabled(self, factorio_dir, mod_builder):
        """ModLoader.enabled reads the configured list."""
        mods_dir = factorio_dir / "mods"
        mod_builder.mod(mods_dir, "alpha")
        mod_builder.mod(mods_dir, "beta")
        mod_builder.mod_list(mods_dir, ["base", "core", "beta"], disabled=["alpha"])
        loader = ModLoader(LoaderOptions(factorio_path=factorio_dir))
        assert names(loader.enabled()) == ["base", "core", "beta"]


class TestSortByDependencies:
    """Test the load order."""

    def test_empty(self):
        """No mods, no order."""
        assert sort_by_dependencies([]) == []

    def test_single(self, mod_builder):
        """One mod is its own order."""
        mod = mod_builder.memory("solo")
        assert sort_by_dependencies([mod]) == [mod]

    def test_independent_mods_keep_input_order(self, mod_builder):
        """Mods without relations stay in input order."""
        mods = [mod_builder.memory(n) for n in ("x", "a", "m")]
        assert names(sort_by_dependencies(mods)) == ["x", "a", "m"]

    def test_chain_every_permutation(self, mod_builder):
        """A chain sorts the same from any input order."""
        chain = [
            mod_builder.memory("core", "0.15.0"),
            mod_builder.memory("base", "0.15.0", dependencies=[]),
            mod_builder.memory("alpha", dependencies=["base >= 0.15.0"]),
            mod_builder.memory("beta", dependencies=["alpha"]),
        ]
        for perm in itertools.permutations(chain):
            assert names(sort_by_dependencies(perm)) == ["core", "base", "alpha", "beta"]

    def test_parallel_chains(self, mod_builder):
        """Two chains interleave but each stays ordered."""
        mods = [
            mod_builder.memory("a1"),
            mod_builder.memory("a2", dependencies=["a1"]),
            mod_builder.memory("b1"),
            mod_builder.memory("b2", dependencies=["b1"]),
            mod_builder.memory("b3", dependencies=["b2", "a1"]),
        ]
        for perm in itertools.permutations(mods):
            ordered = sort_by_dependencies(perm)
            assert sorted(names(ordered)) == ["a1", "a2", "b1", "b2", "b3"]
            assert_dependencies_first(ordered)

    def test_diamond(self, mod_builder):
        """Shared dependencies load before both dependents."""
        mods = [
            mod_builder.memory("top", dependencies=["left", "right"]),
            mod_builder.memory("left", dependencies=["bottom"]),
            mod_builder.memory("right", dependencies=["bottom"]),
            mod_builder.memory("bottom"),
        ]
        ordered = sort_by_dependencies(mods)
        assert ordered[0].name == "bottom"
        assert ordered[-1].name == "top"
        assert_dependencies_first(ordered)

    def test_optional_dependency_orders(self, mod_builder):
        """Optional dependencies that are present still order."""
        mods = [
            mod_builder.memory("user", dependencies=["? lib"]),
            mod_builder.memory("lib"),
        ]
        assert names(sort_by_dependencies(mods)) == ["lib", "user"]

    def test_missing_dependency_ignored(self, mod_builder):
        """Dependencies on absent mods add no edge."""
        mods = [mod_builder.memory("user", dependencies=["ghost >= 1.0"])]
        assert names(sort_by_dependencies(mods)) == ["user"]

    def test_unsatisfied_version_adds_no_edge(self, mod_builder):
        """A present mod with the wrong version is not a dependency."""
        mods = [
            mod_builder.memory("user", dependencies=["lib >= 2.0.0"]),
            mod_builder.memory("lib", "1.0.0"),
        ]
        assert names(sort_by_dependencies(mods)) == ["user", "lib"]

    def test_cycle_dropped(self, mod_builder, caplog):
        """Mods in a cycle are left out with a warning."""
        mods = [
            mod_builder.memory("free"),
            mod_builder.memory("a", dependencies=["b"]),
            mod_builder.memory("b", dependencies=["a"]),
        ]
        with caplog.at_level("WARNING"):
            ordered = sort_by_dependencies(mods)
        assert names(ordered) == ["free"]
        assert "a, b" in caplog.text

    def test_cycle_drops_its_dependencies(self, mod_builder, caplog):
        """Mods only reachable through a cycle are dropped with it."""
        mods = [
            mod_builder.memory("a", dependencies=["b", "c"]),
            mod_builder.memory("b", dependencies=["a"]),
            mod_builder.memory("c"),
            mod_builder.memory("user", dependencies=["a"]),
        ]
        with caplog.at_level("WARNING"):
            ordered = sort_by_dependencies(mods)
        assert names(ordered) == ["user"]
        assert "unreachable because of a dependency cycle: a, b, c" in caplog.text

    def test_cycle_strict(self, mod_builder):
        """Strict sorting reports the cycle."""
        mods = [
            mod_builder.memory("a", dependencies=["b"]),
            mod_builder.memory("b", dependencies=["a"]),
        ]
        with pytest.raises(DependencyCycleError) as exc:
            sort_by_dependencies(mods, strict=True)
        assert exc.value.names == ["a", "b"]

    def test_does_not_copy_mods(self, mod_builder):
        """The same mod objects are returned."""
        mods = [mod_builder.memory("a"), mod_builder.memory("b", dependencies=["a"])]
        ordered = sort_by_dependencies(mods)
        assert ordered[0] is mods[0]
        assert ordered[1] is mods[1]
