import json
from pathlib import Path

import pytest

from uimap.config import Settings
from uimap.indexer.service import IndexerService
from uimap.registry.identifier_registry import (
    IdentifierRegistry,
    RegistryStore,
    build_identifier_registry,
    family_prefix,
    load_registry,
    save_registry,
)


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("card.7", "card."),
        ("row_12", "row_"),
        ("tab-3", "tab-"),
        ("home.title", None),
        ("7", None),
        (".7", None),
    ],
)
def test_family_prefix(identifier, expected):
    assert family_prefix(identifier) == expected


def test_build_registry_splits_exact_and_patterns(sample_index):
    registry = build_identifier_registry(sample_index)

    submit = registry.lookup_exact("submitButton")
    assert len(submit) == 1
    assert (submit[0].file, submit[0].line) == ("Views/Form.swift", 42)
    assert submit[0].owner_type == "FormViewController"
    assert [entry.identifier for entry in registry.patterns] == ["row.\\(index)"]
    assert registry.summary["exactIdentifiers"] == 3
    assert registry.summary["patternIdentifiers"] == 1
    assert registry.fingerprint


def test_lookup_prefix_and_family(sample_index):
    registry = build_identifier_registry(sample_index, fingerprint="")

    assert [entry.prefix for entry in registry.lookup_prefix("row.3")] == ["row."]
    assert registry.lookup_prefix("rows") == []
    family = registry.lookup_family("card.7")
    assert [entry.identifier for entry in family] == ["card.0", "card.1"]
    assert registry.lookup_family("card.0")[0].identifier == "card.1"
    assert registry.lookup_exact("missing") == []


def test_save_and_load_round_trip(sample_index, tmp_path: Path):
    registry = build_identifier_registry(sample_index)
    path = tmp_path / "state" / "identifier-registry.json"

    save_registry(registry, path)
    loaded = load_registry(path, Path(sample_index.root))

    assert loaded is not None
    assert loaded.fingerprint == registry.fingerprint
    assert loaded.lookup_exact("card.1") == registry.lookup_exact("card.1")
    assert json.loads(path.read_text())["schemaVersion"] == "1.0.0"
    assert not path.with_suffix(".json.tmp").exists()


def test_load_registry_rejects_other_root(sample_index, tmp_path: Path):
    path = tmp_path / "registry.json"
    save_registry(build_identifier_registry(sample_index), path)

    assert load_registry(path, tmp_path / "elsewhere") is None


def test_load_registry_tolerates_garbage(tmp_path: Path):
    path = tmp_path / "registry.json"
    path.write_text("{broken")

    assert load_registry(path, tmp_path) is None
    assert load_registry(tmp_path / "absent.json", tmp_path) is None


def test_registry_from_dict_defaults():
    registry = IdentifierRegistry.from_dict({})

    assert registry.exact == {}
    assert registry.patterns == []


class TestRegistryStore:
    """Reuse and rebuild behaviour of the persisted registry."""

    def _ensure(self, store: RegistryStore, settings: Settings, **kwargs):
        return store.ensure(lambda: IndexerService(settings).build_index(), **kwargs)

    def test_first_run_builds_and_saves(self, sample_settings: Settings):
        store = RegistryStore(sample_settings)

        self._ensure(store, sample_settings)

        assert store.path.exists()
        stats = store.get_stats()
        assert stats["miss_count"] == 1
        assert stats["last_reason"] == "no usable registry"

    def test_unchanged_sources_reuse_registry(self, sample_settings: Settings):
        first = self._ensure(RegistryStore(sample_settings), sample_settings)
        store = RegistryStore(sample_settings)

        def fail():
            raise AssertionError("index should not be rebuilt")

        reused = store.ensure(fail)

        assert reused.fingerprint == first.fingerprint
        assert store.get_stats()["hit_count"] == 1
        assert store.get_stats()["hit_rate"] == 1.0

    def test_changed_source_triggers_rebuild(self, sample_settings: Settings, sample_root: Path):
        store = RegistryStore(sample_settings)
        self._ensure(store, sample_settings)

        (sample_root / "Views" / "Extra.swift").write_text(
            'let v = UIView()\nv.accessibilityIdentifier = "extra.view"\n'
        )
        registry = self._ensure(store, sample_settings)

        assert store.get_stats()["last_reason"] == "sources changed"
        assert registry.lookup_exact("extra.view")

    def test_rebuild_requested(self, sample_settings: Settings):
        store = RegistryStore(sample_settings)
        self._ensure(store, sample_settings)
        self._ensure(store, sample_settings, rebuild=True)

        stats = store.get_stats()
        assert stats["miss_count"] == 2
        assert stats["last_reason"] == "rebuild requested"

    def test_registry_path_setting(self, sample_settings: Settings, tmp_path: Path):
        custom = tmp_path / "custom" / "registry.json"
        settings = sample_settings.model_copy(update={"registry_path": custom})
        store = RegistryStore(settings)

        self._ensure(store, settings)

        assert custom.exists()
        assert store.get_stats()["path"] == str(custom)
