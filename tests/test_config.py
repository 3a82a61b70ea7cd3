from pathlib import Path

import pytest

from uimap.config import (
    Settings,
    load_mapping_config,
    load_settings,
    merge_config_data,
)
from uimap.errors import ConfigError


def test_settings_defaults(tmp_path: Path):
    settings = Settings(project_root=tmp_path, tool_root=tmp_path / "tool")

    assert settings.resolved_registry_path == tmp_path.resolve() / ".uimap" / "identifier-registry.json"
    assert settings.resolved_output_dir == (tmp_path / "tool").resolve() / "artifacts"
    assert settings.source_extensions == [".swift"]
    assert "DerivedData" in settings.ignored_dirs


def test_load_settings_from_yaml_with_overrides(tmp_path: Path):
    config_path = tmp_path / "uimap.yml"
    config_path.write_text(
        "project_root: ./app\n"
        "max_alternatives: 2\n"
        "signal_weights:\n"
        "  label_exact: 0.45\n"
    )

    settings = load_settings(config_path, project_root=tmp_path / "other", output_dir=None)

    assert settings.project_root == (tmp_path / "other").resolve()
    assert settings.max_alternatives == 2
    assert settings.signal_weights == {"label_exact": 0.45}
    assert settings.output_dir is None


def test_load_settings_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "absent.yml")


def test_load_settings_rejects_invalid_values(tmp_path: Path):
    config_path = tmp_path / "uimap.yml"
    config_path.write_text("max_alternatives: many\n")

    with pytest.raises(ConfigError) as excinfo:
        load_settings(config_path)
    assert excinfo.value.key == "max_alternatives"


def test_load_settings_rejects_non_mapping(tmp_path: Path):
    config_path = tmp_path / "uimap.yml"
    config_path.write_text("- one\n- two\n")

    with pytest.raises(ConfigError):
        load_settings(config_path)


@pytest.mark.parametrize(
    "weights",
    [
        {"manual_override": 0.3},
        {"identifier_exact": 1.7},
        {"label_exact": -0.1},
        {"identifer_exact": 0.8},
    ],
)
def test_load_settings_rejects_bad_signal_weights(weights):
    with pytest.raises(ConfigError) as excinfo:
        load_settings(None, signal_weights=weights)
    assert excinfo.value.key == "signal_weights"


def test_signal_weights_yaml_rejects_unknown_signal(tmp_path: Path):
    config_path = tmp_path / "uimap.yml"
    config_path.write_text("signal_weights:\n  manual_override: 0.3\n")

    with pytest.raises(ConfigError, match="Invalid settings"):
        load_settings(config_path)


def test_later_config_wins_per_pattern():
    config = merge_config_data(
        [
            (
                "tool",
                {
                    "overrides": [
                        {"pattern": "home.title", "file": "A.swift", "line": 1},
                        {"pattern": "home.footer", "file": "B.swift"},
                    ],
                    "modulePriority": ["Core"],
                    "criticalMappings": [{"pattern": "home.title", "minConfidence": 0.9}],
                },
            ),
            (
                "project",
                {
                    "overrides": [{"pattern": "home.title", "file": "C.swift", "line": 7}],
                },
            ),
        ]
    )

    assert config.overrides["home.title"].file == "C.swift"
    assert config.overrides["home.title"].source == "project"
    assert config.overrides["home.footer"].line == 1
    assert config.module_priority == ["Core"]
    assert config.critical_mappings["home.title"].min_confidence == 0.9
    # merge position follows the last writer
    assert [rule.pattern for rule in config.override_rules()] == ["home.footer", "home.title"]


def test_module_priority_replaced_not_merged():
    config = merge_config_data(
        [
            ("tool", {"modulePriority": ["Core", "UI"]}),
            ("project", {"modulePriority": ["Feature"]}),
            ("local", {}),
        ]
    )

    assert config.module_priority == ["Feature"]
    assert config.sources == ["tool", "project", "local"]


def test_invalid_entry_reports_key():
    with pytest.raises(ConfigError) as excinfo:
        merge_config_data([("tool", {"overrides": [{"pattern": "x"}]})])

    assert excinfo.value.key == "overrides.0.file"


def test_min_confidence_out_of_range():
    with pytest.raises(ConfigError):
        merge_config_data(
            [("tool", {"criticalMappings": [{"pattern": "x", "minConfidence": 1.5}]})]
        )


def test_load_mapping_config_reads_three_layers(tmp_path: Path, write_json):
    root = tmp_path / "app"
    tool = tmp_path / "tool"
    write_json(
        tool / "config" / "inspector-map.json",
        {"overrides": [{"pattern": "a", "file": "Tool.swift"}], "modulePriority": ["Core"]},
    )
    write_json(
        root / ".uimap" / "inspector-map.json",
        {"overrides": [{"pattern": "a", "file": "Project.swift"}]},
    )
    write_json(
        root / ".uimap" / "inspector-map.local.json",
        {"overrides": [{"pattern": "b", "file": "Local.swift"}]},
    )

    config = load_mapping_config(Settings(project_root=root, tool_root=tool))

    assert config.overrides["a"].file == "Project.swift"
    assert config.overrides["b"].file == "Local.swift"
    assert config.module_priority == ["Core"]
    assert len(config.sources) == 3


def test_load_mapping_config_without_files(tmp_path: Path):
    config = load_mapping_config(Settings(project_root=tmp_path, tool_root=tmp_path))

    assert config.overrides == {}
    assert config.critical_rules() == []


def test_malformed_config_json(tmp_path: Path):
    state = tmp_path / ".uimap"
    state.mkdir()
    (state / "inspector-map.json").write_text("{not json")

    with pytest.raises(ConfigError, match="Malformed JSON"):
        load_mapping_config(Settings(project_root=tmp_path, tool_root=tmp_path / "tool"))


@pytest.mark.parametrize("file", ["../outside.swift", "Views/../../escape.swift", "/etc/passwd"])
def test_override_file_outside_project_root_is_rejected(tmp_path: Path, write_json, file):
    root = tmp_path / "app"
    write_json(
        root / ".uimap" / "inspector-map.json",
        {"overrides": [{"pattern": "home.title", "file": file}]},
    )

    with pytest.raises(ConfigError, match="outside the project root") as excinfo:
        load_mapping_config(Settings(project_root=root, tool_root=tmp_path / "tool"))
    assert excinfo.value.key == "overrides.home.title.file"


def test_override_file_inside_project_root_is_kept(tmp_path: Path, write_json):
    root = tmp_path / "app"
    write_json(
        root / ".uimap" / "inspector-map.json",
        {"overrides": [{"pattern": "home.title", "file": "Views/../Home.swift"}]},
    )

    config = load_mapping_config(Settings(project_root=root, tool_root=tmp_path / "tool"))

    assert config.overrides["home.title"].file == "Views/../Home.swift"
