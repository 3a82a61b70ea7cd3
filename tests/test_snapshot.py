import json
from pathlib import Path

import pytest

from uimap.audit.validator import hierarchy_to_dict
from uimap.errors import InputError
from uimap.matching.matcher import match_snapshot
from uimap.matching.snapshot import load_snapshot, parse_element, parse_snapshot

AXE_SNAPSHOT = [
    {
        "type": "Application",
        "AXLabel": "Demo",
        "frame": {"x": 0, "y": 0, "width": 393, "height": 852},
        "children": [
            {
                "type": "Button",
                "AXUniqueId": "submitButton",
                "AXLabel": "Submit",
                "frame": {"x": 16.004, "y": 700, "width": 361, "height": 44},
                "enabled": False,
                "children": [],
            },
            {
                "type": "Slider",
                "AXValue": "50%",
                "frame": {"x": 16, "y": 600, "width": 361, "height": 30},
            },
            {"type": "Unheard", "AXLabel": "Mystery"},
        ],
    }
]


def test_parse_axe_tree():
    roots = parse_snapshot(AXE_SNAPSHOT)

    assert len(roots) == 1
    app = roots[0]
    assert app.element_type == "UIApplication"
    assert app.raw_type == "Application"
    assert app.frame.w == 393

    button, slider, unknown = app.children
    assert button.element_type == "UIButton"
    assert button.identifier == "submitButton"
    assert button.element_id == "submitButton"
    assert button.frame.x == 16.0
    assert button.enabled is False
    assert slider.value == "50%"
    assert slider.element_id == "UISlider_"
    assert unknown.element_type == "UIView"
    assert unknown.composite_key == "UIView_Mystery"


def test_parse_normalized_node():
    element = parse_element(
        {
            "elementType": "UILabel",
            "identifier": "",
            "label": "Welcome back",
            "frame": {"x": 1, "y": 2, "w": 3, "h": 4},
            "children": [{"elementType": "UIImageView", "identifier": "avatar"}],
        }
    )

    assert element.identifier is None
    assert element.element_id == "UILabel_Welcome back"
    assert (element.frame.w, element.frame.h) == (3, 4)
    assert element.children[0].identifier == "avatar"
    assert element.enabled is True


def test_parse_snapshot_shapes():
    assert parse_snapshot(None) == []
    assert parse_snapshot([]) == []
    assert len(parse_snapshot({"elements": AXE_SNAPSHOT})) == 1
    assert parse_snapshot({"type": "Button"})[0].element_type == "UIButton"
    with pytest.raises(InputError):
        parse_snapshot("not a tree")
    with pytest.raises(InputError, match="neither an element"):
        parse_snapshot({"schemaVersion": "1.0.0"})


def test_load_enriched_hierarchy(sample_index, tmp_path: Path):
    roots = parse_snapshot(AXE_SNAPSHOT)
    path = tmp_path / "hierarchy.json"
    path.write_text(json.dumps(hierarchy_to_dict(match_snapshot(roots, sample_index), root="/app")))

    loaded = load_snapshot(path)

    assert len(loaded) == 1
    assert loaded[0].element_type == "UIApplication"
    assert [child.element_id for child in loaded[0].children] == [
        child.element_id for child in roots[0].children
    ]
    assert loaded[0].children[0].identifier == "submitButton"


def test_load_snapshot_file(tmp_path: Path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(AXE_SNAPSHOT))

    roots = load_snapshot(path)

    assert roots[0].children[0].identifier == "submitButton"


def test_load_empty_snapshot(tmp_path: Path):
    path = tmp_path / "snapshot.json"
    path.write_text("  \n")

    assert load_snapshot(path) == []


def test_load_snapshot_errors(tmp_path: Path):
    with pytest.raises(InputError, match="not found"):
        load_snapshot(tmp_path / "absent.json")

    broken = tmp_path / "broken.json"
    broken.write_text("[{")
    with pytest.raises(InputError, match="Malformed snapshot JSON"):
        load_snapshot(broken)
