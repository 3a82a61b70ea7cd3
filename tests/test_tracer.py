from pathlib import Path

import pytest
from conftest import write_tree

from uimap.errors import InputError
from uimap.matching.tracer import collect_signals, extract_calls, trace_interaction
from uimap.models.records import AccessibilityElement, Candidate, EnrichedNode, MappingResult

SAVE_CONTROLLER_SWIFT = """import UIKit

final class SaveViewController: UIViewController {
    private let saveButton = UIButton()

    override func viewDidLoad() {
        super.viewDidLoad()
        saveButton.accessibilityIdentifier = "profile.save"
        saveButton.addTarget(self, action: #selector(handleSave), for: .touchUpInside)
        tableView.delegate = self
    }

    @objc private func handleSave() {
        validateForm()
        viewModel.persist(draft)
    }

    func unrelated() {
        reset()
    }
}
"""

BANNER_SWIFT = """import SwiftUI

struct Banner: View {
    var body: some View {
        Text("Welcome")
    }
}
"""

REFRESH_SWIFT = """import SwiftUI

struct Feed: View {
    var body: some View {
        Text("Latest")
    }

    func refresh() {
        store.reload()
    }
}
"""


@pytest.fixture
def project(tmp_path: Path) -> Path:
    return write_tree(
        tmp_path / "App",
        {
            "Views/SaveViewController.swift": SAVE_CONTROLLER_SWIFT,
            "Views/Banner.swift": BANNER_SWIFT,
            "Views/Feed.swift": REFRESH_SWIFT,
        },
    )


def mapped_node(file, line, element_type="UIButton", identifier=None, label=None):
    winner = Candidate(file=file, line=line, confidence=0.9) if file else None
    return EnrichedNode(
        element=AccessibilityElement(element_type=element_type, identifier=identifier, label=label),
        result=MappingResult(winner=winner, confidence=0.9 if winner else 0.0),
    )


def test_target_action_is_traced_to_its_handler(project: Path):
    node = mapped_node("Views/SaveViewController.swift", 8, identifier="profile.save")

    result = trace_interaction(node, project)

    assert result.status == "wired"
    assert [(s.kind, s.line, s.handler) for s in result.signals] == [
        ("target_action", 9, "handleSave"),
        ("delegate_assignment", 10, None),
    ]
    assert [(h.name, h.line) for h in result.handlers] == [("handleSave", 13)]
    assert result.handlers[0].calls == ["validateForm", "persist"]
    assert (result.snippet_start, result.snippet_end) == (1, 21)


def test_display_only_element(project: Path):
    result = trace_interaction(mapped_node("Views/Banner.swift", 5, "UILabel", label="Welcome"), project)

    assert result.status == "display_only"
    assert result.signals == []
    assert result.handlers == []


def test_interactive_element_without_wiring(project: Path):
    result = trace_interaction(mapped_node("Views/Banner.swift", 5, label="Continue"), project)

    assert result.status == "likely_missing"


def test_functions_without_local_wiring(project: Path):
    result = trace_interaction(mapped_node("Views/Feed.swift", 5, "UILabel", label="Latest"), project)

    assert result.status == "likely_wired"
    assert [(h.name, h.calls) for h in result.handlers] == [("refresh", ["reload"])]


def test_focus_falls_back_to_identifier(project: Path):
    node = mapped_node("Views/SaveViewController.swift", 0, identifier="profile.save")

    result = trace_interaction(node, project, context_lines=1)

    assert result.focus_line == 8
    assert [s.line for s in result.signals] == [9]


def test_refuses_files_outside_root(project: Path):
    (project.parent / "secret.swift").write_text("let key = 1\n")

    with pytest.raises(InputError, match="outside project root"):
        trace_interaction(mapped_node("../secret.swift", 1), project)


def test_unmapped_and_missing_files(project: Path):
    with pytest.raises(InputError, match="No mapped source file"):
        trace_interaction(mapped_node(None, 0), project)
    with pytest.raises(InputError, match="not found"):
        trace_interaction(mapped_node("Views/Gone.swift", 3), project)


def test_swiftui_and_closure_signals():
    snippet = list(
        enumerate(
            [
                "Button(action: { save() }) {",
                "Image(systemName: \"star\").onTapGesture {",
                "view.addGestureRecognizer(UITapGestureRecognizer(target: self, action: #selector(Self.didTap)))",
                "button.addAction(UIAction { [weak self] _ in self?.go() }, for: .primaryActionTriggered)",
                ".simultaneousGesture(DragGesture())",
            ],
            start=1,
        )
    )

    signals = collect_signals(snippet)

    assert [(s.kind, s.handler) for s in signals] == [
        ("swiftui_button_action", None),
        ("swiftui_on_tap_gesture", None),
        ("gesture_selector", "didTap"),
        ("control_event_closure", None),
        ("swiftui_simultaneous_gesture", None),
    ]


def test_extract_calls_stops_at_body_end():
    lines = [
        "func submit()",
        "{",
        "    if isValid() {",
        "        send(payload)",
        "    }",
        "}",
        "func other() { later() }",
    ]

    assert extract_calls(lines, 1) == ["isValid", "send"]
