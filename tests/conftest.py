"""Shared test fixtures for uimap tests.

The sample project is a small SwiftUI/UIKit tree laid out without any
manifest, so every file lands in a single module named after the root.
"""
import json
from pathlib import Path
from typing import Callable, Dict

import pytest

from uimap.config import Settings
from uimap.indexer.service import IndexerService
from uimap.models.records import SourceIndex

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / "swift" / name).read_text()


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


# The submit button identifier is assigned on line 42.
FORM_SWIFT = "\n".join(
    [
        "import UIKit",
        "",
        "final class FormViewController: UIViewController {",
        "    private let submitButton = UIButton(type: .system)",
        "",
        "    override func viewDidLoad() {",
        "        super.viewDidLoad()",
    ]
    + [f"        // layout step {n}" for n in range(8, 42)]
    + [
        '        submitButton.accessibilityIdentifier = "submitButton"',
        '        submitButton.setTitle("Submit", for: .normal)',
        "    }",
        "}",
    ]
) + "\n"

CARD_CELL_SWIFT = """import UIKit

final class CardCell: UICollectionViewCell {
    func configureFirst() {
        contentView.accessibilityIdentifier = "card.0"
    }

    func configureSecond() {
        contentView.accessibilityIdentifier = "card.1"
    }
}
"""

ROW_VIEW_SWIFT = """import SwiftUI

struct RowView: View {
    let index: Int

    var body: some View {
        Text("Generate Music")
            .accessibilityIdentifier("row.\\(index)")
    }
}
"""

HOME_HEADER_SWIFT = """import UIKit

final class HomeHeaderView: UIView {
    let titleLabel = UILabel()

    func setUp() {
        titleLabel.text = "Welcome back"
    }
}
"""

SAMPLE_FILES = {
    "Views/Form.swift": FORM_SWIFT,
    "Views/CardCell.swift": CARD_CELL_SWIFT,
    "Views/RowView.swift": ROW_VIEW_SWIFT,
    "Views/HomeHeader.swift": HOME_HEADER_SWIFT,
}


@pytest.fixture
def sample_root(tmp_path: Path) -> Path:
    return write_tree(tmp_path / "Demo", SAMPLE_FILES)


@pytest.fixture
def sample_settings(sample_root: Path, tmp_path: Path) -> Settings:
    return Settings(project_root=sample_root, tool_root=tmp_path / "tool")


@pytest.fixture
def sample_index(sample_settings: Settings) -> SourceIndex:
    return IndexerService(sample_settings).build_index()


@pytest.fixture
def write_json() -> Callable[[Path, object], Path]:
    def _write(path: Path, payload: object) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload))
        return path

    return _write
