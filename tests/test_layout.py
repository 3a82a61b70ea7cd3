from pathlib import Path

from conftest import write_tree
from test_project_parser import PACKAGE_SWIFT, PROJECT_PBXPROJ, PROJECT_YML

from uimap.config import Settings
from uimap.indexer.layout import ModuleIndex, build_module_index, collect_source_files

CHECKOUT_PROJECT_SWIFT = """
import ProjectDescription

let project = Project(
    name: "Checkout",
    targets: [
        Target(
            name: "Checkout",
            sources: ["Sources/**"],
            tests: [
                Tests(testsType: .unit, sources: ["Tests/**"])
            ]
        )
    ]
)
"""


def test_collect_source_files_skips_ignored_hidden_and_manifests(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "App/Main.swift": "",
            "App/README.md": "",
            "Package.swift": "",
            "build/Generated.swift": "",
            "Pods/Lib/Lib.swift": "",
            ".build/checkouts/Dep.swift": "",
            "Vendor/Extra.swift": "",
        },
    )

    files = collect_source_files(tmp_path, [".swift"], ["build", "Pods", "Vendor"])

    assert files == ["App/Main.swift"]


def test_spm_layout_assigns_targets(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "Package.swift": PACKAGE_SWIFT,
            "Sources/DemoKit/Card.swift": "",
            "Sources/Core/Store.swift": "",
            "Tests/DemoKitTests/CardTests.swift": "",
            "Scripts/gen.swift": "",
        },
    )

    index = build_module_index(tmp_path)

    assert index.strategy == "spm"
    assert index.module_for_file("Sources/DemoKit/Card.swift") == "DemoKit"
    assert index.module_for_file("Sources/Core/Store.swift") == "DemoCore"
    assert index.module_for_file("Tests/DemoKitTests/CardTests.swift") == "DemoKitTests"
    assert index.modules["DemoKitTests"].product == "test"
    assert index.dependencies_of("DemoKit") == ["DemoCore"]
    assert "Package.swift" not in index.files()


def test_unclaimed_files_fall_back_to_directory_modules(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "Package.swift": PACKAGE_SWIFT,
            "Sources/DemoKit/Card.swift": "",
            "Scripts/gen.swift": "",
            "main.swift": "",
        },
    )

    index = build_module_index(tmp_path)

    assert index.module_for_file("Scripts/gen.swift") == "Scripts"
    assert index.modules["Scripts"].product == "unknown"
    assert index.module_for_file("main.swift") == tmp_path.name


def test_xcodegen_wins_over_package_manifest(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "project.yml": PROJECT_YML,
            "Package.swift": PACKAGE_SWIFT,
            "App/AppDelegate.swift": "",
            "Shared/Theme.swift": "",
            "Kit/Button.swift": "",
            "Tests/AppTests.swift": "",
        },
    )

    index = build_module_index(tmp_path)

    assert index.strategy == "xcodegen"
    assert index.sources_for_module("DemoApp") == ["App/AppDelegate.swift", "Shared/Theme.swift"]
    assert index.module_for_file("Kit/Button.swift") == "DemoKit"
    assert index.module_for_file("Tests/AppTests.swift") == "DemoAppTests"


def test_tuist_layout_names_test_targets(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "Features/Checkout/Project.swift": CHECKOUT_PROJECT_SWIFT,
            "Features/Checkout/Sources/CheckoutView.swift": "",
            "Features/Checkout/Tests/CheckoutViewTests.swift": "",
        },
    )

    index = build_module_index(tmp_path)

    assert index.strategy == "tuist"
    assert index.module_for_file("Features/Checkout/Sources/CheckoutView.swift") == "Checkout"
    test_module = index.module_for_file("Features/Checkout/Tests/CheckoutViewTests.swift")
    assert test_module == "CheckoutUnitTests"
    assert index.modules[test_module].product == "test"


def test_xcodeproj_layout_matches_group_relative_paths(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "Demo.xcodeproj/project.pbxproj": PROJECT_PBXPROJ,
            "DemoApp/ContentView.swift": "",
            "DemoApp/DemoApp.swift": "",
            "DemoKit/Card.swift": "",
        },
    )

    index = build_module_index(tmp_path)

    assert index.strategy == "xcodeproj"
    assert index.sources_for_module("DemoApp") == ["DemoApp/ContentView.swift", "DemoApp/DemoApp.swift"]
    assert index.module_for_file("DemoKit/Card.swift") == "DemoKit"
    assert index.modules["DemoApp"].product == "application"


def test_plain_directory_is_one_module(tmp_path: Path):
    root = write_tree(tmp_path / "Plain", {"A.swift": "", "Views/B.swift": ""})

    index = build_module_index(root)

    assert index.strategy == "directory"
    assert list(index.modules) == ["Plain"]
    assert index.files() == ["A.swift", "Views/B.swift"]


def test_unreadable_manifest_falls_through(tmp_path: Path):
    root = write_tree(
        tmp_path / "Broken",
        {"Package.swift": "import PackageDescription\n", "Sources/A.swift": ""},
    )

    index = build_module_index(root)

    assert index.strategy == "directory"
    assert index.module_for_file("Sources/A.swift") == "Broken"


def test_settings_control_extensions_and_ignored_dirs(tmp_path: Path):
    root = write_tree(tmp_path / "Root", {"A.swift": "", "B.m": "", "Gen/C.swift": ""})
    settings = Settings(project_root=root, source_extensions=[".swift", ".m"], ignored_dirs=["Gen"])

    index = build_module_index(root, settings)

    assert index.files() == ["A.swift", "B.m"]


def test_module_index_merges_and_prefers_first_name(tmp_path: Path):
    index = ModuleIndex(root=tmp_path)
    index.add_module("Beta", ["Shared.swift", "B.swift"], ["Core"])
    index.add_module("Alpha", ["Shared.swift"])
    index.add_module("Beta", ["B2.swift"], ["Core", "UI"])
    index.build_reverse_lookup()

    assert index.sources_for_module("Beta") == ["B.swift", "B2.swift", "Shared.swift"]
    assert index.dependencies_of("Beta") == ["Core", "UI"]
    assert index.module_for_file("Shared.swift") == "Alpha"
    assert index.to_dict()["fileCount"] == 3
