from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from tree_sitter import Language, Node, Parser
from tree_sitter_swift import language as swift_language

PACKAGE_TARGET_CALLS = {
    "target": "library",
    "executableTarget": "executable",
    "testTarget": "test",
    "macro": "library",
}


@dataclass(slots=True)
class TestTargetMetadata:
    tests_type: str
    sources: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TargetMetadata:
    name: str
    target_type: str
    sources: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    tests: List[TestTargetMetadata] = field(default_factory=list)
    product: Optional[str] = None
    path: Optional[str] = None


@dataclass(slots=True)
class ProjectMetadata:
    name: str
    targets: List[TargetMetadata] = field(default_factory=list)


class SwiftManifestParser:
    """Parse Swift-language manifests (Tuist/Geko Project.swift, SPM Package.swift)."""

    def __init__(self) -> None:
        self._language = Language(swift_language())
        self._parser = Parser(self._language)
        self._source_bytes: bytes = b""

    def parse_project(self, path: Path) -> ProjectMetadata:
        """Parse a Tuist or Geko Project.swift."""
        root = self._load(path)
        project_call = self._find_first_call(root, {"Project", "Module"})
        if project_call is None:
            raise ValueError(f"Unable to locate project declaration inside {path}")

        args = self._collect_arguments(project_call)
        project_name = self._parse_string(args.get("name")) or path.parent.name
        targets: List[TargetMetadata] = []
        for call in self._calls_in_array(args.get("targets"), {"Target", "target"}):
            target = self._parse_project_target(call)
            if target:
                targets.append(target)
        return ProjectMetadata(name=project_name, targets=targets)

    def parse_package(self, path: Path) -> ProjectMetadata:
        """Parse an SPM Package.swift."""
        root = self._load(path)
        package_call = self._find_first_call(root, {"Package"})
        if package_call is None:
            raise ValueError(f"Unable to locate Package declaration inside {path}")

        args = self._collect_arguments(package_call)
        package_name = self._parse_string(args.get("name")) or path.parent.name
        targets: List[TargetMetadata] = []
        for call in self._calls_in_array(args.get("targets"), set(PACKAGE_TARGET_CALLS)):
            call_args = self._collect_arguments(call)
            name = self._parse_string(call_args.get("name"))
            if not name:
                continue
            product = PACKAGE_TARGET_CALLS[self._call_segment(call)]
            targets.append(
                TargetMetadata(
                    name=name,
                    target_type="test" if product == "test" else "app",
                    dependencies=self._parse_dependency_names(call_args.get("dependencies")),
                    product=product,
                    path=self._parse_string(call_args.get("path")),
                )
            )
        return ProjectMetadata(name=package_name, targets=targets)

    # --- parsing helpers -------------------------------------------------
    def _load(self, path: Path) -> Node:
        try:
            source_text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValueError(f"Unable to read {path}") from exc
        self._source_bytes = source_text.encode("utf-8")
        return self._parser.parse(self._source_bytes).root_node

    def _parse_project_target(self, node: Node) -> Optional[TargetMetadata]:
        args = self._collect_arguments(node)
        name = self._parse_string(args.get("name"))
        if not name:
            return None
        sources_node = args.get("sources")
        sources = self._parse_string_list(sources_node)
        if not sources and sources_node is not None:
            single = self._parse_string(sources_node)
            sources = [single] if single else []
        product = self._parse_enum_value(args.get("product"))
        return TargetMetadata(
            name=name,
            target_type=self._classify_target(name, product),
            sources=self._normalize_sources(sources),
            dependencies=self._parse_dependency_names(args.get("dependencies")),
            tests=self._parse_tests_array(args.get("tests")),
            product=product,
        )

    def _parse_tests_array(self, node: Optional[Node]) -> List[TestTargetMetadata]:
        tests: List[TestTargetMetadata] = []
        for child in self._calls_in_array(node, {"Tests"}):
            args = self._collect_arguments(child)
            tests_type = self._parse_enum_value(args.get("testsType")) or "unit"
            tests.append(
                TestTargetMetadata(
                    tests_type=tests_type,
                    sources=self._normalize_sources(self._parse_string_list(args.get("sources"))),
                    dependencies=self._parse_dependency_names(args.get("dependencies")),
                )
            )
        return tests

    def _parse_dependency_names(self, node: Optional[Node]) -> List[str]:
        if node is None or node.type != "array_literal":
            return []
        deps: List[str] = []
        for child in node.named_children:
            if child.type == "line_string_literal":
                value = self._parse_string(child)
                if value:
                    deps.append(value)
                continue
            if child.type != "call_expression":
                continue
            args = self._collect_arguments(child)
            dep_name = self._parse_string(args.get("name"))
            if dep_name:
                deps.append(dep_name)
        return deps

    def _calls_in_array(self, node: Optional[Node], names: set[str]) -> Iterator[Node]:
        if node is None or node.type != "array_literal":
            return
        for child in node.named_children:
            if child.type == "call_expression" and self._call_segment(child) in names:
                yield child

    def _collect_arguments(self, node: Node) -> Dict[str, Node]:
        args: Dict[str, Node] = {}
        suffix = next((child for child in node.children if child.type == "call_suffix"), None)
        if suffix is None:
            return args
        value_args = next(
            (child for child in suffix.children if child.type == "value_arguments"), None
        )
        if value_args is None:
            return args
        for child in value_args.children:
            if child.type != "value_argument":
                continue
            label_node = next(
                (sub for sub in child.children if sub.type == "value_argument_label"),
                None,
            )
            value_node = next(
                (
                    sub
                    for sub in child.children
                    if sub.is_named and sub.type not in {"value_argument_label"}
                ),
                None,
            )
            if label_node is None or value_node is None:
                continue
            label = self._node_text(label_node).strip()
            args[label.rstrip(":")] = value_node
        return args

    def _parse_string_list(self, node: Optional[Node]) -> List[str]:
        if node is None or node.type != "array_literal":
            return []
        values: List[str] = []
        for child in node.named_children:
            parsed = self._parse_string(child)
            if parsed:
                values.append(parsed)
        return values

    def _parse_string(self, node: Optional[Node]) -> Optional[str]:
        if node is None:
            return None
        text = self._node_text(node).strip()
        if not text:
            return None
        if node.type == "line_string_literal" and len(text) >= 2:
            return text[1:-1]
        if node.type in {"simple_identifier", "identifier", "type_identifier"}:
            return text
        if node.type == "array_literal":
            return None
        return text.strip('"') or None

    def _parse_enum_value(self, node: Optional[Node]) -> Optional[str]:
        if node is None:
            return None
        text = self._node_text(node).strip()
        return text.lstrip(".") or None

    def _call_name(self, node: Node) -> str:
        for child in node.children:
            if child.type == "call_suffix":
                break
            if child.is_named:
                return self._node_text(child)
        return ""

    def _call_segment(self, node: Node) -> str:
        return self._call_name(node).split(".")[-1].strip()

    def _node_text(self, node: Node) -> str:
        return self._source_bytes[node.start_byte : node.end_byte].decode("utf-8")

    def _find_first_call(self, node: Node, names: set[str]) -> Optional[Node]:
        for current in self._iterate(node):
            if current.type == "call_expression" and self._call_segment(current) in names:
                return current
        return None

    def _iterate(self, node: Node) -> Iterator[Node]:
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def _classify_target(self, name: str, product: Optional[str]) -> str:
        lowered = name.lower()
        if product and "test" in product.lower():
            return "test"
        if lowered.endswith("mock"):
            return "mock"
        if lowered.endswith("io") or lowered.endswith("interface") or lowered.endswith(
            "interfaces"
        ):
            return "interface"
        if lowered.endswith("tests"):
            return "test"
        return "app"

    def _normalize_sources(self, sources: List[str]) -> List[str]:
        normalized: List[str] = []
        for source in sources:
            cleaned = source.strip().replace("\\", "/")
            if cleaned:
                normalized.append(cleaned)
        return normalized
