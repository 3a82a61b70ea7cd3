from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .swift_manifest import ProjectMetadata, TargetMetadata

OBJECT_ID = r"[A-Fa-f0-9]{20,}"
BLOCK_START_RE = re.compile(rf"({OBJECT_ID})\s*/\*\s*([^*]+?)\s*\*/\s*=\s*\{{")
FLAT_OBJECT_RE = re.compile(rf"({OBJECT_ID})\s*/\*[^*]*\*/\s*=\s*\{{([^}}]*)\}}")
ID_RE = re.compile(OBJECT_ID)


def _section(text: str, name: str) -> str:
    start = text.find(f"/* Begin {name} section */")
    end = text.find(f"/* End {name} section */")
    if start == -1 or end == -1:
        return ""
    return text[start:end]


def _extract_block(text: str, start: int) -> Optional[str]:
    """Body between the brace opened just before `start` and its match."""
    depth = 1
    i = start
    while depth > 0 and i < len(text):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
        i += 1
    return text[start : i - 1] if depth == 0 else None


def _field(block: str, key: str) -> Optional[str]:
    match = re.search(rf"\b{key}\s*=\s*\"?([^\";\n]+)\"?", block)
    return match.group(1).strip() if match else None


def _ref(block: str, key: str) -> Optional[str]:
    match = re.search(rf"\b{key}\s*=\s*({OBJECT_ID})", block)
    return match.group(1) if match else None


def _id_list(block: str, key: str) -> List[str]:
    match = re.search(rf"\b{key}\s*=\s*\(([^)]*?)\)", block, re.S)
    if not match:
        return []
    return ID_RE.findall(match.group(1))


def _product_kind(product_type: Optional[str]) -> str:
    product_type = product_type or ""
    if "application" in product_type:
        return "application"
    if "framework" in product_type:
        return "framework"
    if "test" in product_type:
        return "test"
    return "library"


class PbxprojParser:
    """Read PBXNativeTarget entries out of an Xcode project.pbxproj.

    Targets using file-system synchronized groups report directory sources;
    classic targets report the file paths of their PBXSourcesBuildPhase.
    Paths are as recorded in the project and may be group-relative.
    """

    def parse(self, path: Path) -> ProjectMetadata:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValueError(f"Unable to read {path}: {exc}") from exc
        return self.parse_text(text, name=path.parent.stem)

    def parse_text(self, text: str, name: str = "project") -> ProjectMetadata:
        section = _section(text, "PBXNativeTarget")
        targets: List[TargetMetadata] = []
        if not section:
            return ProjectMetadata(name=name, targets=targets)

        file_refs = self._objects_by_field(_section(text, "PBXFileReference"), "path", _field)
        build_files = self._objects_by_field(_section(text, "PBXBuildFile"), "fileRef", _ref)

        for match in BLOCK_START_RE.finditer(section):
            block = _extract_block(section, match.end())
            if block is None:
                continue
            target_name = _field(block, "name")
            if not target_name:
                continue
            product = _product_kind(_field(block, "productType"))
            sources: List[str] = []
            for group_id in _id_list(block, "fileSystemSynchronizedGroups"):
                group_path = self._object_field(text, group_id, "path")
                if group_path:
                    sources.append(group_path)
            if not sources:
                sources = self._phase_sources(
                    text, _id_list(block, "buildPhases"), build_files, file_refs
                )
            targets.append(
                TargetMetadata(
                    name=target_name,
                    target_type="test" if product == "test" else "app",
                    sources=sources,
                    dependencies=self._target_dependencies(
                        text, _id_list(block, "dependencies")
                    ),
                    product=product,
                )
            )
        return ProjectMetadata(name=name, targets=targets)

    def _objects_by_field(
        self, section: str, key: str, read: Callable[[str, str], Optional[str]]
    ) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for match in FLAT_OBJECT_RE.finditer(section):
            value = read(match.group(2), key)
            if value:
                values[match.group(1)] = value
        return values

    def _object_body(self, text: str, object_id: str) -> Optional[str]:
        match = re.search(
            re.escape(object_id) + r"\s*/\*[^*]*\*/\s*=\s*\{([^}]*?)\}", text, re.S
        )
        return match.group(1) if match else None

    def _object_field(self, text: str, object_id: str, key: str) -> Optional[str]:
        body = self._object_body(text, object_id)
        return _field(body, key) if body is not None else None

    def _phase_sources(
        self,
        text: str,
        phase_ids: List[str],
        build_files: Dict[str, str],
        file_refs: Dict[str, str],
    ) -> List[str]:
        sources_section = _section(text, "PBXSourcesBuildPhase")
        sources: List[str] = []
        for phase_id in phase_ids:
            body = self._object_body(sources_section, phase_id)
            if body is None or "PBXSourcesBuildPhase" not in body:
                continue
            for build_file_id in _id_list(body, "files"):
                ref = build_files.get(build_file_id)
                path = file_refs.get(ref) if ref else None
                if path and path.endswith(".swift"):
                    sources.append(path)
        return sources

    def _target_dependencies(self, text: str, dependency_ids: List[str]) -> List[str]:
        deps: List[str] = []
        for dependency_id in dependency_ids:
            body = self._object_body(text, dependency_id)
            target_id = _ref(body, "target") if body is not None else None
            if not target_id:
                continue
            match = re.search(re.escape(target_id) + r"\s*/\*\s*([^*]+?)\s*\*/", text)
            if match:
                deps.append(match.group(1))
        return deps
