"""Project layout detection.

Finds the modules (targets) of a Swift project and the source files each one
owns. Strategies are tried from the most to the least specific manifest; the
first one that yields at least one target wins.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..config import Settings
from ..models.records import ModuleEntry
from .project_parsers import (
    PbxprojParser,
    ProjectMetadata,
    SwiftManifestParser,
    TargetMetadata,
    XcodeGenProjectParser,
)
from .utils import fallback_module_name

logger = logging.getLogger(__name__)

# Swift files that describe the build rather than the app.
MANIFEST_FILE_NAMES = {"Package.swift", "Project.swift", "Workspace.swift"}


@dataclass(slots=True)
class ModuleIndex:
    root: Path
    strategy: str = "none"
    modules: Dict[str, ModuleEntry] = field(default_factory=dict)
    _file_to_module: Dict[str, str] = field(default_factory=dict)

    def add_module(
        self,
        name: str,
        sources: Iterable[str],
        dependencies: Sequence[str] = (),
        product: Optional[str] = None,
    ) -> None:
        existing = self.modules.get(name)
        if existing is not None:
            merged = sorted(set(existing.sources) | set(sources))
            existing.sources = merged
            existing.dependencies = list(dict.fromkeys([*existing.dependencies, *dependencies]))
            return
        self.modules[name] = ModuleEntry(
            name=name,
            sources=sorted(set(sources)),
            dependencies=list(dependencies),
            product=product,
        )

    def build_reverse_lookup(self) -> None:
        # A file claimed by several modules belongs to the first in name order.
        self._file_to_module.clear()
        for name in sorted(self.modules):
            for source in self.modules[name].sources:
                self._file_to_module.setdefault(source, name)

    def module_for_file(self, relative_path: str) -> Optional[str]:
        return self._file_to_module.get(relative_path)

    def sources_for_module(self, name: str) -> List[str]:
        entry = self.modules.get(name)
        return list(entry.sources) if entry else []

    def dependencies_of(self, name: str) -> List[str]:
        entry = self.modules.get(name)
        return list(entry.dependencies) if entry else []

    def files(self) -> List[str]:
        return sorted(self._file_to_module)

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": self.root.as_posix(),
            "strategy": self.strategy,
            "modules": {name: self.modules[name].to_dict() for name in sorted(self.modules)},
            "moduleCount": len(self.modules),
            "fileCount": len(self._file_to_module),
        }


def collect_source_files(
    root: Path,
    extensions: Sequence[str] = (".swift",),
    ignored_dirs: Sequence[str] = (),
) -> List[str]:
    """Sorted POSIX paths, relative to root, of every source file under root."""
    wanted = {ext.lower() for ext in extensions}
    ignored = set(ignored_dirs)
    results: List[str] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in ignored
        )
        base = Path(current)
        for filename in filenames:
            if filename in MANIFEST_FILE_NAMES:
                continue
            if Path(filename).suffix.lower() not in wanted:
                continue
            results.append((base / filename).relative_to(root).as_posix())
    return sorted(results)


def _find_manifests(root: Path, name: str, ignored_dirs: Sequence[str]) -> List[Path]:
    ignored = set(ignored_dirs)
    found: List[Path] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in ignored
        )
        if name in filenames:
            found.append(Path(current) / name)
    return sorted(found)


def _normalize_source_root(root: Path, base_dir: Path, source: str) -> Optional[str]:
    """Project-relative POSIX prefix for a manifest source entry.

    Glob patterns are cut at the first wildcard or brace token.
    """
    cleaned = source.strip().replace("\\", "/")
    cut = len(cleaned)
    for token in ("{", "*"):
        idx = cleaned.find(token)
        if idx != -1 and idx < cut:
            cut = idx
    cleaned = cleaned[:cut].rstrip("/")
    absolute = (base_dir / cleaned).resolve() if cleaned else base_dir.resolve()
    try:
        relative = absolute.relative_to(root.resolve())
    except ValueError:
        return None
    text = relative.as_posix()
    return "" if text == "." else text


def _files_under(files: Sequence[str], prefixes: Iterable[str]) -> List[str]:
    owned: List[str] = []
    prefix_list = list(prefixes)
    for rel in files:
        for prefix in prefix_list:
            if not prefix or rel == prefix or rel.startswith(prefix + "/"):
                owned.append(rel)
                break
    return owned


class _LayoutDetector:
    def __init__(self, root: Path, files: List[str], ignored_dirs: Sequence[str]) -> None:
        self.root = root
        self.files = files
        self.ignored_dirs = ignored_dirs
        self._manifest_parser: Optional[SwiftManifestParser] = None

    @property
    def manifest_parser(self) -> SwiftManifestParser:
        if self._manifest_parser is None:
            self._manifest_parser = SwiftManifestParser()
        return self._manifest_parser

    def strategies(self) -> List[tuple[str, Callable[[ModuleIndex], bool]]]:
        return [
            ("xcodegen", self.try_xcodegen),
            ("tuist", self.try_tuist),
            ("spm", self.try_spm),
            ("xcodeproj", self.try_xcodeproj),
            ("directory", self.try_directory),
        ]

    # --- strategies ------------------------------------------------------
    def try_xcodegen(self, index: ModuleIndex) -> bool:
        manifest = self.root / "project.yml"
        if not manifest.is_file():
            return False
        metadata = self._parse(manifest, XcodeGenProjectParser().parse)
        if metadata is None or not metadata.targets:
            return False
        for target in metadata.targets:
            prefixes = self._prefixes(self.root, target.sources)
            self._add_target(index, target, prefixes)
        return True

    def try_tuist(self, index: ModuleIndex) -> bool:
        added = False
        for manifest in _find_manifests(self.root, "Project.swift", self.ignored_dirs):
            metadata = self._parse(manifest, self.manifest_parser.parse_project)
            if metadata is None:
                continue
            project_dir = manifest.parent
            for target in metadata.targets:
                for test in target.tests:
                    if not test.sources:
                        continue
                    prefixes = self._prefixes(project_dir, test.sources)
                    index.add_module(
                        self._test_target_name(target.name, test.tests_type),
                        _files_under(self.files, prefixes),
                        test.dependencies,
                        "test",
                    )
                sources = target.sources or [f"Targets/{target.name}/Sources"]
                self._add_target(index, target, self._prefixes(project_dir, sources))
                added = True
        return added

    def try_spm(self, index: ModuleIndex) -> bool:
        manifest = self.root / "Package.swift"
        if not manifest.is_file():
            return False
        metadata = self._parse(manifest, self.manifest_parser.parse_package)
        if metadata is None or not metadata.targets:
            return False
        for target in metadata.targets:
            default_dir = "Tests" if target.product == "test" else "Sources"
            source_dir = target.path or f"{default_dir}/{target.name}"
            self._add_target(index, target, self._prefixes(self.root, [source_dir]))
        return True

    def try_xcodeproj(self, index: ModuleIndex) -> bool:
        projects = sorted(self.root.glob("*.xcodeproj"))
        if not projects:
            return False
        manifest = projects[0] / "project.pbxproj"
        if not manifest.is_file():
            return False
        metadata = self._parse(manifest, PbxprojParser().parse)
        if metadata is None or not metadata.targets:
            return False
        for target in metadata.targets:
            owned: List[str] = []
            for source in target.sources:
                cleaned = source.strip("/")
                if cleaned.endswith(".swift"):
                    # group-relative file reference
                    owned.extend(
                        rel for rel in self.files
                        if rel == cleaned or rel.endswith("/" + cleaned)
                    )
                else:
                    owned.extend(_files_under(self.files, [cleaned]))
            index.add_module(target.name, owned, target.dependencies, target.product)
        return True

    def try_directory(self, index: ModuleIndex) -> bool:
        if self.files:
            index.add_module(self.root.name or "root", self.files, [], "unknown")
        return True

    # --- helpers ---------------------------------------------------------
    def _parse(
        self, manifest: Path, parse: Callable[[Path], ProjectMetadata]
    ) -> Optional[ProjectMetadata]:
        try:
            return parse(manifest)
        except ValueError as exc:
            logger.warning("Skipping unreadable manifest %s: %s", manifest, exc)
            return None

    def _prefixes(self, base_dir: Path, sources: Sequence[str]) -> List[str]:
        prefixes: List[str] = []
        for source in sources:
            prefix = _normalize_source_root(self.root, base_dir, source)
            if prefix is not None:
                prefixes.append(prefix)
        return prefixes

    def _add_target(self, index: ModuleIndex, target: TargetMetadata, prefixes: List[str]) -> None:
        index.add_module(
            target.name,
            _files_under(self.files, prefixes),
            target.dependencies,
            target.product,
        )

    def _test_target_name(self, base_name: str, tests_type: str) -> str:
        type_suffix = tests_type.capitalize() if tests_type else ""
        return f"{base_name}{type_suffix}Tests"


def build_module_index(root: Path, settings: Optional[Settings] = None) -> ModuleIndex:
    """Detect the project layout under root and assign every source file a module."""
    settings = settings or Settings(project_root=root)
    root = Path(root)
    files = collect_source_files(root, settings.source_extensions, settings.ignored_dirs)
    detector = _LayoutDetector(root, files, settings.ignored_dirs)
    index = ModuleIndex(root=root)
    for name, strategy in detector.strategies():
        if strategy(index):
            index.strategy = name
            break
    logger.info("Layout strategy '%s' found %d module(s)", index.strategy, len(index.modules))

    index.build_reverse_lookup()
    unclaimed = [rel for rel in files if index.module_for_file(rel) is None]
    if unclaimed:
        logger.debug("%d file(s) outside any declared module", len(unclaimed))
        grouped: Dict[str, List[str]] = {}
        for rel in unclaimed:
            grouped.setdefault(fallback_module_name(rel, root.name), []).append(rel)
        for name, sources in grouped.items():
            index.add_module(name, sources, [], "unknown")
        index.build_reverse_lookup()
    return index
