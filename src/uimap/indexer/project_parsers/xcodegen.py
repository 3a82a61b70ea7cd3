from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import yaml

from .swift_manifest import ProjectMetadata, TargetMetadata

# xcodegen target `type` values mapped onto module products.
PRODUCT_TYPES = {
    "application": "application",
    "app-extension": "application",
    "framework": "framework",
    "library.static": "library",
    "library.dynamic": "library",
    "bundle.unit-test": "test",
    "bundle.ui-testing": "test",
}

DEPENDENCY_KEYS = ("target", "package", "framework", "sdk", "carthage")


class XcodeGenProjectParser:
    """Parse an xcodegen project.yml into targets and their source roots."""

    def parse(self, path: Path) -> ProjectMetadata:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            raise ValueError(f"Unable to read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected project.yml layout in {path}")

        name = str(data.get("name") or path.parent.name)
        raw_targets = data.get("targets") or {}
        if not isinstance(raw_targets, dict):
            raise ValueError(f"'targets' must be a mapping in {path}")

        targets: List[TargetMetadata] = []
        for target_name in sorted(raw_targets):
            spec = raw_targets[target_name] or {}
            if not isinstance(spec, dict):
                continue
            product = PRODUCT_TYPES.get(str(spec.get("type") or ""), None)
            targets.append(
                TargetMetadata(
                    name=str(target_name),
                    target_type="test" if product == "test" else "app",
                    sources=self._parse_sources(spec.get("sources")),
                    dependencies=self._parse_dependencies(spec.get("dependencies")),
                    product=product or spec.get("type"),
                )
            )
        return ProjectMetadata(name=name, targets=targets)

    def _parse_sources(self, value: Any) -> List[str]:
        # sources: Path | [Path] | [{path: Path}]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        sources: List[str] = []
        if isinstance(value, list):
            for item in value:
                source = self._source_path(item)
                if source:
                    sources.append(source)
        return sources

    def _source_path(self, item: Any) -> Optional[str]:
        if isinstance(item, str):
            return item
        if isinstance(item, dict) and item.get("path"):
            return str(item["path"])
        return None

    def _parse_dependencies(self, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        deps: List[str] = []
        for item in value:
            if not isinstance(item, dict):
                continue
            for key in DEPENDENCY_KEYS:
                if item.get(key):
                    deps.append(str(item[key]))
                    break
        return deps
