from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..config import Settings
from ..errors import InputError
from ..models.records import IndexWarning, ModuleEntry, ParsedSource, SourceIndex
from .base import ParserRegistry
from .layout import build_module_index
from .swift_parser import SwiftParser

logger = logging.getLogger(__name__)


class IndexerService:
    def __init__(self, settings: Settings, registry: ParserRegistry | None = None) -> None:
        self.settings = settings
        self.registry = registry or build_registry(settings)

    # --- public API ---
    def build_index(self) -> SourceIndex:
        root = self.settings.project_root
        if not root.exists():
            raise InputError("Source root does not exist", path=root)
        if not root.is_dir():
            raise InputError("Source root is not a directory", path=root)

        layout = build_module_index(root, self.settings)
        index = SourceIndex(
            root=root.as_posix(),
            strategy=layout.strategy,
            modules={
                name: ModuleEntry(
                    name=entry.name,
                    sources=list(entry.sources),
                    dependencies=list(entry.dependencies),
                    product=entry.product,
                )
                for name, entry in sorted(layout.modules.items())
            },
        )
        for rel_path in layout.files():
            module = layout.module_for_file(rel_path) or root.name
            parsed = self._parse_file(root, rel_path, module, index.warnings)
            if parsed is None:
                continue
            index.declarations.extend(parsed.declarations)
            index.identifiers.extend(parsed.identifiers)
            index.labels.extend(parsed.labels)

        self._sort(index)
        logger.info(
            "Indexed %d file(s): %d declarations, %d identifiers, %d labels",
            len(layout.files()),
            len(index.declarations),
            len(index.identifiers),
            len(index.labels),
        )
        return index

    # --- helpers ---
    def _parse_file(
        self, root: Path, rel_path: str, module: str, warnings: List[IndexWarning]
    ) -> Optional[ParsedSource]:
        adapter = self.registry.find(Path(rel_path).suffix)
        if adapter is None:
            return None
        try:
            content = (root / rel_path).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            warnings.append(IndexWarning(file=rel_path, reason=f"not valid UTF-8: {exc.reason}"))
            logger.warning("Skipping %s: not valid UTF-8", rel_path)
            return None
        except OSError as exc:
            warnings.append(IndexWarning(file=rel_path, reason=exc.strerror or str(exc)))
            logger.warning("Skipping %s: %s", rel_path, exc)
            return None
        return adapter.parse(content, rel_path, module)

    def _sort(self, index: SourceIndex) -> None:
        index.declarations.sort(key=lambda d: (d.module, d.file, d.line, d.name, d.kind))
        index.identifiers.sort(key=lambda i: (i.module, i.file, i.line, i.identifier))
        index.labels.sort(key=lambda label: (label.module, label.file, label.line, label.text))
        index.warnings.sort(key=lambda w: (w.file, w.reason))


def build_registry(settings: Settings) -> ParserRegistry:
    registry = ParserRegistry()
    extensions = {ext.lower() for ext in settings.source_extensions}
    if ".swift" in extensions:
        registry.register(SwiftParser(label_min_length=settings.label_min_length))
    return registry
