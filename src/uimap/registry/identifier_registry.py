"""Persistent identifier registry.

The registry is a precomputed map from accessibility identifier literals to
the source locations that assign them. It is built from a SourceIndex,
stored as JSON next to the project, and reused until the source tree
changes.

Usage:
    store = RegistryStore(settings)
    registry = store.ensure(lambda: IndexerService(settings).build_index())

    registry.lookup_exact("submitButton")
    registry.lookup_prefix("card.7")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..config import Settings
from ..indexer.layout import collect_source_files
from ..indexer.utils import compute_fingerprint
from ..models.records import SourceIndex
from ..storage import atomic_write_json

logger = logging.getLogger(__name__)

REGISTRY_SCHEMA_VERSION = "1.0.0"

FAMILY_SEPARATORS = ".-_"


def family_prefix(identifier: str) -> Optional[str]:
    """Literal prefix up to the last separator, when an index tail follows it.

    "card.7" -> "card.", "row_12" -> "row_", "home.title" -> None
    """
    cut = max(identifier.rfind(sep) for sep in FAMILY_SEPARATORS)
    if cut <= 0 or not identifier[cut + 1 :].isdigit():
        return None
    return identifier[: cut + 1]


@dataclass(slots=True, frozen=True)
class RegistryEntry:
    identifier: str
    file: str
    line: int
    module: Optional[str] = None
    owner_type: Optional[str] = None
    match_type: str = "exact"
    prefix: Optional[str] = None
    context: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "file": self.file,
            "line": self.line,
            "module": self.module,
            "ownerType": self.owner_type,
            "matchType": self.match_type,
            "prefix": self.prefix,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEntry":
        return cls(
            identifier=str(data["identifier"]),
            file=str(data["file"]),
            line=int(data.get("line") or 1),
            module=data.get("module"),
            owner_type=data.get("ownerType"),
            match_type=str(data.get("matchType") or "exact"),
            prefix=data.get("prefix"),
            context=str(data.get("context") or ""),
        )


@dataclass(slots=True)
class IdentifierRegistry:
    root: str
    fingerprint: str
    generated_at: str
    exact: Dict[str, List[RegistryEntry]] = field(default_factory=dict)
    patterns: List[RegistryEntry] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def lookup_exact(self, identifier: str) -> List[RegistryEntry]:
        return list(self.exact.get(identifier, ()))

    def lookup_prefix(self, identifier: str) -> List[RegistryEntry]:
        """Pattern entries whose literal prefix starts the identifier, longest prefix first."""
        matches = [
            entry
            for entry in self.patterns
            if entry.prefix and identifier.startswith(entry.prefix)
        ]
        matches.sort(key=lambda e: (-len(e.prefix or ""), e.file, e.line))
        return matches

    def lookup_family(self, identifier: str) -> List[RegistryEntry]:
        """Exact entries that share the identifier's literal prefix, e.g. card.0 for card.7."""
        prefix = family_prefix(identifier)
        if prefix is None:
            return []
        family: List[RegistryEntry] = []
        for key in sorted(self.exact):
            if key != identifier and family_prefix(key) == prefix:
                family.extend(self.exact[key])
        return family

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": REGISTRY_SCHEMA_VERSION,
            "root": self.root,
            "fingerprint": self.fingerprint,
            "generatedAt": self.generated_at,
            "summary": dict(self.summary),
            "entries": {
                "exact": {
                    key: [entry.to_dict() for entry in entries]
                    for key, entries in sorted(self.exact.items())
                },
                "patterns": [entry.to_dict() for entry in self.patterns],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentifierRegistry":
        entries = data.get("entries") or {}
        return cls(
            root=str(data.get("root") or ""),
            fingerprint=str(data.get("fingerprint") or ""),
            generated_at=str(data.get("generatedAt") or ""),
            exact={
                key: [RegistryEntry.from_dict(item) for item in items]
                for key, items in (entries.get("exact") or {}).items()
            },
            patterns=[RegistryEntry.from_dict(item) for item in entries.get("patterns") or []],
            summary={k: int(v) for k, v in (data.get("summary") or {}).items()},
        )


def _index_files(index: SourceIndex) -> List[str]:
    files = set()
    for entry in index.modules.values():
        files.update(entry.sources)
    return sorted(files)


def build_identifier_registry(
    index: SourceIndex, fingerprint: Optional[str] = None
) -> IdentifierRegistry:
    files = _index_files(index)
    if fingerprint is None:
        fingerprint = compute_fingerprint(Path(index.root), files)
    exact: Dict[str, List[RegistryEntry]] = {}
    patterns: List[RegistryEntry] = []
    for occurrence in index.identifiers:
        entry = RegistryEntry(
            identifier=occurrence.identifier,
            file=occurrence.file,
            line=occurrence.line,
            module=occurrence.module,
            owner_type=occurrence.enclosing_declaration,
            match_type=occurrence.match_type,
            prefix=occurrence.prefix,
            context=occurrence.context,
        )
        if entry.match_type == "pattern":
            patterns.append(entry)
        else:
            exact.setdefault(entry.identifier, []).append(entry)
    return IdentifierRegistry(
        root=index.root,
        fingerprint=fingerprint,
        generated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        exact=exact,
        patterns=patterns,
        summary={
            "exactIdentifiers": len(exact),
            "patternIdentifiers": len(patterns),
            "modules": len(index.modules),
            "files": len(files),
        },
    )


def save_registry(registry: IdentifierRegistry, path: Path) -> None:
    atomic_write_json(path, registry.to_dict())
    logger.debug("Wrote identifier registry to %s", path)


def load_registry(path: Path, root: Path) -> Optional[IdentifierRegistry]:
    """Load a stored registry, or None when absent, unreadable or for another root."""
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        registry = IdentifierRegistry.from_dict(raw)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.warning("Ignoring unreadable registry %s: %s", path, exc)
        return None
    if Path(registry.root).resolve() != Path(root).resolve():
        logger.info("Registry %s was built for %s, not %s", path, registry.root, root)
        return None
    return registry


class RegistryStore:
    """Reuse a stored registry while the source tree is unchanged.

    The stored registry is rebuilt when the file is missing, a rebuild is
    requested, it was built for another root, or the source fingerprint has
    moved on.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.path = settings.resolved_registry_path
        self._hits = 0
        self._misses = 0
        self._last_reason: Optional[str] = None

    def current_fingerprint(self) -> str:
        root = self.settings.project_root
        files = collect_source_files(
            root, self.settings.source_extensions, self.settings.ignored_dirs
        )
        return compute_fingerprint(root, files)

    def ensure(
        self, index_factory: Callable[[], SourceIndex], rebuild: bool = False
    ) -> IdentifierRegistry:
        fingerprint = self.current_fingerprint()
        reason = "rebuild requested" if rebuild else None
        if reason is None:
            stored = load_registry(self.path, self.settings.project_root)
            if stored is None:
                reason = "no usable registry"
            elif stored.fingerprint != fingerprint:
                reason = "sources changed"
            else:
                self._hits += 1
                self._last_reason = "reused"
                logger.info("Reusing identifier registry %s", self.path)
                return stored

        self._misses += 1
        self._last_reason = reason
        logger.info("Building identifier registry (%s)", reason)
        registry = build_identifier_registry(index_factory(), fingerprint=fingerprint)
        save_registry(registry, self.path)
        return registry

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hit_count": self._hits,
            "miss_count": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0.0,
            "last_reason": self._last_reason,
            "path": str(self.path),
        }
