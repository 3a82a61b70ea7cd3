from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

HIGH_CONFIDENCE = 0.70
MEDIUM_CONFIDENCE = 0.40


def confidence_band(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "HIGH"
    if confidence >= MEDIUM_CONFIDENCE:
        return "MEDIUM"
    return "LOW"


@dataclass(slots=True, frozen=True)
class SourceDeclaration:
    kind: str  # type, extension, associatedType
    name: str
    module: str
    file: str
    line: int
    stable_id: str
    type_kind: Optional[str] = None  # class, struct, enum, protocol, actor
    depth: int = 0
    conformances: Tuple[str, ...] = ()
    where_clause: Optional[str] = None
    enclosing_type: Optional[str] = None
    visibility: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "typeKind": self.type_kind,
            "name": self.name,
            "module": self.module,
            "file": self.file,
            "line": self.line,
            "depth": self.depth,
            "conformances": list(self.conformances),
            "whereClause": self.where_clause,
            "enclosingType": self.enclosing_type,
            "visibility": self.visibility,
            "stableId": self.stable_id,
        }


@dataclass(slots=True, frozen=True)
class IdentifierOccurrence:
    identifier: str
    module: str
    file: str
    line: int
    enclosing_declaration: Optional[str] = None
    match_type: str = "exact"  # exact, pattern
    prefix: Optional[str] = None
    context: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "module": self.module,
            "file": self.file,
            "line": self.line,
            "enclosingDeclaration": self.enclosing_declaration,
            "matchType": self.match_type,
            "prefix": self.prefix,
            "context": self.context,
        }


@dataclass(slots=True, frozen=True)
class LabelOccurrence:
    """A string literal that plausibly renders as visible text."""
    text: str
    module: str
    file: str
    line: int
    enclosing_declaration: Optional[str] = None
    context: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "module": self.module,
            "file": self.file,
            "line": self.line,
            "enclosingDeclaration": self.enclosing_declaration,
            "context": self.context,
        }


@dataclass(slots=True)
class ModuleEntry:
    name: str
    sources: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    product: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sources": list(self.sources),
            "dependencies": list(self.dependencies),
            "product": self.product,
        }


@dataclass(slots=True, frozen=True)
class IndexWarning:
    file: str
    reason: str


@dataclass(slots=True)
class ParsedSource:
    """Everything one adapter recognized in a single file."""
    declarations: List[SourceDeclaration] = field(default_factory=list)
    identifiers: List[IdentifierOccurrence] = field(default_factory=list)
    labels: List[LabelOccurrence] = field(default_factory=list)


@dataclass(slots=True)
class SourceIndex:
    root: str
    strategy: str
    modules: Dict[str, ModuleEntry] = field(default_factory=dict)
    declarations: List[SourceDeclaration] = field(default_factory=list)
    identifiers: List[IdentifierOccurrence] = field(default_factory=list)
    labels: List[LabelOccurrence] = field(default_factory=list)
    warnings: List[IndexWarning] = field(default_factory=list)

    def module_for_file(self, file: str) -> Optional[str]:
        for name in sorted(self.modules):
            if file in self.modules[name].sources:
                return name
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "modules": len(self.modules),
            "files": sum(len(m.sources) for m in self.modules.values()),
            "declarations": len(self.declarations),
            "identifiers": len(self.identifiers),
            "labels": len(self.labels),
            "warnings": len(self.warnings),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "strategy": self.strategy,
            "modules": {name: self.modules[name].to_dict() for name in sorted(self.modules)},
            "declarations": [d.to_dict() for d in self.declarations],
            "identifiers": [i.to_dict() for i in self.identifiers],
            "labels": [label.to_dict() for label in self.labels],
            "warnings": [{"file": w.file, "reason": w.reason} for w in self.warnings],
        }


@dataclass(slots=True, frozen=True)
class Frame:
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass(slots=True)
class AccessibilityElement:
    element_type: str
    identifier: Optional[str] = None
    label: Optional[str] = None
    frame: Frame = field(default_factory=Frame)
    children: List["AccessibilityElement"] = field(default_factory=list)
    raw_type: Optional[str] = None
    value: Optional[str] = None
    enabled: bool = True

    @property
    def composite_key(self) -> str:
        return f"{self.element_type}_{self.label or ''}"

    @property
    def element_id(self) -> str:
        return self.identifier or self.composite_key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.element_id,
            "elementType": self.element_type,
            "rawType": self.raw_type,
            "identifier": self.identifier,
            "label": self.label,
            "value": self.value,
            "enabled": self.enabled,
            "frame": self.frame.to_dict(),
        }


@dataclass(slots=True)
class OverrideRule:
    pattern: str
    file: str
    line: int = 1
    owner_type: Optional[str] = None
    module: Optional[str] = None
    source: Optional[str] = None


@dataclass(slots=True)
class CriticalMapping:
    pattern: str
    min_confidence: float = 0.7


@dataclass(slots=True, frozen=True)
class Evidence:
    signal: str
    weight: float
    detail: str
    file: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal": self.signal,
            "weight": self.weight,
            "detail": self.detail,
            "file": self.file,
            "line": self.line,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evidence":
        return cls(
            signal=str(data.get("signal", "")),
            weight=float(data.get("weight") or 0.0),
            detail=str(data.get("detail", "")),
            file=data.get("file"),
            line=data.get("line"),
        )


@dataclass(slots=True, frozen=True)
class Candidate:
    file: str
    line: int
    confidence: float
    evidence: Tuple[Evidence, ...] = ()
    owner_type: Optional[str] = None
    module: Optional[str] = None
    depth: int = 0

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "ownerType": self.owner_type,
            "module": self.module,
            "depth": self.depth,
            "confidence": self.confidence,
            "evidence": [e.to_dict() for e in self.evidence],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        return cls(
            file=str(data.get("file", "")),
            line=int(data.get("line") or 1),
            confidence=float(data.get("confidence") or 0.0),
            evidence=tuple(Evidence.from_dict(e) for e in data.get("evidence") or []),
            owner_type=data.get("ownerType"),
            module=data.get("module"),
            depth=int(data.get("depth") or 0),
        )


@dataclass(slots=True, frozen=True)
class MappingResult:
    winner: Optional[Candidate] = None
    confidence: float = 0.0
    evidence: Tuple[Evidence, ...] = ()
    alternatives: Tuple[Candidate, ...] = ()
    provenance: str = "auto"  # auto, manual
    ambiguous: bool = False

    @property
    def confidence_band(self) -> str:
        return confidence_band(self.confidence)

    @property
    def mapped(self) -> bool:
        return self.winner is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner": self.winner.to_dict() if self.winner else None,
            "confidence": self.confidence,
            "confidenceBand": self.confidence_band,
            "evidence": [e.to_dict() for e in self.evidence],
            "alternatives": [c.to_dict() for c in self.alternatives],
            "provenance": self.provenance,
            "ambiguous": self.ambiguous,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingResult":
        winner = data.get("winner")
        return cls(
            winner=Candidate.from_dict(winner) if winner else None,
            confidence=float(data.get("confidence") or 0.0),
            evidence=tuple(Evidence.from_dict(e) for e in data.get("evidence") or []),
            alternatives=tuple(Candidate.from_dict(c) for c in data.get("alternatives") or []),
            provenance=str(data.get("provenance") or "auto"),
            ambiguous=bool(data.get("ambiguous", False)),
        )


@dataclass(slots=True)
class EnrichedNode:
    element: AccessibilityElement
    result: MappingResult
    children: List["EnrichedNode"] = field(default_factory=list)

    def iter_nodes(self) -> Iterator["EnrichedNode"]:
        stack = [self]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def to_dict(self) -> Dict[str, Any]:
        payload = self.element.to_dict()
        payload["mapping"] = self.result.to_dict()
        payload["children"] = [child.to_dict() for child in self.children]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnrichedNode":
        frame = data.get("frame") or {}
        element = AccessibilityElement(
            element_type=str(data.get("elementType") or "UIView"),
            identifier=data.get("identifier") or None,
            label=data.get("label") or None,
            frame=Frame(
                x=float(frame.get("x", 0.0)),
                y=float(frame.get("y", 0.0)),
                w=float(frame.get("w", 0.0)),
                h=float(frame.get("h", 0.0)),
            ),
            raw_type=data.get("rawType"),
            value=data.get("value"),
            enabled=bool(data.get("enabled", True)),
        )
        return cls(
            element=element,
            result=MappingResult.from_dict(data.get("mapping") or {}),
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )
