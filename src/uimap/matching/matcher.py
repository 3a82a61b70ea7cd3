"""Weighted signal matching of accessibility elements to source locations.

Every signal that fires proposes a (location, weight, detail) triple. Triples
are grouped by location and a location scores the maximum weight among its
signals. Manual overrides short-circuit the automatic signals entirely.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..config import MappingConfig
from ..models.records import (
    AccessibilityElement,
    Candidate,
    EnrichedNode,
    Evidence,
    LabelOccurrence,
    MappingResult,
    OverrideRule,
    SourceDeclaration,
    SourceIndex,
)
from ..registry.identifier_registry import (
    IdentifierRegistry,
    RegistryEntry,
    build_identifier_registry,
)
from .overrides import OverrideIndex

logger = logging.getLogger(__name__)

MANUAL_OVERRIDE = "manual_override"
IDENTIFIER_EXACT = "identifier_exact"
CLASS_NAME = "class_name"
IDENTIFIER_PREFIX = "identifier_prefix"
LABEL_EXACT = "label_exact"

SIGNAL_WEIGHTS: Dict[str, float] = {
    MANUAL_OVERRIDE: 1.0,
    IDENTIFIER_EXACT: 0.9,
    CLASS_NAME: 0.7,
    IDENTIFIER_PREFIX: 0.6,
    LABEL_EXACT: 0.5,
}

# Too generic to say anything about a subclass.
GENERIC_ELEMENT_TYPES = {"UIView"}


@dataclass(slots=True)
class _Accumulator:
    file: str
    line: int
    owner_type: Optional[str]
    module: Optional[str]
    depth: int
    evidence: List[Evidence] = field(default_factory=list)

    def add(self, evidence: Evidence) -> None:
        if any(e.signal == evidence.signal and e.detail == evidence.detail for e in self.evidence):
            return
        self.evidence.append(evidence)

    def to_candidate(self) -> Candidate:
        ordered = sorted(self.evidence, key=lambda e: (-e.weight, e.signal, e.detail))
        return Candidate(
            file=self.file,
            line=self.line,
            confidence=ordered[0].weight if ordered else 0.0,
            evidence=tuple(ordered),
            owner_type=self.owner_type,
            module=self.module,
            depth=self.depth,
        )


class CandidateMatcher:
    """Resolve accessibility elements against a SourceIndex.

    The index, configuration and registry are treated as read-only, so one
    matcher can be reused for every element of a snapshot.
    """

    def __init__(
        self,
        index: SourceIndex,
        config: Optional[MappingConfig] = None,
        registry: Optional[IdentifierRegistry] = None,
        max_alternatives: int = 4,
        signal_weights: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.index = index
        self.config = config or MappingConfig()
        self.registry = registry or build_identifier_registry(index, fingerprint="")
        self.max_alternatives = max_alternatives
        self.weights = dict(SIGNAL_WEIGHTS)
        if signal_weights:
            self.weights.update(signal_weights)
        self.overrides = OverrideIndex.from_rules(self.config.override_rules())
        self._priority = {name: idx for idx, name in enumerate(self.config.module_priority)}
        self._types_by_name: Dict[str, List[SourceDeclaration]] = {}
        self._types_by_supertype: Dict[str, List[SourceDeclaration]] = {}
        self._declarations_by_file: Dict[str, List[SourceDeclaration]] = {}
        self._labels: Dict[str, List[LabelOccurrence]] = {}
        self._build_lookups()

    # --- public API ---
    def match(self, element: AccessibilityElement) -> MappingResult:
        override = self.overrides.lookup(element)
        if override is not None:
            return self._override_result(element, override)

        candidates = self._collect(element)
        if not candidates:
            return MappingResult()
        ranked = sorted(candidates, key=self._rank_key)
        winner = ranked[0]
        runner_up = ranked[1] if len(ranked) > 1 else None
        return MappingResult(
            winner=winner,
            confidence=winner.confidence,
            evidence=winner.evidence,
            alternatives=tuple(ranked[1 : 1 + self.max_alternatives]),
            provenance="auto",
            ambiguous=runner_up is not None and runner_up.confidence == winner.confidence,
        )

    def match_tree(self, roots: Iterable[AccessibilityElement]) -> List[EnrichedNode]:
        return [self._match_node(root) for root in roots]

    # --- helpers ---
    def _match_node(self, element: AccessibilityElement) -> EnrichedNode:
        return EnrichedNode(
            element=element,
            result=self.match(element),
            children=[self._match_node(child) for child in element.children],
        )

    def _build_lookups(self) -> None:
        for declaration in self.index.declarations:
            self._declarations_by_file.setdefault(declaration.file, []).append(declaration)
            if declaration.kind != "type":
                continue
            self._types_by_name.setdefault(declaration.name, []).append(declaration)
            if declaration.conformances:
                supertype = declaration.conformances[0]
                self._types_by_supertype.setdefault(supertype, []).append(declaration)
        for label in self.index.labels:
            self._labels.setdefault(label.text, []).append(label)

    def _override_result(
        self, element: AccessibilityElement, rule: OverrideRule
    ) -> MappingResult:
        weight = SIGNAL_WEIGHTS[MANUAL_OVERRIDE]
        evidence = Evidence(
            signal=MANUAL_OVERRIDE,
            weight=weight,
            detail=f'Manual override "{rule.pattern}" for "{element.element_id}"',
            file=rule.file,
            line=rule.line,
        )
        winner = Candidate(
            file=rule.file,
            line=rule.line,
            confidence=weight,
            evidence=(evidence,),
            owner_type=rule.owner_type,
            module=rule.module or self.index.module_for_file(rule.file),
        )
        return MappingResult(
            winner=winner,
            confidence=weight,
            evidence=(evidence,),
            provenance="manual",
        )

    def _collect(self, element: AccessibilityElement) -> List[Candidate]:
        found: Dict[Tuple[str, int], _Accumulator] = {}

        def add(
            file: str,
            line: int,
            owner: Optional[str],
            module: Optional[str],
            depth: int,
            signal: str,
            detail: str,
        ) -> None:
            key = (file, line)
            if key not in found:
                found[key] = _Accumulator(file, line, owner, module, depth)
            found[key].add(
                Evidence(
                    signal=signal,
                    weight=self.weights[signal],
                    detail=detail,
                    file=file,
                    line=line,
                )
            )

        identifier = element.identifier
        if identifier:
            for entry in self.registry.lookup_exact(identifier):
                add(
                    entry.file,
                    entry.line,
                    entry.owner_type,
                    entry.module,
                    self._occurrence_depth(entry.file, entry.line, entry.owner_type),
                    IDENTIFIER_EXACT,
                    f'accessibilityIdentifier = "{identifier}"',
                )
            for entry, detail in self._prefix_entries(identifier):
                file, line, depth = self._owner_location(entry)
                add(file, line, entry.owner_type, entry.module, depth, IDENTIFIER_PREFIX, detail)

        element_type = element.element_type
        for declaration in self._types_by_name.get(element_type, ()):
            add(
                declaration.file,
                declaration.line,
                declaration.name,
                declaration.module,
                declaration.depth,
                CLASS_NAME,
                f'{declaration.type_kind or "type"} "{declaration.name}" '
                f'matches element type "{element_type}"',
            )
        if element_type not in GENERIC_ELEMENT_TYPES:
            for declaration in self._types_by_supertype.get(element_type, ()):
                add(
                    declaration.file,
                    declaration.line,
                    declaration.name,
                    declaration.module,
                    declaration.depth,
                    CLASS_NAME,
                    f'"{declaration.name}: {element_type}" inherits from element type',
                )

        if element.label:
            for label in self._labels.get(element.label, ()):
                add(
                    label.file,
                    label.line,
                    label.enclosing_declaration,
                    label.module,
                    self._occurrence_depth(label.file, label.line, label.enclosing_declaration),
                    LABEL_EXACT,
                    f'Label "{element.label}" found in source',
                )

        return [acc.to_candidate() for acc in found.values()]

    def _prefix_entries(self, identifier: str) -> List[Tuple[RegistryEntry, str]]:
        hits: List[Tuple[RegistryEntry, str]] = []
        patterns = self.registry.lookup_prefix(identifier)
        if patterns:
            longest = len(patterns[0].prefix or "")
            for entry in patterns:
                if len(entry.prefix or "") != longest:
                    break
                hits.append(
                    (entry, f'Pattern "{entry.identifier}" matches prefix "{entry.prefix}"')
                )
        for entry in self.registry.lookup_family(identifier):
            hits.append(
                (entry, f'Identifier "{entry.identifier}" shares prefix with "{identifier}"')
            )
        return hits

    def _enclosing(
        self, file: str, line: int, owner: Optional[str]
    ) -> Optional[SourceDeclaration]:
        if not owner:
            return None
        best: Optional[SourceDeclaration] = None
        for declaration in self._declarations_by_file.get(file, ()):
            if declaration.name != owner or declaration.kind == "associatedType":
                continue
            if declaration.line <= line and (best is None or declaration.line > best.line):
                best = declaration
        return best

    def _owner_location(self, entry: RegistryEntry) -> Tuple[str, int, int]:
        owner = self._enclosing(entry.file, entry.line, entry.owner_type)
        if owner is None:
            return entry.file, entry.line, 0
        return owner.file, owner.line, owner.depth

    def _occurrence_depth(self, file: str, line: int, owner: Optional[str]) -> int:
        declaration = self._enclosing(file, line, owner)
        return declaration.depth + 1 if declaration is not None else 0

    def _rank_key(self, candidate: Candidate) -> Tuple[float, int, int, str, int]:
        unlisted = len(self._priority)
        return (
            -candidate.confidence,
            self._priority.get(candidate.module or "", unlisted),
            candidate.depth,
            candidate.file,
            candidate.line,
        )


def match_snapshot(
    roots: Sequence[AccessibilityElement],
    index: SourceIndex,
    config: Optional[MappingConfig] = None,
    registry: Optional[IdentifierRegistry] = None,
    max_alternatives: int = 4,
    signal_weights: Optional[Mapping[str, float]] = None,
) -> List[EnrichedNode]:
    matcher = CandidateMatcher(
        index,
        config,
        registry=registry,
        max_alternatives=max_alternatives,
        signal_weights=signal_weights,
    )
    nodes = matcher.match_tree(roots)
    mapped = sum(1 for root in nodes for node in root.iter_nodes() if node.result.mapped)
    total = sum(1 for root in nodes for _ in root.iter_nodes())
    logger.info("Mapped %d of %d element(s)", mapped, total)
    return nodes
