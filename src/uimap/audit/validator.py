"""Offline audit of enriched hierarchies.

Replays a saved enriched hierarchy against the critical mappings asserted in
configuration and computes coverage metrics. Rule failures are collected into
the report; turning them into a failing exit status is left to the caller.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..config import MappingConfig
from ..errors import ConfigError, InputError
from ..matching.overrides import compile_pattern
from ..models.records import (
    CriticalMapping,
    EnrichedNode,
    confidence_band,
)
from ..storage import atomic_write_json

logger = logging.getLogger(__name__)

HIERARCHY_SCHEMA_VERSION = "1.0.0"
REPORT_FILE_NAME = "mapping-report.json"
FAILURES_FILE_NAME = "failures.json"
UNRESOLVED_LIMIT = 50

# Root container elements that never map to app source.
CONTAINER_TYPES = {"UIApplication"}


def pattern_matches(pattern: str, value: Optional[str]) -> bool:
    if not pattern or not value:
        return False
    try:
        return compile_pattern(pattern).search(value) is not None
    except ConfigError:
        logger.warning("Ignoring invalid pattern %s", pattern)
        return False


@dataclass(slots=True)
class RuleOutcome:
    pattern: str
    min_confidence: float
    passed: bool
    best_confidence: float = 0.0
    best_element: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "minConfidence": self.min_confidence,
            "passed": self.passed,
            "bestConfidence": self.best_confidence,
            "bestElement": self.best_element,
            "reason": self.reason,
        }


@dataclass(slots=True)
class CoverageMetrics:
    total: int = 0
    mapped: int = 0
    with_identifier: int = 0
    bands: Dict[str, int] = field(default_factory=lambda: {"HIGH": 0, "MEDIUM": 0, "LOW": 0})
    ambiguous: int = 0
    manual: int = 0
    auto: int = 0
    signal_counts: Dict[str, int] = field(default_factory=dict)
    module_hits: Dict[str, int] = field(default_factory=dict)
    files: int = 0

    @property
    def unmapped(self) -> int:
        return self.total - self.mapped

    @property
    def coverage(self) -> float:
        return self.mapped / self.total if self.total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "mapped": self.mapped,
            "unmapped": self.unmapped,
            "coverage": round(self.coverage, 4),
            "withIdentifier": self.with_identifier,
            "bands": dict(self.bands),
            "ambiguous": self.ambiguous,
            "provenance": {"manual": self.manual, "auto": self.auto},
            "signalCounts": dict(sorted(self.signal_counts.items())),
            "moduleHits": dict(sorted(self.module_hits.items())),
            "files": self.files,
        }


@dataclass(slots=True)
class AuditReport:
    passed: bool
    rule_outcomes: List[RuleOutcome]
    metrics: CoverageMetrics
    unresolved: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: str = ""

    @property
    def failures(self) -> List[RuleOutcome]:
        return [outcome for outcome in self.rule_outcomes if not outcome.passed]

    def report_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": HIERARCHY_SCHEMA_VERSION,
            "generatedAt": self.generated_at,
            "passed": self.passed,
            "metrics": self.metrics.to_dict(),
            "critical": {
                "total": len(self.rule_outcomes),
                "passed": len(self.rule_outcomes) - len(self.failures),
                "failed": len(self.failures),
                "rules": [outcome.to_dict() for outcome in self.rule_outcomes],
            },
        }

    def failures_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": HIERARCHY_SCHEMA_VERSION,
            "generatedAt": self.generated_at,
            "criticalFailures": [outcome.to_dict() for outcome in self.failures],
            "unresolved": list(self.unresolved),
        }


def flatten(nodes: Iterable[EnrichedNode]) -> List[EnrichedNode]:
    return [node for root in nodes for node in root.iter_nodes()]


def _candidate_values(node: EnrichedNode) -> List[str]:
    element = node.element
    values = [element.element_id, element.identifier, element.composite_key, element.label]
    return [value for value in values if value]


def evaluate_critical_mappings(
    nodes: Sequence[EnrichedNode], rules: Iterable[CriticalMapping]
) -> List[RuleOutcome]:
    """Check every rule against the flattened nodes."""
    outcomes: List[RuleOutcome] = []
    for rule in rules:
        if not rule.pattern:
            continue
        matching = [
            node
            for node in nodes
            if any(pattern_matches(rule.pattern, value) for value in _candidate_values(node))
        ]
        if not matching:
            outcomes.append(
                RuleOutcome(
                    pattern=rule.pattern,
                    min_confidence=rule.min_confidence,
                    passed=False,
                    reason="no matching element",
                )
            )
            continue
        best = max(matching, key=lambda node: node.result.confidence)
        confidence = best.result.confidence
        passed = confidence >= rule.min_confidence
        outcomes.append(
            RuleOutcome(
                pattern=rule.pattern,
                min_confidence=rule.min_confidence,
                passed=passed,
                best_confidence=confidence,
                best_element=best.element.element_id,
                reason=None
                if passed
                else f"best confidence {round(confidence * 100)}% on {best.element.element_id}",
            )
        )
    return outcomes


def compute_metrics(nodes: Sequence[EnrichedNode]) -> CoverageMetrics:
    metrics = CoverageMetrics()
    files = set()
    for node in nodes:
        result = node.result
        metrics.total += 1
        if node.element.identifier:
            metrics.with_identifier += 1
        metrics.bands[confidence_band(result.confidence)] += 1
        if result.ambiguous:
            metrics.ambiguous += 1
        for evidence in result.evidence:
            signal = evidence.signal
            metrics.signal_counts[signal] = metrics.signal_counts.get(signal, 0) + 1
        if result.winner is None:
            continue
        metrics.mapped += 1
        if result.provenance == "manual":
            metrics.manual += 1
        else:
            metrics.auto += 1
        files.add(result.winner.file)
        if result.winner.module:
            module = result.winner.module
            metrics.module_hits[module] = metrics.module_hits.get(module, 0) + 1
    metrics.files = len(files)
    return metrics


def _unresolved(nodes: Sequence[EnrichedNode]) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    for node in nodes:
        result = node.result
        if result.winner is not None and result.confidence_band != "LOW":
            continue
        entries.append(
            {
                "id": node.element.element_id,
                "identifier": node.element.identifier,
                "elementType": node.element.element_type,
                "confidence": result.confidence,
                "confidenceBand": result.confidence_band,
            }
        )
    return entries[:UNRESOLVED_LIMIT]


def audit_hierarchy(
    hierarchy: Sequence[EnrichedNode], config: Optional[MappingConfig] = None
) -> AuditReport:
    config = config or MappingConfig()
    nodes = [
        node
        for node in flatten(hierarchy)
        if node.element.element_type not in CONTAINER_TYPES
    ]
    outcomes = evaluate_critical_mappings(nodes, config.critical_rules())
    metrics = compute_metrics(nodes)
    report = AuditReport(
        passed=all(outcome.passed for outcome in outcomes),
        rule_outcomes=outcomes,
        metrics=metrics,
        unresolved=_unresolved(nodes),
        generated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )
    logger.info(
        "Audit: coverage %.1f%%, %d/%d critical rule(s) failed",
        metrics.coverage * 100,
        len(report.failures),
        len(outcomes),
    )
    return report


def write_artifacts(report: AuditReport, out_dir: Path) -> Dict[str, Path]:
    report_path = out_dir / REPORT_FILE_NAME
    failures_path = out_dir / FAILURES_FILE_NAME
    atomic_write_json(report_path, report.report_dict())
    atomic_write_json(failures_path, report.failures_dict())
    logger.debug("Wrote audit artifacts to %s", out_dir)
    return {"report": report_path, "failures": failures_path}


def hierarchy_to_dict(
    nodes: Sequence[EnrichedNode], root: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "schemaVersion": HIERARCHY_SCHEMA_VERSION,
        "root": root,
        "nodes": [node.to_dict() for node in nodes],
    }


def load_hierarchy(path: Path) -> List[EnrichedNode]:
    if not path.exists():
        raise InputError("Hierarchy not found", path=path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Unable to read hierarchy ({exc})", path=path) from exc
    except json.JSONDecodeError as exc:
        raise InputError(f"Malformed hierarchy JSON at line {exc.lineno}", path=path) from exc
    if isinstance(data, dict):
        data = data.get("nodes") or []
    if not isinstance(data, list):
        raise InputError("Hierarchy must hold a list of nodes", path=path)
    return [EnrichedNode.from_dict(item) for item in data if isinstance(item, dict)]
