from __future__ import annotations

from typing import List

from ..models.records import EnrichedNode
from .validator import CoverageMetrics


def format_metrics(metrics: CoverageMetrics) -> str:
    lines = [
        f"Mapping coverage: {metrics.coverage * 100:.1f}% ({metrics.mapped}/{metrics.total})",
        f"  High confidence (>=70%): {metrics.bands['HIGH']}",
        f"  Medium (40-70%):         {metrics.bands['MEDIUM']}",
        f"  Low (<40%):              {metrics.bands['LOW']}",
        f"  Unmapped:                {metrics.unmapped}",
        f"  Ambiguous:               {metrics.ambiguous}",
        f"  Manual overrides:        {metrics.manual}",
        f"  Files touched:           {metrics.files}",
        f"  Modules:                 {len(metrics.module_hits)}",
    ]
    if metrics.signal_counts:
        lines.append("  Signal usage:")
        for signal, count in sorted(metrics.signal_counts.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"    {signal}: {count}")
    return "\n".join(lines)


def explain_node(node: EnrichedNode) -> str:
    """Why the node mapped where it did, one fact per line."""
    element = node.element
    result = node.result
    lines: List[str] = [
        f"--- {element.element_id} ({element.element_type}) ---",
        f'  element: type={element.raw_type or element.element_type} '
        f'identifier="{element.identifier or ""}" label="{element.label or ""}"',
    ]
    winner = result.winner
    if winner is None:
        lines.append("  mapped: no")
        lines.append(f"  confidence: {result.confidence * 100:.0f}% [{result.confidence_band}]")
        return "\n".join(lines)

    owner = f" ({winner.owner_type})" if winner.owner_type else ""
    lines.append(f"  mapped: {winner.location}{owner}")
    flag = " AMBIGUOUS" if result.ambiguous else ""
    lines.append(
        f"  confidence: {result.confidence * 100:.0f}% [{result.confidence_band}, "
        f"{result.provenance}]{flag}"
    )
    if result.evidence:
        lines.append("  evidence:")
        for evidence in result.evidence:
            lines.append(f"    [{evidence.signal}] w={evidence.weight} {evidence.detail}")
    if result.alternatives:
        lines.append(f"  alternatives ({len(result.alternatives)}):")
        for candidate in result.alternatives:
            lines.append(f"    {candidate.location} conf={candidate.confidence * 100:.0f}%")
    return "\n".join(lines)
