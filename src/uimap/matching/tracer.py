"""Interaction tracing for mapped elements.

Given an enriched node, read the source around its winning location and look
for the code that wires it to behaviour: target-action selectors, gesture
recognizers, SwiftUI tap and button closures, UIAction closures and delegate
assignment. Handler functions named by a selector are resolved to their
definitions in the same file, together with the calls they make.

The result is a verdict: wired, likely_wired, likely_missing or display_only.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import InputError
from ..indexer.utils import is_within_root
from ..models.records import EnrichedNode

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 24
MAX_HANDLER_CALLS = 12

_SELECTOR = r"action:\s*#selector\((?:\w+\.)?(?P<handler>\w+)\)"

SIGNAL_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("target_action", re.compile(r"addTarget\s*\(.*" + _SELECTOR)),
    (
        "gesture_selector",
        re.compile(
            r"(?:UITapGestureRecognizer|UILongPressGestureRecognizer|UISwipeGestureRecognizer)"
            r"\s*\(.*" + _SELECTOR
        ),
    ),
    ("swiftui_on_tap_gesture", re.compile(r"\.onTapGesture(?:\s*\([^)]*\))?\s*\{")),
    ("swiftui_button_action", re.compile(r"Button\s*\([^)]*action:\s*\{")),
    ("swiftui_simultaneous_gesture", re.compile(r"\.simultaneousGesture\s*\(")),
    ("swiftui_high_priority_gesture", re.compile(r"\.highPriorityGesture\s*\(")),
    ("delegate_assignment", re.compile(r"\bdelegate\s*=\s*self\b")),
    ("control_event_closure", re.compile(r"UIAction\s*(?:\(\s*(?:handler:\s*)?)?\{")),
)

HANDLER_DEFINITION_RE = re.compile(
    r"^\s*(?:@IBAction\s+)?(?:@objc\s+)?"
    r"(?:(?:private|fileprivate|internal|public|open)\s+)?func\s+(?P<name>\w+)\s*\("
)
CALL_NAME_RE = re.compile(r"\b([A-Za-z_]\w*)\s*\(")

NON_CALL_WORDS = {
    "if",
    "for",
    "while",
    "switch",
    "guard",
    "return",
    "print",
    "assert",
    "fatalError",
    "init",
    "deinit",
    "super",
    "self",
    "map",
    "filter",
    "reduce",
    "func",
}

INTERACTIVE_TYPE_RE = re.compile(r"button|switch|slider|textfield|textview|cell|control", re.I)
INTERACTIVE_NAME_RE = re.compile(r"tap|button|cta|action|submit|save|create|delete|next|continue", re.I)


@dataclass(slots=True)
class InteractionSignal:
    kind: str
    line: int
    text: str
    handler: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "line": self.line, "text": self.text, "handler": self.handler}


@dataclass(slots=True)
class HandlerDefinition:
    name: str
    line: int
    calls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "line": self.line, "calls": list(self.calls)}


@dataclass(slots=True)
class InteractionTrace:
    element_id: str
    file: str
    focus_line: int
    snippet_start: int
    snippet_end: int
    snippet: List[Tuple[int, str]] = field(default_factory=list)
    signals: List[InteractionSignal] = field(default_factory=list)
    handlers: List[HandlerDefinition] = field(default_factory=list)
    status: str = "display_only"
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.element_id,
            "file": self.file,
            "focusLine": self.focus_line,
            "snippetStart": self.snippet_start,
            "snippetEnd": self.snippet_end,
            "signals": [signal.to_dict() for signal in self.signals],
            "handlers": [handler.to_dict() for handler in self.handlers],
            "verdict": {"status": self.status, "reason": self.reason},
        }


def trace_interaction(
    node: EnrichedNode, root: Path, context_lines: int = DEFAULT_CONTEXT_LINES
) -> InteractionTrace:
    """Trace how the source behind a mapped node handles interaction."""
    element = node.element
    winner = node.result.winner
    if winner is None or not winner.file:
        raise InputError(f"No mapped source file for {element.element_id}")
    if not is_within_root(root, winner.file):
        raise InputError(f"Refusing to read file outside project root: {winner.file}")
    path = root / winner.file
    if not path.is_file():
        raise InputError("Mapped source file not found", path=path)
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Unable to read mapped source ({exc})", path=path) from exc

    focus = _focus_line(winner.line, element.identifier, lines)
    start = max(1, focus - context_lines)
    end = min(len(lines), focus + context_lines)
    snippet = [(number, lines[number - 1]) for number in range(start, end + 1)]

    signals = collect_signals(snippet)
    wanted = {signal.handler for signal in signals if signal.handler}
    handlers = [
        HandlerDefinition(name=name, line=line, calls=extract_calls(lines, line))
        for name, line in collect_handler_definitions(lines, wanted)
    ]
    status, reason = classify(_looks_interactive(node), signals, handlers)
    logger.debug("Traced %s at %s:%d: %s", element.element_id, winner.file, focus, status)
    return InteractionTrace(
        element_id=element.element_id,
        file=winner.file,
        focus_line=focus,
        snippet_start=start,
        snippet_end=end,
        snippet=snippet,
        signals=signals,
        handlers=handlers,
        status=status,
        reason=reason,
    )


def _focus_line(line: int, identifier: Optional[str], lines: Sequence[str]) -> int:
    if line and 0 < line <= len(lines):
        return line
    if identifier:
        for number, text in enumerate(lines, start=1):
            if identifier in text:
                return number
    return 1


def collect_signals(snippet: Sequence[Tuple[int, str]]) -> List[InteractionSignal]:
    signals: List[InteractionSignal] = []
    for number, text in snippet:
        for kind, pattern in SIGNAL_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            handler = match.groupdict().get("handler")
            signals.append(InteractionSignal(kind=kind, line=number, text=text.strip(), handler=handler))
    return signals


def collect_handler_definitions(lines: Sequence[str], names: Set[str]) -> List[Tuple[str, int]]:
    """Function definitions in the file, restricted to names when any are given."""
    found: List[Tuple[str, int]] = []
    for number, text in enumerate(lines, start=1):
        match = HANDLER_DEFINITION_RE.match(text)
        if not match:
            continue
        name = match.group("name")
        if names and name not in names:
            continue
        found.append((name, number))
    return found


def extract_calls(lines: Sequence[str], start_line: int) -> List[str]:
    """Names called in the body of the function declared at start_line."""
    calls: List[str] = []
    depth = 0
    in_body = False
    for index in range(start_line - 1, len(lines)):
        text = lines[index]
        body_text = text
        for position, ch in enumerate(text):
            if ch == "{":
                if not in_body:
                    body_text = text[position + 1 :]
                    in_body = True
                depth += 1
            elif ch == "}":
                depth -= 1
        if in_body:
            for match in CALL_NAME_RE.finditer(body_text):
                name = match.group(1)
                if name not in NON_CALL_WORDS and name not in calls:
                    calls.append(name)
        if in_body and depth <= 0:
            break
    return calls[:MAX_HANDLER_CALLS]


def _looks_interactive(node: EnrichedNode) -> bool:
    element = node.element
    if INTERACTIVE_TYPE_RE.search(element.element_type):
        return True
    return any(
        INTERACTIVE_NAME_RE.search(text) for text in (element.label, element.identifier) if text
    )


def classify(
    interactive: bool,
    signals: Sequence[InteractionSignal],
    handlers: Sequence[HandlerDefinition],
) -> Tuple[str, str]:
    if signals:
        return "wired", "Interaction wiring found near the mapped source line"
    if handlers:
        return "likely_wired", "Handler definitions found but no local wiring"
    if interactive:
        return "likely_missing", "Element looks interactive but has no local wiring"
    return "display_only", "No interaction wiring found"
