"""Manual override lookup.

Patterns come in three forms:
    "command.bottom.chats"   exact
    "home.header.*"          glob, `*` and `**` match any suffix at any depth
    "/^row\\.\\d+$/"         regular expression between slashes
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from ..errors import ConfigError
from ..models.records import AccessibilityElement, OverrideRule


def is_regex_pattern(pattern: str) -> bool:
    return len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/")


def is_prefix_pattern(pattern: str) -> bool:
    return "*" in pattern or is_regex_pattern(pattern)


def compile_pattern(pattern: str) -> Pattern[str]:
    if is_regex_pattern(pattern):
        try:
            return re.compile(pattern[1:-1])
        except re.error as exc:
            raise ConfigError(f"Invalid regular expression: {exc}", key=pattern) from exc
    return re.compile("^" + re.escape(pattern).replace(r"\*", ".*") + "$")


def literal_prefix(pattern: str) -> str:
    if is_regex_pattern(pattern):
        return ""
    return pattern.split("*", 1)[0]


def lookup_keys(element: AccessibilityElement) -> List[str]:
    keys: List[str] = []
    if element.identifier:
        keys.append(element.identifier)
    if element.label:
        keys.append(element.composite_key)
    return keys


@dataclass(slots=True)
class OverrideIndex:
    exact: Dict[str, Tuple[int, OverrideRule]] = field(default_factory=dict)
    prefix: List[Tuple[int, OverrideRule, Pattern[str]]] = field(default_factory=list)

    @classmethod
    def from_rules(cls, rules: Iterable[OverrideRule]) -> "OverrideIndex":
        """Index rules given in merge order; a later position wins ties."""
        index = cls()
        for position, rule in enumerate(rules):
            if is_prefix_pattern(rule.pattern):
                index.prefix.append((position, rule, compile_pattern(rule.pattern)))
            else:
                index.exact[rule.pattern] = (position, rule)
        return index

    def __len__(self) -> int:
        return len(self.exact) + len(self.prefix)

    def lookup(self, element: AccessibilityElement) -> Optional[OverrideRule]:
        keys = lookup_keys(element)
        if not keys:
            return None

        exact_hits = [self.exact[key] for key in keys if key in self.exact]
        if exact_hits:
            return max(exact_hits, key=lambda hit: hit[0])[1]

        best: Optional[Tuple[int, int, OverrideRule]] = None
        for position, rule, compiled in self.prefix:
            if not any(compiled.search(key) for key in keys):
                continue
            rank = (len(literal_prefix(rule.pattern)), position)
            if best is None or rank > best[:2]:
                best = (rank[0], rank[1], rule)
        return best[2] if best else None
