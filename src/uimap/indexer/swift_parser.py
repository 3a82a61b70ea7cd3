from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..models.records import (
    IdentifierOccurrence,
    LabelOccurrence,
    ParsedSource,
    SourceDeclaration,
)
from .base import ParserAdapter
from .utils import compute_stable_id

_ATTRIBUTES = r"(?P<attrs>(?:@[\w.]+(?:\([^)]*\))?\s+)*)"
_MODIFIERS = (
    r"(?P<modifiers>(?:(?:public|private|internal|fileprivate|open|package|final|"
    r"indirect|override|static|mutating|nonmutating|async|nonisolated|distributed)"
    r"(?:\(set\))?\s+)*)"
)

DECLARATION_RE = re.compile(
    r"^(?P<indent>\s*)" + _ATTRIBUTES + _MODIFIERS
    + r"(?P<keyword>class|struct|enum|protocol|actor)\s+(?P<name>[A-Za-z_]\w*)(?P<rest>.*)$"
)

EXTENSION_RE = re.compile(
    r"^(?P<indent>\s*)" + _ATTRIBUTES + _MODIFIERS
    + r"extension\s+(?P<name>[A-Za-z_][\w.]*)(?P<rest>.*)$"
)

ASSOCIATED_TYPE_RE = re.compile(
    r"^\s*associatedtype\s+(?P<name>[A-Za-z_]\w*)(?:\s*:\s*(?P<constraint>[^={]+))?"
)

# accessibilityIdentifier = "x", .accessibilityIdentifier("x"),
# accessibilityIdentifier: "x", setAccessibilityIdentifier("x")
IDENTIFIER_ASSIGN_RE = re.compile(
    r"[aA]ccessibilityIdentifier\s*(?:=|\(|:)\s*\"(?P<value>(?:[^\"\\]|\\.)*)\""
)

# `class func`, `class var` and friends are members, not declarations.
NON_TYPE_WORDS = {"func", "var", "let", "subscript", "init", "deinit", "typealias", "case"}

# Pattern to extract visibility modifiers from declarations
VISIBILITY_KEYWORDS = {"public", "open", "package", "internal", "fileprivate", "private"}

LABEL_REJECT_PREFIXES = ("#", "@", "{", "}", "[", "]")


def _extract_visibility(code: str) -> Optional[str]:
    """Extract visibility modifier from a declaration."""
    tokens = code.strip().split()
    for token in tokens[:5]:  # Check first few tokens
        token = token.split("(", 1)[0]
        if token in VISIBILITY_KEYWORDS:
            return token
    return None  # Default is internal in Swift, but we return None for unspecified


@dataclass(slots=True)
class _LexState:
    in_block_comment: bool = False
    in_multiline_string: bool = False


@dataclass(slots=True)
class _ScannedLine:
    bare: str  # comments removed, string literals collapsed to ""
    code: str  # comments removed, string literals intact
    literals: List[str] = field(default_factory=list)


@dataclass(slots=True)
class _Frame:
    name: str
    kind: str
    type_kind: Optional[str]
    level: int


@dataclass(slots=True)
class _PendingDeclaration:
    kind: str
    type_kind: Optional[str]
    name: str
    line: int
    depth: int
    enclosing: Optional[str]
    visibility: Optional[str]
    header: List[str] = field(default_factory=list)
    complete: bool = False


def _read_string(line: str, start: int) -> Tuple[int, str]:
    """Read a string literal body starting after the opening quote.

    Returns the index just past the closing quote and the raw body text,
    interpolations included verbatim.
    """
    chars: List[str] = []
    j = start
    n = len(line)
    while j < n:
        ch = line[j]
        if ch == "\\" and j + 1 < n:
            if line[j + 1] == "(":
                k = j + 2
                depth = 1
                while k < n and depth > 0:
                    if line[k] == "(":
                        depth += 1
                    elif line[k] == ")":
                        depth -= 1
                    k += 1
                chars.append(line[j:k])
                j = k
                continue
            chars.append(line[j : j + 2])
            j += 2
            continue
        if ch == '"':
            return j + 1, "".join(chars)
        chars.append(ch)
        j += 1
    return n, "".join(chars)


def _scan_line(line: str, state: _LexState) -> _ScannedLine:
    bare: List[str] = []
    code: List[str] = []
    literals: List[str] = []
    i = 0
    n = len(line)
    while i < n:
        if state.in_block_comment:
            end = line.find("*/", i)
            if end == -1:
                break
            state.in_block_comment = False
            i = end + 2
            continue
        if state.in_multiline_string:
            end = line.find('"""', i)
            if end == -1:
                break
            state.in_multiline_string = False
            bare.append('""')
            code.append('""')
            i = end + 3
            continue
        if line.startswith("//", i):
            break
        if line.startswith("/*", i):
            state.in_block_comment = True
            i += 2
            continue
        if line.startswith('"""', i):
            state.in_multiline_string = True
            i += 3
            continue
        ch = line[i]
        if ch == '"':
            end, text = _read_string(line, i + 1)
            literals.append(text)
            bare.append('""')
            code.append(line[i:end])
            i = end
            continue
        bare.append(ch)
        code.append(ch)
        i += 1
    return _ScannedLine(bare="".join(bare), code="".join(code), literals=literals)


def _skip_generic_params(text: str) -> str:
    stripped = text.lstrip()
    if not stripped.startswith("<"):
        return stripped
    depth = 0
    for idx, ch in enumerate(stripped):
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
            if depth == 0:
                return stripped[idx + 1 :]
    return ""


def parse_header(text: str) -> Tuple[List[str], Optional[str]]:
    """Split a declaration header tail into (conformances, where clause)."""
    clause = _skip_generic_params(text.split("{", 1)[0])
    where_clause = None
    match = re.search(r"\bwhere\b", clause)
    if match:
        where_clause = clause[match.end() :].strip() or None
        clause = clause[: match.start()]
    clause = clause.strip()
    if not clause.startswith(":"):
        return [], where_clause
    return parse_inherited_types(clause[1:]), where_clause


def parse_inherited_types(clause: str) -> List[str]:
    clause = clause.strip()
    if not clause:
        return []
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    for ch in clause:
        if ch == "<":
            depth += 1
            continue
        if ch == ">":
            if depth > 0:
                depth -= 1
            continue
        if depth > 0:
            continue
        if ch == ",":
            cleaned = _clean_inherited_token("".join(current))
            if cleaned:
                parts.append(cleaned)
            current = []
            continue
        current.append(ch)
    cleaned_tail = _clean_inherited_token("".join(current))
    if cleaned_tail:
        parts.append(cleaned_tail)
    return parts


def _clean_inherited_token(token: str) -> Optional[str]:
    candidate = token.strip()
    if not candidate:
        return None
    candidate = candidate.replace("?", "").replace("!", "")
    candidate = candidate.replace("any ", "")
    while candidate.endswith("{"):
        candidate = candidate[:-1].rstrip()
    return candidate or None


def _simplify_type_name(name: str) -> str:
    return name.split("<", 1)[0].strip()


class SwiftParser(ParserAdapter):
    """Line-oriented recognizer for Swift declarations and UI-facing strings.

    This is deliberately not a grammar parser. It walks the file once,
    tracking comment/string state and brace depth, and keeps a stack of the
    declarations whose bodies are open so every entry knows its lexical owner.
    """

    language = "swift"
    extensions = (".swift",)

    def __init__(self, label_min_length: int = 3) -> None:
        self._label_min_length = label_min_length

    def parse(self, source: str, path: str, module: str) -> ParsedSource:
        scanner = _FileScanner(path, module, self._label_min_length)
        for number, line in enumerate(source.splitlines(), start=1):
            scanner.feed(number, line)
        return scanner.finish()


class _FileScanner:
    def __init__(self, path: str, module: str, label_min_length: int) -> None:
        self.path = path
        self.module = module
        self.label_min_length = label_min_length
        self.lex = _LexState()
        self.stack: List[_Frame] = []
        self.brace_depth = 0
        self.pending: Optional[_PendingDeclaration] = None
        self.parsed = ParsedSource()

    # --- driving ---------------------------------------------------------
    def feed(self, number: int, raw_line: str) -> None:
        starts_in_string = self.lex.in_multiline_string
        scanned = _scan_line(raw_line, self.lex)
        bare = scanned.bare

        if self.pending is not None and not self.pending.complete:
            self._continue_header(bare)
        elif not starts_in_string:
            self._recognize_declaration(number, bare)

        self._record_strings(number, raw_line, scanned)
        self._count_braces(bare)

    def finish(self) -> ParsedSource:
        if self.pending is not None and not self.pending.complete:
            self._complete(self.pending)
        return self.parsed

    # --- declarations ----------------------------------------------------
    def _recognize_declaration(self, number: int, bare: str) -> None:
        match = DECLARATION_RE.match(bare)
        if match and match.group("name") not in NON_TYPE_WORDS:
            self._open_pending(
                kind="type",
                type_kind=match.group("keyword"),
                name=match.group("name"),
                line=number,
                modifiers=match.group("modifiers"),
                rest=match.group("rest"),
            )
            return
        match = EXTENSION_RE.match(bare)
        if match:
            self._open_pending(
                kind="extension",
                type_kind=None,
                name=_simplify_type_name(match.group("name")),
                line=number,
                modifiers=match.group("modifiers"),
                rest=match.group("rest"),
            )
            return
        match = ASSOCIATED_TYPE_RE.match(bare)
        if match:
            self._add_associated_type(number, match.group("name"), match.group("constraint"))

    def _open_pending(
        self,
        kind: str,
        type_kind: Optional[str],
        name: str,
        line: int,
        modifiers: str,
        rest: str,
    ) -> None:
        if self.pending is not None and not self.pending.complete:
            self._complete(self.pending)
        owner = self.stack[-1].name if self.stack else None
        self.pending = _PendingDeclaration(
            kind=kind,
            type_kind=type_kind,
            name=name,
            line=line,
            depth=len(self.stack),
            enclosing=owner,
            visibility=_extract_visibility(modifiers),
        )
        self._continue_header(rest)

    def _continue_header(self, text: str) -> None:
        if self.pending is None:
            return
        if "{" in text:
            self.pending.header.append(text.split("{", 1)[0])
            self._complete(self.pending)
            return
        self.pending.header.append(text)

    def _complete(self, pending: _PendingDeclaration) -> None:
        conformances, where_clause = parse_header(" ".join(pending.header))
        pending.complete = True
        self.parsed.declarations.append(
            SourceDeclaration(
                kind=pending.kind,
                type_kind=pending.type_kind,
                name=pending.name,
                module=self.module,
                file=self.path,
                line=pending.line,
                depth=pending.depth,
                conformances=tuple(conformances),
                where_clause=where_clause,
                enclosing_type=pending.enclosing,
                visibility=pending.visibility,
                stable_id=compute_stable_id(
                    "swift", self.module, f"{self.path}:{pending.line}:{pending.name}"
                ),
            )
        )

    def _add_associated_type(self, number: int, name: str, constraint: Optional[str]) -> None:
        protocol = next(
            (frame for frame in reversed(self.stack) if frame.type_kind == "protocol"),
            None,
        )
        if protocol is None:
            return
        conformances: List[str] = []
        where_clause = None
        if constraint:
            conformances, where_clause = parse_header(": " + constraint)
        self.parsed.declarations.append(
            SourceDeclaration(
                kind="associatedType",
                name=name,
                module=self.module,
                file=self.path,
                line=number,
                depth=len(self.stack),
                conformances=tuple(conformances),
                where_clause=where_clause,
                enclosing_type=protocol.name,
                stable_id=compute_stable_id(
                    "swift", self.module, f"{self.path}:{number}:{name}"
                ),
            )
        )

    # --- strings ---------------------------------------------------------
    def _record_strings(self, number: int, raw_line: str, scanned: _ScannedLine) -> None:
        owner = self.stack[-1].name if self.stack else None
        context = raw_line.strip()
        matches = list(IDENTIFIER_ASSIGN_RE.finditer(scanned.code))
        for match in matches:
            value = match.group("value")
            if not value:
                continue
            is_pattern = "\\(" in value
            self.parsed.identifiers.append(
                IdentifierOccurrence(
                    identifier=value,
                    module=self.module,
                    file=self.path,
                    line=number,
                    enclosing_declaration=owner,
                    match_type="pattern" if is_pattern else "exact",
                    prefix=value.split("\\(", 1)[0] if is_pattern else None,
                    context=context,
                )
            )
        if matches or "ccessibilityIdentifier" in scanned.code:
            return
        if scanned.bare.lstrip().startswith("import "):
            return
        for literal in scanned.literals:
            if not self._looks_like_label(literal):
                continue
            self.parsed.labels.append(
                LabelOccurrence(
                    text=literal,
                    module=self.module,
                    file=self.path,
                    line=number,
                    enclosing_declaration=owner,
                    context=context,
                )
            )

    def _looks_like_label(self, literal: str) -> bool:
        if len(literal) < self.label_min_length:
            return False
        if "\\" in literal:
            return False
        if literal.startswith(LABEL_REJECT_PREFIXES):
            return False
        if literal.startswith(("http:", "https:")):
            return False
        return True

    # --- braces ----------------------------------------------------------
    def _count_braces(self, bare: str) -> None:
        for ch in bare:
            if ch == "{":
                self.brace_depth += 1
                if self.pending is not None and self.pending.complete:
                    self.stack.append(
                        _Frame(
                            name=self.pending.name,
                            kind=self.pending.kind,
                            type_kind=self.pending.type_kind,
                            level=self.brace_depth,
                        )
                    )
                    self.pending = None
            elif ch == "}":
                if self.stack and self.stack[-1].level == self.brace_depth:
                    self.stack.pop()
                self.brace_depth = max(0, self.brace_depth - 1)
