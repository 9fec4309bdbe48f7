"""
ttcn-orchestrator — TTCN-3 definition scanner

File: src/ttcn_orchestrator/source/parser.py

Purpose
- Extract module names, ``testcase`` definitions and ``control`` parts from
  TTCN-3 source, including definitions nested in ``group`` blocks, together
  with tags from the comment block that directly precedes each definition.

Scope
- This is a scanner, not a TTCN-3 parser: it understands comments, string
  literals, braces and statement boundaries and nothing more.
- Structural problems (unterminated comment or string, unbalanced braces,
  no module) are reported through ``SourceTree.error``; the scan never raises
  for bad input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Literal

DefinitionKind = Literal["testcase", "control"]
Tag = tuple[str, str]

_TOKEN_RE: Final[re.Pattern[str]] = re.compile(
    r"""
      (?P<comment>//[^\n]*|/\*.*?\*/)
    | (?P<open_comment>/\*)
    | (?P<string>"(?:[^"]|"")*")
    | (?P<open_string>")
    | (?P<quoted>'[^'\n]*'[A-Za-z]?)
    | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<punct>[{}();])
    | (?P<space>\s+)
    | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)
_TAG_LINE_RE: Final[re.Pattern[str]] = re.compile(r"^(@[^\s:]+)(?:\s*:\s*(.*?))?\s*$")
_COMMENT_MARKERS: Final[str] = "/* \t"
_VISIBILITY: Final[frozenset[str]] = frozenset({"public", "private", "friend"})


@dataclass(frozen=True, slots=True)
class Definition:
    """A test case or control part found in a module body."""

    kind: DefinitionKind
    module: str
    name: str
    tags: tuple[Tag, ...] = ()
    line: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}"


@dataclass(frozen=True, slots=True)
class SourceTree:
    """Scan result for one file; ``error`` is set when the file is unusable."""

    path: str
    definitions: tuple[Definition, ...] = ()
    modules: tuple[str, ...] = ()
    error: str | None = None

    def testcases(self) -> tuple[Definition, ...]:
        return tuple(item for item in self.definitions if item.kind == "testcase")

    def controls(self) -> tuple[Definition, ...]:
        return tuple(item for item in self.definitions if item.kind == "control")


def find_tags(comments: list[str] | tuple[str, ...]) -> tuple[Tag, ...]:
    """Return ``(key, value)`` pairs for ``@key`` / ``@key: value`` comment lines."""

    tags: list[Tag] = []
    for comment in comments:
        for raw_line in comment.splitlines():
            line = raw_line.strip().lstrip(_COMMENT_MARKERS)
            if line.endswith("*/"):
                line = line[:-2]
            match = _TAG_LINE_RE.match(line.strip())
            if match is None:
                continue
            tags.append((match.group(1), match.group(2) or ""))
    return tuple(tags)


def parse_source(path: str, data: bytes) -> SourceTree:
    """Scan ``data`` (the bytes of ``path``) for test and control definitions."""

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        return SourceTree(path=path, error=f"{path}: not valid UTF-8: {exc.reason}")

    scanner = _Scanner(path)
    return scanner.run(text)


class _Scanner:
    __slots__ = (
        "_bodies",
        "_definitions",
        "_depth",
        "_expect",
        "_line",
        "_module",
        "_modules",
        "_path",
        "_pending_comments",
        "_statement_comments",
        "_statement_start",
        "_statement_words",
    )

    def __init__(self, path: str) -> None:
        self._path = path
        self._line = 1
        self._depth = 0
        # Brace depths whose contents are module-level definitions: the module
        # body and every enclosing ``group`` body.
        self._bodies: list[int] = []
        self._module: str | None = None
        self._modules: list[str] = []
        self._definitions: list[Definition] = []
        self._pending_comments: list[str] = []
        self._statement_comments: list[str] = []
        self._statement_start = True
        self._statement_words: list[str] = []
        self._expect: str | None = None

    def run(self, text: str) -> SourceTree:
        for match in _TOKEN_RE.finditer(text):
            kind = match.lastgroup
            value = match.group()
            if kind in {"open_comment", "open_string"}:
                what = "comment" if kind == "open_comment" else "string literal"
                return self._fail(f"unterminated {what}")

            if kind == "comment":
                self._pending_comments.append(value)
            elif kind in {"word", "punct", "string", "quoted", "other"}:
                error = self._token(kind, value)
                if error is not None:
                    return self._fail(error)
                self._pending_comments = []
            self._line += value.count("\n")

        if self._depth != 0:
            return self._fail("unbalanced braces at end of file")
        if not self._modules:
            return self._fail("no module definition found")
        return SourceTree(
            path=self._path,
            definitions=tuple(self._definitions),
            modules=tuple(self._modules),
        )

    def _in_body(self) -> bool:
        return bool(self._bodies) and self._bodies[-1] == self._depth

    def _token(self, kind: str | None, value: str) -> str | None:
        in_body = self._in_body()
        if in_body and self._statement_start:
            self._statement_comments = self._pending_comments
            self._statement_start = False
            self._statement_words = []

        expect = self._expect
        self._expect = None

        if kind == "word":
            if expect == "module":
                self._module = value
                self._modules.append(value)
                return None
            if expect == "testcase":
                self._add("testcase", value)
                return None
            if expect == "group":
                self._expect = "group_body"
                return None
            if self._depth == 0 and value == "module":
                self._expect = "module"
            elif (
                in_body
                and value in {"testcase", "control", "group"}
                and self._leads_statement()
            ):
                self._expect = value
            if in_body:
                self._statement_words.append(value)
            return None

        if value == "{":
            if expect == "control":
                self._add("control", "control")
            self._depth += 1
            if self._depth == 1 or expect == "group_body":
                self._bodies.append(self._depth)
                self._statement_start = True
            return None

        if value == "}":
            if self._in_body():
                self._bodies.pop()
            self._depth -= 1
            if self._depth < 0:
                return "unbalanced closing brace"
            if self._in_body():
                self._statement_start = True
            elif self._depth == 0:
                self._module = None
            return None

        if value == ";" and in_body:
            self._statement_start = True
        return None

    def _leads_statement(self) -> bool:
        return all(word in _VISIBILITY for word in self._statement_words)

    def _add(self, kind: DefinitionKind, name: str) -> None:
        if self._module is None:
            return
        self._definitions.append(
            Definition(
                kind=kind,
                module=self._module,
                name=name,
                tags=find_tags(self._statement_comments),
                line=self._line,
            )
        )

    def _fail(self, message: str) -> SourceTree:
        return SourceTree(path=self._path, error=f"{self._path}:{self._line}: {message}")


__all__ = [
    "Definition",
    "DefinitionKind",
    "SourceTree",
    "Tag",
    "find_tags",
    "parse_source",
]
