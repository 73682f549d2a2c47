"""
Scripts and the cursor that walks them.

A Script is loaded once and never changes: comment and blank lines are dropped,
`include` lines are replaced by the lines of the file they name, and every
surviving line keeps the source name and line number it came from. A
ScriptCursor is the only mutable part: how far it has read, what it last
classified, and whether the script asked to be verbose.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from yamlbatch.batch_datatypes import ConfigurationError, Statement, StructuralError
from yamlbatch.batch_grammar import classify

_COMMENT = re.compile(r'^\s*(#|//)')
_INCLUDE = re.compile(r'^\s*include\s+(\S+)\s*$')


@dataclass(frozen=True)
class ScriptLine:
    source: str
    lineno: int
    text: str


def locate_script(path: str, base_dir: Optional[str]) -> str:
    """Resolve `path` against the including script's directory, then the working directory."""
    path = os.path.expanduser(path)
    if os.path.isabs(path):
        return path
    if base_dir:
        candidate = os.path.join(base_dir, path)
        if os.path.exists(candidate):
            return os.path.abspath(candidate)
    return os.path.abspath(path)


def _scan(text: str, source: str, base_dir: Optional[str], chain: Tuple[str, ...]) -> List[ScriptLine]:
    lines: List[ScriptLine] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or _COMMENT.match(stripped):
            continue
        m = _INCLUDE.match(stripped)
        if m is None:
            lines.append(ScriptLine(source, lineno, stripped))
            continue
        target = locate_script(m.group(1), base_dir)
        if target in chain:
            cycle = " -> ".join(list(chain) + [target])
            raise StructuralError(f"include cycle: {cycle}", source=source, lineno=lineno, line=stripped)
        if not os.path.isfile(target):
            raise ConfigurationError(f"included file not found: {m.group(1)}",
                                     source=source, lineno=lineno, line=stripped)
        with open(target, "r", encoding="utf-8") as f:
            included = f.read()
        lines.extend(_scan(included, target, os.path.dirname(target), chain + (target,)))
    return lines


class Script:
    """An immutable, comment-free sequence of script lines."""

    def __init__(self, name: str, lines: Sequence[ScriptLine], base_dir: Optional[str] = None):
        self.name = name
        self.lines: Tuple[ScriptLine, ...] = tuple(lines)
        self.base_dir = base_dir

    @classmethod
    def from_file(cls, path: str) -> 'Script':
        path = os.path.abspath(path)
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        base_dir = os.path.dirname(path)
        return cls(path, _scan(text, path, base_dir, (path,)), base_dir=base_dir)

    @classmethod
    def from_text(cls, text: str, name: str = "<script>", base_dir: Optional[str] = None) -> 'Script':
        return cls(name, _scan(text, name, base_dir, (name,)), base_dir=base_dir)

    def __len__(self) -> int:
        return len(self.lines)

    def __getitem__(self, idx: int) -> ScriptLine:
        return self.lines[idx]

    def __iter__(self) -> Iterator[ScriptLine]:
        return iter(self.lines)

    def __repr__(self) -> str:
        return f"<Script {self.name} ({len(self.lines)} lines)>"


class ScriptCursor:
    """Single-pass reader over a Script.

    `position` counts the lines consumed so far and never moves backwards.
    `fork()` gives an independent cursor at the same place, which is how a
    loop body is replayed once per iteration.
    """

    def __init__(self, script: Script, *, verbose: bool = False):
        self.script = script
        self.verbose = verbose
        self._pos = 0
        self._line: Optional[ScriptLine] = None
        self._stmt: Optional[Statement] = None

    @property
    def position(self) -> int:
        return self._pos

    @property
    def current_line(self) -> Optional[ScriptLine]:
        return self._line

    @property
    def statement(self) -> Optional[Statement]:
        return self._stmt

    @property
    def source(self) -> str:
        return self._line.source if self._line else self.script.name

    @property
    def lineno(self) -> int:
        return self._line.lineno if self._line else 0

    @property
    def text(self) -> Optional[str]:
        return self._line.text if self._line else None

    def has_next(self) -> bool:
        return self._pos < len(self.script)

    def peek(self) -> Optional[ScriptLine]:
        return self.script[self._pos] if self.has_next() else None

    def next_statement(self) -> Statement:
        """Advance one line and classify it."""
        if not self.has_next():
            raise IndexError(f"no more lines in {self.script.name}")
        self._line = self.script[self._pos]
        self._pos += 1
        self._stmt = classify(self._line.text)
        return self._stmt

    def skip_line(self) -> Statement:
        """Advance past a line that will not be executed; it is still classified."""
        return self.next_statement()

    def fork(self) -> 'ScriptCursor':
        other = ScriptCursor(self.script, verbose=self.verbose)
        other._pos = self._pos
        other._line = self._line
        other._stmt = self._stmt
        return other

    def get_state(self) -> str:
        if self._line is None:
            return f"{self.script.name} (nothing read yet)"
        return f"{self._line.source} line# {self._line.lineno}: {self._line.text}"

    def __repr__(self) -> str:
        return f"<ScriptCursor {self.get_state()} position={self._pos}/{len(self.script)}>"
