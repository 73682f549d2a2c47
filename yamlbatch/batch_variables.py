"""
The variable store: ordered, named scopes of string -> string bindings.

Lookup walks loop scopes (innermost first), then the global scope, then any
properties-file scopes (most recently loaded first), then the environment.
"""
from __future__ import annotations

import os
import re
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

ENVIRONMENT = "environment"
GLOBALS = "global"
LOOP = "foreach"

FOREACH_INDEX = "foreach.index"
FOREACH_ITER_KEY = "foreach.iteration.key"
FOREACH_ITER_VALUE = "foreach.iteration.value"

Scope = Dict[str, str]


class VariableStore:
    """Holds every scope a run can see; shared by all recursion levels of that run."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environment: Scope = dict(os.environ if environ is None else environ)
        self.globals: Scope = {}
        self._properties: Dict[str, Scope] = {}
        self._loops: List[Scope] = []

    # --- scopes ---
    def scopes(self) -> List[Tuple[str, Scope]]:
        """All scopes in lookup order."""
        out: List[Tuple[str, Scope]] = []
        for depth in range(len(self._loops) - 1, -1, -1):
            out.append((f"{LOOP}#{depth}", self._loops[depth]))
        out.append((GLOBALS, self.globals))
        for name in reversed(list(self._properties)):
            out.append((name, self._properties[name]))
        out.append((ENVIRONMENT, self.environment))
        return out

    @property
    def loop_depth(self) -> int:
        return len(self._loops)

    def lookup(self, key: str) -> Optional[str]:
        for _, scope in self.scopes():
            if key in scope:
                return scope[key]
        return None

    def __contains__(self, key: str) -> bool:
        return any(key in scope for _, scope in self.scopes())

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.lookup(key)
        return default if value is None else value

    def set_global(self, key: str, value: str):
        self.globals[key] = str(value)

    def set_properties(self, name: str, values: Mapping[str, str]):
        # Re-loading a name moves it to the front of the lookup order
        self._properties.pop(name, None)
        self._properties[name] = {str(k): str(v) for k, v in values.items()}

    def load_properties(self, name: str, path: str):
        self.set_properties(name, read_properties(path))

    def properties(self, name: str) -> Optional[Scope]:
        return self._properties.get(name)

    # --- loop scopes ---
    def push_loop_scope(self) -> Scope:
        scope: Scope = {}
        self._loops.append(scope)
        return scope

    def pop_loop_scope(self) -> Scope:
        if not self._loops:
            raise IndexError("no loop scope to pop")
        return self._loops.pop()

    @contextmanager
    def loop_scope(self) -> Iterator[Scope]:
        scope = self.push_loop_scope()
        try:
            yield scope
        finally:
            self.pop_loop_scope()

    def dump(self) -> str:
        """Human readable listing of every scope except the environment."""
        lines = []
        for name, scope in self.scopes():
            if name == ENVIRONMENT:
                lines.append(f"[{name}] ({len(scope)} entries)")
                continue
            lines.append(f"[{name}]")
            for k, v in scope.items():
                lines.append(f"  {k}={v}")
        return "\n".join(lines)


# --------------------------
# Properties files
# --------------------------

_SEPARATOR = re.compile(r'(?<!\\)\s*[=:]\s*|(?<!\\)\s+')


def parse_properties(text: str) -> Scope:
    """Parse `key=value` / `key: value` lines; `#` and `!` start comments; `\\` continues a line."""
    out: Scope = {}
    pending = ""
    for raw in text.splitlines():
        line = raw.strip() if not pending else raw.lstrip()
        if not pending and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            pending += line[:-1]
            continue
        line = pending + line
        pending = ""
        m = _SEPARATOR.search(line)
        if m is None:
            out[line] = ""
            continue
        out[line[:m.start()]] = line[m.end():]
    if pending:
        m = _SEPARATOR.search(pending)
        if m is None:
            out[pending] = ""
        else:
            out[pending[:m.start()]] = pending[m.end():]
    return out


def read_properties(path: str) -> Scope:
    with open(path, "r", encoding="utf-8") as f:
        return parse_properties(f.read())
