"""
The boundary between the batch language and the command families it does not
know about. Any line the grammar classifies as Generic is handed to the family
registered under its first word.
"""
from __future__ import annotations

import re
import shlex
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from yamlbatch.batch_datatypes import (
    BatchError, BackendError, ClassificationError, UnknownCommandError,
    QuoteStyle, YamlLibrary, EXIT_BACKEND_CONSTRUCTION, EXIT_UNKNOWN_BACKEND_CLASS,
)
from yamlbatch.batch_macros import expand
from yamlbatch.batch_memory import DocumentMemory
from yamlbatch.batch_variables import VariableStore


@dataclass
class BackendArgs:
    """Parsed arguments of one backend line; families subclass this."""
    command: str = ""
    quote_style: QuoteStyle = QuoteStyle.UNDEFINED
    verbose: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


class Backend(ABC):
    """A family of document commands selected by a keyword."""

    keyword: str = ""

    def __init__(self, *, verbose: bool = False,
                 library: YamlLibrary = YamlLibrary.PYYAML,
                 memory: Optional[DocumentMemory] = None):
        self.verbose = verbose
        self.library = library
        self.memory = memory

    @abstractmethod
    def parse_args(self, tokens: List[str]) -> BackendArgs:
        """Build the argument object from the tokens after the keyword. Raise ValueError on bad input."""

    @abstractmethod
    def process(self, args: BackendArgs, document: Any) -> Any:
        """Return the next document."""


Factory = Callable[..., Any]


class BackendRegistry:
    """Keyword -> backend factory lookup table."""

    def __init__(self):
        self._factories: Dict[str, Factory] = {}

    def register(self, keyword: str, factory: Factory):
        self._factories[keyword] = factory

    def resolve(self, keyword: str) -> Optional[Factory]:
        return self._factories.get(keyword)

    def __contains__(self, keyword: str) -> bool:
        return keyword in self._factories

    def keywords(self) -> List[str]:
        return sorted(self._factories)


def default_registry() -> BackendRegistry:
    from yamlbatch.batch_http import HttpBackend
    from yamlbatch.batch_yaml import YamlBackend

    registry = BackendRegistry()
    registry.register(YamlBackend.keyword, YamlBackend)
    registry.register(HttpBackend.keyword, HttpBackend)
    return registry


# --------------------------
# Tokenizing
# --------------------------

def strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    return token


def tokenize(line: str) -> List[str]:
    """Shell-like split honoring quoted substrings; backslashes are kept as written."""
    compacted = re.sub(r"\s+", " ", line).strip()
    lexer = shlex.shlex(compacted, posix=True)
    lexer.whitespace_split = True
    lexer.escape = ""
    try:
        tokens = list(lexer)
    except ValueError as e:
        raise ClassificationError(f"cannot tokenize {line!r}: {e}", line=line) from e
    return [strip_quotes(t) for t in tokens]


# --------------------------
# Dispatch
# --------------------------

@dataclass
class DispatchContext:
    """What the interpreter lends a backend for one line."""
    variables: VariableStore
    memory: Optional[DocumentMemory] = None
    library: YamlLibrary = YamlLibrary.PYYAML
    quote_style: QuoteStyle = QuoteStyle.UNDEFINED
    verbose: bool = False
    source: Optional[str] = None
    lineno: Optional[int] = None


def construct(registry: BackendRegistry, keyword: str, ctx: DispatchContext) -> Backend:
    factory = registry.resolve(keyword)
    if factory is None:
        known = ", ".join(registry.keywords()) or "none"
        raise UnknownCommandError(f"unknown batch command '{keyword}' (known families: {known})")
    try:
        backend = factory(verbose=ctx.verbose, library=ctx.library, memory=ctx.memory)
    except Exception as e:
        print(f"FATAL: could not construct the '{keyword}' backend: {e}", file=sys.stderr)
        raise SystemExit(EXIT_BACKEND_CONSTRUCTION)
    if not isinstance(backend, Backend):
        print(f"FATAL: '{keyword}' is registered to {type(backend).__name__}, which is not a Backend",
              file=sys.stderr)
        raise SystemExit(EXIT_UNKNOWN_BACKEND_CLASS)
    return backend


def dispatch(registry: BackendRegistry, keyword: str, line: str, document: Any, ctx: DispatchContext) -> Any:
    """Run one Generic line through its backend family and return the next document."""
    backend = construct(registry, keyword, ctx)

    tokens = tokenize(expand(line, ctx.variables))
    if tokens:
        tokens = tokens[1:]
    try:
        args = backend.parse_args(tokens)
    except BatchError:
        raise
    except (ValueError, TypeError) as e:
        raise ClassificationError(f"bad arguments for '{keyword}': {e}", line=line) from e

    if args.quote_style is QuoteStyle.UNDEFINED:
        args.quote_style = ctx.quote_style
    args.verbose = args.verbose or ctx.verbose
    backend.library = ctx.library

    try:
        return backend.process(args, document)
    except BatchError:
        raise
    except Exception as e:
        raise BackendError(f"'{keyword}' failed: {e}", source=ctx.source, lineno=ctx.lineno, line=line) from e
