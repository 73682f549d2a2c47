"""
Defines the core data types for the batch language runtime.

This module provides the statement variants produced by the line classifier,
the small enumerations shared by the interpreter and the backends, the error
taxonomy, and the bookkeeping records for a run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


# =================================================================
# Enumerations
# =================================================================

class QuoteStyle(Enum):
    """Scalar quoting used when documents are written out as YAML."""
    UNDEFINED = "undefined"
    PLAIN = "--no-quote"
    SINGLE_QUOTED = "--single-quote"
    DOUBLE_QUOTED = "--double-quote"

    @classmethod
    def from_flag(cls, flag: Optional[str]) -> 'QuoteStyle':
        if not flag:
            return cls.UNDEFINED
        flag = flag.strip()
        for style in cls:
            if style.value == flag:
                return style
        return cls.UNDEFINED

    @property
    def yaml_style(self) -> Optional[str]:
        """The PyYAML scalar style character for this quote style."""
        if self is QuoteStyle.SINGLE_QUOTED:
            return "'"
        if self is QuoteStyle.DOUBLE_QUOTED:
            return '"'
        return None


class YamlLibrary(Enum):
    """Which text representation backs documents read and written by a run."""
    PYYAML = "PyYAML"
    LIBYAML = "LibYAML"
    JSON = "JSON"

    @classmethod
    def from_name(cls, name: str) -> 'YamlLibrary':
        for lib in cls:
            if lib.value == name:
                return lib
        raise ValueError(f"unknown YAML library {name!r}; expected one of: {cls.names('|')}")

    @classmethod
    def names(cls, sep: str) -> str:
        return sep.join(lib.value for lib in cls)


# =================================================================
# Errors
# =================================================================

class BatchError(Exception):
    """Base class for every error that aborts the current script."""

    def __init__(self, message: str, *, source: Optional[str] = None,
                 lineno: Optional[int] = None, line: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.lineno = lineno
        self.line = line

    def at(self, source: Optional[str], lineno: Optional[int], line: Optional[str]) -> 'BatchError':
        """Attach a statement position unless one is already recorded."""
        if self.lineno is None:
            self.source = source
            self.lineno = lineno
            self.line = line
        return self

    def format_error(self) -> str:
        kind = type(self).__name__
        if self.lineno is None:
            return f"{kind}: {self.message}"
        where = f"{self.source} line {self.lineno}" if self.source else f"line {self.lineno}"
        out = f"Error in {where}: {kind}: {self.message}"
        if self.line is not None:
            out += f"\n    {self.line}"
        return out


class ClassificationError(BatchError):
    """A line starts with a statement keyword but its arguments are malformed."""


class StructuralError(BatchError):
    """A loop block (or include chain) is not properly formed."""


class ConfigurationError(BatchError):
    """A required collaborator is missing, or a reference resolves to nothing usable."""


class UnknownCommandError(BatchError):
    """A generic statement names no registered backend family."""


class BackendError(BatchError):
    """A backend raised while processing a document."""


class MacroError(BatchError):
    """A macro reference in a statement is malformed."""


# Process exit statuses for conditions that are not recoverable.
EXIT_UNKNOWN_STATEMENT = 99
EXIT_UNKNOWN_BACKEND_CLASS = 61
EXIT_BACKEND_CONSTRUCTION = 91


# =================================================================
# Statements
# =================================================================

@dataclass(frozen=True)
class Statement:
    """One classified script line. `line` is the text the classifier saw."""
    line: str
    echo: bool = field(default=False, kw_only=True)

    @property
    def keyword(self) -> str:
        parts = self.line.split(None, 1)
        return parts[0] if parts else ""


@dataclass(frozen=True)
class UseYamlLibrary(Statement):
    library: YamlLibrary = YamlLibrary.PYYAML


@dataclass(frozen=True)
class MakeNewRoot(Statement):
    name: str = ""
    quote_style: QuoteStyle = QuoteStyle.UNDEFINED


@dataclass(frozen=True)
class SubBatch(Statement):
    path: str = ""


@dataclass(frozen=True)
class Foreach(Statement):
    pass


@dataclass(frozen=True)
class End(Statement):
    pass


@dataclass(frozen=True)
class SaveTo(Statement):
    reference: str = ""


@dataclass(frozen=True)
class UseAsInput(Statement):
    reference: str = ""


@dataclass(frozen=True)
class SetVerbose(Statement):
    on: bool = False


@dataclass(frozen=True)
class PrintDash(Statement):
    pass


@dataclass(frozen=True)
class DebugDump(Statement):
    pass


@dataclass(frozen=True)
class SetProperty(Statement):
    key: str = ""
    value: str = ""


@dataclass(frozen=True)
class PropertiesFile(Statement):
    key: str = ""
    path: str = ""


@dataclass(frozen=True)
class Print(Statement):
    expression: str = ""


@dataclass(frozen=True)
class Sleep(Statement):
    seconds: float = 0


@dataclass(frozen=True)
class Generic(Statement):
    """Anything the grammar does not know; resolved by backend dispatch."""
    command: str = ""


# =================================================================
# Run bookkeeping
# =================================================================

@dataclass
class RunState:
    """Counters for one script invocation (top level or sub-batch)."""
    source: str
    runcount: int = 0
    started: Optional[datetime] = None
    finished: Optional[datetime] = None

    def summary(self) -> str:
        started = self.started or datetime.now()
        finished = self.finished or datetime.now()
        seconds = (finished - started).total_seconds()
        return f"Ran {self.runcount} commands from {started} until {finished} = {seconds} seconds"


@dataclass
class BatchOutcome:
    """What one dispatch loop produced, and whether it stopped on an `end`."""
    document: Any
    reached_end: bool = False


Effect = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Dict[str, Any]] = None
    side_effects: List[Effect] = field(default_factory=list)
    failures: List[BatchError] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with the script line if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            if not msg.startswith("Error in "):
                return f"Error on line {self.error_token['line']}: {msg}"
        return msg
