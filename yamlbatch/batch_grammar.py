"""
The line grammar of the batch language.

Each script line is recognized by a fixed, ordered list of anchored regular
expressions; the first rule that matches decides the statement. Some keywords
are textual prefixes of others (`print -` vs `print <expr>`), so the order of
RULES is part of the language. A line whose first word is not a built-in
keyword is a Generic statement, left for backend dispatch.
"""
import dataclasses
import re
from typing import Callable, List, Tuple

from yamlbatch.batch_datatypes import (
    Statement, UseYamlLibrary, MakeNewRoot, SubBatch, Foreach, End, SaveTo, UseAsInput,
    SetVerbose, PrintDash, DebugDump, SetProperty, PropertiesFile, Print, Sleep, Generic,
    QuoteStyle, YamlLibrary, StructuralError,
)

REGEXP_NAME = r"[${}@%a-zA-Z0-9.,:_/~-]+"
REGEXP_OBJECT_REFERENCE = r"[@!]?" + REGEXP_NAME
REGEXP_INLINEVALUE = r"['\" ${}@%a-zA-Z0-9\[\].,:_/-]+"

REGEXP_YAMLLIBRARY = r"^\s*useYAMLLibrary\s+(" + YamlLibrary.names("|") + r")\s*$"
REGEXP_MKNEWROOT = r"^\s*makeNewRoot\s+(" + REGEXP_NAME + r")\s*(\s--no-quote|\s--single-quote|\s--double-quote)?\s*$"
REGEXP_BATCH = r"^\s*batch\s+(" + REGEXP_NAME + r")\s*$"
REGEXP_FOREACH = r"^\s*foreach\s*$"
REGEXP_END = r"^\s*end\s*$"
REGEXP_SAVETO = r"^\s*saveTo\s+(" + REGEXP_OBJECT_REFERENCE + r")\s*$"
REGEXP_USEASINPUT = r"^\s*useAsInput\s+(" + REGEXP_OBJECT_REFERENCE + "|" + REGEXP_INLINEVALUE + r")\s*$"
REGEXP_VERBOSE = r"^\s*verbose\s+(on|off)\s*$"
REGEXP_PRINTDASH = r"^\s*print(?:\s+-)?\s*$"
REGEXP_DEBUGDUMP = r"^\s*debug\s+--dump\s*$"
REGEXP_SETPROPERTY = r"^\s*setProperty\s+([^=\s]+)\s*=\s*(.*?)\s*$"
REGEXP_PROPERTIES = r"^\s*properties\s+([^=\s]+)\s*=\s*(\S.*?)\s*$"
REGEXP_PRINT = r"^\s*print\s+(.*?)\s*$"
REGEXP_SLEEP = r"^\s*sleep\s+(\d+(?:\.\d+)?)\s*$"

REGEXP_ECHO = re.compile(r"^\s*echo\s+(\S.*)$")

Builder = Callable[[str, re.Match], Statement]


def _make_new_root(line: str, m: re.Match) -> Statement:
    return MakeNewRoot(line, name=m.group(1), quote_style=QuoteStyle.from_flag(m.group(2)))


RULES: List[Tuple[str, re.Pattern, Builder]] = [
    ("useYAMLLibrary", re.compile(REGEXP_YAMLLIBRARY),
        lambda line, m: UseYamlLibrary(line, library=YamlLibrary.from_name(m.group(1)))),
    ("makeNewRoot", re.compile(REGEXP_MKNEWROOT), _make_new_root),
    ("batch", re.compile(REGEXP_BATCH), lambda line, m: SubBatch(line, path=m.group(1))),
    ("foreach", re.compile(REGEXP_FOREACH, re.IGNORECASE), lambda line, m: Foreach(line)),
    ("end", re.compile(REGEXP_END, re.IGNORECASE), lambda line, m: End(line)),
    ("saveTo", re.compile(REGEXP_SAVETO), lambda line, m: SaveTo(line, reference=m.group(1))),
    ("useAsInput", re.compile(REGEXP_USEASINPUT), lambda line, m: UseAsInput(line, reference=m.group(1).strip())),
    ("verbose", re.compile(REGEXP_VERBOSE), lambda line, m: SetVerbose(line, on=(m.group(1) == "on"))),
    ("print", re.compile(REGEXP_PRINTDASH), lambda line, m: PrintDash(line)),
    ("debug", re.compile(REGEXP_DEBUGDUMP), lambda line, m: DebugDump(line)),
    ("setProperty", re.compile(REGEXP_SETPROPERTY), lambda line, m: SetProperty(line, key=m.group(1), value=m.group(2))),
    ("properties", re.compile(REGEXP_PROPERTIES), lambda line, m: PropertiesFile(line, key=m.group(1), path=m.group(2))),
    ("print", re.compile(REGEXP_PRINT), lambda line, m: Print(line, expression=m.group(1))),
    ("sleep", re.compile(REGEXP_SLEEP), lambda line, m: Sleep(line, seconds=float(m.group(1)))),
]


def first_word(line: str) -> str:
    parts = line.split(None, 1)
    return parts[0] if parts else ""


def classify(line: str) -> Statement:
    """Recognize one comment-free script line.

    Never fails. A line no rule accepts, including a built-in keyword with
    arguments its rule rejects (`end loop`, `sleep soon`), becomes Generic and
    is only an error if it is executed.
    """
    text = line.strip()
    echo = False
    m = REGEXP_ECHO.match(text)
    if m:
        echo = True
        text = m.group(1).strip()

    for _keyword, pattern, build in RULES:
        m = pattern.match(text)
        if m:
            stmt = build(text, m)
            return stmt if not echo else _with_echo(stmt)

    return Generic(text, command=first_word(text), echo=echo)


def _with_echo(stmt: Statement) -> Statement:
    return dataclasses.replace(stmt, echo=True)


def skip_to_matching_end(cursor) -> Statement:
    """Advance `cursor` from just after a `foreach` to its matching `end`.

    Every skipped line is classified (nested loops must be counted) but
    nothing is executed. The cursor is left on the matching `end`.
    """
    start_source = cursor.source
    start_lineno = cursor.lineno
    start_text = cursor.text
    depth = 0
    while cursor.has_next():
        stmt = cursor.skip_line()
        if isinstance(stmt, Foreach):
            depth += 1
        elif isinstance(stmt, End):
            depth -= 1
            if depth < 0:
                return stmt
    raise StructuralError(
        f"starting from line# {start_lineno}, there is no matching 'end' for the 'foreach'",
        source=start_source, lineno=start_lineno, line=start_text,
    )
