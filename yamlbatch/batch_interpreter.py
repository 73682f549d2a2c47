"""
The batch interpreter: walks a ScriptCursor and threads one document through
every statement.

Loop bodies and sub-scripts are run by recursion. A loop body replays on a
forked cursor once per item; a sub-script gets a fresh cursor and its own
RunState. Everything a statement prints is recorded as a side effect
({'topics': [...], 'message': ...}); nothing is written to the console here.
"""
from __future__ import annotations

import collections.abc
import os
import sys
import time
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

import yaml

from yamlbatch.batch_backends import BackendRegistry, DispatchContext, default_registry, dispatch, strip_quotes
from yamlbatch.batch_cursor import Script, ScriptCursor, locate_script
from yamlbatch.batch_datatypes import (
    BatchError, BatchOutcome, ConfigurationError, Effect, RunState, QuoteStyle, YamlLibrary,
    MakeNewRoot, SubBatch, Foreach, End, SaveTo, UseAsInput, UseYamlLibrary, SetVerbose,
    PrintDash, DebugDump, SetProperty, PropertiesFile, Print, Sleep, Generic,
    EXIT_UNKNOWN_STATEMENT,
)
from yamlbatch.batch_document import (
    debug_string, deep_clone, empty_document, is_container, is_document_value, single_entry_document,
)
from yamlbatch.batch_grammar import skip_to_matching_end
from yamlbatch.batch_macros import expand
from yamlbatch.batch_memory import DocumentMemory, resolve_path
from yamlbatch.batch_variables import FOREACH_INDEX, FOREACH_ITER_KEY, FOREACH_ITER_VALUE, VariableStore

# A trailing literal backslash-n on a print expression asks for a line break
PRINT_EOL = "\\n"


def _scalar_text(value: Any) -> str:
    match value:
        case None:
            return ""
        case bool():
            return "true" if value else "false"
        case _:
            return str(value)


def _iteration_items(document: Any) -> Optional[List[Tuple[int, Any, Any]]]:
    """(index, key, item) for each loop iteration, or None when there is nothing to iterate."""
    if document is None:
        return None
    if is_container(document) and not document:
        return None
    if isinstance(document, list):
        return [(i, None, item) for i, item in enumerate(document)]
    if isinstance(document, collections.abc.Mapping):
        return [(i, k, v) for i, (k, v) in enumerate(document.items())]
    return [(0, None, document)]


class BatchProcessor:
    """Runs batch scripts against documents.

    One processor is one run: its variable store and document memory are shared
    by every sub-script and loop body it executes.
    """

    def __init__(self, *,
                 verbose: bool = False,
                 show_stats: bool = False,
                 quote_style: QuoteStyle = QuoteStyle.UNDEFINED,
                 library: YamlLibrary = YamlLibrary.PYYAML,
                 registry: Optional[BackendRegistry] = None,
                 memory: Optional[DocumentMemory] = None,
                 variables: Optional[VariableStore] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.verbose = verbose
        self.show_stats = show_stats
        self.quote_style = quote_style
        self.library = library
        self.registry = registry if registry is not None else default_registry()
        self.memory = memory
        self.variables = variables if variables is not None else VariableStore()
        self.sleep = sleep
        self.side_effects: List[Effect] = []
        self.failures: List[BatchError] = []
        self.last_failure: Optional[BatchError] = None
        self._depth = 0

    # --- diagnostics ---
    def _dbg(self, *parts):
        if os.environ.get("YAMLBATCH_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _emit(self, message: str, topic: str = 'stdout', end: str = "\n"):
        effect: Effect = {'topics': [topic], 'message': message}
        if end != "\n":
            effect['end'] = end
        self.side_effects.append(effect)

    def _trace(self, *parts):
        if self.verbose:
            self._emit(" ".join(str(p) for p in parts), 'stderr')

    def _show(self, document: Any) -> str:
        return debug_string(document, library=self.library, quote_style=self.quote_style)

    def dump_state(self, cursor: Optional[ScriptCursor] = None) -> str:
        lines = ["--- batch processor state ---"]
        if cursor is not None:
            lines.append(f"at: {cursor.get_state()} (line {cursor.position} of {len(cursor.script)})")
        lines.append(f"library: {self.library.value}  quote-style: {self.quote_style.value}  verbose: {self.verbose}")
        if self.memory is None:
            lines.append("memory: (none)")
        else:
            labels = ", ".join(label for label, _ in self.memory.items()) or "(empty)"
            lines.append(f"memory: {labels}")
        lines.append(self.variables.dump())
        return "\n".join(lines)

    # --- entry points ---
    def go(self, batch_file: Optional[str], document: Any) -> Any:
        """Run a script file. Failures are reported as side effects and yield the empty document."""
        if batch_file is None:
            return empty_document()
        return self._execute(lambda: Script.from_file(batch_file), batch_file, document)

    def run_text(self, source: str, document: Any = None, name: str = "<script>",
                 base_dir: Optional[str] = None) -> Any:
        """Run a script held in memory; same failure contract as go()."""
        if document is None:
            document = empty_document()
        return self._execute(lambda: Script.from_text(source, name, base_dir), name, document)

    def _execute(self, load: Callable[[], Script], name: str, document: Any) -> Any:
        state = RunState(source=name, started=datetime.now())
        cursor: Optional[ScriptCursor] = None
        self._depth += 1
        try:
            script = load()
            cursor = ScriptCursor(script, verbose=self.verbose)
            self._trace(f"go(): successfully opened {name}")
            if self.show_stats:
                self._emit(f"{name} has {len(script)} commands")
            out = self.process_batch(cursor, document, state)
            state.finished = datetime.now()
            self._trace(f"go(): {name} returned {self._show(out)}")
            if self.show_stats:
                self._emit(state.summary())
            return out
        except BatchError as e:
            self._report(e, cursor)
        except OSError as e:
            self._report(ConfigurationError(f"cannot read batch file {name}: {e.strerror or e}"), cursor)
        finally:
            self._depth -= 1
        return empty_document()

    def _report(self, error: BatchError, cursor: Optional[ScriptCursor]):
        if cursor is not None and cursor.current_line is not None:
            error.at(cursor.source, cursor.lineno, cursor.text)
        self.failures.append(error)
        if self._depth == 1:
            self.last_failure = error
        self._emit(error.format_error(), 'stderr')
        if self.verbose:
            self._emit(self.dump_state(cursor), 'stderr')

    # --- dispatch loop ---
    def process_batch(self, cursor: ScriptCursor, document: Any, state: RunState) -> Any:
        return self._process(cursor, document, state).document

    def _process(self, cursor: ScriptCursor, document: Any, state: RunState) -> BatchOutcome:
        current = document
        self._trace(f"processBatch: starting {cursor.get_state()} input={self._show(current)}")
        while cursor.has_next():
            stmt = cursor.next_statement()
            self._trace(f"processBatch: {cursor.get_state()}")
            if stmt.echo:
                self._emit(f"Echo (As-Is): {stmt.line}")
                self._emit(f"Echo (Macro-substituted): {expand(stmt.line, self.variables)}")
            try:
                match stmt:
                    case MakeNewRoot():
                        current = self._on_make_new_root(stmt)
                        state.runcount += 1
                    case SubBatch():
                        current = self._on_sub_batch(stmt, cursor, current)
                        state.runcount += 1
                    case PropertiesFile():
                        self._on_properties_file(stmt, cursor)
                        state.runcount += 1
                    case Foreach():
                        current = self._on_foreach(cursor, current, state)
                        state.runcount += 1
                    case End():
                        self._trace("found the matching 'end' for the 'foreach'")
                        state.runcount += 1
                        return BatchOutcome(current, reached_end=True)
                    case SaveTo():
                        current = self._on_save_to(stmt, cursor, current)
                        state.runcount += 1
                    case UseAsInput():
                        current = self._on_use_as_input(stmt, cursor)
                        state.runcount += 1
                    case SetProperty():
                        self._on_set_property(stmt)
                    case Print():
                        self._on_print(stmt)
                        state.runcount += 1
                    case PrintDash():
                        self._emit(self._show(current))
                        state.runcount += 1
                    case DebugDump():
                        self._emit(self.dump_state(cursor), 'stderr')
                    case UseYamlLibrary():
                        self._on_use_yaml_library(stmt)
                    case SetVerbose():
                        self._trace(f"verbose: {self.verbose} -> {stmt.on}")
                        cursor.verbose = stmt.on
                    case Sleep():
                        self._emit(f"sleeping for (seconds) {stmt.seconds}", 'stderr')
                        self.sleep(stmt.seconds)
                    case Generic():
                        current = self._on_generic(stmt, cursor, current)
                        state.runcount += 1
                    case _:
                        print(f"{cursor.get_state()}: unknown batch-file statement {type(stmt).__name__}",
                              file=sys.stderr)
                        raise SystemExit(EXIT_UNKNOWN_STATEMENT)
            except BatchError as e:
                raise e.at(cursor.source, cursor.lineno, cursor.text)

            # A statement may have toggled verbosity on the cursor
            self.verbose = cursor.verbose
            self._trace(f"processBatch: bottom of loop, document={self._show(current)}")
        return BatchOutcome(current)

    # --- statement handlers ---
    def _on_make_new_root(self, stmt: MakeNewRoot) -> Any:
        name = expand(stmt.name, self.variables)
        if stmt.quote_style is not QuoteStyle.UNDEFINED:
            self.quote_style = stmt.quote_style
        return single_entry_document(name, "")

    def _on_sub_batch(self, stmt: SubBatch, cursor: ScriptCursor, current: Any) -> Any:
        path = locate_script(expand(stmt.path, self.variables), cursor.script.base_dir)
        self._trace(f"batch: running sub-script {path}")
        failed_before = len(self.failures)
        out = self.go(path, current)
        if len(self.failures) > failed_before:
            self._emit(f"sub-script {path} failed; called from {cursor.get_state()}", 'stderr')
        return out

    def _on_foreach(self, cursor: ScriptCursor, current: Any, state: RunState) -> Any:
        self._trace(f"'foreach' detected, input={self._show(current)}")
        body_start = cursor.fork()
        # The outer loop resumes after the matching 'end' however the body runs
        skip_to_matching_end(cursor)

        items = _iteration_items(current)
        if items is None:
            return current

        outputs: List[Tuple[Any, Any]] = []
        body = body_start
        for index, key, item in items:
            body = body_start.fork()
            body.verbose = self.verbose
            with self.variables.loop_scope() as scope:
                scope[FOREACH_INDEX] = str(index)
                if key is not None:
                    scope[FOREACH_ITER_KEY] = str(key)
                if not is_container(item):
                    scope[FOREACH_ITER_VALUE] = _scalar_text(item)
                self._dbg("foreach", index, key, type(item).__name__)
                outcome = self._process(body, item, state)
            self.verbose = body.verbose
            outputs.append((key, outcome.document))
        # Verbosity set inside the body stays in effect after the loop
        cursor.verbose = body.verbose

        if isinstance(current, list):
            return [doc for _, doc in outputs]
        if isinstance(current, collections.abc.Mapping):
            return {key: doc for key, doc in outputs}
        return outputs[0][1]

    def _require_memory(self, what: str) -> DocumentMemory:
        if self.memory is None:
            raise ConfigurationError(f"there is no document memory to carry documents between lines; "
                                     f"cannot {what}")
        return self.memory

    def _on_save_to(self, stmt: SaveTo, cursor: ScriptCursor, current: Any) -> Any:
        reference = expand(stmt.reference, self.variables)
        memory = self._require_memory(f"saveTo {reference}")
        try:
            memory.save_reference(reference, deep_clone(current),
                                  base_dir=cursor.script.base_dir, library=self.library,
                                  quote_style=self.quote_style)
        except OSError as e:
            raise ConfigurationError(f"cannot write {reference}: {e.strerror or e}") from e
        return deep_clone(current)

    def _on_use_as_input(self, stmt: UseAsInput, cursor: ScriptCursor) -> Any:
        reference = strip_quotes(expand(stmt.reference, self.variables).strip())
        memory = self._require_memory(f"useAsInput {reference}")
        try:
            value = memory.resolve(reference, base_dir=cursor.script.base_dir, library=self.library)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"failed to read YAML/JSON from [{stmt.reference}]: {e}") from e
        if value is None and reference not in memory:
            raise ConfigurationError(f"failed to read YAML/JSON from [{stmt.reference}]. "
                                     f"Nothing in memory under that label.")
        if not is_document_value(value):
            raise ConfigurationError(f"failed to read YAML/JSON from [{stmt.reference}]. "
                                     f"We have type={type(value).__name__} = [{value!r}]")
        return deep_clone(value)

    def _on_set_property(self, stmt: SetProperty):
        key = expand(stmt.key, self.variables)
        value = expand(stmt.value, self.variables)
        self.variables.set_global(key, value)
        self._trace(f"setProperty {key}=[{value}]")

    def _on_properties_file(self, stmt: PropertiesFile, cursor: ScriptCursor):
        name = expand(stmt.key, self.variables)
        path = resolve_path(expand(stmt.path, self.variables), cursor.script.base_dir)
        try:
            self.variables.load_properties(name, path)
        except OSError as e:
            raise ConfigurationError(f"cannot read properties file {path}: {e.strerror or e}") from e
        self._trace(f"properties {name} loaded from {path}")

    def _recall(self, label: str) -> Optional[str]:
        if self.memory is None or not label:
            return None
        value = self.memory.load(label)
        if value is None:
            return None
        return self._show(value) if is_document_value(value) else str(value)

    def _on_print(self, stmt: Print):
        text = expand(stmt.expression, self.variables)
        if text.rstrip().endswith(PRINT_EOL):
            text = text.rstrip()[:-len(PRINT_EOL)]
            label = text.strip()
            if not label:
                self._emit("")
                return
            recalled = self._recall(label)
            self._emit(recalled if recalled is not None else text)
            return
        recalled = self._recall(text.strip())
        if recalled is not None:
            self._emit(recalled, end="")
        else:
            self._emit(text + " ", end="")

    def _on_use_yaml_library(self, stmt: UseYamlLibrary):
        if stmt.library is YamlLibrary.LIBYAML and not yaml.__with_libyaml__:
            raise ConfigurationError("LibYAML was requested but PyYAML is not built with libyaml")
        self._trace(f"setting YAML library = {stmt.library.value}")
        self.library = stmt.library

    def _on_generic(self, stmt: Generic, cursor: ScriptCursor, current: Any) -> Any:
        keyword = expand(stmt.command, self.variables).strip()
        ctx = DispatchContext(
            variables=self.variables,
            memory=self.memory,
            library=self.library,
            quote_style=self.quote_style,
            verbose=self.verbose,
            source=cursor.source,
            lineno=cursor.lineno,
        )
        self._dbg("dispatch", keyword, stmt.line)
        out = dispatch(self.registry, keyword, stmt.line, current, ctx)
        self._trace(f"'{keyword}' returned {type(out).__name__}")
        return out
