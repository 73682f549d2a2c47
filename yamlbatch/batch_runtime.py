"""
ScriptRunner: the embedding entry point. Runs a batch script and packages
the final document, the side effects and any failure into an ExecutionResult.
"""
import os
from typing import Any, Optional

from yamlbatch.batch_backends import BackendRegistry
from yamlbatch.batch_datatypes import ExecutionResult, QuoteStyle, YamlLibrary
from yamlbatch.batch_interpreter import BatchProcessor
from yamlbatch.batch_memory import DocumentMemory
from yamlbatch.batch_variables import VariableStore


class ScriptRunner:
    """Loads and executes batch scripts against documents."""

    def __init__(self, *,
                 verbose: bool = False,
                 show_stats: bool = False,
                 quote_style: QuoteStyle = QuoteStyle.UNDEFINED,
                 library: YamlLibrary = YamlLibrary.PYYAML,
                 registry: Optional[BackendRegistry] = None,
                 memory: Optional[DocumentMemory] = None,
                 variables: Optional[VariableStore] = None):
        self.memory = memory if memory is not None else DocumentMemory()
        self.processor = BatchProcessor(
            verbose=verbose,
            show_stats=show_stats,
            quote_style=quote_style,
            library=library,
            registry=registry,
            memory=self.memory,
            variables=variables,
        )
        self.source_dir: Optional[str] = None  # directory relative paths in in-memory scripts resolve against

    @property
    def variables(self) -> VariableStore:
        return self.processor.variables

    def _reset(self):
        self.processor.side_effects.clear()
        self.processor.failures.clear()
        self.processor.last_failure = None

    def _package(self, value: Any) -> ExecutionResult:
        p = self.processor
        err = p.last_failure
        if err is not None:
            token = {'source': err.source, 'line': err.lineno, 'text': err.line}
            return ExecutionResult(
                status='error',
                value=value,
                error_message=err.format_error(),
                error_token=token,
                side_effects=list(p.side_effects),
                failures=list(p.failures),
            )
        return ExecutionResult(
            status='success',
            value=value,
            side_effects=list(p.side_effects),
            failures=list(p.failures),
        )

    def _run(self, run) -> ExecutionResult:
        self._reset()
        try:
            value = run()
        except Exception as e:
            msg = f"InternalError: {e}"
            self.processor.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', error_message=msg, side_effects=list(self.processor.side_effects))
        return self._package(value)

    def handle_script(self, source_code: str, document: Any = None, name: str = "<script>") -> ExecutionResult:
        """The main entry point to execute a script held in a string."""
        base_dir = self.source_dir or os.getcwd()
        return self._run(lambda: self.processor.run_text(source_code, document, name=name, base_dir=base_dir))

    def handle_file(self, path: str, document: Any = None) -> ExecutionResult:
        if document is None:
            document = {}
        return self._run(lambda: self.processor.go(path, document))
