from yamlbatch.batch_datatypes import (
    BatchError, ClassificationError, StructuralError, ConfigurationError, UnknownCommandError,
    BackendError, MacroError, ExecutionResult, QuoteStyle, YamlLibrary,
)
from yamlbatch.batch_interpreter import BatchProcessor
from yamlbatch.batch_runtime import ScriptRunner

__all__ = [
    "BatchProcessor",
    "ScriptRunner",
    "ExecutionResult",
    "QuoteStyle",
    "YamlLibrary",
    "BatchError",
    "ClassificationError",
    "StructuralError",
    "ConfigurationError",
    "UnknownCommandError",
    "BackendError",
    "MacroError",
]
