"""
Document primitives.

A document is a plain Python tree: None, bool, int, float, str, lists of
documents and dicts of str -> document. Everything the interpreter threads
from one statement to the next is such a value; the helpers here are the only
place that knows how to build, copy and render one.
"""
from __future__ import annotations

import collections.abc
import json
from typing import Any, Optional

import yaml

from yamlbatch.batch_datatypes import ConfigurationError, QuoteStyle, YamlLibrary

_SCALARS = (str, int, float, bool, type(None))


def empty_document() -> dict:
    return {}


def single_entry_document(key: str, value: Any = "") -> dict:
    return {key: value}


def deep_clone(document: Any) -> Any:
    """Copy a document so later mutation of either side is invisible to the other."""
    if isinstance(document, list):
        return [deep_clone(v) for v in document]
    if isinstance(document, collections.abc.Mapping):
        return {k: deep_clone(v) for k, v in document.items()}
    return document


def is_document_value(value: Any) -> bool:
    if isinstance(value, _SCALARS):
        return True
    if isinstance(value, list):
        return all(is_document_value(v) for v in value)
    if isinstance(value, collections.abc.Mapping):
        return all(isinstance(k, (str, int, float, bool)) and is_document_value(v) for k, v in value.items())
    return False


def is_container(value: Any) -> bool:
    return isinstance(value, (list, collections.abc.Mapping))


# --------------------------
# Text adapters
# --------------------------

def _dumper_base(library: YamlLibrary):
    if library is YamlLibrary.LIBYAML:
        if not yaml.__with_libyaml__:
            raise ConfigurationError("LibYAML was requested but PyYAML is not built with libyaml")
        return yaml.CSafeDumper
    return yaml.SafeDumper


def _loader(library: YamlLibrary):
    if library is YamlLibrary.LIBYAML:
        if not yaml.__with_libyaml__:
            raise ConfigurationError("LibYAML was requested but PyYAML is not built with libyaml")
        return yaml.CSafeLoader
    return yaml.SafeLoader


def _make_dumper(library: YamlLibrary, style: Optional[str]):
    base = _dumper_base(library)

    class _Dumper(base):  # type: ignore[valid-type, misc]
        pass

    def _represent_str(dumper, data):
        return dumper.represent_scalar('tag:yaml.org,2002:str', data, style=style)

    _Dumper.add_representer(str, _represent_str)
    return _Dumper


def to_text(document: Any, *,
            library: YamlLibrary = YamlLibrary.PYYAML,
            quote_style: QuoteStyle = QuoteStyle.UNDEFINED) -> str:
    """Render a document with the given library; quote style applies to string scalars."""
    if library is YamlLibrary.JSON:
        return json.dumps(document, ensure_ascii=False, indent=2)
    dumper = _make_dumper(library, quote_style.yaml_style)
    return yaml.dump(document, Dumper=dumper, sort_keys=False, default_flow_style=False, allow_unicode=True)


def from_text(text: str, *, library: YamlLibrary = YamlLibrary.PYYAML) -> Any:
    if library is YamlLibrary.JSON:
        return json.loads(text)
    return yaml.load(text, Loader=_loader(library))


def debug_string(document: Any, *,
                 library: YamlLibrary = YamlLibrary.PYYAML,
                 quote_style: QuoteStyle = QuoteStyle.UNDEFINED) -> str:
    """The text `print -` shows: the rendered document without its trailing newline."""
    if document is None:
        return "null" if library is YamlLibrary.JSON else "~"
    text = to_text(document, library=library, quote_style=quote_style)
    # PyYAML closes a bare scalar document with an explicit end marker
    if text.endswith("\n...\n"):
        text = text[:-4]
    return text.rstrip("\n")
