"""
Documents on the wire and on disk.

Four formats are understood: json, yaml, toml and xml. The yaml codec honours
the run's YAML library and quote style; the others are fixed. HTTP payloads
pick their format from the Content-Type header (falling back to sniffing the
text), files pick it from their extension.
"""
from __future__ import annotations

import collections.abc
import json
import os
import re
from typing import Any, Callable, Dict, Optional, Tuple

import toml
import xmltodict
import yaml

from yamlbatch.batch_datatypes import QuoteStyle, YamlLibrary
from yamlbatch.batch_document import from_text, to_text

FORMATS = ('json', 'yaml', 'toml', 'xml')

_EXTENSIONS = {
    '.json': 'json',
    '.toml': 'toml',
    '.xml': 'xml',
    '.html': 'xml',
}

_CHARSET = re.compile(r'charset\s*=\s*["\']?([^\s;"\']+)', re.IGNORECASE)


def _plain(obj: Any) -> Any:
    # xmltodict builds OrderedDicts; documents hold plain dicts only
    if isinstance(obj, list):
        return [_plain(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {k: _plain(v) for k, v in obj.items()}
    return obj


def _as_text(data: bytes | bytearray | str, content_type: Optional[str]) -> str:
    if isinstance(data, str):
        return data
    m = _CHARSET.search(content_type or "")
    return bytes(data).decode(m.group(1) if m else 'utf-8', errors='replace')


# --------------------------
# Codecs
# --------------------------

def _load_json(text: str, library: YamlLibrary) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Services that label YAML as JSON still get through: YAML reads JSON too
        return yaml.safe_load(text)


def _load_yaml(text: str, library: YamlLibrary) -> Any:
    return from_text(text, library=library)


def _load_toml(text: str, library: YamlLibrary) -> Any:
    return toml.loads(text)


def _load_xml(text: str, library: YamlLibrary) -> Any:
    return _plain(xmltodict.parse(text))


_LOADERS: Dict[str, Callable[[str, YamlLibrary], Any]] = {
    'json': _load_json,
    'yaml': _load_yaml,
    'toml': _load_toml,
    'xml': _load_xml,
}


def detect_format(content_type: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """One of FORMATS, judged from a Content-Type value and then from the text itself; None if neither says."""
    ct = (content_type or "").lower()
    for needle, fmt in (('json', 'json'), ('yaml', 'yaml'), ('toml', 'toml'), ('xml', 'xml'), ('html', 'xml')):
        if needle in ct:
            return fmt
    head = (data_hint or "").lstrip()[:1]
    if head in ('{', '['):
        return 'json'
    if head == '<':
        return 'xml'
    return None


def format_for_path(path: str) -> str:
    """Format implied by a file extension; anything unknown is read as YAML."""
    return _EXTENSIONS.get(os.path.splitext(path)[1].lower(), 'yaml')


def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None,
                library: YamlLibrary = YamlLibrary.PYYAML) -> Any:
    """Turn a payload into a document. Text in no recognizable format comes back unchanged."""
    text = _as_text(data, content_type)
    loader = _LOADERS.get(fmt or detect_format(content_type, text))
    if loader is None:
        return text
    return loader(text, library)


def serialize(value: Any,
              *,
              fmt: str,
              pretty: bool = True,
              xml_root: str = "root",
              library: YamlLibrary = YamlLibrary.PYYAML,
              quote_style: QuoteStyle = QuoteStyle.UNDEFINED) -> str:
    """Render a document as `fmt`.

    XML needs exactly one root element; any other document is wrapped under
    `xml_root`.
    """
    doc = _plain(value)
    match (fmt or '').lower():
        case 'json':
            return json.dumps(doc, ensure_ascii=False, indent=2 if pretty else None)
        case 'yaml':
            return to_text(doc, library=library, quote_style=quote_style)
        case 'toml':
            return toml.dumps(doc)
        case 'xml':
            if not (isinstance(doc, dict) and len(doc) == 1):
                doc = {xml_root: doc}
            return xmltodict.unparse(doc, pretty=pretty)
        case _:
            raise ValueError(f"Unsupported serialization format: {fmt!r}")


# --------------------------
# Files
# --------------------------

def read_document(path: str, *, library: YamlLibrary = YamlLibrary.PYYAML) -> Any:
    with open(path, "rb") as f:
        return deserialize(f.read(), fmt=format_for_path(path), library=library)


def write_document(path: str, document: Any, *,
                   library: YamlLibrary = YamlLibrary.PYYAML,
                   quote_style: QuoteStyle = QuoteStyle.UNDEFINED) -> Tuple[str, int]:
    """Write `document` to `path`, creating parent directories; returns (format, characters written)."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fmt = format_for_path(path)
    text = serialize(document, fmt=fmt, library=library, quote_style=quote_style)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return fmt, len(text)


__all__ = [
    "FORMATS",
    "deserialize",
    "serialize",
    "detect_format",
    "format_for_path",
    "read_document",
    "write_document",
]
