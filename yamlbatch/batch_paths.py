"""
Path patterns over documents.

A pattern is split on a delimiter (default `.`) into segments:
  - `*`     any single key or index
  - `**`    any depth, including none
  - `[n]`   the n-th item of a sequence
  - anything else matches a mapping key literally, or as a regular expression
    that must match the whole key
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Iterator, List, Optional, Tuple, Union

from yamlbatch.batch_document import deep_clone

Key = Union[str, int]
Path = Tuple[Key, ...]

ANY = "*"
ANY_DEPTH = "**"

_INDEX = re.compile(r'^\[(\d+)\]$')
_TRAILING_INDEXES = re.compile(r'^(.*?)((?:\[\d+\])+)$')


def split_path(pattern: str, delimiter: str = ".") -> List[str]:
    if pattern is None or pattern.strip() in ("", delimiter):
        return []
    segments: List[str] = []
    for part in pattern.strip().split(delimiter):
        if part == "":
            continue
        m = _TRAILING_INDEXES.match(part)
        if m and not _INDEX.match(part):
            if m.group(1):
                segments.append(m.group(1))
            segments.extend(re.findall(r'\[\d+\]', m.group(2)))
        else:
            segments.append(part)
    return segments


def format_path(path: Path, delimiter: str = ".") -> str:
    return delimiter.join(f"[{k}]" if isinstance(k, int) else str(k) for k in path)


@lru_cache(maxsize=256)
def _compiled(segment: str) -> Optional[re.Pattern]:
    try:
        return re.compile(segment)
    except re.error:
        return None


def segment_matches(segment: str, key: Key) -> bool:
    if segment == ANY:
        return True
    if isinstance(key, int):
        m = _INDEX.match(segment)
        return bool(m) and int(m.group(1)) == key
    if segment == key:
        return True
    if _INDEX.match(segment):
        return False
    rx = _compiled(segment)
    return rx is not None and rx.fullmatch(key) is not None


def _children(node: Any) -> Iterator[Tuple[Key, Any]]:
    if isinstance(node, dict):
        yield from node.items()
    elif isinstance(node, list):
        yield from enumerate(node)


def _walk(node: Any, segments: List[str], prefix: Path) -> Iterator[Tuple[Path, Any]]:
    if not segments:
        yield prefix, node
        return
    seg, rest = segments[0], segments[1:]
    if seg == ANY_DEPTH:
        yield from _walk(node, rest, prefix)
        for key, child in _children(node):
            yield from _walk(child, segments, prefix + (key,))
        return
    for key, child in _children(node):
        if segment_matches(seg, key):
            yield from _walk(child, rest, prefix + (key,))


def find(document: Any, segments: List[str]) -> List[Tuple[Path, Any]]:
    """Every (concrete path, value) the pattern matches, in document order, without duplicates."""
    seen = set()
    out = []
    for path, value in _walk(document, segments, ()):
        if path in seen:
            continue
        seen.add(path)
        out.append((path, value))
    return out


_REGEX_META = set(".^$*+?{}[]\\|()")


def _is_literal(segments: List[str]) -> bool:
    return all(not (set(s) & _REGEX_META) for s in segments)


def _set_at(document: Any, path: Path, value: Any) -> Any:
    if not path:
        return value
    parent = document
    for key in path[:-1]:
        parent = parent[key]
    parent[path[-1]] = value
    return document


# --------------------------
# Operations (never mutate their input)
# --------------------------

def read(document: Any, segments: List[str]) -> List[Any]:
    return [deep_clone(v) for _, v in find(document, segments)]


def list_paths(document: Any, segments: List[str], delimiter: str = ".") -> List[str]:
    return [format_path(p, delimiter) for p, _ in find(document, segments)]


def delete(document: Any, segments: List[str]) -> Any:
    if not segments:
        return None
    out = deep_clone(document)
    # Deepest and last first, so earlier sequence indexes stay valid
    for path, _ in reversed(find(out, segments)):
        parent = out
        for key in path[:-1]:
            parent = parent[key]
        del parent[path[-1]]
    return out


def replace(document: Any, segments: List[str], value: Any) -> Any:
    out = deep_clone(document)
    for path, _ in find(out, segments):
        out = _set_at(out, path, deep_clone(value))
    return out


def insert(document: Any, segments: List[str], value: Any) -> Any:
    """Add `value` under every node the pattern matches.

    A mapping value is merged into a mapping target; any value is appended to
    a sequence target. When nothing matches and the pattern is purely literal
    keys, the missing mappings are created and the value placed at the end.
    """
    out = deep_clone(document)
    matches = find(out, segments)
    if not matches:
        if not _is_literal(segments):
            return out
        if not isinstance(out, dict):
            raise ValueError(f"cannot create '{format_path(tuple(segments))}' under a {type(out).__name__}")
        node = out
        for key in segments[:-1]:
            child = node.get(key)
            if child is None or child == "":
                child = node[key] = {}
            if not isinstance(child, dict):
                raise ValueError(f"cannot create keys under '{key}', which holds a {type(child).__name__}")
            node = child
        node[segments[-1]] = deep_clone(value)
        return out

    for path, target in matches:
        if isinstance(target, list):
            target.append(deep_clone(value))
        elif isinstance(target, dict):
            if not isinstance(value, dict):
                raise ValueError(f"cannot insert a {type(value).__name__} into the mapping at "
                                 f"'{format_path(path)}'")
            target.update(deep_clone(value))
        elif target is None or target == "":
            out = _set_at(out, path, deep_clone(value))
        else:
            raise ValueError(f"cannot insert under the scalar at '{format_path(path)}'")
    return out


def table(document: Any, segments: List[str], columns: List[str]) -> List[dict]:
    """One row per matched mapping, holding only the named columns."""
    rows = []
    for _, node in find(document, segments):
        if isinstance(node, dict):
            rows.append({c: deep_clone(node.get(c)) for c in columns})
    return rows
