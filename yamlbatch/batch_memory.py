"""
Document memory: where `saveTo` puts snapshots and `useAsInput` finds them.

References take three shapes:
  - `@path/to/file.yaml`  a file, read (or written) in the format its extension implies
  - `{...}` / `[...]`      an inline YAML/JSON literal (read only)
  - `!label` or `label`    a named slot in memory
"""
from __future__ import annotations

import os
from typing import Any, Dict, Iterator, Optional, Tuple

from yamlbatch.batch_datatypes import QuoteStyle, YamlLibrary
from yamlbatch.batch_document import from_text
from yamlbatch.batch_serialize import read_document, write_document


def resolve_path(path: str, base_dir: Optional[str], *, must_exist: bool = True) -> str:
    path = os.path.expanduser(path)
    if os.path.isabs(path):
        return path
    if base_dir:
        candidate = os.path.normpath(os.path.join(base_dir, path))
        if os.path.exists(candidate) or not must_exist:
            return candidate
    return os.path.normpath(os.path.join(os.getcwd(), path))


def normalize_label(reference: str) -> str:
    return reference[1:] if reference.startswith("!") else reference


class DocumentMemory:
    """Named document slots shared by every recursion level of one run."""

    def __init__(self):
        self._slots: Dict[str, Any] = {}

    def __contains__(self, reference: str) -> bool:
        return normalize_label(reference) in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(self._slots.items())

    def save(self, reference: str, document: Any):
        self._slots[normalize_label(reference)] = document

    def load(self, reference: str) -> Optional[Any]:
        return self._slots.get(normalize_label(reference))

    def clear(self):
        self._slots.clear()

    # --- references ---
    def save_reference(self, reference: str, document: Any, *,
                       base_dir: Optional[str] = None,
                       library: YamlLibrary = YamlLibrary.PYYAML,
                       quote_style: QuoteStyle = QuoteStyle.UNDEFINED):
        """Store under a label; an `@file` reference is also written to disk."""
        if reference.startswith("@"):
            write_document(resolve_path(reference[1:], base_dir, must_exist=False), document,
                           library=library, quote_style=quote_style)
        self.save(reference, document)

    def resolve(self, reference: str, *,
                base_dir: Optional[str] = None,
                library: YamlLibrary = YamlLibrary.PYYAML) -> Optional[Any]:
        """The value a reference names, or None when nothing is there."""
        ref = reference.strip()
        if ref.startswith("@"):
            if ref in self:
                return self.load(ref)
            path = resolve_path(ref[1:], base_dir)
            if not os.path.isfile(path):
                return None
            return read_document(path, library=library)
        if ref.startswith(("{", "[")):
            return from_text(ref, library=library)
        return self.load(ref)
