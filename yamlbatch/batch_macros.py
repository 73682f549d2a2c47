"""
`${name}` macro expansion against a VariableStore.
"""
import re

from yamlbatch.batch_datatypes import MacroError
from yamlbatch.batch_variables import VariableStore

_REFERENCE = re.compile(r'\$\{([^${}]*)\}')


def expand(text: str, store: VariableStore) -> str:
    """Replace each `${name}` with its value; unknown names are left untouched.

    A `${` that is never closed raises MacroError.
    """
    if text is None:
        return text

    def _sub(m: re.Match) -> str:
        name = m.group(1).strip()
        if not name:
            raise MacroError(f"empty macro reference in {text!r}")
        value = store.lookup(name)
        return m.group(0) if value is None else value

    # Anything still opening a reference once the well-formed ones are gone is unterminated
    if "${" in _REFERENCE.sub("", text):
        raise MacroError(f"unterminated macro reference in {text!r}")
    return _REFERENCE.sub(_sub, text)


def references(text: str) -> list:
    """Names referenced by `${...}` in text, in order of appearance."""
    return [m.group(1).strip() for m in _REFERENCE.finditer(text or "")]
