import pytest

from yamlbatch.batch_datatypes import MacroError
from yamlbatch.batch_macros import expand, references
from yamlbatch.batch_variables import VariableStore, parse_properties, read_properties


def _store(**env):
    return VariableStore(environ=env)


# --- scopes ---

def test_lookup_order_loop_global_properties_environment():
    s = _store(name="env")
    assert s.lookup("name") == "env"
    s.set_properties("cfg", {"name": "props"})
    assert s.lookup("name") == "props"
    s.set_global("name", "global")
    assert s.lookup("name") == "global"
    with s.loop_scope() as outer:
        outer["name"] = "outer"
        with s.loop_scope() as inner:
            assert s.lookup("name") == "outer"
            inner["name"] = "inner"
            assert s.lookup("name") == "inner"
            assert s.loop_depth == 2
        assert s.lookup("name") == "outer"
    assert s.lookup("name") == "global"
    assert s.loop_depth == 0


def test_most_recent_properties_scope_wins():
    s = _store()
    s.set_properties("a", {"k": "1"})
    s.set_properties("b", {"k": "2"})
    assert s.lookup("k") == "2"
    s.set_properties("a", {"k": "3"})
    assert s.lookup("k") == "3"
    assert [name for name, _ in s.scopes()] == ["global", "a", "b", "environment"]


def test_values_are_stored_as_text():
    s = _store()
    s.set_global("n", 5)
    assert s.lookup("n") == "5"
    assert s.get("missing", "dflt") == "dflt"
    assert "n" in s and "missing" not in s


def test_pop_without_loop_scope():
    with pytest.raises(IndexError):
        _store().pop_loop_scope()


def test_loop_scope_popped_on_error():
    s = _store()
    with pytest.raises(RuntimeError):
        with s.loop_scope():
            raise RuntimeError("body failed")
    assert s.loop_depth == 0


def test_dump_hides_environment_values():
    s = _store(SECRET="x")
    s.set_global("k", "v")
    text = s.dump()
    assert "[global]\n  k=v" in text
    assert "[environment] (1 entries)" in text
    assert "SECRET" not in text


# --- properties files ---

def test_parse_properties():
    text = "\n".join([
        "# comment",
        "! also a comment",
        "",
        "a=1",
        "b : two words",
        "c   3",
        "flag",
        "long = first \\",
        "       second",
    ])
    assert parse_properties(text) == {"a": "1", "b": "two words", "c": "3", "flag": "", "long": "first second"}


def test_read_properties(tmp_path):
    f = tmp_path / "x.properties"
    f.write_text("host=localhost\nport=8080\n", encoding="utf-8")
    assert read_properties(str(f)) == {"host": "localhost", "port": "8080"}


# --- macros ---

def test_expand_replaces_known_and_keeps_unknown():
    s = _store(HOME="/home/u")
    s.set_global("x", "1")
    assert expand("${x}-${ x }-${nope}-${HOME}", s) == "1-1-${nope}-/home/u"


def test_expand_is_single_pass():
    s = _store()
    s.set_global("a", "${b}")
    s.set_global("b", "deep")
    assert expand("${a}", s) == "${b}"


def test_expand_errors():
    with pytest.raises(MacroError):
        expand("print ${open", _store())
    with pytest.raises(MacroError):
        expand("print ${}", _store())


def test_expand_leaves_text_without_references():
    assert expand("a $b {c}", _store()) == "a $b {c}"
    assert expand(None, _store()) is None


def test_references():
    assert references("${a} and ${ b.c }") == ["a", "b.c"]
    assert references(None) == []
