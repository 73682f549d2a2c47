import pytest

from yamlbatch.batch_cursor import Script, ScriptCursor
from yamlbatch.batch_datatypes import ConfigurationError, Generic, StructuralError, Print, PrintDash


def test_comments_and_blank_lines_are_dropped_but_line_numbers_kept():
    script = Script.from_text("# header\n\nprint -\n   // note\n  print hi  \n", name="s.ybatch")
    assert [(l.lineno, l.text) for l in script] == [(3, "print -"), (5, "print hi")]
    assert all(l.source == "s.ybatch" for l in script)


def test_cursor_advances_and_classifies():
    cur = ScriptCursor(Script.from_text("print -\nprint hi\n"))
    assert cur.has_next() and cur.position == 0
    assert cur.peek().text == "print -"
    assert isinstance(cur.next_statement(), PrintDash)
    assert isinstance(cur.statement, PrintDash)
    assert cur.lineno == 1
    assert isinstance(cur.next_statement(), Print)
    assert not cur.has_next()
    assert cur.peek() is None
    with pytest.raises(IndexError):
        cur.next_statement()


def test_fork_is_independent():
    cur = ScriptCursor(Script.from_text("print a\nprint b\nprint c\n"), verbose=False)
    cur.next_statement()
    other = cur.fork()
    other.verbose = True
    other.next_statement()
    other.next_statement()
    assert cur.position == 1 and cur.verbose is False
    assert other.position == 3 and other.script is cur.script


def test_unrecognized_line_keeps_its_position():
    cur = ScriptCursor(Script.from_text("print -\nverbose sometimes\n", name="bad.ybatch"))
    cur.next_statement()
    stmt = cur.next_statement()
    assert isinstance(stmt, Generic) and stmt.command == "verbose"
    assert (cur.source, cur.lineno, cur.text) == ("bad.ybatch", 2, "verbose sometimes")


def test_get_state_reports_location():
    cur = ScriptCursor(Script.from_text("print -\n", name="x.ybatch"))
    assert "nothing read yet" in cur.get_state()
    cur.next_statement()
    assert cur.get_state() == "x.ybatch line# 1: print -"


def test_include_expands_in_place(tmp_path):
    (tmp_path / "common.ybatch").write_text("# shared\nsetProperty a=1\nprint ${a}\n", encoding="utf-8")
    main = tmp_path / "main.ybatch"
    main.write_text("print start\ninclude common.ybatch\nprint done\n", encoding="utf-8")
    script = Script.from_file(str(main))
    texts = [l.text for l in script]
    assert texts == ["print start", "setProperty a=1", "print ${a}", "print done"]
    # included lines report their own file and line numbers
    assert script[1].source.endswith("common.ybatch") and script[1].lineno == 2
    assert script.base_dir == str(tmp_path)


def test_include_cycle_is_structural_error(tmp_path):
    (tmp_path / "a.ybatch").write_text("include b.ybatch\n", encoding="utf-8")
    (tmp_path / "b.ybatch").write_text("include a.ybatch\n", encoding="utf-8")
    with pytest.raises(StructuralError) as ei:
        Script.from_file(str(tmp_path / "a.ybatch"))
    assert "include cycle" in str(ei.value)


def test_missing_include_is_configuration_error(tmp_path):
    main = tmp_path / "main.ybatch"
    main.write_text("include nowhere.ybatch\n", encoding="utf-8")
    with pytest.raises(ConfigurationError) as ei:
        Script.from_file(str(main))
    assert ei.value.lineno == 1
