import pytest

from yamlbatch.batch_cursor import Script, ScriptCursor
from yamlbatch.batch_datatypes import (
    StructuralError, QuoteStyle, YamlLibrary,
    UseYamlLibrary, MakeNewRoot, SubBatch, Foreach, End, SaveTo, UseAsInput, SetVerbose,
    PrintDash, DebugDump, SetProperty, PropertiesFile, Print, Sleep, Generic,
)
from yamlbatch.batch_grammar import classify, skip_to_matching_end


@pytest.mark.parametrize(
    "line,cls",
    [
        ("useYAMLLibrary PyYAML", UseYamlLibrary),
        ("makeNewRoot top", MakeNewRoot),
        ("batch sub/other.ybatch", SubBatch),
        ("foreach", Foreach),
        ("FOREACH", Foreach),
        ("end", End),
        ("End", End),
        ("saveTo !snapshot", SaveTo),
        ("useAsInput @data/in.yaml", UseAsInput),
        ("verbose on", SetVerbose),
        ("print -", PrintDash),
        ("print", PrintDash),
        ("debug --dump", DebugDump),
        ("setProperty name=value", SetProperty),
        ("properties env=conf/env.properties", PropertiesFile),
        ("print hello world", Print),
        ("sleep 2", Sleep),
        ("yaml --read a.b", Generic),
    ],
)
def test_each_rule_selects_its_statement(line, cls):
    assert type(classify(line)) is cls


def test_make_new_root_quote_style_flag():
    stmt = classify("makeNewRoot top --double-quote")
    assert stmt.name == "top"
    assert stmt.quote_style is QuoteStyle.DOUBLE_QUOTED
    # absence means the caller's style is inherited
    assert classify("makeNewRoot top").quote_style is QuoteStyle.UNDEFINED


def test_arguments_are_extracted():
    assert classify("useYAMLLibrary JSON").library is YamlLibrary.JSON
    assert classify("batch ${dir}/x.ybatch").path == "${dir}/x.ybatch"
    assert classify("saveTo @out.yaml").reference == "@out.yaml"
    assert classify("verbose off").on is False
    sp = classify("setProperty greeting = hello there")
    assert (sp.key, sp.value) == ("greeting", "hello there")
    pf = classify("properties cfg=conf/a.properties")
    assert (pf.key, pf.path) == ("cfg", "conf/a.properties")
    assert classify("print total: ${n}\\n").expression == "total: ${n}\\n"
    assert classify("sleep 0.5").seconds == 0.5


def test_use_as_input_accepts_inline_values():
    stmt = classify("useAsInput {a: 1, b: [x, y]}")
    assert isinstance(stmt, UseAsInput)
    assert stmt.reference == "{a: 1, b: [x, y]}"


def test_print_dash_wins_over_print_expression():
    # 'print -' is a textual prefix case of 'print <expr>'; order decides
    assert isinstance(classify("print -"), PrintDash)
    assert isinstance(classify("print -x"), Print)


def test_generic_is_total_for_unknown_keywords():
    for line in ["aws.sdk --list-regions", "frobnicate", "yaml --insert a '{b: 1}'", "x=y", "printer -"]:
        stmt = classify(line)
        assert isinstance(stmt, Generic)
        assert stmt.command == line.split()[0]


@pytest.mark.parametrize(
    "line",
    [
        "useYAMLLibrary SnakeYAML",
        "makeNewRoot",
        "makeNewRoot a --bogus-quote",
        "foreach item",
        "end loop",
        "verbose maybe",
        "debug",
        "sleep soon",
        "setProperty novalue",
        "batch a b",
    ],
)
def test_builtin_keyword_with_rejected_arguments_is_generic(line):
    stmt = classify(line)
    assert isinstance(stmt, Generic)
    assert stmt.command == line.split()[0]
    assert stmt.line == line


def test_echo_prefix_sets_flag_and_is_removed():
    stmt = classify("echo print -")
    assert isinstance(stmt, PrintDash)
    assert stmt.echo is True
    assert stmt.line == "print -"
    generic = classify("echo yaml --read a")
    assert isinstance(generic, Generic) and generic.echo and generic.command == "yaml"


def _cursor(text):
    return ScriptCursor(Script.from_text(text, name="t.ybatch"))


def test_skip_lands_on_end_without_running_body():
    cur = _cursor("foreach\nprint hi\nend\n")
    cur.next_statement()
    stmt = skip_to_matching_end(cur)
    assert isinstance(stmt, End)
    assert cur.lineno == 3
    assert cur.position == 3


def test_skip_handles_nested_loops():
    text = "\n".join([
        "foreach",        # 1
        "  foreach",      # 2
        "    print a",    # 3
        "    foreach",    # 4
        "    end",        # 5
        "  end",          # 6
        "print b",        # 7
        "end",            # 8
        "print c",        # 9
    ])
    outer = _cursor(text)
    outer.next_statement()
    skip_to_matching_end(outer)
    assert outer.lineno == 8

    inner = _cursor(text)
    inner.next_statement()
    inner.next_statement()
    skip_to_matching_end(inner)
    assert inner.lineno == 6

    innermost = _cursor(text)
    for _ in range(4):
        innermost.next_statement()
    skip_to_matching_end(innermost)
    assert innermost.lineno == 5


def test_unterminated_foreach_names_start_line():
    cur = _cursor("makeNewRoot x\nforeach\nprint hi\n")
    cur.next_statement()
    cur.next_statement()
    with pytest.raises(StructuralError) as ei:
        skip_to_matching_end(cur)
    assert ei.value.lineno == 2
    assert "line# 2" in str(ei.value)


def test_skip_passes_over_unrecognized_keyword_lines():
    cur = _cursor("foreach\nbatch a b\nend loop\nsleep soon\nend\n")
    cur.next_statement()
    stmt = skip_to_matching_end(cur)
    assert isinstance(stmt, End)
    assert cur.lineno == 5
