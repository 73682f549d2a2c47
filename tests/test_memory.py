import os

from yamlbatch.batch_datatypes import YamlLibrary
from yamlbatch.batch_memory import DocumentMemory, normalize_label, resolve_path


def test_labels_with_and_without_bang_are_the_same_slot():
    m = DocumentMemory()
    m.save("!snap", {"a": 1})
    assert "snap" in m and "!snap" in m
    assert m.load("snap") == {"a": 1}
    assert normalize_label("!x") == "x"
    assert normalize_label("x") == "x"


def test_empty_memory_is_falsy_but_usable():
    m = DocumentMemory()
    assert len(m) == 0
    assert m.load("nothing") is None
    m.save("k", None)
    assert len(m) == 1
    assert dict(m.items()) == {"k": None}
    m.clear()
    assert len(m) == 0


def test_resolve_inline_literals():
    m = DocumentMemory()
    assert m.resolve("{a: [1, 2]}") == {"a": [1, 2]}
    assert m.resolve('["x"]', library=YamlLibrary.JSON) == ["x"]
    assert m.resolve("  label  ") is None


def test_file_references_read_relative_to_base_dir(tmp_path):
    (tmp_path / "in.json").write_text('{"k": "v"}', encoding="utf-8")
    m = DocumentMemory()
    assert m.resolve("@in.json", base_dir=str(tmp_path)) == {"k": "v"}
    assert m.resolve("@absent.yaml", base_dir=str(tmp_path)) is None


def test_save_reference_writes_file_and_keeps_slot(tmp_path):
    m = DocumentMemory()
    m.save_reference("@out/doc.yaml", {"a": "b"}, base_dir=str(tmp_path))
    assert (tmp_path / "out" / "doc.yaml").read_text(encoding="utf-8") == "a: b\n"
    # a saved file reference is served from memory first
    (tmp_path / "out" / "doc.yaml").write_text("changed: true\n", encoding="utf-8")
    assert m.resolve("@out/doc.yaml", base_dir=str(tmp_path)) == {"a": "b"}


def test_resolve_path(tmp_path, monkeypatch):
    (tmp_path / "here.txt").write_text("", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    assert resolve_path("/abs/file", "/base") == "/abs/file"
    assert resolve_path("here.txt", str(tmp_path)) == str(tmp_path / "here.txt")
    # falls back to the working directory when the file is not under base_dir
    assert resolve_path("missing.txt", "/nowhere") == os.path.join(str(tmp_path), "missing.txt")
    assert resolve_path("new.txt", "/nowhere", must_exist=False) == os.path.join("/nowhere", "new.txt")
