"""Tests for bounded file reads and code search."""

import pytest

from codeauditor.errors import NotFoundError, ValidationError
from codeauditor.tools.file_index import WorkingTree
from codeauditor.tools.reader import FileReader


def test_read_numbers_lines(tree):
    """Reads return line-numbered content and totals."""
    result = FileReader(tree).read("src/lib.rs")

    assert result.path == "src/lib.rs"
    assert result.total_lines == 3
    assert result.content.splitlines()[0] == "1 | pub fn add(a: i32, b: i32) -> i32 {"
    assert not result.truncated


def test_read_truncates_whole_lines(test_project):
    """Content over the byte ceiling is cut at a line boundary and reported."""
    (test_project / "long.rs").write_text("".join(f"let x{i} = {i};\n" for i in range(200)))
    tree = WorkingTree.scan(test_project)

    result = FileReader(tree, max_read_bytes=200).read("long.rs")

    assert result.truncated
    assert result.total_lines == 200
    assert 0 < result.shown_lines < 200
    assert len(result.content.encode("utf-8")) <= 200
    assert result.content.splitlines()[-1].endswith(f"let x{result.shown_lines - 1} = {result.shown_lines - 1};")


def test_read_cuts_oversized_first_line(test_project):
    """A single line longer than the ceiling is cut rather than dropped."""
    (test_project / "bundle.js").write_text("var a=" + "1," * 500 + "0;\nvar b=2;\n")
    tree = WorkingTree.scan(test_project)

    result = FileReader(tree, max_read_bytes=100).read("bundle.js")

    assert result.truncated
    assert result.partial_line
    assert result.shown_lines == 1
    assert result.content.startswith("1 | var a=1,1,")
    assert len(result.content.encode("utf-8")) <= 100


def test_read_rejects_traversal(tree):
    with pytest.raises(ValidationError):
        FileReader(tree).read("../../etc/passwd")


def test_read_rejects_non_utf8(test_project):
    (test_project / "latin.rs").write_bytes("// caf\xe9\n".encode("latin-1"))
    tree = WorkingTree.scan(test_project, extensions=["rs"])

    with pytest.raises(ValidationError, match="UTF-8"):
        FileReader(tree).read("latin.rs")


def test_search_regex(tree):
    """Matches are returned in path then line order."""
    result = FileReader(tree).search(r"fn \w+\(")

    locations = [(m.path, m.line) for m in result.matches]
    assert locations == [("a.rs", 3), ("a.rs", 7), ("src/lib.rs", 1), ("src/util.rs", 1)]
    assert result.files_searched == 4
    assert not result.literal
    assert not result.truncated


def test_search_invalid_regex_falls_back_to_literal(tree):
    result = FileReader(tree).search("unwrap(")

    assert result.literal
    assert [m.line for m in result.matches] == [4, 9]


def test_search_scoped_to_directory(tree):
    result = FileReader(tree).search("pub fn", path="src")

    assert {m.path for m in result.matches} == {"src/lib.rs", "src/util.rs"}
    assert result.files_searched == 2


def test_search_scope_errors(tree):
    reader = FileReader(tree)
    with pytest.raises(NotFoundError):
        reader.search("x", path="docs")
    with pytest.raises(ValidationError):
        reader.search("x", path="../")


def test_search_result_limit(tree):
    result = FileReader(tree, max_search_results=2).search(".")

    assert len(result.matches) == 2
    assert result.truncated


def test_info(tree):
    info = FileReader(tree).info("b.py")

    assert info["path"] == "b.py"
    assert info["extension"] == "py"
    assert info["language"] == "python"
    assert info["line_count"] == 6
    assert info["size"] > 0
