"""Tests for tool schemas and validated dispatch."""

import json

from conftest import call

from codeauditor.tools.registry import TOOL_SPECS, ToolName


def test_schemas_declare_all_tools(registry):
    """Every tool is declared with a JSON schema and no pydantic titles."""
    schemas = registry.schemas()
    names = [schema["function"]["name"] for schema in schemas]

    assert names == [name.value for name in ToolName]
    report = next(s for s in schemas if s["function"]["name"] == "report_issue")
    parameters = report["function"]["parameters"]
    assert set(parameters["required"]) >= {"severity", "category", "file_path", "title", "description"}
    assert parameters["properties"]["severity"]["enum"] == ["critical", "high", "medium", "low", "info"]
    assert "title" not in parameters
    assert len(TOOL_SPECS) == 6


def test_list_files(registry):
    outcome = registry.execute(call("1", "list_files", directory="."))

    payload = json.loads(outcome.result.content)
    assert not outcome.result.is_error
    assert outcome.result.call_id == "1"
    assert payload["count"] == 3
    assert [entry["path"] for entry in payload["entries"]] == ["src/", "a.rs", "b.py"]


def test_list_files_defaults_to_root(registry):
    payload = json.loads(registry.execute(call("1", "list_files")).result.content)
    assert payload["count"] == 3


def test_read_file(registry):
    outcome = registry.execute(call("r", "read_file", path="a.rs"))

    assert not outcome.result.is_error
    assert outcome.result.content.startswith("File: a.rs (11 lines")
    assert " 4 |     fs::read_to_string(path).unwrap()" in outcome.result.content
    assert registry.files_read == {"a.rs"}


def test_read_file_truncation_marker(tree, aggregator):
    from codeauditor.tools.reader import FileReader
    from codeauditor.tools.registry import ToolRegistry

    registry = ToolRegistry(tree, aggregator, FileReader(tree, max_read_bytes=60))
    content = registry.execute(call("r", "read_file", path="a.rs")).result.content

    assert "[truncated: showing lines 1-" in content
    assert "of 11; output limit is 60 bytes]" in content


def test_path_traversal_is_validation_error(registry):
    """Traversal never yields file content."""
    outcome = registry.execute(call("t", "read_file", path="../../etc/passwd"))

    assert outcome.result.is_error
    assert outcome.result.content.startswith("ValidationError: Path outside repository root")
    assert "root:" not in outcome.result.content


def test_malformed_paths_are_error_results(registry):
    """Paths the filesystem layer rejects come back as validation errors."""
    outcome = registry.execute(call("n", "read_file", path="a\x00.rs"))
    assert outcome.result.is_error
    assert outcome.result.content.startswith("ValidationError:")

    outcome = registry.execute(call("h", "read_file", path="~nosuchuser_zz/a.rs"))
    assert outcome.result.is_error
    assert outcome.result.content.startswith("NotFoundError:")


def test_missing_file_is_not_found(registry):
    outcome = registry.execute(call("m", "read_file", path="missing.rs"))

    assert outcome.result.is_error
    assert outcome.result.content.startswith("NotFoundError: File not found")


def test_invalid_arguments(registry):
    """Schema violations name the offending field."""
    outcome = registry.execute(call("v", "read_file"))

    assert outcome.result.is_error
    assert outcome.result.content.startswith("ValidationError: invalid arguments for read_file")
    assert "- path:" in outcome.result.content


def test_unknown_tool(registry):
    outcome = registry.execute(call("u", "delete_everything"))

    assert outcome.result.is_error
    assert "Unknown tool 'delete_everything'" in outcome.result.content
    assert "finish_analysis" in outcome.result.content


def test_search_code(registry):
    content = registry.execute(call("s", "search_code", pattern="unwrap", path="a.rs")).result.content

    assert content.splitlines()[0] == "2 matches for 'unwrap':"
    assert "a.rs:4: fs::read_to_string(path).unwrap()" in content


def test_search_code_no_matches(registry):
    content = registry.execute(call("s", "search_code", pattern="eval\\(")).result.content
    assert content.startswith("No matches for")


def test_get_file_info(registry):
    info = json.loads(registry.execute(call("i", "get_file_info", path="b.py")).result.content)
    assert info["line_count"] == 6


def test_report_issue_with_aliases(registry, aggregator):
    """Common argument spellings and severity synonyms are accepted."""
    outcome = registry.execute(call(
        "ri", "report_issue",
        severity="Major", category="correctness", file="./a.rs", line=4,
        title="Unchecked unwrap", description="Panics if the config is missing.", fix="Propagate the error.",
    ))

    assert not outcome.result.is_error
    assert outcome.result.content.startswith("Issue recorded (1 so far): [high/bug] Unchecked unwrap at a.rs:4")
    issue = next(iter(aggregator))
    assert issue.file_path == "a.rs"
    assert issue.suggested_fix == "Propagate the error."


def test_report_issue_duplicate(registry, aggregator):
    arguments = dict(
        severity="high", category="bug", file_path="a.rs", line_number=4,
        title="Unchecked unwrap", description="first",
    )
    registry.execute(call("1", "report_issue", **arguments))
    outcome = registry.execute(call("2", "report_issue", **dict(arguments, description="second")))

    assert not outcome.result.is_error
    assert outcome.result.content.startswith("Duplicate ignored")
    assert len(aggregator) == 1


def test_report_issue_rejects_bad_values(registry, aggregator):
    bad_severity = registry.execute(call(
        "1", "report_issue",
        severity="catastrophic", category="bug", file_path="a.rs", title="t", description="d",
    ))
    outside = registry.execute(call(
        "2", "report_issue",
        severity="low", category="bug", file_path="../x.rs", title="t", description="d",
    ))

    assert bad_severity.result.is_error and "- severity:" in bad_severity.result.content
    assert outside.result.is_error and outside.result.content.startswith("ValidationError")
    assert len(aggregator) == 0


def test_finish_analysis(registry):
    outcome = registry.execute(call("f", "finish_analysis", summary="Looks fine overall."))

    assert outcome.finished
    assert outcome.closing_summary == "Looks fine overall."
    assert outcome.result.content == "Analysis finished with 0 issues recorded."
