"""Tests for the command-line interface."""

import json

import pytest
from conftest import FakeClient, call, turn
from rich.console import Console
from typer.testing import CliRunner

from codeauditor import cli
from codeauditor.config import ENV_VARS
from codeauditor.errors import BackendError

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    # Wide console so messages with temp paths are not wrapped
    monkeypatch.setattr(cli, "console", Console(width=500))


@pytest.fixture
def use_client(monkeypatch):
    """Replace the real backend with a scripted client."""

    def _use(client):
        monkeypatch.setattr(cli, "build_client", lambda config: client)
        return client

    return _use


def finishing_client():
    return FakeClient([
        turn(call(
            "c1", "report_issue",
            severity="critical", category="security", file_path="b.py", line_number=6,
            title="Shell injection", description="os.system with caller input.",
        )),
        turn(call("c2", "finish_analysis", summary="One serious problem.")),
    ])


def test_local_run_writes_markdown_report(test_project, tmp_path, use_client):
    use_client(finishing_client())
    output = tmp_path / "out" / "report.md"

    result = runner.invoke(cli.app, ["--local", str(test_project), "--output", str(output)])

    assert result.exit_code == 0, result.output
    report = output.read_text()
    assert "Shell injection" in report
    assert "Analysis Summary" in result.output
    assert "Total issues: 1" in result.output


def test_json_format(test_project, tmp_path, use_client):
    use_client(finishing_client())
    output = tmp_path / "report.json"

    result = runner.invoke(cli.app, ["--local", str(test_project), "-o", str(output), "--format", "json", "-q"])

    assert result.exit_code == 0, result.output
    data = json.loads(output.read_text())
    assert data["termination_reason"] == "finished"
    assert data["closing_summary"] == "One serious problem."


def test_zero_issues_is_success(test_project, tmp_path, use_client):
    use_client(FakeClient([turn(call("f", "finish_analysis"))]))
    output = tmp_path / "report.md"

    result = runner.invoke(cli.app, ["--local", str(test_project), "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert "No issues were found" in output.read_text()


def test_backend_failure_writes_partial_report(test_project, tmp_path, use_client):
    use_client(FakeClient([
        turn(call(
            "c1", "report_issue",
            severity="high", category="bug", file_path="a.rs", line_number=10,
            title="Division by zero", description="n may be zero.",
        )),
        BackendError("Model request timed out", retryable=True),
    ]))
    output = tmp_path / "report.md"

    result = runner.invoke(cli.app, ["--local", str(test_project), "-o", str(output), "--retries", "0"])

    assert result.exit_code == 1
    report = output.read_text()
    assert "Division by zero" in report
    assert "aborted" in report


def test_extensions_option_limits_tree(test_project, tmp_path, use_client):
    client = use_client(FakeClient([turn(call("l", "list_files")), turn(call("f", "finish_analysis"))]))

    result = runner.invoke(cli.app, [
        "--local", str(test_project), "-o", str(tmp_path / "r.md"), "--extensions", "py", "-q",
    ])

    assert result.exit_code == 0, result.output
    listing_result = client.conversations[1].messages[-1]
    assert json.loads(listing_result.content)["count"] == 1


def test_requires_exactly_one_source(test_project):
    neither = runner.invoke(cli.app, [])
    both = runner.invoke(cli.app, ["--local", str(test_project), "--repo", "https://github.com/a/b"])

    assert neither.exit_code == 1
    assert both.exit_code == 1


def test_invalid_repo_url():
    result = runner.invoke(cli.app, ["--repo", "not-a-url"])

    assert result.exit_code == 1
    assert "invalid repository URL" in result.output


def test_verbose_and_quiet_conflict(test_project):
    result = runner.invoke(cli.app, ["--local", str(test_project), "-v", "-q"])

    assert result.exit_code == 1
    assert "cannot be used together" in result.output


def test_missing_local_directory(tmp_path):
    result = runner.invoke(cli.app, ["--local", str(tmp_path / "nope")])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_missing_api_key(test_project, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY")

    result = runner.invoke(cli.app, ["--local", str(test_project)])

    assert result.exit_code == 1
    assert "API key" in result.output


def test_invalid_config_file(test_project, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{")

    result = runner.invoke(cli.app, ["--local", str(test_project), "--config", str(bad)])

    assert result.exit_code == 1
    assert "Error loading configuration" in result.output


def test_interrupt_exits_130_with_report(test_project, tmp_path, use_client):
    use_client(FakeClient([turn(call("l", "list_files")), KeyboardInterrupt()]))
    output = tmp_path / "report.md"

    result = runner.invoke(cli.app, ["--local", str(test_project), "-o", str(output)])

    assert result.exit_code == 130
    assert "cancelled" in output.read_text()
