"""Tests for logging setup and run transcripts."""

import json
import logging

from rich.logging import RichHandler

from codeauditor.issues import Issue
from codeauditor.state import RunState, TerminationReason
from codeauditor.utils.logging import SessionLogger, configure_logging


def test_configure_logging_levels():
    configure_logging(quiet=True)
    assert logging.getLogger().level == logging.ERROR

    configure_logging(verbose=True)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging()
    assert logging.getLogger().level == logging.INFO
    assert sum(isinstance(h, RichHandler) for h in logging.getLogger().handlers) == 1


def test_session_logger(temp_dir):
    session = SessionLogger(temp_dir, run_id="run1")

    session.log_message("user", "Audit it.")
    session.log_message("assistant", "", tool_calls=[{"id": "1", "name": "list_files", "arguments": {}}])
    session.log_tool_result("1", "NotFoundError: x", is_error=True)
    session.save_issues([Issue(
        severity="low", category="style", file_path="a.rs", title="t", description="d",
    )])
    session.save_run_state(RunState(
        round_count=1, tool_call_count=1, elapsed_time=0.5, terminated=True,
        termination_reason=TerminationReason.STALLED,
    ))

    entries = [json.loads(line) for line in session.transcript_path.read_text().splitlines()]
    assert [e["role"] for e in entries] == ["user", "assistant", "tool"]
    assert entries[2]["is_error"] is True
    assert "ts" in entries[0]
    assert json.loads(session.issues_path.read_text())[0]["file_path"] == "a.rs"
    state = json.loads(session.run_state_path.read_text())
    assert state["phase"] == "finished"
    assert state["termination_reason"] == "stalled"
    assert session.get_log_path().endswith("run1")
