"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path

import pytest

from codeauditor.config import RunConfig
from codeauditor.conversation import ModelTurn, ToolCall
from codeauditor.issues import IssueAggregator
from codeauditor.tools.file_index import WorkingTree
from codeauditor.tools.registry import ToolRegistry
from codeauditor.utils.ignore import IgnoreRules

A_RS = """use std::fs;

fn load(path: &str) -> String {
    fs::read_to_string(path).unwrap()
}

fn main() {
    let data = load("config.toml");
    let n: i32 = data.trim().parse().unwrap();
    println!("{}", 100 / n);
}
"""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def test_project(temp_dir):
    """Create a small repository: three root entries (src/, a.rs, b.py)."""
    (temp_dir / "a.rs").write_text(A_RS)
    (temp_dir / "b.py").write_text("import os\n\nPASSWORD = 'hunter2'\n\ndef run(cmd):\n    os.system(cmd)\n")

    (temp_dir / "src").mkdir()
    (temp_dir / "src" / "lib.rs").write_text("pub fn add(a: i32, b: i32) -> i32 {\n    a + b\n}\n")
    (temp_dir / "src" / "util.rs").write_text("pub fn double(x: i32) -> i32 {\n    x * 2\n}\n")

    yield temp_dir


@pytest.fixture
def ignore_rules(temp_dir):
    """Create ignore rules for temp directory."""
    return IgnoreRules(temp_dir)


@pytest.fixture
def tree(test_project):
    """Working tree over the test project with default filters."""
    return WorkingTree.scan(test_project)


@pytest.fixture
def aggregator():
    return IssueAggregator()


@pytest.fixture
def registry(tree, aggregator):
    return ToolRegistry(tree, aggregator)


@pytest.fixture
def make_config(temp_dir):
    """Factory for run configs that never sleep and write into the temp dir."""

    def _make(**overrides) -> RunConfig:
        values = {
            "api_key": "test-key",
            "retry_delay": 0.0,
            "output_path": temp_dir / "report.md",
        }
        values.update(overrides)
        return RunConfig(**values)

    return _make


class FakeClient:
    """Scripted LLMClient.

    Each script item is a ModelTurn to return, or an exception to raise.
    Once the script is used up the client keeps returning the fallback turn.
    """

    def __init__(self, script=(), fallback=None):
        self.script = list(script)
        self.fallback = fallback or ModelTurn(text="Nothing more to do.")
        self.calls = 0
        self.conversations = []

    def send(self, conversation):
        self.calls += 1
        self.conversations.append(conversation)
        if self.script:
            item = self.script.pop(0)
        else:
            item = self.fallback
        if isinstance(item, BaseException):
            raise item
        return item


def call(call_id, name, **arguments):
    """Shorthand for a ToolCall."""
    return ToolCall(id=call_id, name=name, arguments=arguments)


def turn(*calls, text=""):
    """Shorthand for a ModelTurn."""
    return ModelTurn(text=text, tool_calls=tuple(calls))


@pytest.fixture
def fake_client_factory():
    return FakeClient
