"""One complete analysis run: working tree, agent loop and report."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from codeauditor.config import RunConfig
from codeauditor.conversation import ConversationState
from codeauditor.graph import AgentLoop, ToolCallback
from codeauditor.issues import IssueAggregator
from codeauditor.llm import LLMClient
from codeauditor.report import Report, ReportFormatter, ReportSynthesizer, RunMetadata
from codeauditor.state import RunState
from codeauditor.system_prompt import SystemPromptBuilder
from codeauditor.tools.file_index import WorkingTree
from codeauditor.tools.reader import FileReader
from codeauditor.tools.registry import ToolRegistry
from codeauditor.utils.ignore import IgnoreRules
from codeauditor.utils.logging import SessionLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditResult:
    """Everything a caller needs after a run."""

    report: Report
    run_state: RunState
    conversation: ConversationState
    tree: WorkingTree
    output_path: Optional[Path] = None
    transcript_path: Optional[str] = None


def build_tree(repo_root: Path, config: RunConfig) -> WorkingTree:
    """Scan the repository with the configured filters."""
    ignore_rules = IgnoreRules(repo_root, config.path_excludes)
    tree = WorkingTree.scan(
        repo_root,
        ignore_rules=ignore_rules,
        extensions=config.extensions_allowlist,
        max_files=config.max_files,
        max_file_size_kb=config.max_file_size_kb,
    )
    logger.info(tree.summarize())
    return tree


def run_audit(
    repo_root: Path,
    config: RunConfig,
    client: LLMClient,
    repository: Optional[str] = None,
    on_tool_call: Optional[ToolCallback] = None,
    write: bool = True,
) -> AuditResult:
    """Analyze one repository.

    Every object holding run state is created here, so independent runs share
    nothing but the (immutable) config and the client.

    Args:
        repo_root: Materialized repository directory
        config: Run configuration
        client: Model backend
        repository: Display name (URL or path) for prompts and the report
        on_tool_call: Progress callback passed to the loop
        write: Write the rendered report to config.output_path

    Returns:
        AuditResult

    Raises:
        RepositoryError: If repo_root is not a directory
    """
    repo_root = Path(repo_root)
    repository = repository or str(repo_root)
    started_at = datetime.now(timezone.utc)

    tree = build_tree(repo_root, config)
    if not len(tree):
        logger.warning("No files matched the configured extensions and excludes")

    aggregator = IssueAggregator()
    reader = FileReader(tree, config.max_read_bytes, config.max_search_results)
    registry = ToolRegistry(tree, aggregator, reader)

    transcript = SessionLogger(config.transcript_dir) if config.transcript_dir else None

    prompts = SystemPromptBuilder(tree, repository)
    loop = AgentLoop(client, registry, config, transcript=transcript, on_tool_call=on_tool_call)
    result = loop.run(prompts.build_system_prompt(registry.schemas()), prompts.build_task_prompt())

    issues = aggregator.finalize()
    if transcript:
        transcript.save_issues(issues)

    metadata = RunMetadata(
        repository=repository,
        model=config.model_name,
        backend_url=config.backend_url,
        started_at=started_at,
        files_in_tree=len(tree),
        files_examined=len(registry.files_read),
    )
    report = ReportSynthesizer().synthesize(result.run_state, issues, metadata)

    output_path = None
    if write:
        output_path = write_report(report, config.output_path, config.output_format)

    return AuditResult(
        report=report,
        run_state=result.run_state,
        conversation=result.conversation,
        tree=tree,
        output_path=output_path,
        transcript_path=transcript.get_log_path() if transcript else None,
    )


def write_report(report: Report, output_path: Path, output_format: str) -> Path:
    """Render and write the report.

    Returns:
        Path written
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(ReportFormatter().render(report, output_format), encoding="utf-8")
    logger.info("Report written to %s", output_path)
    return output_path
