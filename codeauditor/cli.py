"""Command-line interface for Code Auditor."""

import contextlib
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from codeauditor.audit import AuditResult, run_audit
from codeauditor.config import RunConfig
from codeauditor.constants import SEVERITIES, SEVERITY_ICONS
from codeauditor.conversation import ToolCall, ToolResult
from codeauditor.errors import ConfigError, RepositoryError
from codeauditor.llm import build_client
from codeauditor.report import OutputFormat
from codeauditor.state import TerminationReason
from codeauditor.utils.git import TemporaryClone, is_remote, resolve_local
from codeauditor.utils.logging import configure_logging

app = typer.Typer(help="Code Auditor - AI-powered source repository analyzer")
console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


@app.command()
def main(
    repo: Optional[str] = typer.Option(
        None, "--repo", "-r", help="Git repository URL to clone and analyze (https:// or git@)"
    ),
    local: Optional[Path] = typer.Option(
        None, "--local", help="Analyze a local directory instead of cloning"
    ),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch to clone"),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Model alias or name (e.g., anthropic:claude-sonnet-4-5)"
    ),
    backend_url: Optional[str] = typer.Option(
        None, "--backend-url", help="Anthropic-compatible API endpoint"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Report output path"),
    output_format: Optional[OutputFormat] = typer.Option(
        None, "--format", "-f", case_sensitive=False, help="Report format"
    ),
    max_files: Optional[int] = typer.Option(None, "--max-files", help="Maximum number of files in the working tree"),
    max_rounds: Optional[int] = typer.Option(None, "--max-rounds", help="Maximum model rounds"),
    max_tool_calls: Optional[int] = typer.Option(None, "--max-tool-calls", help="Maximum tool calls"),
    extensions: Optional[str] = typer.Option(
        None, "--extensions", "-e", help="Comma-separated file extensions to include (e.g., py,rs,ts)"
    ),
    exclude: Optional[str] = typer.Option(
        None, "--exclude", help="Comma-separated gitignore-style patterns to exclude"
    ),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Sampling temperature (0.0-1.0)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Model request timeout in seconds"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries for transient backend failures"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    transcript_dir: Optional[Path] = typer.Option(
        None, "--transcript-dir", help="Write an NDJSON transcript of the run under this directory"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show errors"),
) -> None:
    """Analyze a repository and write an audit report."""
    if verbose and quiet:
        console.print("[red]Error: --verbose and --quiet cannot be used together[/red]")
        sys.exit(EXIT_FAILURE)

    if bool(repo) == bool(local):
        console.print("[red]Error: specify exactly one of --repo or --local[/red]")
        sys.exit(EXIT_FAILURE)

    if repo and not is_remote(repo):
        console.print(f"[red]Error: invalid repository URL: {repo}[/red]")
        console.print("[dim]Use an https:// or git@ URL, or --local for a directory[/dim]")
        sys.exit(EXIT_FAILURE)

    configure_logging(verbose=verbose, quiet=quiet)

    overrides = {
        "model_name": model,
        "backend_url": backend_url,
        "output_path": output,
        "output_format": output_format.value if output_format else None,
        "max_files": max_files,
        "max_rounds": max_rounds,
        "max_tool_calls": max_tool_calls,
        "extensions_allowlist": extensions,
        "path_excludes": exclude,
        "temperature": temperature,
        "timeout": timeout,
        "max_retries": retries,
        "transcript_dir": transcript_dir,
    }

    # Load configuration
    try:
        config = RunConfig.load(config_path, overrides)
    except ConfigError as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    try:
        with _materialize(repo, local, branch) as repo_root:
            config = config.with_repo_config(repo_root, overrides)

            # Validate configuration
            errors = config.validate()
            if errors:
                console.print("[red]Configuration errors:[/red]")
                for error in errors:
                    console.print(f"  - {error}")
                sys.exit(EXIT_FAILURE)

            if not quiet:
                console.print(Panel.fit(
                    "[bold cyan]Code Auditor[/bold cyan]\n"
                    f"Repository: {repo or repo_root}\n"
                    f"Model: {config.model_name}",
                    border_style="cyan",
                ))

            client = build_client(config)
            result = run_audit(
                repo_root,
                config,
                client,
                repository=repo or str(repo_root),
                on_tool_call=None if quiet else _print_tool_call,
            )
    except (ConfigError, RepositoryError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        sys.exit(EXIT_CANCELLED)

    if not quiet:
        _print_summary(result)

    sys.exit(_exit_code(result))


def _materialize(repo: Optional[str], local: Optional[Path], branch: Optional[str]):
    """Context manager yielding the repository directory to analyze."""
    if local is not None:
        return contextlib.nullcontext(resolve_local(local))
    return TemporaryClone(repo, branch=branch)


def _exit_code(result: AuditResult) -> int:
    reason = result.run_state.termination_reason
    if reason is TerminationReason.CANCELLED:
        return EXIT_CANCELLED
    if reason is TerminationReason.BACKEND_FAILURE:
        return EXIT_FAILURE
    return EXIT_OK


def _print_tool_call(call: ToolCall, result: ToolResult) -> None:
    arguments = json.dumps(call.arguments, ensure_ascii=False)
    if len(arguments) > 80:
        arguments = arguments[:77] + "..."
    style = "red" if result.is_error else "dim"
    console.print(f"[{style}]→ {call.name} {escape(arguments)}[/{style}]", highlight=False)


def _print_summary(result: AuditResult) -> None:
    """Print the post-run summary."""
    report = result.report
    counts = report.summary_by_severity

    console.print("\n[bold]📊 Analysis Summary:[/bold]")
    console.print(f"   Files with issues: {len(report.issues_by_file())}")
    console.print(f"   Total issues: {report.total_issues}")
    console.print("   - " + " | ".join(
        f"{SEVERITY_ICONS[severity]} {severity.capitalize()}: {counts[severity]}" for severity in SEVERITIES
    ))
    console.print(f"   Duration: {report.duration_seconds:.1f}s")

    for notice in report.notices:
        console.print(f"[yellow]Note: {notice.message}[/yellow]")

    if result.output_path:
        console.print(f"\n[green]Report written to {result.output_path}[/green]")
    if result.transcript_path:
        console.print(f"[dim]Transcript: {result.transcript_path}[/dim]")


if __name__ == "__main__":
    app()
