"""Console logging setup and per-run transcripts."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler

# Libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def configure_logging(verbose: bool = False, quiet: bool = False, console: Optional[Console] = None) -> None:
    """Route all package loggers through a rich console handler.

    Args:
        verbose: Show debug messages
        quiet: Only show errors
        console: Console to write to (defaults to stderr)
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class SessionLogger:
    """Writes the transcript of one analysis run."""

    def __init__(self, log_root: Path, run_id: Optional[str] = None):
        """Initialize session logger.

        Args:
            log_root: Directory that holds one subdirectory per run
            run_id: Optional run ID (generated if not provided)
        """
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        self.log_dir = Path(log_root) / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.transcript_path = self.log_dir / "transcript.ndjson"
        self.issues_path = self.log_dir / "issues.json"
        self.run_state_path = self.log_dir / "run_state.json"

    def _append(self, entry: dict[str, Any]) -> None:
        entry = {"ts": datetime.now().isoformat(), **entry}
        with open(self.transcript_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_message(self, role: str, content: str, tool_calls: Optional[list] = None) -> None:
        """Log a conversation message.

        Args:
            role: Message role (user, assistant, system)
            content: Message content
            tool_calls: Optional tool calls
        """
        entry: dict[str, Any] = {"role": role, "content": content}
        if tool_calls:
            entry["tool_calls"] = tool_calls
        self._append(entry)

    def log_tool_result(self, call_id: str, content: str, is_error: bool = False) -> None:
        """Log the result of a tool call."""
        self._append({"role": "tool", "call_id": call_id, "content": content, "is_error": is_error})

    def save_issues(self, issues: Iterable[Any]) -> None:
        """Save finalized issues (pydantic models) to disk."""
        with open(self.issues_path, "w", encoding="utf-8") as f:
            json.dump([issue.model_dump() for issue in issues], f, indent=2)

    def save_run_state(self, run_state: Any) -> None:
        """Save the final run state to disk."""
        data = {
            "round_count": run_state.round_count,
            "tool_call_count": run_state.tool_call_count,
            "elapsed_time": run_state.elapsed_time,
            "phase": run_state.phase.value,
            "termination_reason": run_state.termination_reason.value if run_state.termination_reason else None,
            "error": run_state.error,
            "closing_summary": run_state.closing_summary,
        }
        with open(self.run_state_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get_log_path(self) -> str:
        """Get the path to the log directory.

        Returns:
            Absolute path to log directory
        """
        return str(self.log_dir.absolute())
