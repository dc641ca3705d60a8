"""Tool definitions and validated dispatch for the analysis agent."""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from codeauditor.conversation import ToolCall, ToolResult
from codeauditor.errors import ToolError, ValidationError
from codeauditor.issues import AddResult, Issue, IssueAggregator, normalize_category, normalize_severity
from codeauditor.tools.file_index import WorkingTree
from codeauditor.tools.reader import FileReader

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    SEARCH_CODE = "search_code"
    GET_FILE_INFO = "get_file_info"
    REPORT_ISSUE = "report_issue"
    FINISH_ANALYSIS = "finish_analysis"


class ToolArgs(BaseModel):
    """Base for tool argument models. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ListFilesArgs(ToolArgs):
    directory: str = Field(
        default=".",
        validation_alias=AliasChoices("directory", "path"),
        description="Directory to list, relative to the repository root. Use '.' for the root.",
    )


class ReadFileArgs(ToolArgs):
    path: str = Field(min_length=1, description="Path of the file to read, relative to the repository root")


class SearchCodeArgs(ToolArgs):
    pattern: str = Field(min_length=1, description="Regular expression (or plain text) to search for")
    path: Optional[str] = Field(
        default=None, description="Optional file or directory to restrict the search to"
    )


class GetFileInfoArgs(ToolArgs):
    path: str = Field(min_length=1, description="Path of the file, relative to the repository root")


class ReportIssueArgs(ToolArgs):
    severity: str = Field(
        description="One of: critical, high, medium, low, info",
        json_schema_extra={"enum": ["critical", "high", "medium", "low", "info"]},
    )
    category: str = Field(
        description="One of: security, bug, performance, style",
        json_schema_extra={"enum": ["security", "bug", "performance", "style"]},
    )
    file_path: str = Field(
        min_length=1,
        validation_alias=AliasChoices("file_path", "file", "path"),
        description="File containing the issue, relative to the repository root",
    )
    line_number: Optional[int] = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("line_number", "line"),
        description="1-based line where the issue occurs, if it is tied to a line",
    )
    title: str = Field(min_length=1, max_length=200, description="Short one-line title")
    description: str = Field(min_length=1, description="What is wrong and why it matters")
    suggested_fix: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("suggested_fix", "fix", "suggestion"),
        description="How to fix the issue",
    )

    @field_validator("severity")
    @classmethod
    def _severity(cls, value: str) -> str:
        return normalize_severity(value)

    @field_validator("category")
    @classmethod
    def _category(cls, value: str) -> str:
        return normalize_category(value)


class FinishAnalysisArgs(ToolArgs):
    summary: Optional[str] = Field(
        default=None, description="Optional closing summary of the overall code quality"
    )


@dataclass(frozen=True)
class ToolSpec:
    """Static declaration of one tool."""

    name: ToolName
    description: str
    args_model: type[ToolArgs]

    def schema(self) -> dict:
        """Tool definition in OpenAI function format."""
        parameters = self.args_model.model_json_schema()
        parameters.pop("title", None)
        for prop in parameters.get("properties", {}).values():
            prop.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": parameters,
            },
        }


TOOL_SPECS = {
    spec.name: spec
    for spec in (
        ToolSpec(
            ToolName.LIST_FILES,
            "List the files and subdirectories directly inside a directory of the repository",
            ListFilesArgs,
        ),
        ToolSpec(
            ToolName.READ_FILE,
            "Read a source file. Lines are numbered; long files are truncated with an explicit marker",
            ReadFileArgs,
        ),
        ToolSpec(
            ToolName.SEARCH_CODE,
            "Search the repository for a pattern and return matching lines as path:line: text",
            SearchCodeArgs,
        ),
        ToolSpec(
            ToolName.GET_FILE_INFO,
            "Get size, extension, language and line count of a file without reading it",
            GetFileInfoArgs,
        ),
        ToolSpec(
            ToolName.REPORT_ISSUE,
            "Record one issue found in the code. Call once per distinct issue",
            ReportIssueArgs,
        ),
        ToolSpec(
            ToolName.FINISH_ANALYSIS,
            "Finish the analysis once the important files have been reviewed",
            FinishAnalysisArgs,
        ),
    )
}


@dataclass(frozen=True)
class ToolOutcome:
    """Result of executing one call, plus whether it signalled completion."""

    result: ToolResult
    finished: bool = False
    closing_summary: Optional[str] = None


class ToolRegistry:
    """Executes tool calls against a working tree and an issue aggregator."""

    def __init__(self, tree: WorkingTree, aggregator: IssueAggregator, reader: Optional[FileReader] = None):
        """Initialize the registry.

        Args:
            tree: Working tree the tools operate on
            aggregator: Receives report_issue calls
            reader: File reader (defaults to one with standard limits)
        """
        self.tree = tree
        self.aggregator = aggregator
        self.reader = reader or FileReader(tree)
        self.files_read: set[str] = set()
        self._handlers: dict[ToolName, Callable[[ToolArgs], ToolOutcome]] = {
            ToolName.LIST_FILES: self._list_files,
            ToolName.READ_FILE: self._read_file,
            ToolName.SEARCH_CODE: self._search_code,
            ToolName.GET_FILE_INFO: self._get_file_info,
            ToolName.REPORT_ISSUE: self._report_issue,
            ToolName.FINISH_ANALYSIS: self._finish_analysis,
        }

    def schemas(self) -> list[dict]:
        """Get tool definitions for the LLM.

        Returns:
            List of tool definitions in OpenAI format
        """
        return [spec.schema() for spec in TOOL_SPECS.values()]

    def execute(self, call: ToolCall) -> ToolOutcome:
        """Validate and execute a tool call.

        Never raises for tool-level problems: invalid arguments, unknown tools,
        missing files and read failures all come back as error results.
        """
        try:
            try:
                name = ToolName(call.name)
            except ValueError:
                known = ", ".join(n.value for n in ToolName)
                raise ValidationError(f"Unknown tool '{call.name}'", f"available tools: {known}") from None

            args = TOOL_SPECS[name].args_model.model_validate(call.arguments or {})
            outcome = self._handlers[name](args)
        except pydantic.ValidationError as e:
            return self._error(call, "ValidationError", _format_validation_error(call.name, e))
        except ToolError as e:
            return self._error(call, type(e).__name__, str(e))
        except OSError as e:
            return self._error(call, "ReadError", str(e))
        except (ValueError, RuntimeError) as e:
            # Malformed arguments that slipped past schema validation
            return self._error(call, "ValidationError", str(e))

        return ToolOutcome(
            result=ToolResult(call_id=call.id, content=outcome.result.content),
            finished=outcome.finished,
            closing_summary=outcome.closing_summary,
        )

    def _error(self, call: ToolCall, kind: str, message: str) -> ToolOutcome:
        logger.debug("Tool %s failed: %s: %s", call.name, kind, message)
        return ToolOutcome(result=ToolResult(call_id=call.id, content=f"{kind}: {message}", is_error=True))

    @staticmethod
    def _ok(content: str, **kwargs) -> ToolOutcome:
        # call_id is filled in by execute()
        return ToolOutcome(result=ToolResult(call_id="", content=content), **kwargs)

    def _list_files(self, args: ListFilesArgs) -> ToolOutcome:
        entries = self.tree.list_dir(args.directory)
        payload = {"directory": args.directory or ".", "count": len(entries), "entries": entries}
        return self._ok(json.dumps(payload))

    def _read_file(self, args: ReadFileArgs) -> ToolOutcome:
        result = self.reader.read(args.path)
        self.files_read.add(result.path)

        header = f"File: {result.path} ({result.total_lines} lines, {result.total_bytes} bytes)"
        parts = [header, result.content]
        if result.truncated:
            cut = f"; line {result.shown_lines} is cut short" if result.partial_line else ""
            parts.append(
                f"[truncated: showing lines 1-{result.shown_lines} of {result.total_lines}{cut}; "
                f"output limit is {self.reader.max_read_bytes} bytes]"
            )
        return self._ok("\n".join(parts))

    def _search_code(self, args: SearchCodeArgs) -> ToolOutcome:
        result = self.reader.search(args.pattern, args.path)
        if not result.matches:
            lines = [f"No matches for {args.pattern!r} in {result.files_searched} files"]
        else:
            lines = [f"{len(result.matches)} matches for {args.pattern!r}:"]
            lines.extend(f"{m.path}:{m.line}: {m.text}" for m in result.matches)
        if result.literal:
            lines.append("[note: pattern is not a valid regular expression; matched as plain text]")
        if result.truncated:
            lines.append(
                f"[truncated: more matches exist; limit is {self.reader.max_search_results} "
                f"matches or {self.reader.max_read_bytes} bytes. Narrow the pattern or path]"
            )
        return self._ok("\n".join(lines))

    def _get_file_info(self, args: GetFileInfoArgs) -> ToolOutcome:
        return self._ok(json.dumps(self.reader.info(args.path)))

    def _report_issue(self, args: ReportIssueArgs) -> ToolOutcome:
        # Path must stay inside the tree even though the file itself is not read
        file_path = self.tree.relative_path(args.file_path)
        if not file_path:
            raise ValidationError("file_path must name a file, not the repository root")

        issue = Issue(
            severity=args.severity,
            category=args.category,
            file_path=file_path,
            line_number=args.line_number,
            title=args.title,
            description=args.description,
            suggested_fix=args.suggested_fix,
        )
        status = self.aggregator.add(issue)
        if status is AddResult.DUPLICATE_IGNORED:
            logger.debug("Duplicate issue ignored: %s at %s", issue.title, issue.location)
            return self._ok(
                "Duplicate ignored: an issue with the same file, line and title was already reported."
            )

        logger.info("Issue reported: [%s] %s (%s)", issue.severity, issue.title, issue.location)
        return self._ok(
            f"Issue recorded ({len(self.aggregator)} so far): "
            f"[{issue.severity}/{issue.category}] {issue.title} at {issue.location}"
        )

    def _finish_analysis(self, args: FinishAnalysisArgs) -> ToolOutcome:
        return self._ok(
            f"Analysis finished with {len(self.aggregator)} issues recorded.",
            finished=True,
            closing_summary=args.summary or None,
        )


def _format_validation_error(tool_name: str, error: pydantic.ValidationError) -> str:
    """One 'field: message' line per violated constraint."""
    lines = [f"invalid arguments for {tool_name}"]
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        lines.append(f"- {location}: {item.get('msg', 'invalid value')}")
    return "\n".join(lines)
