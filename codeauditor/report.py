"""Report synthesis and rendering."""

from datetime import datetime
from enum import Enum
from typing import Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from codeauditor.constants import CATEGORIES, SEVERITIES, SEVERITY_ICONS
from codeauditor.issues import Issue
from codeauditor.state import RunState, TerminationReason


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


class NoticeKind(str, Enum):
    EMPTY_ANALYSIS = "empty_analysis"
    ABORTED = "aborted"
    CANCELLED = "cancelled"
    BUDGET_EXHAUSTED = "budget_exhausted"
    STALLED = "stalled"


class RunMetadata(BaseModel):
    """Facts about the run that are known outside the loop."""

    model_config = ConfigDict(frozen=True)

    repository: str
    model: str
    backend_url: Optional[str] = None
    started_at: datetime
    files_in_tree: int
    files_examined: int = 0


class ReportNotice(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: NoticeKind
    message: str


class Report(BaseModel):
    """Formatter-agnostic result of one analysis run."""

    model_config = ConfigDict(frozen=True)

    metadata: RunMetadata
    outcome: str
    termination_reason: str
    rounds: int
    tool_calls: int
    duration_seconds: float
    closing_summary: Optional[str] = None
    error: Optional[str] = None
    summary_by_severity: dict[str, int]
    summary_by_category: dict[str, int]
    total_issues: int
    issues: tuple[Issue, ...] = ()
    notices: tuple[ReportNotice, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.total_issues == 0

    def issues_by_file(self) -> dict[str, list[Issue]]:
        """Group issues by file, keeping finalized order within and across groups."""
        grouped: dict[str, list[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.file_path, []).append(issue)
        return grouped

    def has_notice(self, kind: NoticeKind) -> bool:
        return any(notice.kind is kind for notice in self.notices)


class ReportSynthesizer:
    """Builds a Report from the run state and the finalized issues."""

    def synthesize(self, run_state: RunState, issues: Sequence[Issue], metadata: RunMetadata) -> Report:
        """Build the report.

        Zero issues after a run that was not aborted yields an empty-analysis
        notice rather than an error.

        Args:
            run_state: Final run state
            issues: Issues in finalized order
            metadata: Run metadata

        Returns:
            Report
        """
        by_severity = {severity: 0 for severity in SEVERITIES}
        by_category = {category: 0 for category in CATEGORIES}
        for issue in issues:
            by_severity[issue.severity] += 1
            by_category[issue.category] += 1

        reason = run_state.termination_reason or TerminationReason.STALLED

        return Report(
            metadata=metadata,
            outcome=run_state.phase.value,
            termination_reason=reason.value,
            rounds=run_state.round_count,
            tool_calls=run_state.tool_call_count,
            duration_seconds=round(run_state.elapsed_time, 2),
            closing_summary=run_state.closing_summary,
            error=run_state.error,
            summary_by_severity=by_severity,
            summary_by_category=by_category,
            total_issues=len(issues),
            issues=tuple(issues),
            notices=tuple(self._notices(run_state, reason, len(issues))),
            recommendations=tuple(self._recommendations(reason, by_severity, by_category)),
        )

    def _notices(self, run_state: RunState, reason: TerminationReason, total: int) -> list[ReportNotice]:
        notices = []

        if reason is TerminationReason.BACKEND_FAILURE:
            found = f"{total} issues found before the failure are included." if total else (
                "No issues were recorded before the failure; this is not a clean result."
            )
            notices.append(ReportNotice(
                kind=NoticeKind.ABORTED,
                message=f"The analysis was aborted: {run_state.error or 'model backend failure'}. {found}",
            ))
        elif reason is TerminationReason.CANCELLED:
            notices.append(ReportNotice(
                kind=NoticeKind.CANCELLED,
                message=f"The analysis was cancelled. {total} issues found before cancellation are included.",
            ))
        elif reason in (TerminationReason.MAX_ROUNDS, TerminationReason.MAX_TOOL_CALLS):
            budget = "round" if reason is TerminationReason.MAX_ROUNDS else "tool call"
            notices.append(ReportNotice(
                kind=NoticeKind.BUDGET_EXHAUSTED,
                message=f"The {budget} budget was exhausted before the model finished; coverage may be incomplete.",
            ))
        elif reason is TerminationReason.STALLED:
            notices.append(ReportNotice(
                kind=NoticeKind.STALLED,
                message="The model stopped calling tools without finishing the analysis.",
            ))

        if total == 0 and not run_state.aborted:
            notices.append(ReportNotice(
                kind=NoticeKind.EMPTY_ANALYSIS,
                message="No issues were found in the examined files.",
            ))

        return notices

    def _recommendations(
        self, reason: TerminationReason, by_severity: dict[str, int], by_category: dict[str, int]
    ) -> list[str]:
        recommendations = ["Review all reported issues and prioritize by severity."]
        if by_severity["critical"] or by_severity["high"]:
            recommendations.append("Address critical and high severity issues first.")
        if by_category["security"]:
            recommendations.append("Have security findings reviewed by someone familiar with the threat model.")
        if reason is not TerminationReason.FINISHED:
            recommendations.append("The analysis did not complete; re-run with larger budgets for full coverage.")
        return recommendations


class ReportFormatter:
    """Renders a Report as Markdown or JSON."""

    def render(self, report: Report, output_format: Union[OutputFormat, str] = OutputFormat.MARKDOWN) -> str:
        """Render the report.

        Args:
            report: Report to render
            output_format: "markdown" or "json"

        Returns:
            Rendered text
        """
        output_format = OutputFormat(output_format)
        if output_format is OutputFormat.JSON:
            return self.to_json(report)
        return self.to_markdown(report)

    def to_json(self, report: Report) -> str:
        return report.model_dump_json(indent=2) + "\n"

    def to_markdown(self, report: Report) -> str:
        meta = report.metadata
        lines = [
            "# Code Audit Report",
            "",
            "## Metadata",
            "",
            f"- **Repository**: {meta.repository}",
            f"- **Analysis Date**: {meta.started_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
            f"- **Model**: {meta.model}",
            f"- **Files in Tree**: {meta.files_in_tree}",
            f"- **Files Examined**: {meta.files_examined}",
            f"- **Duration**: {report.duration_seconds:.1f}s",
            f"- **Rounds**: {report.rounds}",
            f"- **Tool Calls**: {report.tool_calls}",
            f"- **Outcome**: {report.outcome} ({report.termination_reason})",
            "",
            "## Summary",
            "",
            "| Severity | Count |",
            "|----------|-------|",
        ]
        for severity in SEVERITIES:
            lines.append(f"| {SEVERITY_ICONS[severity]} {severity.capitalize()} | {report.summary_by_severity[severity]} |")
        lines.append(f"| **Total** | **{report.total_issues}** |")

        lines += ["", "| Category | Count |", "|----------|-------|"]
        for category in CATEGORIES:
            lines.append(f"| {category.capitalize()} | {report.summary_by_category[category]} |")
        lines.append("")

        if report.notices:
            lines += ["## Notes", ""]
            for notice in report.notices:
                label = notice.kind.value.replace("_", " ").capitalize()
                lines.append(f"> **{label}**: {notice.message}")
                lines.append(">")
            lines[-1] = ""

        if report.closing_summary:
            lines += ["## Overview", "", report.closing_summary.strip(), ""]

        if report.issues:
            lines += ["## Issues", ""]
            for file_path, file_issues in report.issues_by_file().items():
                lines += [f"### `{file_path}`", ""]
                for issue in file_issues:
                    lines += self._issue_lines(issue)

        if report.recommendations:
            lines += ["## Recommendations", ""]
            lines += [f"{i}. {text}" for i, text in enumerate(report.recommendations, start=1)]
            lines.append("")

        return "\n".join(lines)

    @staticmethod
    def _issue_lines(issue: Issue) -> list[str]:
        icon = SEVERITY_ICONS[issue.severity]
        details = f"- **Severity**: {issue.severity} | **Category**: {issue.category}"
        if issue.line_number:
            details += f" | **Line**: {issue.line_number}"
        lines = [f"#### {icon} {issue.id or '-'}: {issue.title}", "", details, "", issue.description, ""]
        if issue.suggested_fix:
            lines += [f"**Suggested fix:** {issue.suggested_fix}", ""]
        return lines
