"""System and task prompts for the analysis agent."""

from typing import Optional

from codeauditor.tools.file_index import WorkingTree


class SystemPromptBuilder:
    """Builds the system prompt and the initial task instruction."""

    def __init__(self, tree: WorkingTree, repository: Optional[str] = None):
        """Initialize system prompt builder.

        Args:
            tree: Working tree being analyzed
            repository: Repository URL or path shown to the model
        """
        self.tree = tree
        self.repository = repository or tree.root.name

    def build_system_prompt(self, tools: list[dict]) -> str:
        """Build the full system prompt.

        Args:
            tools: Tool definitions in OpenAI format

        Returns:
            System prompt text
        """
        parts = [
            self._build_core_identity(),
            self._build_procedure(),
            self._build_severity_rubric(),
            self._build_tool_overview(tools),
        ]
        return "\n\n".join(parts)

    def build_task_prompt(self) -> str:
        """Build the first user message describing the repository to audit."""
        summary = self.tree.summary()
        languages = summary["languages"]
        language_line = (
            ", ".join(f"{lang} ({count})" for lang, count in sorted(languages.items(), key=lambda kv: -kv[1]))
            or "unknown"
        )

        return f"""Audit the repository `{self.repository}`.

The working tree contains {summary['total_files']} files.
Languages: {language_line}

Start by listing the root directory, then read the most important files and
report every real issue you find. Call finish_analysis when you are done."""

    def _build_core_identity(self) -> str:
        """Build core identity and role description."""
        return """# Code Auditor

You are an expert code reviewer performing a static audit of a source repository.
You cannot run the code. You explore the repository only through the tools provided.

## Operating Principles
1. **Evidence-based**: Only report issues you have seen in code you read
2. **Specific**: Point to the exact file and line
3. **Actionable**: Explain the impact and how to fix it
4. **No noise**: Skip pure preferences and issues you are unsure about"""

    def _build_procedure(self) -> str:
        """Build the exploration and reporting procedure."""
        return """# Procedure

1. Use `list_files` to understand the layout, starting at `.`
2. Prioritize entry points, request handlers, authentication, data access and
   anything that parses external input
3. Use `read_file` to read code; use `search_code` to find related usages
   (e.g. other callers of a dangerous function)
4. Call `report_issue` once per distinct issue, as soon as you find it
5. Call `finish_analysis` with a short overall assessment when the important
   files have been reviewed

Tool results that start with an error name (e.g. `NotFoundError:`) describe a
problem with your call. Correct the arguments and continue.

You have a limited number of rounds and tool calls. Do not read the same file twice."""

    def _build_severity_rubric(self) -> str:
        """Build the severity and category definitions."""
        return """# Severity
- **critical**: exploitable security hole, data loss or crash on common paths
- **high**: likely bug or security weakness with real impact
- **medium**: bug in edge cases, notable performance problem
- **low**: minor issue, maintainability concern
- **info**: observation worth knowing, no fix required

# Category
- **security**: injection, secrets in code, unsafe deserialization, missing auth checks
- **bug**: incorrect logic, unhandled errors, race conditions, resource leaks
- **performance**: needless work, quadratic loops, blocking calls in hot paths
- **style**: readability and maintainability problems with a concrete cost"""

    def _build_tool_overview(self, tools: list[dict]) -> str:
        """List the available tools by name and description."""
        lines = ["# Tools"]
        for tool in tools:
            func = tool.get("function", {})
            lines.append(f"- `{func.get('name')}`: {func.get('description', '')}")
        return "\n".join(lines)
