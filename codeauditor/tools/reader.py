"""Bounded file reading and code search over a working tree."""

import re
from dataclasses import dataclass, field
from typing import Optional

from codeauditor.constants import DEFAULT_MAX_READ_BYTES, DEFAULT_MAX_SEARCH_RESULTS, MAX_MATCH_LINE_CHARS
from codeauditor.errors import NotFoundError, ValidationError
from codeauditor.tools.file_index import WorkingTree


@dataclass(frozen=True)
class ReadResult:
    """Result of reading a file, possibly truncated at the byte ceiling."""

    path: str
    content: str  # line-numbered text
    total_lines: int
    shown_lines: int
    total_bytes: int
    partial_line: bool = False  # the last shown line was cut at the ceiling

    @property
    def truncated(self) -> bool:
        return self.partial_line or self.shown_lines < self.total_lines


@dataclass(frozen=True)
class SearchMatch:
    """A single matching line."""

    path: str
    line: int
    text: str


@dataclass(frozen=True)
class SearchResult:
    """Ordered search matches plus truncation information."""

    pattern: str
    matches: tuple[SearchMatch, ...] = field(default_factory=tuple)
    files_searched: int = 0
    truncated: bool = False
    literal: bool = False  # pattern was not a valid regex and was matched as text


class FileReader:
    """Read-only file access for tools, never returning more than a byte ceiling."""

    def __init__(
        self,
        tree: WorkingTree,
        max_read_bytes: int = DEFAULT_MAX_READ_BYTES,
        max_search_results: int = DEFAULT_MAX_SEARCH_RESULTS,
    ):
        """Initialize the reader.

        Args:
            tree: Working tree to read from
            max_read_bytes: Byte ceiling for a single read or search payload
            max_search_results: Maximum number of search matches returned
        """
        self.tree = tree
        self.max_read_bytes = max_read_bytes
        self.max_search_results = max_search_results

    def read(self, path: str) -> ReadResult:
        """Read a file as line-numbered text.

        Lines are included whole until the next one would cross the byte
        ceiling; the result reports how many lines were left out. A first line
        that alone exceeds the ceiling is cut so some content is always shown.

        Raises:
            ValidationError: If the path escapes the tree root
            NotFoundError: If the file is not part of the tree
        """
        entry, file_path = self.tree.resolve_file(path)
        text = self._read_text(file_path, entry.path)
        lines = text.splitlines()
        width = len(str(len(lines))) if lines else 1

        shown: list[str] = []
        used = 0
        partial_line = False
        for number, line in enumerate(lines, start=1):
            numbered = f"{number:>{width}} | {line}"
            cost = len(numbered.encode("utf-8")) + 1
            if used + cost > self.max_read_bytes:
                break
            shown.append(numbered)
            used += cost

        if lines and not shown:
            first = f"{1:>{width}} | {lines[0]}".encode("utf-8")[: self.max_read_bytes]
            shown.append(first.decode("utf-8", errors="ignore"))
            partial_line = True

        return ReadResult(
            path=entry.path,
            content="\n".join(shown),
            total_lines=len(lines),
            shown_lines=len(shown),
            total_bytes=len(text.encode("utf-8")),
            partial_line=partial_line,
        )

    def search(self, pattern: str, path: Optional[str] = None) -> SearchResult:
        """Search tree files line by line.

        The pattern is used as a regular expression; if it does not compile it
        is matched as plain text instead.

        Args:
            pattern: Regex or literal text
            path: Optional file or directory to restrict the search to

        Returns:
            SearchResult with matches in (path, line) order

        Raises:
            ValidationError: If the scope escapes the tree root
            NotFoundError: If the scope does not exist in the tree
        """
        literal = False
        try:
            regex = re.compile(pattern)
        except re.error:
            regex = re.compile(re.escape(pattern))
            literal = True

        scope = self.tree.relative_path(path)
        if scope in self.tree:
            candidates = [self.tree.get(scope)]
        elif self.tree.is_directory(scope):
            candidates = self.tree.files_under(scope)
        else:
            raise NotFoundError(f"Path not found: {path}")

        matches: list[SearchMatch] = []
        used = 0
        truncated = False
        for entry in candidates:
            try:
                text = self._read_text(self.tree.root / entry.path, entry.path)
            except ValidationError:
                continue  # Undecodable files are not searchable
            for number, line in enumerate(text.splitlines(), start=1):
                if not regex.search(line):
                    continue
                match = SearchMatch(path=entry.path, line=number, text=line.strip()[:MAX_MATCH_LINE_CHARS])
                cost = len(match.path) + len(match.text.encode("utf-8")) + 12
                if len(matches) >= self.max_search_results or used + cost > self.max_read_bytes:
                    truncated = True
                    break
                matches.append(match)
                used += cost
            if truncated:
                break

        return SearchResult(
            pattern=pattern,
            matches=tuple(matches),
            files_searched=len(candidates),
            truncated=truncated,
            literal=literal,
        )

    def info(self, path: str) -> dict:
        """File metadata: size, extension, language and line count.

        Raises:
            ValidationError: If the path escapes the tree root
            NotFoundError: If the file is not part of the tree
        """
        entry, file_path = self.tree.resolve_file(path)
        text = self._read_text(file_path, entry.path)
        return {
            "path": entry.path,
            "size": entry.size,
            "extension": entry.extension,
            "language": entry.language,
            "line_count": len(text.splitlines()),
        }

    def _read_text(self, file_path, display_path: str) -> str:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise ValidationError(f"File is not valid UTF-8 text: {display_path}") from e
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {display_path}") from e
