"""Working tree indexing: the immutable set of files a run may inspect."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional, Sequence

from codeauditor.constants import LANGUAGE_MAP
from codeauditor.errors import NotFoundError, RepositoryError, ValidationError
from codeauditor.utils.ignore import IgnoreRules

logger = logging.getLogger(__name__)

ENTRY_POINT_NAMES = {
    "main.rs", "lib.rs", "mod.rs", "main.py", "__main__.py", "cli.py", "app.py",
    "server.py", "index.js", "index.ts", "main.go", "main.c", "main.cpp", "program.cs",
}
SOURCE_DIRS = {"src", "lib", "app", "server", "backend", "api", "cmd", "pkg", "internal", "core"}
LOW_PRIORITY_DIRS = {"test", "tests", "spec", "examples", "example", "docs", "benches", "fixtures"}


@dataclass(frozen=True)
class FileEntry:
    """A single file in the working tree."""

    path: str  # POSIX path relative to the tree root
    size: int
    extension: str  # lowercase, without the leading dot

    @property
    def language(self) -> Optional[str]:
        return LANGUAGE_MAP.get(f".{self.extension}") if self.extension else None

    @property
    def directory(self) -> str:
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent


class WorkingTree:
    """Read-only snapshot of the files under a root directory.

    The entry set is fixed at construction; tools only ever see files that
    belong to it.
    """

    def __init__(self, root: Path, entries: Iterable[FileEntry]):
        """Initialize the tree.

        Args:
            root: Root directory of the tree
            entries: Files in the tree (paths relative to root)
        """
        self._root = Path(root).resolve()
        self._entries = tuple(sorted(entries, key=lambda e: e.path))
        self._by_path = {entry.path: entry for entry in self._entries}

    @classmethod
    def scan(
        cls,
        root: Path,
        ignore_rules: Optional[IgnoreRules] = None,
        extensions: Optional[Sequence[str]] = None,
        max_files: Optional[int] = None,
        max_file_size_kb: int = 1024,
    ) -> "WorkingTree":
        """Build a tree by walking a directory.

        Args:
            root: Directory to walk
            ignore_rules: Ignore rules to apply (built-ins only when omitted)
            extensions: Extension allowlist without dots; every text file when empty
            max_files: Keep at most this many files, highest priority first
            max_file_size_kb: Skip files larger than this

        Returns:
            WorkingTree snapshot
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise RepositoryError(f"Not a directory: {root}")

        rules = ignore_rules or IgnoreRules(root)
        allowed = {ext.lower().lstrip(".") for ext in extensions or ()}
        max_size = max_file_size_kb * 1024

        entries = []
        skipped = 0
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            # Prune ignored directories in place so os.walk never enters them
            dirnames[:] = sorted(
                d for d in dirnames
                if not rules.ignores_dir((current / d).relative_to(root).as_posix())
            )

            for filename in sorted(filenames):
                path = current / filename
                rel_path = path.relative_to(root).as_posix()

                if rules.should_ignore(path):
                    continue

                extension = path.suffix.lower().lstrip(".")
                if allowed and extension not in allowed:
                    continue

                try:
                    if path.is_symlink() and not _is_within(path.resolve(), root):
                        continue
                    size = path.stat().st_size
                except OSError:
                    continue  # Skip files we can't stat

                if size > max_size:
                    skipped += 1
                    continue

                if not allowed and not _is_likely_text(path):
                    continue

                entries.append(FileEntry(path=rel_path, size=size, extension=extension))

        if max_files is not None and len(entries) > max_files:
            logger.info("Selecting %d of %d files by priority", max_files, len(entries))
            entries = sorted(entries, key=lambda e: (-_priority(e.path), e.path))[:max_files]

        if skipped:
            logger.debug("Skipped %d files larger than %d KB", skipped, max_file_size_kb)

        return cls(root, entries)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def entries(self) -> tuple[FileEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._by_path

    def get(self, path: str) -> Optional[FileEntry]:
        return self._by_path.get(path)

    def relative_path(self, raw_path: Optional[str]) -> str:
        """Normalize a user-supplied path to a tree-relative POSIX path.

        Args:
            raw_path: Relative or absolute path; empty means the root

        Returns:
            Relative path ("" for the root itself)

        Raises:
            ValidationError: If the path is malformed or resolves outside the tree root
        """
        if raw_path is None or not raw_path.strip() or raw_path.strip() in (".", "./"):
            return ""
        if "\x00" in raw_path:
            raise ValidationError("Path contains a NUL byte", repr(raw_path))

        # No home-directory expansion: "~" is an ordinary path component here
        candidate = Path(raw_path.strip())
        if not candidate.is_absolute():
            candidate = self._root / candidate
        try:
            resolved = candidate.resolve()
        except (RuntimeError, ValueError) as e:
            # Symlink loops on older interpreters
            raise ValidationError(f"Invalid path: {raw_path}", str(e)) from None

        if not _is_within(resolved, self._root):
            raise ValidationError(f"Path outside repository root: {raw_path}")

        rel = resolved.relative_to(self._root).as_posix()
        return "" if rel == "." else rel

    def resolve_file(self, raw_path: str) -> tuple[FileEntry, Path]:
        """Resolve a path to a tree entry and its absolute location.

        Raises:
            ValidationError: If the path escapes the root
            NotFoundError: If the file is not part of the tree
        """
        rel = self.relative_path(raw_path)
        entry = self._by_path.get(rel)
        if entry is None:
            if rel and self.is_directory(rel):
                raise NotFoundError(f"Not a file: {raw_path}")
            raise NotFoundError(f"File not found: {raw_path}")
        return entry, self._root / rel

    def is_directory(self, rel_dir: str) -> bool:
        """True if any entry lives under the given relative directory."""
        if not rel_dir:
            return True
        prefix = rel_dir.rstrip("/") + "/"
        return any(entry.path.startswith(prefix) for entry in self._entries)

    def files_under(self, rel_dir: str) -> list[FileEntry]:
        """All entries below a directory (recursive), in path order."""
        if not rel_dir:
            return list(self._entries)
        prefix = rel_dir.rstrip("/") + "/"
        return [entry for entry in self._entries if entry.path.startswith(prefix)]

    def list_dir(self, raw_directory: Optional[str] = None) -> list[dict]:
        """List the immediate children of a directory.

        Directories come first, then files, each group in name order.

        Raises:
            ValidationError: If the directory escapes the root
            NotFoundError: If the directory has no files in the tree
        """
        rel_dir = self.relative_path(raw_directory)
        if rel_dir in self._by_path:
            raise NotFoundError(f"Not a directory: {raw_directory}")
        if not self.is_directory(rel_dir):
            raise NotFoundError(f"Directory not found: {raw_directory}")

        subdirs: dict[str, int] = {}
        files = []
        for entry in self.files_under(rel_dir):
            remainder = entry.path[len(rel_dir) + 1:] if rel_dir else entry.path
            head, sep, _ = remainder.partition("/")
            if sep:
                subdirs[head] = subdirs.get(head, 0) + 1
            else:
                files.append(entry)

        listing = [
            {"path": _join(rel_dir, name) + "/", "type": "dir", "files": count}
            for name, count in sorted(subdirs.items())
        ]
        listing.extend(
            {"path": entry.path, "type": "file", "size": entry.size} for entry in files
        )
        return listing

    def summary(self) -> dict:
        """Summary statistics for prompts and reports."""
        language_counts: dict[str, int] = {}
        for entry in self._entries:
            if entry.language:
                language_counts[entry.language] = language_counts.get(entry.language, 0) + 1
        return {
            "total_files": len(self._entries),
            "total_size": sum(entry.size for entry in self._entries),
            "languages": language_counts,
        }

    def summarize(self) -> str:
        """Generate human-readable summary of the tree.

        Returns:
            Summary string
        """
        summary = self.summary()
        total_size_mb = summary["total_size"] / (1024 * 1024)
        lines = [f"Indexed {summary['total_files']} files ({total_size_mb:.2f} MB)"]

        languages = summary["languages"]
        if languages:
            lang_list = ", ".join(f"{lang}: {count}" for lang, count in sorted(languages.items()))
            lines.append(f"Languages: {lang_list}")

        return "\n".join(lines)


def _join(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def _priority(rel_path: str) -> int:
    """Rank files so entry points and main source directories are kept first."""
    parts = rel_path.lower().split("/")
    score = 0
    if parts[-1] in ENTRY_POINT_NAMES:
        score += 6
    if parts[0] in SOURCE_DIRS:
        score += 4
    if any(part in LOW_PRIORITY_DIRS for part in parts[:-1]) or parts[-1].startswith("test_"):
        score -= 4
    score -= max(0, len(parts) - 3)
    return score


def _is_likely_text(path: Path) -> bool:
    """Heuristic to check if file is likely text.

    Args:
        path: File path

    Returns:
        True if likely text file
    """
    if path.suffix.lower() in LANGUAGE_MAP:
        return True

    text_extensions = {
        ".txt", ".rst", ".cfg", ".ini", ".conf", ".xml", ".lock", ".gradle",
    }
    if path.suffix.lower() in text_extensions:
        return True

    # Try to read first few bytes
    try:
        with open(path, "rb") as f:
            chunk = f.read(512)
            if len(chunk) == 0:
                return True
            if b"\x00" in chunk:
                return False
            printable_ratio = sum(1 for b in chunk if 32 <= b < 127 or b in (9, 10, 13)) / len(chunk)
            return printable_ratio > 0.7
    except (IOError, OSError):
        return False
