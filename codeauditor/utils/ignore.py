"""Path exclusion rules for the working tree scan."""

import logging
from pathlib import Path
from typing import Iterable

import pathspec

from codeauditor.constants import BUILTIN_IGNORES, IGNORE_FILENAME

logger = logging.getLogger(__name__)

# Read in this order; later files can re-include paths with "!pattern"
REPO_IGNORE_FILES = (".gitignore", IGNORE_FILENAME)


def read_pattern_file(path: Path) -> list[str]:
    """Read gitignore-style patterns, dropping blank lines and comments."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Skipping unreadable ignore file %s: %s", path, e)
        return []
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


class IgnoreRules:
    """Excludes paths matched by built-in, repository and configured patterns.

    Patterns use gitignore syntax and are combined in precedence order:
    built-ins, then .gitignore, then .codeauditorignore, then the configured
    path excludes.
    """

    def __init__(self, root: Path, extra_patterns: Iterable[str] = ()):
        """Collect patterns for a repository.

        Args:
            root: Repository root holding the ignore files
            extra_patterns: Configured path excludes
        """
        self.root = Path(root).resolve()
        self.patterns: list[str] = list(BUILTIN_IGNORES)

        for filename in REPO_IGNORE_FILES:
            source = self.root / filename
            if source.is_file():
                found = read_pattern_file(source)
                logger.debug("Loaded %d patterns from %s", len(found), filename)
                self.patterns.extend(found)

        self.patterns.extend(p.strip() for p in extra_patterns if p.strip())
        self._matcher = pathspec.PathSpec.from_lines("gitwildmatch", self.patterns)

    def should_ignore(self, path: Path) -> bool:
        """Whether a file is excluded. Paths outside the root always are."""
        if path.is_absolute():
            try:
                path = path.relative_to(self.root)
            except ValueError:
                return True
        return self._matcher.match_file(path.as_posix())

    def ignores_dir(self, rel_dir: str) -> bool:
        """Whether a whole directory (tree-relative POSIX path) is excluded."""
        return self._matcher.match_file(rel_dir.rstrip("/") + "/")
