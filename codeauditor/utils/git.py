"""Repository acquisition: local directories and shallow git clones."""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from codeauditor.errors import RepositoryError

logger = logging.getLogger(__name__)

REMOTE_PREFIXES = ("https://", "http://", "git@", "ssh://")


def is_remote(source: str) -> bool:
    """Check whether a repository source looks like a git URL."""
    return source.startswith(REMOTE_PREFIXES)


def resolve_local(path: Path) -> Path:
    """Validate a local repository directory.

    Raises:
        RepositoryError: If the path does not exist or is not a directory
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise RepositoryError(f"Local directory does not exist: {path}")
    if not path.is_dir():
        raise RepositoryError(f"Local path is not a directory: {path}")
    return path.resolve()


def clone_repository(
    url: str,
    target_dir: Path,
    branch: Optional[str] = None,
    depth: Optional[int] = 1,
    timeout: int = 300,
) -> Path:
    """Clone a repository with the git command line.

    Args:
        url: Repository URL (https:// or git@)
        target_dir: Directory to clone into (must not exist or be empty)
        branch: Optional branch or tag
        depth: Clone depth (None for full history)
        timeout: Seconds before the clone is abandoned

    Returns:
        Path to the cloned working tree

    Raises:
        RepositoryError: If git is missing or the clone fails
    """
    if not is_remote(url):
        raise RepositoryError(f"Invalid repository URL: {url}", "expected https:// or git@")

    git = shutil.which("git")
    if git is None:
        raise RepositoryError("git executable not found on PATH")

    command = [git, "clone", "--quiet"]
    if depth:
        command += ["--depth", str(depth)]
    if branch:
        command += ["--branch", branch]
    command += [url, str(target_dir)]

    logger.info("Cloning %s%s", url, f" (branch {branch})" if branch else "")
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except subprocess.TimeoutExpired as e:
        raise RepositoryError(f"Clone of {url} timed out", f"after {timeout}s") from e

    if result.returncode != 0:
        raise RepositoryError(f"Failed to clone {url}", result.stderr.strip() or f"git exit code {result.returncode}")

    return Path(target_dir)


class TemporaryClone:
    """Context manager that clones into a temporary directory and removes it afterwards."""

    def __init__(self, url: str, branch: Optional[str] = None, depth: Optional[int] = 1):
        self.url = url
        self.branch = branch
        self.depth = depth
        self._tmpdir: Optional[str] = None

    def __enter__(self) -> Path:
        self._tmpdir = tempfile.mkdtemp(prefix="code-auditor-")
        try:
            return clone_repository(self.url, Path(self._tmpdir) / "repo", self.branch, self.depth)
        except BaseException:
            self.cleanup()
            raise

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self._tmpdir:
            shutil.rmtree(self._tmpdir, ignore_errors=True)
            logger.debug("Removed temporary clone %s", self._tmpdir)
            self._tmpdir = None
