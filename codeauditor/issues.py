"""Reported issues and their aggregation into a stable, deduplicated set."""

import re
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from codeauditor.constants import CATEGORIES, CATEGORY_ALIASES, SEVERITIES, SEVERITY_ALIASES

Severity = Literal["critical", "high", "medium", "low", "info"]
Category = Literal["security", "bug", "performance", "style"]

SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}


def normalize_severity(value: object) -> str:
    """Map a free-form severity onto the fixed scale.

    Raises:
        ValueError: If the value matches neither a severity nor a known alias
    """
    key = str(value).strip().lower()
    key = SEVERITY_ALIASES.get(key, key)
    if key not in SEVERITY_RANK:
        raise ValueError(f"severity must be one of: {', '.join(SEVERITIES)}")
    return key


def normalize_category(value: object) -> str:
    """Map a free-form category onto the fixed set.

    Raises:
        ValueError: If the value matches neither a category nor a known alias
    """
    key = re.sub(r"[\s-]+", "_", str(value).strip().lower())
    key = CATEGORY_ALIASES.get(key, key)
    if key not in CATEGORIES:
        raise ValueError(f"category must be one of: {', '.join(CATEGORIES)}")
    return key


def normalize_title(title: str) -> str:
    """Case- and whitespace-insensitive form of a title, used for identity."""
    collapsed = re.sub(r"\s+", " ", title).strip().lower()
    return collapsed.rstrip(".!:;,")


def normalize_file_path(path: str) -> str:
    """Clean a tree-relative path ("./src//a.rs" -> "src/a.rs")."""
    cleaned = str(PurePosixPath(path.strip().replace("\\", "/")))
    return "" if cleaned == "." else cleaned


class Issue(BaseModel):
    """A single finding reported by the model."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None  # assigned when the aggregator finalizes
    severity: Severity
    category: Category
    file_path: str
    line_number: Optional[int] = Field(default=None, ge=1)
    title: str = Field(min_length=1)
    description: str
    suggested_fix: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: object) -> str:
        return normalize_severity(value)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> str:
        return normalize_category(value)

    @field_validator("file_path", mode="before")
    @classmethod
    def _normalize_path(cls, value: object) -> str:
        return normalize_file_path(str(value))

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value: object) -> str:
        return str(value).strip()

    @property
    def key(self) -> tuple[str, Optional[int], str]:
        """Identity used for deduplication."""
        return (self.file_path, self.line_number, normalize_title(self.title))

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.line_number}" if self.line_number else self.file_path


class AddResult(str, Enum):
    """Outcome of offering an issue to the aggregator."""

    ACCEPTED = "accepted"
    DUPLICATE_IGNORED = "duplicate_ignored"


def _sort_key(issue: Issue) -> tuple:
    return (
        SEVERITY_RANK[issue.severity],
        issue.file_path,
        issue.line_number or 0,
        normalize_title(issue.title),
        issue.title,
    )


class IssueAggregator:
    """Collects issues for one run; first report of an identity wins."""

    def __init__(self):
        self._issues: dict[tuple, Issue] = {}

    def add(self, candidate: Issue) -> AddResult:
        """Offer an issue.

        Args:
            candidate: Validated issue

        Returns:
            ACCEPTED, or DUPLICATE_IGNORED when the same (file, line, title)
            was already reported. Fields are never merged.
        """
        key = candidate.key
        if key in self._issues:
            return AddResult.DUPLICATE_IGNORED
        self._issues[key] = candidate.model_copy(update={"id": None})
        return AddResult.ACCEPTED

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[Issue]:
        """Issues in the order they were accepted."""
        return iter(self._issues.values())

    def finalize(self) -> list[Issue]:
        """Return issues in report order with sequential ids.

        Ordering is severity (critical first), then file path, then line
        number (file-level issues first), then title, so it depends only on
        the set of issues and not on the order they were reported in.
        """
        ordered = sorted(self._issues.values(), key=_sort_key)
        return [
            issue.model_copy(update={"id": f"ISSUE-{index:03d}"})
            for index, issue in enumerate(ordered, start=1)
        ]
