"""Core data models shared across repo_analyzer components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class FileRecord:
    """Metadata for a single scanned file."""

    path: str
    extension: str
    language: str
    line_count: int
    is_binary: bool
    size_bytes: int = 0
    mtime: Optional[datetime] = None
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0


@dataclass(frozen=True)
class LanguageStat:
    """File count and share of the repository for one language."""

    language: str
    file_count: int
    percentage: float


@dataclass(frozen=True)
class ExtensionStat:
    """File count and share of the repository for one extension."""

    extension: str
    file_count: int
    percentage: float


@dataclass(frozen=True)
class Commit:
    """A single commit read from history."""

    hash: str
    author_name: str
    author_email: str
    timestamp: datetime
    files: Tuple[str, ...] = ()

    @property
    def identity(self) -> str:
        return normalize_identity(self.author_name, self.author_email)


@dataclass(frozen=True)
class ContributorStat:
    """Aggregated commit statistics for one author identity."""

    identity: str
    commit_count: int
    first_commit_ts: datetime
    last_commit_ts: datetime


@dataclass(frozen=True)
class LargeFile:
    """Entry in the largest-files listing."""

    path: str
    size_bytes: int


@dataclass(frozen=True)
class FileChangeStat:
    """How often one path changed within the walked history."""

    path: str
    commit_count: int
    top_contributor: str
    last_change_ts: datetime


@dataclass(frozen=True)
class Report:
    """Immutable analysis result consumed by renderers and the uploader."""

    source: str
    total_files: int
    total_lines: int
    total_commits: int
    last_activity_ts: Optional[datetime]
    languages: Tuple[LanguageStat, ...]
    extensions: Tuple[ExtensionStat, ...]
    contributors: Tuple[ContributorStat, ...]
    history_depth_used: int
    average_file_size: float = 0.0
    largest_files: Tuple[LargeFile, ...] = ()
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0
    most_changed_files: Tuple[FileChangeStat, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe mapping of the report."""
        return {
            "source": self.source,
            "generated_at": _iso(self.generated_at),
            "total_files": self.total_files,
            "total_lines": self.total_lines,
            "code_lines": self.code_lines,
            "comment_lines": self.comment_lines,
            "blank_lines": self.blank_lines,
            "total_commits": self.total_commits,
            "last_activity": _iso(self.last_activity_ts),
            "history_depth": self.history_depth_used,
            "average_file_size": self.average_file_size,
            "languages": [
                {
                    "language": stat.language,
                    "file_count": stat.file_count,
                    "percentage": stat.percentage,
                }
                for stat in self.languages
            ],
            "extensions": [
                {
                    "extension": stat.extension,
                    "file_count": stat.file_count,
                    "percentage": stat.percentage,
                }
                for stat in self.extensions
            ],
            "contributors": [
                {
                    "identity": stat.identity,
                    "commit_count": stat.commit_count,
                    "first_commit": _iso(stat.first_commit_ts),
                    "last_commit": _iso(stat.last_commit_ts),
                }
                for stat in self.contributors
            ],
            "largest_files": [
                {"path": item.path, "size_bytes": item.size_bytes}
                for item in self.largest_files
            ],
            "most_changed_files": [
                {
                    "path": item.path,
                    "commit_count": item.commit_count,
                    "top_contributor": item.top_contributor,
                    "last_change": _iso(item.last_change_ts),
                }
                for item in self.most_changed_files
            ],
        }


def normalize_identity(name: str, email: str) -> str:
    """Return the exact, case-preserving identity key for an author."""
    return f"{name} <{email}>"


__all__: List[str] = [
    "Commit",
    "ContributorStat",
    "ExtensionStat",
    "FileChangeStat",
    "FileRecord",
    "LanguageStat",
    "LargeFile",
    "Report",
    "normalize_identity",
]
