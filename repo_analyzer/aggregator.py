"""Merge scan and history results into a single Report."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .git.history import HistoryResult
from .models import (
    ContributorStat,
    ExtensionStat,
    FileChangeStat,
    FileRecord,
    LanguageStat,
    LargeFile,
    Report,
)

LARGEST_FILES_LIMIT = 10
MOST_CHANGED_LIMIT = 10


def percentage_shares(counts: Dict[str, int], total: int) -> Dict[str, float]:
    """Return each key's share of ``total`` as a percentage rounded to 2 decimals.

    Every key is rounded on its own, so equal counts always get equal
    percentages and the sum may drift from 100 by a few hundredths.
    """
    if total <= 0:
        return {key: 0.0 for key in counts}
    return {key: round(count * 100 / total, 2) for key, count in counts.items()}


def rank_contributors(
    contributors: Iterable[ContributorStat], top_n: int
) -> Tuple[ContributorStat, ...]:
    """Sort by commit count descending, identity ascending, then truncate."""
    if top_n < 0:
        raise ValueError("top_n must be zero or positive")
    ordered = sorted(contributors, key=lambda stat: (-stat.commit_count, stat.identity))
    return tuple(ordered[:top_n])


def rank_file_changes(
    file_changes: Iterable[FileChangeStat], limit: int = MOST_CHANGED_LIMIT
) -> Tuple[FileChangeStat, ...]:
    ordered = sorted(file_changes, key=lambda stat: (-stat.commit_count, stat.path))
    return tuple(ordered[:limit])


def _size_order(item: Tuple[str, int]) -> Tuple[int, str]:
    return -item[1], item[0]


@dataclass
class FileSummary:
    """Running totals over scanned files.

    Only the current largest-file candidates are retained, so memory stays
    bounded no matter how many records are added.
    """

    total_files: int = 0
    total_lines: int = 0
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0
    total_size: int = 0
    latest_mtime: Optional[datetime] = None
    languages: Counter = field(default_factory=Counter)
    extensions: Counter = field(default_factory=Counter)
    _largest: List[Tuple[str, int]] = field(default_factory=list)

    def add(self, record: FileRecord) -> None:
        self.total_files += 1
        self.total_size += record.size_bytes
        self.languages[record.language] += 1
        self.extensions[record.extension] += 1
        if not record.is_binary:
            self.total_lines += record.line_count
            self.code_lines += record.code_lines
            self.comment_lines += record.comment_lines
            self.blank_lines += record.blank_lines
        if record.mtime is not None and (
            self.latest_mtime is None or record.mtime > self.latest_mtime
        ):
            self.latest_mtime = record.mtime

        self._largest.append((record.path, record.size_bytes))
        if len(self._largest) > 2 * LARGEST_FILES_LIMIT:
            self._largest.sort(key=_size_order)
            del self._largest[LARGEST_FILES_LIMIT:]

    @property
    def largest_files(self) -> Tuple[LargeFile, ...]:
        ordered = sorted(self._largest, key=_size_order)[:LARGEST_FILES_LIMIT]
        return tuple(LargeFile(path=path, size_bytes=size) for path, size in ordered)

    @property
    def average_file_size(self) -> float:
        return round(self.total_size / self.total_files, 2) if self.total_files else 0.0


def summarize_files(files: Iterable[FileRecord]) -> FileSummary:
    """Consume ``files`` once and return their running totals."""
    summary = FileSummary()
    for record in files:
        summary.add(record)
    return summary


def build_report(
    summary: FileSummary,
    history: HistoryResult,
    *,
    top_n: int,
    history_depth: int,
    source: str,
) -> Report:
    if top_n < 0:
        raise ValueError("top_n must be zero or positive")

    language_pct = percentage_shares(dict(summary.languages), summary.total_files)
    extension_pct = percentage_shares(dict(summary.extensions), summary.total_files)

    language_stats = tuple(
        LanguageStat(language=key, file_count=count, percentage=language_pct[key])
        for key, count in sorted(summary.languages.items(), key=lambda item: (-item[1], item[0]))
    )
    extension_stats = tuple(
        ExtensionStat(extension=key, file_count=count, percentage=extension_pct[key])
        for key, count in sorted(summary.extensions.items(), key=lambda item: (-item[1], item[0]))
    )

    last_activity = history.last_commit_ts if history.total_commits else summary.latest_mtime

    return Report(
        source=source,
        total_files=summary.total_files,
        total_lines=summary.total_lines,
        total_commits=history.total_commits,
        last_activity_ts=last_activity,
        languages=language_stats,
        extensions=extension_stats,
        contributors=rank_contributors(history.contributors.values(), top_n),
        history_depth_used=history_depth,
        average_file_size=summary.average_file_size,
        largest_files=summary.largest_files,
        code_lines=summary.code_lines,
        comment_lines=summary.comment_lines,
        blank_lines=summary.blank_lines,
        most_changed_files=rank_file_changes(history.file_changes.values()),
    )


def aggregate(
    files: Iterable[FileRecord],
    history: HistoryResult,
    *,
    top_n: int,
    history_depth: int,
    source: str,
) -> Report:
    """Build a Report from one pass over ``files`` plus a completed history walk."""
    if top_n < 0:
        raise ValueError("top_n must be zero or positive")
    return build_report(
        summarize_files(files),
        history,
        top_n=top_n,
        history_depth=history_depth,
        source=source,
    )


__all__ = [
    "FileSummary",
    "aggregate",
    "build_report",
    "percentage_shares",
    "rank_contributors",
    "rank_file_changes",
    "summarize_files",
]
