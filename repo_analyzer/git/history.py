"""Commit history traversal and per-author aggregation."""

from __future__ import annotations

import subprocess
import threading
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Set, Tuple, cast

from ..errors import AnalysisWarning, ErrorKind, RepositoryUnreadableError
from ..logging import get_logger
from ..models import Commit, ContributorStat, FileChangeStat

_FIELD_SEP = "\x1f"
_RECORD_MARK = "\x1e"
_LOG_FORMAT = "%x1e%H%x1f%an%x1f%ae%x1f%at"
_MAX_STDERR_CHARS = 50_000


class CommitSource(Protocol):
    """Anything able to enumerate commits reachable from the current head."""

    def open(self) -> None:
        """Fail with RepositoryUnreadableError if the object store is unusable."""

    def iter_commits(self, limit: int = 0) -> Iterator[Commit]:
        """Yield commits newest first; ``limit`` of 0 means no bound."""


def run_git(args: Sequence[str], cwd: Path, timeout_s: float = 60) -> Tuple[int, str, str]:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout_s,
    )
    return proc.returncode, proc.stdout, proc.stderr


class GitCommitSource:
    """Streams commits from ``git log`` run against a local repository."""

    def __init__(self, repo_path: Path | str) -> None:
        self.repo_path = Path(repo_path)
        self.logger = get_logger("git.history")

    def open(self) -> None:
        try:
            code, _, stderr = run_git(["rev-parse", "--git-dir"], cwd=self.repo_path)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RepositoryUnreadableError(
                f"Unable to open git repository at {self.repo_path}: {exc}"
            ) from exc
        if code != 0:
            raise RepositoryUnreadableError(
                f"Unable to open git repository at {self.repo_path}: {stderr.strip()}"
            )

    def has_head(self) -> bool:
        code, _, _ = run_git(["rev-parse", "--verify", "--quiet", "HEAD^{commit}"], cwd=self.repo_path)
        return code == 0

    def iter_commits(self, limit: int = 0) -> Iterator[Commit]:
        if not self.has_head():
            return
        cmd = [
            "git",
            "-c",
            "core.quotepath=off",
            "log",
            "HEAD",
            f"--format={_LOG_FORMAT}",
            "--name-only",
        ]
        if limit > 0:
            cmd.append(f"--max-count={limit}")

        proc = subprocess.Popen(
            cmd,
            cwd=str(self.repo_path),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        stdout = cast(IO[str], proc.stdout)
        stderr = cast(IO[str], proc.stderr)
        stderr_chunks: List[str] = []

        def drain_stderr() -> None:
            total = 0
            while True:
                chunk = stderr.read(8192)
                if not chunk:
                    break
                if total < _MAX_STDERR_CHARS:
                    take = chunk[: _MAX_STDERR_CHARS - total]
                    stderr_chunks.append(take)
                    total += len(take)

        stderr_thread = threading.Thread(target=drain_stderr, daemon=True)
        stderr_thread.start()

        try:
            yield from parse_log_records(stdout)
        finally:
            if proc.poll() is None:
                proc.kill()
            code = proc.wait()
            stderr_thread.join()
            if code not in (0, -9):
                self.logger.debug(
                    "git log exited %s: %s", code, "".join(stderr_chunks).strip()[:500]
                )


def parse_log_line(line: str) -> Optional[Commit]:
    """Parse one commit header line; a leading record mark is tolerated."""
    parts = line.rstrip("\r\n").lstrip(_RECORD_MARK).split(_FIELD_SEP)
    if len(parts) != 4:
        return None
    commit_hash, name, email, timestamp = parts
    try:
        seconds = int(timestamp)
    except ValueError:
        return None
    return Commit(
        hash=commit_hash,
        author_name=name,
        author_email=email,
        timestamp=datetime.fromtimestamp(seconds, UTC),
    )


def parse_log_records(lines: Iterable[str]) -> Iterator[Commit]:
    """Group ``git log --name-only`` output into commits carrying their paths.

    Each record starts with a line opened by the record mark; the non-empty
    lines that follow, up to the next mark, are the paths the commit touched.
    """
    header: Optional[Commit] = None
    files: List[str] = []

    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if line.startswith(_RECORD_MARK):
            if header is not None:
                yield replace(header, files=tuple(files))
            header = parse_log_line(line)
            files = []
        elif header is not None and line.strip():
            files.append(line)

    if header is not None:
        yield replace(header, files=tuple(files))


class MemoryCommitSource:
    """In-memory history for synthetic repositories."""

    def __init__(self, commits: Iterable[Commit] = (), *, readable: bool = True) -> None:
        self._commits = sorted(commits, key=lambda commit: commit.timestamp, reverse=True)
        self._readable = readable

    def open(self) -> None:
        if not self._readable:
            raise RepositoryUnreadableError("in-memory repository marked unreadable")

    def iter_commits(self, limit: int = 0) -> Iterator[Commit]:
        commits = self._commits[:limit] if limit > 0 else self._commits
        return iter(list(commits))


@dataclass
class _RunningStat:
    commit_count: int = 0
    first: Optional[datetime] = None
    last: Optional[datetime] = None

    def add(self, timestamp: datetime) -> None:
        self.commit_count += 1
        if self.first is None or timestamp < self.first:
            self.first = timestamp
        if self.last is None or timestamp > self.last:
            self.last = timestamp


@dataclass
class _FileRunningStat:
    commit_count: int = 0
    authors: Counter = field(default_factory=Counter)
    last: Optional[datetime] = None

    def add(self, identity: str, timestamp: datetime) -> None:
        self.commit_count += 1
        self.authors[identity] += 1
        if self.last is None or timestamp > self.last:
            self.last = timestamp

    def top_contributor(self) -> str:
        identity, _ = min(self.authors.items(), key=lambda item: (-item[1], item[0]))
        return identity


@dataclass(frozen=True)
class HistoryResult:
    """Per-identity aggregates collected by one history walk."""

    total_commits: int
    contributors: Mapping[str, ContributorStat]
    last_commit_ts: Optional[datetime]
    depth: int
    warnings: Tuple[AnalysisWarning, ...] = field(default_factory=tuple)
    file_changes: Mapping[str, FileChangeStat] = field(default_factory=dict)

    @classmethod
    def empty(cls, depth: int = 0) -> "HistoryResult":
        return cls(total_commits=0, contributors={}, last_commit_ts=None, depth=depth)


class HistoryWalker:
    """Visits each reachable commit once, newest first, up to a depth limit."""

    def __init__(self, source: CommitSource) -> None:
        self.source = source
        self.logger = get_logger("git.history")

    def walk(self, depth: int = 0) -> HistoryResult:
        if depth < 0:
            raise ValueError("history depth must be zero (unbounded) or positive")
        self.source.open()

        running: Dict[str, _RunningStat] = {}
        per_file: Dict[str, _FileRunningStat] = {}
        seen: Set[str] = set()
        last_commit: Optional[datetime] = None

        for commit in self.source.iter_commits(depth):
            if commit.hash in seen:
                continue
            seen.add(commit.hash)
            running.setdefault(commit.identity, _RunningStat()).add(commit.timestamp)
            for path in set(commit.files):
                per_file.setdefault(path, _FileRunningStat()).add(commit.identity, commit.timestamp)
            if last_commit is None or commit.timestamp > last_commit:
                last_commit = commit.timestamp
            if depth and len(seen) >= depth:
                break

        contributors = {
            identity: ContributorStat(
                identity=identity,
                commit_count=stat.commit_count,
                first_commit_ts=stat.first,  # type: ignore[arg-type]
                last_commit_ts=stat.last,  # type: ignore[arg-type]
            )
            for identity, stat in running.items()
        }
        file_changes = {
            path: FileChangeStat(
                path=path,
                commit_count=stat.commit_count,
                top_contributor=stat.top_contributor(),
                last_change_ts=stat.last,  # type: ignore[arg-type]
            )
            for path, stat in per_file.items()
        }

        warnings: Tuple[AnalysisWarning, ...] = ()
        if not seen:
            message = "repository has no commits; history statistics are empty"
            self.logger.warning(message)
            warnings = (AnalysisWarning(ErrorKind.EMPTY_HISTORY, message),)
        else:
            self.logger.debug(
                "Visited %d commits from %d identities", len(seen), len(contributors)
            )

        return HistoryResult(
            total_commits=len(seen),
            contributors=contributors,
            last_commit_ts=last_commit,
            depth=depth,
            warnings=warnings,
            file_changes=file_changes,
        )


__all__ = [
    "CommitSource",
    "GitCommitSource",
    "HistoryResult",
    "HistoryWalker",
    "MemoryCommitSource",
    "parse_log_line",
    "parse_log_records",
    "run_git",
]
