"""Tests for repo_analyzer.aggregator."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from repo_analyzer.aggregator import (
    FileSummary,
    aggregate,
    percentage_shares,
    rank_contributors,
    rank_file_changes,
    summarize_files,
)
from repo_analyzer.git.history import HistoryResult, HistoryWalker, MemoryCommitSource
from repo_analyzer.models import Commit, ContributorStat, FileChangeStat, FileRecord


def _file(path: str, language: str, lines: int, *, size: int = 10, binary: bool = False, mtime: int = 0) -> FileRecord:
    extension = path.rsplit(".", 1)[-1] if "." in path else ""
    return FileRecord(
        path=path,
        extension=extension,
        language=language,
        line_count=0 if binary else lines,
        is_binary=binary,
        size_bytes=size,
        mtime=datetime.fromtimestamp(mtime, UTC) if mtime else None,
    )


def _history(*commits: tuple[str, str, str, int]) -> HistoryResult:
    source = MemoryCommitSource(
        Commit(hash=h, author_name=n, author_email=e, timestamp=datetime.fromtimestamp(ts, UTC))
        for h, n, e, ts in commits
    )
    return HistoryWalker(source).walk()


def _stat(identity: str, count: int) -> ContributorStat:
    ts = datetime.fromtimestamp(1, UTC)
    return ContributorStat(identity=identity, commit_count=count, first_commit_ts=ts, last_commit_ts=ts)


def test_small_repository_report() -> None:
    files = [
        _file("a.rs", "Rust", 10),
        _file("b.py", "Python", 5),
        _file("README.md", "Markdown", 2),
    ]
    history = _history(
        ("c1", "Ada", "ada@example.com", 1_700_000_000),
        ("c2", "Ada", "ada@example.com", 1_700_000_500),
    )

    report = aggregate(files, history, top_n=5, history_depth=0, source="/repo")

    assert report.total_files == 3
    assert report.total_lines == 17
    assert report.total_commits == 2
    assert [stat.file_count for stat in report.languages] == [1, 1, 1]
    assert [stat.percentage for stat in report.languages] == [33.33, 33.33, 33.33]
    assert len(report.contributors) == 1
    assert report.contributors[0].identity == "Ada <ada@example.com>"
    assert report.contributors[0].commit_count == 2
    assert report.last_activity_ts == datetime.fromtimestamp(1_700_000_500, UTC)
    assert report.source == "/repo"


def test_language_and_extension_counts_sum_to_total_files() -> None:
    files = [
        _file("a.py", "Python", 1),
        _file("b.py", "Python", 1),
        _file("c.pyi", "Python", 1),
        _file("d.js", "JavaScript", 1),
        _file("Makefile", "Other", 1),
    ]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert sum(stat.file_count for stat in report.languages) == report.total_files == 5
    assert sum(stat.file_count for stat in report.extensions) == 5
    assert report.languages[0].language == "Python"
    assert report.languages[0].file_count == 3
    assert report.languages[0].percentage == 60.0
    assert {stat.extension for stat in report.extensions} == {"py", "pyi", "js", ""}


def test_binary_files_count_toward_files_but_not_lines() -> None:
    files = [
        _file("logo.png", "Other", 0, size=4096, binary=True),
        _file("main.go", "Go", 7, size=100),
    ]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert report.total_files == 2
    assert report.total_lines == 7
    assert report.largest_files[0].path == "logo.png"
    assert report.average_file_size == 2098.0


def test_ties_are_ordered_by_name() -> None:
    files = [
        _file("z.rb", "Ruby", 1),
        _file("a.go", "Go", 1),
        _file("m.rs", "Rust", 1),
        _file("n.rs", "Rust", 1),
    ]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert [stat.language for stat in report.languages] == ["Rust", "Go", "Ruby"]


@pytest.mark.parametrize(
    "counts",
    [
        {"a": 1, "b": 1, "c": 1},
        {"a": 2, "b": 1, "c": 1, "d": 1, "e": 1, "f": 1},
        {"a": 1, "b": 1, "c": 1, "d": 1, "e": 1, "f": 1, "g": 1},
        {"a": 997, "b": 2, "c": 1},
    ],
)
def test_percentages_are_rounded_independently(counts: dict[str, int]) -> None:
    total = sum(counts.values())

    shares = percentage_shares(counts, total)

    for key, count in counts.items():
        assert shares[key] == round(count * 100 / total, 2)
    assert sum(shares.values()) == pytest.approx(100.0, abs=0.01 * len(counts))


def test_equal_counts_get_equal_percentages() -> None:
    shares = percentage_shares({"b": 1, "a": 1, "c": 1}, 3)

    assert shares == {"a": 33.33, "b": 33.33, "c": 33.33}


def test_percentages_for_empty_repository_are_zero() -> None:
    assert percentage_shares({}, 0) == {}
    assert percentage_shares({"a": 0}, 0) == {"a": 0.0}


def test_equal_file_counts_report_identical_language_shares() -> None:
    files = [_file("a.rs", "Rust", 1), _file("b.py", "Python", 1), _file("c.go", "Go", 1)]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert {stat.percentage for stat in report.languages} == {33.33}
    assert {stat.percentage for stat in report.extensions} == {33.33}


def test_rank_contributors_orders_and_truncates() -> None:
    stats = [
        _stat("Carol <c@example.com>", 3),
        _stat("Bob <b@example.com>", 5),
        _stat("Alice <a@example.com>", 5),
        _stat("Dave <d@example.com>", 1),
    ]

    ranked = rank_contributors(stats, 3)

    assert [stat.identity for stat in ranked] == [
        "Alice <a@example.com>",
        "Bob <b@example.com>",
        "Carol <c@example.com>",
    ]
    assert rank_contributors(stats, 0) == ()
    assert len(rank_contributors(stats, 10)) == 4


def test_rank_contributors_rejects_negative_top_n() -> None:
    with pytest.raises(ValueError):
        rank_contributors([], -1)


def test_empty_repository_report() -> None:
    report = aggregate([], HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert report.total_files == 0
    assert report.total_lines == 0
    assert report.total_commits == 0
    assert report.languages == ()
    assert report.extensions == ()
    assert report.contributors == ()
    assert report.last_activity_ts is None
    assert report.average_file_size == 0.0


def test_last_activity_falls_back_to_newest_file_without_history() -> None:
    files = [
        _file("a.py", "Python", 1, mtime=1_600_000_000),
        _file("b.py", "Python", 1, mtime=1_650_000_000),
    ]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert report.last_activity_ts == datetime.fromtimestamp(1_650_000_000, UTC)


def test_largest_files_are_capped_at_ten() -> None:
    files = [_file(f"f{i:02d}.txt", "Other", 1, size=i) for i in range(15)]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert len(report.largest_files) == 10
    assert report.largest_files[0].path == "f14.txt"
    assert report.largest_files[-1].path == "f05.txt"


def test_report_to_dict_uses_iso_timestamps() -> None:
    history = _history(("c1", "Ada", "ada@example.com", 0))
    report = aggregate([_file("a.py", "Python", 1)], history, top_n=5, history_depth=3, source="x")

    payload = report.to_dict()

    assert payload["last_activity"] == "1970-01-01T00:00:00Z"
    assert payload["history_depth"] == 3
    assert payload["contributors"][0]["first_commit"] == "1970-01-01T00:00:00Z"
    assert payload["languages"] == [{"language": "Python", "file_count": 1, "percentage": 100.0}]


def test_line_breakdown_is_summed_over_text_files() -> None:
    files = [
        FileRecord("a.py", "py", "Python", 6, False, code_lines=3, comment_lines=2, blank_lines=1),
        FileRecord("b.rs", "rs", "Rust", 4, False, code_lines=4),
        FileRecord("c.png", "png", "Other", 0, True),
    ]

    report = aggregate(files, HistoryResult.empty(), top_n=5, history_depth=0, source="x")

    assert (report.code_lines, report.comment_lines, report.blank_lines) == (7, 2, 1)
    assert report.code_lines + report.comment_lines + report.blank_lines == report.total_lines
    payload = report.to_dict()
    assert payload["code_lines"] == 7
    assert payload["comment_lines"] == 2
    assert payload["blank_lines"] == 1


def _change(path: str, count: int) -> FileChangeStat:
    return FileChangeStat(
        path=path,
        commit_count=count,
        top_contributor="Ada <ada@example.com>",
        last_change_ts=datetime.fromtimestamp(1, UTC),
    )


def test_rank_file_changes_orders_by_count_then_path() -> None:
    stats = [_change("b.py", 2), _change("a.py", 2), _change("c.py", 5)]
    stats.extend(_change(f"extra{i:02d}.py", 1) for i in range(12))

    ranked = rank_file_changes(stats)

    assert len(ranked) == 10
    assert [stat.path for stat in ranked[:3]] == ["c.py", "a.py", "b.py"]
    assert ranked[-1].path == "extra06.py"


def test_report_lists_most_changed_files_from_history() -> None:
    source = MemoryCommitSource(
        [
            Commit("c1", "Ada", "ada@example.com", datetime.fromtimestamp(100, UTC), ("a.py", "b.py")),
            Commit("c2", "Bob", "bob@example.com", datetime.fromtimestamp(200, UTC), ("b.py",)),
        ]
    )
    history = HistoryWalker(source).walk()

    report = aggregate([_file("a.py", "Python", 1)], history, top_n=5, history_depth=0, source="x")

    assert [(stat.path, stat.commit_count) for stat in report.most_changed_files] == [
        ("b.py", 2),
        ("a.py", 1),
    ]
    payload = report.to_dict()
    assert payload["most_changed_files"][0] == {
        "path": "b.py",
        "commit_count": 2,
        "top_contributor": "Ada <ada@example.com>",
        "last_change": "1970-01-01T00:03:20Z",
    }


def test_summary_keeps_only_largest_file_candidates() -> None:
    summary = FileSummary()

    for i in range(500):
        summary.add(_file(f"f{i:03d}.txt", "Other", 1, size=(i * 37) % 500))
        assert len(summary._largest) <= 20

    largest = summary.largest_files
    assert [item.size_bytes for item in largest] == list(range(499, 489, -1))
    assert summary.total_files == 500


def test_summarize_files_consumes_a_generator_once() -> None:
    consumed: list[str] = []

    def records():
        for name in ("a.py", "b.py", "c.py"):
            consumed.append(name)
            yield _file(name, "Python", 2, size=5)

    summary = summarize_files(records())

    assert consumed == ["a.py", "b.py", "c.py"]
    assert summary.total_files == 3
    assert summary.total_lines == 6
    assert summary.average_file_size == 5.0
