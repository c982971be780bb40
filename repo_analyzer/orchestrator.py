"""Pipeline orchestration: resolve, scan + walk, aggregate, render, deliver."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractContextManager, ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .aggregator import FileSummary, build_report, summarize_files
from .config import RepoAnalyzerConfig
from .errors import AnalysisWarning, ErrorKind, RenderFailedError
from .git.clone import ephemeral_clone, is_remote_url
from .git.history import CommitSource, GitCommitSource, HistoryResult, HistoryWalker
from .logging import get_logger
from .models import Report
from .renderers import get_format, render
from .repo_scanner import RepoScanner
from .upload import UploadOutcome, Uploader

CloneFactory = Callable[..., AbstractContextManager[Path]]
CommitSourceFactory = Callable[[Path], CommitSource]


@dataclass
class RunResult:
    """Everything a single analysis run produced."""

    report: Report
    output_format: str
    rendered: Optional[bytes] = None
    output_path: Optional[Path] = None
    upload: Optional[UploadOutcome] = None
    render_error: Optional[RenderFailedError] = None
    warnings: List[AnalysisWarning] = field(default_factory=list)

    @property
    def url(self) -> Optional[str]:
        return self.upload.url if self.upload is not None else None


class Orchestrator:
    """Coordinates the analysis pipeline for one repository."""

    def __init__(
        self,
        config: RepoAnalyzerConfig | None = None,
        *,
        scanner: RepoScanner | None = None,
        uploader: Uploader | None = None,
        clone: CloneFactory | None = None,
        commit_source_factory: CommitSourceFactory | None = None,
    ) -> None:
        self.config = config or RepoAnalyzerConfig()
        self.scanner = scanner or RepoScanner(exclude_paths=self.config.analyzer.exclude_paths)
        self._uploader = uploader
        self._clone = clone or ephemeral_clone
        self._commit_source_factory = commit_source_factory or GitCommitSource
        self.logger = get_logger("orchestrator")

    @property
    def uploader(self) -> Uploader:
        if self._uploader is None:
            self._uploader = Uploader(self.config.upload)
        return self._uploader

    def analyze(
        self,
        target: str,
        *,
        top_n: int | None = None,
        history_depth: int | None = None,
    ) -> Tuple[Report, List[AnalysisWarning]]:
        """Resolve ``target`` and build its Report without rendering or uploading."""
        top_n, history_depth = self._effective_limits(top_n, history_depth)
        with ExitStack() as stack:
            repo_path, source = self._resolve_source(target, history_depth, stack)
            return self._build_report(repo_path, source, top_n=top_n, history_depth=history_depth)

    def run(
        self,
        target: str,
        *,
        top_n: int | None = None,
        history_depth: int | None = None,
        output_format: str = "text",
        output_path: Path | None = None,
        upload: bool = False,
    ) -> RunResult:
        """Analyze ``target``, render the report, and optionally deliver it."""
        fmt = get_format(output_format)
        report, warnings = self.analyze(target, top_n=top_n, history_depth=history_depth)
        result = RunResult(report=report, output_format=fmt.name, warnings=warnings)

        try:
            result.rendered = render(report, fmt.name)
        except RenderFailedError as exc:
            self.logger.error("%s", exc)
            result.render_error = exc
            return result

        if output_path is not None:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(result.rendered)
            result.output_path = output_path
            self.logger.info("Report written to %s", output_path)

        if upload:
            outcome = self.uploader.upload(
                result.rendered,
                extension=fmt.extension,
                content_type=fmt.content_type,
            )
            result.upload = outcome
            error = outcome.error
            if error is not None:
                self.logger.warning("%s", error)
                result.warnings.append(AnalysisWarning(ErrorKind.UPLOAD_FAILED, str(error)))

        return result

    # ------------------------------------------------------------------
    # Helpers

    def _effective_limits(self, top_n: int | None, history_depth: int | None) -> Tuple[int, int]:
        top = self.config.analyzer.top_contributors if top_n is None else top_n
        depth = self.config.analyzer.history_depth if history_depth is None else history_depth
        if top < 0:
            raise ValueError("top_n must be zero or positive")
        if depth < 0:
            raise ValueError("history_depth must be zero (unbounded) or positive")
        return top, depth

    def _resolve_source(self, target: str, history_depth: int, stack: ExitStack) -> Tuple[Path, str]:
        if is_remote_url(target):
            repo_path = stack.enter_context(
                self._clone(target, depth=history_depth, timeout=self.config.clone.timeout)
            )
            return Path(repo_path), target
        repo_path = Path(target).expanduser()
        return repo_path, str(repo_path.resolve())

    def _build_report(
        self,
        repo_path: Path,
        source: str,
        *,
        top_n: int,
        history_depth: int,
    ) -> Tuple[Report, List[AnalysisWarning]]:
        self.logger.info("Analyzing %s", source)
        files = self.scanner.scan(repo_path)
        walker = HistoryWalker(self._commit_source_factory(files.root))

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="repo-analyzer") as pool:
            scan_future = pool.submit(summarize_files, files)
            walk_future = pool.submit(walker.walk, history_depth)
            history: HistoryResult = walk_future.result()
            summary: FileSummary = scan_future.result()

        self.logger.debug("Scanner produced %d records", summary.total_files)
        report = build_report(
            summary,
            history,
            top_n=top_n,
            history_depth=history_depth,
            source=source,
        )
        return report, list(history.warnings)


__all__ = ["Orchestrator", "RunResult"]
