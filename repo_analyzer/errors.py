"""Error and warning types shared across the analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Stable identifiers for every failure the pipeline can surface."""

    ANALYSIS_FAILED = "analysis_failed"
    INVALID_REPO_PATH = "invalid_repo_path"
    REMOTE_CLONE_FAILED = "remote_clone_failed"
    REPOSITORY_UNREADABLE = "repository_unreadable"
    EMPTY_HISTORY = "empty_history"
    UPLOAD_FAILED = "upload_failed"
    RENDER_FAILED = "render_failed"
    CONFIG_INVALID = "config_invalid"


class RepoAnalyzerError(RuntimeError):
    """Base class for errors raised by repo_analyzer."""

    kind: ErrorKind = ErrorKind.ANALYSIS_FAILED
    fatal: bool = True


class InvalidRepoPathError(RepoAnalyzerError):
    """Raised when the repository root is missing, not a directory, or unreadable."""

    kind = ErrorKind.INVALID_REPO_PATH


class RemoteCloneFailedError(RepoAnalyzerError):
    """Raised when a remote repository cannot be cloned."""

    kind = ErrorKind.REMOTE_CLONE_FAILED


class RepositoryUnreadableError(RepoAnalyzerError):
    """Raised when the git object store cannot be opened at all."""

    kind = ErrorKind.REPOSITORY_UNREADABLE


class UploadFailedError(RepoAnalyzerError):
    """Both delivery tiers were exhausted."""

    kind = ErrorKind.UPLOAD_FAILED
    fatal = False


class RenderFailedError(RepoAnalyzerError):
    """Raised when a renderer cannot produce output for a report."""

    kind = ErrorKind.RENDER_FAILED


class ConfigError(RepoAnalyzerError):
    """Raised when the configuration file cannot be parsed."""

    kind = ErrorKind.CONFIG_INVALID


@dataclass(frozen=True)
class AnalysisWarning:
    """Non-fatal condition surfaced next to a still-usable result."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


__all__ = [
    "AnalysisWarning",
    "ConfigError",
    "ErrorKind",
    "InvalidRepoPathError",
    "RemoteCloneFailedError",
    "RenderFailedError",
    "RepoAnalyzerError",
    "RepositoryUnreadableError",
    "UploadFailedError",
]
