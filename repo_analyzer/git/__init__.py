"""Git integrations: history traversal and ephemeral clones."""

from .clone import ephemeral_clone, is_remote_url
from .history import (
    CommitSource,
    GitCommitSource,
    HistoryResult,
    HistoryWalker,
    MemoryCommitSource,
)

__all__ = [
    "CommitSource",
    "GitCommitSource",
    "HistoryResult",
    "HistoryWalker",
    "MemoryCommitSource",
    "ephemeral_clone",
    "is_remote_url",
]
