"""Ephemeral clones of remote repositories."""

from __future__ import annotations

import re
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Sequence

from ..errors import RemoteCloneFailedError
from ..logging import get_logger

_REMOTE_PREFIXES = ("http://", "https://", "ssh://", "git://", "file://")
_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:.+")

CloneRunner = Callable[[Sequence[str], float], None]

logger = get_logger("git.clone")


def is_remote_url(target: str) -> bool:
    """Return True when ``target`` names a remote repository rather than a path."""
    value = target.strip()
    if value.startswith(_REMOTE_PREFIXES):
        return True
    return bool(_SCP_LIKE.match(value))


def _default_runner(args: Sequence[str], timeout: float) -> None:
    subprocess.run(
        list(args),
        check=True,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def build_clone_command(url: str, destination: Path, *, depth: int = 0) -> List[str]:
    args = ["git", "clone", "--quiet", "--no-tags"]
    if depth > 0:
        args.extend(["--depth", str(depth)])
    args.extend([url, str(destination)])
    return args


@contextmanager
def ephemeral_clone(
    url: str,
    *,
    depth: int = 0,
    timeout: float = 300.0,
    runner: CloneRunner | None = None,
) -> Iterator[Path]:
    """Clone ``url`` into a temporary directory removed when the block exits."""
    run = runner or _default_runner
    with tempfile.TemporaryDirectory(prefix="repo-analyzer-") as workdir:
        destination = Path(workdir) / "repo"
        args = build_clone_command(url, destination, depth=depth)
        logger.info("Cloning %s", url)
        try:
            run(args, timeout)
        except subprocess.TimeoutExpired as exc:
            raise RemoteCloneFailedError(
                f"Cloning {url} timed out after {timeout:.0f}s"
            ) from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() if isinstance(exc.stderr, str) else ""
            raise RemoteCloneFailedError(
                f"Cloning {url} failed with exit code {exc.returncode}: {detail}"
            ) from exc
        except OSError as exc:
            raise RemoteCloneFailedError(f"Unable to run git clone: {exc}") from exc
        logger.debug("Cloned %s into %s", url, destination)
        yield destination


__all__ = ["build_clone_command", "ephemeral_clone", "is_remote_url"]
