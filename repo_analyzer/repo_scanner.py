"""Repository scanning: file classification and line counting."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from datetime import UTC, datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import InvalidRepoPathError
from .logging import get_logger
from .models import FileRecord

_EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".bzr",
        "node_modules",
        "bower_components",
        "vendor",
        ".venv",
        "venv",
        "target",
        "dist",
        "build",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        ".cache",
        ".idea",
        ".vscode",
    }
)

_EXCLUDED_FILES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
    }
)

_LANGUAGE_BY_EXTENSION = {
    "rs": "Rust",
    "py": "Python",
    "pyi": "Python",
    "js": "JavaScript",
    "mjs": "JavaScript",
    "cjs": "JavaScript",
    "jsx": "React",
    "ts": "TypeScript",
    "tsx": "React",
    "java": "Java",
    "kt": "Kotlin",
    "kts": "Kotlin",
    "go": "Go",
    "rb": "Ruby",
    "php": "PHP",
    "cs": "C#",
    "c": "C",
    "h": "C",
    "cpp": "C++",
    "cc": "C++",
    "hpp": "C++",
    "hh": "C++",
    "swift": "Swift",
    "m": "Objective-C",
    "mm": "Objective-C++",
    "scala": "Scala",
    "r": "R",
    "jl": "Julia",
    "dart": "Dart",
    "ex": "Elixir",
    "exs": "Elixir",
    "hs": "Haskell",
    "clj": "Clojure",
    "fs": "F#",
    "vb": "Visual Basic",
    "groovy": "Groovy",
    "gradle": "Gradle",
    "lua": "Lua",
    "pl": "Perl",
    "pm": "Perl",
    "sh": "Shell",
    "bash": "Shell",
    "ps1": "PowerShell",
    "bat": "Batch",
    "cmd": "Batch",
    "sql": "SQL",
    "html": "HTML",
    "htm": "HTML",
    "css": "CSS",
    "scss": "SASS",
    "sass": "SASS",
    "vue": "Vue",
    "svelte": "Svelte",
    "md": "Markdown",
    "rst": "reStructuredText",
    "json": "JSON",
    "yml": "YAML",
    "yaml": "YAML",
    "toml": "TOML",
    "xml": "XML",
    "tf": "Terraform",
    "tfvars": "Terraform",
    "proto": "Protocol Buffers",
    "graphql": "GraphQL",
    "gql": "GraphQL",
}

_BINARY_EXTENSIONS = frozenset(
    {
        "png", "jpg", "jpeg", "gif", "bmp", "ico", "webp", "tiff", "psd",
        "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
        "zip", "gz", "tgz", "bz2", "xz", "7z", "rar", "tar", "jar", "war",
        "exe", "dll", "so", "dylib", "a", "o", "obj", "lib", "bin", "class",
        "pyc", "pyo", "wasm",
        "mp3", "mp4", "wav", "ogg", "flac", "avi", "mov", "mkv", "webm",
        "ttf", "otf", "woff", "woff2", "eot",
        "sqlite", "db",
    }
)

OTHER_LANGUAGE = "Other"
BINARY_SNIFF_BYTES = 8192


@dataclass(frozen=True)
class IgnoreRule:
    """Glob-style exclusion supplied through configuration."""

    pattern: str
    directory_only: bool
    anchored: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            return fnmatchcase(rel_path, self.pattern)

        for part in rel_path.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def build_ignore_rule(pattern: str) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        has_slash="/" in pattern,
    )


def language_for_extension(extension: str) -> str:
    """Map a lowercase extension (without the dot) to a language name."""
    return _LANGUAGE_BY_EXTENSION.get(extension, OTHER_LANGUAGE)


def extension_for(name: str) -> str:
    suffix = Path(name).suffix
    return suffix[1:].lower() if suffix else ""


def count_lines(data: bytes) -> int:
    """Count lines split on \\n, \\r\\n and \\r; an unterminated last line counts."""
    return len(data.splitlines())


@dataclass(frozen=True)
class CommentSyntax:
    line_prefixes: Tuple[str, ...] = ()
    block: Optional[Tuple[str, str]] = None


_C_STYLE = CommentSyntax(("//",), ("/*", "*/"))
_HASH_STYLE = CommentSyntax(("#",))
_MARKUP_STYLE = CommentSyntax((), ("<!--", "-->"))

_COMMENT_SYNTAX = {
    **{
        ext: _C_STYLE
        for ext in (
            "rs", "js", "mjs", "cjs", "jsx", "ts", "tsx", "java", "kt", "kts", "go",
            "c", "h", "cpp", "cc", "hpp", "hh", "cs", "swift", "scala", "dart",
            "groovy", "gradle", "php", "m", "mm", "proto", "scss",
        )
    },
    **{
        ext: _HASH_STYLE
        for ext in ("py", "pyi", "rb", "sh", "bash", "pl", "pm", "r", "yml", "yaml", "toml", "tf", "ex", "exs")
    },
    **{ext: _MARKUP_STYLE for ext in ("html", "htm", "xml", "vue", "svelte", "md")},
    "css": CommentSyntax((), ("/*", "*/")),
    "sql": CommentSyntax(("--",), ("/*", "*/")),
    "lua": CommentSyntax(("--",)),
    "hs": CommentSyntax(("--",)),
}


def classify_lines(data: bytes, extension: str) -> Tuple[int, int, int]:
    """Split the lines of ``data`` into (code, comment, blank) counts.

    Lines are cut exactly as :func:`count_lines` cuts them, so the three
    counts always add up to the file's line count. Extensions without a
    known comment syntax only distinguish code from blank lines.
    """
    syntax = _COMMENT_SYNTAX.get(extension)
    code = comment = blank = 0
    in_block = False

    for raw in data.splitlines():
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            blank += 1
            continue
        if syntax is None:
            code += 1
            continue
        if in_block:
            comment += 1
            if syntax.block is not None and syntax.block[1] in line:
                in_block = False
            continue
        if syntax.line_prefixes and line.startswith(syntax.line_prefixes):
            comment += 1
        elif syntax.block is not None and line.startswith(syntax.block[0]):
            comment += 1
            opener, closer = syntax.block
            in_block = closer not in line[len(opener):]
        else:
            code += 1
    return code, comment, blank


def looks_binary(head: bytes, extension: str) -> bool:
    if extension in _BINARY_EXTENSIONS:
        return True
    return b"\0" in head[:BINARY_SNIFF_BYTES]


class FileSequence:
    """Lazy, restartable sequence of FileRecord for one repository root.

    Every iteration re-walks the tree, so the sequence can be consumed more
    than once without holding records in memory.
    """

    def __init__(self, scanner: "RepoScanner", root: Path) -> None:
        self._scanner = scanner
        self.root = root

    def __iter__(self) -> Iterator[FileRecord]:
        return self._scanner.iter_records(self.root)


class RepoScanner:
    """Walks a repository tree and produces FileRecords."""

    def __init__(
        self,
        *,
        excluded_dirs: Iterable[str] | None = None,
        exclude_paths: Sequence[str] = (),
    ) -> None:
        self.excluded_dirs = frozenset(excluded_dirs) if excluded_dirs is not None else _EXCLUDED_DIRS
        rules = [build_ignore_rule(pattern) for pattern in exclude_paths]
        self.rules: Tuple[IgnoreRule, ...] = tuple(rule for rule in rules if rule is not None)
        self.logger = get_logger("scanner")

    def scan(self, root: str | Path) -> FileSequence:
        """Validate ``root`` and return a lazy sequence of its files."""
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise InvalidRepoPathError(f"Repository path not found: {root}")
        if not root_path.is_dir():
            raise InvalidRepoPathError(f"Repository path is not a directory: {root}")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise InvalidRepoPathError(f"Repository path is not readable: {root}")
        return FileSequence(self, root_path.resolve())

    def iter_records(self, root: Path) -> Iterator[FileRecord]:
        seen: Set[Tuple[int, int]] = set()
        for path, rel_path in self._iter_files(root):
            record = self._record_for(path, rel_path, seen)
            if record is not None:
                yield record

    # ------------------------------------------------------------------
    # Helpers

    def _iter_files(self, root: Path) -> Iterator[Tuple[Path, str]]:
        def onerror(err: OSError) -> None:
            self.logger.debug("Skipping unreadable directory %s: %s", err.filename, err.strerror)

        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror, followlinks=False):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            kept: List[str] = []
            for name in sorted(dirnames):
                if name in self.excluded_dirs:
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self._should_ignore(rel_path, True):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for filename in sorted(filenames):
                if filename in _EXCLUDED_FILES:
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if self._should_ignore(rel_path, False):
                    continue
                yield current_dir / filename, rel_path

    def _should_ignore(self, rel_path: str, is_dir: bool) -> bool:
        return any(rule.matches(rel_path, is_dir) for rule in self.rules)

    def _record_for(
        self, path: Path, rel_path: str, seen: Set[Tuple[int, int]]
    ) -> Optional[FileRecord]:
        try:
            # stat() follows symlinks, so a link is measured through its target.
            stat_result = path.stat()
        except OSError as exc:
            self.logger.debug("Skipping %s: %s", rel_path, exc)
            return None
        if not stat.S_ISREG(stat_result.st_mode):
            return None

        identity = (stat_result.st_dev, stat_result.st_ino)
        if identity in seen:
            return None
        seen.add(identity)

        extension = extension_for(path.name)
        try:
            with path.open("rb") as handle:
                data = handle.read()
        except OSError as exc:
            self.logger.debug("Skipping unreadable file %s: %s", rel_path, exc)
            return None

        is_binary = looks_binary(data[:BINARY_SNIFF_BYTES], extension)
        code, comment, blank = (0, 0, 0) if is_binary else classify_lines(data, extension)
        return FileRecord(
            path=rel_path,
            extension=extension,
            language=language_for_extension(extension),
            line_count=0 if is_binary else count_lines(data),
            is_binary=is_binary,
            size_bytes=stat_result.st_size,
            mtime=datetime.fromtimestamp(stat_result.st_mtime, UTC),
            code_lines=code,
            comment_lines=comment,
            blank_lines=blank,
        )


__all__ = [
    "FileSequence",
    "IgnoreRule",
    "RepoScanner",
    "build_ignore_rule",
    "classify_lines",
    "count_lines",
    "language_for_extension",
]
