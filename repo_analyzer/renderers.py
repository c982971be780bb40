"""Text, JSON and HTML renderings of a Report."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from .errors import RenderFailedError
from .models import Report


@dataclass(frozen=True)
class OutputFormat:
    """Renderer registration: how to produce bytes and how to label them."""

    name: str
    extension: str
    content_type: str
    render: Callable[[Report], str]


def _human_size(size: float) -> str:
    return f"{size / 1024:.2f} KB"


def _timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def render_text(report: Report) -> str:
    lines: List[str] = [
        "Repository Analysis Report",
        "==========================",
        "",
        "General Information:",
        f"Repository: {report.source}",
        f"Total Files: {report.total_files}",
        f"Total Lines of Code: {report.total_lines}",
        f"  Code: {report.code_lines}, Comments: {report.comment_lines}, Blank: {report.blank_lines}",
        f"Total Commits: {report.total_commits}",
        f"Last Activity: {_timestamp(report.last_activity_ts)}",
        f"Average File Size: {_human_size(report.average_file_size)}",
        f"History Depth: {report.history_depth_used or 'unbounded'}",
        "",
        "Language Statistics:",
    ]
    for lang in report.languages:
        lines.append(f"{lang.language}: {lang.file_count} files ({lang.percentage:.2f}%)")

    lines.extend(["", "File Extensions:"])
    for ext in report.extensions:
        label = f".{ext.extension}" if ext.extension else "(none)"
        lines.append(f"{label}: {ext.file_count} files ({ext.percentage:.2f}%)")

    lines.extend(["", "Largest Files:"])
    for index, item in enumerate(report.largest_files, start=1):
        lines.append(f"{index}. {item.path} - {_human_size(item.size_bytes)}")

    lines.extend(["", "Top Contributors:"])
    for index, contributor in enumerate(report.contributors, start=1):
        lines.append(
            f"{index}. {contributor.identity} - {contributor.commit_count} commits "
            f"(first: {_timestamp(contributor.first_commit_ts)}, "
            f"last: {_timestamp(contributor.last_commit_ts)})"
        )

    lines.extend(["", "Most Changed Files:"])
    for index, item in enumerate(report.most_changed_files, start=1):
        lines.append(
            f"{index}. {item.path} - {item.commit_count} commits "
            f"(top contributor: {item.top_contributor}, "
            f"last change: {_timestamp(item.last_change_ts)})"
        )
    return "\n".join(lines) + "\n"


def render_json(report: Report) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n"


_ENV: Environment | None = None


def _environment() -> Environment:
    global _ENV
    if _ENV is None:
        env = Environment(
            loader=PackageLoader("repo_analyzer", "templates"),
            autoescape=select_autoescape(["html", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters["timestamp"] = _timestamp
        env.filters["human_size"] = _human_size
        _ENV = env
    return _ENV


def render_html(report: Report) -> str:
    template = _environment().get_template("report.html.j2")
    return template.render(report=report)


FORMATS: Dict[str, OutputFormat] = {
    "text": OutputFormat("text", "txt", "text/plain; charset=utf-8", render_text),
    "json": OutputFormat("json", "json", "application/json", render_json),
    "html": OutputFormat("html", "html", "text/html; charset=utf-8", render_html),
}


def get_format(name: str) -> OutputFormat:
    try:
        return FORMATS[name.lower()]
    except KeyError as exc:
        raise RenderFailedError(
            f"Unsupported output format '{name}'; choose one of {', '.join(sorted(FORMATS))}"
        ) from exc


def render(report: Report, fmt: str) -> bytes:
    """Render ``report`` in ``fmt``; failures raise RenderFailedError."""
    output_format = get_format(fmt)
    try:
        return output_format.render(report).encode("utf-8")
    except (TemplateError, TypeError, ValueError) as exc:
        raise RenderFailedError(f"Failed to render {fmt} report: {exc}") from exc


__all__ = ["FORMATS", "OutputFormat", "get_format", "render", "render_html", "render_json", "render_text"]
