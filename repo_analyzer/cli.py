"""Command line interface: ``repo-analyzer analyze`` and ``repo-analyzer upload``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import __version__
from .config import RepoAnalyzerConfig, apply_env_overrides, load_config
from .errors import ConfigError, RepoAnalyzerError
from .logging import configure_logging
from .orchestrator import Orchestrator
from .renderers import FORMATS
from .upload import Uploader

EXIT_RENDER_OR_UPLOAD = 1
EXIT_FATAL = 2


def _add_logging_options(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    # Subcommands repeat the flags; SUPPRESS keeps them from resetting a value
    # already given before the subcommand name.
    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress_default else value

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default(False),
        help="Log debug detail (scan skips, git and upload diagnostics).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=default(False),
        help="Only log warnings and errors.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=default(None),
        help="Also write debug logs to this file.",
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to .repo-analyzer.yml or its directory (defaults to the current directory).",
    )


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError("must be zero or a positive integer")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-analyzer",
        description="Measure a git repository and publish a shareable report.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_logging_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze a local path or remote repository URL.",
    )
    _add_logging_options(analyze_parser, suppress_default=True)
    _add_config_option(analyze_parser)
    analyze_parser.add_argument(
        "target",
        nargs="?",
        default=".",
        help="Repository path or remote URL (defaults to current directory).",
    )
    analyze_parser.add_argument(
        "-f",
        "--format",
        dest="output_format",
        choices=sorted(FORMATS),
        default="text",
        help="Report format.",
    )
    analyze_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the rendered report to this file instead of stdout.",
    )
    analyze_parser.add_argument(
        "-t",
        "--top-contributors",
        type=_non_negative_int,
        default=None,
        help="Number of contributors to list (config default: 5).",
    )
    analyze_parser.add_argument(
        "-d",
        "--history-depth",
        type=_non_negative_int,
        default=None,
        help="Maximum commits to walk; 0 walks the full history.",
    )
    analyze_parser.add_argument(
        "--upload",
        action="store_true",
        help="Upload the rendered report and print its public URL.",
    )

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a previously rendered report file.",
    )
    _add_logging_options(upload_parser, suppress_default=True)
    _add_config_option(upload_parser)
    upload_parser.add_argument("path", type=Path, help="Rendered report to upload.")

    return parser


def _run_analyze(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: RepoAnalyzerConfig
) -> None:
    try:
        result = Orchestrator(config).run(
            args.target,
            top_n=args.top_contributors,
            history_depth=args.history_depth,
            output_format=args.output_format,
            output_path=args.output,
            upload=bool(args.upload),
        )
    except RepoAnalyzerError as exc:
        parser.exit(EXIT_FATAL, f"repo-analyzer failed: {exc}\n")

    if result.render_error is not None:
        parser.exit(EXIT_RENDER_OR_UPLOAD, f"{result.render_error}\n")
    if result.output_path is None and result.rendered is not None:
        sys.stdout.write(result.rendered.decode("utf-8"))
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if result.url:
        print(f"Report URL: {result.url}")
    elif args.upload:
        print("Report kept locally; no shareable URL is available.", file=sys.stderr)


def _run_upload(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: RepoAnalyzerConfig
) -> None:
    try:
        data = args.path.read_bytes()
    except OSError as exc:
        parser.exit(EXIT_FATAL, f"Unable to read {args.path}: {exc}\n")

    extension = args.path.suffix.lstrip(".").lower() or "txt"
    content_type = next(
        (fmt.content_type for fmt in FORMATS.values() if fmt.extension == extension),
        "application/octet-stream",
    )
    outcome = Uploader(config.upload).upload(data, extension=extension, content_type=content_type)
    if outcome.url is None:
        parser.exit(EXIT_RENDER_OR_UPLOAD, f"{outcome.error}\n")
    print(f"Report URL: {outcome.url}")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for repo-analyzer commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=args.log_file)

    try:
        config = apply_env_overrides(load_config(args.config))
    except ConfigError as exc:
        parser.exit(EXIT_FATAL, f"Invalid configuration: {exc}\n")

    if args.command == "analyze":
        _run_analyze(parser, args, config)
    elif args.command == "upload":
        _run_upload(parser, args, config)
    else:  # pragma: no cover - argparse enforces choices
        parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main()
