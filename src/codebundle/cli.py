"""
codebundle - Bundle a project's source files into size-bounded artifacts.

Overview
--------
Scans a source tree for the files of one project type, optionally strips their
comments, and packs them in discovery order into numbered artifacts
(`CODEBUNDLE-001.txt`, `CODEBUNDLE-002.txt`, ...) that each stay under a size
budget. Artifacts can be plain text, markdown or JSON.

Settings come from, in decreasing priority: command-line flags, the project
config file (`.codebundle.yaml`, or the file named by `CODEBUNDLE_CONFIG`), and
defaults detected from the project.

Usage
-----
Run `codebundle --help` for full options. Common examples:
    - One build with detected settings:
        codebundle gen

    - Markdown artifacts of at most 200 KB, comments kept:
        codebundle gen --format markdown --max-size 200 --no-remove-comments

    - Rebuild whenever a source file changes:
        codebundle watch --output-dir bundle

    - Write a starting config file for the current project:
        codebundle init --type python
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codebundle import __version__
from codebundle.config import OutputFormat
from codebundle.exceptions import CodeBundleError, ConfigurationError
from codebundle.languages import PROFILES, ProjectType
from codebundle.logging import logger, setup_logging
from codebundle.pipeline import build, source_root
from codebundle.settings import PROJECT_CONFIG_NAME, Settings, load_settings
from codebundle.watch import DEFAULT_DEBOUNCE_SECONDS, watch

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from codebundle.config import BuildStats


def _add_build_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--source", type=str, default=None, help="Source directory, relative to the project.")
    p.add_argument(
        "--type",
        type=str,
        choices=[t.value for t in ProjectType],
        default=None,
        help="Project type (default: auto-detected).",
    )
    p.add_argument("--prefix", type=str, default=None, help="Output file name prefix.")
    p.add_argument("--max-size", type=int, default=None, help="Maximum artifact size in KB.")
    p.add_argument(
        "--remove-comments",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Strip comments from source files.",
    )
    p.add_argument(
        "--format",
        type=str,
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Artifact format.",
    )
    p.add_argument("--config", type=str, default=None, help=f"Config file (default: {PROJECT_CONFIG_NAME}).")
    p.add_argument("--output-dir", type=str, default=None, help="Where artifacts are written (default: project dir).")
    p.add_argument("--verbose", action="store_true", help="Log every file decision.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="codebundle",
        description="Bundle a project's source files into size-bounded artifacts.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("gen", help="Build the bundle once.")
    _add_build_options(gen)

    watch_cmd = sub.add_parser("watch", help="Build, then rebuild on every source change.")
    _add_build_options(watch_cmd)
    watch_cmd.add_argument(
        "--debounce",
        type=float,
        default=DEFAULT_DEBOUNCE_SECONDS,
        help="Quiet period in seconds before a rebuild.",
    )

    init = sub.add_parser("init", help=f"Write a {PROJECT_CONFIG_NAME} for the current project.")
    init.add_argument(
        "--type",
        type=str,
        choices=[t.value for t in ProjectType],
        default=None,
        help="Project type (default: auto-detected).",
    )
    init.add_argument("--force", action="store_true", help="Overwrite an existing config file.")

    sub.add_parser("types", help="List the supported project types.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Map command-line flags to settings fields; unset flags map to None."""
    return {
        "source_dir": args.source,
        "project_type": args.type,
        "output_prefix": args.prefix,
        "target_size_kb": args.max_size,
        "remove_comments": args.remove_comments,
        "output_format": args.format,
        "verbose": True if args.verbose else None,
        "log_file": args.log_file or None,
    }


def _prepare(args: argparse.Namespace, working_dir: Path) -> tuple[Settings, Path | None]:
    settings = load_settings(working_dir, config_file=args.config, overrides=settings_overrides(args))
    setup_logging(settings.log_file or None, verbose=settings.verbose, force=True)
    output_dir = (working_dir / args.output_dir).resolve() if args.output_dir else None
    return settings, output_dir


def print_stats(stats: BuildStats) -> None:
    if not stats.output_files:
        print("No files to bundle.")
    for line in stats.summary_lines():
        print(line)
    if stats.extra_root_files:
        print(f"Extra root files: {', '.join(stats.extra_root_files)}")


def run_gen(args: argparse.Namespace, working_dir: Path) -> int:
    settings, output_dir = _prepare(args, working_dir)
    stats = build(settings, working_dir, output_dir)
    print_stats(stats)
    return 0


def run_watch(args: argparse.Namespace, working_dir: Path) -> int:
    settings, output_dir = _prepare(args, working_dir)
    root = source_root(settings, working_dir)
    print(f"Watching {root} (Ctrl+C to stop)")
    try:
        watch(
            settings,
            working_dir,
            output_dir,
            debounce_seconds=args.debounce,
            on_build=print_stats,
        )
    except KeyboardInterrupt:
        print("Stopped.")
    return 0


def run_init(args: argparse.Namespace, working_dir: Path) -> int:
    path = working_dir / PROJECT_CONFIG_NAME
    if path.exists() and not args.force:
        raise ConfigurationError(
            source=str(path),
            message="Configuration file already exists, use --force to overwrite.",
        )
    project_type = ProjectType(args.type) if args.type else None
    settings = Settings.with_defaults(working_dir, project_type)
    settings.save(path)
    logger.info("config_written", path=str(path), project_type=settings.project_type.value)
    print(f"Wrote {path} (project type: {settings.project_type.value})")
    return 0


def run_types(args: argparse.Namespace, working_dir: Path) -> int:  # noqa: ARG001
    for project_type, profile in PROFILES.items():
        print(f"{project_type.value:<12} {', '.join(sorted(profile.extensions))}")
    return 0


COMMANDS: dict[str, Callable[[argparse.Namespace, Path], int]] = {
    "gen": run_gen,
    "watch": run_watch,
    "init": run_init,
    "types": run_types,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    working_dir = Path.cwd()
    try:
        return COMMANDS[args.command](args, working_dir)
    except CodeBundleError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
