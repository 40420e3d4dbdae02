"""Entry points used by the CLI and watch layers.

`process` scans and strips, `render` chunks and writes, `build` runs a whole
cycle (clean, process, render, copy extra root files) and reports statistics.
"""

from __future__ import annotations

import shutil
import time
from typing import TYPE_CHECKING

from codebundle.config import BuildStats, ProcessingResult
from codebundle.exceptions import OutputWriteError, SourceDirectoryNotFoundError
from codebundle.file_manipulation import iter_file_records
from codebundle.logging import logger
from codebundle.output_construction import (
    chunk_records,
    clean_previous_outputs,
    resolve_generated_at,
    write_chunks,
)
from codebundle.settings import environment

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from pathlib import Path

    from codebundle.config import FileRecord
    from codebundle.settings import Settings


def source_root(settings: Settings, working_dir: Path) -> Path:
    """Resolve the configured source directory.

    Raises:
        SourceDirectoryNotFoundError: if it does not exist
    """
    root = (working_dir / settings.source_dir).resolve()
    if not root.is_dir():
        raise SourceDirectoryNotFoundError(folder=root)
    return root


def process(settings: Settings, working_dir: Path, output_dir: Path | None = None) -> ProcessingResult:
    """Discover, filter and strip every candidate file of the project.

    Artifacts of earlier runs are never scanned: see `iter_file_records`.

    Args:
        settings (Settings): run configuration
        working_dir (Path): directory the source dir is relative to
        output_dir (Path | None): where artifacts are written, defaults to `working_dir`

    Raises:
        SourceDirectoryNotFoundError: if the source directory does not exist

    Returns:
        ProcessingResult: included and ignored records with reason counts
    """
    root = source_root(settings, working_dir)
    profile = settings.language_profile(working_dir)
    extensions = settings.effective_extensions(working_dir)
    logger.info(
        "scan_started",
        source=str(root),
        project_type=profile.project_type.value,
        extensions=extensions,
    )
    records = list(
        iter_file_records(
            root,
            extensions=extensions,
            grammar=profile.comment_grammar,
            ignore_globs=settings.effective_ignore_patterns(working_dir),
            ignore_files=settings.ignore_files,
            strip_comments=settings.remove_comments,
            output_dir=output_dir or working_dir,
            output_prefix=settings.output_prefix,
        ),
    )
    result = ProcessingResult.from_records(records)
    logger.info(
        "scan_finished",
        included=result.total_processed,
        ignored=result.total_ignored,
        content_bytes=result.total_bytes,
    )
    return result


def render(
    files: Sequence[FileRecord],
    settings: Settings,
    output_dir: Path,
    *,
    generated_at: datetime | None = None,
) -> list[Path]:
    """Chunk the processed files and write one artifact per chunk.

    Args:
        files (Sequence[FileRecord]): processed records, in discovery order
        settings (Settings): run configuration
        output_dir (Path): destination directory, created if missing
        generated_at (datetime | None): timestamp of the run; resolved from the
            environment when omitted

    Raises:
        OutputWriteError: if an artifact cannot be written

    Returns:
        list[Path]: written artifact paths; empty when there is nothing to write
    """
    chunks = chunk_records(files, settings.budget_bytes)
    if not chunks:
        logger.warning("nothing_to_render")
        return []
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputWriteError(
            path=output_dir,
            reason=str(e),
            message="Could not create output directory.",
        ) from e
    stamp = generated_at or resolve_generated_at(environment())
    return write_chunks(chunks, settings, output_dir, stamp)


def include_extra_root_files(settings: Settings, working_dir: Path, output_dir: Path) -> list[str]:
    """Copy the configured extra root files next to the generated output.

    Missing files are skipped with a warning.

    Raises:
        OutputWriteError: if a file cannot be copied

    Returns:
        list[str]: names of the files found (and copied when needed)
    """
    included: list[str] = []
    for name in settings.extra_root_files:
        source = working_dir / name
        if not source.is_file():
            logger.warning("extra_root_file_missing", file=name)
            continue
        target = output_dir / name
        if target.resolve() != source.resolve():
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
            except OSError as e:
                raise OutputWriteError(
                    path=target,
                    reason=str(e),
                    message="Could not copy extra root file.",
                ) from e
        included.append(name)
        logger.debug("extra_root_file_included", file=name)
    return included


def build(settings: Settings, working_dir: Path, output_dir: Path | None = None) -> BuildStats:
    """Run a full bundling cycle.

    Previous artifacts with the same prefix are removed first, so the output
    directory always holds a contiguous `-001`, `-002`, ... series.

    Args:
        settings (Settings): run configuration
        working_dir (Path): project directory
        output_dir (Path | None): destination, defaults to `working_dir`

    Returns:
        BuildStats: statistics of the run
    """
    started = time.perf_counter()
    out_dir = output_dir or working_dir
    # Previous artifacts are only removed once the source dir is known to exist.
    source_root(settings, working_dir)
    removed = clean_previous_outputs(out_dir, settings.output_prefix)
    if removed:
        logger.info("previous_outputs_removed", count=removed)

    result = process(settings, working_dir, out_dir)
    paths = render(result.files, settings, out_dir)
    extras = include_extra_root_files(settings, working_dir, out_dir) if paths else []

    stats = BuildStats(
        files_processed=result.total_processed,
        files_ignored=result.total_ignored,
        output_files=[p.name for p in paths],
        total_bytes=sum(p.stat().st_size for p in paths),
        duration_seconds=time.perf_counter() - started,
        ignore_reasons=result.ignore_reasons,
        extra_root_files=extras,
    )
    logger.info(
        "build_complete",
        outputs=stats.output_files_created,
        size=stats.formatted_size,
        duration=stats.formatted_duration,
    )
    return stats
