from __future__ import annotations

import io
import json
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from codebundle.config import Chunk, FileRecord, OutputFormat
from codebundle.exceptions import OutputWriteError
from codebundle.languages import fence_language
from codebundle.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

    from codebundle.settings import Settings

    Renderer = Callable[[Chunk, "Settings", datetime], str]

OUTPUT_NAME_PATTERN = r"{prefix}-\d{{3,}}\.(txt|md|json)"

_SLUG_DROP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")


def chunk_records(records: Iterable[FileRecord], budget_bytes: int) -> list[Chunk]:
    """Pack records into size-bounded chunks, greedily and in order.

    A new chunk starts when the current one is non-empty and the next record
    would push it over `budget_bytes`. A record larger than the budget on its
    own therefore ends up alone in its chunk. Ignored records are skipped.

    Args:
        records (Iterable[FileRecord]): processed records, in discovery order
        budget_bytes (int): maximum content size of a chunk

    Returns:
        list[Chunk]: chunks numbered from 1; empty when there is nothing to pack
    """
    chunks: list[Chunk] = []
    current: list[FileRecord] = []
    running = 0
    for rec in records:
        if rec.ignored:
            continue
        size = rec.content_size
        if current and running + size > budget_bytes:
            chunks.append(Chunk(index=len(chunks) + 1, members=tuple(current)))
            current = []
            running = 0
        current.append(rec)
        running += size
    if current:
        chunks.append(Chunk(index=len(chunks) + 1, members=tuple(current)))
    return chunks


def part_label(index: int) -> str:
    return f"{index:03d}"


def output_filename(prefix: str, index: int, output_format: OutputFormat) -> str:
    """Name of the artifact holding part `index`, e.g. `CODEBUNDLE-001.txt`."""
    return f"{prefix}-{part_label(index)}.{output_format.extension}"


def slugify(path: str) -> str:
    """Make a markdown anchor from a file path.

    Lowercase, drop everything outside `[a-z0-9 -]`, turn whitespace runs into
    single hyphens.
    """
    return _SLUG_SPACES.sub("-", _SLUG_DROP.sub("", path.lower()))


def build_text(chunk: Chunk, settings: Settings, generated_at: datetime) -> str:  # noqa: ARG001
    """Render a chunk as plain text with a `// File:` marker per member."""
    out = io.StringIO()
    for rec in chunk.members:
        out.write(f"// File: {rec.rel}\n")
        out.write(f"{rec.content}\n")
        out.write("\n")
    return out.getvalue()


def build_markdown(chunk: Chunk, settings: Settings, generated_at: datetime) -> str:  # noqa: ARG001
    """Render a chunk as markdown.

    The document holds a part header, the generation timestamp, a table of
    contents linking to each file section, then one fenced block per file.

    Args:
        chunk (Chunk): the chunk to render
        settings (Settings): run configuration
        generated_at (datetime): timestamp written in the header

    Returns:
        str: the markdown document
    """
    out = io.StringIO()
    out.write(f"# Code Bundle - Part {part_label(chunk.index)}\n\n")
    out.write(f"Generated: {generated_at.isoformat()}\n\n")
    out.write("---\n\n")

    out.write("## Table of Contents\n\n")
    for i, rec in enumerate(chunk.members, start=1):
        out.write(f"{i}. [{rec.rel}](#{slugify(rec.rel)})\n")
    out.write("\n---\n\n")

    for rec in chunk.members:
        out.write(f"## {rec.rel}\n\n")
        out.write(f"```{fence_language(rec.rel)}\n{rec.content}\n```\n\n")
    return out.getvalue()


def build_json(chunk: Chunk, settings: Settings, generated_at: datetime) -> str:
    """Render a chunk as a JSON document with run and per-file metadata."""
    data = {
        "part": chunk.index,
        "generated": generated_at.isoformat(),
        "config": {
            "source_dir": settings.source_dir,
            "output_prefix": settings.output_prefix,
            "remove_comments": settings.remove_comments,
        },
        "summary": {
            "file_count": len(chunk.members),
            "total_size": chunk.total_size,
        },
        "files": [
            {
                "path": rec.rel,
                "size": rec.size,
                "content_size": rec.content_size,
                "last_modified": rec.mtime.isoformat() if rec.mtime else None,
                "content": rec.content,
            }
            for rec in chunk.members
        ],
    }
    return json.dumps(data, ensure_ascii=False, indent=2)


RENDERERS: dict[OutputFormat, Renderer] = {
    OutputFormat.TEXT: build_text,
    OutputFormat.MARKDOWN: build_markdown,
    OutputFormat.JSON: build_json,
}


def render_chunk(chunk: Chunk, settings: Settings, generated_at: datetime) -> str:
    """Serialize a chunk in the configured output format."""
    return RENDERERS[settings.output_format](chunk, settings, generated_at)


def write_chunks(
    chunks: Sequence[Chunk],
    settings: Settings,
    output_dir: Path,
    generated_at: datetime,
) -> list[Path]:
    """Write one artifact per chunk.

    Writing is all-or-nothing: when a write fails, artifacts already written by
    this call are removed before the error propagates.

    Args:
        chunks (Sequence[Chunk]): chunks to write, in order
        settings (Settings): run configuration (prefix, format)
        output_dir (Path): destination directory
        generated_at (datetime): timestamp shared by every artifact of the run

    Raises:
        OutputWriteError: if an artifact cannot be written

    Returns:
        list[Path]: written artifact paths, in part order
    """
    written: list[Path] = []
    for chunk in chunks:
        target = output_dir / output_filename(settings.output_prefix, chunk.index, settings.output_format)
        content = render_chunk(chunk, settings, generated_at)
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            for path in written:
                path.unlink(missing_ok=True)
            raise OutputWriteError(path=target, reason=str(e)) from e
        written.append(target)
        logger.debug(
            "artifact_written",
            path=target.name,
            files=len(chunk.members),
            content_size=chunk.total_size,
        )
    return written


def output_name_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(OUTPUT_NAME_PATTERN.format(prefix=re.escape(prefix)))


def is_output_artifact(name: str, prefix: str) -> bool:
    """Check whether a basename is an artifact name for `prefix`, e.g. `CODEBUNDLE-001.md`."""
    return output_name_pattern(prefix).fullmatch(name) is not None


def clean_previous_outputs(output_dir: Path, prefix: str) -> int:
    """Delete artifacts of a previous run named `<prefix>-NNN.(txt|md|json)`.

    Part numbers have at least three digits, so `-1000` and beyond are removed too.

    Args:
        output_dir (Path): directory holding the artifacts (not searched recursively)
        prefix (str): the output prefix of the artifacts

    Raises:
        OutputWriteError: if an artifact cannot be deleted

    Returns:
        int: number of files removed
    """
    if not output_dir.is_dir():
        return 0
    pattern = output_name_pattern(prefix)
    count = 0
    for entry in sorted(output_dir.iterdir()):
        if entry.is_file() and pattern.fullmatch(entry.name):
            try:
                entry.unlink()
            except OSError as e:
                raise OutputWriteError(
                    path=entry,
                    reason=str(e),
                    message="Could not delete previous artifact.",
                ) from e
            count += 1
            logger.debug("artifact_deleted", path=entry.name)
    return count


def resolve_generated_at(env: dict[str, str] | None = None) -> datetime:
    """Timestamp for a run: `SOURCE_DATE_EPOCH` when set, now otherwise."""
    epoch = (env or {}).get("SOURCE_DATE_EPOCH", "").strip()
    if epoch.isdigit():
        return datetime.fromtimestamp(int(epoch), tz=UTC)
    return datetime.now(UTC).astimezone()
