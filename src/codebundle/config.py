from __future__ import annotations

from collections import Counter
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

_ = (Path(), datetime)


class OutputFormat(StrEnum):
    """Wire formats an artifact can be rendered in."""

    TEXT = "text"
    MARKDOWN = "markdown"
    JSON = "json"

    @property
    def extension(self) -> str:
        """File extension used for artifacts of this format."""
        return _OUTPUT_EXTENSION[self]


_OUTPUT_EXTENSION: dict[OutputFormat, str] = {
    OutputFormat.TEXT: "txt",
    OutputFormat.MARKDOWN: "md",
    OutputFormat.JSON: "json",
}

IGNORED_BY_FILE_LIST = "listed in ignore files"
IGNORED_AS_GENERATED = "contains generated marker"
IGNORED_AS_OUTPUT = "previous build output"


class FileRecord(BaseModel):
    """One file considered during a scan.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the scan root, with POSIX separators.
        size: File size in bytes on disk (0 when ignored before reading).
        mtime: Last modification time.
        content: Processed content; empty when the file was ignored.
        ignored: Whether the file was excluded from the bundle.
        ignore_reason: Human-readable reason when `ignored` is True.
        ignore_pattern: The ignore glob that excluded the file, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the scan root")
    size: int = Field(default=0, ge=0, description="File size in bytes")
    mtime: datetime | None = Field(default=None, description="Last modification time")
    content: str = Field(default="", description="Content after processing")
    ignored: bool = Field(default=False, description="Excluded from the bundle")
    ignore_reason: str | None = Field(default=None, description="Why it was excluded")
    ignore_pattern: str | None = Field(default=None, description="Matching ignore glob")

    @classmethod
    def skipped(cls, path: Path, rel: str, reason: str, pattern: str | None = None) -> FileRecord:
        """Build the record of a file excluded from the bundle."""
        return cls(path=path, rel=rel, ignored=True, ignore_reason=reason, ignore_pattern=pattern)

    @computed_field
    @property
    def content_size(self) -> int:
        """Size in bytes of the processed content, UTF-8 encoded."""
        return len(self.content.encode("utf-8"))


class Chunk(BaseModel):
    """A size-bounded, ordered group of records rendered into one artifact."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="1-based part number")
    members: tuple[FileRecord, ...] = Field(..., min_length=1)

    @computed_field
    @property
    def total_size(self) -> int:
        """Sum of the members' content sizes."""
        return sum(m.content_size for m in self.members)


class ProcessingResult(BaseModel):
    """Outcome of a scan: what made it into the bundle and what did not."""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileRecord, ...] = ()
    ignored_files: tuple[FileRecord, ...] = ()

    @classmethod
    def from_records(cls, records: list[FileRecord]) -> ProcessingResult:
        """Split records into included and ignored, preserving their order."""
        return cls(
            files=tuple(r for r in records if not r.ignored),
            ignored_files=tuple(r for r in records if r.ignored),
        )

    @property
    def ignore_reasons(self) -> dict[str, int]:
        """Occurrences of each ignore reason, in first-seen order."""
        return dict(Counter(r.ignore_reason or "unknown" for r in self.ignored_files))

    @property
    def ignore_patterns(self) -> dict[str, int]:
        """Files excluded by each ignore glob, keyed by the bare pattern."""
        return dict(Counter(r.ignore_pattern for r in self.ignored_files if r.ignore_pattern))

    @property
    def total_processed(self) -> int:
        return len(self.files)

    @property
    def total_ignored(self) -> int:
        return len(self.ignored_files)

    @property
    def total_bytes(self) -> int:
        return sum(f.content_size for f in self.files)


def format_bytes(size: int) -> str:
    """Format a byte count as B, KB or MB."""
    if size < 1024:  # noqa: PLR2004
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


class BuildStats(BaseModel):
    """Statistics of one complete build (clean, process, render)."""

    model_config = ConfigDict(frozen=True)

    files_processed: int = 0
    files_ignored: int = 0
    output_files: list[str] = Field(default_factory=list)
    total_bytes: int = 0
    duration_seconds: float = 0.0
    ignore_reasons: dict[str, int] = Field(default_factory=dict)
    extra_root_files: list[str] = Field(default_factory=list)

    @property
    def output_files_created(self) -> int:
        return len(self.output_files)

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.total_bytes)

    @property
    def formatted_duration(self) -> str:
        millis = int(self.duration_seconds * 1000)
        if millis < 1000:  # noqa: PLR2004
            return f"{millis}ms"
        return f"{self.duration_seconds:.1f}s"

    def summary_lines(self) -> list[str]:
        """Human-readable summary, one line per fact."""
        lines = [
            f"Files processed: {self.files_processed}",
            f"Files ignored:   {self.files_ignored}",
            f"Output files:    {self.output_files_created}",
        ]
        lines.extend(f"  - {name}" for name in self.output_files)
        lines.append(f"Total size:      {self.formatted_size}")
        lines.append(f"Duration:        {self.formatted_duration}")
        if self.ignore_reasons:
            lines.append("Ignore breakdown:")
            lines.extend(f"  - {reason}: {count} file(s)" for reason, count in self.ignore_reasons.items())
        return lines
