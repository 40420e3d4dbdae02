from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from codebundle.config import Chunk, FileRecord, OutputFormat
from codebundle.exceptions import OutputWriteError
from codebundle.output_construction import (
    build_json,
    build_markdown,
    build_text,
    chunk_records,
    clean_previous_outputs,
    is_output_artifact,
    output_filename,
    resolve_generated_at,
    slugify,
    write_chunks,
)
from codebundle.settings import Settings

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

KB = 1024
GENERATED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def _rec(rel: str, size: int = 0, content: str | None = None) -> FileRecord:
    return FileRecord(
        path=Path("/project") / rel,
        rel=rel,
        size=size,
        mtime=GENERATED_AT,
        content=content if content is not None else "a" * size,
    )


@pytest.mark.unit
def test_chunk_records_greedy_split() -> None:
    records = [_rec(f"f{i}.dart", 400 * KB) for i in range(3)]

    chunks = chunk_records(records, 1000 * KB)

    assert [len(c.members) for c in chunks] == [2, 1]
    assert [c.index for c in chunks] == [1, 2]
    assert chunks[0].total_size == 800 * KB


@pytest.mark.unit
def test_chunk_records_oversized_file_is_alone() -> None:
    records = [_rec("small.dart", 10), _rec("huge.dart", 2000 * KB), _rec("tail.dart", 10)]

    chunks = chunk_records(records, 1000 * KB)

    assert [[m.rel for m in c.members] for c in chunks] == [["small.dart"], ["huge.dart"], ["tail.dart"]]
    assert chunks[1].total_size == 2000 * KB


@pytest.mark.unit
def test_chunk_records_empty_input() -> None:
    assert chunk_records([], 1000 * KB) == []


@pytest.mark.unit
def test_chunk_records_partitions_in_order_within_budget() -> None:
    budget = 100
    sizes = [30, 50, 20, 90, 10, 150, 5, 60, 40]
    records = [_rec(f"f{i}.py", s) for i, s in enumerate(sizes)]

    chunks = chunk_records(records, budget)

    flattened = [m.rel for c in chunks for m in c.members]
    assert flattened == [r.rel for r in records]
    for chunk in chunks:
        assert chunk.members
        assert chunk.total_size <= budget or len(chunk.members) == 1


@pytest.mark.unit
def test_chunk_records_skips_ignored_records() -> None:
    ignored = FileRecord.skipped(Path("/project/x.g.dart"), "x.g.dart", "matches ignore pattern '*.g.dart'")

    chunks = chunk_records([ignored, _rec("a.dart", 5)], 100)

    assert [m.rel for c in chunks for m in c.members] == ["a.dart"]


@pytest.mark.unit
def test_content_size_counts_utf8_bytes() -> None:
    assert _rec("a.dart", content="é").content_size == len("é".encode())


@pytest.mark.unit
def test_output_filename() -> None:
    assert output_filename("CODEBUNDLE", 1, OutputFormat.TEXT) == "CODEBUNDLE-001.txt"
    assert output_filename("ctx", 12, OutputFormat.MARKDOWN) == "ctx-012.md"
    assert output_filename("ctx", 3, OutputFormat.JSON) == "ctx-003.json"


@pytest.mark.unit
def test_slugify() -> None:
    assert slugify("lib/Main File.dart") == "libmain-filedart"
    assert slugify("src/a_b.py") == "srcabpy"


@pytest.mark.unit
def test_build_text_marks_each_file() -> None:
    chunk = Chunk(index=1, members=(_rec("a.dart", content="A"), _rec("b.dart", content="B")))

    text = build_text(chunk, Settings(), GENERATED_AT)

    assert text == "// File: a.dart\nA\n\n// File: b.dart\nB\n\n"


@pytest.mark.unit
def test_build_markdown_has_header_toc_and_fences() -> None:
    chunk = Chunk(index=2, members=(_rec("lib/main.dart", content="void main() {}"),))

    md = build_markdown(chunk, Settings(), GENERATED_AT)

    assert md.startswith("# Code Bundle - Part 002\n\nGenerated: 2024-01-02T03:04:05+00:00\n\n---\n\n")
    assert "## Table of Contents\n\n1. [lib/main.dart](#libmaindart)\n" in md
    assert "## lib/main.dart\n\n```dart\nvoid main() {}\n```\n" in md


@pytest.mark.unit
def test_build_json_document() -> None:
    chunk = Chunk(index=1, members=(_rec("a.py", size=7, content="x = 1"),))
    settings = Settings(source_dir="src", output_prefix="ctx", remove_comments=False)

    data = json.loads(build_json(chunk, settings, GENERATED_AT))

    assert data["part"] == 1
    assert data["generated"] == "2024-01-02T03:04:05+00:00"
    assert data["config"] == {"source_dir": "src", "output_prefix": "ctx", "remove_comments": False}
    assert data["summary"] == {"file_count": 1, "total_size": 5}
    assert data["files"] == [
        {
            "path": "a.py",
            "size": 7,
            "content_size": 5,
            "last_modified": "2024-01-02T03:04:05+00:00",
            "content": "x = 1",
        },
    ]


@pytest.mark.unit
def test_write_chunks_writes_one_file_per_chunk(tmp_path: Path) -> None:
    chunks = chunk_records([_rec("a.dart", 60), _rec("b.dart", 60)], 100)
    settings = Settings(output_prefix="ctx", output_format=OutputFormat.MARKDOWN)

    written = write_chunks(chunks, settings, tmp_path, GENERATED_AT)

    assert [p.name for p in written] == ["ctx-001.md", "ctx-002.md"]
    assert all(p.is_file() for p in written)


@pytest.mark.unit
def test_write_chunks_is_all_or_nothing(tmp_path: Path, mocker: MockerFixture) -> None:
    chunks = chunk_records([_rec("a.dart", 60), _rec("b.dart", 60)], 100)
    original = Path.write_text

    def failing_write(self: Path, *args: object, **kwargs: object) -> int:
        if self.name.endswith("-002.txt"):
            msg = "disk full"
            raise OSError(msg)
        return original(self, *args, **kwargs)  # type: ignore[arg-type]

    mocker.patch.object(Path, "write_text", failing_write)

    with pytest.raises(OutputWriteError) as exc_info:
        write_chunks(chunks, Settings(), tmp_path, GENERATED_AT)

    assert "disk full" in str(exc_info.value)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.unit
def test_clean_previous_outputs_only_removes_matching_names(tmp_path: Path) -> None:
    for name in ["ctx-001.txt", "ctx-002.md", "ctx-010.json", "ctx-1.txt", "ctx-001.txt.bak", "other-001.txt"]:
        (tmp_path / name).write_text("x", encoding="utf-8")

    removed = clean_previous_outputs(tmp_path, "ctx")

    assert removed == 3
    assert sorted(p.name for p in tmp_path.iterdir()) == ["ctx-001.txt.bak", "ctx-1.txt", "other-001.txt"]


@pytest.mark.unit
def test_clean_previous_outputs_escapes_prefix(tmp_path: Path) -> None:
    (tmp_path / "aXb-001.txt").write_text("x", encoding="utf-8")

    assert clean_previous_outputs(tmp_path, "a.b") == 0
    assert clean_previous_outputs(tmp_path / "missing", "a.b") == 0



@pytest.mark.unit
def test_clean_previous_outputs_removes_parts_past_999(tmp_path: Path) -> None:
    for name in ["ctx-999.md", "ctx-1000.md", "ctx-12345.json"]:
        (tmp_path / name).write_text("x", encoding="utf-8")

    assert clean_previous_outputs(tmp_path, "ctx") == 3  # noqa: PLR2004
    assert list(tmp_path.iterdir()) == []


@pytest.mark.unit
def test_clean_previous_outputs_wraps_delete_errors(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / "ctx-001.txt").write_text("x", encoding="utf-8")
    mocker.patch.object(Path, "unlink", side_effect=PermissionError("locked"))

    with pytest.raises(OutputWriteError) as exc_info:
        clean_previous_outputs(tmp_path, "ctx")

    assert exc_info.value.path == tmp_path / "ctx-001.txt"
    assert str(exc_info.value).startswith("Could not delete previous artifact.")
    assert "locked" in str(exc_info.value)


@pytest.mark.unit
def test_is_output_artifact_matches_whole_name() -> None:
    assert is_output_artifact("CODEBUNDLE-001.txt", "CODEBUNDLE")
    assert is_output_artifact("CODEBUNDLE-1000.json", "CODEBUNDLE")
    assert not is_output_artifact("CODEBUNDLE-01.txt", "CODEBUNDLE")
    assert not is_output_artifact("CODEBUNDLE-001.txt.bak", "CODEBUNDLE")
    assert not is_output_artifact("xCODEBUNDLE-001.md", "CODEBUNDLE")


@pytest.mark.unit
def test_resolve_generated_at_honors_source_date_epoch() -> None:
    assert resolve_generated_at({"SOURCE_DATE_EPOCH": "1704164645"}) == GENERATED_AT
    assert resolve_generated_at({}).tzinfo is not None
