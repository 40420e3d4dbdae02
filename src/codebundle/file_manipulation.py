from __future__ import annotations

import fnmatch
import os
import stat
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from codebundle.comments import has_generated_marker, remove_comments
from codebundle.config import IGNORED_AS_GENERATED, IGNORED_AS_OUTPUT, IGNORED_BY_FILE_LIST, FileRecord
from codebundle.logging import logger
from codebundle.output_construction import is_output_artifact

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from codebundle.languages import CommentGrammar


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Strip whitespace, replace backslashes with forward slashes, drop empty
    entries and duplicates while keeping the first occurrence order.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return list(dict.fromkeys(out))


def normalize_extensions(extensions: Iterable[str]) -> list[str]:
    """Give every extension a leading dot, dropping blanks and duplicates."""
    out: list[str] = []
    for ext in extensions:
        e = ext.strip()
        if not e:
            continue
        out.append(e if e.startswith(".") else f".{e}")
    return list(dict.fromkeys(out))


def trailing_subpaths(rel: str) -> list[str]:
    """List `rel` and each of its suffixes starting at a directory boundary.

    >>> trailing_subpaths("a/b/c.py")
    ['a/b/c.py', 'b/c.py', 'c.py']
    """
    parts = rel.split("/")
    return ["/".join(parts[i:]) for i in range(len(parts))]


def glob_variants(pattern: str) -> list[str]:
    """Spell out the zero-directory forms of a `**` glob.

    A leading `**/` and each inner `/**/` may also stand for no directory at all.

    >>> glob_variants("**/generated/**")
    ['**/generated/**', 'generated/**']
    >>> glob_variants("src/**/test_*.py")
    ['src/**/test_*.py', 'src/test_*.py']
    """
    variants = [pattern]
    if pattern.startswith("**/"):
        variants.append(pattern[3:])
    variants.extend(v.replace("/**/", "/") for v in list(variants) if "/**/" in v)
    return list(dict.fromkeys(variants))


def matching_glob(rel: str, globs: Sequence[str]) -> str | None:
    """Return the first glob matching `rel`, or None.

    `*` may cross `/`, and `**/` also matches no directory, so `**/generated/**`
    catches `generated/x.dart` as well as `a/generated/x.dart`. A glob also
    matches when it matches a trailing sub-path, so `__pycache__/*` catches
    nested caches.

    Args:
        rel (str): the relative path to check, with POSIX separators
        globs (Sequence[str]): the glob patterns to try, in order

    Returns:
        str | None: the first matching pattern string, as given
    """
    candidates = trailing_subpaths(rel)
    for pattern in globs:
        if any(fnmatch.fnmatch(c, v) for v in glob_variants(pattern) for c in candidates):
            return pattern
    return None


def pattern_reason(pattern: str) -> str:
    return f"matches ignore pattern '{pattern}'"


def path_ignore_reason(
    rel: str,
    ignore_globs: Sequence[str],
    ignore_files: Sequence[str],
) -> tuple[str, str | None] | None:
    """Decide from the path alone whether a file is ignored.

    Globs are tried first (first match wins), then the explicit file list by
    exact basename.

    Returns:
        tuple[str, str | None] | None: the ignore reason and the matching glob
            (None for the file list), or None when the file must be read
    """
    pattern = matching_glob(rel, ignore_globs)
    if pattern is not None:
        return pattern_reason(pattern), pattern
    if rel.rsplit("/", 1)[-1] in ignore_files:
        return IGNORED_BY_FILE_LIST, None
    return None


def has_extension(name: str, extensions: Sequence[str]) -> bool:
    return any(name.endswith(ext) for ext in extensions)


def nested_output_dir(root: Path, output_dir: Path | None) -> Path | None:
    """Return the resolved `output_dir` when it lies strictly inside `root`, None otherwise."""
    if output_dir is None:
        return None
    out = output_dir.resolve()
    if out != root and out.is_relative_to(root):
        return out
    return None


def walk_candidates(root: Path, extensions: Sequence[str], exclude_dirs: Sequence[Path] = ()) -> Iterator[Path]:
    """Yield files under `root` whose name ends with one of `extensions`.

    The walk is pre-order with directory and file names sorted, so the order
    is stable across runs on an unchanged tree.

    Args:
        root (Path): the directory to walk
        extensions (Sequence[str]): accepted suffixes, with leading dots
        exclude_dirs (Sequence[Path]): resolved directories not to descend into

    Yields:
        Iterator[Path]: matching file paths
    """
    excluded = set(exclude_dirs)
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if (Path(current) / d).resolve() not in excluded)
        for name in sorted(files):
            if not has_extension(name, extensions):
                continue
            p = Path(current) / name
            if is_regular_file(p):
                yield p


def read_record(
    path: Path,
    root: Path,
    *,
    grammar: CommentGrammar,
    ignore_globs: Sequence[str],
    ignore_files: Sequence[str],
) -> FileRecord:
    """Filter a candidate file and read it when it passes the path rules.

    Path rules are checked before any I/O. After reading, a generated-file
    marker also excludes the file. Read and decoding errors become ignored
    records instead of exceptions.

    Args:
        path (Path): absolute path of the candidate
        root (Path): scan root used for the relative path
        grammar (CommentGrammar): grammar deciding the generated markers
        ignore_globs (Sequence[str]): ignore patterns, in priority order
        ignore_files (Sequence[str]): basenames always ignored

    Returns:
        FileRecord: an included record holding the raw content, or an ignored one
    """
    rel = relpath(path, root)
    decision = path_ignore_reason(rel, ignore_globs, ignore_files)
    if decision is not None:
        reason, pattern = decision
        return FileRecord.skipped(path, rel, reason, pattern)

    try:
        content = path.read_text(encoding="utf-8")
        st = path.stat()
    except (OSError, UnicodeDecodeError) as e:
        return FileRecord.skipped(path, rel, f"unreadable: {e}")

    if has_generated_marker(content, grammar):
        return FileRecord.skipped(path, rel, IGNORED_AS_GENERATED)

    return FileRecord(
        path=path,
        rel=rel,
        size=st.st_size,
        mtime=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        content=content,
    )


def strip_record(rec: FileRecord, grammar: CommentGrammar) -> FileRecord:
    """Return `rec` with comments removed from its content."""
    if rec.ignored:
        return rec
    return rec.model_copy(update={"content": remove_comments(rec.content, grammar)})


def iter_file_records(
    root: Path,
    *,
    extensions: Sequence[str],
    grammar: CommentGrammar,
    ignore_globs: Sequence[str] = (),
    ignore_files: Sequence[str] = (),
    strip_comments: bool = True,
    output_dir: Path | None = None,
    output_prefix: str | None = None,
) -> Iterator[FileRecord]:
    """Lazily discover, filter and process every candidate file under `root`.

    Build artifacts never feed back into a bundle: when `output_dir` lies
    strictly inside `root` it is not walked at all, and artifacts named after
    `output_prefix` directly in `output_dir` are ignored.

    Args:
        root (Path): the resolved scan root
        extensions (Sequence[str]): accepted suffixes
        grammar (CommentGrammar): comment grammar of the scanned files
        ignore_globs (Sequence[str]): ignore patterns
        ignore_files (Sequence[str]): basenames to ignore
        strip_comments (bool): remove comments from included files
        output_dir (Path | None): destination of the artifacts
        output_prefix (str | None): artifact name prefix

    Yields:
        Iterator[FileRecord]: one record per candidate, ignored or not
    """
    globs = normalize_globs(ignore_globs)
    out = output_dir.resolve() if output_dir is not None else None
    nested = nested_output_dir(root, out)
    candidates = walk_candidates(root, normalize_extensions(extensions), [nested] if nested else [])
    for path in candidates:
        if output_prefix and path.parent == out and is_output_artifact(path.name, output_prefix):
            rec = FileRecord.skipped(path, relpath(path, root), IGNORED_AS_OUTPUT)
        else:
            rec = read_record(path, root, grammar=grammar, ignore_globs=globs, ignore_files=ignore_files)
        if rec.ignored:
            logger.debug("file_ignored", path=rec.rel, reason=rec.ignore_reason)
        else:
            logger.debug("file_processing", path=rec.rel)
        yield strip_record(rec, grammar) if strip_comments else rec
