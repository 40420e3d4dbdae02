from __future__ import annotations

import threading
from enum import StrEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from watchfiles import watch as watch_changes

from codebundle.file_manipulation import has_extension, nested_output_dir
from codebundle.logging import logger
from codebundle.output_construction import is_output_artifact
from codebundle.pipeline import build, source_root

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from codebundle.config import BuildStats
    from codebundle.settings import Settings

DEFAULT_DEBOUNCE_SECONDS = 0.5


class Cancellable(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


class RebuildState(StrEnum):
    IDLE = auto()
    DEBOUNCING = auto()
    RUNNING = auto()


class RebuildScheduler:
    """Coalesce change events into serialized rebuilds.

    Change events (re)arm a debounce timer. When it fires, a build starts
    unless one is already running, in which case the trigger is dropped; the
    next change after that schedules a fresh build. A build in progress is
    never interrupted.
    """

    def __init__(
        self,
        run_build: Callable[[], Any],
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], Cancellable] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._run_build = run_build
        self._debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory or threading.Timer
        self._on_error = on_error
        self._lock = threading.Lock()
        self._state = RebuildState.IDLE
        self._timer: Cancellable | None = None
        self._generation = 0

    @property
    def state(self) -> RebuildState:
        return self._state

    def notify_change(self, paths: Iterable[str] = ()) -> None:
        """Record a change event and (re)arm the debounce timer."""
        changed = sorted(paths)
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(self._debounce_seconds, lambda: self._on_timer(generation))
            self._timer = timer
            if self._state is RebuildState.IDLE:
                self._state = RebuildState.DEBOUNCING
            state = self._state
        logger.debug("change_detected", paths=changed, state=state.value)
        timer.start()

    def trigger(self) -> bool:
        """Start a build now unless one is running.

        Returns:
            bool: True if a build ran, False if the trigger was dropped
        """
        with self._lock:
            if self._state is RebuildState.RUNNING:
                logger.debug("build_in_progress_trigger_dropped")
                return False
            self._state = RebuildState.RUNNING
        try:
            self._run_build()
        except Exception as e:
            logger.exception("build_failed")
            if self._on_error is not None:
                self._on_error(e)
        finally:
            with self._lock:
                self._state = RebuildState.DEBOUNCING if self._timer is not None else RebuildState.IDLE
        return True

    def stop(self) -> None:
        """Cancel any pending debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            if self._state is RebuildState.DEBOUNCING:
                self._state = RebuildState.IDLE

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # A newer event re-armed the timer after this one fired.
            if generation != self._generation:
                return
            self._timer = None
        self.trigger()


def relevant_changes(
    changes: Iterable[tuple[Any, str]],
    *,
    root: Path,
    output_dir: Path,
    extensions: Sequence[str],
    prefix: str,
    extra_root_files: Sequence[str] = (),
) -> set[str]:
    """Keep the changed source files, dropping what a build writes itself.

    A build deletes and writes its artifacts and copies the extra root files;
    none of that may schedule another build.

    Args:
        changes (Iterable[tuple[Any, str]]): `(change, path)` pairs from the watcher
        root (Path): resolved source root
        output_dir (Path): resolved destination of the artifacts
        extensions (Sequence[str]): suffixes of the watched files
        prefix (str): artifact name prefix
        extra_root_files (Sequence[str]): names copied into `output_dir` by a build

    Returns:
        set[str]: paths that should trigger a rebuild
    """
    nested = nested_output_dir(root, output_dir)
    copies = {output_dir / name for name in extra_root_files}
    kept: set[str] = set()
    for _, raw in changes:
        path = Path(raw)
        if not has_extension(path.name, extensions):
            continue
        if path.parent == output_dir and is_output_artifact(path.name, prefix):
            continue
        if path in copies or (nested is not None and path.is_relative_to(nested)):
            continue
        kept.add(raw)
    return kept


def watch(
    settings: Settings,
    working_dir: Path,
    output_dir: Path | None = None,
    *,
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    stop_event: threading.Event | None = None,
    on_build: Callable[[BuildStats], None] | None = None,
) -> None:
    """Build once, then rebuild whenever matching source files change.

    Args:
        settings (Settings): run configuration
        working_dir (Path): project directory
        output_dir (Path | None): destination, defaults to `working_dir`
        debounce_seconds (float): quiet period before a rebuild
        stop_event (threading.Event | None): set it to stop watching
        on_build (Callable[[BuildStats], None] | None): called after each successful build

    Raises:
        SourceDirectoryNotFoundError: if the source directory does not exist
    """
    root = source_root(settings, working_dir)
    out = (output_dir or working_dir).resolve()
    extensions = settings.effective_extensions(working_dir)

    def run() -> None:
        stats = build(settings, working_dir, output_dir)
        if on_build is not None:
            on_build(stats)

    scheduler = RebuildScheduler(run, debounce_seconds=debounce_seconds)
    logger.info("watch_started", source=str(root))
    scheduler.trigger()
    try:
        for changes in watch_changes(root, stop_event=stop_event):
            paths = relevant_changes(
                changes,
                root=root,
                output_dir=out,
                extensions=extensions,
                prefix=settings.output_prefix,
                extra_root_files=settings.extra_root_files,
            )
            if paths:
                scheduler.notify_change(paths)
    finally:
        scheduler.stop()
        logger.info("watch_stopped", source=str(root))
