# /inbox_mirror.py
"""
Inbox Mirror
- Keeps a live copy of a source folder ("inbox") in a destination folder ("clone").
- Startup: recursive scan, in-memory index of file mtimes, concurrent bulk copy.
- Then watches the inbox (watchdog) and reconciles every notification against the
  index, one at a time, before copying/deleting the matching clone file.
- Stale notifications (path already gone, directory events) are dropped silently.
- Console output:
  - audit lines [NEW] / [MOD] / [DEL] on stdout, coloured on a TTY
  - warnings on stderr as "WARN: ...", fatal errors as "ERROR: ..."
- Optional plain log file (--log-file) and gitignore-style ignore rules (--ignore).

Usage
  pip install watchdog pathspec colorama
  python inbox_mirror.py
  python inbox_mirror.py -d ./INBOX --clone ./CLONE --ignore "*.swp"
"""

from __future__ import annotations

import argparse
import dataclasses
import datetime as dt
import enum
import errno
import logging
import os
import queue
import shutil
import signal
import stat
import sys
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from colorama import just_fix_windows_console
from pathspec import PathSpec
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

__version__ = "0.1.0"

DEFAULT_INBOX = "INBOX/"
DEFAULT_CLONE_NAME = "CLONE"
DEFAULT_LOG_NAME = "fm.log"
DEFAULT_QUEUE_SIZE = 10
DEFAULT_WORKERS = 8
POLL_INTERVAL_SEC = 0.5

LOGGER = logging.getLogger("inbox_mirror")
AUDIT_LOGGER = logging.getLogger("inbox_mirror.audit")

NativePath = Union[str, bytes, os.PathLike]


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "NEW": Ansi.GREEN,
    "MOD": Ansi.LIGHT_BROWN,
    "DEL": Ansi.ORANGE,
    "COPY": Ansi.GREEN,
    "MKDIR": Ansi.LIGHT_BROWN,
    "DELETE": Ansi.ORANGE,
}

LEVEL_PREFIXES = {
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, prefix_level: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color
        self.prefix_level = prefix_level

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if self.prefix_level:
            prefix = LEVEL_PREFIXES.get(record.levelno, record.levelname)
            base = f"{prefix}: {base}"
        if not self.use_color:
            return base

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        action = getattr(record, "action", None)
        path_text = getattr(record, "path_text", None)

        if action:
            action_color = ACTION_COLORS.get(action, "")
            if action_color and action in base:
                base = base.replace(action, f"{action_color}{action}{Ansi.RESET}", 1)

        if path_text and path_text in base:
            base = base.replace(path_text, f"{Ansi.WHITE}{path_text}{Ansi.RESET}")

        return base


class _BelowLevelFilter(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def setup_logger(log_file: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the ``inbox_mirror`` logger tree.

    Audit and progress lines go to stdout, warnings and errors to stderr with a
    ``WARN:``/``ERROR:`` prefix. Calling it again replaces the previous handlers.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = LOGGER
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if _supports_color(sys.stdout) or _supports_color(sys.stderr):
        just_fix_windows_console()

    out = logging.StreamHandler(sys.stdout)
    out.setLevel(level)
    out.addFilter(_BelowLevelFilter(logging.WARNING))
    out.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt="%(message)s"))

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(
        ColorizingFormatter(use_color=_supports_color(sys.stderr), fmt="%(message)s", prefix_level=True)
    )

    logger.addHandler(out)
    logger.addHandler(err)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(fmt="%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        logger.addHandler(fh)
        logger.debug("Logging to: %s", log_file)

    return logger


def log_action(
    logger: logging.Logger,
    action: str,
    message: str,
    path: Optional[Path] = None,
    level: int = logging.INFO,
) -> None:
    extra = {"action": action}
    if path is not None:
        extra["path_text"] = str(path)
    logger.log(level, f"{action} | {message}", extra=extra)


# -------------------------
# Errors
# -------------------------

class MirrorWatchError(Exception):
    """Base class for everything raised by inbox_mirror."""


class FatalMirrorError(MirrorWatchError):
    """The process can no longer trust its view of the inbox or the clone."""


class MirrorError(MirrorWatchError):
    """A single mirror operation failed; the watcher keeps going."""


class ConfigError(ValueError):
    pass


class ScanError(FatalMirrorError):
    pass


class IndexBuildError(FatalMirrorError):
    pass


class UndecodablePathError(FatalMirrorError):
    pass


class WatchStartError(FatalMirrorError):
    pass


class PathOutsideRootError(FatalMirrorError):
    def __init__(self, path, root: Path):
        super().__init__(f"{path} is not inside the watched root {root}")
        self.path = path
        self.root = root


# -------------------------
# Notifications / changes
# -------------------------

class NotificationKind(enum.Enum):
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"
    OTHER = "other"


class EntryKind(enum.Enum):
    FILE = "file"
    DIR = "dir"
    ANY = "any"


class ChangeAction(enum.Enum):
    ADDED = "NEW"
    MODIFIED = "MOD"
    REMOVED = "DEL"


@dataclass(frozen=True)
class RawNotification:
    kind: NotificationKind
    paths: tuple
    entry: EntryKind = EntryKind.ANY

    def __post_init__(self) -> None:
        if not self.paths:
            raise ValueError("a notification needs at least one path")


@dataclass(frozen=True)
class NormalizedChange:
    path: Path
    action: ChangeAction


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class AppConfig:
    inbox_dir: Path
    clone_dir: Path
    queue_size: int = DEFAULT_QUEUE_SIZE
    workers: int = DEFAULT_WORKERS
    ignore_patterns: tuple = ()
    log_file: Optional[Path] = None
    verbose: bool = False


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {raw}")
    return value


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="inbox-mirror", description="Keep a live mirror of an inbox folder.")
    p.add_argument("-d", "--directory", default=DEFAULT_INBOX, help="Folder to watch (default: INBOX/).")
    p.add_argument("--clone", default=None, help="Mirror folder (default: CLONE/ next to the watched folder).")
    p.add_argument("--queue-size", type=_positive_int, default=DEFAULT_QUEUE_SIZE, help="Pending notification slots.")
    p.add_argument("--workers", type=_positive_int, default=DEFAULT_WORKERS, help="Threads for the initial copy.")
    p.add_argument("--ignore", action="append", default=[], metavar="PATTERN", help="gitignore-style pattern to skip.")
    p.add_argument("--log-file", default=None, help=f"Also log to this file (e.g. {DEFAULT_LOG_NAME}).")
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug traces.")
    return p.parse_args(argv)


def build_effective_config(args: argparse.Namespace) -> AppConfig:
    inbox = Path(args.directory)
    clone = Path(args.clone) if args.clone else inbox.parent / DEFAULT_CLONE_NAME
    return AppConfig(
        inbox_dir=inbox,
        clone_dir=clone,
        queue_size=args.queue_size,
        workers=args.workers,
        ignore_patterns=tuple(args.ignore),
        log_file=Path(args.log_file) if args.log_file else None,
        verbose=args.verbose,
    )


def init_inbox(inbox: Path) -> None:
    if not inbox.exists():
        inbox.mkdir(parents=True)


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


def validate_paths(inbox: Path, clone: Path) -> tuple[Path, Path]:
    inbox = inbox.expanduser().resolve()
    clone = clone.expanduser().resolve()

    if not inbox.is_dir():
        raise ConfigError(f"Inbox does not exist or is not a folder: {inbox}")
    if inbox == clone:
        raise ConfigError("Inbox and clone folders must be different.")
    if _is_subpath(clone, inbox):
        raise ConfigError("Clone folder must NOT be inside the inbox (would cause loops).")
    if _is_subpath(inbox, clone):
        raise ConfigError("Inbox must NOT be inside the clone folder.")

    clone.mkdir(parents=True, exist_ok=True)
    return inbox, clone


# -------------------------
# Ignore + path helpers
# -------------------------

class IgnoreMatcher:
    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = list(patterns)
        self.spec = PathSpec.from_lines("gitwildmatch", self.patterns)

    def is_ignored(self, rel: Path, is_dir: bool = False) -> bool:
        if not self.patterns:
            return False
        rel_posix = rel.as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


def decode_native_path(native: NativePath) -> str:
    text = os.fsdecode(native)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise UndecodablePathError(f"path is not valid unicode: {text!r}") from e
    return text


def relative_to_root(native: NativePath, root: Path) -> Path:
    """
    Rebase a native path onto ``root`` (an absolute, resolved directory).

    The lexical absolute form is tried first, then the canonical one, so that a
    symlinked spelling of the root still maps into the tree.
    """
    text = decode_native_path(native)
    candidate = Path(os.path.abspath(text))
    try:
        return candidate.relative_to(root)
    except ValueError:
        pass
    try:
        return candidate.resolve().relative_to(root)
    except (ValueError, OSError, RuntimeError):
        raise PathOutsideRootError(text, root) from None


def _regular_file_mtime(path: Path) -> Optional[float]:
    """mtime of ``path`` if it is currently a regular file, else None."""
    try:
        st = path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return st.st_mtime


class PathTranslator:
    """Maps inbox paths onto the clone tree: INBOX/a/b.txt -> CLONE/a/b.txt."""

    def __init__(self, inbox_root: Path, mirror_root: Path):
        self.inbox_root = Path(inbox_root)
        self.mirror_root = Path(mirror_root)

    def relative(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        try:
            return path.relative_to(self.inbox_root)
        except ValueError:
            pass
        try:
            return Path(os.path.abspath(path)).relative_to(os.path.abspath(self.inbox_root))
        except ValueError:
            raise PathOutsideRootError(path, self.inbox_root) from None

    def to_mirror(self, path: Union[str, Path]) -> Path:
        return self.mirror_root / self.relative(path)

    def source_of(self, rel: Path) -> Path:
        return self.inbox_root / rel

    def mirror_of(self, rel: Path) -> Path:
        return self.mirror_root / rel


# -------------------------
# Scanning
# -------------------------

def _list_dir(path: Path) -> list[os.DirEntry]:
    with os.scandir(path) as it:
        return list(it)


def find_files(
    root: Path,
    ignore: Optional[IgnoreMatcher] = None,
    logger: logging.Logger = LOGGER,
) -> list[Path]:
    """
    Breadth-first listing of every regular file under ``root``.

    Directories are descended into (symlinked ones are not followed) and never
    returned. A subdirectory that cannot be read is skipped with a warning; the
    root itself not being readable raises ScanError. No files -> empty list.
    """
    root = Path(root).absolute()
    try:
        pending = deque(_list_dir(root))
    except OSError as e:
        raise ScanError(f"Failed to read dir '{root}': {e}") from e

    found: list[Path] = []
    while pending:
        entry = pending.popleft()
        path = Path(entry.path)
        is_dir = entry.is_dir(follow_symlinks=False)

        if ignore is not None and ignore.is_ignored(path.relative_to(root), is_dir=is_dir):
            continue

        if is_dir:
            try:
                pending.extend(_list_dir(path))
            except OSError as e:
                logger.warning("Failed to read dir '%s': %s", path, e)
            continue

        if entry.is_file():
            found.append(path)

    return found


# -------------------------
# File index
# -------------------------

class FileIndex:
    """
    What we currently know about the inbox: relative path -> mtime.

    Owned by a single consumer. ``reconcile`` is not reentrant and must only be
    called from that consumer, one notification at a time.
    """

    def __init__(
        self,
        root: Path,
        ignore: Optional[IgnoreMatcher] = None,
        logger: logging.Logger = AUDIT_LOGGER,
    ):
        self.root = Path(root).resolve()
        self.ignore = ignore
        self.logger = logger
        self._entries: dict[Path, float] = {}

    @classmethod
    def from_scan(
        cls,
        root: Path,
        files: Iterable[Path],
        ignore: Optional[IgnoreMatcher] = None,
        logger: logging.Logger = AUDIT_LOGGER,
    ) -> "FileIndex":
        index = cls(root, ignore=ignore, logger=logger)
        for path in files:
            try:
                mtime = Path(path).stat().st_mtime
            except OSError as e:
                raise IndexBuildError(f"{path} disappeared between scan and stat: {e}") from e
            index._entries[index.relative(path)] = mtime
        return index

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, rel) -> bool:
        return Path(rel) in self._entries

    def get(self, rel, default: Optional[float] = None) -> Optional[float]:
        return self._entries.get(Path(rel), default)

    def items(self):
        return self._entries.items()

    def relative(self, native: NativePath) -> Path:
        return relative_to_root(native, self.root)

    def reconcile(self, notification: RawNotification) -> Optional[NormalizedChange]:
        # Only the first path is acted on; the rest are counted in the audit line.
        rel = self.relative(notification.paths[0])
        src = self.root / rel
        kind = notification.kind
        is_dir_entry = notification.entry is EntryKind.DIR

        if self.ignore is not None and self.ignore.is_ignored(rel, is_dir=is_dir_entry):
            return self._skip(notification, rel, "ignored")

        if kind is NotificationKind.CREATE:
            if is_dir_entry:
                return self._skip(notification, rel, "directory created")
            mtime = _regular_file_mtime(src)
            if mtime is None:
                return self._skip(notification, rel, "no longer a file")
            self._entries[rel] = mtime
            action = ChangeAction.ADDED
        elif kind is NotificationKind.MODIFY:
            mtime = _regular_file_mtime(src)
            if mtime is None:
                return self._skip(notification, rel, "no longer a file")
            self._entries[rel] = mtime
            action = ChangeAction.MODIFIED
        elif kind is NotificationKind.REMOVE:
            if is_dir_entry:
                return self._skip(notification, rel, "directory removed")
            self._entries.pop(rel, None)
            action = ChangeAction.REMOVED
        else:
            return self._skip(notification, rel, "unhandled kind")

        self._audit(action, rel, len(notification.paths))
        return NormalizedChange(rel, action)

    def _skip(self, notification: RawNotification, rel: Path, reason: str) -> None:
        self.logger.debug("skip %s %s (%s)", notification.kind.value, rel.as_posix(), reason)
        return None

    def _audit(self, action: ChangeAction, rel: Path, num_paths: int) -> None:
        count = f"({num_paths}) " if num_paths > 1 else ""
        rel_text = rel.as_posix()
        self.logger.info(
            "[%s] %s%s",
            action.value,
            count,
            rel_text,
            extra={"action": action.value, "path_text": rel_text},
        )

    def snapshot_lines(self) -> list[str]:
        lines = []
        for rel, mtime in sorted(self._entries.items()):
            stamp = dt.datetime.fromtimestamp(mtime).strftime("%Y-%m-%d %H:%M")
            lines.append(f"[{stamp}] {rel.as_posix()}")
        return lines

    def log_snapshot(self) -> None:
        for line in self.snapshot_lines():
            self.logger.info(line)


# -------------------------
# Mirroring
# -------------------------

def _copy_file(src: Path, dst: Path) -> None:
    if dst.is_dir():
        raise IsADirectoryError(errno.EISDIR, "destination is a directory", str(dst))
    shutil.copy2(src, dst)


@dataclass
class SyncReport:
    copied: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class MirrorEngine:
    def __init__(
        self,
        translator: PathTranslator,
        workers: int = DEFAULT_WORKERS,
        logger: logging.Logger = LOGGER,
    ):
        self.translator = translator
        self.workers = workers
        self.logger = logger

    def copy_with_dir(self, src: Path, dst: Path) -> None:
        """
        Copy ``src`` to ``dst``. A missing destination parent is created once
        and the copy retried once; any other failure is fatal. A source that
        vanished before the copy is a MirrorError.
        A directory already sitting at ``dst`` is a failure, never a copy into it.
        """
        try:
            _copy_file(src, dst)
        except FileNotFoundError as e:
            if not src.exists():
                raise MirrorError(f"source vanished before copy: {src}") from e
            self._make_parent(dst)
            try:
                _copy_file(src, dst)
            except OSError as retry_error:
                if not src.exists():
                    raise MirrorError(f"source vanished before copy: {src}") from retry_error
                raise FatalMirrorError(
                    f"path to '{dst}' was constructed but copy still failed: {retry_error}"
                ) from retry_error
        except OSError as e:
            raise FatalMirrorError(f"copy {src} -> {dst} failed: {e}") from e
        log_action(self.logger, "COPY", f"{src} -> {dst}", path=dst, level=logging.DEBUG)

    def _make_parent(self, dst: Path) -> None:
        parent = dst.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FatalMirrorError(f"couldn't create path to {parent}: {e}") from e
        log_action(self.logger, "MKDIR", str(parent), path=parent, level=logging.DEBUG)

    def delete(self, dst: Path) -> None:
        try:
            dst.unlink()
        except FileNotFoundError:
            self.logger.warning("%s was already gone from the clone", dst)
            return
        except OSError as e:
            raise MirrorError(f"failed to delete {dst}: {e}") from e
        log_action(self.logger, "DELETE", str(dst), path=dst, level=logging.DEBUG)

    def apply_change(self, change: NormalizedChange) -> None:
        dst = self.translator.mirror_of(change.path)
        if change.action is ChangeAction.REMOVED:
            self.delete(dst)
            return
        self.copy_with_dir(self.translator.source_of(change.path), dst)

    def _mirror_initial(self, src: Path) -> None:
        self.copy_with_dir(src, self.translator.to_mirror(src))

    def initial_sync(self, paths: Iterable[Path]) -> SyncReport:
        """Copy every scanned file concurrently; failures are collected, not raised."""
        report = SyncReport()
        paths = [Path(p) for p in paths]
        if not paths:
            return report

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {pool.submit(self._mirror_initial, p): p for p in paths}
            for future in as_completed(futures):
                src = futures[future]
                try:
                    future.result()
                except MirrorWatchError as e:
                    report.failed.append((src, e))
                    self.logger.warning("Failed to mirror a file: %s", e)
                else:
                    report.copied.append(src)
        return report


# -------------------------
# Watchdog bridge
# -------------------------

def _entry_kind(event) -> EntryKind:
    return EntryKind.DIR if event.is_directory else EntryKind.FILE


class NotificationBridge(FileSystemEventHandler):
    """
    Runs on the watchdog observer thread and forwards events into the bounded
    queue. A full queue blocks the observer instead of dropping events; the
    wait is only abandoned once ``stop_event`` is set.
    """

    def __init__(
        self,
        notifications: queue.Queue,
        stop_event: threading.Event,
        put_timeout: float = POLL_INTERVAL_SEC,
    ):
        super().__init__()
        self.notifications = notifications
        self.stop_event = stop_event
        self.put_timeout = put_timeout

    def submit(self, notification: RawNotification) -> bool:
        while not self.stop_event.is_set():
            try:
                self.notifications.put(notification, timeout=self.put_timeout)
                return True
            except queue.Full:
                continue
        return False

    def on_created(self, event) -> None:
        self.submit(RawNotification(NotificationKind.CREATE, (event.src_path,), _entry_kind(event)))

    def on_modified(self, event) -> None:
        self.submit(RawNotification(NotificationKind.MODIFY, (event.src_path,), EntryKind.ANY))

    def on_deleted(self, event) -> None:
        self.submit(RawNotification(NotificationKind.REMOVE, (event.src_path,), _entry_kind(event)))

    def on_moved(self, event) -> None:
        entry = _entry_kind(event)
        self.submit(RawNotification(NotificationKind.REMOVE, (event.src_path,), entry))
        self.submit(RawNotification(NotificationKind.CREATE, (event.dest_path,), entry))


def start_watch(config: AppConfig, bridge: NotificationBridge):
    observer = Observer()
    try:
        observer.schedule(bridge, str(config.inbox_dir), recursive=True)
        observer.start()
    except OSError as e:
        raise WatchStartError(f"Couldn't watch directory {config.inbox_dir}: {e}") from e
    return observer


# -------------------------
# Orchestration
# -------------------------

class Orchestrator:
    def __init__(
        self,
        index: FileIndex,
        engine: MirrorEngine,
        notifications: queue.Queue,
        stop_event: Optional[threading.Event] = None,
        poll_interval: float = POLL_INTERVAL_SEC,
        logger: logging.Logger = LOGGER,
    ):
        self.index = index
        self.engine = engine
        self.notifications = notifications
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.poll_interval = poll_interval
        self.logger = logger

    def request_stop(self) -> None:
        self.stop_event.set()

    def process(self, notification: RawNotification) -> Optional[NormalizedChange]:
        change = self.index.reconcile(notification)
        if change is None:
            return None
        try:
            self.engine.apply_change(change)
        except MirrorError as e:
            self.logger.warning("Failed to mirror %s: %s", change.path.as_posix(), e)
        return change

    def run(self) -> None:
        """Consume notifications until stopped, then print the final index."""
        while not self.stop_event.is_set():
            try:
                notification = self.notifications.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                self.process(notification)
            finally:
                self.notifications.task_done()

        self.logger.info("Final index (%d files):", len(self.index))
        self.index.log_snapshot()


# -------------------------
# Main
# -------------------------

def _install_signal_handlers(stop_event: threading.Event) -> dict:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _handler(signum, frame):
        stop_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    cfg = build_effective_config(args)

    try:
        logger = setup_logger(cfg.log_file, verbose=cfg.verbose)
        init_inbox(cfg.inbox_dir)
        inbox, clone = validate_paths(cfg.inbox_dir, cfg.clone_dir)
    except (ConfigError, OSError) as e:
        LOGGER.error("Config error: %s", e)
        return 2

    cfg = dataclasses.replace(cfg, inbox_dir=inbox, clone_dir=clone)
    logger.info("Inbox: %s", inbox)
    logger.info("Clone: %s", clone)

    stop_event = threading.Event()
    notifications: queue.Queue = queue.Queue(maxsize=cfg.queue_size)
    previous_handlers = _install_signal_handlers(stop_event)
    observer = None

    try:
        ignore = IgnoreMatcher(cfg.ignore_patterns)
        files = find_files(inbox, ignore)
        index = FileIndex.from_scan(inbox, files, ignore=ignore)
        index.log_snapshot()

        engine = MirrorEngine(PathTranslator(inbox, clone), workers=cfg.workers)
        report = engine.initial_sync(files)
        logger.info("Initial sync: %d copied, %d failed", len(report.copied), len(report.failed))

        bridge = NotificationBridge(notifications, stop_event)
        observer = start_watch(cfg, bridge)
        logger.info("Watching %s (Ctrl+C to stop)", inbox)

        Orchestrator(index, engine, notifications, stop_event).run()
    except FatalMirrorError as e:
        logger.error("%s", e)
        return 1
    finally:
        stop_event.set()
        if observer is not None:
            observer.stop()
            observer.join(timeout=10)
        _restore_signal_handlers(previous_handlers)

    logger.info("Stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
