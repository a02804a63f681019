import os
import sys
from pathlib import Path

import pytest

import inbox_mirror
from conftest import write
from inbox_mirror import ChangeAction, EntryKind, NotificationKind, RawNotification

CREATE = NotificationKind.CREATE
MODIFY = NotificationKind.MODIFY
REMOVE = NotificationKind.REMOVE


def note(kind, *paths, entry=EntryKind.FILE):
    return RawNotification(kind, tuple(str(p) for p in paths), entry)


@pytest.fixture
def index(inbox):
    return inbox_mirror.FileIndex(inbox)


def test_from_scan_records_real_mtimes(inbox):
    x = write(inbox / "x.txt", b"hello")
    os.utime(x, (1_600_000_000, 1_600_000_000))

    index = inbox_mirror.FileIndex.from_scan(inbox, inbox_mirror.find_files(inbox))

    assert len(index) == 1
    assert index.get("x.txt") == x.stat().st_mtime == 1_600_000_000


def test_from_scan_fails_when_a_file_vanished(inbox):
    with pytest.raises(inbox_mirror.IndexBuildError):
        inbox_mirror.FileIndex.from_scan(inbox, [inbox / "gone.txt"])


def test_create_file_is_added(index, inbox):
    y = write(inbox / "new" / "y.txt")

    change = index.reconcile(note(CREATE, y))

    assert change == inbox_mirror.NormalizedChange(Path("new/y.txt"), ChangeAction.ADDED)
    assert index.get("new/y.txt") == y.stat().st_mtime


def test_create_directory_is_ignored(index, inbox):
    (inbox / "sub").mkdir()
    assert index.reconcile(note(CREATE, inbox / "sub", entry=EntryKind.DIR)) is None
    assert len(index) == 0


def test_create_for_vanished_path_changes_nothing(index, inbox):
    assert index.reconcile(note(CREATE, inbox / "already-deleted.txt")) is None
    assert len(index) == 0


def test_modify_tracks_mtime_of_last_processed_notification(index, inbox):
    f = write(inbox / "f.txt")
    os.utime(f, (1_000, 1_000))
    index.reconcile(note(CREATE, f))

    for stamp in (2_000, 3_000, 4_000):
        os.utime(f, (stamp, stamp))
        change = index.reconcile(note(MODIFY, f, entry=EntryKind.ANY))
        assert change.action is ChangeAction.MODIFIED

    assert index.get("f.txt") == f.stat().st_mtime == 4_000


def test_modify_of_directory_or_vanished_path_is_ignored(index, inbox):
    (inbox / "d").mkdir()
    assert index.reconcile(note(MODIFY, inbox / "d", entry=EntryKind.ANY)) is None
    assert index.reconcile(note(MODIFY, inbox / "missing.txt", entry=EntryKind.ANY)) is None
    assert len(index) == 0


def test_remove_drops_entry(index, inbox):
    f = write(inbox / "x.txt")
    index.reconcile(note(CREATE, f))
    f.unlink()

    change = index.reconcile(note(REMOVE, f))

    assert change.action is ChangeAction.REMOVED
    assert "x.txt" not in index


def test_remove_of_unknown_path_is_idempotent(index, inbox):
    write(inbox / "other.txt")
    index.reconcile(note(CREATE, inbox / "other.txt"))
    before = dict(index.items())

    change = index.reconcile(note(REMOVE, inbox / "never-seen.txt"))

    assert change.action is ChangeAction.REMOVED
    assert dict(index.items()) == before


def test_remove_of_directory_is_ignored(index, inbox):
    assert index.reconcile(note(REMOVE, inbox / "old-dir", entry=EntryKind.DIR)) is None


def test_other_kinds_are_ignored(index, inbox):
    f = write(inbox / "x.txt")
    assert index.reconcile(note(NotificationKind.OTHER, f, entry=EntryKind.ANY)) is None
    assert len(index) == 0


def test_path_outside_root_is_fatal(index, tmp_path):
    stray = write(tmp_path / "elsewhere" / "x.txt")
    with pytest.raises(inbox_mirror.PathOutsideRootError) as info:
        index.reconcile(note(CREATE, stray))
    assert isinstance(info.value, inbox_mirror.FatalMirrorError)


def test_root_name_repeated_deeper_in_path_still_maps_correctly(index, inbox):
    f = write(inbox / "INBOX" / "x.txt")
    change = index.reconcile(note(CREATE, f))
    assert change.path == Path("INBOX/x.txt")


def test_bytes_paths_are_decoded(index, inbox):
    f = write(inbox / "b.txt")
    change = index.reconcile(RawNotification(CREATE, (os.fsencode(str(f)),), EntryKind.FILE))
    assert change.path == Path("b.txt")


@pytest.mark.skipif(sys.platform == "win32", reason="bytes filenames are POSIX-only")
def test_undecodable_path_is_fatal(index, inbox):
    raw = os.fsencode(str(inbox)) + b"/bad-\xff.txt"
    with pytest.raises(inbox_mirror.UndecodablePathError):
        index.reconcile(RawNotification(CREATE, (raw,), EntryKind.FILE))


def test_only_first_path_is_acted_on_and_count_is_audited(index, inbox, mirror_logs):
    a = write(inbox / "a.txt")
    b = write(inbox / "b.txt")

    change = index.reconcile(note(CREATE, a, b))

    assert change.path == Path("a.txt")
    assert "b.txt" not in index
    assert "[NEW] (2) a.txt" in mirror_logs.messages


def test_audit_lines(index, inbox, mirror_logs):
    f = write(inbox / "a" / "b.txt")
    index.reconcile(note(CREATE, f))
    index.reconcile(note(MODIFY, f, entry=EntryKind.ANY))
    index.reconcile(note(REMOVE, f))

    assert ["[NEW] a/b.txt", "[MOD] a/b.txt", "[DEL] a/b.txt"] == [
        m for m in mirror_logs.messages if m.startswith("[")
    ]


def test_ignored_paths_never_enter_the_index(inbox):
    index = inbox_mirror.FileIndex(inbox, ignore=inbox_mirror.IgnoreMatcher(["*.swp"]))
    swap = write(inbox / ".x.txt.swp")
    assert index.reconcile(note(CREATE, swap)) is None
    assert len(index) == 0


def test_snapshot_lines_are_sorted_and_stamped(index, inbox):
    for name in ("b.txt", "a.txt"):
        f = write(inbox / name)
        index.reconcile(note(CREATE, f))

    lines = index.snapshot_lines()

    assert [line.split("] ", 1)[1] for line in lines] == ["a.txt", "b.txt"]
    assert all(line.startswith("[") and len(line.split("] ", 1)[0]) == len("[2024-01-01 00:00") for line in lines)


def test_notification_needs_a_path():
    with pytest.raises(ValueError):
        RawNotification(CREATE, ())
