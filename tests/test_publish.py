import os
import time

import pytest

from sigpub.api.models import FileEntry, SignatureEntry
from sigpub.errors import PublishFailed
from sigpub.publish.alias import alias_path_for, publish_alias
from sigpub.publish.cleanup import cleanup
from sigpub.publish.staging import STAGING_PREFIX, publish_files, sweep_stale_staging


@pytest.fixture
def layout(tmp_path):
    uploads = tmp_path / "srv" / "uploads"
    scratch = tmp_path / "srv" / "tmp"
    uploads.mkdir(parents=True)
    scratch.mkdir(parents=True)
    return uploads, scratch


def _entry(scratch, name, data=b"data"):
    p = scratch / f"tmp-{name}"
    p.write_bytes(data)
    return FileEntry(path=p, original_name=name, size=len(data))


def test_publish_moves_files(layout):
    uploads, scratch = layout
    files = [_entry(scratch, "a.txt", b"A"), _entry(scratch, "b.txt", b"B")]
    dest, published = publish_files(files, uploads, "rel1")
    assert dest == uploads / "rel1"
    assert [p.name for p in published] == ["a.txt", "b.txt"]
    assert (dest / "a.txt").read_bytes() == b"A"
    assert list(scratch.iterdir()) == []
    # staging dir is gone
    assert not list(uploads.glob(f"{STAGING_PREFIX}*"))


def test_publish_reuses_existing_directory(layout):
    uploads, scratch = layout
    (uploads / "rel1").mkdir()
    (uploads / "rel1" / "keep.txt").write_text("old")
    publish_files([_entry(scratch, "new.txt")], uploads, "rel1")
    assert sorted(p.name for p in (uploads / "rel1").iterdir()) == ["keep.txt", "new.txt"]


def test_staging_failure_leaves_destination_untouched(layout):
    uploads, scratch = layout
    good = _entry(scratch, "a.txt")
    missing = FileEntry(path=scratch / "vanished", original_name="b.txt")
    with pytest.raises(PublishFailed) as ei:
        publish_files([good, missing], uploads, "rel2")
    assert ei.value.message == "Failed to move files"
    assert list((uploads / "rel2").iterdir()) == []
    assert not list(uploads.glob(f"{STAGING_PREFIX}*"))


def test_stale_staging_swept(layout):
    uploads, _ = layout
    old = uploads / f"{STAGING_PREFIX}x-dead"
    old.mkdir()
    (old / "f").write_text("x")
    past = time.time() - 7200
    os.utime(old, (past, past))
    fresh = uploads / f"{STAGING_PREFIX}y-live"
    fresh.mkdir()
    removed = sweep_stale_staging(uploads, 3600)
    assert removed == [old]
    assert fresh.exists()


def test_alias_created_and_replaced(layout):
    uploads, _ = layout
    (uploads / "one").mkdir()
    (uploads / "two").mkdir()
    alias = publish_alias("alice@example.com", uploads / "one", uploads)
    assert alias == alias_path_for("alice@example.com", uploads)
    assert alias.resolve() == (uploads / "one").resolve()
    publish_alias("alice@example.com", uploads / "two", uploads)
    assert alias.is_symlink()
    assert alias.resolve() == (uploads / "two").resolve()
    # no temporary links left around
    assert [p.name for p in alias.parent.iterdir() if p.name.endswith(".tmp")] == []


def test_alias_replaces_plain_file_and_directory(layout):
    uploads, _ = layout
    (uploads / "one").mkdir()
    parent = uploads.parent
    (parent / "carol").write_text("stray")
    publish_alias("carol", uploads / "one", uploads)
    assert (parent / "carol").is_symlink()

    (parent / "dave").mkdir()
    (parent / "dave" / "x").write_text("x")
    publish_alias("dave", uploads / "one", uploads)
    assert (parent / "dave").is_symlink()


def test_alias_refuses_upload_root_and_protected(layout):
    uploads, scratch = layout
    (uploads / "one").mkdir()
    with pytest.raises(PublishFailed):
        publish_alias("uploads", uploads / "one", uploads)
    with pytest.raises(PublishFailed):
        publish_alias("tmp", uploads / "one", uploads, protected=(scratch,))
    assert uploads.is_dir() and scratch.is_dir()


def test_cleanup_is_idempotent_and_tolerant(layout, tmp_path):
    _, scratch = layout
    f = _entry(scratch, "a.txt")
    s = SignatureEntry(path=scratch / "sig")
    s.path.write_bytes(b"sig")
    gone = FileEntry(path=scratch / "never-existed", original_name="x")
    removed = cleanup([f, gone], [s])
    assert set(removed) == {f.path, s.path}
    assert cleanup([f, gone], [s]) == []
    assert cleanup(None, None) == []


def test_cleanup_continues_after_failure(layout, tmp_path):
    _, scratch = layout
    blocker = scratch / "adir"
    blocker.mkdir()  # unlink() on a directory fails
    s = SignatureEntry(path=scratch / "sig")
    s.path.write_bytes(b"sig")
    removed = cleanup([FileEntry(path=blocker, original_name="a")], [s])
    assert removed == [s.path]
    assert blocker.exists()


def test_duplicate_basenames_later_file_wins(layout):
    uploads, scratch = layout
    first = _entry(scratch, "a.txt", b"first")
    second = FileEntry(path=scratch / "tmp-second", original_name="sub/a.txt", size=6)
    second.path.write_bytes(b"second")
    dest, published = publish_files([first, second, _entry(scratch, "b.txt", b"B")], uploads, "dup")
    assert [p.name for p in published] == ["a.txt", "b.txt"]
    assert (dest / "a.txt").read_bytes() == b"second"
    assert sorted(p.name for p in dest.iterdir()) == ["a.txt", "b.txt"]
    assert list(scratch.iterdir()) == []
    assert not list(uploads.glob(f"{STAGING_PREFIX}*"))
