from __future__ import annotations

import logging
import os
import secrets
import shutil
import time
from pathlib import Path

from ..api.models import FileEntry
from ..errors import PublishFailed

STAGING_PREFIX = ".staging-"


def staging_dir_for(upload_root: Path, directory: str) -> Path:
    return upload_root / f"{STAGING_PREFIX}{directory}-{secrets.token_hex(6)}"


def sweep_stale_staging(upload_root: Path, max_age_seconds: float) -> list[Path]:
    """Remove staging directories left behind by interrupted publishes."""
    removed: list[Path] = []
    if not upload_root.exists():
        return removed
    cutoff = time.time() - max_age_seconds
    for p in upload_root.glob(f"{STAGING_PREFIX}*"):
        try:
            if p.is_symlink() or not p.is_dir() or p.stat().st_mtime >= cutoff:
                continue
            shutil.rmtree(p)
            removed.append(p)
            logging.info("Removed stale staging dir %s", p)
        except OSError as e:
            logging.warning("Could not remove stale staging dir %s: %s", p, e)
    return removed


def _move(src: Path, dst: Path) -> None:
    os.replace(src, dst)
    if not dst.exists():
        raise PublishFailed(detail=f"Failed to move file: {src}")


def publish_files(
    files: list[FileEntry],
    upload_root: Path,
    directory: str,
    stale_staging_seconds: float = 3600,
) -> tuple[Path, list[Path]]:
    """Relocate verified uploads into ``upload_root/directory``.

    ``directory`` must already be validated as a single alphanumeric component.
    Files are first renamed into a private staging dir beside the destination;
    if any of those moves fails nothing reaches the destination. When two files
    share a basename the later one wins. The second phase renames within one
    filesystem. If it fails part way, files already placed stay where they are.

    Returns (destination, published paths).
    """
    destination = upload_root / directory
    sweep_stale_staging(upload_root, stale_staging_seconds)
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PublishFailed(detail=f"cannot create {destination}: {e}") from e

    staging = staging_dir_for(upload_root, directory)
    # keyed by basename: a later file with the same name replaces the earlier one
    staged: dict[str, Path] = {}
    try:
        staging.mkdir(parents=True)
        for f in files:
            tmp = staging / f.basename
            if f.basename in staged:
                logging.info("Duplicate name %s in batch, keeping the later file", f.basename)
            _move(f.path, tmp)
            staged[f.basename] = tmp
    except (OSError, PublishFailed) as e:
        shutil.rmtree(staging, ignore_errors=True)
        if isinstance(e, PublishFailed):
            raise
        raise PublishFailed(detail=f"staging into {staging} failed: {e}") from e

    published: list[Path] = []
    try:
        for name, tmp in staged.items():
            target = destination / name
            try:
                _move(tmp, target)
            except OSError as e:
                raise PublishFailed(detail=f"Failed to move file: {tmp.name}: {e}") from e
            published.append(target)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return destination, published
