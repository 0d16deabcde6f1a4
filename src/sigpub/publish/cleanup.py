from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from ..api.models import FileEntry, SignatureEntry


def cleanup(
    files: Iterable[FileEntry] | None,
    signatures: Iterable[SignatureEntry] | None,
) -> list[Path]:
    """Remove whatever scratch uploads are still on disk. Never raises.

    Files already moved into a destination are simply gone from their scratch
    path and are skipped. Returns the paths actually removed.
    """
    removed: list[Path] = []
    for group in (files, signatures):
        for entry in group or ():
            try:
                entry.path.unlink()
                removed.append(entry.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logging.warning("Failed to remove temp upload %s: %s", entry.path, e)
    return removed
