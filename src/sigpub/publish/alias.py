from __future__ import annotations

import logging
import os
import secrets
import shutil
from pathlib import Path

from ..errors import PublishFailed


def alias_path_for(identifier: str, upload_root: Path) -> Path:
    return upload_root.resolve().parent / identifier


def publish_alias(
    identifier: str,
    destination: Path,
    upload_root: Path,
    protected: tuple[Path, ...] = (),
) -> Path:
    """Point ``<parent of upload_root>/<identifier>`` at ``destination``.

    A temporary link is renamed over the alias so readers see either the old
    or the new target. A real directory in the way is removed first, which
    leaves a short window without an alias. Concurrent publishers for one
    identifier: last rename wins.

    The alias may not be, or contain, the upload root or any ``protected``
    path (scratch dir, signers file).
    """
    alias = alias_path_for(identifier, upload_root)
    for p in (upload_root, *protected):
        # check the link itself as well as what it points to
        for q in {p.resolve(), p.absolute().parent.resolve() / p.name}:
            if alias == q or alias in q.parents:
                raise PublishFailed("Failed to publish alias", detail=f"alias {alias} would replace {q}")
    target = destination.resolve()

    if alias.is_dir() and not alias.is_symlink():
        logging.warning("Removing directory %s to make room for alias", alias)
        try:
            shutil.rmtree(alias)
        except OSError as e:
            raise PublishFailed("Failed to publish alias", detail=f"cannot remove {alias}: {e}") from e

    tmp_link = alias.with_name(f".{alias.name}.{secrets.token_hex(4)}.tmp")
    try:
        os.symlink(target, tmp_link)
        os.replace(tmp_link, alias)
    except OSError as e:
        try:
            tmp_link.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logging.warning("Could not remove temporary link %s", tmp_link, exc_info=True)
        raise PublishFailed("Failed to publish alias", detail=f"cannot link {alias} -> {target}: {e}") from e
    logging.info("Alias %s -> %s", alias, target)
    return alias
