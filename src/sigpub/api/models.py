from __future__ import annotations

import re
from pathlib import Path, PurePosixPath, PureWindowsPath

from pydantic import BaseModel, ConfigDict

from ..errors import InvalidUpload

IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_\-@.]+")
DIRECTORY_RE = re.compile(r"[A-Za-z0-9]+", re.IGNORECASE)


class FileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path  # scratch location, owned by the request until moved or cleaned
    original_name: str  # untrusted client filename
    size: int = 0

    @property
    def basename(self) -> str:
        """Final component of the client filename, or "" when it has none.

        Both separators are stripped so ``..\\x`` style names cannot escape.
        """
        name = PureWindowsPath(PurePosixPath(self.original_name).name).name
        return "" if name in (".", "..") else name


class SignatureEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    original_name: str = ""
    size: int = 0


class SignedPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: FileEntry
    signature: SignatureEntry


def pair_entries(files: list[FileEntry], signatures: list[SignatureEntry]) -> list[SignedPair]:
    if len(files) != len(signatures):
        raise InvalidUpload(
            "Mismatch between number of files and signatures",
            detail=f"{len(files)} files, {len(signatures)} signatures",
        )
    return [SignedPair(file=f, signature=s) for f, s in zip(files, signatures)]


class UploadRequest(BaseModel):
    """A validated upload: safe identifier and directory plus index-aligned pairs."""

    identifier: str
    directory: str
    pairs: list[SignedPair]

    @property
    def files(self) -> list[FileEntry]:
        return [p.file for p in self.pairs]

    @property
    def signatures(self) -> list[SignatureEntry]:
        return [p.signature for p in self.pairs]

    @classmethod
    def build(
        cls,
        identifier: str | None,
        directory: str | None,
        files: list[FileEntry] | None,
        signatures: list[SignatureEntry] | None,
        max_files: int = 10,
    ) -> "UploadRequest":
        """Validate raw form input, in the order clients have always seen errors reported."""
        if not files or not signatures:
            raise InvalidUpload("Both files and signatures are required")
        # "." and ".." pass the character class but would alias a parent directory
        if not identifier or not IDENTIFIER_RE.fullmatch(identifier) or identifier in (".", ".."):
            raise InvalidUpload("Invalid identifier", detail=f"identifier={identifier!r}")
        if not directory or not DIRECTORY_RE.fullmatch(directory):
            raise InvalidUpload("Invalid directory", detail=f"directory={directory!r}")
        if len(files) > max_files or len(signatures) > max_files:
            raise InvalidUpload("Too many files", detail=f"limit {max_files}")
        pairs = pair_entries(files, signatures)
        for p in pairs:
            if not p.file.basename:
                raise InvalidUpload("Invalid filename", detail=f"filename={p.file.original_name!r}")
        return cls(identifier=identifier, directory=directory, pairs=pairs)


class PublishResult(BaseModel):
    identifier: str
    destination: Path
    alias: Path
    published: list[str]
