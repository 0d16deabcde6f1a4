from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import SignerRegistryError

_KEY_TYPE_PREFIXES = ("ssh-", "ecdsa-", "sk-")


@dataclass(frozen=True)
class SignerEntry:
    principals: tuple[str, ...]
    namespaces: tuple[str, ...] | None  # None means every namespace
    key_type: str
    key_b64: str
    cert_authority: bool = False

    def allows(self, identity: str, namespace: str) -> bool:
        # principals may be glob patterns, e.g. *@example.com
        if not any(fnmatch.fnmatchcase(identity, p) for p in self.principals):
            return False
        return self.namespaces is None or namespace in self.namespaces


def _split_options(line: str) -> tuple[str, str]:
    """Split the leading option list (may contain quoted commas/spaces) from the rest."""
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch.isspace() and not in_quotes:
            return line[:i], line[i:].strip()
    return line, ""


def parse_signer_line(line: str) -> SignerEntry | None:
    """Parse one allowed-signers line.

    Format (OpenSSH allowed_signers subset)::

        principal[,principal...] [option,option...] key-type base64-key [comment]

    Only ``namespaces="a,b"`` and ``cert-authority`` are interpreted; validity
    options are ignored. Returns None for blank and comment lines.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    principals_raw, rest = _split_options(line)
    principals = tuple(p.strip().strip('"') for p in principals_raw.split(",") if p.strip())
    namespaces: tuple[str, ...] | None = None
    cert_authority = False
    fields = rest.split()
    if fields and not fields[0].startswith(_KEY_TYPE_PREFIXES):
        options, rest = _split_options(rest)
        for opt in _split_quoted_commas(options):
            key, _, value = opt.partition("=")
            if key.lower() == "cert-authority":
                cert_authority = True
            elif key.lower() == "namespaces":
                namespaces = tuple(n.strip() for n in value.strip('"').split(",") if n.strip())
        fields = rest.split()
    if len(fields) < 2 or not principals:
        raise ValueError(f"malformed signer line: {line[:60]!r}")
    return SignerEntry(
        principals=principals,
        namespaces=namespaces,
        key_type=fields[0],
        key_b64=fields[1],
        cert_authority=cert_authority,
    )


def _split_quoted_commas(s: str) -> list[str]:
    out: list[str] = []
    buf = ""
    in_quotes = False
    for ch in s:
        if ch == '"':
            in_quotes = not in_quotes
        if ch == "," and not in_quotes:
            out.append(buf)
            buf = ""
            continue
        buf += ch
    if buf:
        out.append(buf)
    return out


@dataclass(frozen=True)
class SignerRegistry:
    """Process-lifetime trust anchor: the path to the allowed signers file.

    The core passes the path through to the verifier untouched; only the
    in-process verifier and the ``check`` command read its entries.
    """

    path: Path

    @classmethod
    def load(cls, path: Path | str | None) -> "SignerRegistry":
        if path is None:
            raise SignerRegistryError("Signers file not configured (set SIGPUB_SIGNERS_FILE)")
        p = Path(path)
        if not p.is_file():
            raise SignerRegistryError(f"Signers file not found: {p}")
        logging.info("Using signers file %s", p)
        return cls(path=p)

    def entries(self) -> list[SignerEntry]:
        out: list[SignerEntry] = []
        for lineno, line in enumerate(self.path.read_text().splitlines(), start=1):
            try:
                entry = parse_signer_line(line)
            except ValueError as e:
                logging.warning("Skipping signers line %d in %s: %s", lineno, self.path, e)
                continue
            if entry is not None:
                out.append(entry)
        return out

    def principals(self) -> list[str]:
        seen: dict[str, None] = {}
        for entry in self.entries():
            for p in entry.principals:
                seen.setdefault(p, None)
        return list(seen)
