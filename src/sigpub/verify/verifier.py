from __future__ import annotations

import base64
import binascii
import io
import logging
import shutil
import struct
import subprocess
from pathlib import Path
from typing import BinaryIO, Protocol

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from ..errors import VerificationError
from ..signers import SignerRegistry

NAMESPACE = "file"
_CHUNK = 65536


class SignatureVerifier(Protocol):
    """Detached-signature verification capability.

    ``verify`` consumes ``message`` to EOF and returns True only when the
    signature at ``signature_path`` was made over those bytes by a key the
    signer registry lists for ``identity`` in the ``file`` namespace. A
    rejection may be reported as False or as a raised VerificationError;
    callers treat both the same way.
    """

    def verify(self, message: BinaryIO, signature_path: Path, identity: str) -> bool:
        ...


class SshKeygenVerifier:
    """Run ``ssh-keygen -Y verify`` with the message streamed on stdin."""

    def __init__(self, registry: SignerRegistry, binary: str = "ssh-keygen", timeout: float | None = 30.0):
        self.registry = registry
        self.binary = binary
        self.timeout = timeout

    def command(self, signature_path: Path, identity: str) -> list[str]:
        return [
            self.binary, "-Y", "verify",
            "-f", str(self.registry.path),
            "-n", NAMESPACE,
            "-s", str(signature_path),
            "-I", identity,
        ]

    def verify(self, message: BinaryIO, signature_path: Path, identity: str) -> bool:
        cmd = self.command(signature_path, identity)
        try:
            message.fileno()
            feed: dict = {"stdin": message}
        except (AttributeError, io.UnsupportedOperation):
            feed = {"input": message.read()}
        try:
            proc = subprocess.run(  # noqa: S603 fixed argv, no shell
                cmd,
                **feed,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise VerificationError(f"verifier binary not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise VerificationError(f"verifier timed out after {self.timeout}s") from e
        except OSError as e:
            raise VerificationError(f"failed to run verifier: {e}") from e
        if proc.returncode != 0:
            stderr = proc.stderr.decode(errors="replace").strip()
            raise VerificationError(f"ssh-keygen exited {proc.returncode}: {stderr}")
        logging.debug("ssh-keygen accepted %s: %s", signature_path.name, proc.stdout.decode(errors="replace").strip())
        return True

    @staticmethod
    def available(binary: str = "ssh-keygen") -> bool:
        return shutil.which(binary) is not None


def decode_ed25519_key(key_type: str, key_b64: str) -> bytes:
    """Return the raw 32 byte public key from an allowed-signers key field.

    Accepts the OpenSSH wire blob (``ssh-ed25519 AAAAC3...``) or a bare
    base64 32 byte key.
    """
    raw = base64.b64decode(key_b64, validate=True)
    if len(raw) == 32:
        return raw
    if key_type != "ssh-ed25519":
        raise ValueError(f"unsupported key type {key_type}")
    # string key-type, string key
    (tlen,) = struct.unpack(">I", raw[:4])
    name = raw[4:4 + tlen]
    if name != b"ssh-ed25519":
        raise ValueError("key blob is not ssh-ed25519")
    off = 4 + tlen
    (klen,) = struct.unpack(">I", raw[off:off + 4])
    key = raw[off + 4:off + 4 + klen]
    if len(key) != 32:
        raise ValueError("bad ed25519 key length")
    return key


def encode_ed25519_key(vk: bytes) -> str:
    """OpenSSH wire encoding of an ed25519 public key, base64."""
    name = b"ssh-ed25519"
    blob = struct.pack(">I", len(name)) + name + struct.pack(">I", len(vk)) + vk
    return base64.b64encode(blob).decode()


def read_detached_signature(path: Path) -> bytes:
    data = path.read_bytes()
    if len(data) == 64:
        return data
    try:
        sig = base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise VerificationError(f"signature {path.name} is neither raw nor base64") from e
    if len(sig) != 64:
        raise VerificationError(f"signature {path.name} has length {len(sig)}, expected 64")
    return sig


class Ed25519Verifier:
    """In-process verifier backed by PyNaCl.

    Signature files hold a 64 byte Ed25519 signature (raw or base64) over the
    message bytes. Keys come from ``ssh-ed25519`` entries in the registry.
    """

    def __init__(self, registry: SignerRegistry):
        self.registry = registry

    def _keys_for(self, identity: str) -> list[VerifyKey]:
        keys: list[VerifyKey] = []
        for entry in self.registry.entries():
            # CA keys sign certificates, not files
            if entry.cert_authority or not entry.allows(identity, NAMESPACE):
                continue
            try:
                keys.append(VerifyKey(decode_ed25519_key(entry.key_type, entry.key_b64)))
            except (ValueError, binascii.Error, struct.error) as e:
                logging.debug("Ignoring unusable key for %s: %s", identity, e)
        return keys

    def verify(self, message: BinaryIO, signature_path: Path, identity: str) -> bool:
        keys = self._keys_for(identity)
        if not keys:
            raise VerificationError(f"no ed25519 key for {identity!r} in namespace {NAMESPACE!r}")
        sig = read_detached_signature(signature_path)
        chunks = []
        while True:
            chunk = message.read(_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)
        payload = b"".join(chunks)
        for vk in keys:
            try:
                vk.verify(payload, sig)
                return True
            except BadSignatureError:
                continue
        return False


def build_verifier(kind: str, registry: SignerRegistry, *, ssh_keygen_bin: str = "ssh-keygen",
                   timeout: float | None = 30.0) -> SignatureVerifier:
    if kind == "ssh-keygen":
        return SshKeygenVerifier(registry, binary=ssh_keygen_bin, timeout=timeout)
    if kind == "ed25519":
        return Ed25519Verifier(registry)
    raise ValueError(f"unknown verifier backend {kind!r}")
