import base64
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from nacl.signing import SigningKey

from sigpub.api.main import create_app
from sigpub.settings import Settings
from sigpub.verify.verifier import encode_ed25519_key


@dataclass
class Env:
    root: Path
    settings: Settings
    keys: dict

    @property
    def uploads(self) -> Path:
        return self.settings.upload_path

    @property
    def scratch(self) -> Path:
        return self.settings.upload_temp

    def sign(self, who: str, data: bytes) -> bytes:
        return base64.b64encode(self.keys[who].sign(data).signature)


@pytest.fixture
def env(tmp_path):
    srv = tmp_path / "srv"
    keys = {"alice@example.com": SigningKey.generate(), "bob": SigningKey.generate()}
    signers = tmp_path / "allowed_signers"
    lines = ["# test signers"]
    for who, sk in keys.items():
        lines.append(f'{who} namespaces="file" ssh-ed25519 {encode_ed25519_key(bytes(sk.verify_key))}')
    signers.write_text("\n".join(lines) + "\n")
    settings = Settings(
        signers_file=signers,
        upload_temp=srv / "tmp",
        upload_path=srv / "uploads",
        verifier="ed25519",
    )
    return Env(root=srv, settings=settings, keys=keys)


@pytest.fixture
def client(env):
    return TestClient(create_app(env.settings))


def upload(client, identifier, directory, pairs, extra_sigs=()):
    """pairs: list of (filename, content, signature bytes)."""
    files = [("file[]", (name, content, "application/octet-stream")) for name, content, _ in pairs]
    files += [("signature[]", (f"{name}.sig", sig, "application/octet-stream")) for name, _, sig in pairs]
    files += [("signature[]", (f"extra{i}.sig", s, "application/octet-stream")) for i, s in enumerate(extra_sigs)]
    data = {}
    if identifier is not None:
        data["identifier"] = identifier
    if directory is not None:
        data["directory"] = directory
    return client.post("/api/upload", data=data, files=files)


@pytest.fixture
def post_batch(client):
    def _post(identifier, directory, pairs, extra_sigs=()):
        return upload(client, identifier, directory, pairs, extra_sigs)
    return _post
