from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
from typing import Any

import httpx

from ..errors import SigpubError


class UploadRejected(SigpubError):
    def __init__(self, status_code: int, error: str):
        self.status_code = status_code
        self.error = error
        super().__init__(f"upload rejected ({status_code}): {error}")


def upload_batch(
    api_url: str,
    identifier: str,
    directory: str,
    pairs: list[tuple[Path, Path]],
    *,
    client: httpx.Client | None = None,
    timeout: float = 60.0,
) -> dict[str, Any]:
    """POST a batch of (file, detached signature) pairs to ``/api/upload``.

    Parameters
    ----------
    api_url : str
        Base URL of the service (no trailing slash), e.g. http://localhost:8000
    identifier : str
        Signer identity; also names the alias that will point at the batch.
    directory : str
        Destination directory name under the server's upload root.
    pairs : list of (file path, signature path)
        Order matters: the i-th signature must sign the i-th file.

    Returns the decoded JSON body on success; raises UploadRejected otherwise.
    """
    with ExitStack() as stack:
        parts: list[tuple[str, tuple[str, Any, str]]] = []
        for file_path, sig_path in pairs:
            parts.append(("file[]", (Path(file_path).name, stack.enter_context(open(file_path, "rb")), "application/octet-stream")))
        for file_path, sig_path in pairs:
            parts.append(("signature[]", (Path(sig_path).name, stack.enter_context(open(sig_path, "rb")), "application/octet-stream")))
        data = {"identifier": identifier, "directory": directory}
        url = f"{api_url.rstrip('/')}/api/upload"
        if client is not None:
            r = client.post(url, data=data, files=parts, timeout=timeout)
        else:
            r = httpx.post(url, data=data, files=parts, timeout=timeout)
    try:
        body = r.json()
    except ValueError:
        body = {"error": r.text}
    if r.status_code != 200:
        raise UploadRejected(r.status_code, body.get("error", "unknown error") if isinstance(body, dict) else str(body))
    return body
