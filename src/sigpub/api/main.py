from __future__ import annotations

import logging
import secrets
import shutil
from pathlib import Path

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from ..errors import UploadError
from ..pipeline import UploadPipeline
from ..publish.cleanup import cleanup
from ..settings import Settings, get_settings
from ..signers import SignerRegistry
from ..verify.verifier import SignatureVerifier, build_verifier
from .models import FileEntry, SignatureEntry


def _spool(upload: UploadFile, scratch: Path) -> tuple[Path, int]:
    """Copy one multipart part into the scratch dir under a random name."""
    dest = scratch / secrets.token_hex(16)
    with dest.open("xb") as out:
        shutil.copyfileobj(upload.file, out)
        size = out.tell()
    return dest, size


def _receive(
    files: list[UploadFile] | None,
    signatures: list[UploadFile] | None,
    scratch: Path,
) -> tuple[list[FileEntry] | None, list[SignatureEntry] | None]:
    file_entries: list[FileEntry] = []
    sig_entries: list[SignatureEntry] = []
    try:
        for up in files or ():
            path, size = _spool(up, scratch)
            file_entries.append(FileEntry(path=path, original_name=up.filename or "", size=size))
        for up in signatures or ():
            path, size = _spool(up, scratch)
            sig_entries.append(SignatureEntry(path=path, original_name=up.filename or "", size=size))
    except OSError:
        cleanup(file_entries, sig_entries)
        raise
    return file_entries or None, sig_entries or None


def create_app(settings: Settings | None = None, verifier: SignatureVerifier | None = None) -> FastAPI:
    """Build the upload service.

    Raises SignerRegistryError when the signers file is missing; callers that
    run the process treat that as fatal.
    """
    settings = settings or get_settings()
    registry = SignerRegistry.load(settings.signers_file)
    settings.ensure_dirs()
    if verifier is None:
        verifier = build_verifier(
            settings.verifier,
            registry,
            ssh_keygen_bin=settings.ssh_keygen_bin,
            timeout=settings.verify_timeout_seconds,
        )
    pipeline = UploadPipeline(settings, registry, verifier)

    app = FastAPI(title="sigpub signed upload service")
    app.state.settings = settings
    app.state.pipeline = pipeline

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/health")
    @app.get("/healthz")  # alias for k8s style probes
    def health():
        return {"ok": True}

    @app.post("/api/upload")
    def upload(
        files: list[UploadFile] | None = File(None, alias="file[]"),  # noqa: B008 FastAPI dependency pattern
        signatures: list[UploadFile] | None = File(None, alias="signature[]"),  # noqa: B008
        identifier: str | None = Form(None),  # noqa: B008
        directory: str | None = Form(None),  # noqa: B008
    ):
        try:
            file_entries, sig_entries = _receive(files, signatures, settings.upload_temp)
        except OSError:
            logging.exception("Failed to spool upload into %s", settings.upload_temp)
            return JSONResponse(status_code=500, content={"error": "Failed to receive upload"})
        pipeline.run(identifier, directory, file_entries, sig_entries)
        return {"status": "OK"}

    logging.info(
        "sigpub ready: uploads=%s aliases=%s scratch=%s verifier=%s",
        settings.upload_path, settings.alias_root, settings.upload_temp, settings.verifier,
    )
    return app
