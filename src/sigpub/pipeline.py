from __future__ import annotations

import logging
from pathlib import Path

from .api.models import FileEntry, PublishResult, SignatureEntry, UploadRequest
from .errors import PublishFailed, UploadError, VerificationError, VerificationFailed
from .publish.alias import publish_alias
from .publish.cleanup import cleanup
from .publish.staging import publish_files
from .settings import Settings
from .signers import SignerRegistry
from .verify.batch import verify_batch
from .verify.verifier import SignatureVerifier


class UploadPipeline:
    """validate -> verify every pair -> publish files -> re-point alias.

    Scratch uploads are removed on every exit path, success included.
    """

    def __init__(self, settings: Settings, registry: SignerRegistry, verifier: SignatureVerifier):
        self.settings = settings
        self.registry = registry
        self.verifier = verifier

    def run(
        self,
        identifier: str | None,
        directory: str | None,
        files: list[FileEntry] | None,
        signatures: list[SignatureEntry] | None,
    ) -> PublishResult:
        try:
            req = UploadRequest.build(identifier, directory, files, signatures, max_files=self.settings.max_files)
            return self._process(req)
        except UploadError as e:
            logging.warning("Upload rejected (%s): %s", e.status_code, e)
            raise
        finally:
            cleanup(files, signatures)

    def _process(self, req: UploadRequest) -> PublishResult:
        try:
            verify_batch(req.pairs, req.identifier, self.verifier, max_workers=self.settings.max_files)
        except VerificationError as e:
            raise VerificationFailed(detail=str(e)) from e

        upload_root = self.settings.upload_path
        try:
            destination, published = publish_files(
                req.files,
                upload_root,
                req.directory,
                stale_staging_seconds=self.settings.stale_staging_seconds,
            )
        except OSError as e:
            raise PublishFailed(detail=str(e)) from e

        protected: tuple[Path, ...] = (self.settings.upload_temp, self.registry.path)
        alias = publish_alias(req.identifier, destination, upload_root, protected=protected)
        logging.info(
            "Published %d file(s) for %s into %s",
            len(published), req.identifier, destination,
        )
        return PublishResult(
            identifier=req.identifier,
            destination=destination,
            alias=alias,
            published=[p.name for p in published],
        )
