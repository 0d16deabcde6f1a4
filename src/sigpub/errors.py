from __future__ import annotations


class SigpubError(Exception):
    """Base class for all sigpub errors."""


class SignerRegistryError(SigpubError):
    """Trust anchor missing or unreadable; the service must not start."""


class VerificationError(SigpubError):
    """A single signature could not be verified (rejected or verifier failed to run)."""


class UploadError(SigpubError):
    """Error raised while handling an upload request.

    ``message`` is safe to return to the client; anything more detailed belongs
    in the log.
    """

    status_code = 500
    message = "Upload failed"

    def __init__(self, message: str | None = None, detail: str | None = None):
        self.message = message or self.message
        self.detail = detail
        super().__init__(detail or self.message)


class InvalidUpload(UploadError):
    status_code = 400
    message = "Invalid upload"


class VerificationFailed(UploadError):
    message = "Error verifying file signature"


class PublishFailed(UploadError):
    message = "Failed to move files"
