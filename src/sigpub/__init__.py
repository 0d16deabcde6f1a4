"""sigpub: accept signed file batches over HTTP, verify, publish, re-point an alias.

Verification is delegated to a pluggable capability (``ssh-keygen -Y verify``
by default) so the pipeline itself never parses keys or signatures.
"""
from .pipeline import UploadPipeline  # noqa: F401
from .signers import SignerRegistry  # noqa: F401
