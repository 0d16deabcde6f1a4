from .batch import verify_batch  # noqa: F401
from .verifier import Ed25519Verifier, SignatureVerifier, SshKeygenVerifier, build_verifier  # noqa: F401
