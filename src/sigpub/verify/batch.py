from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from ..api.models import SignedPair
from ..errors import VerificationError
from .verifier import SignatureVerifier

DEFAULT_MAX_WORKERS = 10


def _verify_pair(verifier: SignatureVerifier, pair: SignedPair, identity: str) -> bool:
    with pair.file.path.open("rb") as fh:
        return verifier.verify(fh, pair.signature.path, identity)


def verify_batch(
    pairs: list[SignedPair],
    identity: str,
    verifier: SignatureVerifier,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> None:
    """Verify every pair concurrently; raise VerificationError on the first failure seen.

    In-flight siblings are not cancelled when one fails; the pool is released
    without waiting and their results are dropped.
    """
    if not pairs:
        raise VerificationError("empty batch")
    pool = ThreadPoolExecutor(
        max_workers=max(1, min(len(pairs), max_workers)),
        thread_name_prefix="sigpub-verify",
    )
    futures: dict[Future, SignedPair] = {
        pool.submit(_verify_pair, verifier, pair, identity): pair for pair in pairs
    }
    try:
        for fut in as_completed(futures):
            pair = futures[fut]
            name = pair.file.original_name
            try:
                ok = fut.result()
            except VerificationError as e:
                raise VerificationError(f"{name}: {e}") from e
            except OSError as e:
                raise VerificationError(f"{name}: cannot read upload: {e}") from e
            if not ok:
                raise VerificationError(f"{name}: signature rejected for {identity}")
            logging.debug("Signature OK for %s (%s)", name, identity)
    finally:
        pool.shutdown(wait=False)
