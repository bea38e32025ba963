from typing import Optional

from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_encode

from app.features.embed_sessions.exceptions import UnsupportedAlgorithm
from app.features.embed_sessions.utils.token_codec import ALGORITHM

_hs256 = HMACAlgorithm(HMACAlgorithm.SHA256)


def _check_algorithm(algorithm: Optional[str]) -> None:
    if algorithm != ALGORITHM:
        raise UnsupportedAlgorithm(f"Unsupported token algorithm: {algorithm!r}")


def sign(signing_input: str, secret: bytes) -> str:
    """HMAC-SHA256 over the signing input, base64url encoded for the third segment."""
    key = _hs256.prepare_key(secret)
    signature = _hs256.sign(signing_input.encode("ascii"), key)
    return base64url_encode(signature).decode("ascii")


def verify(signing_input: str, signature: bytes, secret: bytes, algorithm: Optional[str] = ALGORITHM) -> bool:
    """
    Recompute the signature and compare it in constant time.

    HMACAlgorithm.verify uses hmac.compare_digest, which also returns False on a
    length mismatch without leaking where the bytes first differ.
    """
    _check_algorithm(algorithm)
    key = _hs256.prepare_key(secret)
    return _hs256.verify(signing_input.encode("ascii"), key, signature)
