"""
Structural encode/decode of compact embed session tokens.

A token is ``base64url(header).base64url(payload).base64url(signature)``.
Nothing here decides whether a token can be trusted; that is the job of the
signature engine and the session manager.

``split`` parses only the header and leaves the payload as raw bytes, so a
caller can verify the signature before any claim is parsed. ``decode`` does
both steps at once for callers that do not verify.
"""

import binascii
import json
import re
from typing import Any, Dict, NamedTuple

from jwt.utils import base64url_decode, base64url_encode

from app.features.embed_sessions.exceptions import MalformedToken

ALGORITHM = "HS256"
TOKEN_TYPE = "JWT"
HEADER = {"alg": ALGORITHM, "typ": TOKEN_TYPE}

# Issued tokens are a few hundred characters; anything far larger is rejected unparsed
MAX_TOKEN_LENGTH = 8192

# Unpadded base64url alphabet only; the decoder would otherwise skip stray characters
_SEGMENT = re.compile(r"[A-Za-z0-9_-]+")


class EncodedToken(NamedTuple):
    header_segment: str
    payload_segment: str
    signing_input: str


class SplitToken(NamedTuple):
    header: Dict[str, Any]
    payload_bytes: bytes
    signing_input: str
    signature: bytes


class DecodedToken(NamedTuple):
    header: Dict[str, Any]
    payload: Dict[str, Any]
    signing_input: str
    signature: bytes


def _json_segment(value: Dict[str, Any]) -> str:
    raw = json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64url_encode(raw).decode("ascii")


def _b64decode(segment: str, name: str) -> bytes:
    try:
        return base64url_decode(segment)
    except (binascii.Error, ValueError) as exc:
        raise MalformedToken(f"Token {name} is not valid base64url") from exc


def _load_object(raw: bytes, name: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        raise MalformedToken(f"Token {name} is not valid JSON") from exc
    if not isinstance(value, dict):
        raise MalformedToken(f"Token {name} must be a JSON object")
    return value


def encode(payload: Dict[str, Any]) -> EncodedToken:
    header_segment = _json_segment(HEADER)
    payload_segment = _json_segment(payload)
    return EncodedToken(
        header_segment=header_segment,
        payload_segment=payload_segment,
        signing_input=f"{header_segment}.{payload_segment}",
    )


def split(token: str) -> SplitToken:
    """Check the token's shape and parse its header. Raises MalformedToken on any structural error."""
    if not isinstance(token, str):
        raise MalformedToken("Token must be a string")
    if len(token) > MAX_TOKEN_LENGTH:
        raise MalformedToken("Token is too long")

    segments = token.split(".")
    if len(segments) != 3 or not all(segments):
        raise MalformedToken("Token must have exactly three non-empty segments")
    if not all(_SEGMENT.fullmatch(segment) for segment in segments):
        raise MalformedToken("Token segments must be base64url encoded")

    header_segment, payload_segment, signature_segment = segments
    return SplitToken(
        header=_load_object(_b64decode(header_segment, "header"), "header"),
        payload_bytes=_b64decode(payload_segment, "payload"),
        signing_input=f"{header_segment}.{payload_segment}",
        signature=_b64decode(signature_segment, "signature"),
    )


def load_claims(payload_bytes: bytes) -> Dict[str, Any]:
    return _load_object(payload_bytes, "payload")


def decode(token: str) -> DecodedToken:
    """Split and parse a compact token, claims included."""
    parts = split(token)
    return DecodedToken(
        header=parts.header,
        payload=load_claims(parts.payload_bytes),
        signing_input=parts.signing_input,
        signature=parts.signature,
    )
