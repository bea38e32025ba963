"""
Error taxonomy for lead capture and embed sessions.

Every failure raised by the token engine is an EmbedSessionError carrying a
stable ``code``. Callers that face the outside world should collapse the
validation kinds into one generic response and keep ``code`` for logs only.
"""

from enum import Enum


class ErrorCode(str, Enum):
    CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
    MALFORMED_TOKEN = "MALFORMED_TOKEN"
    UNSUPPORTED_ALGORITHM = "UNSUPPORTED_ALGORITHM"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE"
    ISSUANCE_FAILED = "ISSUANCE_FAILED"


class EmbedSessionError(Exception):
    code: ErrorCode
    # Whether the same request may succeed later without any change
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value


class ConfigurationMissing(EmbedSessionError):
    code = ErrorCode.CONFIGURATION_MISSING


class MalformedToken(EmbedSessionError):
    code = ErrorCode.MALFORMED_TOKEN


class UnsupportedAlgorithm(EmbedSessionError):
    code = ErrorCode.UNSUPPORTED_ALGORITHM


class InvalidSignature(EmbedSessionError):
    code = ErrorCode.INVALID_SIGNATURE


class TokenExpired(EmbedSessionError):
    code = ErrorCode.TOKEN_EXPIRED


class SessionNotFound(EmbedSessionError):
    code = ErrorCode.SESSION_NOT_FOUND


class SessionExpired(EmbedSessionError):
    code = ErrorCode.SESSION_EXPIRED


class PersistenceUnavailable(EmbedSessionError):
    code = ErrorCode.PERSISTENCE_UNAVAILABLE
    retryable = True


class IssuanceFailed(EmbedSessionError):
    code = ErrorCode.ISSUANCE_FAILED


# Failures that mean "this token is not valid", as opposed to "cannot tell".
VALIDATION_ERRORS = (
    MalformedToken,
    UnsupportedAlgorithm,
    InvalidSignature,
    TokenExpired,
    SessionNotFound,
    SessionExpired,
)
