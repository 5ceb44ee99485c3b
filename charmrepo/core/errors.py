"""Error taxonomy for store, cache and upload operations.

Every error keeps its cause inspectable: errors raised while handling
another exception are chained with ``raise ... from``, and errors that
originate from a structured store response carry the store's error code in
``code``.
"""

from __future__ import annotations

from typing import Any

from charmrepo.models.params import ErrorCode


class CharmRepoError(RuntimeError):
    """Base class for all errors raised by charmrepo."""


# ---------------------------------------------------------------------------
# Errors reported by the store API
# ---------------------------------------------------------------------------

class ApiError(CharmRepoError):
    """The store answered with a structured JSON error.

    These are definitive rejections: the part upload loop never retries
    them.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = "",
        info: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = ErrorCode.lookup(code) if isinstance(code, str) else code
        self.info = info or {}


class NotFoundError(ApiError):
    """The requested entity or resource does not exist."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.NOT_FOUND,
        info: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, info)


class UnauthorizedError(ApiError):
    """Authorization was denied for the request."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.UNAUTHORIZED,
        info: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, info)


class TermsRequiredError(UnauthorizedError):
    """Access requires agreeing to terms first."""

    def __init__(
        self,
        message: str,
        terms: list[str] | None = None,
        code: ErrorCode | str = ErrorCode.TERMS_NOT_AGREED,
        info: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, info)
        self.terms = list(terms or [])


# ---------------------------------------------------------------------------
# Client-side classifications
# ---------------------------------------------------------------------------

class TransportError(CharmRepoError):
    """The request did not produce a usable HTTP response.

    Covers DNS failures, refused connections, TLS errors and timeouts.  The
    underlying ``httpx`` exception is the ``__cause__``.
    """


class StatusError(TransportError):
    """The server answered with a non-200 status and no structured error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolViolation(CharmRepoError):
    """A response broke the wire protocol.

    Raised for missing or malformed required headers, mismatched upload
    ids, ids that are not fully qualified, and undecodable bodies.
    """


class IntegrityError(CharmRepoError):
    """Data did not match its expected size or hash."""


class SizeMismatch(IntegrityError):
    """Observed byte count differs from the expected size."""


class HashMismatch(IntegrityError):
    """Observed digest differs from the expected hash."""


class UploadError(CharmRepoError):
    """A multipart upload could not be completed."""


class UploadSessionNotFound(UploadError):
    """The upload session to resume is unknown to the server or expired.

    Callers can start a fresh upload instead of retrying.
    """


class PayloadTooLarge(UploadError):
    """The payload exceeds ``max_part_size * max_parts`` for the session."""


class PartSizingError(UploadError):
    """A gap between completed parts cannot satisfy the part size bounds."""


class CacheUnavailable(CharmRepoError):
    """The archive cache directory cannot be created or written."""


class EntityReadError(CharmRepoError, ValueError):
    """A local charm or bundle could not be read."""


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

def is_authorization_error(err: BaseException | None) -> bool:
    """Report whether ``err`` was caused by denied authorization."""
    return isinstance(err, UnauthorizedError)


def is_api_error(err: BaseException | None) -> bool:
    """Report whether ``err`` is a definitive rejection from the store API."""
    return isinstance(err, ApiError)


def error_from_response(message: str, code: str, info: dict[str, Any] | None) -> ApiError:
    """Build the most specific ``ApiError`` for a structured error body."""
    error_code = ErrorCode.lookup(code)
    if error_code in (ErrorCode.NOT_FOUND, ErrorCode.METADATA_NOT_FOUND):
        return NotFoundError(message, error_code, info)
    if error_code == ErrorCode.TERMS_NOT_AGREED:
        terms = (info or {}).get("terms") or []
        return TermsRequiredError(message, terms, error_code, info)
    if error_code == ErrorCode.UNAUTHORIZED:
        return UnauthorizedError(message, error_code, info)
    return ApiError(message, error_code, info)
