"""HTTP transport for the charm store API.

``StoreTransport`` is a thin wrapper over ``httpx.Client`` that knows the
store's conventions:

* every API path is relative to ``{store_url}/{api_version}`` and must
  start with ``/``;
* a configured channel is sent as the ``channel`` query parameter;
* custom headers (for example ``Juju-Metadata``) and basic credentials are
  attached to every request;
* any status other than 200 is turned into an exception.  Structured JSON
  error bodies (``{"Message": ..., "Code": ...}``) become ``ApiError``
  subclasses keyed by the error code; anything else becomes a
  ``StatusError``.

Authentication beyond basic credentials is pluggable: pass an
``httpx.Auth`` or a preconfigured ``httpx.Client``.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from charmrepo.config import DEFAULT_STORE_URL, Settings
from charmrepo.core.errors import (
    ProtocolViolation,
    StatusError,
    TransportError,
    error_from_response,
)
from charmrepo.models.params import ErrorResponse

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
_ERROR_BODY_LIMIT = 1024


def _size_limit(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    if len(data) < _ERROR_BODY_LIMIT:
        return text
    return text[:_ERROR_BODY_LIMIT] + f" ... [{len(data) - _ERROR_BODY_LIMIT} bytes omitted]"


# ---------------------------------------------------------------------------
# Streamed bodies
# ---------------------------------------------------------------------------

class ResponseStream:
    """File-like reader over a streamed response body.

    The stream owns the underlying response and must be closed by the
    caller; it is a context manager for that purpose.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._response = response
        self._chunks = _read_body(response, chunk_size)
        self._buffer = b""
        self._closed = False

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, or everything that is left."""
        if self._closed:
            raise ValueError("read from closed response stream")
        if size is None or size < 0:
            data = self._buffer + b"".join(self._chunks)
            self._buffer = b""
            return data
        while len(self._buffer) < size:
            chunk = next(self._chunks, None)
            if chunk is None:
                break
            self._buffer += chunk
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def __iter__(self) -> Iterator[bytes]:
        if self._buffer:
            data, self._buffer = self._buffer, b""
            yield data
        yield from self._chunks

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._response.close()

    def __enter__(self) -> ResponseStream:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _read_body(response: httpx.Response, chunk_size: int) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes(chunk_size)
    except httpx.HTTPError as exc:
        raise TransportError(f"cannot read response body: {exc}") from exc


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class StoreTransport:
    """Sends requests to the charm store and decodes store errors.

    Parameters
    ----------
    url:
        Root endpoint of the store, with no trailing slash and without the
        API version, e.g. ``https://api.jujucharms.com/charmstore``.
    api_version:
        Version path segment inserted after ``url``.
    user, password:
        Basic credentials.  No ``Authorization`` header is sent when
        ``user`` is empty.
    channel:
        Channel selector sent with every request; empty for none.
    headers:
        Extra headers sent with every request.  A sequence of pairs allows
        repeating a header name.
    auth:
        Pluggable ``httpx.Auth`` used instead of basic credentials.
    transport, client:
        Injection points for tests and custom networking.  A supplied
        ``client`` is not closed by ``close()``.
    """

    def __init__(
        self,
        url: str = DEFAULT_STORE_URL,
        *,
        api_version: str = "v5",
        user: str = "",
        password: str = "",
        channel: str = "",
        headers: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
        timeout_seconds: float = 60.0,
        auth: httpx.Auth | None = None,
        transport: httpx.BaseTransport | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_version = api_version
        self._channel = channel
        self._headers: list[tuple[str, str]] = _header_pairs(headers)
        if auth is None and user:
            auth = httpx.BasicAuth(user, password)
        self._auth = auth
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> StoreTransport:
        """Build a transport from ``Settings``; ``kwargs`` override them."""
        options: dict[str, Any] = {
            "api_version": settings.api_version,
            "user": settings.user,
            "password": settings.password,
            "channel": settings.channel,
            "timeout_seconds": settings.timeout_seconds,
        }
        options.update(kwargs)
        return cls(settings.store_url, **options)

    # ------------------------------------------------------------------
    # Properties and derived transports
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def has_credentials(self) -> bool:
        return self._auth is not None

    def with_channel(self, channel: str) -> StoreTransport:
        """Return a transport sharing this one's connection pool that
        sends requests on ``channel``."""
        other = copy.copy(self)
        other._channel = channel
        other._owns_client = False
        return other

    def with_headers(
        self, headers: Mapping[str, str] | Sequence[tuple[str, str]] | None
    ) -> StoreTransport:
        """Return a transport sharing this one's connection pool that sends
        ``headers`` in place of the current custom headers."""
        other = copy.copy(self)
        other.set_headers(headers)
        other._owns_client = False
        return other

    def set_headers(
        self, headers: Mapping[str, str] | Sequence[tuple[str, str]] | None
    ) -> None:
        """Replace the custom headers sent with every request."""
        self._headers = _header_pairs(headers)

    def close(self) -> None:
        """Close the underlying client when this transport created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> StoreTransport:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None,
        content: Any = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send one request and return a 200 response.

        With ``stream=True`` the body is left unread and the caller must
        close the response.  Raises ``ValueError`` for a path that does not
        start with ``/``, ``TransportError`` for network failures and
        ``ApiError``/``StatusError`` for any non-200 answer.
        """
        if not path.startswith("/"):
            raise ValueError(f"path {path!r} is not absolute")
        query = list(_param_pairs(params))
        if self._channel:
            query = [(k, v) for k, v in query if k != "channel"]
            query.append(("channel", self._channel))
        request_headers = list(self._headers)
        if headers:
            request_headers.extend(headers.items())
        url = f"{self._url}/{self._api_version}{path}"
        request = self._client.build_request(
            method,
            url,
            params=query or None,
            content=content,
            json=json,
            headers=request_headers,
        )
        logger.debug("%s %s", method, request.url)
        try:
            response = self._client.send(
                request, auth=self._auth or httpx.USE_CLIENT_DEFAULT, stream=stream
            )
        except httpx.RequestError as exc:
            raise TransportError(f"cannot {method} {request.url}: {exc}") from exc

        if response.status_code == httpx.codes.OK:
            return response
        try:
            data = response.read()
        except httpx.HTTPError as exc:
            raise TransportError(f"cannot read response body: {exc}") from exc
        finally:
            response.close()
        raise self._decode_error(response, data)

    def stream(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> ResponseStream:
        """Like ``request`` but return the unread body as a ``ResponseStream``."""
        return ResponseStream(self.request(method, path, stream=True, **kwargs))

    def request_json(
        self,
        method: str,
        path: str,
        body: Any = None,
        result_type: Any = None,
        *,
        params: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None,
    ) -> Any:
        """Send ``body`` as JSON and decode the JSON answer into ``result_type``.

        ``body`` may be a pydantic model (serialized by alias), any JSON
        value, or ``None`` for no body.  When ``result_type`` is ``None``
        the answer is discarded.
        """
        if isinstance(body, BaseModel):
            body = body.model_dump(mode="json", by_alias=True)
        response = self.request(
            method,
            path,
            params=params,
            json=body,
        )
        return decode_response(response, result_type)

    def get(self, path: str, result_type: Any = None, **kwargs: Any) -> Any:
        return self.request_json("GET", path, None, result_type, **kwargs)

    def put(self, path: str, value: Any, result_type: Any = None, **kwargs: Any) -> Any:
        return self.request_json("PUT", path, value, result_type, **kwargs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_error(response: httpx.Response, data: bytes) -> Exception:
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if content_type != "application/json":
            return StatusError(
                f"unexpected response status from server: "
                f"{response.status_code} {response.reason_phrase}",
                response.status_code,
            )
        try:
            perr = ErrorResponse.model_validate_json(data)
        except ValidationError as exc:
            err = ProtocolViolation(f"cannot unmarshal error response {_size_limit(data)!r}")
            err.__cause__ = exc
            return err
        if not perr.message:
            return ProtocolViolation(f"error response with empty message {_size_limit(data)!r}")
        return error_from_response(perr.message, perr.code, perr.info)


def decode_response(response: httpx.Response, result_type: Any) -> Any:
    """Decode a JSON response body into ``result_type`` and close it.

    ``None`` as ``result_type`` discards the body.
    """
    try:
        if result_type is None:
            return None
        try:
            return TypeAdapter(result_type).validate_json(response.read())
        except ValidationError as exc:
            raise ProtocolViolation(f"cannot unmarshal response: {exc}") from exc
    finally:
        response.close()


def _header_pairs(
    headers: Mapping[str, str] | Sequence[tuple[str, str]] | None,
) -> list[tuple[str, str]]:
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


def _param_pairs(
    params: Mapping[str, Any] | Sequence[tuple[str, Any]] | None,
) -> Iterator[tuple[str, str]]:
    if params is None:
        return
    items = params.items() if isinstance(params, Mapping) else params
    for key, value in items:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for item in value:
                yield key, str(item)
        else:
            yield key, str(value)
