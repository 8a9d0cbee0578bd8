"""HTTP transport for the Nextcloud Passwords API."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .exceptions import (
    AuthenticationError,
    DecodeError,
    EndpointError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Path of the API below the Nextcloud base URL.
API_PATH: str = "index.php/apps/passwords/api/"

# Header carrying the session token, both in requests and in the open response.
SESSION_HEADER: str = "X-API-SESSION"

# Default HTTP timeout for individual requests.
_HTTP_TIMEOUT_S: float = 60.0

# Max length for sanitized server output snippets in logs/errors.
_SANITIZED_OUTPUT_MAX_CHARS: int = 240


def sanitize_output(
    output: str,
    *,
    secrets: tuple[str, ...] = (),
    max_chars: int = _SANITIZED_OUTPUT_MAX_CHARS,
) -> str:
    """Normalize and redact server or library output for safe logging/errors."""
    sanitized = " ".join(output.split())
    for secret in secrets:
        if not secret:
            continue
        sanitized = sanitized.replace(secret, "***")
    if len(sanitized) > max_chars:
        return sanitized[:max_chars] + "...[truncated]"
    return sanitized


def api_base_url(url: str) -> str:
    """Return the API root for a Nextcloud instance at *url*."""
    return f"{url.rstrip('/')}/{API_PATH}"


def is_error_shape(payload: Any) -> bool:
    """Return whether *payload* is the API's ``{status, id, message}`` error object."""
    return (
        isinstance(payload, dict)
        and payload.get("status") == "error"
        and "message" in payload
    )


@dataclass(frozen=True)
class Response:
    """Decoded JSON payload of a successful call plus its headers."""

    data: Any
    headers: httpx.Headers


_NOT_JSON = object()


class Transport:
    """Send JSON requests to the API with basic auth and an optional session header.

    Every failure is translated into one of the library's exceptions:
    :class:`EndpointError` when the server answered with its error object,
    :class:`AuthenticationError` on HTTP 401, :class:`TransportError` for
    network problems and other HTTP errors, and :class:`DecodeError` when a
    successful response is not JSON.
    """

    _url: str
    _user: str
    _password: str
    _http: httpx.AsyncClient

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        *,
        timeout: float = _HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._user = user
        self._password = password
        self._http = httpx.AsyncClient(
            base_url=api_base_url(url),
            auth=httpx.BasicAuth(user, password),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def url(self) -> str:
        return self._url

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _exchange(
        self,
        method: str,
        path: str,
        body: Any,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        logger.debug(f"{method} {path}")
        try:
            return await self._http.request(
                method,
                path,
                json=body,
                headers=headers,
            )
        except httpx.TransportError as exc:
            detail = sanitize_output(str(exc), secrets=(self._password,))
            raise TransportError(f"{method} {path} failed: {detail}") from exc

    def _check(self, method: str, path: str, resp: httpx.Response) -> Any:
        payload: Any = None
        if resp.content:
            try:
                payload = resp.json()
            except ValueError:
                payload = _NOT_JSON

        if resp.status_code == 401:
            message = (
                payload["message"] if is_error_shape(payload) else "unauthorized"
            )
            raise AuthenticationError(
                f"Server rejected credentials for {method} {path}: {message}"
            )
        if is_error_shape(payload):
            error_id = payload.get("id")
            raise EndpointError(
                str(payload["message"]),
                error_id=error_id if isinstance(error_id, int) else None,
                status=str(payload["status"]),
            )
        if resp.status_code >= 400:
            raise TransportError(
                f"Server returned HTTP {resp.status_code} for {method} {path}"
            )
        return payload

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Send one request and return the decoded success payload."""
        resp = await self._exchange(method, path, body, headers)
        payload = self._check(method, path, resp)
        if payload is _NOT_JSON:
            snippet = sanitize_output(resp.text, secrets=(self._password,))
            raise DecodeError(
                f"Server returned non-JSON response "
                f"(HTTP {resp.status_code}) for {method} {path}: {snippet}"
            )
        return Response(data=payload, headers=resp.headers)

    async def send_bytes(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        """Send one request whose success payload is binary (images)."""
        resp = await self._exchange(method, path, None, headers)
        content_type = resp.headers.get("content-type", "")
        if content_type.startswith("application/json") or resp.status_code >= 400:
            self._check(method, path, resp)
        return resp.content
