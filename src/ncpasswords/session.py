"""Session lifecycle and the top-level API client.

A :class:`PasswordsClient` owns one authenticated session::

    UNAUTHENTICATED --open()--> AUTHENTICATED --close()--> CLOSED
                                  |      ^
              keepalive interval  |      |  open() with the stored
              elapsed             v      |  credentials
                                 EXPIRED

:meth:`PasswordsClient.resume` rebuilds a client from a persisted
:class:`SessionState`: within the keepalive interval it sends one keepalive
and keeps the token, after it the client re-authenticates.

The session token is only ever replaced while ``_lock`` is held, and every
request reads the token under the same lock, so a request never goes out
with a token that is being replaced.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from types import TracebackType
from typing import Any, Self

import httpx

from . import VERBOSE
from .apis import FolderApi, PasswordApi, ShareApi, TagApi
from .exceptions import (
    ConnectionFailedError,
    DecodeError,
    DisconnectError,
    KeepaliveError,
    PasswordsError,
)
from .service import ServiceApi, TokenApi
from .settings import SettingsApi, UserSetting
from .transport import SESSION_HEADER, Transport, sanitize_output

logger = logging.getLogger(__name__)


class State(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionState:
    """Everything needed to resume a session in another process."""

    url: str
    user: str
    password: str
    token: str
    keepalive: int
    last_refresh: float

    def to_json(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, data: Any) -> Self:
        if not isinstance(data, dict):
            raise DecodeError(f"SessionState: expected an object, got {data!r}")
        try:
            return cls(
                url=str(data["url"]),
                user=str(data["user"]),
                password=str(data["password"]),
                token=str(data["token"]),
                keepalive=int(data["keepalive"]),
                last_refresh=float(data["last_refresh"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"SessionState: invalid data ({exc})") from exc


class PasswordsClient:
    """Authenticated client of one Nextcloud Passwords account.

    Use :meth:`login` for a fresh session or :meth:`resume` for a persisted
    one.  Entity operations are available through the ``folder``,
    ``password``, ``tag`` and ``share`` attributes; ``settings``,
    ``service`` and ``token`` expose the remaining endpoints.
    """

    _transport: Transport
    _clock: Callable[[], float]
    _lock: asyncio.Lock
    _state: State
    _token: str | None
    _keepalive: int | None
    _last_refresh: float | None
    _login_token: dict[str, str] | None

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        kwargs: dict[str, Any] = {"transport": transport}
        if timeout is not None:
            kwargs["timeout"] = timeout
        self._transport = Transport(url, user, password, **kwargs)
        self._url = url
        self._user = user
        self._password = password
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = State.UNAUTHENTICATED
        self._token = None
        self._keepalive = None
        self._last_refresh = None
        self._login_token = None

        self.folder = FolderApi(self)
        self.password = PasswordApi(self)
        self.tag = TagApi(self)
        self.share = ShareApi(self)
        self.settings = SettingsApi(self)
        self.service = ServiceApi(self)
        self.token = TokenApi(self)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    async def login(
        cls,
        url: str,
        user: str,
        password: str,
        *,
        login_token: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Self:
        """Open a new session.

        *login_token* maps a token provider (e.g. ``"twofactor"``) to the
        token the user entered, for accounts that require one.
        """
        client = cls(url, user, password, **kwargs)
        try:
            await client.open(login_token=login_token)
        except BaseException:
            await client._transport.aclose()
            raise
        return client

    @classmethod
    async def resume(cls, state: SessionState, **kwargs: Any) -> Self:
        """Continue a persisted session, re-authenticating if it has expired."""
        client = cls(state.url, state.user, state.password, **kwargs)
        client._token = state.token
        client._keepalive = state.keepalive
        client._last_refresh = state.last_refresh
        client._state = State.AUTHENTICATED
        try:
            async with client._lock:
                if client._is_expired():
                    client._state = State.EXPIRED
                    logger.log(VERBOSE, "Stored session expired, re-authenticating")
                    await client._open()
                else:
                    await client._keepalive_locked()
        except BaseException:
            await client._transport.aclose()
            raise
        return client

    # -- Context manager -----------------------------------------------

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> State:
        return self._state

    @property
    def url(self) -> str:
        return self._url

    @property
    def keepalive_interval(self) -> int | None:
        """Seconds a session stays valid without activity."""
        return self._keepalive

    def session_state(self) -> SessionState:
        """Snapshot of the current session for :meth:`resume`."""
        if (
            self._state is not State.AUTHENTICATED
            or self._token is None
            or self._keepalive is None
            or self._last_refresh is None
        ):
            raise PasswordsError("No open session to persist")
        return SessionState(
            url=self._url,
            user=self._user,
            password=self._password,
            token=self._token,
            keepalive=self._keepalive,
            last_refresh=self._last_refresh,
        )

    def _is_expired(self) -> bool:
        if self._last_refresh is None or self._keepalive is None:
            return True
        return self._clock() - self._last_refresh > self._keepalive

    async def open(self, *, login_token: dict[str, str] | None = None) -> None:
        """Authenticate and start a session."""
        if self._state is State.CLOSED:
            raise ConnectionFailedError("Client has been closed")
        async with self._lock:
            self._login_token = login_token
            await self._open()

    async def _open(self) -> None:
        previous = self._state
        self._state = State.UNAUTHENTICATED
        self._token = None
        logger.log(VERBOSE, f"Opening session on {self._url} as {self._user}")
        try:
            requirements = (
                await self._transport.send("GET", "1.0/session/request")
            ).data
            if isinstance(requirements, dict) and "challenge" in requirements:
                raise ConnectionFailedError(
                    "Server requires an encryption challenge, which is not supported"
                )
            body: dict[str, Any] = {}
            if self._login_token:
                body["token"] = self._login_token
            opened = await self._transport.send("POST", "1.0/session/open", body)
            if isinstance(opened.data, dict) and opened.data.get("success") is False:
                raise ConnectionFailedError("Server refused to open a session")
            token = opened.headers.get(SESSION_HEADER)
            if not token:
                raise ConnectionFailedError(
                    f"Server did not return an {SESSION_HEADER} header"
                )
            lifetime = await self._transport.send(
                "POST",
                "1.0/settings/get",
                [UserSetting.SESSION_LIFETIME.value],
                headers={SESSION_HEADER: token},
            )
            keepalive = _session_lifetime(lifetime.data)
        except ConnectionFailedError:
            logger.warning(f"Could not open session (previous state {previous.value})")
            raise
        except PasswordsError as exc:
            detail = sanitize_output(str(exc), secrets=(self._password,))
            raise ConnectionFailedError(f"Could not open session: {detail}") from exc

        self._token = token
        self._keepalive = keepalive
        self._last_refresh = self._clock()
        self._state = State.AUTHENTICATED
        logger.log(VERBOSE, f"Session opened, keepalive interval {keepalive}s")

    async def keepalive(self) -> None:
        """Refresh the session without re-authenticating."""
        async with self._lock:
            await self._keepalive_locked()

    async def _keepalive_locked(self) -> None:
        if self._state is not State.AUTHENTICATED or self._token is None:
            raise KeepaliveError("No open session to keep alive")
        try:
            resp = await self._transport.send(
                "GET",
                "1.0/session/keepalive",
                headers={SESSION_HEADER: self._token},
            )
        except PasswordsError as exc:
            raise KeepaliveError(f"Keepalive failed: {exc}") from exc
        if not (isinstance(resp.data, dict) and resp.data.get("success") is True):
            raise KeepaliveError(f"Server rejected keepalive: {resp.data!r}")
        self._last_refresh = self._clock()
        logger.log(VERBOSE, "Session kept alive")

    async def close(self) -> None:
        """Close the session on the server and release the HTTP client.

        The local session is discarded even when the server does not
        acknowledge the close; that case raises :class:`DisconnectError`.
        """
        if self._state is State.CLOSED:
            return
        async with self._lock:
            token = self._token if self._state is State.AUTHENTICATED else None
            self._state = State.CLOSED
            self._token = None
            try:
                if token is not None:
                    await self._close_remote(token)
            finally:
                await self._transport.aclose()

    async def release(self) -> None:
        """Release the HTTP client but leave the server session open for :meth:`resume`."""
        async with self._lock:
            if self._state is not State.CLOSED:
                self._state = State.CLOSED
                self._token = None
            await self._transport.aclose()

    async def _close_remote(self, token: str) -> None:
        try:
            resp = await self._transport.send(
                "GET", "1.0/session/close", headers={SESSION_HEADER: token}
            )
        except PasswordsError as exc:
            raise DisconnectError(f"Could not close session: {exc}") from exc
        if not (isinstance(resp.data, dict) and resp.data.get("success") is True):
            raise DisconnectError(f"Server did not close the session: {resp.data!r}")
        logger.log(VERBOSE, "Session closed")

    # ------------------------------------------------------------------
    # Channel used by the API classes
    # ------------------------------------------------------------------

    async def _current_token(self) -> str:
        async with self._lock:
            if self._state is State.CLOSED:
                raise ConnectionFailedError("Client has been closed")
            if self._state is State.UNAUTHENTICATED:
                raise ConnectionFailedError("Not logged in")
            if self._state is State.EXPIRED or self._is_expired():
                self._state = State.EXPIRED
                logger.log(VERBOSE, "Session expired, re-authenticating")
                await self._open()
            if self._token is None:
                raise ConnectionFailedError("Not logged in")
            return self._token

    async def call(self, method: str, path: str, body: Any = None) -> Any:
        """Send one authenticated request and return its JSON payload."""
        token = await self._current_token()
        resp = await self._transport.send(
            method, path, body, headers={SESSION_HEADER: token}
        )
        self._touch(token)
        return resp.data

    async def call_bytes(self, method: str, path: str) -> bytes:
        """Send one authenticated request whose payload is binary."""
        token = await self._current_token()
        data = await self._transport.send_bytes(
            method, path, headers={SESSION_HEADER: token}
        )
        self._touch(token)
        return data

    def _touch(self, token: str) -> None:
        # Activity extends the session, unless the token was replaced meanwhile.
        if token == self._token:
            self._last_refresh = self._clock()


def _session_lifetime(data: Any) -> int:
    if not isinstance(data, dict):
        raise DecodeError(f"session lifetime: expected an object, got {data!r}")
    value = data.get(UserSetting.SESSION_LIFETIME.value)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise DecodeError(f"session lifetime: invalid value {value!r}")
    return value
