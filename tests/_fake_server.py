"""In-process stand-in for a Nextcloud Passwords server.

``FakeServer`` answers through :class:`httpx.MockTransport`, so a real
:class:`~ncpasswords.session.PasswordsClient` can run against it without a
network.  ``RecordingChannel`` is the lighter option for API classes that only
need a :class:`~ncpasswords.crud.Channel`.
"""

import base64
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

BASE_URL = "https://cloud.example.test"
API_PREFIX = "/index.php/apps/passwords/api/"
USER = "alice"
PASSWORD = "app-password"

FOLDER_ID = "8f3a9a4c-52a0-4c6e-9f5b-6a0e1c7a1b01"
ROOT_FOLDER_ID = "00000000-0000-0000-0000-000000000000"
PASSWORD_ID = "2b1e6d8a-93e4-4b7e-8a8e-0c4f1d2e3a02"
TAG_ID = "6c5d4e3f-2a1b-4c0d-9e8f-7a6b5c4d3e03"
SHARE_ID = "9e8d7c6b-5a49-4838-a726-1504f3e2d104"
REVISION_ID = "1a2b3c4d-5e6f-4a0b-8c9d-0e1f2a3b4c05"

SESSION_LIFETIME = 600


@dataclass
class Recorded:
    method: str
    path: str
    body: Any
    headers: httpx.Headers

    @property
    def token(self) -> str | None:
        return self.headers.get("x-api-session")


type Handler = Any | Callable[[Recorded], Any]


class FakeServer:
    def __init__(self, *, lifetime: int = SESSION_LIFETIME) -> None:
        self.requests: list[Recorded] = []
        self.routes: dict[tuple[str, str], Handler] = {}
        self.settings: dict[str, Any] = {"user.session.lifetime": lifetime}
        self.issued_tokens: list[str] = []
        self.keepalive_ok = True
        self.close_ok = True

        self.route("GET", "1.0/session/request", {})
        self.route("POST", "1.0/session/open", self._open)
        self.route("POST", "1.0/settings/get", self._settings_get)
        self.route(
            "GET", "1.0/session/keepalive", lambda _: {"success": self.keepalive_ok}
        )
        self.route("GET", "1.0/session/close", lambda _: {"success": self.close_ok})

    def route(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def paths(self) -> list[str]:
        return [r.path for r in self.requests]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        recorded = Recorded(
            method=request.method,
            path=request.url.path.removeprefix(API_PREFIX),
            body=json.loads(request.content) if request.content else None,
            headers=request.headers,
        )
        self.requests.append(recorded)

        if not self._credentials_ok(request):
            return _error(401, 1, "Unauthorized")
        if not recorded.path.startswith("1.0/session/") and (
            recorded.token not in self.issued_tokens
        ):
            return _error(401, 2, "Invalid session")

        handler = self.routes.get((recorded.method, recorded.path))
        if handler is None:
            return _error(404, 404, f"No route for {recorded.method} {recorded.path}")
        result = handler(recorded) if callable(handler) else handler
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    def _credentials_ok(self, request: httpx.Request) -> bool:
        expected = base64.b64encode(f"{USER}:{PASSWORD}".encode()).decode()
        return request.headers.get("authorization") == f"Basic {expected}"

    def _open(self, _: Recorded) -> httpx.Response:
        token = f"token-{len(self.issued_tokens) + 1}"
        self.issued_tokens.append(token)
        return httpx.Response(
            200, json={"success": True}, headers={"X-API-SESSION": token}
        )

    def _settings_get(self, recorded: Recorded) -> dict[str, Any]:
        return {n: self.settings[n] for n in recorded.body or [] if n in self.settings}


def _error(status_code: int, error_id: int, message: str) -> httpx.Response:
    return httpx.Response(
        status_code, json={"status": "error", "id": error_id, "message": message}
    )


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingChannel:
    """Channel that records calls and replays canned responses in order."""

    def __init__(self, *responses: Any) -> None:
        self.calls: list[tuple[str, str, Any]] = []
        self._responses = list(responses)

    def _next(self) -> Any:
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def call(self, method: str, path: str, body: Any = None) -> Any:
        self.calls.append((method, path, body))
        return self._next()

    async def call_bytes(self, method: str, path: str) -> bytes:
        self.calls.append((method, path, None))
        return self._next()


# ---------------------------------------------------------------------------
# Sample records as the server sends them
# ---------------------------------------------------------------------------


def folder_json(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": FOLDER_ID,
        "label": "Work",
        "parent": ROOT_FOLDER_ID,
        "revision": REVISION_ID,
        "cseType": "none",
        "cseKey": "",
        "sseType": "SSEv1r2",
        "client": "CLI",
        "hidden": False,
        "trashed": False,
        "favorite": True,
        "created": 1_600_000_000,
        "updated": 1_600_000_500,
        "edited": 1_600_000_400,
    }
    data.update(overrides)
    return data


def password_json(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": PASSWORD_ID,
        "label": "Example",
        "username": "alice",
        "password": "hunter2",
        "url": "https://example.com",
        "notes": "",
        "customFields": "[]",
        "hash": "f3bbbd66a63d4bf1747940578ec3d0103530e21d",
        "cseType": "none",
        "cseKey": "",
        "sseType": "SSEv1r2",
        "hidden": False,
        "favorite": False,
        "edited": 1_600_000_400,
        "trashed": False,
        "updated": 1_600_000_500,
        "client": "CLI",
        "status": 0,
        "statusCode": "GOOD",
        "folder": FOLDER_ID,
        "revision": REVISION_ID,
        "share": None,
        "shared": False,
        "editable": True,
        "created": 1_600_000_000,
    }
    data.update(overrides)
    return data


def tag_json(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": TAG_ID,
        "label": "Important",
        "color": "#ff0000",
        "revision": REVISION_ID,
        "cseType": "none",
        "cseKey": "",
        "sseType": "SSEv1r2",
        "client": "CLI",
        "hidden": False,
        "trashed": False,
        "favorite": False,
        "created": 1_600_000_000,
        "updated": 1_600_000_500,
        "edited": 1_600_000_400,
    }
    data.update(overrides)
    return data


def share_json(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": SHARE_ID,
        "created": 1_600_000_000,
        "updated": 1_600_000_500,
        "expires": None,
        "type": "user",
        "editable": True,
        "shareable": False,
        "updatePending": False,
        "password": PASSWORD_ID,
        "owner": {"id": "alice", "name": "Alice"},
        "receiver": {"id": "bob", "name": "Bob"},
    }
    data.update(overrides)
    return data
