"""Service helpers (password generator, images) and the token API."""

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Protocol, Self

from .crud import Channel
from .exceptions import DecodeError
from .schema import Builder, decode_value


class BytesChannel(Channel, Protocol):
    async def call_bytes(self, method: str, path: str) -> bytes: ...


class View(enum.StrEnum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


@dataclass(frozen=True)
class MiniatureSize:
    """Size of an avatar or favicon: a multiple of 8 between 16 and 256 pixels."""

    value: int = 32

    def __post_init__(self) -> None:
        if self.value % 8 != 0 or not 16 <= self.value <= 256:
            raise ValueError(
                f"Miniature size must be a multiple of 8 in [16, 256], got {self.value}"
            )


class GeneratePassword(Builder):
    """Options for the password generator; unset options use the user defaults."""

    __slots__ = ()

    def with_strength(self, strength: int) -> Self:
        """A higher value creates a longer and more complex password (1-4)."""
        if not 1 <= strength <= 4:
            raise ValueError(f"Password strength must be 1-4, got {strength}")
        return self._replace("strength", strength)

    def with_numbers(self, numbers: bool) -> Self:
        """Whether numbers should be used in the password."""
        return self._replace("numbers", numbers)

    def with_special(self, special: bool) -> Self:
        """Whether special characters should be used in the password."""
        return self._replace("special", special)

    def to_json(self) -> dict[str, Any]:
        return dict(self._values)


@dataclass(frozen=True)
class GeneratedPassword:
    password: str
    words: list[str] | str
    strength: int
    numbers: bool
    special: bool

    @classmethod
    def from_json(cls, data: Any) -> Self:
        if not isinstance(data, dict):
            raise DecodeError(f"GeneratedPassword: expected an object, got {data!r}")
        return cls(
            password=decode_value(str, data.get("password"), path="password"),
            words=decode_value(list[str] | str, data.get("words", []), path="words"),
            strength=decode_value(int, data.get("strength"), path="strength"),
            numbers=decode_value(bool, data.get("numbers"), path="numbers"),
            special=decode_value(bool, data.get("special"), path="special"),
        )


class ServiceApi:
    """Access the ``1.0/service`` endpoints."""

    _channel: BytesChannel

    def __init__(self, channel: BytesChannel) -> None:
        self._channel = channel

    async def generate_password(
        self, settings: GeneratePassword | None = None
    ) -> GeneratedPassword:
        """Generate one password; generated passwords are checked for security."""
        if settings is None:
            data = await self._channel.call("GET", "1.0/service/password")
        else:
            data = await self._channel.call(
                "POST", "1.0/service/password", settings.to_json()
            )
        return GeneratedPassword.from_json(data)

    async def avatar(
        self, user: uuid.UUID | str, size: MiniatureSize = MiniatureSize()
    ) -> bytes:
        """Return the png avatar of *user*, generated if the user has none."""
        return await self._channel.call_bytes(
            "GET", f"1.0/service/avatar/{user}/{size.value}"
        )

    async def favicon(
        self, domain: str, size: MiniatureSize = MiniatureSize()
    ) -> bytes:
        """Return the png favicon of *domain*, or a generated default."""
        return await self._channel.call_bytes(
            "GET", f"1.0/service/favicon/{domain}/{size.value}"
        )

    async def preview(
        self,
        domain: str,
        view: View = View.DESKTOP,
        width: str = "640",
        height: str = "360...",
    ) -> bytes:
        """Return a jpeg preview of *domain*.

        *width* and *height* are multiples of 10 between 240 and 1280, ``0``
        to let the server choose, or a ``MIN...MAX`` range.
        """
        return await self._channel.call_bytes(
            "GET", f"1.0/service/preview/{domain}/{view}/{width}/{height}"
        )


class TokenApi:
    """Access the ``1.0/token`` endpoints."""

    _channel: Channel

    def __init__(self, channel: Channel) -> None:
        self._channel = channel

    async def request(self, provider: str) -> dict[str, Any]:
        """Ask *provider* to deliver a login token to the user (e.g. by mail)."""
        data = await self._channel.call("GET", f"1.0/token/{provider}/request")
        if not isinstance(data, dict) or "success" not in data:
            raise DecodeError(f"token request: unexpected response {data!r}")
        return data
