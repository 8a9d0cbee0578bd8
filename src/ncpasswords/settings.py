"""User, server and client settings.

Settings form a closed set of groups: :class:`UserSetting` (readable and
writable), :class:`ServerSetting` (read-only) and :class:`ClientSetting`
(free-form values stored under ``client.<name>``).  Every known setting name
maps to its value type in :data:`SETTING_TYPES`, built once at import time.
"""

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from . import VERBOSE
from .crud import Channel
from .exceptions import DecodeError
from .schema import decode_value, encode_value

logger = logging.getLogger(__name__)


class UserSetting(enum.StrEnum):
    PASSWORD_STRENGTH = "user.password.generator.strength"
    PASSWORD_CONTAINS_NUMBERS = "user.password.generator.numbers"
    PASSWORD_CONTAINS_SPECIAL = "user.password.generator.special"
    CHECK_FOR_DUPLICATES = "user.password.security.duplicates"
    CHECK_FOR_OLD_PASSWORDS = "user.password.security.age"
    NOTIFY_SECURITY_BY_MAIL = "user.mail.security"
    NOTIFY_SHARES_BY_MAIL = "user.mail.shares"
    NOTIFY_SECURITY_BY_NOTIFICATION = "user.notification.security"
    NOTIFY_SHARES_BY_NOTIFICATION = "user.notification.shares"
    NOTIFY_ERRORS_BY_NOTIFICATION = "user.notification.errors"
    SERVER_SIDE_ENCRYPTION = "user.encryption.sse"
    CLIENT_SIDE_ENCRYPTION = "user.encryption.cse"
    SESSION_LIFETIME = "user.session.lifetime"


class ServerSetting(enum.StrEnum):
    VERSION = "server.version"
    BASE_URL = "server.baseUrl"
    BASE_URL_WEBDAV = "server.baseUrl.webdav"
    SHARING = "server.sharing.enabled"
    RESHARING = "server.sharing.resharing"
    AUTOCOMPLETE = "server.sharing.autocomplete"
    SHARING_TYPES = "server.sharing.types"
    PRIMARY_COLOR = "server.theme.color.primary"
    TEXT_COLOR = "server.theme.color.text"
    BACKGROUND_COLOR = "server.theme.color.background"
    BACKGROUND_THEME = "server.theme.background"
    LOGO = "server.theme.logo"
    LABEL = "server.theme.label"
    APP_ICON = "server.theme.app.icon"
    FOLDER_ICON = "server.theme.folder.icon"


@dataclass(frozen=True)
class ClientSetting:
    """Arbitrary client-owned setting, stored as ``client.<name>``."""

    name: str

    def __str__(self) -> str:
        return f"client.{self.name}"


type Setting = UserSetting | ServerSetting | ClientSetting

type WritableSetting = UserSetting | ClientSetting

SETTING_TYPES: dict[str, Any] = {
    UserSetting.PASSWORD_STRENGTH: int,
    UserSetting.PASSWORD_CONTAINS_NUMBERS: bool,
    UserSetting.PASSWORD_CONTAINS_SPECIAL: bool,
    UserSetting.CHECK_FOR_DUPLICATES: bool,
    UserSetting.CHECK_FOR_OLD_PASSWORDS: int,
    UserSetting.NOTIFY_SECURITY_BY_MAIL: bool,
    UserSetting.NOTIFY_SHARES_BY_MAIL: bool,
    UserSetting.NOTIFY_SECURITY_BY_NOTIFICATION: bool,
    UserSetting.NOTIFY_SHARES_BY_NOTIFICATION: bool,
    UserSetting.NOTIFY_ERRORS_BY_NOTIFICATION: bool,
    UserSetting.SERVER_SIDE_ENCRYPTION: int,
    UserSetting.CLIENT_SIDE_ENCRYPTION: int,
    UserSetting.SESSION_LIFETIME: int,
    ServerSetting.VERSION: str,
    ServerSetting.BASE_URL: str,
    ServerSetting.BASE_URL_WEBDAV: str,
    ServerSetting.SHARING: bool,
    ServerSetting.RESHARING: bool,
    ServerSetting.AUTOCOMPLETE: bool,
    ServerSetting.SHARING_TYPES: list[str],
    ServerSetting.PRIMARY_COLOR: str,
    ServerSetting.TEXT_COLOR: str,
    ServerSetting.BACKGROUND_COLOR: str,
    ServerSetting.BACKGROUND_THEME: str,
    ServerSetting.LOGO: str,
    ServerSetting.LABEL: str,
    ServerSetting.APP_ICON: str,
    ServerSetting.FOLDER_ICON: str,
}

USER_SETTING_NAMES: tuple[str, ...] = tuple(s.value for s in UserSetting)
SERVER_SETTING_NAMES: tuple[str, ...] = tuple(s.value for s in ServerSetting)
SETTING_NAMES: tuple[str, ...] = USER_SETTING_NAMES + SERVER_SETTING_NAMES

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


def setting_from_name(name: str) -> Setting:
    """Map a wire name such as ``user.mail.shares`` to its setting."""
    if name.startswith("client.") and len(name) > len("client."):
        return ClientSetting(name.removeprefix("client."))
    if name in USER_SETTING_NAMES:
        return UserSetting(name)
    if name in SERVER_SETTING_NAMES:
        return ServerSetting(name)
    raise ValueError(f"Unknown setting {name!r}")


def parse_setting(setting: Setting, raw: str) -> Any:
    """Convert a command-line string into the value type of *setting*."""
    value_type = SETTING_TYPES.get(str(setting), str)
    if value_type is bool:
        normalized = raw.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        raise ValueError(
            f"Invalid boolean value for {setting}: {raw!r}. "
            "Use one of 1/0, true/false, yes/no, on/off."
        )
    if value_type is int:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Invalid integer value for {setting}: {raw!r}") from None
    if value_type == list[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _decode_settings(data: Any) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise DecodeError(f"settings: expected an object, got {type(data).__name__}")
    return {
        name: decode_value(SETTING_TYPES.get(name, Any), value, path=name)
        for name, value in data.items()
    }


def _writable(setting: Setting) -> str:
    if isinstance(setting, ServerSetting):
        raise ValueError(f"Server setting {setting} is read-only")
    return str(setting)


class SettingsApi:
    """Access the ``1.0/settings`` endpoints."""

    _channel: Channel

    def __init__(self, channel: Channel) -> None:
        self._channel = channel

    async def get(self, *settings: Setting) -> dict[str, Any]:
        """Return the values of *settings*, keyed by wire name."""
        data = await self._channel.call(
            "POST", "1.0/settings/get", [str(s) for s in settings]
        )
        return _decode_settings(data)

    async def get_one(self, setting: Setting) -> Any:
        """Return the value of a single setting."""
        values = await self.get(setting)
        try:
            return values[str(setting)]
        except KeyError:
            raise DecodeError(f"Server did not provide setting {setting}") from None

    async def set(self, values: Mapping[WritableSetting, Any]) -> dict[str, Any]:
        """Store user or client settings and return the stored values."""
        body = {_writable(s): encode_value(v) for s, v in values.items()}
        data = await self._channel.call("POST", "1.0/settings/set", body)
        logger.log(VERBOSE, f"Updated settings {sorted(body)}")
        return _decode_settings(data)

    async def reset(self, *settings: WritableSetting) -> dict[str, Any]:
        """Reset settings to their defaults and return the new values."""
        data = await self._channel.call(
            "POST", "1.0/settings/reset", [_writable(s) for s in settings]
        )
        return _decode_settings(data)

    async def list(self, *scopes: str) -> dict[str, Any]:
        """Return all settings, optionally limited to ``user``, ``server`` or ``client``."""
        body = {"scopes": list(scopes)} if scopes else None
        data = await self._channel.call("POST", "1.0/settings/list", body)
        return _decode_settings(data)
