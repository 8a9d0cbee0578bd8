"""API classes of the folder, password, tag and share endpoints."""

import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Self

from . import VERBOSE
from .crud import (
    ALL_OPERATIONS,
    EntityApi,
    Operation,
    ShareIdentifier,
    create_calls,
)
from .exceptions import DecodeError
from .models import BINDINGS, FolderDetails, PasswordDetails, ShareDetails, TagDetails
from .schema import Builder

logger = logging.getLogger(__name__)

FolderApi = create_calls(
    "FolderApi",
    endpoint="1.0/folder",
    binding=BINDINGS["Folder"],
    details=FolderDetails,
    module=__name__,
)

PasswordApi = create_calls(
    "PasswordApi",
    endpoint="1.0/password",
    binding=BINDINGS["Password"],
    details=PasswordDetails,
    module=__name__,
)

TagApi = create_calls(
    "TagApi",
    endpoint="1.0/tag",
    binding=BINDINGS["Tag"],
    details=TagDetails,
    module=__name__,
)


# ---------------------------------------------------------------------------
# Shares are not revisioned and are created from a password id and a receiver
# ---------------------------------------------------------------------------


class CreateShare(Builder):
    """Payload of ``1.0/share/create``.

    Example:
        >>> CreateShare(password_id, "alice").with_editable(True)
    """

    __slots__ = ()

    def __init__(self, password: uuid.UUID | str, receiver: str) -> None:
        self._values = MappingProxyType(
            {"password": str(password), "receiver": receiver}
        )

    def with_share_type(self, share_type: str) -> Self:
        """The type of the share."""
        return self._replace("type", share_type)

    def with_expires(self, expires: int | None) -> Self:
        """Unix timestamp when the share expires; ``None`` never expires."""
        return self._replace("expires", expires)

    def with_editable(self, editable: bool) -> Self:
        """Whether the receiver can edit the password."""
        return self._replace("editable", editable)

    def with_shareable(self, shareable: bool) -> Self:
        """Whether the receiver can share the password again."""
        return self._replace("shareable", shareable)

    def to_json(self) -> dict[str, Any]:
        return dict(self._values)


@dataclass(frozen=True)
class Partner:
    """A user the current user can share with."""

    user_id: str
    display_name: str


class _ShareCalls(EntityApi):
    async def create(self, value: CreateShare) -> ShareIdentifier:
        """Share a password with another user.

        Fails if the password is hidden, its encryption does not support
        sharing, it is already shared with that user, or sharing is disabled.
        """
        self._check_builder(value, CreateShare)
        data = await self._call(Operation.CREATE, value.to_json())
        result = ShareIdentifier.from_json(data)
        logger.log(VERBOSE, f"Created Share {result.id}")
        return result

    async def partners(
        self, search: str | None = None, limit: int | None = None
    ) -> list[Partner]:
        """Return the users the current user can share with.

        *limit* must be between 5 and 256; the endpoint is rate limited.
        """
        body: dict[str, Any] = {}
        if search is not None:
            body["search"] = search
        if limit is not None:
            body["limit"] = limit
        method = "POST" if body else "GET"
        data = await self._channel.call(
            method, f"{self.endpoint}/partners", body or None
        )
        if isinstance(data, dict):
            pairs = list(data.items())
        elif isinstance(data, list) and all(isinstance(d, dict) for d in data):
            pairs = [item for d in data for item in d.items()]
        else:
            raise DecodeError(f"share partners: unexpected response {data!r}")
        return [Partner(user_id=str(k), display_name=str(v)) for k, v in pairs]


ShareApi = create_calls(
    "ShareApi",
    endpoint="1.0/share",
    binding=BINDINGS["Share"],
    details=ShareDetails,
    identifier=ShareIdentifier,
    trashed=ShareIdentifier,
    operations=ALL_OPERATIONS - {Operation.CREATE, Operation.RESTORE},
    bases=(_ShareCalls,),
    module=__name__,
)
