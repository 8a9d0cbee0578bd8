"""Uniform CRUD call surface generated from an entity binding.

:func:`create_calls` combines one mixin per supported operation into an API
class bound to an endpoint prefix such as ``1.0/folder``:

=========  ==========  ======  ===============================
operation  path        verb    result
=========  ==========  ======  ===============================
list       ``/list``    POST    ``list[Entity]``
get        ``/show``    POST    ``Entity``
find       ``/find``    POST    ``list[Entity]``
create     ``/create``  POST    identifier
update     ``/update``  POST    identifier
delete     ``/delete``  DELETE  trashed identifier
restore    ``/restore`` PATCH   identifier
=========  ==========  ======  ===============================

Operations an entity does not support are simply absent from its class.
"""

import enum
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol, Self

from . import VERBOSE
from .exceptions import DecodeError
from .schema import Binding, Builder, DetailsBase, SearchBase, decode_value

logger = logging.getLogger(__name__)

type RecordId = uuid.UUID | str


class Channel(Protocol):
    """Authenticated request channel, implemented by the session manager."""

    async def call(self, method: str, path: str, body: Any = None) -> Any: ...


class Operation(enum.StrEnum):
    """CRUD operations; the value is the wire path suffix."""

    LIST = "list"
    GET = "show"
    FIND = "find"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"

    @property
    def verb(self) -> str:
        return _VERBS[self]


_VERBS: dict[Operation, str] = {
    Operation.LIST: "POST",
    Operation.GET: "POST",
    Operation.FIND: "POST",
    Operation.CREATE: "POST",
    Operation.UPDATE: "POST",
    Operation.DELETE: "DELETE",
    Operation.RESTORE: "PATCH",
}

ALL_OPERATIONS: frozenset[Operation] = frozenset(Operation)


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


def _require_object(cls: type, data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise DecodeError(
            f"{cls.__name__}: expected an object, got {type(data).__name__}"
        )
    return data


@dataclass(frozen=True)
class Identifier:
    """Id and revision of a record after create, update or restore."""

    id: uuid.UUID
    revision: uuid.UUID

    @classmethod
    def from_json(cls, data: Any) -> Self:
        data = _require_object(cls, data)
        return cls(
            id=decode_value(uuid.UUID, data.get("id"), path="Identifier.id"),
            revision=decode_value(
                uuid.UUID, data.get("revision"), path="Identifier.revision"
            ),
        )


@dataclass(frozen=True)
class TrashedIdentifier:
    """Result of a delete.

    ``revision`` is set when the record was moved to the trash and ``None``
    when it was deleted permanently.
    """

    id: uuid.UUID
    revision: uuid.UUID | None

    @property
    def in_trash(self) -> bool:
        return self.revision is not None

    @classmethod
    def from_json(cls, data: Any) -> Self:
        data = _require_object(cls, data)
        return cls(
            id=decode_value(uuid.UUID, data.get("id"), path="TrashedIdentifier.id"),
            revision=decode_value(
                uuid.UUID | None,
                data.get("revision"),
                path="TrashedIdentifier.revision",
            ),
        )


@dataclass(frozen=True)
class ShareIdentifier:
    """Shares are not revisioned, writes only return the id."""

    id: uuid.UUID

    @classmethod
    def from_json(cls, data: Any) -> Self:
        data = _require_object(cls, data)
        return cls(
            id=decode_value(uuid.UUID, data.get("id"), path="ShareIdentifier.id")
        )


# ---------------------------------------------------------------------------
# Call mixins
# ---------------------------------------------------------------------------


def _request_body(
    details: DetailsBase | None = None, **values: Any
) -> dict[str, Any]:
    body = {k: v for k, v in values.items() if v is not None}
    if details is not None:
        body["details"] = str(details)
    return body


class EntityApi:
    """Base of every generated API class."""

    endpoint: ClassVar[str]
    binding: ClassVar[Binding]
    details_type: ClassVar[type[DetailsBase]]
    identifier: ClassVar[type[Any]] = Identifier
    trashed: ClassVar[type[Any]] = TrashedIdentifier
    operations: ClassVar[frozenset[Operation]] = frozenset()

    _channel: Channel

    def __init__(self, channel: Channel) -> None:
        self._channel = channel

    async def _call(self, operation: Operation, body: Any) -> Any:
        return await self._channel.call(
            operation.verb, f"{self.endpoint}/{operation.value}", body
        )

    def _decode_one(self, data: Any) -> Any:
        return self.binding.entity.from_json(data)

    def _decode_many(self, data: Any) -> list[Any]:
        if not isinstance(data, list):
            raise DecodeError(
                f"{self.endpoint}: expected a list, got {type(data).__name__}"
            )
        return [self._decode_one(item) for item in data]

    def _check_builder(self, value: Any, expected: type[Builder]) -> None:
        if not isinstance(value, expected):
            raise TypeError(
                f"{type(self).__name__} expects {expected.__name__}, "
                f"got {type(value).__name__}"
            )

    def _check_details(self, details: DetailsBase | None) -> None:
        if details is not None and not isinstance(details, self.details_type):
            raise TypeError(
                f"{type(self).__name__} expects {self.details_type.__name__}, "
                f"got {type(details).__name__}"
            )


class ListCall(EntityApi):
    async def list(self, details: DetailsBase | None = None) -> list[Any]:
        """List all records except trashed, hidden and suspended ones."""
        self._check_details(details)
        data = await self._call(Operation.LIST, _request_body(details))
        return self._decode_many(data)


class GetCall(EntityApi):
    async def get(self, id: RecordId, details: DetailsBase | None = None) -> Any:
        """Show one record; the only action that can access hidden records."""
        self._check_details(details)
        data = await self._call(Operation.GET, _request_body(details, id=str(id)))
        return self._decode_one(data)


class FindCall(EntityApi):
    async def find(
        self,
        criteria: SearchBase | None = None,
        details: DetailsBase | None = None,
    ) -> list[Any]:
        """Find records matching *criteria*; trashed ones unless searched for."""
        if criteria is None:
            criteria = self.binding.search()
        self._check_builder(criteria, self.binding.search)
        self._check_details(details)
        data = await self._call(
            Operation.FIND, _request_body(details, criteria=criteria.to_json())
        )
        return self._decode_many(data)


class CreateCall(EntityApi):
    async def create(self, value: Builder) -> Any:
        """Create a record; the server assigns id and revision."""
        self._check_builder(value, self.binding.create)
        data = await self._call(Operation.CREATE, value.to_json())
        result = self.identifier.from_json(data)
        logger.log(VERBOSE, f"Created {self.binding.name} {result.id}")
        return result


class UpdateCall(EntityApi):
    async def update(self, value: Builder) -> Any:
        """Store a new revision with the given attributes."""
        self._check_builder(value, self.binding.update)
        data = await self._call(Operation.UPDATE, value.to_json())
        result = self.identifier.from_json(data)
        logger.log(VERBOSE, f"Updated {self.binding.name} {result.id}")
        return result


class DeleteCall(EntityApi):
    async def delete(
        self, id: RecordId, revision: RecordId | None = None
    ) -> Any:
        """Move a record to the trash, or delete it if it already is there.

        With *revision* the server only deletes when that revision is still
        the current one, so an out-of-sync client cannot delete by accident.
        """
        body = _request_body(
            id=str(id), revision=str(revision) if revision is not None else None
        )
        data = await self._call(Operation.DELETE, body)
        result = self.trashed.from_json(data)
        logger.log(VERBOSE, f"Deleted {self.binding.name} {result.id}")
        return result


class RestoreCall(EntityApi):
    async def restore(
        self, id: RecordId, revision: RecordId | None = None
    ) -> Any:
        """Restore a trashed record or an earlier revision as a new revision."""
        body = _request_body(
            id=str(id), revision=str(revision) if revision is not None else None
        )
        data = await self._call(Operation.RESTORE, body)
        result = self.identifier.from_json(data)
        logger.log(VERBOSE, f"Restored {self.binding.name} {result.id}")
        return result


_MIXINS: dict[Operation, type[EntityApi]] = {
    Operation.LIST: ListCall,
    Operation.GET: GetCall,
    Operation.FIND: FindCall,
    Operation.CREATE: CreateCall,
    Operation.UPDATE: UpdateCall,
    Operation.DELETE: DeleteCall,
    Operation.RESTORE: RestoreCall,
}


def create_calls(
    name: str,
    *,
    endpoint: str,
    binding: Binding,
    details: type[DetailsBase],
    identifier: type[Any] = Identifier,
    trashed: type[Any] = TrashedIdentifier,
    operations: Iterable[Operation] = ALL_OPERATIONS,
    bases: tuple[type, ...] = (),
    module: str | None = None,
) -> type[EntityApi]:
    """Build the API class for one entity.

    *bases* may add hand-written, entity-specific calls on top of the
    generated ones.
    """
    operations = frozenset(operations)
    mixins = tuple(_MIXINS[op] for op in Operation if op in operations)
    cls = type(
        name,
        (*bases, *mixins) or (EntityApi,),
        {
            "endpoint": endpoint.rstrip("/"),
            "binding": binding,
            "details_type": details,
            "identifier": identifier,
            "trashed": trashed,
            "operations": operations,
        },
    )
    if module is not None:
        cls.__module__ = module
    return cls
