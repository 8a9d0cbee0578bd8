"""Declarative entity schemas and the classes generated from them.

An entity is declared once as an ordered list of :func:`field` definitions,
each carrying a tag string such as ``"versioned create(required) search"``.
:func:`create_binding` partitions those fields and synthesizes five classes:

``Folder``
    Frozen record of the not-versioned fields plus a ``versioned`` block.
    On the wire both groups share one flat JSON object.
``VersionedFolder``
    Frozen record of the versioned fields only; also the element type of the
    revision history.
``CreateFolder`` / ``UpdateFolder``
    Immutable builders.  Required fields are constructor arguments in schema
    order, optional fields get ``with_<field>()`` setters.
``FolderSearch``
    Immutable search criteria with one ``and_<field>()`` setter per
    searchable field.  Unset criteria never reach the wire.

Every generated class is registered by name so that forward references such
as ``list["Folder"]`` or ``Related["Password"]`` can be resolved lazily.
"""

import dataclasses
import enum
import inspect
import keyword
import re
import types
import typing
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, ForwardRef, Self

from .exceptions import DecodeError, SchemaError

__all__ = [
    "Binding",
    "Builder",
    "DetailsBase",
    "EntityBase",
    "FieldDef",
    "FieldSets",
    "FieldTags",
    "Mode",
    "Operator",
    "Query",
    "Record",
    "Related",
    "SearchBase",
    "create_binding",
    "decode_value",
    "details",
    "encode_value",
    "field",
    "parse_tags",
    "partition",
    "resolve_type",
]

# Attribute names used by the generated classes themselves.
_RESERVED_NAMES: frozenset[str] = frozenset(
    {"versioned", "to_json", "from_json", "is_set", "_replace", "_values"}
)

# Generated classes (and anything registered explicitly), by class name.
_TYPES: dict[str, type] = {}


# ---------------------------------------------------------------------------
# Field tags
# ---------------------------------------------------------------------------


class Mode(enum.Enum):
    """How a field takes part in a create or update payload."""

    NONE = "none"
    REQUIRED = "required"
    OPTIONAL = "optional"


@dataclass(frozen=True, slots=True)
class FieldTags:
    """Parsed annotation of one schema field."""

    create: Mode = Mode.NONE
    update: Mode = Mode.NONE
    versioned: bool = False
    searchable: bool = False


_TAG_TOKEN = re.compile(r"\s*(?P<name>[A-Za-z_]\w*)(?:\((?P<arg>[^()]*)\))?\s*")


def parse_tags(raw: str) -> FieldTags:
    """Parse a tag string like ``"versioned create(required) update(optional)"``.

    Raises :class:`SchemaError` on unknown tags, bad arguments, or a
    category given twice.
    """
    values: dict[str, Any] = {}
    seen: set[str] = set()
    pos = 0
    while pos < len(raw):
        match = _TAG_TOKEN.match(raw, pos)
        if match is None or match.end() == pos:
            raise SchemaError(f"Malformed field tags {raw!r} at offset {pos}")
        pos = match.end()
        name = match["name"]
        arg = match["arg"].strip() if match["arg"] is not None else None

        if name in seen:
            raise SchemaError(f"Tag {name!r} given more than once in {raw!r}")
        seen.add(name)

        if name in ("create", "update"):
            if arg not in ("required", "optional"):
                raise SchemaError(
                    f"Tag {name!r} expects (required) or (optional), got {arg!r}"
                )
            values[name] = Mode(arg)
        elif name == "versioned":
            if arg is None or arg == "true":
                values["versioned"] = True
            elif arg == "false":
                values["versioned"] = False
            else:
                raise SchemaError(f"Tag 'versioned' expects true or false, got {arg!r}")
        elif name == "search":
            if arg is not None:
                raise SchemaError(f"Tag 'search' takes no argument, got {arg!r}")
            values["searchable"] = True
        else:
            raise SchemaError(f"Unknown field tag {name!r} in {raw!r}")
    return FieldTags(**values)


@dataclass(frozen=True)
class FieldDef:
    """One field of an entity schema.

    ``name`` is the Python attribute, ``wire`` the JSON key.
    """

    name: str
    type: Any
    tags: FieldTags
    wire: str
    doc: str = ""


def field(
    name: str,
    type_: Any,
    tags: str = "",
    *,
    wire: str | None = None,
    doc: str = "",
) -> FieldDef:
    """Declare a schema field.

    Example:
        >>> field("cse_type", str, "versioned create(optional) search", wire="cseType")
    """
    if not name.isidentifier() or keyword.iskeyword(name):
        raise SchemaError(f"Field name {name!r} is not a valid identifier")
    if name in _RESERVED_NAMES:
        raise SchemaError(f"Field name {name!r} is reserved")
    return FieldDef(
        name=name, type=type_, tags=parse_tags(tags), wire=wire or name, doc=doc
    )


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSets:
    """The field groups derived from one schema, each in declaration order."""

    all: tuple[FieldDef, ...]
    not_versioned: tuple[FieldDef, ...]
    versioned: tuple[FieldDef, ...]
    create_required: tuple[FieldDef, ...]
    create_optional: tuple[FieldDef, ...]
    update_required: tuple[FieldDef, ...]
    update_optional: tuple[FieldDef, ...]
    searchable: tuple[FieldDef, ...]

    @property
    def create(self) -> tuple[FieldDef, ...]:
        """Create fields, required and optional interleaved in declaration order."""
        return tuple(f for f in self.all if f.tags.create is not Mode.NONE)

    @property
    def update(self) -> tuple[FieldDef, ...]:
        """Update fields, required and optional interleaved in declaration order."""
        return tuple(f for f in self.all if f.tags.update is not Mode.NONE)


def partition(fields: Iterable[FieldDef]) -> FieldSets:
    """Split *fields* into the groups every generated class is built from.

    A field may land in several groups; a field without tags is only part of
    ``not_versioned``.
    """
    fields = tuple(fields)
    names: set[str] = set()
    wires: set[str] = set()
    for f in fields:
        if f.name in names:
            raise SchemaError(f"Duplicate field name {f.name!r}")
        if f.wire in wires:
            raise SchemaError(f"Duplicate wire name {f.wire!r}")
        names.add(f.name)
        wires.add(f.wire)

    def select(predicate: Callable[[FieldTags], bool]) -> tuple[FieldDef, ...]:
        return tuple(f for f in fields if predicate(f.tags))

    return FieldSets(
        all=fields,
        not_versioned=select(lambda t: not t.versioned),
        versioned=select(lambda t: t.versioned),
        create_required=select(lambda t: t.create is Mode.REQUIRED),
        create_optional=select(lambda t: t.create is Mode.OPTIONAL),
        update_required=select(lambda t: t.update is Mode.REQUIRED),
        update_optional=select(lambda t: t.update is Mode.OPTIONAL),
        searchable=select(lambda t: t.searchable),
    )


# ---------------------------------------------------------------------------
# Value codec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Related[T]:
    """A relation that is either just an id or the id plus the embedded record.

    The API returns a bare UUID string unless the matching detail flag was
    requested, in which case the full record is embedded.  Both decode to
    this one shape; encoding always sends the id only.
    """

    id: uuid.UUID
    data: T | None = None

    @property
    def is_embedded(self) -> bool:
        return self.data is not None

    def to_json(self) -> str:
        return str(self.id)


def register_type(cls: type, name: str | None = None) -> type:
    """Make *cls* resolvable from forward references by its name."""
    _TYPES[name or cls.__name__] = cls
    return cls


def resolve_type(tp: Any) -> Any:
    """Resolve string and :class:`typing.ForwardRef` references to registered types."""
    if isinstance(tp, ForwardRef):
        tp = tp.__forward_arg__
    if isinstance(tp, str):
        try:
            return _TYPES[tp]
        except KeyError:
            raise SchemaError(f"Unresolved type reference {tp!r}") from None
    return tp


def is_optional(tp: Any) -> bool:
    """Return whether *tp* admits ``None``."""
    return typing.get_origin(tp) in (typing.Union, types.UnionType) and type(
        None
    ) in typing.get_args(tp)


def decode_value(tp: Any, value: Any, *, path: str = "value") -> Any:
    """Convert a decoded JSON *value* into an instance of *tp*.

    Raises :class:`DecodeError` when the value does not fit.
    """
    tp = resolve_type(tp)
    if tp is Any:
        return value

    origin = typing.get_origin(tp)
    if tp is list or tp is dict:
        origin = tp
    if origin in (typing.Union, types.UnionType):
        args = typing.get_args(tp)
        if value is None:
            if type(None) in args:
                return None
            raise DecodeError(f"{path}: unexpected null")
        candidates = [a for a in args if a is not type(None)]
        errors: list[str] = []
        for candidate in candidates:
            try:
                return decode_value(candidate, value, path=path)
            except DecodeError as exc:
                errors.append(str(exc))
        raise DecodeError(f"{path}: no union member matched ({'; '.join(errors)})")
    if value is None:
        raise DecodeError(f"{path}: unexpected null")
    if origin is list:
        (item_type,) = typing.get_args(tp) or (Any,)
        if not isinstance(value, list):
            raise DecodeError(f"{path}: expected a list, got {type(value).__name__}")
        return [
            decode_value(item_type, item, path=f"{path}[{i}]")
            for i, item in enumerate(value)
        ]
    if origin is dict:
        _key_type, value_type = typing.get_args(tp) or (Any, Any)
        if not isinstance(value, dict):
            raise DecodeError(f"{path}: expected an object, got {type(value).__name__}")
        return {
            k: decode_value(value_type, v, path=f"{path}.{k}") for k, v in value.items()
        }
    if origin is Related:
        (target,) = typing.get_args(tp)
        return _decode_related(target, value, path=path)

    if tp is bool:
        if not isinstance(value, bool):
            raise DecodeError(f"{path}: expected a boolean, got {value!r}")
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise DecodeError(f"{path}: expected an integer, got {value!r}")
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise DecodeError(f"{path}: expected a number, got {value!r}")
        return float(value)
    if tp is str:
        if not isinstance(value, str):
            raise DecodeError(f"{path}: expected a string, got {value!r}")
        return value
    if tp is uuid.UUID:
        try:
            return uuid.UUID(value)
        except (TypeError, ValueError, AttributeError) as exc:
            raise DecodeError(f"{path}: invalid UUID {value!r}") from exc
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        try:
            return tp(value)
        except ValueError as exc:
            raise DecodeError(
                f"{path}: {value!r} is not a valid {tp.__name__}"
            ) from exc
    from_json = getattr(tp, "from_json", None)
    if from_json is not None:
        return from_json(value)
    raise DecodeError(f"{path}: no decoder for type {tp!r}")


def _decode_related(target: Any, value: Any, *, path: str) -> Related[Any]:
    if isinstance(value, str):
        return Related(id=decode_value(uuid.UUID, value, path=path))
    if isinstance(value, Mapping):
        record = decode_value(target, value, path=path)
        return Related(id=record.id, data=record)
    raise DecodeError(f"{path}: expected an id or an object, got {value!r}")


def encode_value(value: Any) -> Any:
    """Convert *value* into something :func:`json.dumps` accepts."""
    if isinstance(value, enum.Enum):
        return value.value
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    to_json = getattr(value, "to_json", None)
    if to_json is not None:
        return to_json()
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [encode_value(v) for v in value]
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def _decode_fields(
    fields: tuple[FieldDef, ...], data: Mapping[str, Any], owner: str
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for f in fields:
        if f.wire in data:
            values[f.name] = decode_value(
                f.type, data[f.wire], path=f"{owner}.{f.wire}"
            )
        elif is_optional(f.type):
            values[f.name] = None
        else:
            raise DecodeError(f"{owner}: missing field {f.wire!r}")
    return values


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Record:
    """Behaviour shared by generated frozen records."""

    __schema_fields__: ClassVar[tuple[FieldDef, ...]] = ()

    @classmethod
    def from_json(cls, data: Any) -> Self:
        if not isinstance(data, Mapping):
            raise DecodeError(
                f"{cls.__name__}: expected an object, got {type(data).__name__}"
            )
        return cls(**_decode_fields(cls.__schema_fields__, data, cls.__name__))

    def to_json(self) -> dict[str, Any]:
        return {
            f.wire: encode_value(getattr(self, f.name)) for f in self.__schema_fields__
        }


class EntityBase(Record):
    """A full record: not-versioned fields plus the embedded versioned block.

    Versioned attributes are readable directly on the entity, so
    ``folder.label`` and ``folder.versioned.label`` are the same value.
    """

    __versioned_type__: ClassVar[type[Record]]
    versioned: Any

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup failed.
        if name == "versioned" or name.startswith("__"):
            raise AttributeError(name)
        try:
            return getattr(self.versioned, name)
        except AttributeError:
            raise AttributeError(
                f"{type(self).__name__!r} object has no attribute {name!r}"
            ) from None

    @classmethod
    def from_json(cls, data: Any) -> Self:
        if not isinstance(data, Mapping):
            raise DecodeError(
                f"{cls.__name__}: expected an object, got {type(data).__name__}"
            )
        values = _decode_fields(cls.__schema_fields__, data, cls.__name__)
        return cls(**values, versioned=cls.__versioned_type__.from_json(data))

    def to_json(self) -> dict[str, Any]:
        return {**super().to_json(), **self.versioned.to_json()}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


class Builder:
    """Immutable payload builder.

    Required values are taken by the constructor, optional values are added
    through generated setters which each return a new builder.  Only values
    that were set are serialized.
    """

    __slots__ = ("_values",)

    __schema_fields__: ClassVar[tuple[FieldDef, ...]] = ()
    __required__: ClassVar[tuple[str, ...]] = ()
    __signature__: ClassVar[inspect.Signature] = inspect.Signature()

    _values: Mapping[str, Any]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        bound = type(self).__signature__.bind(*args, **kwargs)
        self._values = types.MappingProxyType(dict(bound.arguments))

    def _replace(self, name: str, value: Any) -> Self:
        clone = object.__new__(type(self))
        clone._values = types.MappingProxyType({**self._values, name: value})
        return clone

    def is_set(self, name: str) -> bool:
        """Return whether a value for *name* was provided."""
        return name in self._values

    def to_json(self) -> dict[str, Any]:
        return {
            f.wire: encode_value(self._values[f.name])
            for f in self.__schema_fields__
            if f.name in self._values
        }

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return dict(self._values) == dict(other._values)  # type: ignore[attr-defined]

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{type(self).__name__}({args})"


class Operator(enum.StrEnum):
    """Comparison operators accepted by the ``find`` actions."""

    EXACT = "exact"
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    GT = "gt"
    LE = "le"
    GE = "ge"


@dataclass(frozen=True)
class Query:
    """One search criterion: an operator paired with a value."""

    operator: Operator
    value: Any

    @classmethod
    def exact(cls, value: Any) -> Self:
        return cls(Operator.EXACT, value)

    @classmethod
    def eq(cls, value: Any) -> Self:
        return cls(Operator.EQ, value)

    @classmethod
    def ne(cls, value: Any) -> Self:
        return cls(Operator.NE, value)

    @classmethod
    def lt(cls, value: Any) -> Self:
        return cls(Operator.LT, value)

    @classmethod
    def gt(cls, value: Any) -> Self:
        return cls(Operator.GT, value)

    @classmethod
    def le(cls, value: Any) -> Self:
        return cls(Operator.LE, value)

    @classmethod
    def ge(cls, value: Any) -> Self:
        return cls(Operator.GE, value)

    def to_json(self) -> Any:
        value = encode_value(self.value)
        if self.operator is Operator.EXACT:
            return value
        return {self.operator.value: value}


class SearchBase(Builder):
    """Sparse search criteria; every criterion starts out unset."""

    __slots__ = ()

    def _replace(self, name: str, value: Any) -> Self:
        if not isinstance(value, Query):
            value = Query.exact(value)
        return super()._replace(name, value)


# ---------------------------------------------------------------------------
# Detail levels
# ---------------------------------------------------------------------------


class DetailsBase:
    """Set of optional inclusions for read actions, rendered as ``model+flag+...``."""

    __slots__ = ("_flags",)

    __flags__: ClassVar[tuple[str, ...]] = ()

    _flags: frozenset[str]

    def __init__(self, *flags: str) -> None:
        unknown = set(flags) - set(self.__flags__)
        if unknown:
            raise ValueError(
                f"Unknown detail flags for {type(self).__name__}: {sorted(unknown)}"
            )
        self._flags = frozenset(flags)

    @classmethod
    def all(cls) -> Self:
        """Detail level including every flag."""
        return cls(*cls.__flags__)

    def __contains__(self, flag: str) -> bool:
        return flag in self._flags

    def __str__(self) -> str:
        return "+".join(["model", *(f for f in self.__flags__ if f in self._flags)])

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._flags == other._flags  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self._flags))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"


def details(name: str, *flags: str, module: str | None = None) -> type[DetailsBase]:
    """Synthesize a detail-level class with one ``with_<flag>()`` per flag."""
    namespace: dict[str, Any] = {"__slots__": (), "__flags__": flags}
    for flag in flags:
        if not flag.isidentifier():
            raise SchemaError(f"Detail flag {flag!r} is not a valid identifier")

        def setter(self: DetailsBase, _flag: str = flag) -> DetailsBase:
            return type(self)(*self._flags, _flag)

        setter.__name__ = f"with_{flag}"
        setter.__qualname__ = f"{name}.with_{flag}"
        setter.__doc__ = f"Also include ``{flag}``."
        namespace[setter.__name__] = setter
    cls = type(name, (DetailsBase,), namespace)
    if module is not None:
        cls.__module__ = module
    return cls


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Binding:
    """Everything generated from one entity schema."""

    name: str
    fields: tuple[FieldDef, ...]
    sets: FieldSets
    entity: type[EntityBase]
    versioned: type[Record]
    create: type[Builder]
    update: type[Builder]
    search: type[SearchBase]


def _make_record(
    name: str,
    fields: tuple[FieldDef, ...],
    base: type[Record],
    module: str | None,
    extra: list[tuple[str, Any]] | None = None,
    namespace: dict[str, Any] | None = None,
) -> type:
    columns = [(f.name, f.type) for f in fields] + (extra or [])
    return dataclasses.make_dataclass(
        name,
        columns,
        bases=(base,),
        namespace={"__schema_fields__": fields, **(namespace or {})},
        frozen=True,
        module=module,
    )


def _value_property(name: str, doc: str) -> property:
    def getter(self: Builder) -> Any:
        return self._values.get(name)

    return property(getter, doc=doc or None)


def _setter(cls_name: str, prefix: str, f: FieldDef) -> Callable[..., Any]:
    name = f.name

    def setter(self: Builder, value: Any) -> Builder:
        return self._replace(name, value)

    setter.__name__ = f"{prefix}{name}"
    setter.__qualname__ = f"{cls_name}.{setter.__name__}"
    setter.__doc__ = f.doc or f"Set ``{name}``."
    setter.__annotations__ = {"value": f.type}
    return setter


def _make_builder(
    name: str,
    required: tuple[FieldDef, ...],
    optional: tuple[FieldDef, ...],
    ordered: tuple[FieldDef, ...],
    base: type[Builder],
    prefix: str,
    module: str | None,
) -> type:
    signature = inspect.Signature(
        [
            inspect.Parameter(
                f.name, inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=f.type
            )
            for f in required
        ]
    )
    namespace: dict[str, Any] = {
        "__slots__": (),
        "__schema_fields__": ordered,
        "__required__": tuple(f.name for f in required),
        "__signature__": signature,
    }
    for f in ordered:
        namespace[f.name] = _value_property(f.name, f.doc)
    for f in optional:
        setter = _setter(name, prefix, f)
        namespace[setter.__name__] = setter
    cls = type(name, (base,), namespace)
    if module is not None:
        cls.__module__ = module
    return cls


def create_binding(
    name: str, fields: Iterable[FieldDef], *, module: str | None = None
) -> Binding:
    """Generate and register the entity, versioned, create, update and search classes."""
    fields = tuple(fields)
    sets = partition(fields)

    versioned = _make_record(f"Versioned{name}", sets.versioned, Record, module)
    entity = _make_record(
        name,
        sets.not_versioned,
        EntityBase,
        module,
        extra=[("versioned", versioned)],
        namespace={"__versioned_type__": versioned},
    )
    create = _make_builder(
        f"Create{name}",
        sets.create_required,
        sets.create_optional,
        sets.create,
        Builder,
        "with_",
        module,
    )
    update = _make_builder(
        f"Update{name}",
        sets.update_required,
        sets.update_optional,
        sets.update,
        Builder,
        "with_",
        module,
    )
    search = _make_builder(
        f"{name}Search",
        (),
        sets.searchable,
        sets.searchable,
        SearchBase,
        "and_",
        module,
    )

    for cls in (entity, versioned, create, update, search):
        register_type(cls)

    return Binding(
        name=name,
        fields=fields,
        sets=sets,
        entity=entity,
        versioned=versioned,
        create=create,
        update=update,
        search=search,
    )
