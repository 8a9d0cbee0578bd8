"""Entity schemas of the Passwords API.

Each :func:`~ncpasswords.schema.create_binding` call below generates the
record, versioned record, create/update builders and search criteria of one
entity; they are re-exported under their generated names (``Folder``,
``VersionedFolder``, ``CreateFolder``, ``UpdateFolder``, ``FolderSearch``).

Relations to other records use :class:`~ncpasswords.schema.Related`: the
server sends a bare UUID unless the matching detail flag was requested, in
which case the full record is embedded.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Self

from .exceptions import DecodeError
from .schema import Related, create_binding, decode_value, details, field

__all__ = [
    "CreateFolder",
    "CreatePassword",
    "CreateTag",
    "Folder",
    "FolderDetails",
    "FolderSearch",
    "Password",
    "PasswordDetails",
    "PasswordSearch",
    "Person",
    "SecurityStatus",
    "Share",
    "ShareDetails",
    "ShareSearch",
    "StatusCode",
    "Tag",
    "TagDetails",
    "TagSearch",
    "UpdateFolder",
    "UpdatePassword",
    "UpdateShare",
    "UpdateTag",
    "VersionedFolder",
    "VersionedPassword",
    "VersionedTag",
]


class SecurityStatus(enum.IntEnum):
    """Security status level of a password."""

    OK = 0
    USER_RULES_VIOLATED = 1
    BREACHED = 2
    NOT_CHECKED = 3


class StatusCode(enum.StrEnum):
    """Specific reason for the current security status."""

    GOOD = "GOOD"
    OUTDATED = "OUTDATED"
    DUPLICATE = "DUPLICATE"
    BREACHED = "BREACHED"
    NOT_CHECKED = "NOT_CHECKED"


@dataclass(frozen=True)
class Person:
    """Owner or receiver of a share."""

    id: str
    name: str

    @classmethod
    def from_json(cls, data: Any) -> Self:
        if not isinstance(data, dict):
            raise DecodeError(f"Person: expected an object, got {data!r}")
        return cls(
            id=decode_value(str, data.get("id"), path="Person.id"),
            name=decode_value(str, data.get("name"), path="Person.name"),
        )

    def to_json(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


# ---------------------------------------------------------------------------
# Folder
# ---------------------------------------------------------------------------

FolderDetails = details(
    "FolderDetails", "revisions", "parent", "folders", "passwords", module=__name__
)

_folder = create_binding(
    "Folder",
    [
        field("id", uuid.UUID, "update(required)", doc="The UUID of the folder"),
        field(
            "label",
            str,
            "versioned create(required) update(required)",
            doc="User defined label of the folder",
        ),
        field(
            "parent",
            Related["Folder"],
            "versioned create(optional) update(optional) search",
            doc="UUID of the parent folder, or the parent folder itself",
        ),
        field("revision", uuid.UUID, doc="UUID of the current revision"),
        field(
            "cse_type",
            str,
            "versioned create(optional) update(optional) search",
            wire="cseType",
            doc="Type of the used client side encryption",
        ),
        field(
            "cse_key",
            str,
            "versioned create(optional) update(optional)",
            wire="cseKey",
            doc="UUID of the key used for client side encryption",
        ),
        field(
            "sse_type",
            str,
            "versioned search",
            wire="sseType",
            doc="Type of the used server side encryption",
        ),
        field(
            "client",
            str,
            "versioned",
            doc="Name of the client which created this revision",
        ),
        field(
            "hidden",
            bool,
            "versioned create(optional) update(optional)",
            doc="Hides the folder in list / find actions",
        ),
        field(
            "trashed",
            bool,
            "versioned search",
            doc="True if the folder is in the trash",
        ),
        field(
            "favorite",
            bool,
            "versioned create(optional) update(optional) search",
            doc="True if the user has marked the folder as favorite",
        ),
        field(
            "created",
            int,
            "search",
            doc="Unix timestamp when the folder was created",
        ),
        field(
            "updated",
            int,
            "versioned search",
            doc="Unix timestamp of the last update",
        ),
        field(
            "edited",
            int,
            "versioned create(optional) update(optional)",
            doc="Unix timestamp when the user last changed the folder",
        ),
        field(
            "revisions",
            list["VersionedFolder"] | None,
            doc="All revisions (+revisions)",
        ),
        field("folders", list["Folder"] | None, doc="Direct child folders (+folders)"),
        field(
            "passwords",
            list["Password"] | None,
            doc="Passwords in the folder (+passwords)",
        ),
    ],
    module=__name__,
)

Folder = _folder.entity
VersionedFolder = _folder.versioned
CreateFolder = _folder.create
UpdateFolder = _folder.update
FolderSearch = _folder.search


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------

PasswordDetails = details(
    "PasswordDetails", "revisions", "folder", "tags", "shares", module=__name__
)

_password = create_binding(
    "Password",
    [
        field("id", uuid.UUID, "update(required)", doc="The UUID of the password"),
        field(
            "label",
            str,
            "versioned create(required) update(required)",
            doc="User defined label of the password",
        ),
        field(
            "username",
            str,
            "versioned create(optional) update(optional)",
            doc="Username associated with the password",
        ),
        field(
            "password",
            str,
            "versioned create(required) update(required)",
            doc="The actual password",
        ),
        field(
            "url",
            str,
            "versioned create(optional) update(optional)",
            doc="Url of the website",
        ),
        field(
            "notes",
            str,
            "versioned create(optional) update(optional)",
            doc="Notes for the password, can be formatted with Markdown",
        ),
        field(
            "custom_fields",
            str,
            "versioned create(optional) update(optional)",
            wire="customFields",
            doc="Custom fields created by the user, JSON encoded",
        ),
        field(
            "hash",
            str,
            "versioned create(required) update(required)",
            doc="SHA1 hash of the password",
        ),
        field(
            "cse_type",
            str,
            "versioned create(optional) update(optional) search",
            wire="cseType",
            doc="Type of the used client side encryption",
        ),
        field(
            "cse_key",
            str,
            "versioned create(optional) update(optional)",
            wire="cseKey",
            doc="UUID of the key used for client side encryption",
        ),
        field(
            "sse_type",
            str,
            "versioned search",
            wire="sseType",
            doc="Type of the used server side encryption",
        ),
        field(
            "hidden",
            bool,
            "versioned create(optional) update(optional)",
            doc="Hides the password in list / find actions",
        ),
        field(
            "favorite",
            bool,
            "versioned create(optional) update(optional) search",
            doc="True if the user has marked the password as favorite",
        ),
        field(
            "edited",
            int,
            "versioned create(optional) update(optional) search",
            doc="Unix timestamp when the user last changed the password",
        ),
        field(
            "trashed",
            bool,
            "versioned search",
            doc="True if the password is in the trash",
        ),
        field(
            "updated",
            int,
            "versioned search",
            doc="Unix timestamp of the last update",
        ),
        field(
            "client",
            str,
            "versioned",
            doc="Name of the client which created this revision",
        ),
        field(
            "status",
            SecurityStatus,
            "versioned search",
            doc="Security status level of the password",
        ),
        field(
            "status_code",
            StatusCode,
            "versioned",
            wire="statusCode",
            doc="Specific code for the current security status",
        ),
        field(
            "folder",
            Related["Folder"],
            "versioned create(optional) update(optional)",
            doc="UUID of the folder, or the folder itself (+folder)",
        ),
        field("revision", uuid.UUID, doc="UUID of the current revision"),
        field(
            "share",
            uuid.UUID | None,
            doc="UUID of the share if the password was shared with the user",
        ),
        field("shared", bool, doc="True if the password is shared with other users"),
        field(
            "editable",
            bool,
            doc="Whether the encrypted properties can be changed",
        ),
        field(
            "created",
            int,
            "search",
            doc="Unix timestamp when the password was created",
        ),
        field(
            "tags",
            list[Related["Tag"]] | None,
            "create(optional) update(optional)",
            doc="Tag ids, or the tags themselves (+tags)",
        ),
        field("shares", list["Share"] | None, doc="Shares with other users (+shares)"),
        field(
            "revisions",
            list["VersionedPassword"] | None,
            doc="All revisions (+revisions)",
        ),
    ],
    module=__name__,
)

Password = _password.entity
VersionedPassword = _password.versioned
CreatePassword = _password.create
UpdatePassword = _password.update
PasswordSearch = _password.search


# ---------------------------------------------------------------------------
# Tag
# ---------------------------------------------------------------------------

TagDetails = details("TagDetails", "revisions", "passwords", module=__name__)

_tag = create_binding(
    "Tag",
    [
        field("id", uuid.UUID, "update(required)", doc="The UUID of the tag"),
        field(
            "label",
            str,
            "versioned create(required) update(required)",
            doc="User defined label of the tag",
        ),
        field(
            "color",
            str,
            "versioned create(required) update(required) search",
            doc="Hex color code of the tag",
        ),
        field("revision", uuid.UUID, doc="UUID of the current revision"),
        field(
            "cse_type",
            str,
            "versioned create(optional) update(optional) search",
            wire="cseType",
            doc="Type of the used client side encryption",
        ),
        field(
            "cse_key",
            str,
            "versioned create(optional) update(optional)",
            wire="cseKey",
            doc="UUID of the key used for client side encryption",
        ),
        field("sse_type", str, "versioned search", wire="sseType"),
        field("client", str, "versioned"),
        field("hidden", bool, "versioned create(optional) update(optional)"),
        field("trashed", bool, "versioned search"),
        field("favorite", bool, "versioned create(optional) update(optional) search"),
        field("created", int, "search"),
        field("updated", int, "versioned search"),
        field("edited", int, "versioned create(optional) update(optional)"),
        field("revisions", list["VersionedTag"] | None),
        field("passwords", list[Related["Password"]] | None),
    ],
    module=__name__,
)

Tag = _tag.entity
VersionedTag = _tag.versioned
CreateTag = _tag.create
UpdateTag = _tag.update
TagSearch = _tag.search


# ---------------------------------------------------------------------------
# Share
# ---------------------------------------------------------------------------

ShareDetails = details("ShareDetails", "password", module=__name__)

_share = create_binding(
    "Share",
    [
        field("id", uuid.UUID, "update(required)", doc="The UUID of the share"),
        field("created", int, "search"),
        field("updated", int, "search"),
        field(
            "expires",
            int | None,
            "update(optional) search",
            doc="Unix timestamp when the share expires, or None",
        ),
        field("share_type", str, "search", wire="type"),
        field(
            "editable",
            bool,
            "update(optional) search",
            doc="Whether the receiver can edit the password",
        ),
        field(
            "shareable",
            bool,
            "update(optional) search",
            doc="Whether the receiver can share the password again",
        ),
        field("update_pending", bool, wire="updatePending"),
        field(
            "password",
            Related["Password"],
            doc="UUID of the shared password, or the password itself (+password)",
        ),
        field("owner", Person),
        field("receiver", Person),
    ],
    module=__name__,
)

Share = _share.entity
VersionedShare = _share.versioned
UpdateShare = _share.update
ShareSearch = _share.search

BINDINGS = {b.name: b for b in (_folder, _password, _tag, _share)}
