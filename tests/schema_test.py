import asyncio
import uuid

from _fake_server import FOLDER_ID, REVISION_ID, ROOT_FOLDER_ID, RecordingChannel

from ncpasswords.crud import create_calls
from ncpasswords.exceptions import DecodeError, SchemaError
from ncpasswords.schema import (
    FieldTags,
    Mode,
    Query,
    Related,
    create_binding,
    decode_value,
    details,
    field,
    parse_tags,
    partition,
)


def _expect_schema_error(label: str, func, *args, **kwargs) -> None:
    try:
        func(*args, **kwargs)
    except SchemaError:
        return
    raise AssertionError(f"expected SchemaError for {label}")


def assert_parses_tags() -> None:
    tags = parse_tags("versioned create(required) update(optional) search")
    expected = FieldTags(
        create=Mode.REQUIRED, update=Mode.OPTIONAL, versioned=True, searchable=True
    )
    if tags != expected:
        raise AssertionError(f"expected {expected}, got {tags}")

    if parse_tags("") != FieldTags():
        raise AssertionError("empty tag string should give default tags")
    if parse_tags("  versioned(false)  ").versioned:
        raise AssertionError("versioned(false) should not mark the field versioned")
    if not parse_tags("versioned(true)").versioned:
        raise AssertionError("versioned(true) should mark the field versioned")


def assert_rejects_bad_tags() -> None:
    for raw in (
        "bogus",
        "create",
        "create(maybe)",
        "update()",
        "search search",
        "versioned(yes)",
        "search(now)",
        "create(required),update(optional)",
        "create(required",
    ):
        _expect_schema_error(repr(raw), parse_tags, raw)


def assert_rejects_bad_field_names() -> None:
    _expect_schema_error("reserved name", field, "versioned", str)
    _expect_schema_error("builder method", field, "is_set", bool)
    _expect_schema_error("builder internals", field, "_values", str)
    _expect_schema_error("keyword", field, "class", str)
    _expect_schema_error("non identifier", field, "1label", str)

    f = field("cse_type", str, "versioned", wire="cseType")
    if f.wire != "cseType" or f.name != "cse_type":
        raise AssertionError(f"unexpected field names: {f}")
    if field("label", str).wire != "label":
        raise AssertionError("wire name should default to the field name")


def assert_partitions_fields() -> None:
    fid = field("id", uuid.UUID, "update(required)")
    label = field("label", str, "versioned create(required) update(required)")
    notes = field("notes", str, "versioned create(optional) update(optional)")
    created = field("created", int, "search")
    plain = field("revision", uuid.UUID)
    sets = partition([fid, label, notes, created, plain])

    checks = {
        "not_versioned": (sets.not_versioned, (fid, created, plain)),
        "versioned": (sets.versioned, (label, notes)),
        "create_required": (sets.create_required, (label,)),
        "create_optional": (sets.create_optional, (notes,)),
        "update_required": (sets.update_required, (fid, label)),
        "update_optional": (sets.update_optional, (notes,)),
        "searchable": (sets.searchable, (created,)),
        "create": (sets.create, (label, notes)),
        "update": (sets.update, (fid, label, notes)),
    }
    for name, (actual, expected) in checks.items():
        if actual != expected:
            names = [f.name for f in actual]
            raise AssertionError(f"{name}: expected {expected}, got {names}")

    _expect_schema_error("duplicate name", partition, [label, label])
    _expect_schema_error(
        "duplicate wire name",
        partition,
        [field("a", str, wire="x"), field("b", str, wire="x")],
    )


def assert_generates_scenario_binding() -> None:
    binding = create_binding(
        "Label",
        [
            field("id", uuid.UUID, "update(required)"),
            field("label", str, "versioned create(required) update(required)"),
            field("created", int, "search"),
        ],
        module=__name__,
    )
    CreateLabel = binding.create
    UpdateLabel = binding.update
    LabelSearch = binding.search

    if CreateLabel("x").to_json() != {"label": "x"}:
        raise AssertionError(f"unexpected create payload {CreateLabel('x').to_json()}")
    if CreateLabel(label="x") != CreateLabel("x"):
        raise AssertionError("keyword and positional construction should be equal")
    try:
        CreateLabel()
    except TypeError:
        pass
    else:
        raise AssertionError("CreateLabel without its required label should fail")

    label_id = uuid.UUID(FOLDER_ID)
    update = UpdateLabel(label_id, "y")
    if update.to_json() != {"id": FOLDER_ID, "label": "y"}:
        raise AssertionError(f"unexpected update payload {update.to_json()}")
    if list(update.to_json()) != ["id", "label"]:
        raise AssertionError("update payload should keep declaration order")
    if update.label != "y" or update.id != label_id:
        raise AssertionError("builder values should be readable as attributes")

    empty = LabelSearch()
    criteria = empty.and_created(Query.gt(5))
    if empty.to_json() != {}:
        raise AssertionError("unset criteria must not be serialized")
    if criteria.to_json() != {"created": {"gt": 5}}:
        raise AssertionError(f"unexpected criteria {criteria.to_json()}")
    if empty.and_created(7).to_json() != {"created": 7}:
        raise AssertionError("a bare value should search for an exact match")
    if hasattr(LabelSearch, "and_label") or hasattr(LabelSearch, "and_id"):
        raise AssertionError("only searchable fields get criteria setters")
    if hasattr(CreateLabel, "with_created"):
        raise AssertionError("fields outside the create set must not get setters")

    record = binding.entity.from_json({"id": FOLDER_ID, "label": "x", "created": 1})
    if record.label != "x" or record.versioned.label != "x":
        raise AssertionError("versioned fields should be readable on the entity")
    if record.id != label_id or record.created != 1:
        raise AssertionError(f"unexpected record {record}")
    if record.to_json() != {"id": FOLDER_ID, "label": "x", "created": 1}:
        raise AssertionError(f"unexpected record json {record.to_json()}")
    try:
        _ = record.colour
    except AttributeError:
        pass
    else:
        raise AssertionError("unknown attributes should raise AttributeError")


def assert_generates_binding_without_search_fields() -> None:
    binding = create_binding(
        "Plain",
        [
            field("id", uuid.UUID),
            field("label", str, "versioned create(required)"),
        ],
        module=__name__,
    )
    PlainSearch = binding.search
    if PlainSearch().to_json() != {}:
        raise AssertionError(f"unexpected criteria {PlainSearch().to_json()}")
    setters = [name for name in dir(PlainSearch) if name.startswith("and_")]
    if setters:
        raise AssertionError(f"no criteria setters expected, got {setters}")
    try:
        PlainSearch(label="x")
    except TypeError:
        pass
    else:
        raise AssertionError("a search without searchable fields takes no criteria")

    PlainApi = create_calls(
        "PlainApi",
        endpoint="1.0/plain",
        binding=binding,
        details=details("PlainDetails"),
    )
    channel = RecordingChannel([{"id": FOLDER_ID, "label": "x"}])
    found = asyncio.run(PlainApi(channel).find())
    if [(p.id, p.label) for p in found] != [(uuid.UUID(FOLDER_ID), "x")]:
        raise AssertionError(f"unexpected find result {found}")
    if channel.calls != [("POST", "1.0/plain/find", {"criteria": {}})]:
        raise AssertionError(f"unexpected calls {channel.calls}")


def assert_query_operators() -> None:
    expected = {
        "exact": 3,
        "eq": {"eq": 3},
        "ne": {"ne": 3},
        "lt": {"lt": 3},
        "gt": {"gt": 3},
        "le": {"le": 3},
        "ge": {"ge": 3},
    }
    for name, wire in expected.items():
        actual = getattr(Query, name)(3).to_json()
        if actual != wire:
            raise AssertionError(f"Query.{name}: expected {wire!r}, got {actual!r}")


def assert_renders_details() -> None:
    Sample = details("SampleDetails", "revisions", "parent", "folders")
    if str(Sample()) != "model":
        raise AssertionError(f"expected 'model', got {Sample()!s}")
    rendered = str(Sample().with_folders().with_revisions())
    if rendered != "model+revisions+folders":
        raise AssertionError(f"flags should follow declaration order, got {rendered}")
    if str(Sample.all()) != "model+revisions+parent+folders":
        raise AssertionError(f"unexpected all() rendering {Sample.all()!s}")
    if "parent" in Sample().with_revisions():
        raise AssertionError("parent was never requested")
    try:
        Sample("bogus")
    except ValueError:
        pass
    else:
        raise AssertionError("unknown detail flags should be rejected")


def assert_decodes_values() -> None:
    related = decode_value(Related["Folder"], ROOT_FOLDER_ID, path="parent")
    if related != Related(uuid.UUID(ROOT_FOLDER_ID)) or related.is_embedded:
        raise AssertionError(f"unexpected relation {related!r}")
    if related.to_json() != ROOT_FOLDER_ID:
        raise AssertionError("relations should encode as their id")

    if decode_value(int | None, None) is not None:
        raise AssertionError("optional values accept null")
    if decode_value(list[uuid.UUID], [REVISION_ID]) != [uuid.UUID(REVISION_ID)]:
        raise AssertionError("lists of UUIDs should decode")
    raw = {"a": [1, {"b": None}]}
    if decode_value(dict, raw) != raw or decode_value(list, [raw]) != [raw]:
        raise AssertionError("untyped containers should decode as they are")
    if decode_value(dict[str, int], {"a": 1}) != {"a": 1}:
        raise AssertionError("typed mappings should decode")

    for tp, value in (
        (int, True),
        (int, "1"),
        (bool, 1),
        (str, None),
        (uuid.UUID, "not-a-uuid"),
        (list[int], {"a": 1}),
        (dict, [1]),
        (dict[str, int], {"a": "1"}),
        (Related["Folder"], 42),
    ):
        try:
            decode_value(tp, value)
        except DecodeError:
            continue
        raise AssertionError(f"expected DecodeError for {tp!r} with {value!r}")


def main() -> None:
    assert_parses_tags()
    assert_rejects_bad_tags()
    assert_rejects_bad_field_names()
    assert_partitions_fields()
    assert_generates_scenario_binding()
    assert_generates_binding_without_search_fields()
    assert_query_operators()
    assert_renders_details()
    assert_decodes_values()
    print("schema test passed")


if __name__ == "__main__":
    main()
