"""Tests for translating peer JSON schemas into input validators."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from peer_bridge.schema import ANY, schema_to_annotation, translate_schema


def test_required_object_property_and_passthrough_of_extras() -> None:
    validator = translate_schema(
        {"type": "object", "properties": {"a": {"type": "string"}}, "required": ["a"]}
    )

    assert validator.accepts({"a": "x"})
    assert validator.accepts({"a": "x", "extra": 1})
    assert not validator.accepts({})


def test_validate_returns_the_original_value() -> None:
    validator = translate_schema({"type": "object", "properties": {"a": {"type": "string"}}})
    payload = {"a": "x", "extra": [1, 2]}

    assert validator.validate(payload) is payload


def test_validate_raises_validation_error_on_rejection() -> None:
    validator = translate_schema({"type": "string"})

    with pytest.raises(ValidationError):
        validator.validate(5)


def test_mixed_enum_accepts_only_listed_literals() -> None:
    validator = translate_schema({"enum": ["a", 1, True]})

    assert validator.accepts("a")
    assert validator.accepts(1)
    assert validator.accepts(True)
    assert not validator.accepts("b")


def test_numeric_enum_rejects_booleans_and_floats() -> None:
    binary = translate_schema({"enum": [0, 1]})
    single = translate_schema({"enum": [1]})

    assert binary.accepts(0)
    assert binary.accepts(1)
    assert not binary.accepts(True)
    assert not binary.accepts(False)
    assert single.accepts(1)
    assert not single.accepts(True)
    assert not single.accepts(1.0)


def test_null_enum_member_matches_exactly() -> None:
    validator = translate_schema({"enum": ["auto", None, 3]})

    assert validator.accepts("auto")
    assert validator.accepts(None)
    assert validator.accepts(3)
    assert not validator.accepts(3.0)
    assert not validator.accepts("3")


def test_single_value_enum_is_literal_equality() -> None:
    validator = translate_schema({"enum": ["only"]})

    assert validator.accepts("only")
    assert not validator.accepts("other")


def test_string_enum() -> None:
    validator = translate_schema({"type": "string", "enum": ["debug", "release"]})

    assert validator.accepts("debug")
    assert validator.accepts("release")
    assert not validator.accepts("profile")


@pytest.mark.parametrize(
    ("schema", "accepted", "rejected"),
    [
        ({"type": "string"}, "text", 3),
        ({"type": "integer"}, 3, 3.5),
        ({"type": "integer"}, -7, "7"),
        ({"type": "number"}, 2.5, "2.5"),
        ({"type": "number"}, 2, None),
        ({"type": "boolean"}, False, "false"),
    ],
)
def test_scalar_types(schema: dict[str, Any], accepted: Any, rejected: Any) -> None:
    validator = translate_schema(schema)

    assert validator.accepts(accepted)
    assert not validator.accepts(rejected)


def test_array_items_are_translated_recursively() -> None:
    validator = translate_schema({"type": "array", "items": {"type": "integer"}})

    assert validator.accepts([1, 2, 3])
    assert validator.accepts([])
    assert not validator.accepts([1, "two"])
    assert not validator.accepts("not a list")


def test_array_without_items_accepts_any_members() -> None:
    validator = translate_schema({"type": "array"})

    assert validator.accepts([1, "two", {"three": 3}, None])


def test_untyped_schema_with_properties_is_an_object() -> None:
    validator = translate_schema(
        {"properties": {"count": {"type": "integer"}}, "required": ["count"]}
    )

    assert validator.accepts({"count": 2})
    assert not validator.accepts({"count": "two"})
    assert not validator.accepts({})


def test_optional_properties_may_be_omitted() -> None:
    validator = translate_schema(
        {
            "type": "object",
            "properties": {"scheme": {"type": "string"}, "verbose": {"type": "boolean"}},
            "required": ["scheme"],
        }
    )

    assert validator.accepts({"scheme": "App"})
    assert not validator.accepts({"scheme": "App", "verbose": "yes"})


def test_nested_objects() -> None:
    validator = translate_schema(
        {
            "type": "object",
            "properties": {
                "target": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                    "required": ["name"],
                }
            },
            "required": ["target"],
        }
    )

    assert validator.accepts({"target": {"name": "App"}})
    assert not validator.accepts({"target": {}})


def test_composition_keywords_degrade_to_any_inside_structure() -> None:
    validator = translate_schema(
        {
            "type": "object",
            "properties": {
                "mode": {"oneOf": [{"type": "string"}, {"type": "integer"}]},
                "ref": {"$ref": "#/definitions/Thing"},
                "name": {"type": "string"},
            },
            "required": ["mode", "name"],
        }
    )

    assert validator.accepts({"mode": [1, 2], "ref": object(), "name": "x"})
    assert not validator.accepts({"mode": 1, "name": 2})
    assert not validator.accepts({"name": "x"})


def test_description_is_attached_as_metadata() -> None:
    validator = translate_schema({"type": "string", "description": "Path to the project"})

    assert validator.description == "Path to the project"
    assert validator.accepts("/tmp/App.xcodeproj")


@pytest.mark.parametrize(
    "schema",
    [
        None,
        [],
        [1, 2, 3],
        "string",
        42,
        True,
        {},
        {"type": ["string", "null"]},
        {"type": "null"},
        {"anyOf": [{"type": "string"}]},
        {"enum": []},
        {"enum": "not-a-list"},
        {"enum": [{"nested": "object"}]},
        {"type": "object", "properties": "not-a-mapping"},
        {"type": "object", "properties": {"a": None}, "required": "a"},
    ],
)
def test_translation_never_raises_and_stays_permissive(schema: Any) -> None:
    validator = translate_schema(schema)

    assert validator.accepts({"anything": ["goes"]})


def test_unsupported_shapes_produce_the_explicit_any_fallback() -> None:
    assert schema_to_annotation(None) is ANY
    assert schema_to_annotation({"allOf": []}) is ANY
    assert translate_schema(None).is_permissive
    assert translate_schema({"$ref": "#/x"}).accepts(object())


def test_deeply_nested_unknown_keywords_do_not_raise() -> None:
    schema: dict[str, Any] = {"anyOf": []}
    for _ in range(200):
        schema = {"type": "object", "properties": {"child": schema, "x-vendor": {"$ref": "#"}}}

    validator = translate_schema(schema)

    assert validator.accepts({"child": {"child": {}}})


def test_cyclic_schema_degrades_instead_of_recursing_forever() -> None:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    }
    schema["properties"]["self"] = schema

    validator = translate_schema(schema)

    assert validator.accepts({"name": "root", "self": {"anything": 1}})
    assert not validator.accepts({"self": {}})
    assert not validator.accepts({"name": 5})
    assert not validator.accepts("not an object")


def test_branching_self_reference_translates_promptly() -> None:
    node: dict[str, Any] = {"type": "object", "properties": {}}
    node["properties"] = {"a": node, "b": node, "n": {"type": "integer"}}

    validator = translate_schema(node)

    assert validator.accepts({"a": {}, "b": {"n": "ignored below the first level"}, "n": 1})
    assert not validator.accepts({"n": "1"})


def test_shared_subtree_is_validated_at_every_use() -> None:
    point = {"type": "object", "properties": {"x": {"type": "number"}}, "required": ["x"]}
    schema = {"type": "object", "properties": {"start": point, "end": point}}

    validator = translate_schema(schema)

    assert validator.accepts({"start": {"x": 0}, "end": {"x": 1.5}})
    assert not validator.accepts({"start": {"x": 0}, "end": {}})


def test_tuple_style_items_degrade_to_any_members() -> None:
    validator = translate_schema({"type": "array", "items": [{"type": "string"}]})

    assert validator.accepts(["a", 1])
    assert not validator.accepts({"a": 1})
