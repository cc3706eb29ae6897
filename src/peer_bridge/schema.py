"""Translate peer-supplied JSON schema documents into input validators.

The peer's schemas are versioned outside this repository, so translation is
lenient: anything outside the supported vocabulary (primitive types, ``enum``,
``array`` and ``object``) becomes :data:`ANY`, which accepts every value.
Translation never raises.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
)

from tool_host.logging import get_logger

logger = get_logger(__name__)

ANY: Any = Any
"""Explicit permissive fallback used for unsupported schema nodes."""

MAX_SCHEMA_DEPTH = 32

_SCALAR_TYPES: dict[str, Any] = {
    "string": StrictStr,
    "integer": StrictInt,
    "number": StrictFloat,
    "boolean": StrictBool,
}

_LITERAL_TYPES = (str, int, float, bool, type(None))

# id(node) -> translated annotation; None while the node is being translated.
_Seen = dict[int, Any]


class PeerSchemaObject(BaseModel):
    """Base for generated object validators; unknown fields pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=False, protected_namespaces=())


def _description(schema: Mapping[str, Any]) -> Optional[str]:
    value = schema.get("description")
    return value if isinstance(value, str) and value else None


def _with_description(annotation: Any, description: Optional[str]) -> Any:
    if description is None or annotation is ANY:
        return annotation
    return Annotated[annotation, Field(description=description)]


def _exact_members(members: tuple[Any, ...]) -> Callable[[Any], Any]:
    """Reject values that only equal a member after coercion (``True`` for ``1``)."""

    def check(value: Any) -> Any:
        if any(type(value) is type(member) and value == member for member in members):
            return value
        raise ValueError(f"Input should be one of {list(members)!r}")

    return check


def _enum_annotation(values: Any) -> Any:
    if not isinstance(values, list) or not values:
        return ANY
    if not all(isinstance(value, _LITERAL_TYPES) for value in values):
        return ANY
    members = tuple(values)
    if len(members) == 1:
        literal = Literal[members[0]]  # type: ignore[valid-type]
    elif all(isinstance(value, str) for value in members):
        literal = Literal[members]  # type: ignore[valid-type]
    else:
        # One literal per member so bool/int members stay distinct.
        literal = Union[tuple(Literal[value] for value in members)]  # type: ignore[valid-type]
    return Annotated[literal, BeforeValidator(_exact_members(members))]


def _object_annotation(schema: Mapping[str, Any], depth: int, seen: _Seen) -> Any:
    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}
    required_raw = schema.get("required")
    required = (
        {item for item in required_raw if isinstance(item, str)}
        if isinstance(required_raw, list)
        else set()
    )

    fields: dict[str, Any] = {}
    for index, (key, child) in enumerate(properties.items()):
        name = str(key)
        annotation = _translate(child, depth + 1, seen)
        description = _description(child) if isinstance(child, Mapping) else None
        if name in required:
            info = Field(..., alias=name, description=description)
        else:
            info = Field(default=None, alias=name, description=description)
        fields[f"field_{index}"] = (annotation, info)

    return create_model(  # type: ignore[call-overload]
        "PeerSchemaObject",
        __base__=PeerSchemaObject,
        __doc__=_description(schema),
        **fields,
    )


def _translate(schema: Any, depth: int, seen: _Seen) -> Any:
    if depth > MAX_SCHEMA_DEPTH or not isinstance(schema, Mapping):
        return ANY

    key = id(schema)
    if key in seen:
        # None marks a node still on the current path: a cycle.
        cached = seen[key]
        return ANY if cached is None else cached
    seen[key] = None
    annotation = _translate_node(schema, depth, seen)
    seen[key] = annotation
    return annotation


def _translate_node(schema: Mapping[str, Any], depth: int, seen: _Seen) -> Any:
    if "enum" in schema:
        return _with_description(_enum_annotation(schema.get("enum")), _description(schema))

    declared = schema.get("type")
    if isinstance(declared, str) and declared in _SCALAR_TYPES:
        return _with_description(_SCALAR_TYPES[declared], _description(schema))

    if declared == "array":
        items = schema.get("items")
        item_annotation = _translate(items, depth + 1, seen) if items is not None else ANY
        return _with_description(list[item_annotation], _description(schema))  # type: ignore[valid-type]

    if declared == "object" or (declared is None and isinstance(schema.get("properties"), Mapping)):
        return _object_annotation(schema, depth, seen)

    # oneOf/anyOf/allOf/$ref, type lists, "null" and anything unrecognised.
    return ANY


def schema_to_annotation(schema: Any) -> Any:
    """Translate one schema node into a pydantic type annotation."""

    try:
        return _translate(schema, 0, {})
    except Exception as exc:  # noqa: BLE001 - never reject on translation bugs
        logger.warning("bridge.schema.translate_failed", error=str(exc))
        return ANY


@dataclass(frozen=True)
class SchemaValidator:
    """Runtime validator generated from a schema document."""

    annotation: Any
    adapter: TypeAdapter[Any]
    description: Optional[str] = None

    @property
    def is_permissive(self) -> bool:
        return self.annotation is ANY

    def validate(self, value: Any) -> Any:
        """Return ``value`` unchanged when accepted, raise ``ValidationError`` otherwise."""

        if self.is_permissive:
            return value
        self.adapter.validate_python(value)
        return value

    def accepts(self, value: Any) -> bool:
        try:
            self.validate(value)
        except ValidationError:
            return False
        return True


_PERMISSIVE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def permissive_validator(description: Optional[str] = None) -> SchemaValidator:
    return SchemaValidator(annotation=ANY, adapter=_PERMISSIVE_ADAPTER, description=description)


def translate_schema(schema: Any) -> SchemaValidator:
    """Build a :class:`SchemaValidator` for ``schema``; never raises."""

    description = _description(schema) if isinstance(schema, Mapping) else None
    annotation = schema_to_annotation(schema)
    if annotation is ANY:
        return permissive_validator(description)
    try:
        adapter: TypeAdapter[Any] = TypeAdapter(annotation)
    except Exception as exc:  # noqa: BLE001 - pydantic may refuse exotic literals
        logger.warning("bridge.schema.adapter_failed", error=str(exc))
        return permissive_validator(description)
    return SchemaValidator(annotation=annotation, adapter=adapter, description=description)


__all__ = [
    "ANY",
    "MAX_SCHEMA_DEPTH",
    "PeerSchemaObject",
    "SchemaValidator",
    "permissive_validator",
    "schema_to_annotation",
    "translate_schema",
]
