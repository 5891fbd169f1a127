"""
JSON Schema -> pydantic translation for bridged MCP tools.

MCP servers describe tool inputs with plain JSON Schema. Local tools declare
parameters as pydantic types. ``translate`` turns the former into the latter
so bridged and local tools validate through the same ``ParameterSchema``.

Supported vocabulary: type (including type lists), enum, const, minLength,
maxLength, pattern, minimum, maximum, items, properties, required,
additionalProperties, default, description. Composition keywords are
rejected outright instead of being approximated.
"""

from __future__ import annotations

import copy
import re
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    create_model,
    model_validator,
)

from toolbridge.errors import SchemaTranslationError
from toolbridge.tools.types import ParameterSchema, format_validation_error

UNSUPPORTED_KEYWORDS = ("oneOf", "anyOf", "allOf", "$ref", "not")

EMPTY_OBJECT_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


def translate(schema: Optional[Dict[str, Any]], name: str = "Input") -> ParameterSchema:
    """
    Translate a JSON Schema into a ParameterSchema.

    Args:
        schema: The JSON Schema. ``None`` or ``{}`` means "any object".
        name: Base name for generated models (shows up in error messages).

    Raises:
        SchemaTranslationError: The schema uses an unsupported keyword, an
            empty enum, or an invalid pattern.
    """
    annotation = translate_node(schema, name)
    source = copy.deepcopy(schema or EMPTY_OBJECT_SCHEMA)
    return ParameterSchema(annotation, source=source, postprocess=to_arguments)


def translate_node(schema: Optional[Dict[str, Any]], name: str = "Input") -> Any:
    """Translate one schema node into a type annotation pydantic can validate."""
    if not schema:
        return _object_type({}, name)
    if not isinstance(schema, dict):
        raise SchemaTranslationError(f"Schema for '{name}' must be an object, got {type(schema).__name__}")

    for keyword in UNSUPPORTED_KEYWORDS:
        if keyword in schema:
            raise SchemaTranslationError(f"Unsupported JSON Schema pattern: {keyword}")

    if "const" in schema:
        return _literal_type([schema["const"]])

    if "enum" in schema:
        values = schema["enum"]
        if not isinstance(values, list) or not values:
            raise SchemaTranslationError("Empty enum is not supported")
        return _literal_type(values)

    schema_type = normalize_type(schema.get("type"))

    if schema_type == "string":
        return _string_type(schema)
    if schema_type in ("number", "integer"):
        return _number_type(schema, integer=schema_type == "integer")
    if schema_type == "boolean":
        return StrictBool
    if schema_type == "null":
        return None
    if schema_type == "array":
        return _array_type(schema, name)
    if schema_type == "object":
        return _object_type(schema, name)

    # No usable type: infer from shape, otherwise accept anything.
    if "properties" in schema:
        return _object_type(schema, name)
    if "items" in schema:
        return _array_type(schema, name)
    return Any


def normalize_type(schema_type: Union[str, List[str], None]) -> Optional[str]:
    """Collapse a type list to its first non-null entry (``null`` if none)."""
    if not schema_type:
        return None
    if isinstance(schema_type, list):
        for entry in schema_type:
            if entry != "null":
                return entry
        return "null"
    return schema_type


# ── Leaf builders ─────────────────────────────────────────────────────────


def _same_json_value(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    return a == b


def _literal_type(values: List[Any]) -> Any:
    if all(v is None or isinstance(v, (str, bool)) for v in values):
        return Literal[tuple(values)]

    # Numbers compare by JSON value (1.0 matches 1); objects and arrays
    # cannot be typing.Literal members at all.
    allowed = copy.deepcopy(values)

    def _check(value: Any) -> Any:
        for candidate in allowed:
            if _same_json_value(value, candidate):
                return copy.deepcopy(candidate)
        raise ValueError(f"Input should be one of {allowed!r}")

    return Annotated[Any, AfterValidator(_check)]


def _string_type(schema: Dict[str, Any]) -> Any:
    metadata: List[Any] = [
        StringConstraints(
            strict=True,
            min_length=schema.get("minLength"),
            max_length=schema.get("maxLength"),
        )
    ]
    pattern = schema.get("pattern")
    if pattern:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise SchemaTranslationError(f"Invalid pattern {pattern!r}: {exc}") from exc

        def _match(value: str) -> str:
            if compiled.search(value) is None:
                raise ValueError(f"String should match pattern '{pattern}'")
            return value

        metadata.append(AfterValidator(_match))
    return Annotated[tuple([str] + metadata)]


def _integral(value: float) -> int:
    if not value.is_integer():
        raise ValueError("Input should be a valid integer")
    return int(value)


# JSON has no separate integer type: 5.0 is a valid "integer".
IntegralFloat = Annotated[StrictFloat, AfterValidator(_integral)]


def _number_type(schema: Dict[str, Any], integer: bool) -> Any:
    minimum = schema.get("minimum")
    maximum = schema.get("maximum")
    base: Any = Union[StrictInt, IntegralFloat] if integer else Union[StrictInt, StrictFloat]
    if minimum is None and maximum is None:
        return base

    def _bounds(value: Union[int, float]) -> Union[int, float]:
        if minimum is not None and value < minimum:
            raise ValueError(f"Input should be greater than or equal to {minimum}")
        if maximum is not None and value > maximum:
            raise ValueError(f"Input should be less than or equal to {maximum}")
        return value

    return Annotated[base, AfterValidator(_bounds)]


def _array_type(schema: Dict[str, Any], name: str) -> Any:
    items = schema.get("items")
    item_type = translate_node(items, f"{name}Item") if items is not None else Any
    return List[item_type]


# ── Objects ───────────────────────────────────────────────────────────────


class ParameterModel(BaseModel):
    """Base for generated object models; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=False)


class OpenParameterModel(ParameterModel):
    model_config = ConfigDict(extra="allow")


class ClosedParameterModel(ParameterModel):
    model_config = ConfigDict(extra="forbid")


def _default_factory(value: Any) -> Callable[[], Any]:
    value = copy.deepcopy(value)
    return lambda: copy.deepcopy(value)


def _field_suffix(key: str) -> str:
    cleaned = re.sub(r"\W", "_", key)
    return cleaned[:1].upper() + cleaned[1:]


def _object_type(schema: Dict[str, Any], name: str) -> Any:
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    additional = schema.get("additionalProperties")

    fields: Dict[str, Any] = {}
    for index, (key, prop) in enumerate(properties.items()):
        annotation = translate_node(prop, f"{name}{_field_suffix(key)}")
        description = prop.get("description") if isinstance(prop, dict) else None
        if isinstance(prop, dict) and "default" in prop:
            info = Field(
                default_factory=_default_factory(prop["default"]), alias=key, description=description
            )
        elif key in required:
            info = Field(alias=key, description=description)
        else:
            info = Field(default=None, alias=key, description=description)
        fields[f"field_{index}"] = (annotation, info)

    validators: Dict[str, Any] = {}
    if additional is True:
        base = OpenParameterModel
    elif additional is False:
        base = ClosedParameterModel
    elif isinstance(additional, dict):
        base = OpenParameterModel
        validators["check_additional_properties"] = model_validator(mode="after")(
            _extras_validator(translate_node(additional, f"{name}Extra"))
        )
    else:
        base = ParameterModel

    return create_model(
        name,
        __base__=base,
        __doc__=schema.get("description"),
        __validators__=validators or None,
        **fields,
    )


def _extras_validator(annotation: Any) -> Callable[[BaseModel], BaseModel]:
    adapter = TypeAdapter(annotation)

    def check_additional_properties(model: BaseModel) -> BaseModel:
        extras = model.__pydantic_extra__ or {}
        for key, value in extras.items():
            try:
                extras[key] = adapter.validate_python(value)
            except ValidationError as exc:
                raise ValueError(f"{key}: {format_validation_error(exc)}") from None
        return model

    return check_additional_properties


def to_arguments(value: Any) -> Any:
    """
    Convert validated data back into JSON-shaped Python values.

    Generated models become dicts keyed by the original property names.
    Optional properties that were absent and carry no default are omitted,
    so the remote server sees exactly what the caller sent plus defaults.
    Schema defaults are the only fields built with a default factory, which
    keeps a declared ``"default": null`` distinct from "no default".
    """
    if isinstance(value, BaseModel):
        data: Dict[str, Any] = {}
        for field_name, info in type(value).model_fields.items():
            if field_name in value.model_fields_set or info.default_factory is not None:
                data[info.alias or field_name] = to_arguments(getattr(value, field_name))
        for key, extra in (value.__pydantic_extra__ or {}).items():
            data[key] = to_arguments(extra)
        return data
    if isinstance(value, list):
        return [to_arguments(item) for item in value]
    if isinstance(value, dict):
        return {key: to_arguments(item) for key, item in value.items()}
    return value
