# charactergen/validation.py

"""
Declarative schema validation for structured LLM output.

A `Schema` is a small, typed subset of JSON Schema: `object`, `array`,
`string`, `integer`, `number` and `boolean` types, with `properties`,
`required`, `items`, `minItems`/`maxItems`, `enum`, `oneOf` and free-text
`description`. Schemas are parsed once (from YAML templates or caller dicts)
into frozen pydantic models and are read-only afterwards.

Two checks live here:
- `validate_schema_shape` rejects a malformed schema definition with a
  `SchemaError` before it is ever used on data.
- `validate_value` / `collect_violations` check a JSON-like value against a
  schema and report every violation with a field path such as
  `weapons[1].damage`.

Validation is pure: the same schema/value pair always yields the same verdict.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from charactergen.exceptions import SchemaError, ValidationError, Violation

SchemaType = Literal["object", "array", "string", "integer", "number", "boolean"]


class Schema(BaseModel):
    """
    Recursive type descriptor for a JSON value.

    Field names follow Python conventions; the JSON Schema spellings
    (`minItems`, `maxItems`, `oneOf`) are accepted as aliases so templates
    can be written the usual way.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: Optional[SchemaType] = None
    description: Optional[str] = None
    properties: Optional[Dict[str, "Schema"]] = None
    required: Tuple[str, ...] = ()
    items: Optional["Schema"] = None
    min_items: Optional[int] = Field(default=None, alias="minItems")
    max_items: Optional[int] = Field(default=None, alias="maxItems")
    enum: Optional[Tuple[Any, ...]] = None
    one_of: Optional[Tuple["Schema", ...]] = Field(default=None, alias="oneOf")

    @model_validator(mode="after")
    def check_shape(self) -> "Schema":
        # SchemaError is not a ValueError, so pydantic lets it bubble up as is.
        if self.one_of is not None:
            if not self.one_of:
                raise SchemaError("oneOf must list at least one schema")
            return self

        if self.type is None:
            raise SchemaError("missing type")

        if self.type == "object":
            if self.properties is None:
                raise SchemaError("missing properties")
            for name in self.required:
                if name not in self.properties:
                    raise SchemaError(f"required field not in properties: {name}")

        if self.type == "array":
            if self.items is None:
                raise SchemaError("missing items")
            for bound in (self.min_items, self.max_items):
                if bound is not None and bound < 0:
                    raise SchemaError("negative item bound")
            if (
                self.min_items is not None
                and self.max_items is not None
                and self.min_items > self.max_items
            ):
                raise SchemaError("minItems > maxItems")

        return self

    def to_json_schema(self) -> Dict[str, Any]:
        """Dump back to a plain JSON Schema dict (used in provider requests)."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


def validate_schema_shape(raw: Any) -> Schema:
    """
    Parse and check a schema definition.

    Args:
        raw: A `Schema` (returned unchanged) or a mapping in JSON Schema form.

    Returns:
        Schema: The typed, frozen schema.

    Raises:
        SchemaError: If the definition is malformed.
    """
    if isinstance(raw, Schema):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaError("schema must be a mapping")

    try:
        return Schema.model_validate(dict(raw))
    except PydanticValidationError as e:
        error = e.errors()[0]
        loc = ".".join(str(part) for part in error["loc"])
        if error["type"] == "literal_error" and error["loc"][-1] == "type":
            raise SchemaError(f"unknown type: {error['input']}") from e
        raise SchemaError(f"{loc}: {error['msg']}") from e


# ─── Value validation ─────────────────────────────────────────────────────────

def _is_object(value: Any) -> bool:
    return isinstance(value, Mapping) and all(isinstance(k, str) for k in value)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_TYPE_CHECKS = {
    "object": _is_object,
    "array": lambda v: isinstance(v, (list, tuple)),
    "string": lambda v: isinstance(v, str),
    "integer": _is_integer,
    "number": _is_number,
    "boolean": lambda v: isinstance(v, bool),
}

_JSON_TYPE_NAMES = {
    dict: "object",
    list: "array",
    tuple: "array",
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    type(None): "null",
}


def _type_name(value: Any) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


def _child_path(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _check(schema: Schema, value: Any, path: str, out: List[Violation]) -> None:
    where = path or "$"

    if schema.one_of is not None:
        if not any(not collect_violations(alt, value, path) for alt in schema.one_of):
            out.append(Violation(where, "does not match any allowed alternative"))
        return

    if not _TYPE_CHECKS[schema.type](value):
        out.append(Violation(where, f"expected {schema.type}, got {_type_name(value)}"))
        return

    if schema.enum is not None and value not in schema.enum:
        allowed = ", ".join(str(v) for v in schema.enum)
        out.append(Violation(where, f"{value!r} is not one of: {allowed}"))

    if schema.type == "object":
        for name in schema.required:
            if name not in value:
                out.append(Violation(_child_path(path, name), "required field missing"))
        # Unknown keys are allowed.
        for name, child in schema.properties.items():
            if name in value:
                _check(child, value[name], _child_path(path, name), out)

    elif schema.type == "array":
        length = len(value)
        if schema.min_items is not None and length < schema.min_items:
            out.append(Violation(where, f"expected at least {schema.min_items} items, got {length}"))
        if schema.max_items is not None and length > schema.max_items:
            out.append(Violation(where, f"expected at most {schema.max_items} items, got {length}"))
        for index, element in enumerate(value):
            _check(schema.items, element, f"{path}[{index}]", out)


def collect_violations(schema: Schema, value: Any, path: str = "") -> List[Violation]:
    """
    Return every violation of `schema` by `value` (empty list when valid).

    All violations of a top-level call are collected rather than stopping at
    the first one, which makes provider contract failures easier to debug.
    """
    violations: List[Violation] = []
    _check(schema, value, path, violations)
    return violations


def validate_value(schema: Schema, value: Any) -> None:
    """
    Check `value` against `schema`.

    Raises:
        ValidationError: With the full list of violations if any were found.
    """
    violations = collect_violations(schema, value)
    if violations:
        raise ValidationError("value failed schema validation", violations)
