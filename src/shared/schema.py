"""JSON Schema helpers for tool parameters."""

from typing import Any, Optional

from jsonschema import Draft7Validator


EMPTY_OBJECT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {},
    "required": []
}

# Loose type names accepted in parameter declarations
_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
}

# Declaration keys copied into the property schema as-is
_PASSTHROUGH_KEYWORDS = ("default", "minimum", "maximum", "minLength", "pattern")


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Check ``data`` against a Draft 7 schema.

    Returns:
        Tuple of (is_valid, error messages ordered by location)
    """
    if not schema:
        return True, []

    errors = sorted(
        Draft7Validator(schema).iter_errors(data),
        key=lambda error: list(error.path)
    )

    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.path)
        messages.append(f"{location}: {error.message}" if location else error.message)

    return not messages, messages


def create_tool_schema(
    parameters: list[dict[str, Any]],
    required: Optional[list[str]] = None
) -> dict[str, Any]:
    """
    Build an object schema from parameter declarations.

    Each declaration is a dict with ``name`` and optionally ``type``,
    ``description``, ``required`` and the keywords in
    ``_PASSTHROUGH_KEYWORDS``. Without an explicit ``required`` list, a
    parameter is required unless it declares a default or
    ``required: False``.
    """
    if not parameters:
        return {**EMPTY_OBJECT_SCHEMA, "properties": {}, "required": []}

    properties: dict[str, Any] = {}
    for param in parameters:
        declared_type = param.get("type", "string")
        prop = {
            "type": _JSON_TYPES.get(declared_type, declared_type),
            "description": param.get("description", ""),
        }
        prop.update({k: param[k] for k in _PASSTHROUGH_KEYWORDS if k in param})
        properties[param["name"]] = prop

    if required is None:
        required = [
            param["name"] for param in parameters
            if param.get("required", True) and "default" not in param
        ]

    return {"type": "object", "properties": properties, "required": required}
