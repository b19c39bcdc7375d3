from __future__ import annotations

import jsonschema


def _field_name(error: jsonschema.ValidationError) -> str:
    if error.validator == "required" and isinstance(error.instance, dict):
        missing = [name for name in error.validator_value if name not in error.instance]
        if missing:
            return str(missing[0])
    if error.path:
        return ".".join(str(part) for part in error.path)
    return "arguments"


def describe_error(error: jsonschema.ValidationError) -> str:
    return f"{_field_name(error)}: {error.message}"


def validation_errors(schema: dict, instance: object) -> list[str]:
    validator = jsonschema.Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: e.json_path)
    return [describe_error(e) for e in errors]


def apply_defaults(schema: dict, arguments: dict) -> dict:
    result = dict(arguments)
    for name, prop_schema in schema.get("properties", {}).items():
        if name not in result and "default" in prop_schema:
            result[name] = prop_schema["default"]
    return result
