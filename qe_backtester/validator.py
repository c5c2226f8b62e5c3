"""
Configuration Validator
-----------------------
Provides utilities for strict schema validation of configuration dictionaries against
defined Dataclasses.

The backtester refuses to start when the YAML file contains a key that does not exist
in the schema, so a misspelled parameter can never be silently ignored.
"""

from dataclasses import fields, is_dataclass
from typing import Any, Dict, Set, Type, cast, get_type_hints


def validate_keys(
    raw_config: Dict[str, Any], data_class: Type[Any], path: str = ""
) -> None:
    """
    Recursively validates that all keys in a raw configuration dictionary exist
    as fields in the target Dataclass schema.

    Args:
        raw_config (Dict[str, Any]): The raw configuration dictionary (usually loaded from YAML).
        data_class (Type[Any]): The Dataclass type definition to validate against.
        path (str, optional): The dot-notation path to the current section (used for error messaging).
                              Defaults to "".

    Raises:
        ValueError: If 'raw_config' is not a mapping or contains keys that are not present
                    in 'data_class'.
    """
    error_path = path if path else "root"
    if not isinstance(raw_config, dict):
        raise ValueError(
            f"Config Error: expected a mapping at '{error_path}', "
            f"got {type(raw_config).__name__}"
        )

    allowed_fields: Set[str] = {f.name for f in fields(data_class)}

    unknown_keys = set(raw_config.keys()) - allowed_fields

    if unknown_keys:
        raise ValueError(
            f"Config Error: Unknown keys detected at '{error_path}': {sorted(unknown_keys)}. "
            f"Allowed keys: {sorted(allowed_fields)}"
        )

    # Annotations may be postponed strings; resolve them to the real classes.
    hints = get_type_hints(data_class)

    for field in fields(data_class):
        value = raw_config.get(field.name)
        field_type = hints.get(field.name, field.type)

        if is_dataclass(field_type) and isinstance(value, dict):
            new_path = f"{path}.{field.name}" if path else field.name
            validate_keys(value, cast(Type[Any], field_type), path=new_path)
