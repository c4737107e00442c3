"""
Identifier validation and quoting for dynamically named tables.

Table names come from configuration and cannot be bound as query
parameters, so they are validated against a strict ASCII pattern and then
double-quoted before being interpolated into SQL text.
"""

import re

VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
VALID_SCHEMA_TABLE = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)?$"
)

# PostgreSQL truncates longer identifiers (NAMEDATALEN - 1)
MAX_IDENTIFIER_LENGTH = 63


def validate_identifier(identifier: str) -> None:
    """
    Validate a SQL identifier (table or column name).

    Raises:
        ValueError: If the identifier is empty, too long or contains
            anything other than ASCII letters, digits and underscores
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"SQL identifier too long ({len(identifier)} > {MAX_IDENTIFIER_LENGTH}): "
            f"{identifier!r}"
        )

    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, and underscores are allowed, "
            "and must start with a letter or underscore."
        )


def validate_schema_table(schema_table: str) -> None:
    """Validate a ``table`` or ``schema.table`` name."""
    if not schema_table:
        raise ValueError("Schema.table identifier cannot be empty")

    if not VALID_SCHEMA_TABLE.match(schema_table):
        raise ValueError(
            f"Invalid schema.table identifier: {schema_table!r}. "
            "Only ASCII letters, digits, and underscores are allowed."
        )

    for part in schema_table.split("."):
        validate_identifier(part)


def quote_identifier(identifier: str) -> str:
    """Validate and double-quote a single identifier."""
    validate_identifier(identifier)
    return f'"{identifier}"'


def quote_schema_table(schema_table: str) -> str:
    """
    Validate and quote a ``table`` or ``schema.table`` name.

    Example:
        >>> quote_schema_table("public.latest_data_table")
        '"public"."latest_data_table"'
    """
    validate_schema_table(schema_table)
    return ".".join(f'"{part}"' for part in schema_table.split("."))


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Validate an integer setting such as a port or a batch size.

    Raises:
        ValueError: If the value is not an int (bools rejected) or is
            below ``min_value``
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            f"Invalid {param_name}: {value!r}. Must be an integer."
        )

    if value < min_value:
        raise ValueError(
            f"Invalid {param_name}: {value}. Must be >= {min_value}."
        )
