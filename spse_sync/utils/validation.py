"""
Input validation utilities for CLI arguments and read accessors.

Everything that ends up interpolated into SQL (table and column names) or
used as a query bound (limit, offset, kode RUP) passes through here first.
"""

import re


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


def validate_kode_rup(kode_rup: str, field_name: str = "kode_rup") -> str:
    """
    Validate a procurement code supplied by a caller.

    Args:
        kode_rup: The code to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated code (stripped of whitespace)

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_kode_rup(" 12345678 ")
        '12345678'
        >>> validate_kode_rup("12-34")  # doctest: +SKIP
        ValidationError: kode_rup must contain only digits
    """
    if not kode_rup or not isinstance(kode_rup, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    kode_rup = kode_rup.strip()

    if not kode_rup:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if not re.fullmatch(r"[0-9]+", kode_rup):
        raise ValidationError(f"{field_name} must contain only digits")

    if len(kode_rup) > 19:
        raise ValidationError(f"{field_name} exceeds maximum length of 19 digits")

    return kode_rup


def validate_limit(limit: int, field_name: str = "limit", max_limit: int = 10000) -> int:
    """
    Validate a limit parameter for queries.

    Examples:
        >>> validate_limit(100)
        100
        >>> validate_limit(0)  # doctest: +SKIP
        ValidationError: limit must be a positive integer
    """
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(limit).__name__}")

    if limit <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {limit}")

    if limit > max_limit:
        raise ValidationError(f"{field_name} exceeds maximum of {max_limit}")

    return limit


def validate_offset(offset: int, field_name: str = "offset") -> int:
    """
    Validate an offset parameter for queries.

    Examples:
        >>> validate_offset(0)
        0
        >>> validate_offset(-5)  # doctest: +SKIP
        ValidationError: offset must be a non-negative integer
    """
    if not isinstance(offset, int) or isinstance(offset, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(offset).__name__}")

    if offset < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer, got {offset}")

    return offset


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Sanitize an SQL identifier (table name, column name, etc.).

    Field mappings are loaded from YAML and their names are spliced into
    DDL and upsert statements, so only plain identifiers are accepted.

    Examples:
        >>> sanitize_sql_identifier("kode_rup")
        'kode_rup'
        >>> sanitize_sql_identifier("x; DROP TABLE spse_kontrak;")  # doctest: +SKIP
        ValidationError: identifier contains invalid characters
    """
    if not identifier or not isinstance(identifier, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    if len(identifier) > 63:  # PostgreSQL limit
        raise ValidationError(f"{field_name} exceeds PostgreSQL maximum length of 63 characters")

    reserved_keywords = {
        "select", "insert", "update", "delete", "drop", "create", "alter",
        "table", "database", "index", "view", "user", "grant", "revoke",
        # managed by the sink itself
        "id", "created_at", "last_update", "deleted_at", "active_year",
    }
    if identifier.lower() in reserved_keywords:
        raise ValidationError(
            f"{field_name} '{identifier}' is reserved. "
            "Please use a different name."
        )

    return identifier
