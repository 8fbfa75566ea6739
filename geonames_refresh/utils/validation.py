"""
Input validation utilities for configuration values.

Table names end up in DDL statements, so they are checked here before any
SQL is composed.
"""

import re


class ConfigValidationError(ValueError):
    """Raised when a configuration value is unusable."""
    pass


_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_LANGUAGE_CODE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})?$")


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Sanitize an SQL identifier (table name, column name, etc.).

    Args:
        identifier: The identifier to sanitize
        field_name: Name of the field (for error messages)

    Returns:
        The validated identifier

    Raises:
        ConfigValidationError: If validation fails

    Examples:
        >>> sanitize_sql_identifier("geonames_working")
        'geonames_working'
        >>> sanitize_sql_identifier("geonames; DROP TABLE geonames;")  # doctest: +SKIP
        ConfigValidationError: identifier contains invalid characters
    """
    if not identifier or not isinstance(identifier, str):
        raise ConfigValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    if not _IDENTIFIER_RE.match(identifier):
        raise ConfigValidationError(
            f"{field_name} contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    # PostgreSQL truncates longer names silently
    if len(identifier) > 63:
        raise ConfigValidationError(f"{field_name} exceeds PostgreSQL maximum length of 63 characters")

    return identifier


def validate_language_code(code: str, field_name: str = "language_code") -> str:
    """
    Validate a language code taken from a lookup file name.

    Accepts ISO 639 style codes ("en", "de") with an optional region or
    script suffix ("pt-BR", "zh-Hant").

    Raises:
        ConfigValidationError: If the code is malformed
    """
    if not code or not isinstance(code, str):
        raise ConfigValidationError(f"{field_name} must be a non-empty string")

    if not _LANGUAGE_CODE_RE.match(code):
        raise ConfigValidationError(f"{field_name} '{code}' is not a valid language code")

    return code
