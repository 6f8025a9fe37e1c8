# leadsync/schema.py
"""
Field registry for the contact store.

Sources declare their data fields as {name: type}, where type is one of
text / integer / real (case-insensitive). The store keeps five bookkeeping
columns of its own that no source may declare.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Literal

from leadsync.exceptions import ConfigurationError

FieldType = Literal["text", "integer", "real"]

# Semantic type -> SQLite column type
SQLITE_TYPES: dict[str, str] = {
    "text": "TEXT",
    "integer": "INTEGER",
    "real": "REAL",
}

EMAIL_FIELD = "email"

RESERVED_FIELDS: frozenset[str] = frozenset(
    {
        EMAIL_FIELD,
        "last_import",
        "last_verify",
        "verify_status",
        "last_export",
    }
)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_identifier(name: str, *, what: str = "field") -> str:
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise ConfigurationError(
            f"Invalid {what} name {name!r}: use only letters, digits and underscores "
            "(and do not start with a digit)."
        )
    return name


def validate_field_name(name: str) -> str:
    validate_identifier(name)
    # SQLite column names are case-insensitive.
    if name.lower() in RESERVED_FIELDS:
        raise ConfigurationError(
            f"Field {name!r} is reserved for internal bookkeeping and cannot come from a source."
        )
    return name


def normalize_field_type(type_: str) -> FieldType:
    normalized = str(type_ or "").strip().lower()
    if normalized not in SQLITE_TYPES:
        raise ConfigurationError(
            f"Invalid field type {type_!r}: use text, integer or real."
        )
    return normalized  # type: ignore[return-value]


def normalize_declaration(declared: Mapping[str, str]) -> dict[str, FieldType]:
    """
    Validate a source declaration and return {name: normalized type}.

    The `email` key (any case) is skipped: it is the primary key and always
    exists. Two names that differ only in case would map to the same column
    and are rejected.
    """
    out: dict[str, FieldType] = {}
    seen: dict[str, str] = {}
    for name, type_ in declared.items():
        if isinstance(name, str) and name.lower() == EMAIL_FIELD:
            continue
        validate_field_name(name)
        folded = name.lower()
        if folded in seen:
            raise ConfigurationError(
                f"Fields {seen[folded]!r} and {name!r} differ only in case; "
                "column names are case-insensitive."
            )
        seen[folded] = name
        out[name] = normalize_field_type(type_)
    return out


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return int(float(text))
    return int(value)


def coerce_value(value: Any, type_: FieldType) -> Any:
    """
    Coerce a source value to its declared type so ORDER BY and comparisons
    behave numerically for integer/real fields. None stays None.
    """
    if value is None:
        return None
    if type_ == "integer":
        return _to_int(value)
    if type_ == "real":
        return float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = [
    "FieldType",
    "SQLITE_TYPES",
    "EMAIL_FIELD",
    "RESERVED_FIELDS",
    "IDENTIFIER_RE",
    "normalize_email",
    "validate_identifier",
    "validate_field_name",
    "normalize_field_type",
    "normalize_declaration",
    "coerce_value",
]
