"""
Column naming and type heuristics used by pk_match discovery.

A column is a join key candidate when its name follows an identifier
convention (customer_id, account_uuid, orderId, ...) and its type belongs to
a key-compatible family.
"""

import re
from typing import Iterable, List, Optional

IDENTIFIER_SUFFIXES = ("_id", "_uuid", "_fk", "_key")

# Stems that describe attributes rather than references (user_email_id is rare,
# email_key or name_key are not references to an "email" or "name" table)
ATTRIBUTE_STEMS = ("email", "password", "name", "description")

INTEGER_FAMILY = "integer"
STRING_FAMILY = "string"

# Checked before the family markers: POINT and INTERVAL contain "INT"
_EXCLUDED_TYPE_MARKERS = (
    "BOOL", "TIME", "DATE", "INTERVAL", "JSON", "BYTEA", "BLOB", "BINARY",
    "GEOMETRY", "GEOGRAPHY", "POINT", "FLOAT", "DOUBLE", "REAL", "NUMERIC",
    "DECIMAL", "MONEY", "ARRAY", "[]",
)
_INTEGER_MARKERS = ("INT", "SERIAL")
_STRING_MARKERS = ("CHAR", "TEXT", "UUID", "STRING", "CLOB", "UNIQUEIDENTIFIER")

_CAMEL_ID = re.compile(r"^([a-z][A-Za-z0-9]*?)(Id|ID)$")


def type_family(data_type: str) -> Optional[str]:
    """Key-compatible family of a type name, or None when it can't hold join keys."""
    upper = data_type.upper()
    if any(marker in upper for marker in _EXCLUDED_TYPE_MARKERS):
        return None
    if any(marker in upper for marker in _INTEGER_MARKERS):
        return INTEGER_FAMILY
    if any(marker in upper for marker in _STRING_MARKERS):
        return STRING_FAMILY
    return None


def identifier_stem(column_name: str) -> Optional[str]:
    """
    Stem of an identifier-like column name, lower-cased.

    >>> identifier_stem("customer_id")
    'customer'
    >>> identifier_stem("accountId")
    'account'
    >>> identifier_stem("id") is None
    True
    """
    lower = column_name.lower()
    for suffix in IDENTIFIER_SUFFIXES:
        if lower.endswith(suffix) and len(lower) > len(suffix):
            return lower[:-len(suffix)].rstrip("_") or None
    match = _CAMEL_ID.match(column_name)
    if match:
        return match.group(1).lower()
    return None


def is_attribute_stem(stem: str) -> bool:
    return any(stem == attr or stem.endswith("_" + attr) for attr in ATTRIBUTE_STEMS)


def table_name_forms(stem: str) -> List[str]:
    """Table names a stem may refer to: user -> users, box -> boxes, category -> categories."""
    forms = [stem, stem + "s", stem + "es"]
    if stem.endswith("y"):
        forms.append(stem[:-1] + "ies")
    return forms


def stem_matches_table(stem: str, table_name: str) -> bool:
    """
    True when the stem, or its last underscore segment, names the table.

    billing_account -> billing_accounts or accounts
    """
    candidates = set(table_name_forms(stem))
    if "_" in stem:
        candidates.update(table_name_forms(stem.rsplit("_", 1)[1]))
    return table_name.lower() in candidates


def matching_tables(stem: str, table_names: Iterable[str]) -> List[str]:
    return [name for name in table_names if stem_matches_table(stem, name)]
