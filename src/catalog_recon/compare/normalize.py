"""
Definition normalization.

Two definitions of the same object fetched from different environments differ
in ways that carry no meaning: system-generated constraint and LOB segment
names, supplemental logging clauses, layout whitespace and, for tables, the
order of columns and constraints. ``normalize_definition`` removes those
differences so that exact string equality can decide whether the objects
match.

Normalization is idempotent: ``normalize(normalize(d)) == normalize(d)``.
"""

import re

SEQUENCE_PLACEHOLDER = "SEQUENCE_PROPERTIES_IGNORED"

# Quoted identifiers stay quoted so the surrounding quote structure is kept
_SYSTEM_NAMES = (
    (re.compile(r'"SYS_C\d+"|\bSYS_C\d+\b'), "SYS_C_IGNORED"),
    (re.compile(r'"SYS_LOB[0-9A-Z]+\$\$?"|\bSYS_LOB[0-9A-Z]+\$\$?'), "SYS_LOB_IGNORED"),
    (re.compile(r'"SYS_IL[0-9A-Z]+\$\$?"|\bSYS_IL[0-9A-Z]+\$\$?'), "SYS_IL_IGNORED"),
)

# One level of nested parentheses inside the column list of a log group
_SUPPLEMENTAL_CLAUSE = (
    r'SUPPLEMENTAL LOG (?:'
    r'GROUP\s*"[^"]*"\s*\((?:[^()]|\([^()]*\))*\)\s*(?:ALWAYS)?'
    r'|DATA\s*\([^()]*\)\s*COLUMNS'
    r')'
)
_SUPPLEMENTAL_AFTER_COMMA = re.compile(r'\s*,\s*' + _SUPPLEMENTAL_CLAUSE, re.IGNORECASE)
_SUPPLEMENTAL_LEADING = re.compile(_SUPPLEMENTAL_CLAUSE + r'\s*,?\s*', re.IGNORECASE)

_WHITESPACE = re.compile(r'\s+')


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def replace_system_names(text: str) -> str:
    for pattern, placeholder in _SYSTEM_NAMES:
        text = pattern.sub(
            lambda m, p=placeholder: f'"{p}"' if m.group(0).startswith('"') else p,
            text,
        )
    return text


def strip_supplemental_logging(text: str) -> str:
    text = _SUPPLEMENTAL_AFTER_COMMA.sub("", text)
    return _SUPPLEMENTAL_LEADING.sub("", text)


def _scan(text: str, start: int = 0):
    """Yield (index, char, depth) for characters outside quoted literals.

    ``depth`` is the parenthesis depth after the character is applied.
    """
    depth = 0
    quote = None
    for i in range(start, len(text)):
        char = text[i]
        if quote is not None:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        yield i, char, depth


def find_outer_body(text: str) -> tuple[int, int] | None:
    """
    Locate the first parenthesized body.

    Returns:
        (open_index, close_index) of the balanced pair, or None when the
        first opening parenthesis is never closed
    """
    for i, char, _ in _scan(text):
        if char == "(":
            open_index = i
            break
    else:
        return None

    for i, _, depth in _scan(text, open_index):
        if depth == 0:
            return open_index, i
    return None


def split_top_level_commas(body: str) -> list[str]:
    """Split on commas that sit outside parentheses and quoted literals."""
    parts = []
    last = 0
    for i, char, depth in _scan(body):
        if char == "," and depth == 0:
            parts.append(body[last:i].strip())
            last = i + 1

    # An empty tail is a clause only when a comma precedes it
    tail = body[last:].strip()
    if tail or parts:
        parts.append(tail)
    return parts


def sort_table_clauses(text: str) -> str:
    """Sort the column and constraint clauses of a CREATE TABLE body."""
    bounds = find_outer_body(text)
    if bounds is None:
        return text

    open_index, close_index = bounds
    parts = split_top_level_commas(text[open_index + 1:close_index])
    parts.sort()
    return text[:open_index + 1] + ", ".join(parts) + text[close_index:]


def normalize_definition(definition: str | None, object_type: str) -> str:
    """
    Canonicalize an object definition for equality comparison.

    Args:
        definition: Raw definition text (DDL)
        object_type: Catalog object type, e.g. ``TABLE`` or ``PACKAGE BODY``

    Returns:
        Normalized definition; empty string for an empty definition
    """
    object_type = (object_type or "").upper()
    if object_type == "SEQUENCE":
        return SEQUENCE_PLACEHOLDER
    if not definition:
        return ""

    text = replace_system_names(definition)
    text = collapse_whitespace(text)
    text = collapse_whitespace(strip_supplemental_logging(text))

    if object_type == "TABLE":
        text = sort_table_clauses(text)
    return text
