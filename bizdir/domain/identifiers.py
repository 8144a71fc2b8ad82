"""Business identifier allocation.

Identifiers look like ``BIZ-GG-SSSS``: a two digit group and a four digit
sequence, both zero padded, so plain string ordering matches allocation
order. The allocator is pure; callers must hold the store's transaction while
reading the current maximum and writing the new record.
"""

from __future__ import annotations

import re

from bizdir.core.errors import IdentifierOverflowError

DEFAULT_PREFIX = "BIZ"
MAX_SEQUENCE = 9999
MAX_GROUP = 99


def identifier_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}-(\d{{2}})-(\d{{4}})$")


def identifier_glob(prefix: str = DEFAULT_PREFIX) -> str:
    """SQL GLOB matching conforming identifiers only."""
    return f"{prefix}-[0-9][0-9]-[0-9][0-9][0-9][0-9]"


def parse_identifier(identifier: str | None, prefix: str = DEFAULT_PREFIX) -> tuple[int, int] | None:
    if not identifier or not isinstance(identifier, str):
        return None
    match = identifier_pattern(prefix).match(identifier)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def format_identifier(group: int, sequence: int, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}-{group:02d}-{sequence:04d}"


def next_identifier(current_max: str | None, prefix: str = DEFAULT_PREFIX) -> str:
    """Return the identifier that follows ``current_max``.

    An empty store or an identifier that does not match the strict pattern
    starts over at group 1, sequence 1.

    Raises:
        IdentifierOverflowError: When group 99 is exhausted. A three digit
            group would break the fixed-width ordering.
    """
    parsed = parse_identifier(current_max, prefix)
    if parsed is None:
        return format_identifier(1, 1, prefix)

    group, sequence = parsed
    sequence += 1
    if sequence > MAX_SEQUENCE:
        sequence = 1
        group += 1

    if group > MAX_GROUP:
        raise IdentifierOverflowError(
            f"Identifier space exhausted after {current_max}", field="identifier"
        )

    return format_identifier(group, sequence, prefix)
