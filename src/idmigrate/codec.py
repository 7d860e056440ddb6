"""
Codec for directory-issued binary identifiers.

Active Directory stores ``objectGUID`` as 16 raw bytes whose first three
groups are little-endian (the .NET ``System.Guid`` layout), while the
canonical text form reads them big-endian:

    ORDER: [3] [2] [1] [0] - [5] [4] - [7] [6] - [8] [9] - [10] ... [15]

``parse`` gathers raw bytes into canonical order and renders them as
lowercase ``8-4-4-4-12`` text. ``encode`` scatters the decoded text bytes
back into the raw layout. The two directions must stay distinct: swapping
them still round-trips on symmetric inputs and silently corrupts the rest.

Example:
    >>> raw = encode("3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb")
    >>> parse(raw)
    '3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb'
    >>> escape(b"\\x0e\\xaf")
    '\\\\0e\\\\af'
"""

from __future__ import annotations

import re

from idmigrate.exceptions import InvalidFormatError, InvalidLengthError

GUID_LENGTH = 16

ORDER: tuple[int, ...] = (3, 2, 1, 0, 5, 4, 7, 6, 8, 9, 10, 11, 12, 13, 14, 15)
"""Output position ``i`` of ``parse`` holds input byte ``ORDER[i]``."""

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def parse(raw: bytes) -> str:
    """
    Convert raw ``objectGUID`` bytes into canonical UUID text.

    Args:
        raw: Exactly 16 bytes in directory wire layout

    Returns:
        Lowercase UUID text, e.g. ``3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb``

    Raises:
        InvalidLengthError: If ``raw`` is not 16 bytes long
    """
    if len(raw) != GUID_LENGTH:
        raise InvalidLengthError(len(raw), GUID_LENGTH)

    ordered = bytes(raw[pos] for pos in ORDER)
    text = ordered.hex()
    return f"{text[:8]}-{text[8:12]}-{text[12:16]}-{text[16:20]}-{text[20:]}"


def encode(text: str) -> bytes:
    """
    Convert canonical UUID text back into raw ``objectGUID`` bytes.

    Args:
        text: UUID text in ``8-4-4-4-12`` form, any case

    Returns:
        The 16 raw bytes in directory wire layout

    Raises:
        InvalidFormatError: If ``text`` is not canonical UUID text
    """
    if not isinstance(text, str) or not UUID_PATTERN.fullmatch(text):
        raise InvalidFormatError(text)

    decoded = bytes.fromhex(text.replace("-", ""))

    raw = bytearray(GUID_LENGTH)
    for i, byte in enumerate(decoded):
        raw[ORDER[i]] = byte
    return bytes(raw)


def escape(raw: bytes | None) -> str:
    """
    Escape raw bytes for use inside an LDAP search filter.

    Every byte becomes a backslash followed by two lowercase hex digits,
    with no separators. The result is only meant for filter strings.

    Args:
        raw: Bytes to escape; ``None`` or empty yields an empty string

    Returns:
        Filter-safe text, three characters per input byte
    """
    if not raw:
        return ""
    return "".join(f"\\{byte:02x}" for byte in raw)


def normalize(text: str) -> str:
    """
    Validate UUID text and return its lowercase form.

    Raises:
        InvalidFormatError: If ``text`` is not canonical UUID text
    """
    if not isinstance(text, str) or not UUID_PATTERN.fullmatch(text):
        raise InvalidFormatError(text)
    return text.lower()


__all__ = [
    "GUID_LENGTH",
    "ORDER",
    "UUID_PATTERN",
    "encode",
    "escape",
    "normalize",
    "parse",
]
