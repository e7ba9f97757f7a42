"""
Address synthesis.

Pure functions turning resolved parcel context into human readable
addresses, deterministic short codes and map labels.
"""

import re
from typing import Any, Optional, Union

from parcel_atlas.models import Parcel

ADDRESS_NOT_AVAILABLE = "Address not available"
SHORT_CODE_PREFIX = "KE-"
SHORT_CODE_LENGTH = 8
UNKNOWN_BLOCK = "UNK"

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _registration_code(parcel: Union[Parcel, str]) -> str:
    return parcel if isinstance(parcel, str) else parcel.lr_no


def physical_address(
    parcel: Optional[Any],
    admin_block: Optional[Any] = None,
    access_road: Optional[Any] = None,
    entry_point: Optional[Any] = None,
) -> str:
    """Comma separated address for a parcel.

    Parts, in order and each only when present: "EP-<label>", the
    registration code, "off <access road>", then the block's name,
    constituency and county.

    Args:
        parcel: Parcel (or anything with ``lr_no``)
        admin_block: AdministrativeBlock
        access_road: Road or NearestRoad (anything with ``name``)
        entry_point: EntryPoint or ContextEntryPoint (anything with ``label``)

    Returns:
        Address string, or "Address not available" when nothing is known
    """
    parts = []

    label = getattr(entry_point, "label", None)
    if label is not None:
        parts.append(f"EP-{label}")

    lr_no = getattr(parcel, "lr_no", None)
    if lr_no:
        parts.append(lr_no)

    road_name = getattr(access_road, "name", None)
    if road_name:
        parts.append(f"off {road_name}")

    if admin_block is not None:
        for value in (admin_block.name, admin_block.constituency, admin_block.county):
            if value:
                parts.append(value)

    if not parts:
        return ADDRESS_NOT_AVAILABLE
    return ", ".join(parts)


def _hash32(text: str) -> int:
    """31-multiplier rolling hash wrapped to a signed 32-bit integer."""
    value = 0
    for ch in text:
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def short_code(parcel: Union[Parcel, str]) -> str:
    """Deterministic short code such as "KE-1LT".

    Only the alphanumeric characters of the registration code take part,
    so "LR/123/45" and "LR12345" share a code.
    """
    cleaned = re.sub(r"[^a-zA-Z0-9]", "", _registration_code(parcel))
    encoded = _base36(abs(_hash32(cleaned)))
    return f"{SHORT_CODE_PREFIX}{encoded[:SHORT_CODE_LENGTH]}"


def display_label(lr_no: str, short_name: Optional[str] = None) -> str:
    """Map label "<block short name or UNK>/<code after its first slash>"."""
    _, separator, rest = lr_no.partition("/")
    return f"{short_name or UNKNOWN_BLOCK}/{rest if separator else lr_no}"
