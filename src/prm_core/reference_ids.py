"""Human-readable reference identifiers (EP-1, US-12, REQ-7, ...)."""
import re
from typing import Optional, Union
from uuid import UUID

REFERENCE_PREFIXES = ("EP", "US", "AC", "REQ", "STD", "PROMPT")

REFERENCE_ID_PATTERN = re.compile(
    r"^(" + "|".join(REFERENCE_PREFIXES) + r")-(\d+)$",
    re.IGNORECASE,
)


def is_reference_id(value: str, prefix: Optional[str] = None) -> bool:
    """
    Check whether a string is a reference ID, optionally of one prefix.

    Matching is case-insensitive: ``req-3`` is accepted as ``REQ-3``.
    """
    match = REFERENCE_ID_PATTERN.match(value.strip())
    if not match:
        return False
    return prefix is None or match.group(1).upper() == prefix.upper()


def canonicalize(value: str) -> str:
    """Return the stored (uppercase) form of a reference ID."""
    return value.strip().upper()


def format_reference_id(prefix: str, number: Union[int, str]) -> str:
    return f"{prefix}-{number}"


def reference_pattern(prefix: str) -> str:
    """JSON-Schema pattern accepting a reference ID of one prefix in any case."""
    letters = "".join(f"[{c.upper()}{c.lower()}]" for c in prefix)
    return f"^{letters}-\\d+$"


def parse_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    """Return ``value`` as a UUID, or None when it is not one."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
