"""
ID generation using UUIDv7 (time-ordered UUIDs) and demand protocols

Record ids are sortable UUIDv7-like strings. Demands also get a short
human-readable protocol (ALI.DEM.2025.4821) that officials quote on the
phone and in e-mails.
"""

import secrets
import time
import uuid
from collections.abc import Callable

PROTOCOL_PREFIX = "ALI.DEM"


def generate_id() -> str:
    """
    Time-ordered UUID (version 7 layout)

    48 bits of Unix milliseconds, then random bits, so ids sort by
    creation time down to the millisecond.
    """
    millis = time.time_ns() // 1_000_000
    value = (millis & (1 << 48) - 1) << 80 | secrets.randbits(80)
    value = value & ~(0xF << 76) | 0x7 << 76  # version
    value = value & ~(0x3 << 62) | 0x2 << 62  # RFC 4122 variant
    return str(uuid.UUID(int=value))


def generate_protocol(
    year: int,
    prefix: str = PROTOCOL_PREFIX,
    is_taken: Callable[[str], bool] | None = None,
    max_attempts: int = 50,
) -> str:
    """
    Generate a demand protocol "{prefix}.{year}.{NNNN}"

    The suffix is a random number between 1000 and 9999. When is_taken is
    given, candidates already in use are skipped.

    Args:
        year: Year of creation
        prefix: Protocol prefix
        is_taken: Optional predicate telling whether a protocol exists
        max_attempts: Give up after this many collisions

    Returns:
        Protocol string, e.g. "ALI.DEM.2025.4821"

    Raises:
        RuntimeError: If no free protocol was found
    """
    for _ in range(max_attempts):
        candidate = f"{prefix}.{year}.{1000 + secrets.randbelow(9000)}"
        if is_taken is None or not is_taken(candidate):
            return candidate
    raise RuntimeError(f"No free protocol for {prefix}.{year} after {max_attempts} attempts")
