"""
Shareable-link codec.

A program snapshot travels inside a URL as a compact token: a versioned
positional array (not a dictionary, to keep links short), compressed
with zlib and encoded as URL-safe base64 without padding.

    [2, id, title, subtitle, date, startTime, endTime|null,
     [[id, title, speaker, duration, type, details|null, actual|null], ...]]

Version 1 arrays wrote "" and 0 for absent details and actual duration;
they are read back as absent. Tokens that are not compressed are tried
as legacy plain base64 JSON, which may hold either an array or the
dictionary form of a program.

decode_program() never raises: any bad token yields None.
"""

import base64
import binascii
import json
import logging
import zlib
from typing import Any, List, Optional

from ..interfaces.program import Program

logger = logging.getLogger(__name__)

TOKEN_VERSION = 2
LEGACY_VERSION = 1


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(token: str) -> bytes:
    token = token.strip()
    padded = token + "=" * (-len(token) % 4)
    # Legacy tokens use the standard alphabet.
    if "+" in padded or "/" in padded:
        return base64.b64decode(padded, validate=True)
    return base64.urlsafe_b64decode(padded)


def minify_program(program: Program) -> List[Any]:
    return [
        TOKEN_VERSION,
        program.id,
        program.title,
        program.subtitle,
        program.date,
        program.start_time,
        program.end_time,
        [
            [s.id, s.title, s.speaker, s.duration_minutes, s.type, s.details, s.actual_duration]
            for s in program.slots
        ],
    ]


def expand_program(data: List[Any]) -> Program:
    """
    Rebuild a Program from its positional form.

    Raises:
        ValueError: if the array cannot be read as a program
    """
    if len(data) < 8:
        raise ValueError(f"program array has {len(data)} fields, expected 8")
    version, program_id, title, subtitle, date, start_time, end_time, slots_data = data[:8]
    if version not in (LEGACY_VERSION, TOKEN_VERSION):
        logger.warning(f"Version mismatch in shared link: {version!r}")
    legacy = version != TOKEN_VERSION

    slots = []
    for entry in slots_data or []:
        if not isinstance(entry, list) or len(entry) < 5:
            raise ValueError(f"malformed slot entry: {entry!r}")
        details = entry[5] if len(entry) > 5 else None
        actual = entry[6] if len(entry) > 6 else None
        if legacy:
            details = details or None
            actual = actual or None
        slots.append({
            "id": entry[0],
            "title": entry[1],
            "speaker": entry[2],
            "durationMinutes": entry[3],
            "type": entry[4],
            "details": details,
            "actualDuration": actual,
        })

    return Program.from_dict({
        "id": program_id,
        "title": title,
        "subtitle": subtitle,
        "date": date,
        "startTime": start_time,
        "endTime": end_time or None,
        "slots": slots,
    })


def encode_program(program: Program) -> str:
    """Compact URL-safe token for a program snapshot."""
    payload = json.dumps(minify_program(program), separators=(",", ":"), ensure_ascii=False)
    return _b64encode(zlib.compress(payload.encode("utf-8"), 9))


def _token_text(token: str) -> str:
    raw = _b64decode(token)
    try:
        return zlib.decompress(raw).decode("utf-8")
    except zlib.error:
        # Legacy: plain base64 of the JSON text.
        return raw.decode("utf-8")


def decode_program(token: str) -> Optional[Program]:
    """
    Parse a share token.

    Returns:
        The program, or None if the token cannot be read
    """
    if not token:
        return None
    try:
        parsed = json.loads(_token_text(token))
        if isinstance(parsed, list):
            return expand_program(parsed)
        if isinstance(parsed, dict):
            return Program.from_dict(parsed)
        logger.warning(f"Share token holds {type(parsed).__name__}, not a program")
        return None
    except (ValueError, TypeError, OverflowError, RecursionError, binascii.Error, UnicodeDecodeError) as e:
        logger.warning(f"Could not decode share token: {e}")
        return None
