# src/pg_refresh/utils/identifiers.py

from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# PostgreSQL NAMEDATALEN - 1
MAX_IDENT_LEN = 63


def sanitize_ident(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Unsafe identifier: {name!r}")
    if len(name) > MAX_IDENT_LEN:
        raise ValueError(f"Identifier longer than {MAX_IDENT_LEN} chars: {name!r}")
    return name


def qident(name: str) -> str:
    name = sanitize_ident(name)
    return f'"{name}"'


def staging_table_name(target_table: str, prefix: str = "stg_") -> str:
    """
    Unique per call: <prefix><target>_<utc timestamp, microseconds>_<8 random hex>.
    The target part is truncated so the result stays a legal identifier.
    """
    target_table = sanitize_ident(target_table)
    if prefix:
        sanitize_ident(prefix)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    token = secrets.token_hex(4)
    suffix = f"_{stamp}_{token}"

    room = MAX_IDENT_LEN - len(prefix) - len(suffix)
    if room < 1:
        raise ValueError(f"Staging prefix too long: {prefix!r}")

    return sanitize_ident(f"{prefix}{target_table[:room]}{suffix}")
