# utils.py
# Common helpers used across the CLI.
# All timestamps are UTC and formatted as RFC3339.

from datetime import datetime, timezone
from dateutil import parser as dtp

def parse_rfc3339(s: str):
    """Parse RFC3339/ISO8601 into aware UTC datetime."""
    return dtp.isoparse(s).astimezone(timezone.utc)

def days_until(expire_str: str) -> int:
    """Return integer number of full days from now until expire_str (RFC3339).
    Raises ValueError on parse errors."""
    exp = parse_rfc3339(expire_str)
    now = datetime.now(timezone.utc)
    return int((exp - now).total_seconds() // 86400)

def rfc3339(dt: datetime) -> str:
    """Format an aware datetime as RFC3339 UTC, e.g. 2025-10-04T12:34:56Z."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def dedupe(items):
    """Drop repeated entries, keeping the first occurrence and the original order."""
    seen = set()
    out = []
    for i in items:
        if i in seen:
            continue
        seen.add(i)
        out.append(i)
    return out
