from datetime import datetime
from datetime import timezone


def rfc3339(ts: datetime) -> str:
    """
    Formats an aware timestamp with second precision, like
    2024-03-01T09:00:00+01:00.  A zero offset is written as Z.
    """
    text = ts.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_rfc3339(text: str) -> datetime:
    """Inverse of rfc3339; raises ValueError on garbage"""
    text = text.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        raise ValueError(f"timestamp without offset: {text!r}")
    return ts


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)
