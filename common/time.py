from __future__ import annotations

from datetime import datetime, timezone

CLIP_STAMP_FORMAT = "%Y-%m-%d__%H-%M-%S"


def now_ms() -> float:
    return datetime.now(tz=timezone.utc).timestamp() * 1000.0


def to_iso_utc(ts_ms: float) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).isoformat()


def clip_stamp(ts: datetime) -> str:
    """Filesystem-safe wall-clock stamp used to name recorded clips."""
    return ts.strftime(CLIP_STAMP_FORMAT)
