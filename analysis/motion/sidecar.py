from __future__ import annotations

import json
import os
from collections.abc import Iterator
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional, TextIO

from common.time import to_iso_utc

from .recording import Action, Decision

_RECORD_TYPES = {
    Action.START: "session_open",
    Action.STOP: "session_close",
    Action.FAILED: "session_failed",
}


class MotionSidecarWriter:
    """
    JSONL log of recording sessions, one object per line.

    Only session boundaries are written (open, close, failure); ordinary
    CONTINUE/NONE decisions are ignored.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._fh: Optional[TextIO] = None

    def __enter__(self) -> MotionSidecarWriter:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8", newline="")

    def write_decision(self, decision: Decision, frame_id: int, ts_ms: float) -> bool:
        """Append a record for ``decision`` if it marks a session boundary."""
        kind = _RECORD_TYPES.get(decision.action)
        if kind is None:
            return False
        payload: dict[str, Any] = {
            "type": kind,
            "output_id": decision.output_id,
            "frame_id": int(frame_id),
            "ts_ms": float(ts_ms),
            "ts": to_iso_utc(ts_ms),
            "frame_count": int(decision.frame_count),
            "error": str(decision.error) if decision.error is not None else None,
        }
        self.append_raw(payload)
        return True

    def append_raw(self, rec: dict) -> None:
        if not self._fh:
            raise RuntimeError("MotionSidecarWriter is not open")
        self._fh.write(json.dumps(rec, ensure_ascii=False) + "\n")

    def flush(self) -> None:
        if self._fh:
            self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            with suppress(Exception):
                self._fh.flush()
            # Best-effort durability
            with suppress(Exception):
                os.fsync(self._fh.fileno())
            self._fh.close()
            self._fh = None


def read_sidecar(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield records from a sidecar file, skipping blank or corrupt lines."""
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except ValueError:
                continue
