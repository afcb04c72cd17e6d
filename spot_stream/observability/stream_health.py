from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from spot_stream.config.models import HealthSettings


@dataclass
class FrameHealth:
    ts: float = 0.0
    last_kind: str = ""

    def age_ms(self, now: Optional[float] = None) -> float:
        now_ts = now or time.time()
        if not self.ts:
            return float("inf")
        return max(0.0, (now_ts - self.ts) * 1000.0)


class StreamHealthTracker:
    def __init__(self, settings: Optional[HealthSettings] = None) -> None:
        self.settings = settings or HealthSettings()
        self.frames_total = 0
        self.text_frames = 0
        self.binary_frames = 0
        self.pongs = 0
        self.decode_errors = 0
        self.hook_errors = 0
        self.keepalive_ok = 0
        self.keepalive_failed = 0
        self.connected = False
        self._last_frame = FrameHealth()

    def register_frame(self, frame: Any, ts: Optional[float] = None) -> None:
        """Register a raw inbound frame."""
        self.frames_total += 1
        kind = "text" if isinstance(frame, str) else "binary"
        if kind == "text":
            self.text_frames += 1
        else:
            self.binary_frames += 1
        self._last_frame.ts = ts or time.time()
        self._last_frame.last_kind = kind

    def register_pong(self) -> None:
        self.pongs += 1

    def register_decode_error(self) -> None:
        self.decode_errors += 1

    def register_hook_error(self) -> None:
        self.hook_errors += 1

    def register_keepalive(self, ok: bool) -> None:
        if ok:
            self.keepalive_ok += 1
        else:
            self.keepalive_failed += 1

    def set_connected(self, connected: bool) -> None:
        self.connected = connected

    def build_snapshot(self, name: str, now: Optional[float] = None) -> Dict[str, Any]:
        now = now or time.time()
        age = self._last_frame.age_ms(now)
        return {
            "name": name,
            "connected": self.connected,
            "last_frame_age_ms": age,
            "last_frame_kind": self._last_frame.last_kind,
            "stale": self.connected and age > self.settings.stale_ms,
            "frames_total": self.frames_total,
            "text_frames": self.text_frames,
            "binary_frames": self.binary_frames,
            "pongs": self.pongs,
            "decode_errors": self.decode_errors,
            "hook_errors": self.hook_errors,
            "keepalive_ok": self.keepalive_ok,
            "keepalive_failed": self.keepalive_failed,
        }
