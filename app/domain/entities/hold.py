from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.segment import SegmentRef


@dataclass(frozen=True)
class HoldToken:
    token: str
    segment_ref: SegmentRef
    holder_id: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
