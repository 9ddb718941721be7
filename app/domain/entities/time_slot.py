from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo


@dataclass(frozen=True)
class TimeSlot:
    id: str
    provider_id: str
    service_id: str
    date: date
    start_time: time
    end_time: time
    is_booked: bool = False  # whole window consumed as a single unit (non-segmented services)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def window_start(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.date, self.start_time, tzinfo=tz)

    def window_end(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.date, self.end_time, tzinfo=tz)

    @property
    def window_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start
