"""
Trigger Clock

Decides when work is due:
- a fixed daily cadence (e.g. 08:00 / 14:00 / 20:00 local time) that
  materializes automatic generation jobs
- explicit ``scheduled_for`` timestamps on manually scheduled jobs

All instants handed to the rest of the system are naive UTC.
"""
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import List, Optional, Sequence, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..database import utcnow
from ..errors import ConfigurationError


def parse_slots(slots: Union[str, Sequence[str]]) -> List[dt_time]:
    """Parse "08:00,14:00,20:00" into sorted, de-duplicated times."""
    if isinstance(slots, str):
        slots = [s for s in slots.split(",")]

    parsed = set()
    for raw in slots:
        raw = raw.strip()
        if not raw:
            continue
        try:
            hour, minute = raw.split(":")
            parsed.add(dt_time(int(hour), int(minute)))
        except ValueError:
            raise ConfigurationError(f"Invalid generation slot '{raw}', expected HH:MM")

    if not parsed:
        raise ConfigurationError("At least one generation slot is required")
    return sorted(parsed)


class TriggerClock:
    """Daily cadence and due-time evaluation."""

    def __init__(
        self,
        slots: Union[str, Sequence[str]] = "08:00,14:00,20:00",
        tz_name: str = "UTC",
        grace_minutes: int = 60,
        now_fn=utcnow,
    ):
        self.slots = parse_slots(slots)
        try:
            self.tz = ZoneInfo(tz_name)
        except ZoneInfoNotFoundError:
            raise ConfigurationError(f"Unknown scheduler timezone '{tz_name}'")
        self.tz_name = tz_name
        self.grace = timedelta(minutes=grace_minutes)
        self.now_fn = now_fn

    def now(self) -> datetime:
        return self.now_fn()

    def _slot_instants(self, now: datetime, day_offsets) -> List[datetime]:
        local_today = now.replace(tzinfo=timezone.utc).astimezone(self.tz).date()
        instants = []
        for offset in day_offsets:
            day = local_today + timedelta(days=offset)
            for slot in self.slots:
                local = datetime.combine(day, slot, tzinfo=self.tz)
                instants.append(local.astimezone(timezone.utc).replace(tzinfo=None))
        return sorted(instants)

    def latest_slot(self, now: Optional[datetime] = None) -> datetime:
        """Most recent cadence instant at or before ``now``."""
        now = now or self.now()
        return max(s for s in self._slot_instants(now, (-1, 0)) if s <= now)

    def next_slot(self, now: Optional[datetime] = None) -> datetime:
        """First cadence instant strictly after ``now``."""
        now = now or self.now()
        return min(s for s in self._slot_instants(now, (0, 1)) if s > now)

    def slot_is_fresh(self, slot: datetime, now: Optional[datetime] = None) -> bool:
        """Whether an elapsed slot is recent enough to still be materialized."""
        now = now or self.now()
        return timedelta(0) <= now - slot <= self.grace

    @staticmethod
    def slot_key(slot: datetime) -> str:
        return "auto:" + slot.strftime("%Y-%m-%dT%H:%M")

    def slot_title(self, slot: datetime) -> str:
        local = slot.replace(tzinfo=timezone.utc).astimezone(self.tz)
        return f"Automatic post {local.strftime('%Y-%m-%d %H:%M')}"
