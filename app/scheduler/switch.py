"""
Process-wide auto-generation switch.

One guarded setter; the scheduler reads a single snapshot at the start of
each tick, so a toggle applies only to ticks that begin after it returns.
"""
import threading

from ..database import utcnow
from ..logging_config import scheduler_logger as logger
from ..models.system_setting import SystemSetting

SETTING_KEY = "auto_generation_enabled"


class AutoGenerationSwitch:

    def __init__(self, session_factory, default: bool = True):
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._enabled = default
        self._default = default

    def load(self) -> bool:
        """Restore the persisted value, falling back to the configured default."""
        with self._lock:
            with self.session_factory() as session:
                row = session.get(SystemSetting, SETTING_KEY)
                self._enabled = (row.value == "true") if row else self._default
            return self._enabled

    def snapshot(self) -> bool:
        with self._lock:
            return self._enabled

    def set(self, enabled: bool) -> bool:
        """Persist then publish the new value; returns the previous one."""
        with self._lock:
            previous = self._enabled
            with self.session_factory() as session:
                row = session.get(SystemSetting, SETTING_KEY)
                if row is None:
                    row = SystemSetting(key=SETTING_KEY, value="")
                    session.add(row)
                row.value = "true" if enabled else "false"
                row.updated_at = utcnow()
                session.commit()
            self._enabled = bool(enabled)

        logger.info("Auto-generation toggled", enabled=bool(enabled), previous=previous)
        return previous
