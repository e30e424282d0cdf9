from .service import GenerationService
from .runner import SchedulerRunner, TickResult
from .state_machine import JobStateController
from .store import ScheduleStore

__all__ = [
    "GenerationService",
    "SchedulerRunner",
    "TickResult",
    "JobStateController",
    "ScheduleStore",
]
