from cascade.timer.base import RatioTimer, Timer
from cascade.timer.schedule import STAGE_SCHEDULES, Schedule, StageScheduleConfig, make_schedule

__all__ = [
    "RatioTimer",
    "Timer",
    "STAGE_SCHEDULES",
    "Schedule",
    "StageScheduleConfig",
    "make_schedule",
]
