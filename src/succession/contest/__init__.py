"""Leader election with predecessor watches.

Provides:
- Contestant: one participant's election state machine
- ContestantGroup: N contestants sharing a bounded scheduler
- TaskScheduler: semaphore-bounded asyncio task pool

Example:
    from succession.contest import ContestantGroup

    async with ContestantGroup(config, size=3) as group:
        await asyncio.sleep(60)
"""

from succession.contest.contestant import (
    Contestant,
    ContestantState,
    HoldInterval,
    fixed_hold_interval,
    random_hold_interval,
)
from succession.contest.group import ContestantGroup
from succession.contest.scheduler import SchedulerClosedError, TaskScheduler

__all__ = [
    "Contestant",
    "ContestantState",
    "HoldInterval",
    "fixed_hold_interval",
    "random_hold_interval",
    "ContestantGroup",
    "TaskScheduler",
    "SchedulerClosedError",
]
