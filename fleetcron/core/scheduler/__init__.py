from fleetcron.core.scheduler.service import Scheduler, SchedulerRuntime

__all__ = ['Scheduler', 'SchedulerRuntime']
