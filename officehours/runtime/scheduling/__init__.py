"""Scheduling for officehours: periodic queue updates."""

from officehours.runtime.scheduling.periodic import PeriodicUpdateScheduler

__all__ = ["PeriodicUpdateScheduler"]
