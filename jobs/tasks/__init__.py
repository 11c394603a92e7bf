"""
Dramatiq actors.

Importing the broker first binds every actor to the Redis broker.

Usage:
    dramatiq jobs.tasks.daily_accrual jobs.tasks.maintenance
"""

from jobs.broker import broker  # noqa: F401
