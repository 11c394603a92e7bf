"""Background jobs: dramatiq actors and the accrual scheduler."""
