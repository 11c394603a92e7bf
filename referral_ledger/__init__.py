"""
Referral & reward ledger.

Referral lifecycle, idempotent reward crediting and per-user concurrency
control for the investment platform.
"""

__version__ = "1.0.0"
