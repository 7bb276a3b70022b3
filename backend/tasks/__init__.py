"""Celery tasks module."""

from tasks.price_tasks import refresh_price
from tasks.round_tasks import cancel_round, settle_round, tick_rounds

__all__ = [
    # Round tasks
    "tick_rounds",
    "settle_round",
    "cancel_round",
    # Price tasks
    "refresh_price",
]
