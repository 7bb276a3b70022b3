"""
Celery configuration for the round lifecycle worker.

This module configures the Celery application with:
- Redis broker and result backend
- Task routing to queues
- Beat schedule for the round tick and price refresh
- Logfire instrumentation for observability

Run the rounds queue on a single worker process so ticks never overlap and
the price history stays in one process:

    celery -A celery_config worker -Q rounds --concurrency 1
    celery -A celery_config beat
"""
import sys
from pathlib import Path

import logfire
from celery import Celery
from celery.signals import worker_process_init

from config import settings

# Add project root to Python path for module imports
# This ensures Celery workers can resolve imports
project_root = Path(__file__).parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Initialize Celery application
celery_app = Celery(
    "updown",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "tasks.round_tasks",
        "tasks.price_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task results
    result_expires=3600,
    result_extended=True,

    # Task routing
    task_routes={
        "tasks.tick_rounds": {"queue": "rounds"},
        "tasks.settle_round": {"queue": "rounds"},
        "tasks.cancel_round": {"queue": "rounds"},
        "tasks.refresh_price": {"queue": "rounds"},
    },

    # Worker configuration
    worker_prefetch_multiplier=1,
    worker_concurrency=1,

    # A tick that missed its slot is replaced by the next one
    task_acks_late=False,
    task_reject_on_worker_lost=False,

    # Retry configuration
    # Handle retries at task level for better control
    task_autoretry_for=(),
    task_retry_kwargs={"max_retries": 0},

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)

# Celery Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Advance round lifecycle
    "tick-rounds": {
        "task": "tasks.tick_rounds",
        "schedule": float(settings.round_tick_seconds),
        "options": {"expires": settings.round_tick_seconds},
    },
    # Keep price history warm for late transitions
    "refresh-price": {
        "task": "tasks.refresh_price",
        "schedule": float(settings.price_refresh_seconds),
        "options": {"expires": settings.price_refresh_seconds},
    },
}


@worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    """
    Initialize each worker process with proper configuration.

    This runs once per worker process (not per task).
    Configures observability and logging for the worker.
    """
    # Re-establish sys.path in forked child process
    project_root = Path(__file__).parent.absolute()
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from observability import initialize_logfire
    from utils.logging import configure_logging

    configure_logging(settings.log_level)
    enabled = initialize_logfire(settings, service_name="updown-rounds-worker")

    logfire.info(
        "Celery worker initialized",
        project_root=str(project_root),
        logfire_enabled=enabled,
    )


@celery_app.task(name="health_check")
def health_check() -> dict:
    """
    Health check task for monitoring worker status.

    Returns:
        dict: Health status information
    """
    return {
        "status": "healthy",
        "service": "celery-worker"
    }
