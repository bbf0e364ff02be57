"""
Celery Application Configuration
"""
from celery import Celery

from marketplace_wallet.core.config import settings

celery_app = Celery(
    "marketplace_wallet",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["marketplace_wallet.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # פקיעת מטבעות: idempotent, ריצה כפולה לא מקזזת מנה פעמיים
    "expire-wallet-coins-daily": {
        "task": "marketplace_wallet.workers.tasks.process_expired_coins",
        "schedule": settings.WALLET_EXPIRY_SWEEP_INTERVAL_SECONDS,
    },
}
