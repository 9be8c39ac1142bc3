from celery import Celery
from celery.signals import worker_ready
from app.core.config import settings

celery_app = Celery(
    "pinme_ledger",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.workers.tasks.reminders", "app.workers.tasks.security"],
)

celery_app.conf.beat_schedule = {
    "dispatch_due_reminders": {
        "task": "app.workers.tasks.reminders.dispatch_due_reminders",
        "schedule": float(settings.REMINDER_POLL_INTERVAL_SECONDS),
        "options": {"expires": float(settings.REMINDER_POLL_INTERVAL_SECONDS)},
    },
    "cleanup_expired_login_tokens": {
        "task": "app.workers.tasks.security.cleanup_expired_login_tokens",
        "schedule": float(settings.OTP_CLEANUP_INTERVAL_SECONDS),
    },
}
celery_app.conf.timezone = "UTC"


@worker_ready.connect
def _dispatch_on_startup(sender=None, **kwargs):
    # Overdue reminders should not wait a full beat interval after a restart.
    celery_app.send_task("app.workers.tasks.reminders.dispatch_due_reminders")
