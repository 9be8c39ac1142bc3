from __future__ import annotations

from app.db.session import SessionLocal
from app.services.otp_service import cleanup_expired_tokens
from app.workers.celery_app import celery_app


@celery_app.task(name="app.workers.tasks.security.cleanup_expired_login_tokens")
def cleanup_expired_login_tokens():
    db = SessionLocal()
    try:
        return cleanup_expired_tokens(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
