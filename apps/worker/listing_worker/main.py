import logging
import uuid

from celery import Celery, Task
from sqlalchemy.exc import OperationalError

from listing_api.db import SessionLocal
from listing_api.models import StagingQueueEntry
from listing_api.services.anonymous import cleanup_expired
from listing_api.services.audit import write_system_audit_log
from listing_api.services.bulk import process_bulk_queue
from listing_api.services.quota import reset_monthly_quotas
from listing_api.services.staging_queue import process_staging_queue, submit_entry
from listing_api.settings import settings

logger = logging.getLogger(__name__)

SUBMIT_MAX_RETRIES = 3
SUBMIT_RETRY_BASE_SECONDS = 2

app = Celery("listing-worker", broker=settings.redis_url, backend=settings.redis_url)
app.conf.beat_schedule = {
    "staging-queue-tick": {"task": "worker.staging.tick", "schedule": 60.0},
    "bulk-queue-tick": {"task": "worker.bulk.tick", "schedule": 60.0},
    "anonymous-cleanup-tick": {"task": "worker.anonymous.cleanup_tick", "schedule": 3600.0},
    "quota-reset-tick": {"task": "worker.quota.reset_tick", "schedule": 86400.0},
}


def submit_retry_countdown(retries: int) -> int:
    return SUBMIT_RETRY_BASE_SECONDS ** (retries + 1)


@app.task(name="worker.health.ping")
def ping() -> str:
    return "pong"


@app.task(name="worker.staging.submit", bind=True, max_retries=SUBMIT_MAX_RETRIES)
def staging_submit(self: Task, queue_id: str) -> str:
    try:
        with SessionLocal() as db:
            entry = db.get(StagingQueueEntry, uuid.UUID(queue_id))
            if entry is None:
                return "missing"
            submitted = submit_entry(db, entry)
            db.commit()
    except OperationalError as exc:
        logger.warning("staging submit for %s hit a database error; retrying", queue_id)
        raise self.retry(exc=exc, countdown=submit_retry_countdown(self.request.retries))
    return "submitted" if submitted else "failed"


@app.task(name="worker.staging.tick")
def staging_tick() -> dict[str, int]:
    with SessionLocal() as db:
        summary = process_staging_queue(db)
        write_system_audit_log(db, "worker.staging_queue_processed", "worker", "staging.tick", summary)
        db.commit()
    return summary


@app.task(name="worker.bulk.tick")
def bulk_tick() -> dict[str, object]:
    with SessionLocal() as db:
        summary = process_bulk_queue(db)
        if summary["job_id"] is not None:
            write_system_audit_log(db, "worker.bulk_queue_processed", "bulk_job", str(summary["job_id"]), summary)
        db.commit()
    return summary


@app.task(name="worker.quota.reset_tick")
def quota_reset_tick() -> int:
    with SessionLocal() as db:
        reset_count = reset_monthly_quotas(db)
        write_system_audit_log(db, "worker.monthly_quotas_reset", "worker", "quota.reset_tick", {"reset_count": reset_count})
        db.commit()
    return reset_count


@app.task(name="worker.anonymous.cleanup_tick")
def anonymous_cleanup_tick() -> int:
    with SessionLocal() as db:
        deleted = cleanup_expired(db)
        write_system_audit_log(
            db, "worker.anonymous_cleaned", "worker", "anonymous.cleanup_tick", {"deleted_count": deleted}
        )
        db.commit()
    return deleted
