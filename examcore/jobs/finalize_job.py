"""
Timeout collaborator.

The engine never finalizes on its own; when a paper carries a time limit the
HTTP layer may schedule this job to run once the limit (plus a grace period)
has elapsed. It finalizes with the idempotent policy, so a submission the
client already finalized is left untouched.
"""
import logging
from datetime import timedelta

from examcore.core.config import settings
from examcore.core.database import SessionLocal
from examcore.core.errors import NotFound
from examcore.jobs.queue import get_queue
from examcore.services import submissions

logger = logging.getLogger(__name__)


def finalize_expired_submission(submission_id: str) -> dict:
    db = SessionLocal()
    try:
        submission = submissions.finalize(db, submission_id, policy=submissions.FINALIZE_IDEMPOTENT)
        logger.info(f"Timeout finalize for submission {submission_id}: score {submission.score_percent}")
        return {"submission_id": submission.id, "score_percent": submission.score_percent}
    except NotFound:
        logger.warning(f"Timeout finalize skipped; submission {submission_id} no longer exists")
        return {"submission_id": submission_id, "score_percent": None}
    finally:
        db.close()


def schedule_auto_finalize(submission_id: str, time_limit_min: int, queue=None):
    """Enqueue ``finalize_expired_submission`` to run after the time limit."""
    if queue is None:
        queue = get_queue()
    delay = timedelta(minutes=time_limit_min, seconds=settings.AUTO_FINALIZE_GRACE_SECONDS)
    job = queue.enqueue_in(delay, finalize_expired_submission, submission_id, job_timeout=300)
    logger.info(f"Scheduled timeout finalize for submission {submission_id} in {delay}")
    return job
