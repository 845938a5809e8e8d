import logging
from typing import Optional
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus
from redis import Redis
from examify.core.config import settings
from examify.jobs.rescore_job import rescore_job

logger = logging.getLogger(__name__)

redis = Redis.from_url(settings.REDIS_URL)
queue = Queue(settings.RQ_QUEUE, connection=redis)

PENDING = (JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED)


def rescore_job_id(exam_id: str) -> str:
    return f"rescore-{exam_id}"


def enqueue_rescore(exam_id: str, requested_by: Optional[str] = None, q: Optional[Queue] = None) -> Job:
    """Queue a re-grade of one exam.

    A rescore already waiting or running for the same exam is returned as is,
    so repeated requests after an answer-key fix do not pile up.
    """
    q = q or queue
    job_id = rescore_job_id(exam_id)
    try:
        existing = Job.fetch(job_id, connection=q.connection)
    except NoSuchJobError:
        existing = None
    if existing is not None and existing.get_status() in PENDING:
        logger.info("rescore of exam %s already pending as job %s", exam_id, job_id)
        return existing
    job = q.enqueue(rescore_job, exam_id, job_id=job_id, job_timeout=settings.RQ_JOB_TIMEOUT,
                    meta={"state": "queued", "requested_by": requested_by})
    logger.info("queued rescore of exam %s as job %s", exam_id, job.get_id())
    return job
