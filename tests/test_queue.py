from types import SimpleNamespace

from rq.exceptions import NoSuchJobError
from rq.job import JobStatus

from examify.jobs import queue as jobs_queue
from examify.jobs.queue import enqueue_rescore, rescore_job_id
from examify.jobs.rescore_job import rescore_job

from conftest import add_exam


class RecordingQueue:
    connection = None

    def __init__(self):
        self.calls = []

    def enqueue(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))
        return SimpleNamespace(get_id=lambda: kwargs["job_id"])


def _no_job(job_id, connection=None):
    raise NoSuchJobError(job_id)


def test_enqueue_rescore_creates_job(monkeypatch):
    monkeypatch.setattr(jobs_queue.Job, "fetch", _no_job)
    q = RecordingQueue()
    job = enqueue_rescore("e1", requested_by="admin-1", q=q)
    assert job.get_id() == rescore_job_id("e1") == "rescore-e1"
    [(func, args, kwargs)] = q.calls
    assert func is rescore_job and args == ("e1",)
    assert kwargs["meta"] == {"state": "queued", "requested_by": "admin-1"}


def test_pending_rescore_is_reused(monkeypatch):
    pending = SimpleNamespace(get_status=lambda: JobStatus.STARTED, get_id=lambda: "rescore-e1")
    monkeypatch.setattr(jobs_queue.Job, "fetch", lambda job_id, connection=None: pending)
    q = RecordingQueue()
    assert enqueue_rescore("e1", q=q) is pending
    assert q.calls == []


def test_finished_rescore_is_queued_again(monkeypatch):
    done = SimpleNamespace(get_status=lambda: JobStatus.FINISHED)
    monkeypatch.setattr(jobs_queue.Job, "fetch", lambda job_id, connection=None: done)
    q = RecordingQueue()
    enqueue_rescore("e1", q=q)
    assert len(q.calls) == 1


def test_rescore_endpoint(client, db, admin_headers, moderator_headers, monkeypatch):
    exam = add_exam(db)
    seen = []
    monkeypatch.setattr("examify.api.admin.enqueue_rescore",
                        lambda exam_id, requested_by=None: seen.append((exam_id, requested_by)) or SimpleNamespace(get_id=lambda: "job-1"))
    r = client.post(f"/v1/admin/exams/{exam.id}/rescore", headers=admin_headers)
    assert r.status_code == 202 and r.json() == {"job_id": "job-1", "exam_id": exam.id}
    assert seen[0][0] == exam.id and seen[0][1]
    assert client.post(f"/v1/admin/exams/{exam.id}/rescore", headers=moderator_headers).status_code == 403
    assert client.post("/v1/admin/exams/missing/rescore", headers=admin_headers).status_code == 404
