"""
Background job registry.

Every job runs on its own daemon thread and moves through
processing -> completed | error exactly once. Starting a job takes an
operation lock keyed by (operation, path): while it is held, further start
requests for the same pair get the running job's id back instead of new work.
The lock is released when the work function returns or raises.

Job records and locks go through a key-value store (see core.store) so several
server processes can share them through Redis. Jobs started by this process are
also kept locally and stay the source of truth for progress and push events;
subscribers to a job owned by another process poll its stored record instead.
Nothing here can cancel a running job.
"""
import queue
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from core.config import (
    logger,
    JOB_TTL_SEC,
    LOCK_TTL_SEC,
    DOWNLOAD_TOKEN_TTL_SEC,
    SUBSCRIBER_QUEUE_SIZE,
    JOB_POLL_INTERVAL_MS,
)
from core.exceptions import ProcessingError
from core.store import MemoryStore
from models.job import Job, JobEvent, JobStatus, JobSummary

ProgressFn = Callable[[float], None]
WorkFn = Callable[[ProgressFn], Optional[Dict[str, Any]]]


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def lock_key(operation: str, path: str) -> str:
    return f"lock:{operation}|{path}"


def token_key(token: str) -> str:
    return f"dl:{token}"


class Subscription:
    """Buffered event feed for one job. Never blocks the publishing worker."""

    def __init__(self, job_id: str, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.job_id = job_id
        self._q: "queue.Queue[JobEvent]" = queue.Queue(maxsize=max(1, maxsize))
        self.closed = threading.Event()

    def offer(self, event: JobEvent) -> bool:
        try:
            self._q.put_nowait(event)
            return True
        except queue.Full:
            if not event.is_terminal:
                return False
        # Terminal events must get through: make room by dropping the oldest buffered one
        try:
            self._q.get_nowait()
        except queue.Empty:
            pass
        try:
            self._q.put_nowait(event)
            return True
        except queue.Full:
            return False

    def get(self, timeout: Optional[float] = None) -> Optional[JobEvent]:
        try:
            return self._q.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self.closed.set()


class JobRegistry:
    def __init__(
        self,
        store=None,
        job_ttl: int = JOB_TTL_SEC,
        lock_ttl: int = LOCK_TTL_SEC,
        token_ttl: int = DOWNLOAD_TOKEN_TTL_SEC,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
        poll_interval: float = JOB_POLL_INTERVAL_MS / 1000.0,
    ):
        self.store = store if store is not None else MemoryStore()
        self.job_ttl = job_ttl
        self.lock_ttl = lock_ttl
        self.token_ttl = token_ttl
        self.queue_size = queue_size
        self.poll_interval = poll_interval
        self._mutex = threading.Lock()
        self._jobs: Dict[str, Job] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}

    # ---- persistence ----

    def _save(self, job: Job) -> None:
        try:
            self.store.set(job_key(job.id), job.model_dump_json(by_alias=True), self.job_ttl)
        except Exception as ex:
            logger.warning(f"[jobs] could not persist job {job.id}: {ex}")

    def _load(self, job_id: str) -> Optional[Job]:
        try:
            raw = self.store.get(job_key(job_id))
        except Exception as ex:
            logger.warning(f"[jobs] could not read job {job_id}: {ex}")
            return None
        if not raw:
            return None
        return Job.model_validate_json(raw)

    def _prune_locked(self) -> None:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.job_ttl)
        for jid in [j.id for j in self._jobs.values() if j.status.is_terminal and j.start_time < cutoff]:
            self._jobs.pop(jid, None)
            self._threads.pop(jid, None)

    # ---- locks ----

    def lock_holder(self, operation: str, path: str) -> Optional[str]:
        return self.store.get(lock_key(operation, path))

    def _release_lock(self, key: str, job_id: str) -> None:
        try:
            # Only the owner may release; a lock that expired and was retaken belongs to someone else
            if self.store.get(key) == job_id:
                self.store.delete(key)
        except Exception as ex:
            logger.warning(f"[jobs] could not release lock {key}: {ex}")

    # ---- lifecycle ----

    def start(self, operation: str, path: str, work: WorkFn) -> str:
        """Run `work` in the background and return its job id.

        If a job for (operation, path) is already running, its id is returned
        and `work` is not called.
        """
        key = lock_key(operation, path)
        with self._mutex:
            job_id = str(uuid.uuid4())
            while not self.store.set_if_absent(key, job_id, self.lock_ttl):
                existing = self.store.get(key)
                if existing:
                    logger.info(f"[jobs] {operation} already in progress for {path}: JOB {existing}")
                    return existing

            self._prune_locked()
            job = Job(id=job_id, operation=operation, path=path)
            self._jobs[job_id] = job
            self._save(job)

            thread = threading.Thread(target=self._run, args=(job_id, key, work), name=f"job-{operation}-{job_id[:8]}")
            thread.daemon = True
            self._threads[job_id] = thread

        thread.start()
        logger.info(f"[jobs] JOB {job_id}: {operation} started for {path}")
        return job_id

    def _run(self, job_id: str, key: str, work: WorkFn) -> None:
        result = None
        error = None
        try:
            result = work(lambda p: self.update_progress(job_id, p))
        except ProcessingError as ex:
            logger.error(f"[jobs] JOB {job_id} failed: {ex}")
            error = str(ex) or type(ex).__name__
        except OSError as ex:
            logger.error(f"[jobs] JOB {job_id} failed: {ex}")
            error = str(ex)
        except Exception as ex:
            logger.exception(f"[jobs] JOB {job_id} crashed")
            error = f"{type(ex).__name__}: {ex}"

        self._release_lock(key, job_id)
        if error is None:
            self._finish(job_id, JobStatus.COMPLETED, result=result)
        else:
            self._finish(job_id, JobStatus.ERROR, error=error)

    def update_progress(self, job_id: str, progress: float) -> None:
        with self._mutex:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return
            value = min(1.0, max(job.progress, float(progress)))
            job.progress = value
            self._save(job)
            event = JobEvent(type="progress", data={"jobId": job_id, "progress": value})
            subscribers = list(self._subscribers.get(job_id, ()))
        for sub in subscribers:
            sub.offer(event)

    def _finish(self, job_id: str, status: JobStatus, result: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> None:
        with self._mutex:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if job.status.is_terminal:
                logger.warning(f"[jobs] JOB {job_id} is already {job.status.value}; ignoring {status.value}")
                return
            job.status = status
            if status is JobStatus.COMPLETED:
                job.progress = 1.0
                job.result = result
            else:
                job.error = error
            self._save(job)
            event = JobEvent.snapshot(job)
            subscribers = self._subscribers.pop(job_id, [])
        for sub in subscribers:
            sub.offer(event)
        logger.info(f"[jobs] JOB {job_id}: {status.value}")

    # ---- observers ----

    def get(self, job_id: str) -> Optional[Job]:
        with self._mutex:
            job = self._jobs.get(job_id)
            if job is not None:
                return job.model_copy(deep=True)
        return self._load(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Block until a job started by this registry finishes (or timeout) and return its state."""
        with self._mutex:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)
        return self.get(job_id)

    def subscribe(self, job_id: str) -> Optional[Subscription]:
        """Feed of events for job_id, starting with a snapshot of its current state."""
        sub = Subscription(job_id, self.queue_size)
        with self._mutex:
            job = self._jobs.get(job_id)
            if job is not None:
                sub.offer(JobEvent.snapshot(job))
                if not job.status.is_terminal:
                    self._subscribers.setdefault(job_id, []).append(sub)
                return sub
        # Owned by another process: follow the stored record until it is terminal
        job = self._load(job_id)
        if job is None:
            return None
        sub.offer(JobEvent.snapshot(job))
        if not job.status.is_terminal:
            watcher = threading.Thread(target=self._watch_store, args=(sub, job.progress), name=f"watch-{job_id[:8]}")
            watcher.daemon = True
            watcher.start()
        return sub

    def _watch_store(self, sub: Subscription, progress: float) -> None:
        while not sub.closed.wait(self.poll_interval):
            job = self._load(sub.job_id)
            if job is None:
                logger.warning(f"[jobs] JOB {sub.job_id} disappeared from the store")
                sub.offer(JobEvent(type="error", data={"jobId": sub.job_id, "error": "Job not found"}))
                return
            if job.status.is_terminal:
                sub.offer(JobEvent.snapshot(job))
                return
            if job.progress != progress:
                progress = job.progress
                sub.offer(JobEvent.snapshot(job))

    def unsubscribe(self, sub: Subscription) -> None:
        sub.close()
        with self._mutex:
            subs = self._subscribers.get(sub.job_id)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    self._subscribers.pop(sub.job_id, None)

    def list_jobs(self) -> List[JobSummary]:
        jobs: Dict[str, Job] = {}
        try:
            for key in self.store.keys("job:"):
                job = self._load(key[len("job:"):])
                if job is not None:
                    jobs[job.id] = job
        except Exception as ex:
            logger.warning(f"[jobs] could not list stored jobs: {ex}")
        with self._mutex:
            for job in self._jobs.values():
                jobs[job.id] = job.model_copy(deep=True)
        items = [JobSummary(id=j.id, status=j.status, progress=j.progress, start_time=j.start_time) for j in jobs.values()]
        items.sort(key=lambda s: s.start_time, reverse=True)
        return items

    # ---- download tokens ----

    def issue_download_token(self, path: str) -> str:
        token = uuid.uuid4().hex
        self.store.set(token_key(token), path, self.token_ttl)
        return token

    def resolve_download_token(self, token: str) -> Optional[str]:
        return self.store.get(token_key(token))

    def revoke_download_token(self, token: str) -> None:
        self.store.delete(token_key(token))
