"""APScheduler-based runner for one-shot, cancellable background jobs."""

import logging
import threading
import uuid
from typing import Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

# A unit of work receives its cancel event and returns True on success.
Work = Callable[[threading.Event], bool]
OnComplete = Callable[[bool], None]


class JobRunner:
    """
    Runs fire-and-forget jobs on a background thread pool.

    Cancellation is cooperative: each job gets a ``threading.Event`` that
    ``cancel()`` sets; the job is expected to check it between steps.

    Usage::

        runner = JobRunner()
        runner.start()
        job_id = runner.submit(work, on_complete=lambda ok: ...)
        runner.cancel(job_id)
        runner.stop()
    """

    def __init__(self, max_workers: int = 10) -> None:
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers)},
            timezone="UTC",
        )
        self._lock = threading.Lock()
        self._cancel_events: dict[str, threading.Event] = {}

    def submit(self, work: Work, on_complete: Optional[OnComplete] = None) -> str:
        """
        Queue ``work`` to run as soon as a worker is free.

        Args:
            work: Callable taking the job's cancel event, returning success
            on_complete: Optional callback invoked with the job's success flag

        Returns:
            The job id, usable with ``cancel()``
        """
        job_id = uuid.uuid4().hex
        cancel = threading.Event()
        with self._lock:
            self._cancel_events[job_id] = cancel
        self._scheduler.add_job(
            func=self._run_job_wrapper,
            trigger="date",
            args=[job_id, work, cancel, on_complete],
            id=job_id,
            name=getattr(work, "__name__", type(work).__name__),
            misfire_grace_time=None,
        )
        logger.debug("Submitted background job %s", job_id)
        return job_id

    def cancel(self, job_id: str) -> bool:
        """
        Signal a job to stop; a job that has not started yet is dropped.

        Returns:
            True if the job was dropped before it ran, so its completion
            callback will never be called
        """
        with self._lock:
            cancel = self._cancel_events.pop(job_id, None)
        if cancel is None:
            return False
        cancel.set()
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            # already running or finished; the event stops it
            return False
        logger.debug("Removed pending background job %s", job_id)
        return True

    @property
    def running(self) -> bool:
        """False until start(); jobs submitted before then do not run."""
        return bool(self._scheduler.running)

    @property
    def active_jobs(self) -> int:
        with self._lock:
            return len(self._cancel_events)

    def _run_job_wrapper(
        self,
        job_id: str,
        work: Work,
        cancel: threading.Event,
        on_complete: Optional[OnComplete],
    ) -> None:
        """Execute a job and invoke its completion callback."""
        try:
            success = bool(work(cancel))
        except Exception as exc:
            logger.error("Background job %s raised: %s", job_id, exc)
            success = False
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)

        if on_complete:
            try:
                on_complete(success)
            except Exception as exc:
                logger.error("on_complete callback raised: %s", exc)

    def start(self) -> None:
        """Start the background scheduler."""
        self._scheduler.start()
        logger.info("Job runner started")

    def stop(self, wait: bool = True) -> None:
        """Cancel every outstanding job and stop the scheduler."""
        with self._lock:
            events = list(self._cancel_events.values())
            self._cancel_events.clear()
        for cancel in events:
            cancel.set()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        logger.info("Job runner stopped")
