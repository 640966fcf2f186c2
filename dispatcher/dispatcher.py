import itertools
import logging
import threading
from dataclasses import replace
from functools import partial
from typing import Dict, List, Optional, Tuple

from .algorithm import (
    calculate_dispatch_metrics,
    insert_job,
    pair_jobs_with_workers,
    select_idle_workers
)
from .clock import Clock, TimerHandle
from .types import (
    DispatchPolicy,
    Job,
    JobPriority,
    JobStatus,
    PolicyViolation,
    RemovalPolicy,
    Worker,
    WorkerStatus
)

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Assigns pending jobs to idle workers and tracks them to completion.

    Every public method runs under a single re-entrant lock, so completion
    callbacks delivered on timer threads never interleave with API calls.
    Assignment is re-run at the end of every mutating operation.
    """

    def __init__(self, clock: Clock, policy: Optional[DispatchPolicy] = None):
        self.clock = clock
        self.policy = policy or DispatchPolicy()

        self._lock = threading.RLock()
        self._jobs: Dict[str, Job] = {}
        self._workers: List[Worker] = []
        self._pending: List[Job] = []
        self._completed: List[str] = []
        self._timers: Dict[Tuple[str, int], TimerHandle] = {}

        self._worker_ids = itertools.count(1)
        self._job_numbers = {priority: itertools.count(1) for priority in JobPriority}

    # Commands

    def submit_job(self, priority=JobPriority.NORMAL) -> str:
        """
        Queue a new job and dispatch it if a worker is idle.

        Args:
            priority: JobPriority or its string value

        Returns:
            Id of the new job

        Raises:
            ValueError: if the priority is unknown
        """
        priority = JobPriority(priority)
        with self._lock:
            number = next(self._job_numbers[priority])
            job = Job(
                job_id=f"{self.policy.prefix_for(priority)}-{number}",
                priority=priority,
                submitted_at=self.clock.now()
            )
            self._jobs[job.job_id] = job
            self._pending = insert_job(self._pending, job)
            logger.info(f"Submitted {priority.value} job {job.job_id}")

            self.run_assignment()
            return job.job_id

    def add_worker(self) -> int:
        """Add an idle worker to the pool and return its id."""
        with self._lock:
            worker = Worker(worker_id=next(self._worker_ids))
            self._workers.append(worker)
            logger.info(f"Added worker {worker.worker_id} ({len(self._workers)} active)")

            self.run_assignment()
            return worker.worker_id

    def remove_worker(self) -> Optional[int]:
        """
        Remove a worker from the pool.

        The most recently added worker is the target. Under the REQUEUE
        policy a busy target gives its job back to the pending queue; under
        REFUSE the newest idle worker is removed instead.

        Returns:
            Id of the removed worker, or None if the pool was empty

        Raises:
            PolicyViolation: under REFUSE, when every worker is busy
        """
        with self._lock:
            if not self._workers:
                logger.info("No workers to remove")
                return None

            target = self._workers[-1]
            if not target.is_idle:
                if self.policy.removal == RemovalPolicy.REFUSE:
                    target = self._newest_idle_worker()
                else:
                    self._requeue(target)

            self._workers.remove(target)
            logger.info(f"Removed worker {target.worker_id} ({len(self._workers)} active)")

            self.run_assignment()
            return target.worker_id

    def run_assignment(self) -> List[Tuple[str, int]]:
        """
        Assign pending jobs to idle workers until one side runs out.

        Safe to call at any time; it does nothing when there is no
        (pending job, idle worker) pair.

        Returns:
            (job_id, worker_id) pairs assigned in this pass
        """
        with self._lock:
            pairs = pair_jobs_with_workers(
                self._pending,
                select_idle_workers(self._workers)
            )
            if not pairs:
                return []

            self._pending = self._pending[len(pairs):]
            for job, worker in pairs:
                job.status = JobStatus.ASSIGNED
                job.assigned_worker_id = worker.worker_id
                worker.status = WorkerStatus.BUSY
                worker.current_job_id = job.job_id

                key = (job.job_id, worker.worker_id)
                self._timers[key] = self.clock.call_later(
                    self.policy.processing_duration,
                    partial(self.complete_job, *key)
                )
                logger.info(f"Assigned job {job.job_id} to worker {worker.worker_id}")

            return [(job.job_id, worker.worker_id) for job, worker in pairs]

    def complete_job(self, job_id: str, worker_id: int) -> bool:
        """
        Finish a job on behalf of the worker it was assigned to.

        This is the callback scheduled at assignment time. If the job is no
        longer held by that worker (the worker was removed and the job
        requeued, or the job already completed), nothing changes.

        Returns:
            True if the job was completed by this call
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if (job is None or job.status != JobStatus.ASSIGNED
                    or job.assigned_worker_id != worker_id):
                logger.debug(f"Discarding stale completion of {job_id} by worker {worker_id}")
                return False

            worker = self._find_worker(worker_id)
            if worker is None or worker.current_job_id != job_id:
                logger.debug(f"Discarding stale completion of {job_id} by worker {worker_id}")
                return False

            handle = self._timers.pop((job_id, worker_id), None)
            if handle is not None:
                handle.cancel()
            job.status = JobStatus.COMPLETED
            job.completed_at = self.clock.now()
            worker.status = WorkerStatus.IDLE
            worker.current_job_id = None
            self._completed.append(job_id)
            logger.info(f"Worker {worker_id} completed job {job_id}")

            self.run_assignment()
            return True

    # Queries

    def list_pending(self) -> List[Job]:
        """Pending jobs in dispatch order."""
        with self._lock:
            return [replace(job) for job in self._pending]

    def list_processing(self) -> List[Job]:
        """Assigned jobs in submission order."""
        with self._lock:
            return [
                replace(job) for job in self._jobs.values()
                if job.status == JobStatus.ASSIGNED
            ]

    def list_completed(self) -> List[Job]:
        """Completed jobs in completion order."""
        with self._lock:
            return [replace(self._jobs[job_id]) for job_id in self._completed]

    def list_workers(self) -> List[Worker]:
        """Active workers in the order they were added."""
        with self._lock:
            return [replace(worker) for worker in self._workers]

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def metrics(self) -> dict:
        with self._lock:
            return calculate_dispatch_metrics(list(self._jobs.values()), self._workers)

    # Internals

    def _find_worker(self, worker_id: int) -> Optional[Worker]:
        for worker in self._workers:
            if worker.worker_id == worker_id:
                return worker
        return None

    def _newest_idle_worker(self) -> Worker:
        for worker in reversed(self._workers):
            if worker.is_idle:
                return worker
        raise PolicyViolation(
            f"All {len(self._workers)} workers are busy; refusing to remove one"
        )

    def _requeue(self, worker: Worker):
        # Job goes back through the insertion policy, not to the queue head.
        job = self._jobs[worker.current_job_id]
        handle = self._timers.pop((job.job_id, worker.worker_id), None)
        if handle is not None:
            handle.cancel()

        job.status = JobStatus.PENDING
        job.assigned_worker_id = None
        worker.status = WorkerStatus.IDLE
        worker.current_job_id = None
        self._pending = insert_job(self._pending, job)
        logger.info(f"Requeued job {job.job_id} from removed worker {worker.worker_id}")
