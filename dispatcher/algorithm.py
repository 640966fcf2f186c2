"""
Core dispatching algorithm.

This module implements the pure queueing logic: where a new job belongs
in the pending queue, which workers are eligible for work, and how
pending jobs are paired with idle workers.

Nothing here mutates its inputs. Given the same inputs, every function
produces the same outputs.
"""

from typing import List, Sequence, Tuple

from .types import Job, JobStatus, Worker, WorkerStatus


def insert_job(queue: Sequence[Job], job: Job) -> List[Job]:
    """
    Insert a job into a pending queue according to its priority.

    Rules:
    1. NORMAL jobs are appended at the end
    2. HIGH jobs go immediately after the last HIGH job, or at the
       front when no HIGH job is queued

    All HIGH jobs therefore precede all NORMAL jobs, and each class
    stays FIFO. Jobs in the queue that are no longer PENDING are
    ignored and left out of the result.

    Args:
        queue: Current pending queue, in dispatch order
        job: Job to insert

    Returns:
        New queue containing the job
    """
    pending = [queued for queued in queue if queued.status == JobStatus.PENDING]

    if not job.is_high_priority:
        return pending + [job]

    position = 0
    for index, queued in enumerate(pending):
        if queued.is_high_priority:
            position = index + 1

    return pending[:position] + [job] + pending[position:]


def select_idle_workers(workers: Sequence[Worker]) -> List[Worker]:
    """
    Return idle workers, oldest first.

    Ascending id keeps the choice deterministic regardless of the
    order the pool is stored in.
    """
    return sorted(
        (worker for worker in workers if worker.status == WorkerStatus.IDLE),
        key=lambda worker: worker.worker_id
    )


def pair_jobs_with_workers(
    pending: Sequence[Job],
    idle: Sequence[Worker]
) -> List[Tuple[Job, Worker]]:
    """
    Pair the head of the pending queue with the head of the idle list.

    Each job and each worker is used at most once; pairing stops as soon
    as either side runs out.

    Args:
        pending: Pending jobs in dispatch order
        idle: Idle workers in selection order

    Returns:
        List of (job, worker) pairs
    """
    return list(zip(pending, idle))


def calculate_dispatch_metrics(
    jobs: Sequence[Job],
    workers: Sequence[Worker]
) -> dict:
    """
    Calculate metrics about the current dispatch state.

    Args:
        jobs: Every job known to the dispatcher
        workers: Active workers

    Returns:
        Dictionary containing dispatch metrics
    """
    pending = [j for j in jobs if j.status == JobStatus.PENDING]
    completed = [j for j in jobs if j.status == JobStatus.COMPLETED]
    busy = sum(1 for w in workers if w.status == WorkerStatus.BUSY)

    turnarounds = [j.completed_at - j.submitted_at for j in completed]

    return {
        "jobs_submitted": len(jobs),
        "pending_count": len(pending),
        "processing_count": sum(1 for j in jobs if j.status == JobStatus.ASSIGNED),
        "completed_count": len(completed),
        "high_priority_pending": sum(1 for j in pending if j.is_high_priority),
        "idle_workers": len(workers) - busy,
        "busy_workers": busy,
        "average_turnaround": (
            sum(turnarounds) / len(turnarounds)
            if turnarounds else 0
        )
    }
