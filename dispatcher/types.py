"""
Data models for the order dispatcher.

This module defines the core data structures used in dispatching:
- Jobs (orders) waiting for or undergoing processing
- Workers (bots) that process one job at a time
- The policy that configures a dispatcher instance
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum


class JobPriority(Enum):
    """Priority class of a job. HIGH jobs are dispatched ahead of NORMAL ones."""
    NORMAL = "normal"
    HIGH = "high"


class JobStatus(Enum):
    """Lifecycle state of a job."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"


class WorkerStatus(Enum):
    """Availability state of a worker."""
    IDLE = "idle"
    BUSY = "busy"


class RemovalPolicy(Enum):
    """What remove_worker does when the newest worker is busy."""
    REQUEUE = "requeue"
    REFUSE = "refuse"


class PolicyViolation(Exception):
    """Raised when an operation is refused by the dispatch policy.

    The dispatcher state is left unchanged when this is raised.
    """


@dataclass
class Job:
    """
    A unit of work submitted for processing.

    Attributes:
        job_id: Unique identifier for the job, never reused
        priority: Priority class, fixed at creation
        submitted_at: Clock time when the job was submitted
        status: Current lifecycle state
        assigned_worker_id: Worker holding or having completed the job
        completed_at: Clock time when the job was completed
    """
    job_id: str
    priority: JobPriority
    submitted_at: float
    status: JobStatus = JobStatus.PENDING
    assigned_worker_id: Optional[int] = None
    completed_at: Optional[float] = None

    def __post_init__(self):
        """Validate job fields."""
        if not isinstance(self.priority, JobPriority):
            self.priority = JobPriority(self.priority)

    @property
    def is_high_priority(self) -> bool:
        return self.priority == JobPriority.HIGH


@dataclass
class Worker:
    """
    A processing unit that handles at most one job at a time.

    Attributes:
        worker_id: Unique identifier, assigned in increasing order
        status: Current availability state
        current_job_id: Job being processed, set only while BUSY
    """
    worker_id: int
    status: WorkerStatus = WorkerStatus.IDLE
    current_job_id: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.status == WorkerStatus.IDLE


@dataclass
class DispatchPolicy:
    """
    Policy configuration for a dispatcher.

    Attributes:
        processing_duration: Fixed delay, in clock units, between assignment
            and completion of a job
        removal: Behavior of remove_worker when the newest worker is busy
        normal_prefix: Id prefix for NORMAL jobs
        high_prefix: Id prefix for HIGH jobs
    """
    processing_duration: float = 10.0
    removal: RemovalPolicy = RemovalPolicy.REQUEUE
    normal_prefix: str = "O"
    high_prefix: str = "VIP"

    def __post_init__(self):
        """Validate policy fields."""
        if not isinstance(self.removal, RemovalPolicy):
            self.removal = RemovalPolicy(self.removal)
        if self.processing_duration <= 0:
            raise ValueError(
                f"Processing duration must be positive, got {self.processing_duration}"
            )
        if not self.normal_prefix or not self.high_prefix:
            raise ValueError("Job id prefixes cannot be empty")
        if self.normal_prefix == self.high_prefix:
            raise ValueError("Job id prefixes must differ between priorities")

    def prefix_for(self, priority: JobPriority) -> str:
        return self.high_prefix if priority == JobPriority.HIGH else self.normal_prefix
