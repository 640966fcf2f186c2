"""
Order Dispatcher Package

A priority job-dispatch loop that queues orders and assigns them to a
pool of bots, letting HIGH priority orders jump the queue.
"""

__version__ = '0.1.0'

from .types import (
    Job,
    Worker,
    JobPriority,
    JobStatus,
    WorkerStatus,
    DispatchPolicy,
    RemovalPolicy,
    PolicyViolation
)

from .algorithm import (
    insert_job,
    select_idle_workers,
    pair_jobs_with_workers,
    calculate_dispatch_metrics
)

from .clock import Clock, ManualClock, ThreadingClock, TimerHandle
from .dispatcher import Dispatcher
from .server import create_app, run_server

__all__ = [
    'Job',
    'Worker',
    'JobPriority',
    'JobStatus',
    'WorkerStatus',
    'DispatchPolicy',
    'RemovalPolicy',
    'PolicyViolation',
    'insert_job',
    'select_idle_workers',
    'pair_jobs_with_workers',
    'calculate_dispatch_metrics',
    'Clock',
    'ManualClock',
    'ThreadingClock',
    'TimerHandle',
    'Dispatcher',
    'create_app',
    'run_server',
]
