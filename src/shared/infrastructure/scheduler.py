"""Job scheduler implementations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from celery import current_app
from django.db import transaction

from shared.domain.scheduler import IJobScheduler, JobType

logger = structlog.get_logger(__name__)


class CeleryJobScheduler(IJobScheduler):
    """Enqueues jobs on Celery once the current transaction commits.

    Jobs are addressed by task name (``send_task``), so jobs owned by other
    services (shipments, analytics) need no local import.  Deferring to
    ``on_commit`` guarantees a worker never picks up a job before the state
    it depends on is visible.
    """

    def schedule(
        self,
        job_type: JobType,
        payload: Dict[str, Any],
        delay: Optional[float] = None,
    ) -> None:
        name = JobType(job_type).value

        def _enqueue() -> None:
            current_app.send_task(name, kwargs=payload, countdown=delay)
            logger.info("job.enqueued", job_type=name, delay=delay, **payload)

        transaction.on_commit(_enqueue, robust=True)


@dataclass
class ScheduledJob:
    job_type: JobType
    payload: Dict[str, Any]
    delay: Optional[float] = None


@dataclass
class InMemoryJobScheduler(IJobScheduler):
    """Records scheduled jobs in memory (tests and local scripts)."""

    jobs: List[ScheduledJob] = field(default_factory=list)

    def schedule(
        self,
        job_type: JobType,
        payload: Dict[str, Any],
        delay: Optional[float] = None,
    ) -> None:
        self.jobs.append(ScheduledJob(JobType(job_type), dict(payload), delay))

    def of_type(self, job_type: JobType) -> List[ScheduledJob]:
        return [job for job in self.jobs if job.job_type == job_type]

    def pop(self, job_type: JobType) -> List[ScheduledJob]:
        """Remove and return every pending job of *job_type*."""
        taken = self.of_type(job_type)
        self.jobs = [job for job in self.jobs if job.job_type != job_type]
        return taken

    def clear(self) -> None:
        self.jobs.clear()
