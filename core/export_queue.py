from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from core.errors import error_message
from core.export import generate_pdf


logger = logging.getLogger(__name__)


@dataclass
class ExportJob:
    id: str
    kind: str
    status: str = "queued"
    result_path: Optional[str] = None
    error: Optional[str] = None
    future: Optional[Future] = field(default=None, repr=False)


class ExportQueue:
    """
    Threaded PDF export so a long render does not block the dashboard.
    ``busy`` stays true while any job is queued or running. Only the
    newest ``max_jobs`` finished jobs are remembered.
    """

    def __init__(self, output_dir: Path, max_workers: int = 1, max_jobs: int = 20):
        self.output_dir = output_dir
        self.max_jobs = max(1, max_jobs)
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="export")
        self.jobs: Dict[str, ExportJob] = {}
        self.lock = threading.Lock()

    @property
    def busy(self) -> bool:
        with self.lock:
            return any(j.status in ("queued", "running") for j in self.jobs.values())

    def submit(self, kind: str, builder: Callable[[], bytes], filename: Optional[str] = None) -> str:
        job_id = uuid.uuid4().hex[:12]
        job = ExportJob(id=job_id, kind=kind)
        with self.lock:
            self.jobs[job_id] = job
            self._prune()
        job.future = self.executor.submit(self._run_job, job_id, builder, filename)
        logger.info("export %s queued (%s)", job_id, kind)
        return job_id

    def _prune(self) -> None:
        # oldest first; queued and running jobs are never dropped
        excess = len(self.jobs) - self.max_jobs
        for old_id in [j.id for j in self.jobs.values() if j.status in ("completed", "failed")][: max(0, excess)]:
            del self.jobs[old_id]

    def _run_job(self, job_id: str, builder: Callable[[], bytes], filename: Optional[str]) -> None:
        with self.lock:
            job = self.jobs[job_id]
            job.status = "running"
        try:
            path = generate_pdf(builder, self.output_dir, filename)
            with self.lock:
                job.status = "completed"
                job.result_path = str(path)
        except Exception as exc:
            logger.warning("export %s failed: %s", job_id, error_message(exc))
            with self.lock:
                job.status = "failed"
                job.error = error_message(exc)

    def get(self, job_id: str) -> Optional[ExportJob]:
        with self.lock:
            return self.jobs.get(job_id)

    def recent(self, limit: int = 3) -> List[ExportJob]:
        with self.lock:
            return list(self.jobs.values())[-limit:]

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ExportJob]:
        job = self.get(job_id)
        if job is not None and job.future is not None:
            job.future.result(timeout=timeout)
        return job

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)
