from __future__ import annotations
import threading, time
from dataclasses import dataclass, field
from typing import Optional

from spreadmap.domain.models import CatalogueProject
from spreadmap.services.batch_extraction import BatchExtractionService, BatchSummary


@dataclass
class ExtractionJob:
    thread: threading.Thread
    project: CatalogueProject
    cancel_event: threading.Event
    started_at: float
    total: int
    progress: int = 0
    summary: Optional[BatchSummary] = None
    error: Optional[BaseException] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _run_service(svc: BatchExtractionService, job: ExtractionJob) -> None:
    def on_progress(done: int, total: int):
        with job._lock:
            job.progress = done
            job.total = total

    try:
        job.summary = svc.run(job.project, on_progress=on_progress, should_cancel=job.cancel_event.is_set)
    except Exception as e:  # surfaced through finish()
        job.error = e


class ExtractController:
    """Runs a batch extraction off the caller's thread; poll() for progress, finish() for the summary."""

    def __init__(self, service: BatchExtractionService):
        self.service = service

    def start(self, project: CatalogueProject) -> Optional[ExtractionJob]:
        if self.service.running:
            return None
        job = ExtractionJob(
            thread=None,  # type: ignore[arg-type]
            project=project,
            cancel_event=threading.Event(),
            started_at=time.time(),
            total=len(project.tiles),
        )
        job.thread = threading.Thread(target=_run_service, args=(self.service, job),
                                      name="spreadmap-extract", daemon=True)
        job.thread.start()
        return job

    def poll(self, job: ExtractionJob) -> Optional[tuple[int, int]]:
        if job.thread.is_alive():
            with job._lock:
                return (job.progress, job.total)
        return None

    def finish(self, job: ExtractionJob, timeout: Optional[float] = None) -> Optional[BatchSummary]:
        job.thread.join(timeout=timeout)
        if job.error is not None:
            raise job.error
        return job.summary

    def cancel(self, job: ExtractionJob) -> None:
        job.cancel_event.set()
