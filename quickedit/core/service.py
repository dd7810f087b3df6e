"""
Job submission and background execution.

``submit()`` creates the job record and returns immediately; the pipeline
runs on its own daemon thread. Pollers read snapshots through ``get()``.
"""

import logging
import threading
from typing import Dict, List, Optional, Union

from .errors import StoreError
from .jobs import HistoryEntry, Job, Outcome, StyleConfig
from .pipeline import PipelineOrchestrator
from .store import JobStore

logger = logging.getLogger("quickedit")


class JobService:
    """
    Owns the store and orchestrator and tracks one worker thread per job.

    The orchestrator is the only writer for a job once its thread starts;
    every other caller is read-only.
    """

    def __init__(self, store: JobStore, orchestrator: PipelineOrchestrator):
        self.store = store
        self.orchestrator = orchestrator
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def recover(self) -> List[str]:
        """Fail jobs a previous process left unfinished. Call once at startup."""
        return self.store.fail_interrupted("Processing was interrupted by a server restart")

    def submit(
        self,
        source_ref: str,
        style_config: Union[StyleConfig, Dict, None] = None,
    ) -> str:
        """Create a queued job, start its pipeline in the background, return its id."""
        if not isinstance(style_config, StyleConfig):
            style_config = StyleConfig.from_dict(style_config)
        job = self.store.create(Job(source_ref=source_ref, style_config=style_config))
        self.store.add_history(HistoryEntry(
            job_id=job.id, step="submit", outcome=Outcome.SUBMITTED,
            message=f"Queued with style={style_config.style} intensity={style_config.intensity} "
                    f"quality={style_config.quality}",
        ))
        logger.info(f"Job {job.id} queued for {source_ref}")

        thread = threading.Thread(
            target=self._process, args=(job.id,), name=f"quickedit-{job.id[:8]}", daemon=True,
        )
        with self._lock:
            self._threads[job.id] = thread
        thread.start()
        return job.id

    def _process(self, job_id: str) -> None:
        try:
            self.orchestrator.run(job_id)
        except Exception as e:
            logger.exception(f"Job {job_id}: unexpected processing error")
            try:
                job = self.store.get(job_id)
                if not job.is_terminal:
                    self.store.mark_error(job_id, "Unexpected processing failure")
            except StoreError as store_err:
                logger.error(f"Job {job_id}: could not record failure ({e}): {store_err}")
        finally:
            with self._lock:
                self._threads.pop(job_id, None)

    def get(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def history(self, job_id: str) -> List[HistoryEntry]:
        return self.store.history(job_id)

    def list_jobs(self, limit: int = 100) -> List[Job]:
        return self.store.list_jobs(limit=limit)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            thread = self._threads.get(job_id)
        return thread is not None and thread.is_alive()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job's worker thread exits (or timeout), then return a snapshot."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)
        return self.store.get(job_id)


def build_service(config=None) -> JobService:
    """Wire a store, tool runner and orchestrator from a PipelineConfig."""
    from ..utils.config import PipelineConfig
    from .tools import ToolRunner

    config = config or PipelineConfig.from_env()
    store = JobStore(config.db_path)
    runner = ToolRunner(timeout=config.tool_timeout)
    return JobService(store, PipelineOrchestrator(store, runner=runner, config=config))
