"""
QuickEdit Pipeline Orchestrator

Drives one job from queued to a terminal state:

  analyze (10) -> detect_cuts (25) -> apply_style (50) -> apply_cuts (75)
    -> overlay_caption (90) -> finalize_quality (100)

Failure handling, outermost last:
  - Optional stages (detect_cuts, apply_cuts, overlay_caption) pass their
    input artifact through when the tool fails.
  - A failed mandatory stage fails the attempt; the whole pipeline is retried
    up to ``max_attempts`` times with linear backoff.
  - After the last attempt, one pass-through render (stream copy of the
    source) is tried before the job is marked as error.
  - An unreadable source ends the job immediately; retrying cannot fix it.

Intermediate artifacts live in a job-scoped scratch directory that is
removed on every exit path.
"""

import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..utils.config import PipelineConfig
from ..utils.media import MediaInfo, probe
from .errors import (
    QuickEditError,
    SourceUnreadableError,
    StageError,
    TerminalStateError,
    ToolError,
    ToolExecutionError,
)
from .jobs import HistoryEntry, Job, Outcome
from .stages import (
    TimeSegment,
    caption_args,
    caption_for_style,
    cut_args,
    cut_threshold_for,
    detect_cuts_args,
    parse_silences,
    passthrough_args,
    plan_cut_segments,
    quality_args,
    resolve_quality_parameters,
    resolve_style_parameters,
    style_allows_cuts,
    style_args,
)
from .store import JobStore
from .tools import ToolRunner

logger = logging.getLogger("quickedit")

PASSTHROUGH_PROGRESS = 90


@dataclass
class StageResult:
    """Outcome of one stage; ``artifact_path`` feeds the next stage."""
    stage_name: str
    success: bool = True
    artifact_path: str = ""
    error_detail: str = ""
    outcome: Outcome = Outcome.SUCCESS
    message: str = ""


@dataclass
class PipelineContext:
    """Per-attempt state shared between stages."""
    job: Job
    workdir: str
    output_path: str
    attempt: int = 1
    media: Optional[MediaInfo] = None
    silences: List[TimeSegment] = field(default_factory=list)


@dataclass(frozen=True)
class Stage:
    name: str
    label: str
    progress: int
    required: bool
    run: Callable[[PipelineContext, str], StageResult]


class PipelineOrchestrator:
    """
    Runs the stage pipeline for a job and owns all writes to that job.

    Args:
        store: Job store.
        runner: ToolRunner used for every external invocation.
        config: Pipeline configuration.
        sleep: Backoff sleep function.
    """

    def __init__(
        self,
        store: JobStore,
        runner: Optional[ToolRunner] = None,
        config: Optional[PipelineConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.config = config or PipelineConfig()
        self.runner = runner or ToolRunner(timeout=self.config.tool_timeout)
        self._sleep = sleep
        self.stages = (
            Stage("analyze", "Analyzing video", 10, True, self._analyze),
            Stage("detect_cuts", "Detecting cut points", 25, False, self._detect_cuts),
            Stage("apply_style", "Applying editing style", 50, True, self._apply_style),
            Stage("apply_cuts", "Applying jump cuts", 75, False, self._apply_cuts),
            Stage("overlay_caption", "Adding caption", 90, False, self._overlay_caption),
            Stage("finalize_quality", "Optimizing quality", 100, True, self._finalize_quality),
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def run(self, job_id: str) -> Job:
        """Process a job to completion or error. Returns the final snapshot."""
        try:
            job = self.store.claim(job_id, step="Starting")
        except TerminalStateError:
            logger.warning(f"Job {job_id} is already finished, not running it again")
            return self.store.get(job_id)

        cfg = job.style_config
        logger.info(
            f"Job {job.id}: processing {job.source_ref} "
            f"(style={cfg.style}, intensity={cfg.intensity}, quality={cfg.quality})"
        )
        self._record(job.id, "pipeline", Outcome.STARTED, "Processing started")

        os.makedirs(self.config.output_dir, exist_ok=True)
        if self.config.scratch_dir:
            os.makedirs(self.config.scratch_dir, exist_ok=True)
        output_path = os.path.abspath(os.path.join(self.config.output_dir, f"{job.id}.mp4"))

        try:
            with tempfile.TemporaryDirectory(
                prefix=f"quickedit_{job.id[:8]}_", dir=self.config.scratch_dir,
            ) as scratch:
                return self._run_with_retry(job, scratch, output_path)
        except TerminalStateError as e:
            # Another writer finished the job; leave its record alone
            logger.error(f"Job {job.id}: store rejected a write: {e}")
            return self.store.get(job.id)

    def _run_with_retry(self, job: Job, scratch: str, output_path: str) -> Job:
        attempts = self.config.max_attempts
        last_error: Optional[QuickEditError] = None

        for attempt in range(1, attempts + 1):
            workdir = os.path.join(scratch, f"attempt-{attempt}")
            os.makedirs(workdir, exist_ok=True)
            ctx = PipelineContext(job=job, workdir=workdir, output_path=output_path, attempt=attempt)
            try:
                output_ref = self._run_stages(ctx)
            except SourceUnreadableError as e:
                logger.error(f"Job {job.id}: {e}")
                self._remove_partial(output_path)
                return self._fail(job, e)
            except (ToolError, StageError) as e:
                last_error = e
                self._remove_partial(output_path)
                logger.warning(f"Job {job.id}: attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    delay = self.config.retry_backoff * attempt
                    self._record(job.id, "pipeline", Outcome.RETRY,
                                 f"Attempt {attempt} failed ({e.public_message}); "
                                 f"retrying in {delay:g}s")
                    if delay > 0:
                        self._sleep(delay)
                else:
                    self._record(job.id, "pipeline", Outcome.ERROR,
                                 f"Attempt {attempt} failed ({e.public_message})")
            else:
                return self._complete(job, output_ref)

        logger.warning(f"Job {job.id}: all {attempts} attempts failed, trying pass-through render")
        try:
            output_ref = self._run_passthrough(job, output_path)
        except ToolError as e:
            last_error = e
            self._remove_partial(output_path)
            logger.error(f"Job {job.id}: pass-through render failed: {e}")
            self._record(job.id, "passthrough", Outcome.ERROR, e.public_message)
        else:
            return self._complete(job, output_ref, fallback=True)

        return self._fail(job, last_error)

    # ------------------------------------------------------------------
    # Stage fold
    # ------------------------------------------------------------------
    def _run_stages(self, ctx: PipelineContext) -> str:
        artifact = ctx.job.source_ref
        for stage in self.stages:
            result = self._run_stage(stage, ctx, artifact)
            artifact = result.artifact_path
            if stage.progress < 100:
                # 100 is written by mark_completed
                self.store.update_progress(ctx.job.id, stage.progress, stage.label)
            self._record(ctx.job.id, stage.name, result.outcome, result.message)
        return artifact

    def _run_stage(self, stage: Stage, ctx: PipelineContext, artifact: str) -> StageResult:
        logger.info(f"Job {ctx.job.id}: {stage.label}...")
        try:
            return stage.run(ctx, artifact)
        except (ToolExecutionError, ValueError) as e:
            if stage.required:
                if isinstance(e, ValueError):
                    # Fails the attempt like a tool error so retry and fallback still apply
                    err = StageError(stage.name, str(e))
                    self._record(ctx.job.id, stage.name, Outcome.ERROR, err.public_message)
                    raise err from e
                self._record(ctx.job.id, stage.name, Outcome.ERROR, e.public_message)
                raise
            logger.warning(f"Job {ctx.job.id}: {stage.name} failed, passing input through: {e}")
            return StageResult(
                stage_name=stage.name,
                success=False,
                artifact_path=artifact,
                error_detail=str(e),
                outcome=Outcome.DEGRADED,
                message=f"{stage.label} failed; continuing without it",
            )
        except (ToolError, SourceUnreadableError) as e:
            self._record(ctx.job.id, stage.name, Outcome.ERROR, e.public_message)
            raise

    def _ffmpeg(self, args: List[str]):
        return self.runner.run(self.config.ffmpeg_path, args, timeout=self.config.tool_timeout)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _analyze(self, ctx: PipelineContext, artifact: str) -> StageResult:
        ctx.media = probe(
            artifact,
            runner=self.runner,
            ffprobe_path=self.config.ffprobe_path,
            timeout=self.config.probe_timeout,
        )
        return StageResult(
            "analyze",
            artifact_path=artifact,
            message=f"{ctx.media.duration:.1f}s, {ctx.media.resolution}",
        )

    def _detect_cuts(self, ctx: PipelineContext, artifact: str) -> StageResult:
        if not ctx.media.has_audio:
            return StageResult("detect_cuts", artifact_path=artifact,
                               outcome=Outcome.SKIPPED, message="No audio track")
        result = self._ffmpeg(detect_cuts_args(artifact))
        ctx.silences = parse_silences(result.output, ctx.media.duration)
        return StageResult("detect_cuts", artifact_path=artifact,
                           message=f"Found {len(ctx.silences)} low-activity segment(s)")

    def _apply_style(self, ctx: PipelineContext, artifact: str) -> StageResult:
        cfg = ctx.job.style_config
        params = resolve_style_parameters(cfg.style, cfg.intensity)
        out = os.path.join(ctx.workdir, "styled.mp4")
        self._ffmpeg(style_args(artifact, out, params))
        return StageResult("apply_style", artifact_path=out,
                           message=f"Applied {params.style.value} style (x{params.multiplier:g})")

    def _apply_cuts(self, ctx: PipelineContext, artifact: str) -> StageResult:
        style = ctx.job.style_config.style
        if not style_allows_cuts(style):
            return StageResult("apply_cuts", artifact_path=artifact,
                               outcome=Outcome.SKIPPED, message="Style does not use jump cuts")
        segments = plan_cut_segments(ctx.silences, ctx.media.duration, cut_threshold_for(style))
        if not segments:
            return StageResult("apply_cuts", artifact_path=artifact,
                               outcome=Outcome.SKIPPED, message="No cut points")
        out = os.path.join(ctx.workdir, "cut.mp4")
        self._ffmpeg(cut_args(artifact, out, segments, with_audio=ctx.media.has_audio))
        kept = sum(s.duration for s in segments)
        return StageResult("apply_cuts", artifact_path=out,
                           message=f"Kept {len(segments)} segment(s), {kept:.1f}s")

    def _overlay_caption(self, ctx: PipelineContext, artifact: str) -> StageResult:
        text = caption_for_style(ctx.job.style_config.style)
        out = os.path.join(ctx.workdir, "captioned.mp4")
        self._ffmpeg(caption_args(artifact, out, text))
        return StageResult("overlay_caption", artifact_path=out, message=f"Caption: {text}")

    def _finalize_quality(self, ctx: PipelineContext, artifact: str) -> StageResult:
        params = resolve_quality_parameters(ctx.job.style_config.quality)
        self._ffmpeg(quality_args(artifact, ctx.output_path, params))
        return StageResult("finalize_quality", artifact_path=ctx.output_path,
                           message=f"Encoded {params.width}x{params.height} crf {params.crf}")

    def _run_passthrough(self, job: Job, output_path: str) -> str:
        self.store.update_progress(job.id, PASSTHROUGH_PROGRESS, "Rendering pass-through copy")
        self._record(job.id, "passthrough", Outcome.FALLBACK,
                     "Retries exhausted; copying source unchanged")
        self._ffmpeg(passthrough_args(job.source_ref, output_path))
        return output_path

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------
    def _complete(self, job: Job, output_ref: str, fallback: bool = False) -> Job:
        final = self.store.mark_completed(job.id, output_ref)
        note = "Completed with pass-through copy" if fallback else "Completed"
        self._record(job.id, "pipeline", Outcome.COMPLETED, note)
        logger.info(f"Job {job.id}: {note.lower()} -> {output_ref}")
        return final

    def _fail(self, job: Job, error: Optional[QuickEditError]) -> Job:
        message = error.public_message if error is not None else "Video processing failed"
        final = self.store.mark_error(job.id, message)
        self._record(job.id, "pipeline", Outcome.ERROR, message)
        logger.error(f"Job {job.id}: failed: {error}")
        return final

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _record(self, job_id: str, step: str, outcome: Outcome, message: str = "") -> None:
        self.store.add_history(HistoryEntry(job_id=job_id, step=step, outcome=outcome, message=message))

    @staticmethod
    def _remove_partial(path: str) -> None:
        if os.path.exists(path):
            try:
                os.unlink(path)
            except OSError as e:
                logger.warning(f"Could not remove partial output {path}: {e}")
