"""
QuickEdit error taxonomy.

Every error carries a ``public_message`` that is safe to store on a job
record. Tool stderr and other internal detail stay on the exception and in
the log, never in the job's public message.
"""

from typing import Optional


class QuickEditError(Exception):
    """Base class for all QuickEdit errors."""
    public_message = "Video processing failed"


# ---------------------------------------------------------------------------
# External tool errors
# ---------------------------------------------------------------------------
class ToolError(QuickEditError):
    """Base class for failures of the external media tool."""


class ToolLaunchError(ToolError):
    """The executable could not be started (not found / not executable)."""
    public_message = "Video processing tool is not available"

    def __init__(self, executable: str, reason: str = ""):
        self.executable = executable
        self.reason = reason
        super().__init__(f"Failed to start '{executable}': {reason}" if reason
                         else f"Failed to start '{executable}'")


class ToolExecutionError(ToolError):
    """The tool ran and exited non-zero."""
    public_message = "Video processing tool reported an error"

    def __init__(self, exit_code: Optional[int], captured_stderr: str = "",
                 executable: str = ""):
        self.exit_code = exit_code
        self.captured_stderr = captured_stderr or ""
        self.executable = executable
        tail = self.captured_stderr.strip().splitlines()[-1:] or ["no output"]
        super().__init__(f"{executable or 'tool'} exited with code {exit_code}: {tail[0]}")


class ToolTimeoutError(ToolExecutionError):
    """The tool exceeded its wall-clock budget and was killed."""
    public_message = "Video processing timed out"

    def __init__(self, timeout: float, captured_stderr: str = "", executable: str = ""):
        self.timeout = timeout
        super().__init__(None, captured_stderr, executable)
        self.args = (f"{executable or 'tool'} timed out after {timeout}s",)


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------
class StageError(QuickEditError):
    """A mandatory stage failed outside the external tool. Retried like a tool failure."""
    public_message = "Video processing stage failed"

    def __init__(self, stage: str, reason: str = ""):
        self.stage = stage
        self.reason = reason
        super().__init__(f"Stage {stage} failed: {reason}" if reason else f"Stage {stage} failed")


class SourceUnreadableError(QuickEditError):
    """The input artifact is missing or cannot be decoded. Never retried."""
    public_message = "Source video could not be read"

    def __init__(self, source_ref: str, reason: str = ""):
        self.source_ref = source_ref
        self.reason = reason
        super().__init__(f"Source unreadable: {source_ref}" + (f" ({reason})" if reason else ""))


# ---------------------------------------------------------------------------
# Job store errors
# ---------------------------------------------------------------------------
class StoreError(QuickEditError):
    """Raised when job store operations fail."""


class NotFoundError(StoreError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class DuplicateIdError(StoreError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job already exists: {job_id}")


class TerminalStateError(StoreError):
    """A write was attempted against a completed or errored job."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is already {status}")
