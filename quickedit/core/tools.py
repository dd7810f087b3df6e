"""
External tool invocation.

Runs one command to completion and maps the outcome onto the QuickEdit
error taxonomy. Retry is the orchestrator's job, not this module's.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import ToolExecutionError, ToolLaunchError, ToolTimeoutError

logger = logging.getLogger("quickedit")

# FFmpeg writes progress and filter reports to stderr; keep only the tail.
STDERR_TAIL = 2000


@dataclass
class ToolResult:
    """Captured output of a finished tool invocation."""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout + stderr text."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class ToolRunner:
    """
    Spawns exactly one child process per ``run()`` call.

    Args:
        timeout: Default wall-clock limit in seconds (None = unbounded).
    """

    def __init__(self, timeout: Optional[float] = 3600):
        self.timeout = timeout

    def run(
        self,
        executable: str,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """
        Run ``executable`` with ``args`` and wait for it.

        Returns:
            ToolResult with captured stdout/stderr.

        Raises:
            ToolLaunchError: The executable is missing or not executable.
            ToolExecutionError: The process exited non-zero.
            ToolTimeoutError: The process exceeded its timeout.
        """
        cmd: List[str] = [executable, *[str(a) for a in args]]
        limit = timeout if timeout is not None else self.timeout
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=limit,
            )
        except OSError as e:
            # FileNotFoundError, PermissionError, exec format errors
            raise ToolLaunchError(executable, str(e)) from e
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
            raise ToolTimeoutError(limit, stderr[-STDERR_TAIL:], executable) from e

        if result.returncode != 0:
            err = result.stderr[-STDERR_TAIL:] if result.stderr else ""
            logger.debug(f"{executable} exited {result.returncode}: {err[-500:]}")
            raise ToolExecutionError(result.returncode, err, executable)

        return ToolResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)

    def available(self, executable: str) -> bool:
        """Whether ``executable -version`` runs successfully."""
        try:
            self.run(executable, ["-version"], timeout=10)
            return True
        except (ToolLaunchError, ToolExecutionError):
            return False
