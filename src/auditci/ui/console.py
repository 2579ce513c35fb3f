"""Console output formatting utilities for auditci."""

from __future__ import annotations

import sys
import threading
import traceback
from typing import Dict, Iterable, Optional


class Console:
    """Centralized console output formatting. Safe to call from job threads."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Where normal output goes (defaults to sys.stdout at write time)
            err_stream: Where errors go (defaults to sys.stderr at write time)
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        target = (self._err_stream or sys.stderr) if err else (self._stream or sys.stdout)
        with self._lock:
            for line in lines:
                print(line, file=target)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(self, workflow: str, event: str, job_count: int, revision: Optional[str] = None) -> None:
        """Print run start information."""
        lines = ["\nRUN STARTED", f"Workflow: {workflow}", f"Event: {event}"]
        if revision:
            lines.append(f"Revision: {revision}")
        lines.append(f"Jobs: {job_count}")
        self._out(*lines, "")

    def print_plan(self, active: bool, event: str, matched: Iterable[str], patterns: Iterable[str]) -> None:
        """Print the trigger decision."""
        matched = list(matched)
        if event == "manual":
            self._out("TRIGGER: manual dispatch")
        elif active:
            self._out(f"TRIGGER: push matched {len(matched)} path(s)", *(f"  {p}" for p in matched))
        else:
            self._out(f"TRIGGER: push matched none of {list(patterns)}")

    def print_job_start(self, name: str) -> None:
        self._out(f"[{name}] JOB STARTED")

    def print_step(self, job: str, name: str) -> None:
        self._out(f"[{job}] STEP: {name}")

    def print_job_success(self, name: str) -> None:
        self._out(f"[{name}] STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        step: Optional[str] = None,
        exit_code: Optional[int] = None,
    ) -> None:
        """
        Print a job failure.

        Args:
            name: Job name
            reason: Failure reason/error message
            step: The step that failed, if any
            exit_code: Optional exit code of the failed command
        """
        lines = [f"[{name}] JOB FAILED" + (f" at step '{step}'" if step else "")]
        if exit_code is not None:
            lines.append(f"[{name}] Exit code: {exit_code}")
        if self.debug:
            lines.extend(f"[{name}] {line}" for line in reason.splitlines())
        else:
            first = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"[{name}] Error: {first}")
        self._out(*lines)

    def print_output_tail(self, job: str, text: str, limit: int = 40) -> None:
        """Print the last lines a failed command wrote."""
        tail = text.rstrip().splitlines()[-limit:]
        if tail:
            self._out(*(f"[{job}] | {line}" for line in tail))

    def print_results(self, status: str, results: Dict[str, str]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for job, job_status in results.items():
            lines.append(f"  {job}: {job_status.upper()}")
        lines.append(f"WORKFLOW: {status.upper()}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            self._out("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(), err=True)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
