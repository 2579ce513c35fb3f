# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the per-job failure reason in the run summary
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class FetchError(CIError):
    """Release, tag or asset missing, or the download itself failed."""

    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(kind="fetch", job=job, step=step, message=message, details=details)


class PolicyUnavailableError(FetchError):
    """The checker could not resolve the subcommand / policy profile it was asked to run."""

    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(message, job=job, step=step, **details)
        self.kind = "policy_unavailable"


class SourceUnavailableError(CIError):
    """The repository could not be fetched at the triggering revision."""

    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(kind="source_unavailable", job=job, step=step, message=message, details=details)


class ToolVerdictFailure(CIError):
    """An installed checker ran and exited nonzero."""

    def __init__(
        self,
        *,
        job: str,
        step: str,
        cmd: str,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(
            kind="tool_verdict",
            job=job,
            step=step,
            message=f"step '{step}' failed (exit={exit_code}): {cmd}",
            details={"exit_code": exit_code},
        )
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
