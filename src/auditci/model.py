# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from .trigger import should_run


STEP_KINDS = ("checkout", "install_tool", "run")


@dataclass(frozen=True)
class ToolSpec:
    """
    A pinned binary release: exactly one (repository, tag, asset) triple.

    `binaries_location` is the platform-specific directory inside the release
    archive holding the executable, e.g. "cargo-deny-0.16.4-x86_64-unknown-linux-musl".
    """
    repo: str                      # "owner/name"
    tag: str                       # exact tag, never "latest"
    binaries_location: str
    asset: Optional[str] = None    # defaults to "<binaries_location>.tar.gz"
    binary: Optional[str] = None   # defaults to the repository name

    def __post_init__(self) -> None:
        if self.repo.count("/") != 1 or not all(self.repo.split("/")):
            raise ValueError(f"ToolSpec.repo must look like 'owner/name', got {self.repo!r}")
        if not self.tag or self.tag == "latest":
            raise ValueError(f"ToolSpec for {self.repo} needs an exact tag, got {self.tag!r}")

    @property
    def asset_name(self) -> str:
        return self.asset or f"{self.binaries_location}.tar.gz"

    @property
    def binary_name(self) -> str:
        return self.binary or self.repo.split("/", 1)[1]


@dataclass(frozen=True)
class Step:
    """A single step inside a job: checkout, tool install, or a command."""
    name: str
    run: str = ""
    cwd: str | None = None
    kind: str = "run"
    tool: Optional[ToolSpec] = None

    def __post_init__(self) -> None:
        if self.kind not in STEP_KINDS:
            raise ValueError(f"Unknown step kind {self.kind!r} (expected one of {STEP_KINDS})")
        if self.kind == "install_tool" and self.tool is None:
            raise ValueError(f"install_tool step {self.name!r} needs a ToolSpec")
        if self.kind == "run" and not self.run.strip():
            raise ValueError(f"run step {self.name!r} has an empty command")


@dataclass
class Job:
    """An independently executable, ordered sequence of steps."""
    name: str
    steps: List[Step]
    env: Dict[str, str] = field(default_factory=dict)
    runs_on: str = "ubuntu-latest"

    @property
    def tools(self) -> List[ToolSpec]:
        return [s.tool for s in self.steps if s.tool is not None]


@dataclass(frozen=True)
class WorkflowTrigger:
    """When a workflow starts: manual dispatch and/or pushes touching `paths`."""
    manual: bool = True
    paths: Tuple[str, ...] = ()

    def accepts(self, event: "Event") -> bool:
        if event.kind == "manual" and not self.manual:
            return False
        return should_run(event, event.changed_paths, self.paths)


@dataclass(frozen=True)
class Event:
    """What happened: a manual dispatch, or a push with its changed files."""
    kind: str
    changed_paths: FrozenSet[str] = frozenset()
    revision: Optional[str] = None

    @classmethod
    def manual(cls, revision: Optional[str] = None) -> "Event":
        return cls(kind="manual", revision=revision)

    @classmethod
    def push(cls, changed_paths, revision: Optional[str] = None) -> "Event":
        return cls(kind="push", changed_paths=frozenset(changed_paths), revision=revision)


@dataclass
class Workflow:
    name: str
    trigger: WorkflowTrigger
    jobs: List[Job]


@dataclass
class JobResult:
    name: str
    status: str                          # "success" | "failure"
    failed_step: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class WorkflowResult:
    """
    Aggregated outcome of one run.

    status:
      - "inactive" trigger did not match, no job ran
      - "success"  every job succeeded
      - "failure"  at least one job failed
    """
    status: str
    jobs: Dict[str, JobResult] = field(default_factory=dict)

    @classmethod
    def inactive(cls) -> "WorkflowResult":
        return cls(status="inactive")

    @classmethod
    def aggregate(cls, results: List[JobResult]) -> "WorkflowResult":
        jobs = {r.name: r for r in results}
        status = "success" if all(r.ok for r in results) else "failure"
        return cls(status=status, jobs=jobs)

    @property
    def per_job(self) -> Dict[str, str]:
        return {name: r.status for name, r in self.jobs.items()}

    @property
    def overall(self) -> str:
        return self.status

    @property
    def failed_jobs(self) -> List[str]:
        return [name for name, r in self.jobs.items() if not r.ok]
