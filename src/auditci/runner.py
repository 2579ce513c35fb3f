# runner.py
from __future__ import annotations

import os
import re
import runpy
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .errors import CIError, PolicyUnavailableError, SourceUnavailableError, ToolVerdictFailure
from .fetcher import ToolFetcher
from .git_facts import git
from .model import Job, JobResult, Step, Workflow
from .ui.console import get_console


# cargo prints this when an alias / subcommand (the policy profile) does not exist
_MISSING_SUBCOMMAND = re.compile(r"no such (sub)?command", re.IGNORECASE)

OUTPUT_TAIL = 4000


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> Workflow
      - WORKFLOW = Workflow(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"auditci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    loaded = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        loaded = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        loaded = globals_dict["WORKFLOW"]

    if not isinstance(loaded, Workflow):
        raise TypeError(
            "Workflow file must return/define a Workflow. "
            "Define workflow() -> Workflow (see auditci.dsl.wf) or WORKFLOW = wf(...)."
        )
    return loaded


# ----------------------------------------------------------------------
# Job execution
# ----------------------------------------------------------------------

CheckoutFn = Callable[[str, Optional[str], Path], Path]


def workspace_dirname(name: str) -> str:
    """Directory name of a job's workspace under the work root."""
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name) or "job"


@dataclass
class _JobState:
    """Per-job mutable state; never shared between jobs."""
    job: Job
    workspace: Path
    fetcher: ToolFetcher
    src: Optional[Path] = None
    path_dirs: List[str] = field(default_factory=list)


class JobRunner:
    """
    Runs one job's steps in declared order, stopping at the first failure.

    Every job gets its own workspace:
      <work_root>/<job>/src     checkout
      <work_root>/<job>/tools   fetched binaries
    With no `source`, checkout clones the enclosing local repository.
    """

    def __init__(
        self,
        *,
        source: Optional[str] = None,
        revision: Optional[str] = None,
        work_root: str | Path = ".auditci/work",
        checkout: Optional[CheckoutFn] = None,
        fetcher_factory: Optional[Callable[[Path], ToolFetcher]] = None,
        api_url: Optional[str] = None,
    ):
        self.source = source
        self.revision = revision
        self.work_root = Path(work_root).resolve()
        self._checkout = checkout or git.clone_at
        self._fetcher_factory = fetcher_factory or (lambda root: ToolFetcher(root, api_url=api_url))

    # ---- step handlers ----

    def _do_checkout(self, state: _JobState, step: Step) -> None:
        source = self.source
        if source is None:
            try:
                source = str(git.repo_root())
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                raise SourceUnavailableError(f"not inside a git repository: {e}")

        dest = state.workspace / "src"
        try:
            state.src = self._checkout(source, self.revision, dest)
        except (RuntimeError, OSError) as e:
            raise SourceUnavailableError(
                f"cannot fetch {source} at {self.revision or 'default branch'}: {e}",
                source=source,
            )

    def _do_install(self, state: _JobState, step: Step) -> None:
        exe = state.fetcher.install(step.tool)
        bin_dir = str(exe.parent)
        if bin_dir not in state.path_dirs:
            state.path_dirs.insert(0, bin_dir)
        get_console().print_debug(f"[{state.job.name}] {step.tool.repo}@{step.tool.tag} -> {exe}")

    def _do_run(self, state: _JobState, step: Step) -> None:
        base = state.src or state.workspace
        cwd = (base / (step.cwd or ".")).resolve()
        if not cwd.exists():
            raise CIError(
                kind="cwd_missing",
                job=state.job.name,
                step=step.name,
                message=f"step cwd not found: {cwd}",
            )

        env = os.environ.copy()
        env.update(state.job.env or {})
        env["PATH"] = os.pathsep.join([*state.path_dirs, env.get("PATH", "")])

        proc = subprocess.run(
            step.run,
            shell=True,
            cwd=str(cwd),
            env=env,
            text=True,
            capture_output=True,
        )
        if proc.returncode == 0:
            if proc.stdout:
                get_console().print_debug(proc.stdout.rstrip())
            return

        stdout = proc.stdout[-OUTPUT_TAIL:]
        stderr = proc.stderr[-OUTPUT_TAIL:]
        if _MISSING_SUBCOMMAND.search(stderr):
            raise PolicyUnavailableError(
                f"'{step.run}' names a subcommand or policy profile the tool cannot resolve",
                exit_code=proc.returncode,
                stderr=stderr.strip().splitlines()[-1] if stderr.strip() else "",
            )
        raise ToolVerdictFailure(
            job=state.job.name,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    # ---- public ----

    def run(self, job: Job) -> JobResult:
        console = get_console()
        workspace = self.work_root / workspace_dirname(job.name)
        if workspace.exists():
            shutil.rmtree(workspace)
        workspace.mkdir(parents=True)

        state = _JobState(job=job, workspace=workspace, fetcher=self._fetcher_factory(workspace / "tools"))
        handlers = {
            "checkout": self._do_checkout,
            "install_tool": self._do_install,
            "run": self._do_run,
        }

        console.print_job_start(job.name)
        for step in job.steps:
            console.print_step(job.name, step.name)
            try:
                handlers[step.kind](state, step)
            except CIError as e:
                e.job = e.job or job.name
                e.step = e.step or step.name
                exit_code = getattr(e, "exit_code", None) or e.details.get("exit_code")
                console.print_failure(job.name, str(e), step=step.name, exit_code=exit_code)
                if isinstance(e, ToolVerdictFailure):
                    console.print_output_tail(job.name, e.stdout + e.stderr)
                return JobResult(
                    name=job.name,
                    status="failure",
                    failed_step=step.name,
                    error=str(e),
                    exit_code=exit_code,
                )
            except Exception as e:
                # a crash in one job is that job's failure, never the run's
                err = CIError(kind="internal", job=job.name, step=step.name, message=f"{type(e).__name__}: {e}")
                console.print_failure(job.name, str(err), step=step.name)
                if console.debug:
                    console.print_exception(e)
                return JobResult(name=job.name, status="failure", failed_step=step.name, error=str(err))

        console.print_job_success(job.name)
        return JobResult(name=job.name, status="success")
