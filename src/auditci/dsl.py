# dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .model import Job, Step, ToolSpec, Workflow, WorkflowTrigger


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, kind="run")


def checkout(name: str = "Checkout") -> Step:
    """Check the repository out at the triggering revision."""
    return Step(name=name, kind="checkout")


def install_tool(
    repo: str,
    tag: str,
    binaries_location: str,
    *,
    asset: Optional[str] = None,
    binary: Optional[str] = None,
    name: Optional[str] = None,
) -> Step:
    """
    Install a pinned release binary, e.g.

        install_tool("bnjbvr/cargo-machete", "v0.7.0",
                     "cargo-machete-v0.7.0-x86_64-unknown-linux-musl")
    """
    spec = ToolSpec(repo=repo, tag=tag, binaries_location=binaries_location, asset=asset, binary=binary)
    return Step(name=name or f"Install {repo}@{tag}", kind="install_tool", tool=spec)


# ---------------------------------------------------------------------
# Job / workflow helpers
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,
    env: Optional[Dict[str, str]] = None,
    runs_on: str = "ubuntu-latest",
) -> Job:
    if not steps:
        raise ValueError(f"job({name!r}) must have at least one step")
    return Job(name=name, steps=list(steps), env={k: str(v) for k, v in (env or {}).items()}, runs_on=runs_on)


def tool_job(name: str, tool: ToolSpec, command: str, *, env: Optional[Dict[str, str]] = None) -> Job:
    """
    The install-and-invoke template: checkout, install `tool`, run `command`.
    """
    return job(
        name,
        checkout(),
        Step(name=f"Install {tool.repo}@{tool.tag}", kind="install_tool", tool=tool),
        sh(f"Run {command}", command),
        env=env,
    )


def on(*, manual: bool = True, paths: Iterable[str] = ()) -> WorkflowTrigger:
    """Trigger: manual dispatch and/or pushes that touch `paths`."""
    return WorkflowTrigger(manual=manual, paths=tuple(paths))


def wf(name: str, *jobs: Job, trigger: Optional[WorkflowTrigger] = None) -> Workflow:
    """
    Workflow definition helper.

        from auditci import wf, on, job, sh

        def workflow():
            return wf("lint", job("ruff", sh("Ruff", "ruff check .")), trigger=on(paths=["**.py"]))
    """
    jobs_list: List[Job] = list(jobs)
    return Workflow(name=name, trigger=trigger or on(), jobs=jobs_list)
