# orchestrator.py
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from .errors import CIError
from .model import Event, Job, JobResult, Workflow, WorkflowResult
from .runner import JobRunner, workspace_dirname
from .trigger import matched_paths
from .ui.console import get_console


def _check_names(jobs: List[Job]) -> None:
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job names found: {dupes}")

    # distinct names must not share a workspace directory
    by_dir: Dict[str, List[str]] = {}
    for n in names:
        by_dir.setdefault(workspace_dirname(n), []).append(n)
    clashes = sorted(sorted(group) for group in by_dir.values() if len(group) > 1)
    if clashes:
        raise ValueError(f"Job names map to the same workspace directory: {clashes}")


def run_workflow(
    workflow: Workflow,
    event: Event,
    *,
    runner: Optional[JobRunner] = None,
    max_workers: Optional[int] = None,
    print_plan: bool = True,
) -> WorkflowResult:
    """
    Gate on the trigger, run every job independently, aggregate.

    - trigger did not match -> WorkflowResult(status="inactive"), nothing runs
    - jobs have no ordering; one job failing never stops the others
    - overall failure iff any job failed; nothing is retried
    """
    console = get_console()
    _check_names(workflow.jobs)

    active = workflow.trigger.accepts(event)
    if print_plan:
        console.print_plan(
            active,
            event.kind,
            matched_paths(event.changed_paths, workflow.trigger.paths) if event.kind == "push" else [],
            workflow.trigger.paths,
        )
    if not active:
        return WorkflowResult.inactive()

    runner = runner or JobRunner(revision=event.revision)
    if max_workers is None:
        max_workers = min(len(workflow.jobs), os.cpu_count() or 2) or 1

    results: Dict[str, JobResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        in_flight = {pool.submit(runner.run, j): j.name for j in workflow.jobs}
        for fut in as_completed(in_flight):
            name = in_flight[fut]
            try:
                results[name] = fut.result()
            except Exception as e:
                err = CIError(kind="internal", job=name, step=None, message=f"{type(e).__name__}: {e}")
                console.print_failure(name, str(err))
                results[name] = JobResult(name=name, status="failure", error=str(err))

    # report in declaration order, not completion order
    return WorkflowResult.aggregate([results[j.name] for j in workflow.jobs])
