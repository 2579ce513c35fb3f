# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from auditci.git_facts.git import head_sha, push_changed_files
from auditci.model import Event, Workflow
from auditci.orchestrator import run_workflow
from auditci.runner import JobRunner, load_workflow
from auditci.trigger import matched_paths
from auditci.ui.console import Console, get_console, set_console
from auditci.workflows import security_audit

DEFAULT_WORKFLOW_FILE = "auditci_workflow.py"


def resolve_workflow(workflow_arg: str | None) -> Workflow:
    """
    --workflow path if given, else ./auditci_workflow.py, else the built-in
    security audit workflow.

    Raises:
        SystemExit: If an explicit workflow path does not exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or drop --workflow to use the built-in security audit.",
            )
            sys.exit(1)
        return load_workflow(workflow_path)

    default = Path(DEFAULT_WORKFLOW_FILE)
    if default.exists():
        console.print_debug(f"Using {default}")
        return load_workflow(default)

    console.print_debug("No workflow file found, using built-in security audit")
    return security_audit.workflow()


def build_event(event_kind: str, changed: tuple[str, ...], compare_ref: str, revision: str | None) -> Event:
    if event_kind == "manual":
        return Event.manual(revision=revision)

    if not changed:
        try:
            changed = tuple(push_changed_files(compare_ref))
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            get_console().print_error(
                "Could not determine changed files",
                "A push event needs the list of changed files.",
                details=[str(e)],
                suggestion="Pass them explicitly:\n  auditci run --event push --changed Cargo.lock",
            )
            sys.exit(1)
    return Event.push(changed, revision=revision)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """auditci: run pinned dependency and license checkers against a repository."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


_workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW_FILE} if present, else the built-in security audit)",
)
_event_options = [
    click.option("--event", "event_kind", type=click.Choice(["manual", "push"]), default="manual", show_default=True),
    click.option("--changed", multiple=True, help="Changed file path for push events (repeatable; default: from git)"),
    click.option("--compare-ref", default="origin/main", show_default=True, help="Git ref to diff against for push events"),
]


def _with_event_options(f):
    for opt in reversed(_event_options):
        f = opt(f)
    return f


@cli.command()
@_workflow_option
@_with_event_options
@click.option("--source", default=None, help="Repository URL/path to clone per job (default: the enclosing local repo)")
@click.option("--revision", default=None, help="Revision to check out (default: the source's default branch)")
@click.option("--work-dir", default=".auditci/work", envvar="AUDITCI_WORK_DIR", show_default=True, help="Per-job workspaces")
@click.option("--github-api", default=None, envvar="AUDITCI_GITHUB_API", help="GitHub API base URL for tool releases")
@click.option("--workers", default=None, type=click.IntRange(min=1), envvar="AUDITCI_WORKERS", help="Number of parallel jobs")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print the trigger decision")
def run(workflow, event_kind, changed, compare_ref, source, revision, work_dir, github_api, workers, print_plan):
    """Run a workflow."""
    console = get_console()

    try:
        wf = resolve_workflow(workflow)
        if revision is None and source is None:
            try:
                revision = head_sha()
            except (subprocess.CalledProcessError, FileNotFoundError):
                revision = None
        event = build_event(event_kind, changed, compare_ref, revision)

        console.print_run_started(
            workflow=wf.name,
            event=event.kind,
            job_count=len(wf.jobs),
            revision=revision,
        )

        runner = JobRunner(source=source, revision=revision, work_root=work_dir, api_url=github_api)
        result = run_workflow(wf, event, runner=runner, max_workers=workers, print_plan=print_plan)

        console.print_results(result.status, result.per_job)
        if result.status == "failure":
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@_workflow_option
@_with_event_options
def plan(workflow, event_kind, changed, compare_ref):
    """Show whether the trigger matches, without running anything."""
    console = get_console()
    wf = resolve_workflow(workflow)
    event = build_event(event_kind, changed, compare_ref, None)

    active = wf.trigger.accepts(event)
    matched = matched_paths(event.changed_paths, wf.trigger.paths) if event.kind == "push" else []
    console.print_plan(active, event.kind, matched, wf.trigger.paths)
    if active:
        for j in wf.jobs:
            console.print_info(f"  would run: {j.name}")
    else:
        console.print_info("WORKFLOW: INACTIVE")


@cli.command()
@_workflow_option
def jobs(workflow):
    """List declared jobs, their steps and pinned tools."""
    console = get_console()
    wf = resolve_workflow(workflow)
    console.print_header(wf.name)
    for j in wf.jobs:
        console.print_info(f"{j.name} (runs-on: {j.runs_on})")
        for step in j.steps:
            if step.kind == "install_tool":
                t = step.tool
                console.print_info(f"  - {step.name}: {t.repo}@{t.tag} [{t.asset_name}]")
            elif step.kind == "run":
                console.print_info(f"  - {step.name}: {step.run}")
            else:
                console.print_info(f"  - {step.name}")


if __name__ == "__main__":
    cli()
