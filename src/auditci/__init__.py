from .dsl import checkout, install_tool, job, on, sh, tool_job, wf
from .model import Event, Job, JobResult, Step, ToolSpec, Workflow, WorkflowResult, WorkflowTrigger
from .orchestrator import run_workflow
from .runner import JobRunner, load_workflow

__all__ = [
    "checkout",
    "install_tool",
    "job",
    "on",
    "sh",
    "tool_job",
    "wf",
    "Event",
    "Job",
    "JobResult",
    "Step",
    "ToolSpec",
    "Workflow",
    "WorkflowResult",
    "WorkflowTrigger",
    "run_workflow",
    "JobRunner",
    "load_workflow",
]
