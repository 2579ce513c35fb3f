from __future__ import annotations

from pathlib import Path

import pytest

from auditci.dsl import checkout, install_tool, job, on, sh, tool_job, wf
from auditci.model import Step, ToolSpec, Workflow
from auditci.runner import load_workflow
from auditci.workflows import security_audit

REPO_ROOT = Path(__file__).resolve().parent.parent


def test_security_audit_declares_two_tool_jobs():
    workflow = security_audit.workflow()

    assert workflow.name == "Security audit"
    assert [j.name for j in workflow.jobs] == ["check_unused_dependencies", "check_licenses"]
    for j in workflow.jobs:
        assert [s.kind for s in j.steps] == ["checkout", "install_tool", "run"]


def test_security_audit_pins_exact_assets():
    machete, deny = (j.tools[0] for j in security_audit.workflow().jobs)

    assert (machete.repo, machete.tag) == ("bnjbvr/cargo-machete", "v0.7.0")
    assert machete.asset_name == "cargo-machete-v0.7.0-x86_64-unknown-linux-musl.tar.gz"
    assert (deny.repo, deny.tag) == ("EmbarkStudios/cargo-deny", "0.16.4")
    assert deny.asset_name == "cargo-deny-0.16.4-x86_64-unknown-linux-musl.tar.gz"
    assert deny.binary_name == "cargo-deny"


def test_security_audit_commands():
    deps, licenses = security_audit.workflow().jobs

    assert deps.steps[-1].run == "cargo-machete"
    assert licenses.steps[-1].run == "cargo deny-amaru"


def test_security_audit_trigger():
    trigger = security_audit.workflow().trigger

    assert trigger.manual is True
    assert "crates/**/Cargo.toml" in trigger.paths
    assert len(trigger.paths) == 6


def test_repo_workflow_file_matches_builtin():
    loaded = load_workflow(REPO_ROOT / "auditci_workflow.py")
    builtin = security_audit.workflow()

    assert [j.name for j in loaded.jobs] == [j.name for j in builtin.jobs]
    assert [j.tools for j in loaded.jobs] == [j.tools for j in builtin.jobs]
    assert loaded.trigger == builtin.trigger
    assert [[s.run for s in j.steps] for j in loaded.jobs] == [[s.run for s in j.steps] for j in builtin.jobs]


def test_load_workflow_from_function(tmp_path):
    path = tmp_path / "my_workflow.py"
    path.write_text(
        "from auditci import wf, job, sh\n"
        "def workflow():\n"
        "    return wf('mine', job('one', sh('hello', 'echo hi')))\n"
    )

    workflow = load_workflow(path)

    assert isinstance(workflow, Workflow)
    assert workflow.jobs[0].steps[0].run == "echo hi"


def test_load_workflow_from_constant(tmp_path):
    path = tmp_path / "const_workflow.py"
    path.write_text(
        "from auditci import wf, job, sh\n"
        "WORKFLOW = wf('const', job('one', sh('hello', 'true')))\n"
    )

    assert load_workflow(path).name == "const"


def test_load_workflow_rejects_wrong_type(tmp_path):
    path = tmp_path / "bad_workflow.py"
    path.write_text("def workflow():\n    return ['not', 'a', 'workflow']\n")

    with pytest.raises(TypeError):
        load_workflow(path)


def test_load_workflow_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_workflow(tmp_path / "nope.py")


def test_load_workflow_requires_python(tmp_path):
    path = tmp_path / "workflow.yml"
    path.write_text("name: x\n")

    with pytest.raises(ValueError):
        load_workflow(path)


def test_job_needs_steps():
    with pytest.raises(ValueError):
        job("empty")


def test_step_validation():
    with pytest.raises(ValueError):
        Step(name="?", kind="deploy")
    with pytest.raises(ValueError):
        Step(name="install", kind="install_tool")
    with pytest.raises(ValueError):
        sh("blank", "   ")


def test_tool_job_is_the_install_and_invoke_template():
    spec = ToolSpec(repo="acme/checker", tag="1.0.0", binaries_location="checker-1.0.0")
    j = tool_job("check", spec, "checker --strict", env={"LEVEL": 2})

    assert [s.kind for s in j.steps] == ["checkout", "install_tool", "run"]
    assert j.steps[1].tool is spec
    assert j.steps[2].run == "checker --strict"
    assert j.env == {"LEVEL": "2"}


def test_install_tool_helper_builds_spec():
    step = install_tool("acme/checker", "1.0.0", "checker-1.0.0", binary="chk")

    assert step.kind == "install_tool"
    assert step.tool.binary_name == "chk"
    assert step.name == "Install acme/checker@1.0.0"


def test_wf_defaults_to_manual_only_trigger():
    workflow = wf("w", job("j", checkout()))

    assert workflow.trigger == on()
    assert workflow.trigger.paths == ()
