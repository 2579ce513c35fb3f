# auditci_workflow.py
# Security audit for this Cargo workspace: unused dependencies + license policy.
from __future__ import annotations

from auditci import on, tool_job, wf
from auditci.workflows.security_audit import (
    CARGO_DENY,
    CARGO_MACHETE,
    CARGO_MANIFEST_PATHS,
    LICENSE_POLICY_COMMAND,
)


def workflow():
    return wf(
        "Security audit",
        tool_job("check_unused_dependencies", CARGO_MACHETE, "cargo-machete"),
        tool_job("check_licenses", CARGO_DENY, LICENSE_POLICY_COMMAND),
        trigger=on(manual=True, paths=CARGO_MANIFEST_PATHS),
    )
