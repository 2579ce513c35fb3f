# workflows/security_audit.py
# Dependency hygiene + license compliance for a Cargo workspace.
from __future__ import annotations

from ..dsl import on, tool_job, wf
from ..model import ToolSpec, Workflow

PLATFORM = "x86_64-unknown-linux-musl"

CARGO_MANIFEST_PATHS = [
    "Cargo.toml",
    "Cargo.lock",
    "crates/**/Cargo.toml",
    "crates/**/Cargo.lock",
    "examples/**/Cargo.toml",
    "examples/**/Cargo.lock",
]

CARGO_MACHETE = ToolSpec(
    repo="bnjbvr/cargo-machete",
    tag="v0.7.0",
    binaries_location=f"cargo-machete-v0.7.0-{PLATFORM}",
)

CARGO_DENY = ToolSpec(
    repo="EmbarkStudios/cargo-deny",
    tag="0.16.4",
    binaries_location=f"cargo-deny-0.16.4-{PLATFORM}",
)

# cargo alias defined by the audited project, selecting its deny policy
LICENSE_POLICY_COMMAND = "cargo deny-amaru"


def workflow() -> Workflow:
    return wf(
        "Security audit",
        tool_job("check_unused_dependencies", CARGO_MACHETE, "cargo-machete"),
        tool_job("check_licenses", CARGO_DENY, LICENSE_POLICY_COMMAND),
        trigger=on(manual=True, paths=CARGO_MANIFEST_PATHS),
    )
