from __future__ import annotations

from pathlib import Path

import pytest

from auditci.dsl import checkout, install_tool, job, sh
from auditci.errors import FetchError
from auditci.runner import JobRunner


class StubFetcher:
    """Pretends to install a tool by writing a shell script in its root."""

    def __init__(self, root: Path, script: str):
        self.root = root
        self.script = script
        self.installed = []

    def install(self, spec):
        self.installed.append(spec)
        bin_dir = self.root / spec.binaries_location
        bin_dir.mkdir(parents=True, exist_ok=True)
        exe = bin_dir / spec.binary_name
        exe.write_text(self.script)
        exe.chmod(0o755)
        return exe


class FailingFetcher:
    def install(self, spec):
        raise FetchError(f"{spec.repo}@{spec.tag}: not found", repo=spec.repo, tag=spec.tag)


def fake_checkout(source, revision, dest: Path) -> Path:
    dest.mkdir(parents=True)
    (dest / "Cargo.toml").write_text(f"# {source}@{revision}\n")
    return dest


def broken_checkout(source, revision, dest):
    raise RuntimeError(f"git clone failed: repository '{source}' not found")


def _runner(tmp_path, **kw) -> JobRunner:
    kw.setdefault("source", "https://example.test/repo.git")
    kw.setdefault("revision", "abc123")
    kw.setdefault("checkout", fake_checkout)
    return JobRunner(work_root=tmp_path / "work", **kw)


TOOL = install_tool("acme/checker", "1.0.0", "checker-1.0.0-x86_64-unknown-linux-musl")


def test_steps_run_in_order_and_succeed(tmp_path):
    log = tmp_path / "log.txt"
    j = job(
        "ordered",
        sh("A", f"echo A >> {log}"),
        sh("B", f"echo B >> {log}"),
        sh("C", f"echo C >> {log}"),
    )

    result = _runner(tmp_path).run(j)

    assert result.ok
    assert log.read_text().split() == ["A", "B", "C"]


def test_failing_step_aborts_the_rest(tmp_path):
    marker = tmp_path / "c-ran"
    j = job(
        "fail-fast",
        sh("A", "true"),
        sh("B", "exit 7"),
        sh("C", f"touch {marker}"),
    )

    result = _runner(tmp_path).run(j)

    assert result.status == "failure"
    assert result.failed_step == "B"
    assert result.exit_code == 7
    assert "tool_verdict" in result.error
    assert not marker.exists()


def test_checkout_failure_is_source_unavailable(tmp_path):
    marker = tmp_path / "ran"
    j = job("clone", checkout(), sh("After", f"touch {marker}"))

    result = _runner(tmp_path, checkout=broken_checkout).run(j)

    assert result.status == "failure"
    assert result.failed_step == "Checkout"
    assert result.error.startswith("source_unavailable")
    assert not marker.exists()


def test_commands_run_inside_the_checkout(tmp_path):
    j = job("in-tree", checkout(), sh("Manifest present", "grep -q abc123 Cargo.toml"))

    result = _runner(tmp_path).run(j)

    assert result.ok


def test_installed_tool_is_on_path(tmp_path):
    stubs = []

    def factory(root):
        stubs.append(StubFetcher(root, "#!/bin/sh\necho checked\nexit 0\n"))
        return stubs[-1]

    j = job("tool", checkout(), TOOL, sh("Run checker", "checker"))

    result = _runner(tmp_path, fetcher_factory=factory).run(j)

    assert result.ok
    assert [s.repo for s in stubs[0].installed] == ["acme/checker"]
    assert stubs[0].root == tmp_path / "work" / "tool" / "tools"


def test_tool_verdict_propagates_exit_code(tmp_path):
    j = job("verdict", checkout(), TOOL, sh("Run checker", "checker"))

    result = _runner(
        tmp_path,
        fetcher_factory=lambda root: StubFetcher(root, "#!/bin/sh\necho 'unused: serde' >&2\nexit 3\n"),
    ).run(j)

    assert result.status == "failure"
    assert result.failed_step == "Run checker"
    assert result.exit_code == 3


def test_fetch_failure_stops_the_job(tmp_path):
    marker = tmp_path / "ran"
    j = job("fetch", checkout(), TOOL, sh("Run checker", f"touch {marker}"))

    result = _runner(tmp_path, fetcher_factory=lambda root: FailingFetcher()).run(j)

    assert result.status == "failure"
    assert result.failed_step == TOOL.name
    assert result.error.startswith("fetch")
    assert not marker.exists()


def test_unresolvable_policy_profile_is_a_fetch_class_failure(tmp_path):
    j = job(
        "licenses",
        sh("Check licenses", "echo 'error: no such command: `deny-amaru`' >&2; exit 101"),
    )

    result = _runner(tmp_path).run(j)

    assert result.status == "failure"
    assert result.error.startswith("policy_unavailable")
    assert result.exit_code == 101


def test_job_env_reaches_commands(tmp_path):
    j = job("env", sh("Check env", 'test "$AUDIT_PROFILE" = strict'), env={"AUDIT_PROFILE": "strict"})

    assert _runner(tmp_path).run(j).ok


def test_missing_step_cwd_fails(tmp_path):
    j = job("cwd", checkout(), sh("Nowhere", "true", cwd="does/not/exist"))

    result = _runner(tmp_path).run(j)

    assert result.status == "failure"
    assert result.error.startswith("cwd_missing")


def test_workspace_is_fresh_per_run(tmp_path):
    stale = tmp_path / "work" / "fresh" / "stale.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")

    result = _runner(tmp_path).run(job("fresh", sh("No stale files", "test ! -e stale.txt")))

    assert result.ok
    assert not stale.exists()


def test_unexpected_exception_is_the_jobs_failure(tmp_path):
    class Exploding:
        def install(self, spec):
            raise KeyError("boom")

    result = _runner(tmp_path, fetcher_factory=lambda root: Exploding()).run(job("crash", TOOL))

    assert result.status == "failure"
    assert result.error.startswith("internal")


@pytest.mark.parametrize("name, dirname", [("check licenses", "check_licenses"), ("a/b", "a_b")])
def test_job_names_map_to_safe_workspace_dirs(tmp_path, name, dirname):
    _runner(tmp_path).run(job(name, sh("noop", "true")))

    assert (tmp_path / "work" / dirname).is_dir()
