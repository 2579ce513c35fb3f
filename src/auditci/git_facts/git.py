# git.py
# Small, focused wrapper around the Git CLI.
# All Git interactions go through here so the rest of the codebase
# never calls subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.PIPE,
    )
    return out.strip()


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Absolute path to the root of the enclosing Git repository."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def merge_base(with_ref: str = "origin/main", cwd: Optional[str | Path] = None) -> str:
    """Common ancestor of HEAD and `with_ref`."""
    return _git(["merge-base", "HEAD", with_ref], cwd=cwd)


def changed_files(base: str, head: str = "HEAD", cwd: Optional[str | Path] = None) -> List[str]:
    """
    Files changed between two refs, relative to the repository root.

    Typical usage:
        files = changed_files(merge_base("origin/main"))
    """
    out = _git(["diff", "--name-only", f"{base}..{head}"], cwd=cwd)
    if not out:
        return []
    return out.splitlines()


def push_changed_files(compare_ref: str = "origin/main", cwd: Optional[str | Path] = None) -> List[str]:
    """
    What a push of HEAD would report as changed.

    Compares against the merge-base with `compare_ref`; falls back to HEAD~1
    when there is no such ref (no remote, detached clone, ...).
    """
    try:
        base = merge_base(compare_ref, cwd=cwd)
    except subprocess.CalledProcessError:
        base = "HEAD~1"
    return changed_files(base, "HEAD", cwd=cwd)


def clone_at(source: str, revision: Optional[str], dest: Path) -> Path:
    """
    Clone `source` into `dest` and check out `revision` (HEAD of the default
    branch when None). `dest` must not exist yet.

    Raises:
        RuntimeError: with git's stderr when any git command fails.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        result = subprocess.run(
            ["git", "clone", "--quiet", source, str(dest)],
            check=False,
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise RuntimeError(f"git clone failed: {result.stderr.strip()}")

        if revision:
            result = subprocess.run(
                ["git", "checkout", "--quiet", "--detach", revision],
                cwd=dest,
                check=False,
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise RuntimeError(f"git checkout {revision} failed: {result.stderr.strip()}")
    except FileNotFoundError:
        raise RuntimeError("git command not found. Please install Git.")

    return dest
