# fetcher.py
# Download + unpack pinned release binaries so later steps of the same job can run them.
from __future__ import annotations

import io
import json
import os
import shutil
import stat
import tarfile
import tempfile
import urllib.error
import urllib.request
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, Optional
from urllib.parse import quote

from .errors import FetchError
from .model import ToolSpec
from .ui.console import get_console


DEFAULT_GITHUB_API = "https://api.github.com"
USER_AGENT = "auditci"

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tar")


def _check_member(name: str) -> None:
    p = PurePosixPath(name)
    if p.is_absolute() or ".." in p.parts:
        raise FetchError(f"refusing to unpack unsafe archive member: {name}", member=name)


class ToolFetcher:
    """
    Installs exactly the (repo, tag, asset) a ToolSpec names.

    Layout:
      <root>/<owner>__<name>/<tag>/            unpacked asset
      <root>/<owner>__<name>/<tag>/<binaries_location>/<binary>

    There is no "latest" lookup: a missing tag or asset is a FetchError.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        api_url: Optional[str] = None,
        urlopen: Optional[Callable] = None,
        timeout: float = 60.0,
    ):
        self.root = Path(root)
        self.api_url = (api_url or os.environ.get("AUDITCI_GITHUB_API") or DEFAULT_GITHUB_API).rstrip("/")
        self._urlopen = urlopen or urllib.request.urlopen
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def install_dir(self, spec: ToolSpec) -> Path:
        owner, name = spec.repo.split("/", 1)
        return self.root / f"{owner}__{name}" / spec.tag

    def _find_executable(self, spec: ToolSpec, base: Path) -> Optional[Path]:
        for candidate in (base / spec.binaries_location / spec.binary_name, base / spec.binary_name):
            if candidate.is_file():
                return candidate
        return None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _open(self, url: str, accept: str, spec: ToolSpec) -> bytes:
        req = urllib.request.Request(url, headers={"Accept": accept, "User-Agent": USER_AGENT})
        try:
            with self._urlopen(req, timeout=self.timeout) as response:
                return response.read()
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise FetchError(
                    f"{spec.repo}: not found ({url})",
                    repo=spec.repo,
                    tag=spec.tag,
                    http_status=404,
                )
            raise FetchError(
                f"{spec.repo}: HTTP {e.code} {e.reason} ({url})",
                repo=spec.repo,
                tag=spec.tag,
                http_status=e.code,
            )
        except urllib.error.URLError as e:
            raise FetchError(f"{spec.repo}: network error: {e.reason}", repo=spec.repo, tag=spec.tag)
        except OSError as e:
            raise FetchError(f"{spec.repo}: network error: {e}", repo=spec.repo, tag=spec.tag)

    def resolve_asset_url(self, spec: ToolSpec) -> str:
        """Download URL of the exact asset named by `spec`, in the release tagged `spec.tag`."""
        url = f"{self.api_url}/repos/{spec.repo}/releases/tags/{quote(spec.tag, safe='')}"
        raw = self._open(url, "application/vnd.github+json", spec)
        try:
            release = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise FetchError(f"{spec.repo}: invalid release metadata: {e}", repo=spec.repo, tag=spec.tag)

        assets = release.get("assets") or []
        for asset in assets:
            if asset.get("name") == spec.asset_name:
                download = asset.get("browser_download_url")
                if not download:
                    break
                return download

        available = sorted(a.get("name", "?") for a in assets)
        raise FetchError(
            f"{spec.repo}@{spec.tag}: asset '{spec.asset_name}' not found",
            repo=spec.repo,
            tag=spec.tag,
            asset=spec.asset_name,
            available=", ".join(available) or "(none)",
        )

    # ------------------------------------------------------------------
    # Unpacking
    # ------------------------------------------------------------------

    def _unpack(self, spec: ToolSpec, payload: bytes, dest: Path) -> None:
        name = spec.asset_name
        try:
            if name.endswith(_TAR_SUFFIXES):
                with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as tar:
                    members = tar.getmembers()
                    for m in members:
                        _check_member(m.name)
                        if (m.issym() or m.islnk()) and (
                            PurePosixPath(m.linkname).is_absolute() or ".." in PurePosixPath(m.linkname).parts
                        ):
                            raise FetchError(f"refusing to unpack unsafe link: {m.name}", member=m.name)
                    if hasattr(tarfile, "data_filter"):
                        tar.extractall(path=str(dest), members=members, filter="data")
                    else:
                        tar.extractall(path=str(dest), members=members)
            elif name.endswith(".zip"):
                with zipfile.ZipFile(io.BytesIO(payload)) as zf:
                    for n in zf.namelist():
                        _check_member(n)
                    zf.extractall(path=str(dest))
            else:
                # bare binary asset
                (dest / spec.binary_name).write_bytes(payload)
        except (tarfile.TarError, zipfile.BadZipFile, EOFError) as e:
            raise FetchError(f"{spec.repo}@{spec.tag}: corrupt asset '{name}': {e}", repo=spec.repo, tag=spec.tag)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def install(self, spec: ToolSpec) -> Path:
        """
        Make `spec`'s binary available and return the path to the executable.

        A second call with the same spec finds the unpacked binary and does
        not download again.
        """
        console = get_console()
        target = self.install_dir(spec)

        existing = self._find_executable(spec, target)
        if existing is not None:
            console.print_debug(f"{spec.repo}@{spec.tag} already installed at {existing}")
            return existing

        url = self.resolve_asset_url(spec)
        console.print_debug(f"downloading {url}")
        payload = self._open(url, "application/octet-stream", spec)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # unpack next to the target, then move into place in one rename
            staging = Path(tempfile.mkdtemp(prefix=f".{spec.tag}-", dir=str(target.parent)))
            try:
                self._unpack(spec, payload, staging)
                exe = self._find_executable(spec, staging)
                if exe is None:
                    raise FetchError(
                        f"{spec.repo}@{spec.tag}: '{spec.binary_name}' not found in asset '{spec.asset_name}'",
                        repo=spec.repo,
                        tag=spec.tag,
                        binaries_location=spec.binaries_location,
                    )
                if target.exists():
                    shutil.rmtree(target)
                staging.rename(target)
            finally:
                if staging.exists():
                    shutil.rmtree(staging, ignore_errors=True)
        except OSError as e:
            raise FetchError(f"{spec.repo}@{spec.tag}: cannot write to {target}: {e}", repo=spec.repo, tag=spec.tag)

        exe = self._find_executable(spec, target)
        if exe is None:
            raise FetchError(f"{spec.repo}@{spec.tag}: install vanished from {target}", repo=spec.repo, tag=spec.tag)
        mode = exe.stat().st_mode
        exe.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return exe
