from __future__ import annotations

import io
import json
import tarfile
import urllib.error
import zipfile

import pytest

from auditci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def fresh_console():
    console = Console(debug=False)
    set_console(console)
    yield console


def make_tar_gz(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_zip(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


class _Response:
    def __init__(self, body: bytes):
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeGitHub:
    """Serves release metadata + assets for an in-memory set of releases."""

    api = "https://api.example.test"

    def __init__(self):
        self.releases: dict[tuple[str, str], dict[str, bytes]] = {}
        self.requests: list[str] = []
        self.fail_with: Exception | None = None

    def add_release(self, repo: str, tag: str, assets: dict[str, bytes]) -> None:
        self.releases[(repo, tag)] = assets

    def __call__(self, req, timeout=None):
        url = req.full_url
        self.requests.append(url)
        if self.fail_with is not None:
            raise self.fail_with

        prefix = f"{self.api}/repos/"
        if url.startswith(prefix) and "/releases/tags/" in url:
            repo, tag = url[len(prefix):].split("/releases/tags/")
            assets = self.releases.get((repo, tag))
            if assets is None:
                raise urllib.error.HTTPError(url, 404, "Not Found", {}, None)
            body = {
                "tag_name": tag,
                "assets": [
                    {"name": name, "browser_download_url": f"https://downloads.example.test/{repo}/{tag}/{name}"}
                    for name in assets
                ],
            }
            return _Response(json.dumps(body).encode("utf-8"))

        dl_prefix = "https://downloads.example.test/"
        if url.startswith(dl_prefix):
            owner, name, tag, asset = url[len(dl_prefix):].split("/", 3)
            return _Response(self.releases[(f"{owner}/{name}", tag)][asset])

        raise urllib.error.HTTPError(url, 404, "Not Found", {}, None)


@pytest.fixture
def github():
    return FakeGitHub()
