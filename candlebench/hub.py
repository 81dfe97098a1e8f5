"""Downloading files from a model hub into a local cache."""

from __future__ import annotations

import enum
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import requests

_DEFAULT_ENDPOINT = "https://huggingface.co"


class HubError(RuntimeError):
    """Raised when a hub download fails."""


class HubRepoType(enum.Enum):
    MODEL = "model"
    DATASET = "dataset"
    SPACE = "space"

    @property
    def url_prefix(self) -> str:
        return {"model": "", "dataset": "datasets/", "space": "spaces/"}[self.value]

    @property
    def cache_prefix(self) -> str:
        return {"model": "models", "dataset": "datasets", "space": "spaces"}[self.value]


def parse_repo_type(value: str) -> HubRepoType:
    try:
        return HubRepoType(value)
    except ValueError:
        raise ValueError("--repo-type must be one of: model, dataset, space") from None


@dataclass
class DownloadedFile:
    repo: str
    repo_type: str
    revision: str | None
    file: str
    path: Path

    def to_dict(self) -> dict:
        return {
            "repo": self.repo,
            "repo_type": self.repo_type,
            "revision": self.revision,
            "file": self.file,
            "path": str(self.path),
        }


def _default_cache_dir() -> Path:
    if "HF_HUB_CACHE" in os.environ:
        return Path(os.environ["HF_HUB_CACHE"])
    home = os.environ.get("HF_HOME")
    base = Path(home) if home else Path.home() / ".cache" / "huggingface"
    return base / "hub"


class HubClient:
    """Fetches repository files, reusing a snapshot cache."""

    def __init__(self, cache_dir: str | os.PathLike | None = None, progress: bool = True) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir is not None else _default_cache_dir()
        self.progress = progress
        self.endpoint = os.environ.get("HF_ENDPOINT", _DEFAULT_ENDPOINT).rstrip("/")
        self.token = os.environ.get("HF_TOKEN")

    def _repo_dir(self, repo: str, repo_type: HubRepoType) -> Path:
        return self.cache_dir / "--".join([repo_type.cache_prefix, *repo.split("/")])

    def get(self, repo: str, repo_type: HubRepoType, revision: str | None, filename: str) -> Path:
        """Return the local path of ``filename``, downloading it if needed."""
        revision = revision or "main"
        repo_dir = self._repo_dir(repo, repo_type)
        ref_file = repo_dir / "refs" / revision
        commit = ref_file.read_text().strip() if ref_file.is_file() else revision
        cached = repo_dir / "snapshots" / commit / filename
        if cached.is_file():
            return cached

        url = f"{self.endpoint}/{repo_type.url_prefix}{repo}/resolve/{revision}/{filename}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = requests.get(url, headers=headers, stream=True, timeout=60)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise HubError(f"failed to download {filename} from {repo}: {exc}") from exc

        commit = response.headers.get("x-repo-commit", commit)
        target = repo_dir / "snapshots" / commit / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".incomplete")
        total = int(response.headers.get("content-length") or 0)
        written = 0
        try:
            with partial.open("wb") as out:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    if chunk:
                        out.write(chunk)
                        written += len(chunk)
                        if self.progress:
                            suffix = f"/{total}" if total else ""
                            print(f"\r{filename}: {written}{suffix} bytes", end="", file=sys.stderr)
        finally:
            response.close()
        if self.progress:
            print(file=sys.stderr)
        partial.replace(target)
        if commit != revision:
            ref_file.parent.mkdir(parents=True, exist_ok=True)
            ref_file.write_text(commit)
        return target


def run_download(repo, repo_type, revision, files, cache_dir, no_progress, json_output) -> list[DownloadedFile]:
    if not files:
        raise ValueError("at least one file must be provided")
    client = HubClient(cache_dir, progress=not no_progress)
    downloaded = [
        DownloadedFile(repo, repo_type.value, revision, name, client.get(repo, repo_type, revision, name))
        for name in files
    ]
    if json_output:
        print(json.dumps([item.to_dict() for item in downloaded], indent=2))
    else:
        for item in downloaded:
            print(f"{item.file} -> {item.path}")
    return downloaded