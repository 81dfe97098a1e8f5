import json
from unittest.mock import patch

import pytest

from candlebench.hub import HubClient, HubRepoType, parse_repo_type, run_download


class _FakeResponse:
    def __init__(self, body, commit="c0ffee"):
        self.body = body
        self.headers = {"x-repo-commit": commit, "content-length": str(len(body))}

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=1):
        yield self.body

    def close(self):
        return None


def test_parse_repo_type():
    assert parse_repo_type("dataset") is HubRepoType.DATASET
    with pytest.raises(ValueError, match="--repo-type"):
        parse_repo_type("wiki")


def test_cache_hit_without_network(tmp_path):
    repo_dir = tmp_path / "models--org--tiny"
    (repo_dir / "refs").mkdir(parents=True)
    (repo_dir / "refs" / "main").write_text("abc")
    snap = repo_dir / "snapshots" / "abc"
    snap.mkdir(parents=True)
    (snap / "config.json").write_text("{}")
    with patch("candlebench.hub.requests.get") as get:
        path = HubClient(tmp_path, progress=False).get("org/tiny", HubRepoType.MODEL, None, "config.json")
    assert path == snap / "config.json"
    assert get.call_count == 0


def test_download_writes_snapshot_and_ref(tmp_path):
    with patch("candlebench.hub.requests.get", return_value=_FakeResponse(b"hello")) as get:
        client = HubClient(tmp_path, progress=False)
        path = client.get("org/tiny", HubRepoType.DATASET, None, "data.txt")
        again = client.get("org/tiny", HubRepoType.DATASET, None, "data.txt")
    assert path.read_bytes() == b"hello"
    assert again == path
    assert get.call_count == 1
    assert "/datasets/org/tiny/resolve/main/data.txt" in get.call_args.args[0]
    assert (tmp_path / "datasets--org--tiny" / "refs" / "main").read_text() == "c0ffee"


def test_run_download_requires_files(tmp_path):
    with pytest.raises(ValueError, match="at least one file"):
        run_download("org/tiny", HubRepoType.MODEL, None, [], tmp_path, True, False)


def test_run_download_json(tmp_path, capsys):
    with patch("candlebench.hub.requests.get", return_value=_FakeResponse(b"x")):
        items = run_download("org/tiny", HubRepoType.MODEL, "v1", ["a.bin"], tmp_path, True, True)
    data = json.loads(capsys.readouterr().out)
    assert data[0]["repo_type"] == "model"
    assert data[0]["revision"] == "v1"
    assert data[0]["path"] == str(items[0].path)