import json
import struct

import pytest

from candlebench.inspect import (
    SafeTensorsError,
    inspect_safetensors,
    read_safetensors_header,
    run,
)


def _write(path, tensors, extra=b""):
    header = {"__metadata__": {"format": "pt"}}
    offset = 0
    data = b""
    for name, dtype, shape, size in tensors:
        header[name] = {"dtype": dtype, "shape": shape, "data_offsets": [offset, offset + size]}
        offset += size
        data += b"\x00" * size
    raw = json.dumps(header).encode()
    path.write_bytes(struct.pack("<Q", len(raw)) + raw + data + extra)
    return path


@pytest.fixture
def model(tmp_path):
    return _write(
        tmp_path / "m.safetensors",
        [("b", "F32", [2, 3], 24), ("a", "F16", [4], 8), ("c", "F32", [2, 3], 24)],
    )


def test_header_skips_metadata(model):
    assert set(read_safetensors_header(model)) == {"a", "b", "c"}


def test_summary(model):
    summary = inspect_safetensors(model)
    assert summary.tensor_count == 3
    assert [row.name for row in summary.tensors] == ["b", "c", "a"]
    assert summary.total_tensor_bytes == 24 + 8 + 24
    assert summary.total_parameters == 6 + 4 + 6
    assert summary.dtype_counts == {"F16": 1, "F32": 2}
    assert summary.file_size_bytes == model.stat().st_size


def test_trailing_bytes_rejected(tmp_path):
    path = _write(tmp_path / "x.safetensors", [("a", "U8", [2], 2)], extra=b"zz")
    with pytest.raises(SafeTensorsError):
        inspect_safetensors(path)


def test_size_mismatch_rejected(tmp_path):
    path = _write(tmp_path / "x.safetensors", [("a", "F32", [3], 8)])
    with pytest.raises(SafeTensorsError):
        inspect_safetensors(path)


def test_truncated_file(tmp_path):
    path = tmp_path / "t.safetensors"
    path.write_bytes(b"\x01\x02")
    with pytest.raises(SafeTensorsError):
        read_safetensors_header(path)


def test_run_json(model, capsys):
    run(model, True, 30)
    data = json.loads(capsys.readouterr().out)
    assert data["tensor_count"] == 3
    assert data["tensors"][0]["shape"] == [2, 3]


def test_run_table_limit(model, capsys):
    run(model, False, 1)
    out = capsys.readouterr().out
    assert "showing 1 of 3 tensors" in out


def test_run_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        run(tmp_path / "nope.safetensors", False, 5)