import json
import math
import struct

import pytest

from candlebench.tui import (
    TuiError,
    load_summary,
    summary_rows,
    summary_stats,
    summary_title,
)


def _write_safetensors(path, tensors):
    header = {}
    offset = 0
    for name, shape in tensors:
        size = math.prod(shape) * 4
        header[name] = {"dtype": "F32", "shape": shape, "data_offsets": [offset, offset + size]}
        offset += size
    raw = json.dumps(header).encode()
    path.write_bytes(struct.pack("<Q", len(raw)) + raw + bytes(offset))
    return path


def _gguf_string(text):
    data = text.encode()
    return struct.pack("<Q", len(data)) + data


def _write_gguf(path):
    data = struct.pack("<IIQQ", 0x46554747, 3, 1, 1)
    data += _gguf_string("general.name") + struct.pack("<I", 8) + _gguf_string("tiny")
    data += _gguf_string("weight") + struct.pack("<I", 2) + struct.pack("<QQ", 4, 2)
    data += struct.pack("<I", 0) + struct.pack("<Q", 0)
    path.write_bytes(data)
    return path


@pytest.fixture
def safetensors_file(tmp_path):
    return _write_safetensors(
        tmp_path / "model.safetensors",
        [("small", [2]), ("big", [4, 4]), ("medium", [2, 3])],
    )


def test_missing_file_raises(tmp_path):
    with pytest.raises(TuiError, match="file does not exist"):
        load_summary(tmp_path / "nope.safetensors")


def test_unsupported_extension_raises(tmp_path):
    other = tmp_path / "model.bin"
    other.write_bytes(b"x")
    with pytest.raises(TuiError, match="TUI supports .safetensors and .gguf files"):
        load_summary(other)


def test_safetensors_summary_stats_and_title(safetensors_file):
    summary = load_summary(safetensors_file)
    stats = summary_stats(summary)
    assert summary_title(summary) == "Largest Tensors"
    assert stats[0] == f"file: {safetensors_file}"
    assert stats[1].startswith("format: SafeTensors")
    assert "tensors: 3" in stats[1]
    assert stats[2].startswith("tensor data:")


def test_gguf_summary_stats_and_title(tmp_path):
    summary = load_summary(_write_gguf(tmp_path / "tiny.gguf"))
    stats = summary_stats(summary)
    assert summary_title(summary) == "GGUF Metadata"
    assert stats[1].startswith("format: GGUF GgufV3")
    assert "metadata: 1" in stats[1]


def test_no_summary_shows_hints():
    assert summary_stats(None) == [
        "Open a file with: candlebench tui ./model.safetensors",
        "Supported files: .safetensors, .gguf",
    ]
    assert summary_title(None) == "Commands"
    rows = summary_rows(None, 0, 20)
    assert rows[0].startswith("inspect <path>")
    assert any(row.startswith("bench-matmul") for row in rows)


def test_rows_respect_scroll_and_height(safetensors_file):
    summary = load_summary(safetensors_file)
    assert len(summary_rows(summary, 0, 10)) == 3
    assert len(summary_rows(summary, 1, 10)) == 2
    assert len(summary_rows(summary, 0, 3)) == 1
    assert summary_rows(summary, 0, 0) == []
    assert summary_rows(summary, 5, 10) == []


def test_rows_are_largest_first(safetensors_file):
    summary = load_summary(safetensors_file)
    rows = summary_rows(summary, 0, 10)
    names = [row[:42].strip() for row in rows]
    assert names == [tensor.name for tensor in summary.tensors]
    assert names[0] == "big"
    assert summary_rows(summary, 1, 10)[0] == rows[1]


def test_long_names_are_truncated(tmp_path):
    name = "x" * 50
    summary = load_summary(_write_safetensors(tmp_path / "long.safetensors", [(name, [1])]))
    row = summary_rows(summary, 0, 10)[0]
    assert row.startswith("x" * 40 + "...")
    assert not row.startswith("x" * 41)


def test_gguf_rows_show_metadata(tmp_path):
    summary = load_summary(_write_gguf(tmp_path / "tiny.gguf"))
    rows = summary_rows(summary, 0, 10)
    assert len(rows) == 1
    assert rows[0].startswith("general.name")
    assert rows[0].endswith("tiny")
    assert "String" in rows[0]