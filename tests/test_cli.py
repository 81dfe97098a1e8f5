import json
import math
import struct

import pytest

from candlebench.backend import Backend
from candlebench.cli import build_parser, main


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


def test_inspect_defaults():
    args = build_parser().parse_args(["inspect", "model.safetensors"])
    assert args.limit == 30
    assert args.json_output is False


def test_embed_defaults():
    args = build_parser().parse_args(["embed", "--text", "hello"])
    assert args.repo == "all-MiniLM-L6-v2"
    assert args.config_file == "config.json"
    assert args.tokenizer_file == "tokenizer.json"
    assert args.weights_file == "model.safetensors"
    assert args.max_length == 512
    assert args.backend is Backend.CPU
    assert args.texts == ["hello"]
    assert args.no_normalize is False


def test_repeated_text_collects_batch():
    args = build_parser().parse_args(["similarity", "--text", "a", "--text", "b"])
    assert args.texts == ["a", "b"]


def test_bench_defaults():
    parser = build_parser()
    embed_args = parser.parse_args(["bench-embed"])
    assert (embed_args.warmup_iters, embed_args.iters) == (2, 10)
    matmul_args = parser.parse_args(["bench-matmul", "--backend", "auto"])
    assert (matmul_args.size, matmul_args.iters) == (1024, 10)
    assert matmul_args.backend is Backend.AUTO


def test_invalid_backend_is_rejected():
    with pytest.raises(SystemExit) as info:
        build_parser().parse_args(["bench-matmul", "--backend", "gpu"])
    assert info.value.code == 2


def test_invalid_repo_type_is_rejected():
    with pytest.raises(SystemExit) as info:
        build_parser().parse_args(["download", "--repo", "a/b", "--repo-type", "nope", "f"])
    assert info.value.code == 2


def test_embed_requires_text():
    with pytest.raises(SystemExit) as info:
        build_parser().parse_args(["embed"])
    assert info.value.code == 2


def test_command_is_required():
    with pytest.raises(SystemExit) as info:
        main([])
    assert info.value.code == 2


def test_inspect_safetensors_json(tmp_path, capsys):
    path = _write_safetensors(tmp_path / "m.safetensors", [("a", [2]), ("b", [3, 3])])
    assert main(["inspect", str(path), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["tensor_count"] == 2
    assert [row["name"] for row in data["tensors"]] == ["b", "a"]


def test_inspect_dispatches_gguf(tmp_path, capsys):
    path = _write_gguf(tmp_path / "tiny.gguf")
    assert main(["inspect", str(path), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["version"] == "GgufV3"
    assert data["metadata"][0]["key"] == "general.name"


def test_inspect_missing_file_reports_error(tmp_path, capsys):
    assert main(["inspect", str(tmp_path / "missing.safetensors")]) == 1
    assert "file does not exist" in capsys.readouterr().err


def test_tokenize_json(tmp_path, capsys):
    spec = {
        "model": {"type": "WordLevel", "vocab": {"hello": 0, "world": 1, "[UNK]": 2}, "unk_token": "[UNK]"},
        "pre_tokenizer": {"type": "WhitespaceSplit"},
    }
    path = tmp_path / "tokenizer.json"
    path.write_text(json.dumps(spec))
    assert main(["tokenize", str(path), "hello world", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [row["id"] for row in data["tokens"]] == [0, 1]
    assert [row["token"] for row in data["tokens"]] == ["hello", "world"]
    assert data["token_count"] == 2


def test_similarity_needs_two_texts(capsys):
    assert main(["similarity", "--text", "only one"]) == 1
    assert "similarity requires at least two --text values" in capsys.readouterr().err


def test_bench_embed_rejects_zero_iters(capsys):
    assert main(["bench-embed", "--iters", "0"]) == 1
    assert "--iters must be greater than 0" in capsys.readouterr().err


def test_bench_embed_rejects_zero_warmup(capsys):
    assert main(["bench-embed", "--warmup-iters", "0"]) == 1
    assert "--warmup-iters must be greater than 0" in capsys.readouterr().err


def test_bench_matmul_rejects_zero_size(capsys):
    assert main(["bench-matmul", "--size", "0"]) == 1
    assert "--size must be greater than 0" in capsys.readouterr().err


def test_bench_matmul_runs(capsys):
    assert main(["bench-matmul", "--size", "4", "--iters", "1"]) == 0
    out = capsys.readouterr().out
    assert "matrix: [4 x 4]" in out
    assert "device: CPU" in out


def test_tui_rejects_unsupported_file(tmp_path, capsys):
    other = tmp_path / "model.bin"
    other.write_bytes(b"x")
    assert main(["tui", str(other)]) == 1
    assert "TUI supports .safetensors and .gguf files" in capsys.readouterr().err