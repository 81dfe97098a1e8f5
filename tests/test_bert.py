import json
import struct

import numpy as np
import pytest

from candlebench.bert import BertConfig, BertModel, load_config, load_safetensors_arrays, mean_pool

CFG = dict(vocab_size=10, hidden_size=4, num_hidden_layers=1, num_attention_heads=2,
           intermediate_size=8, max_position_embeddings=16, type_vocab_size=2)


def _weights(prefix=""):
    rng = np.random.default_rng(0)
    h, i = 4, 8
    shapes = {
        "embeddings.word_embeddings.weight": (10, h),
        "embeddings.position_embeddings.weight": (16, h),
        "embeddings.token_type_embeddings.weight": (2, h),
        "embeddings.LayerNorm.weight": (h,), "embeddings.LayerNorm.bias": (h,),
    }
    p = "encoder.layer.0"
    for name in ("attention.self.query", "attention.self.key", "attention.self.value", "attention.output.dense"):
        shapes[f"{p}.{name}.weight"] = (h, h)
        shapes[f"{p}.{name}.bias"] = (h,)
    shapes[f"{p}.intermediate.dense.weight"] = (i, h)
    shapes[f"{p}.intermediate.dense.bias"] = (i,)
    shapes[f"{p}.output.dense.weight"] = (h, i)
    shapes[f"{p}.output.dense.bias"] = (h,)
    for ln in ("attention.output.LayerNorm", "output.LayerNorm"):
        shapes[f"{p}.{ln}.weight"] = (h,)
        shapes[f"{p}.{ln}.bias"] = (h,)
    return {prefix + k: rng.standard_normal(s).astype(np.float32) for k, s in shapes.items()}


def test_forward_shape():
    model = BertModel(_weights(), BertConfig.from_dict(CFG))
    out = model.forward([[2, 5, 3]], [[0, 0, 0]], [[1, 1, 1]])
    assert out.shape == (1, 3, 4)
    assert np.all(np.isfinite(out))


def test_padding_does_not_change_pooled():
    model = BertModel(_weights(), BertConfig.from_dict(CFG))
    short = model.forward([[2, 5, 3]], [[0] * 3], [[1, 1, 1]])
    long = model.forward([[2, 5, 3, 0, 0]], [[0] * 5], [[1, 1, 1, 0, 0]])
    a = mean_pool(short, [[1, 1, 1]], True)
    b = mean_pool(long, [[1, 1, 1, 0, 0]], True)
    assert np.allclose(a, b, atol=1e-5)


def test_bert_prefix_matches():
    cfg = BertConfig.from_dict(CFG)
    plain = BertModel(_weights(), cfg).forward([[1, 2]], [[0, 0]])
    prefixed = BertModel(_weights("bert."), cfg).forward([[1, 2]], [[0, 0]])
    assert np.allclose(plain, prefixed)


def test_missing_weights():
    with pytest.raises(ValueError):
        BertModel({}, BertConfig.from_dict(CFG))


def test_mean_pool_values():
    hidden = [[[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]]]
    assert np.allclose(mean_pool(hidden, [[1, 1, 0]], False), [[2.0, 3.0]])
    normed = mean_pool(hidden, [[1, 1, 1]], True)
    assert np.isclose(np.linalg.norm(normed[0]), 1.0)


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({**CFG, "extra": 1}))
    cfg = load_config(path)
    assert cfg.hidden_size == 4
    assert cfg.hidden_act == "gelu"
    path.write_text("[")
    with pytest.raises(ValueError):
        load_config(path)


def test_load_safetensors_roundtrip(tmp_path):
    arr = np.arange(6, dtype=np.float32).reshape(2, 3)
    data = arr.tobytes()
    header = json.dumps({"w": {"dtype": "F32", "shape": [2, 3], "data_offsets": [0, len(data)]}}).encode()
    path = tmp_path / "m.safetensors"
    path.write_bytes(struct.pack("<Q", len(header)) + header + data)
    loaded = load_safetensors_arrays(path)
    assert np.array_equal(loaded["w"], arr)