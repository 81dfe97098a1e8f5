"""A BERT encoder evaluated with numpy, plus mean pooling."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path

import numpy as np

from .inspect import read_safetensors_header


@dataclass
class BertConfig:
    vocab_size: int = 30522
    hidden_size: int = 768
    num_hidden_layers: int = 12
    num_attention_heads: int = 12
    intermediate_size: int = 3072
    hidden_act: str = "gelu"
    max_position_embeddings: int = 512
    type_vocab_size: int = 2
    layer_norm_eps: float = 1e-12
    pad_token_id: int = 0
    position_embedding_type: str = "absolute"

    @classmethod
    def from_dict(cls, data: dict) -> "BertConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(path: str | os.PathLike) -> BertConfig:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read config {path}") from exc
    try:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise TypeError("not an object")
        return BertConfig.from_dict(data)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError(f"failed to parse {path}") from exc


_NUMPY_DTYPES = {
    "F64": "<f8", "F32": "<f4", "F16": "<f2",
    "I64": "<i8", "I32": "<i4", "I16": "<i2", "I8": "i1",
    "U64": "<u8", "U32": "<u4", "U16": "<u2", "U8": "u1", "BOOL": "?",
}


def load_safetensors_arrays(path: str | os.PathLike) -> dict[str, np.ndarray]:
    """Read all tensors of a SafeTensors file; floating tensors become float32."""
    path = Path(path)
    entries = read_safetensors_header(path)
    raw = path.read_bytes()
    base = 8 + int.from_bytes(raw[:8], "little")
    arrays = {}
    for name, info in entries.items():
        start, end = info["data_offsets"]
        chunk = raw[base + start: base + end]
        shape = tuple(int(d) for d in info["shape"])
        dtype = info["dtype"]
        if dtype == "BF16":
            bits = np.frombuffer(chunk, dtype="<u2").astype(np.uint32) << 16
            array = bits.view(np.float32)
        elif dtype in _NUMPY_DTYPES:
            array = np.frombuffer(chunk, dtype=_NUMPY_DTYPES[dtype])
            if array.dtype.kind == "f":
                array = array.astype(np.float32)
        else:
            raise ValueError(f"unsupported dtype {dtype} for tensor {name}")
        arrays[name] = array.reshape(shape).copy()
    return arrays


def _erf(x: np.ndarray) -> np.ndarray:
    # Abramowitz and Stegun 7.1.26.
    sign = np.sign(x)
    a = np.abs(x)
    t = 1.0 / (1.0 + 0.3275911 * a)
    poly = t * (0.254829592 + t * (-0.284496736 + t * (1.421413741 + t * (-1.453152027 + t * 1.061405429))))
    return sign * (1.0 - poly * np.exp(-a * a))


def _activation(name: str, x: np.ndarray) -> np.ndarray:
    if name == "gelu":
        return 0.5 * x * (1.0 + _erf(x / np.sqrt(2.0)))
    if name in ("gelu_approximate", "gelu_new", "gelu_pytorch_tanh"):
        return 0.5 * x * (1.0 + np.tanh(np.sqrt(2.0 / np.pi) * (x + 0.044715 * x**3)))
    if name == "relu":
        return np.maximum(x, 0.0)
    raise ValueError(f"unsupported hidden activation: {name}")


class BertModel:
    """BERT encoder returning the last hidden state."""

    def __init__(self, weights: dict[str, np.ndarray], config: BertConfig) -> None:
        if config.hidden_size % config.num_attention_heads:
            raise ValueError("hidden_size must be divisible by num_attention_heads")
        for prefix in ("", "bert."):
            if f"{prefix}embeddings.word_embeddings.weight" in weights:
                self._prefix = prefix
                break
        else:
            raise ValueError("failed to load BERT model: embeddings not found")
        self.weights = weights
        self.config = config
        _activation(config.hidden_act, np.zeros(1, dtype=np.float32))
        for layer in range(config.num_hidden_layers):
            self._w(f"encoder.layer.{layer}.output.dense.weight")

    def _w(self, name: str) -> np.ndarray:
        key = self._prefix + name
        if key in self.weights:
            return self.weights[key]
        for new, old in ((".weight", ".gamma"), (".bias", ".beta")):
            if "LayerNorm" in key and key.endswith(new):
                alt = key[: -len(new)] + old
                if alt in self.weights:
                    return self.weights[alt]
        raise ValueError(f"failed to load BERT model: missing tensor {key}")

    def _linear(self, x: np.ndarray, name: str) -> np.ndarray:
        return x @ self._w(f"{name}.weight").T + self._w(f"{name}.bias")

    def _layer_norm(self, x: np.ndarray, name: str) -> np.ndarray:
        mean = x.mean(-1, keepdims=True)
        var = ((x - mean) ** 2).mean(-1, keepdims=True)
        normed = (x - mean) / np.sqrt(var + self.config.layer_norm_eps)
        return normed * self._w(f"{name}.weight") + self._w(f"{name}.bias")

    def forward(self, input_ids, token_type_ids, attention_mask=None) -> np.ndarray:
        ids = np.asarray(input_ids, dtype=np.int64)
        types = np.asarray(token_type_ids, dtype=np.int64)
        batch, seq = ids.shape
        x = (
            self._w("embeddings.word_embeddings.weight")[ids]
            + self._w("embeddings.position_embeddings.weight")[np.arange(seq)][None]
            + self._w("embeddings.token_type_embeddings.weight")[types]
        )
        x = self._layer_norm(x, "embeddings.LayerNorm").astype(np.float32)

        if attention_mask is None:
            bias = np.zeros((batch, 1, 1, seq), dtype=np.float32)
        else:
            mask = np.asarray(attention_mask, dtype=np.float32)
            bias = ((1.0 - mask) * np.finfo(np.float32).min)[:, None, None, :]

        heads = self.config.num_attention_heads
        head_dim = self.config.hidden_size // heads

        def split(t: np.ndarray) -> np.ndarray:
            return t.reshape(batch, seq, heads, head_dim).transpose(0, 2, 1, 3)

        for layer in range(self.config.num_hidden_layers):
            p = f"encoder.layer.{layer}"
            q = split(self._linear(x, f"{p}.attention.self.query"))
            k = split(self._linear(x, f"{p}.attention.self.key"))
            v = split(self._linear(x, f"{p}.attention.self.value"))
            scores = (q @ k.transpose(0, 1, 3, 2)) / np.sqrt(head_dim) + bias
            scores = scores - scores.max(-1, keepdims=True)
            probs = np.exp(scores)
            probs /= probs.sum(-1, keepdims=True)
            ctx = (probs @ v).transpose(0, 2, 1, 3).reshape(batch, seq, heads * head_dim)
            attn = self._layer_norm(x + self._linear(ctx, f"{p}.attention.output.dense"), f"{p}.attention.output.LayerNorm")
            inter = _activation(self.config.hidden_act, self._linear(attn, f"{p}.intermediate.dense"))
            x = self._layer_norm(attn + self._linear(inter, f"{p}.output.dense"), f"{p}.output.LayerNorm")
            x = x.astype(np.float32)
        return x


def mean_pool(hidden, attention_mask, normalize: bool) -> np.ndarray:
    """Average hidden states over unmasked tokens, optionally L2-normalised."""
    hidden = np.asarray(hidden, dtype=np.float32)
    mask = np.asarray(attention_mask, dtype=np.float32)[:, :, None]
    pooled = (hidden * mask).sum(1)
    denom = np.clip(mask.sum(1), 1e-12, np.finfo(np.float32).max)
    pooled = pooled / denom
    if normalize:
        norm = np.clip(np.sqrt((pooled**2).sum(1, keepdims=True)), 1e-12, np.finfo(np.float32).max)
        pooled = pooled / norm
    return pooled.astype(np.float32)