"""SafeTensors file inspection."""

from __future__ import annotations

import json
import os
import struct
from dataclasses import asdict, dataclass, field
from pathlib import Path

from tabulate import tabulate

from .util import format_number, format_shape, format_size, num_elements

_MAX_HEADER_SIZE = 100_000_000

_DTYPE_SIZES = {
    "BOOL": 1, "U8": 1, "I8": 1, "F8_E5M2": 1, "F8_E4M3": 1,
    "I16": 2, "U16": 2, "F16": 2, "BF16": 2,
    "I32": 4, "U32": 4, "F32": 4,
    "I64": 8, "U64": 8, "F64": 8,
}


class SafeTensorsError(ValueError):
    """Raised for malformed SafeTensors files."""


@dataclass
class TensorRow:
    name: str
    dtype: str
    shape: list[int]
    parameters: int
    bytes: int


@dataclass
class InspectSummary:
    path: str
    file_size_bytes: int
    tensor_count: int
    total_tensor_bytes: int
    total_parameters: int
    dtype_counts: dict[str, int] = field(default_factory=dict)
    tensors: list[TensorRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def read_safetensors_header(path: str | os.PathLike) -> dict[str, dict]:
    """Read and validate the header, returning tensor entries by name."""
    path = Path(path)
    file_size = path.stat().st_size
    with path.open("rb") as handle:
        prefix = handle.read(8)
        if len(prefix) < 8:
            raise SafeTensorsError("header too small")
        (header_len,) = struct.unpack("<Q", prefix)
        if header_len > _MAX_HEADER_SIZE:
            raise SafeTensorsError("header too large")
        if 8 + header_len > file_size:
            raise SafeTensorsError("invalid header length")
        raw = handle.read(header_len)
    try:
        header = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SafeTensorsError(f"invalid header: {exc}") from exc
    if not isinstance(header, dict):
        raise SafeTensorsError("header is not a JSON object")

    data_len = file_size - 8 - header_len
    entries = {name: info for name, info in header.items() if name != "__metadata__"}
    for name, info in entries.items():
        try:
            dtype = info["dtype"]
            shape = [int(d) for d in info["shape"]]
            start, end = (int(o) for o in info["data_offsets"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SafeTensorsError(f"invalid entry for tensor {name}") from exc
        if dtype not in _DTYPE_SIZES:
            raise SafeTensorsError(f"unknown dtype {dtype} for tensor {name}")
        if end < start or (end - start) != num_elements(shape) * _DTYPE_SIZES[dtype]:
            raise SafeTensorsError(f"tensor {name} has invalid data offsets")

    position = 0
    for name, info in sorted(entries.items(), key=lambda item: tuple(item[1]["data_offsets"])):
        start, end = info["data_offsets"]
        if start != position:
            raise SafeTensorsError(f"tensor {name} is not contiguous")
        position = end
    if position != data_len:
        raise SafeTensorsError("metadata does not cover the data buffer")
    return entries


def inspect_safetensors(path: str | os.PathLike) -> InspectSummary:
    path = Path(path)
    entries = read_safetensors_header(path)
    rows: list[TensorRow] = []
    dtype_counts: dict[str, int] = {}
    for name, info in entries.items():
        shape = [int(d) for d in info["shape"]]
        start, end = info["data_offsets"]
        dtype = info["dtype"]
        dtype_counts[dtype] = dtype_counts.get(dtype, 0) + 1
        rows.append(TensorRow(name, dtype, shape, num_elements(shape), end - start))
    rows.sort(key=lambda row: (-row.bytes, row.name))
    return InspectSummary(
        path=str(path),
        file_size_bytes=path.stat().st_size,
        tensor_count=len(rows),
        total_tensor_bytes=sum(row.bytes for row in rows),
        total_parameters=sum(row.parameters for row in rows),
        dtype_counts=dict(sorted(dtype_counts.items())),
        tensors=rows,
    )


def print_human_summary(summary: InspectSummary, limit: int) -> None:
    print("Candlebench")
    print("===========")
    print(f"file: {summary.path}")
    print(f"file size: {format_size(summary.file_size_bytes)}")
    print(f"tensors: {summary.tensor_count}")
    print(f"tensor data: {format_size(summary.total_tensor_bytes)}")
    print(f"rough parameters: {format_number(summary.total_parameters)}")
    print()
    if summary.dtype_counts:
        print("dtype counts:")
        for dtype, count in summary.dtype_counts.items():
            print(f"  {dtype}: {count}")
        print()
    table = [
        [idx, row.name, row.dtype, format_shape(row.shape), format_number(row.parameters), format_size(row.bytes)]
        for idx, row in enumerate(summary.tensors[:limit], start=1)
    ]
    print("largest tensors:")
    print(tabulate(table, headers=["#", "name", "dtype", "shape", "params", "bytes"], tablefmt="fancy_grid"))
    if len(summary.tensors) > limit:
        print(f"showing {limit} of {len(summary.tensors)} tensors. Use --limit to show more.")


def run(path: str | os.PathLike, json_output: bool, limit: int) -> None:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"file does not exist: {path}")
    summary = inspect_safetensors(path)
    if json_output:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print_human_summary(summary, limit)