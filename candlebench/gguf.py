"""GGUF file parsing and inspection."""

from __future__ import annotations

import enum
import json
import os
import struct
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import BinaryIO

import numpy as np
from tabulate import tabulate

from .util import format_number, format_shape, format_size, num_elements, truncate

_MAGIC = 0x46554747
_DEFAULT_ALIGNMENT = 32


class GgufError(ValueError):
    """Raised for malformed GGUF files."""


class GgufValueType(enum.IntEnum):
    U8 = 0
    I8 = 1
    U16 = 2
    I16 = 3
    U32 = 4
    I32 = 5
    F32 = 6
    Bool = 7
    String = 8
    Array = 9
    U64 = 10
    I64 = 11
    F64 = 12


_SCALAR_FORMATS = {
    GgufValueType.U8: "<B", GgufValueType.I8: "<b",
    GgufValueType.U16: "<H", GgufValueType.I16: "<h",
    GgufValueType.U32: "<I", GgufValueType.I32: "<i",
    GgufValueType.U64: "<Q", GgufValueType.I64: "<q",
    GgufValueType.F32: "<f", GgufValueType.F64: "<d",
    GgufValueType.Bool: "<?",
}


class GgmlDType(enum.Enum):
    F32 = (0, 1, 4)
    F16 = (1, 1, 2)
    Q4_0 = (2, 32, 18)
    Q4_1 = (3, 32, 20)
    Q5_0 = (6, 32, 22)
    Q5_1 = (7, 32, 24)
    Q8_0 = (8, 32, 34)
    Q8_1 = (9, 32, 36)
    Q2K = (10, 256, 84)
    Q3K = (11, 256, 110)
    Q4K = (12, 256, 144)
    Q5K = (13, 256, 176)
    Q6K = (14, 256, 210)
    Q8K = (15, 256, 292)
    BF16 = (30, 1, 2)

    @property
    def type_id(self) -> int:
        return self.value[0]

    @property
    def block_size(self) -> int:
        return self.value[1]

    @property
    def type_size(self) -> int:
        return self.value[2]

    @classmethod
    def from_id(cls, type_id: int) -> "GgmlDType":
        for member in cls:
            if member.type_id == type_id:
                return member
        raise GgufError(f"unknown dtype for tensor {type_id}")


@dataclass
class GgufValue:
    value_type: GgufValueType
    value: object

    def type_name(self) -> str:
        if self.value_type is GgufValueType.Array:
            items = self.value
            return f"Array<{items[0].value_type.name}>" if items else "Array<empty>"
        return self.value_type.name

    def length(self) -> int | None:
        if self.value_type is GgufValueType.Array:
            return len(self.value)
        if self.value_type is GgufValueType.String:
            return len(self.value.encode("utf-8"))
        return None

    def display(self) -> str:
        vt = self.value_type
        if vt is GgufValueType.Bool:
            return "true" if self.value else "false"
        if vt is GgufValueType.F32:
            return np.format_float_positional(np.float32(self.value), trim="-")
        if vt is GgufValueType.F64:
            return np.format_float_positional(np.float64(self.value), trim="-")
        if vt is GgufValueType.String:
            return truncate(self.value, 120)
        if vt is GgufValueType.Array:
            items = self.value
            preview = ", ".join(item.display() for item in items[:8])
            if len(items) > 8:
                return f"[{preview}, ...] ({len(items)} items)"
            return f"[{preview}]"
        return str(self.value)


@dataclass
class GgufTensorInfo:
    ggml_dtype: GgmlDType
    shape: list[int]
    offset: int


@dataclass
class GgufContent:
    magic: str
    metadata: dict[str, GgufValue]
    tensor_infos: dict[str, GgufTensorInfo]
    tensor_data_offset: int


class _Reader:
    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self.position = 0

    def read(self, n: int) -> bytes:
        data = self._stream.read(n)
        if len(data) < n:
            raise GgufError("unexpected end of file")
        self.position += n
        return data

    def unpack(self, fmt: str):
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))[0]


def _read_len(reader: _Reader, version: int) -> int:
    return reader.unpack("<I" if version == 1 else "<Q")


def _read_string(reader: _Reader, version: int) -> str:
    return reader.read(_read_len(reader, version)).decode("utf-8", errors="replace")


def _read_value(reader: _Reader, value_type: GgufValueType, version: int) -> GgufValue:
    if value_type is GgufValueType.String:
        return GgufValue(value_type, _read_string(reader, version))
    if value_type is GgufValueType.Array:
        item_type = _value_type(reader.unpack("<I"))
        count = _read_len(reader, version)
        return GgufValue(value_type, [_read_value(reader, item_type, version) for _ in range(count)])
    return GgufValue(value_type, reader.unpack(_SCALAR_FORMATS[value_type]))


def _value_type(raw: int) -> GgufValueType:
    try:
        return GgufValueType(raw)
    except ValueError:
        raise GgufError(f"unrecognized value-type {raw}") from None


def read_content(stream: BinaryIO) -> GgufContent:
    """Parse the GGUF header, metadata and tensor table from a binary stream."""
    reader = _Reader(stream)
    if reader.unpack("<I") != _MAGIC:
        raise GgufError("unknown magic")
    version = reader.unpack("<I")
    if version not in (1, 2, 3):
        raise GgufError(f"unsupported GGUF version {version}")
    tensor_count = _read_len(reader, version)
    metadata_count = _read_len(reader, version)

    metadata: dict[str, GgufValue] = {}
    for _ in range(metadata_count):
        key = _read_string(reader, version)
        metadata[key] = _read_value(reader, _value_type(reader.unpack("<I")), version)

    tensor_infos: dict[str, GgufTensorInfo] = {}
    for _ in range(tensor_count):
        name = _read_string(reader, version)
        n_dims = reader.unpack("<I")
        dims = [_read_len(reader, version) for _ in range(n_dims)]
        dims.reverse()
        dtype = GgmlDType.from_id(reader.unpack("<I"))
        offset = reader.unpack("<Q")
        tensor_infos[name] = GgufTensorInfo(dtype, dims, offset)

    alignment = _DEFAULT_ALIGNMENT
    align_value = metadata.get("general.alignment")
    if align_value is not None and isinstance(align_value.value, int) and not isinstance(align_value.value, bool):
        alignment = align_value.value or _DEFAULT_ALIGNMENT
    data_offset = -(-reader.position // alignment) * alignment
    return GgufContent(f"GgufV{version}", metadata, tensor_infos, data_offset)


@dataclass
class GgufMetadataRow:
    key: str
    value_type: str
    value: str
    length: int | None


@dataclass
class GgufTensorRow:
    name: str
    dtype: str
    shape: list[int]
    parameters: int
    bytes: int
    offset: int


@dataclass
class GgufSummary:
    path: str
    file_size_bytes: int
    version: str
    metadata_count: int
    tensor_count: int
    tensor_data_offset: int
    total_tensor_bytes: int
    total_parameters: int
    dtype_counts: dict[str, int] = field(default_factory=dict)
    metadata: list[GgufMetadataRow] = field(default_factory=list)
    tensors: list[GgufTensorRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def inspect_gguf(path: str | os.PathLike) -> GgufSummary:
    path = Path(path)
    with path.open("rb") as handle:
        content = read_content(handle)
    metadata = sorted(
        (GgufMetadataRow(key, value.type_name(), value.display(), value.length()) for key, value in content.metadata.items()),
        key=lambda row: row.key,
    )
    dtype_counts: dict[str, int] = {}
    tensors: list[GgufTensorRow] = []
    for name, info in content.tensor_infos.items():
        dtype = info.ggml_dtype.name
        parameters = num_elements(info.shape)
        size = -(-parameters // info.ggml_dtype.block_size) * info.ggml_dtype.type_size
        dtype_counts[dtype] = dtype_counts.get(dtype, 0) + 1
        tensors.append(GgufTensorRow(name, dtype, list(info.shape), parameters, size, info.offset))
    tensors.sort(key=lambda row: (-row.bytes, row.name))
    return GgufSummary(
        path=str(path),
        file_size_bytes=path.stat().st_size,
        version=content.magic,
        metadata_count=len(metadata),
        tensor_count=len(tensors),
        tensor_data_offset=content.tensor_data_offset,
        total_tensor_bytes=sum(row.bytes for row in tensors),
        total_parameters=sum(row.parameters for row in tensors),
        dtype_counts=dict(sorted(dtype_counts.items())),
        metadata=metadata,
        tensors=tensors,
    )


def print_human_summary(summary: GgufSummary, limit: int) -> None:
    print("Candlebench")
    print("===========")
    print(f"file: {summary.path}")
    print(f"format: GGUF {summary.version}")
    print(f"file size: {format_size(summary.file_size_bytes)}")
    print(f"metadata entries: {summary.metadata_count}")
    print(f"tensors: {summary.tensor_count}")
    print(f"tensor data offset: {summary.tensor_data_offset}")
    print(f"tensor data: {format_size(summary.total_tensor_bytes)}")
    print(f"rough parameters: {format_number(summary.total_parameters)}")
    print()
    if summary.dtype_counts:
        print("dtype counts:")
        for dtype, count in summary.dtype_counts.items():
            print(f"  {dtype}: {count}")
        print()

    meta_rows = [[i, r.key, r.value_type, r.value] for i, r in enumerate(summary.metadata[:limit], start=1)]
    print("metadata:")
    print(tabulate(meta_rows, headers=["#", "key", "type", "value"], tablefmt="fancy_grid"))
    if len(summary.metadata) > limit:
        print(f"showing {limit} of {len(summary.metadata)} metadata entries. Use --limit to show more.")
    print()

    tensor_rows = [
        [i, r.name, r.dtype, format_shape(r.shape), format_number(r.parameters), format_size(r.bytes)]
        for i, r in enumerate(summary.tensors[:limit], start=1)
    ]
    print("largest tensors:")
    print(tabulate(tensor_rows, headers=["#", "name", "dtype", "shape", "params", "bytes"], tablefmt="fancy_grid"))
    if len(summary.tensors) > limit:
        print(f"showing {limit} of {len(summary.tensors)} tensors. Use --limit to show more.")


def run(path: str | os.PathLike, json_output: bool, limit: int) -> None:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"file does not exist: {path}")
    summary = inspect_gguf(path)
    if json_output:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print_human_summary(summary, limit)