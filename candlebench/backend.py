"""Compute backend selection."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Backend(enum.Enum):
    CPU = "cpu"
    METAL = "metal"
    AUTO = "auto"


@dataclass(frozen=True)
class Device:
    """A compute device; only ``cpu`` is available to the numpy engine."""

    kind: str = "cpu"

    @property
    def is_metal(self) -> bool:
        return self.kind == "metal"

    @property
    def is_cuda(self) -> bool:
        return self.kind == "cuda"


def parse_backend(value: str) -> Backend:
    """Parse a backend name, raising ValueError for unknown names."""
    try:
        return Backend(value)
    except ValueError:
        raise ValueError("backend must be one of: cpu, metal, auto") from None


def device_for_backend(backend: Backend) -> Device:
    """Return the device for a backend; Metal is not available here."""
    if backend is Backend.METAL:
        raise RuntimeError("Metal backend is not available in this build")
    return Device("cpu")


def device_label(device: Device) -> str:
    if device.is_metal:
        return "Metal"
    if device.is_cuda:
        return "CUDA"
    return "CPU"