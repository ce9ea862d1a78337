#!/usr/bin/env python3
"""
Transfer data model shared by the graph builder, the engines and the reporter
- Memory / executor kinds and device handles
- Transfer descriptors and the all-to-all transfer graph
- Result bundles returned by a TransferEngine
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Sequence, Tuple


class MemType(Enum):
    GPU = "G"          # coarse-grained device memory
    GPU_FINE = "F"     # fine-grained device memory


class ExeType(Enum):
    GPU_GFX = "G"      # compute-engine (kernel) executor
    GPU_DMA = "D"      # copy-engine executor


class ErrType(IntEnum):
    WARN = 1
    FATAL = 2


class MemDevice(NamedTuple):
    mem_type: MemType
    mem_index: int


class ExeDevice(NamedTuple):
    exe_type: ExeType
    exe_index: int

    def label(self) -> str:
        kind = "DMA" if self.exe_type is ExeType.GPU_DMA else "GFX"
        return f"GPU {self.exe_index:02d} ({kind})"


class DevicePair(NamedTuple):
    src: int
    dst: int


@dataclass
class Transfer:
    """One requested data movement"""
    num_bytes: int
    srcs: List[MemDevice] = field(default_factory=list)
    dsts: List[MemDevice] = field(default_factory=list)
    exe_device: ExeDevice = ExeDevice(ExeType.GPU_GFX, 0)
    exe_sub_index: int = -1
    num_sub_execs: int = 1

    def describe(self) -> str:
        """Render as SRC -> EXE -> DST, e.g. F0 -> D1:4 -> F1"""
        srcs = "".join(f"{m.mem_type.value}{m.mem_index}" for m in self.srcs) or "N"
        dsts = "".join(f"{m.mem_type.value}{m.mem_index}" for m in self.dsts) or "N"
        exe = f"{self.exe_device.exe_type.value}{self.exe_device.exe_index}"
        if self.exe_sub_index >= 0:
            exe += f".{self.exe_sub_index}"
        return f"{srcs} -> {exe}:{self.num_sub_execs} -> {dsts}"


@dataclass(frozen=True)
class TransferGraph:
    """
    Ordered transfers of one run plus the (src, dst) -> transfer index lookup.
    Built once by build_all_to_all_graph and read-only afterwards.
    """
    transfers: Tuple[Transfer, ...]
    re_index: Mapping[DevicePair, int]

    @classmethod
    def from_pairs(cls, entries: Sequence[Tuple[DevicePair, Transfer]]) -> "TransferGraph":
        re_index: Dict[DevicePair, int] = {}
        transfers: List[Transfer] = []
        for pair, transfer in entries:
            if pair in re_index:
                raise ValueError(f"Duplicate device pair {pair} in transfer graph")
            re_index[pair] = len(transfers)
            transfers.append(transfer)
        return cls(tuple(transfers), MappingProxyType(re_index))

    def __len__(self) -> int:
        return len(self.transfers)

    def pairs(self) -> List[DevicePair]:
        return sorted(self.re_index, key=self.re_index.__getitem__)


# -------------------- Engine configuration & results --------------------
@dataclass(frozen=True)
class ConfigOptions:
    """Global options forwarded to the execution engine"""
    num_iterations: int = 10
    num_warmups: int = 3
    use_single_stream: bool = False
    gfx_unroll: int = 4


@dataclass
class TransferResult:
    num_bytes: int
    avg_duration_ms: float
    avg_bandwidth_gbps: float


@dataclass
class ExeResult:
    num_bytes: int
    avg_duration_ms: float
    avg_bandwidth_gbps: float
    transfer_idxs: List[int] = field(default_factory=list)


@dataclass
class ErrResult:
    err_type: ErrType
    err_msg: str


@dataclass
class TestResults:
    tfr_results: List[TransferResult] = field(default_factory=list)
    exe_results: Dict[ExeDevice, ExeResult] = field(default_factory=dict)
    avg_total_duration_ms: float = 0.0
    avg_total_bandwidth_gbps: float = 0.0
    err_results: List[ErrResult] = field(default_factory=list)

    __test__ = False  # not a pytest test class

    @property
    def fatal_errors(self) -> List[str]:
        return [e.err_msg for e in self.err_results if e.err_type == ErrType.FATAL]

    @property
    def warnings(self) -> List[str]:
        return [e.err_msg for e in self.err_results if e.err_type == ErrType.WARN]


def gb_per_sec(num_bytes: int, duration_ms: float) -> float:
    """Bandwidth in GB/s (1e9 bytes)"""
    return (num_bytes / 1.0e6) / duration_ms if duration_ms > 0 else 0.0


class TransferEngine(ABC):
    """
    Executes a whole list of transfers in one blocking call.
    A result bundle with at least one FATAL ErrResult means the run failed and
    carries no usable measurements.
    """

    @abstractmethod
    def get_num_executors(self, exe_type: ExeType) -> int:
        ...

    @abstractmethod
    def run_transfers(self, cfg: ConfigOptions, transfers: Sequence[Transfer]) -> TestResults:
        ...
