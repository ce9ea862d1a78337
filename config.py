#!/usr/bin/env python3
"""
Run configuration - every recognised environment variable and its default

Values are read once into EnvVars (options shared by every benchmark) and
AllToAllConfig (options of the all-to-all preset); nothing else in the
benchmark looks at the environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Mapping, Optional

from transfer import ConfigOptions, ExeType, MemType


class ConfigError(ValueError):
    """Invalid configuration value; fatal before any device work"""


class A2AMode(IntEnum):
    COPY = 0
    READ_ONLY = 1
    WRITE_ONLY = 2

    @property
    def label(self) -> str:
        return {0: "Copy", 1: "Read-Only", 2: "Write-Only"}[self.value]


def get_env_var(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got {value!r})") from None


def _print_var(name: str, value: int, desc: str, csv: bool) -> None:
    if csv:
        print(f"{name},{value},{desc}")
    else:
        print(f"{name:<20} = {value:>12} : {desc}")


@dataclass(frozen=True)
class EnvVars:
    """Options shared by every benchmark"""
    num_iterations: int = 10
    num_warmups: int = 3
    output_to_csv: bool = False
    hide_env: bool = False
    use_single_stream: bool = False
    gfx_unroll: int = 4

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "EnvVars":
        ev = cls(
            num_iterations=get_env_var(environ, "NUM_ITERATIONS", cls.num_iterations),
            num_warmups=get_env_var(environ, "NUM_WARMUPS", cls.num_warmups),
            output_to_csv=bool(get_env_var(environ, "OUTPUT_TO_CSV", 0)),
            hide_env=bool(get_env_var(environ, "HIDE_ENV", 0)),
            use_single_stream=bool(get_env_var(environ, "USE_SINGLE_STREAM", 0)),
            gfx_unroll=get_env_var(environ, "GFX_UNROLL", cls.gfx_unroll),
        )
        if ev.num_iterations < 1:
            raise ConfigError(f"NUM_ITERATIONS must be at least 1 (got {ev.num_iterations})")
        if ev.num_warmups < 0:
            raise ConfigError(f"NUM_WARMUPS must be non-negative (got {ev.num_warmups})")
        return ev

    @property
    def separator(self) -> str:
        return "," if self.output_to_csv else " "

    def to_config_options(self) -> ConfigOptions:
        return ConfigOptions(
            num_iterations=self.num_iterations,
            num_warmups=self.num_warmups,
            use_single_stream=self.use_single_stream,
            gfx_unroll=self.gfx_unroll,
        )

    def display(self) -> None:
        if self.hide_env:
            return
        if not self.output_to_csv:
            print("[Common]")
        _print_var("NUM_ITERATIONS", self.num_iterations, f"Running {self.num_iterations} timed iteration(s)", self.output_to_csv)
        _print_var("NUM_WARMUPS", self.num_warmups, f"Running {self.num_warmups} warmup iteration(s)", self.output_to_csv)
        _print_var("OUTPUT_TO_CSV", int(self.output_to_csv),
                   "Output in {} format".format("CSV" if self.output_to_csv else "human-readable"), self.output_to_csv)
        _print_var("USE_SINGLE_STREAM", int(self.use_single_stream),
                   "Using single stream per {}".format("executor" if self.use_single_stream else "Transfer"),
                   self.output_to_csv)
        _print_var("GFX_UNROLL", self.gfx_unroll, f"Using GFX unroll factor of {self.gfx_unroll}", self.output_to_csv)


@dataclass(frozen=True)
class AllToAllConfig:
    """Options of the all-to-all preset"""
    direct_only: bool = True
    include_local: bool = False
    mode: A2AMode = A2AMode.COPY
    num_gpus: Optional[int] = None   # None: every detected GPU
    num_sub_execs: int = 8
    use_dma_exec: bool = False
    use_fine_grain: bool = True
    use_remote_read: bool = False
    gfx_unroll: int = 2

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "AllToAllConfig":
        raw_mode = get_env_var(environ, "A2A_MODE", int(A2AMode.COPY))
        try:
            mode = A2AMode(raw_mode)
        except ValueError:
            raise ConfigError(f"A2A_MODE must be between 0 and 2 (got {raw_mode})") from None

        num_gpus = None
        if environ.get("NUM_GPU_DEVICES", "").strip():
            num_gpus = get_env_var(environ, "NUM_GPU_DEVICES", 0)

        num_sub_execs = get_env_var(environ, "NUM_SUB_EXEC", cls.num_sub_execs)
        if num_sub_execs < 1:
            raise ConfigError(f"NUM_SUB_EXEC must be at least 1 (got {num_sub_execs})")

        return cls(
            direct_only=bool(get_env_var(environ, "A2A_DIRECT", 1)),
            include_local=bool(get_env_var(environ, "A2A_LOCAL", 0)),
            mode=mode,
            num_gpus=num_gpus,
            num_sub_execs=num_sub_execs,
            use_dma_exec=bool(get_env_var(environ, "USE_DMA_EXEC", 0)),
            use_fine_grain=bool(get_env_var(environ, "USE_FINE_GRAIN", 1)),
            use_remote_read=bool(get_env_var(environ, "USE_REMOTE_READ", 0)),
            gfx_unroll=get_env_var(environ, "GFX_UNROLL", cls.gfx_unroll),
        )

    @property
    def mem_type(self) -> MemType:
        return MemType.GPU_FINE if self.use_fine_grain else MemType.GPU

    @property
    def exe_type(self) -> ExeType:
        return ExeType.GPU_DMA if self.use_dma_exec else ExeType.GPU_GFX

    def resolve_num_gpus(self, num_detected: int) -> int:
        """Requested GPU count, checked against the detected count"""
        num_gpus = num_detected if self.num_gpus is None else self.num_gpus
        if num_gpus < 0 or num_gpus > num_detected:
            raise ConfigError(f"Cannot use {num_gpus} GPUs.  Detected {num_detected} GPUs")
        return num_gpus

    def display(self, num_gpus: int, csv: bool) -> None:
        if not csv:
            print("[AllToAll Related]")
        _print_var("A2A_DIRECT", int(self.direct_only),
                   "Only using direct links" if self.direct_only else "Full all-to-all", csv)
        _print_var("A2A_LOCAL", int(self.include_local),
                   "{} local transfers".format("Include" if self.include_local else "Exclude"), csv)
        _print_var("A2A_MODE", int(self.mode), self.mode.label, csv)
        _print_var("NUM_GPU_DEVICES", num_gpus, f"Using {num_gpus} GPUs", csv)
        _print_var("NUM_SUB_EXEC", self.num_sub_execs,
                   f"Using {self.num_sub_execs} subexecutors/CUs per Transfer", csv)
        _print_var("USE_DMA_EXEC", int(self.use_dma_exec),
                   "Using {} executor".format("DMA" if self.use_dma_exec else "GFX"), csv)
        _print_var("USE_FINE_GRAIN", int(self.use_fine_grain),
                   "Using {}-grained memory".format("fine" if self.use_fine_grain else "coarse"), csv)
        _print_var("USE_REMOTE_READ", int(self.use_remote_read),
                   "Using {} as executor".format("DST" if self.use_remote_read else "SRC"), csv)
        print()
