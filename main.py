#!/usr/bin/env python3
"""
Topology-aware GPU all-to-all bandwidth benchmark
"""

from __future__ import annotations

import argparse
import os
import re
import subprocess
import sys
from dataclasses import replace

from profiler import (
    GpuProfiler,
    LOG_LEVELS,
    set_log_level,
    log_info,
    log_error,
)
from alltoall import EXIT_CONFIG_ERROR, all_to_all_preset
from config import AllToAllConfig, ConfigError, EnvVars
from topology import TopologyClassifier
from nvidiaApi import NvidiaApi
from hygonApi import HygonApi
from amdApi import AmdApi


DEFAULT_NUM_BYTES = "256M"
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


def parse_num_bytes(text: str) -> int:
    """Parse a byte count with an optional K/M/G (binary) suffix, e.g. 64M"""
    m = re.fullmatch(r"\s*(\d+)\s*([KMGkmg]?)[Bb]?\s*", text)
    if not m:
        raise argparse.ArgumentTypeError(f"invalid byte count: {text!r}")
    num_bytes = int(m.group(1)) * _SIZE_UNITS[m.group(2).upper()]
    if num_bytes <= 0:
        raise argparse.ArgumentTypeError("byte count must be positive")
    return num_bytes


# ---------------- Platform API selection ----------------
def detect_platform_by_smi():
    """
    Attempt to automatically identify GPU manufacturers
    using the SMI command on various platforms.
    return:
        ("NVIDIA", "nvidia-smi")
        ("AMD", "rocm-smi")
        ("Hygon", "hy-smi")
    """
    candidates = [
        ("NVIDIA", "nvidia-smi"),
        ("Hygon", "hy-smi"),
        ("AMD", "rocm-smi"),
    ]
    for name, cmd in candidates:
        try:
            proc = subprocess.run(
                [cmd, "-h"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
            if proc.returncode == 0:
                return name, cmd
        except FileNotFoundError:
            continue
    raise RuntimeError("Can not identify the GPU platform via any SMI command.")


def create_platform_api():
    apis = {"NVIDIA": NvidiaApi, "AMD": AmdApi, "Hygon": HygonApi}
    # 1. First identify GPU by SMI
    try:
        platform, _ = detect_platform_by_smi()
        return apis[platform](), platform
    except RuntimeError:
        pass
    # 2. fallback: whichever runtime library loads
    for platform, api_cls in apis.items():
        try:
            return api_cls(), platform
        except RuntimeError:
            continue
    raise RuntimeError("Unknown GPU platform")


# ---------------- Main function ----------------
def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Topology-aware GPU all-to-all bandwidth benchmark. "
        "Benchmark options are read from environment variables (A2A_MODE, A2A_DIRECT, ...)."
    )
    parser.add_argument(
        "num_bytes",
        nargs="?",
        type=parse_num_bytes,
        default=DEFAULT_NUM_BYTES,
        help=f"Bytes per Transfer, K/M/G suffixes allowed (default: {DEFAULT_NUM_BYTES})",
    )
    parser.add_argument(
        "--preset-name",
        default="a2a",
        help="Name of this run, used in log messages",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Comma separated output (same as OUTPUT_TO_CSV=1)",
    )
    parser.add_argument(
        "--hide-env",
        action="store_true",
        help="Do not list the configuration (same as HIDE_ENV=1)",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS.keys()),
        default="INFO",
        help="Verbosity (ERROR, WARN, INFO, DEBUG)",
    )

    args = parser.parse_args(argv)
    set_log_level(args.log_level)

    try:
        ev = EnvVars.from_env(os.environ)
        a2a = AllToAllConfig.from_env(os.environ)
    except ConfigError as e:
        log_error("{}", e)
        return EXIT_CONFIG_ERROR
    if args.csv:
        ev = replace(ev, output_to_csv=True)
    if args.hide_env:
        ev = replace(ev, hide_env=True)

    try:
        api, platform = create_platform_api()
        log_info("Using {} platform", platform)
        engine = GpuProfiler(api)
        topology = TopologyClassifier(api)
        return all_to_all_preset(ev, a2a, args.num_bytes, args.preset_name, engine, topology)

    except Exception as e:
        log_error("Fatal error: {}", e)
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
