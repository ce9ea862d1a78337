#!/usr/bin/env python3
"""
All-to-all GPU bandwidth preset

Builds one transfer per participating (src, dst) GPU pair, runs the whole list
through a TransferEngine in a single call and prints the SRC x DST bandwidth
matrix with row/column totals and per-executor bandwidth.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Sequence

import numpy as np

from config import A2AMode, AllToAllConfig, ConfigError, EnvVars
from profiler import log_debug, log_error
from report import print_errors, print_results
from topology import TopologyClassifier
from transfer import (
    ConfigOptions,
    DevicePair,
    ExeDevice,
    ExeType,
    MemDevice,
    TestResults,
    Transfer,
    TransferEngine,
    TransferGraph,
)


EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_EXECUTION_FAILED = 2


class TransferExecutionError(RuntimeError):
    """The engine could not run the transfer list; messages are in engine order"""

    def __init__(self, messages: Sequence[str]) -> None:
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


# -------------------- Graph construction --------------------
def build_all_to_all_graph(
    a2a: AllToAllConfig,
    num_gpus: int,
    num_bytes: int,
    topology: TopologyClassifier,
) -> TransferGraph:
    """One transfer per ordered GPU pair that passes the locality / direct-link filters"""
    has_srcs = a2a.mode != A2AMode.WRITE_ONLY
    has_dsts = a2a.mode != A2AMode.READ_ONLY
    mem_type = a2a.mem_type

    entries = []
    for i in range(num_gpus):
        for j in range(num_gpus):
            if i == j:
                if not a2a.include_local:
                    continue
            elif a2a.direct_only and not topology.is_direct(i, j):
                log_debug("Skipping GPU {} -> GPU {}: not directly connected", i, j)
                continue

            transfer = Transfer(
                num_bytes=num_bytes,
                srcs=[MemDevice(mem_type, i)] if has_srcs else [],
                dsts=[MemDevice(mem_type, j)] if has_dsts else [],
                exe_device=ExeDevice(a2a.exe_type, j if a2a.use_remote_read else i),
                exe_sub_index=-1,
                num_sub_execs=a2a.num_sub_execs,
            )
            entries.append((DevicePair(i, j), transfer))
    return TransferGraph.from_pairs(entries)


# -------------------- Execution --------------------
def execute_graph(engine: TransferEngine, cfg: ConfigOptions, graph: TransferGraph) -> TestResults:
    """Hand the whole graph to the engine once; raise TransferExecutionError on failure"""
    results = engine.run_transfers(cfg, graph.transfers)
    fatal = results.fatal_errors
    if fatal:
        raise TransferExecutionError(fatal)
    if len(results.tfr_results) != len(graph):
        raise TransferExecutionError(
            [f"Engine returned {len(results.tfr_results)} results for {len(graph)} Transfers"]
        )
    missing = {t.exe_device for t in graph.transfers} - set(results.exe_results)
    if missing:
        labels = ", ".join(
            exe.label() for exe in sorted(missing, key=lambda e: (e.exe_type.value, e.exe_index))
        )
        raise TransferExecutionError([f"Engine returned no executor results for {labels}"])
    return results


# -------------------- Aggregation & report --------------------
@dataclass
class AllToAllSummary:
    """SRC x DST bandwidth matrix (NaN where no transfer ran) and derived totals"""
    bandwidth: np.ndarray
    row_totals: np.ndarray
    col_totals: np.ndarray
    exe_bandwidth: np.ndarray
    total_bandwidth: float
    avg_bandwidth: float
    min_exe_bandwidth: float
    max_exe_bandwidth: float
    cpu_bandwidth: float


def summarize_all_to_all(graph: TransferGraph, num_gpus: int, results: TestResults) -> AllToAllSummary:
    bandwidth = np.full((num_gpus, num_gpus), np.nan, dtype=float)
    exe_bandwidth = np.zeros(num_gpus, dtype=float)

    for (src, dst), idx in graph.re_index.items():
        bandwidth[src, dst] = results.tfr_results[idx].avg_bandwidth_gbps
        # An executor may serve several transfers of this row: take its max, not the sum
        exe_bw = results.exe_results[graph.transfers[idx].exe_device].avg_bandwidth_gbps
        exe_bandwidth[src] = max(exe_bandwidth[src], exe_bw)

    row_totals = np.nansum(bandwidth, axis=1)
    col_totals = np.nansum(bandwidth, axis=0)
    total = float(np.nansum(bandwidth))
    return AllToAllSummary(
        bandwidth=bandwidth,
        row_totals=row_totals,
        col_totals=col_totals,
        exe_bandwidth=exe_bandwidth,
        total_bandwidth=total,
        avg_bandwidth=total / len(graph) if len(graph) else 0.0,
        min_exe_bandwidth=float(exe_bandwidth.min()) if num_gpus else 0.0,
        max_exe_bandwidth=float(exe_bandwidth.max()) if num_gpus else 0.0,
        cpu_bandwidth=results.avg_total_bandwidth_gbps,
    )


def format_summary(summary: AllToAllSummary, num_bytes: int, sep: str) -> List[str]:
    num_gpus = summary.bandwidth.shape[0]
    lines = [
        "",
        f"Summary: [{num_bytes} bytes per Transfer]",
        "=" * 58,
        "SRC\\DST " + "".join(f"{sep}GPU {dst:02d}    " for dst in range(num_gpus))
        + f"   {sep}STotal     {sep}Actual",
    ]
    for src in range(num_gpus):
        cells = []
        for val in summary.bandwidth[src]:
            cells.append(f"{sep}{'N/A':>8}  " if np.isnan(val) else f"{sep}{val:8.3f}  ")
        lines.append(
            f"GPU {src:02d}" + "".join(cells)
            + f"   {sep}{summary.row_totals[src]:8.3f}   {sep}{summary.exe_bandwidth[src]:8.3f}"
        )
    lines.append("")
    lines.append(
        "RTotal" + "".join(f"{sep}{val:8.3f}  " for val in summary.col_totals)
        + f"   {sep}{summary.total_bandwidth:8.3f}   {sep}{summary.min_exe_bandwidth:8.3f}"
        + f"   {sep}{summary.max_exe_bandwidth:8.3f}"
    )
    lines.append("")
    lines.append(f"Average   bandwidth (GPU Timed): {summary.avg_bandwidth:8.3f} GB/s")
    lines.append(f"Aggregate bandwidth (GPU Timed): {summary.total_bandwidth:8.3f} GB/s")
    lines.append(f"Aggregate bandwidth (CPU Timed): {summary.cpu_bandwidth:8.3f} GB/s")
    return lines


# -------------------- Preset entry point --------------------
def all_to_all_preset(
    ev: EnvVars,
    a2a: AllToAllConfig,
    num_bytes: int,
    preset_name: str,
    engine: TransferEngine,
    topology: TopologyClassifier,
) -> int:
    """Run the all-to-all benchmark and return the process exit code"""
    log_debug("Running preset {} with {} bytes per Transfer", preset_name, num_bytes)

    # Every transfer of an executor shares one stream
    ev = replace(ev, use_single_stream=True, gfx_unroll=a2a.gfx_unroll)

    num_detected = engine.get_num_executors(ExeType.GPU_GFX)
    requested = num_detected if a2a.num_gpus is None else a2a.num_gpus
    if not ev.hide_env:
        ev.display()
        a2a.display(requested, ev.output_to_csv)

    try:
        num_gpus = a2a.resolve_num_gpus(num_detected)
    except ConfigError as e:
        log_error("{}", e)
        return EXIT_CONFIG_ERROR

    graph = build_all_to_all_graph(a2a, num_gpus, num_bytes, topology)

    kind = "DMA" if a2a.exe_type is ExeType.GPU_DMA else "GFX"
    print(f"GPU-{kind} All-To-All benchmark:")
    print("==========================")
    print("- Copying {} bytes between {} pairs of GPUs using {} CUs ({} Transfers)".format(
        num_bytes, "directly connected" if a2a.direct_only else "all", a2a.num_sub_execs, len(graph)))
    if len(graph) == 0:
        return EXIT_SUCCESS

    try:
        results = execute_graph(engine, ev.to_config_options(), graph)
    except TransferExecutionError as e:
        for msg in e.messages:
            print(msg)
        return EXIT_EXECUTION_FAILED

    print_results(ev, graph.transfers, results)
    summary = summarize_all_to_all(graph, num_gpus, results)
    print("\n".join(format_summary(summary, num_bytes, ev.separator)))
    print_errors(results)
    return EXIT_SUCCESS
