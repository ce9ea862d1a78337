#!/usr/bin/env python3
"""
Console/CSV printing primitives shared by the benchmark presets
"""

from __future__ import annotations
from typing import Sequence

from config import EnvVars
from transfer import TestResults, Transfer


def print_results(ev: EnvVars, transfers: Sequence[Transfer], results: TestResults) -> None:
    """List every executor and the transfers it ran"""
    sep = " | " if not ev.output_to_csv else ","
    print()
    if ev.output_to_csv:
        print("Executor,Transfer,Bandwidth (GB/s),Duration (ms),Bytes,Details")
    for exe in sorted(results.exe_results, key=lambda e: (e.exe_type.value, e.exe_index)):
        r = results.exe_results[exe]
        if ev.output_to_csv:
            print(f"{exe.label()},ALL,{r.avg_bandwidth_gbps:.3f},{r.avg_duration_ms:.3f},"
                  f"{r.num_bytes},{len(r.transfer_idxs)} Transfer(s)")
        else:
            print(f" Executor: {exe.label():<14}{sep}{r.avg_bandwidth_gbps:9.3f} GB/s{sep}"
                  f"{r.avg_duration_ms:9.3f} ms{sep}{r.num_bytes:12d} bytes{sep}"
                  f"{len(r.transfer_idxs)} Transfer(s)")
        for idx in r.transfer_idxs:
            t = transfers[idx]
            tr = results.tfr_results[idx]
            if ev.output_to_csv:
                print(f"{exe.label()},{idx},{tr.avg_bandwidth_gbps:.3f},{tr.avg_duration_ms:.3f},"
                      f"{tr.num_bytes},{t.describe()}")
            else:
                print(f"     Transfer {idx:02d}  {sep}{tr.avg_bandwidth_gbps:9.3f} GB/s{sep}"
                      f"{tr.avg_duration_ms:9.3f} ms{sep}{tr.num_bytes:12d} bytes{sep}{t.describe()}")
    if ev.output_to_csv:
        print(f"Aggregate (CPU),ALL,{results.avg_total_bandwidth_gbps:.3f},"
              f"{results.avg_total_duration_ms:.3f},,")
    else:
        print(f" Aggregate (CPU)         {sep}{results.avg_total_bandwidth_gbps:9.3f} GB/s{sep}"
              f"{results.avg_total_duration_ms:9.3f} ms")


def print_errors(results: TestResults) -> None:
    """Print non-fatal warnings left after a successful run"""
    for msg in results.warnings:
        print(f"[WARN] {msg}")
