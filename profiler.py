#!/usr/bin/env python3
"""
GPU Profiler class - Platform-independent transfer engine
- Only relies on the InfiniApi abstract interface
- Executes a transfer list with runtime peer copies (copy engines)
- Times every transfer with events and the whole round on the CPU
"""

from __future__ import annotations
from typing import Any, Dict, List, Sequence, Tuple
import ctypes
import sys
import time

import numpy as np

from infiniAPI import InfiniApi
from transfer import (
    ConfigOptions,
    ErrResult,
    ErrType,
    ExeDevice,
    ExeResult,
    ExeType,
    MemType,
    TestResults,
    Transfer,
    TransferEngine,
    TransferResult,
    gb_per_sec,
)


# Peer access status codes (identical in CUDA and HIP)
errorPeerAccessAlreadyEnabled = 704
errorPeerAccessNotEnabled = 705


# --------- General logging tool ---------
LOG_LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}
_current_log_level = LOG_LEVELS["INFO"]


def set_log_level(level_str: str) -> None:
    global _current_log_level
    _current_log_level = LOG_LEVELS.get(level_str.upper(), _current_log_level)


def log_debug(msg: str, *args: Any) -> None:
    if _current_log_level >= LOG_LEVELS["DEBUG"]:
        print("[DEBUG]", msg.format(*args))


def log_info(msg: str, *args: Any) -> None:
    if _current_log_level >= LOG_LEVELS["INFO"]:
        print("[INFO]", msg.format(*args))


def log_warn(msg: str, *args: Any) -> None:
    if _current_log_level >= LOG_LEVELS["WARN"]:
        print("[WARN]", msg.format(*args))


def log_error(msg: str, *args: Any) -> None:
    print("[ERROR]", msg.format(*args), file=sys.stderr)


def check_infini(api: InfiniApi, err: int, ctx: str = "", dev: int | None = None) -> None:
    """Check the result of the infini API call"""
    if err != 0:
        try:
            err_bytes = api.infiniGetErrorString(err)
            err_str = err_bytes.decode("utf-8") if err_bytes else "<unknown>"
        except Exception:
            err_str = "<unknown>"

        if dev is None:
            log_error("Infini error in {}: code={} ({})", ctx, err, err_str)
        else:
            log_error("Infini error on dev {} in {}: code={} ({})", dev, ctx, err, err_str)
        raise RuntimeError(f"Infini error {err} ({err_str}) in {ctx}")


class GpuProfiler(TransferEngine):
    """GPU transfer engine - Platform-independent implementation"""

    def __init__(self, api: InfiniApi) -> None:
        self.api = api
        self._num_gpus: int | None = None

    def _check_infini(self, err: int, ctx: str = "", dev: int | None = None) -> None:
        check_infini(self.api, err, ctx, dev)

    # -------------------- Basic information --------------------
    def get_device_count(self) -> int:
        """Obtain the number of Gpus"""
        if self._num_gpus is None:
            cnt = ctypes.c_int()
            self._check_infini(self.api.infiniGetDeviceCount(ctypes.byref(cnt)), "infiniGetDeviceCount")
            if cnt.value <= 0:
                log_warn("No GPUs found")
            else:
                log_info("Found {} GPU(s)", cnt.value)
            self._num_gpus = max(int(cnt.value), 0)
        return self._num_gpus

    def get_num_executors(self, exe_type: ExeType) -> int:
        # Every GPU exposes both a GFX and a DMA executor
        return self.get_device_count()

    # -------------------- Memory management --------------------
    def _malloc(self, dev: int, size: int, mem_type: MemType) -> Any:
        """Allocate device memory"""
        self._check_infini(self.api.infiniSetDevice(dev), f"infiniSetDevice({dev})", dev=dev)
        ptr = ctypes.c_void_p()
        if mem_type is MemType.GPU_FINE:
            err = self.api.infiniMallocFineGrained(ctypes.byref(ptr), size)
            self._check_infini(err, "infiniMallocFineGrained", dev=dev)
        else:
            self._check_infini(self.api.infiniMalloc(ctypes.byref(ptr), size), "infiniMalloc", dev=dev)
        return ptr

    def _free(self, ptr: Any) -> None:
        """Release device memory"""
        if ptr:
            self._check_infini(self.api.infiniFree(ptr), "infiniFree")

    # -------------------- Streams and events --------------------
    def _create_stream(self, dev: int) -> Any:
        """Create a stream"""
        self._check_infini(self.api.infiniSetDevice(dev), f"infiniSetDevice({dev})", dev=dev)
        stream = ctypes.c_void_p()
        self._check_infini(self.api.infiniStreamCreate(ctypes.byref(stream)), "infiniStreamCreate", dev=dev)
        return stream

    def _destroy_stream(self, stream: Any) -> None:
        """Destruction stream"""
        if stream:
            self._check_infini(self.api.infiniStreamDestroy(stream), "infiniStreamDestroy")

    def _create_event(self, dev: int) -> Any:
        """Create an event"""
        self._check_infini(self.api.infiniSetDevice(dev), f"infiniSetDevice({dev})", dev=dev)
        evt = ctypes.c_void_p()
        self._check_infini(self.api.infiniEventCreate(ctypes.byref(evt)), "infiniEventCreate", dev=dev)
        return evt

    def _destroy_event(self, event: Any) -> None:
        """Destruction event"""
        if event:
            self._check_infini(self.api.infiniEventDestroy(event), "infiniEventDestroy")

    def _elapsed_ms(self, start: Any, end: Any) -> float:
        ms = ctypes.c_float()
        self._check_infini(self.api.infiniEventElapsedTime(ctypes.byref(ms), start, end), "infiniEventElapsedTime")
        return float(ms.value)

    # -------------------- Peer access --------------------
    def _device_can_access_peer(self, dev: int, peer: int) -> bool:
        can = ctypes.c_int(0)
        err = self.api.infiniDeviceCanAccessPeer(ctypes.byref(can), dev, peer)
        if err != 0:
            log_warn("infiniDeviceCanAccessPeer({}->{}) failed: code={}", dev, peer, err)
            return False
        return bool(can.value)

    def _enable_peer_access(self, pairs: Sequence[Tuple[int, int]], enabled: List[Tuple[int, int]]) -> None:
        """Enable dev -> peer access, recording in `enabled` the pairs this call turned on"""
        for dev, peer in pairs:
            if not self._device_can_access_peer(dev, peer):
                log_warn("GPU {} cannot access GPU {} directly, copies will be staged", dev, peer)
                continue
            self._check_infini(self.api.infiniSetDevice(dev), f"infiniSetDevice({dev})", dev=dev)
            err = self.api.infiniDeviceEnablePeerAccess(peer, 0)
            if err == 0:
                log_debug("Enabled peer access {}->{}", dev, peer)
                enabled.append((dev, peer))
            elif err == errorPeerAccessAlreadyEnabled:
                log_debug("Peer access {}->{} already enabled", dev, peer)
            else:
                self._check_infini(err, f"infiniDeviceEnablePeerAccess({dev}->{peer})", dev=dev)

    def _disable_peer_access(self, pairs: Sequence[Tuple[int, int]]) -> None:
        for dev, peer in pairs:
            self._check_infini(self.api.infiniSetDevice(dev), f"infiniSetDevice({dev})", dev=dev)
            err = self.api.infiniDeviceDisablePeerAccess(peer)
            if err == errorPeerAccessNotEnabled:
                log_debug("Peer access {}->{} not enabled", dev, peer)
            else:
                self._check_infini(err, f"infiniDeviceDisablePeerAccess({dev}->{peer})", dev=dev)

    @staticmethod
    def _peer_pairs(transfers: Sequence[Transfer]) -> List[Tuple[int, int]]:
        """Distinct (executor, remote endpoint) device pairs, in first-use order"""
        pairs: Dict[Tuple[int, int], None] = {}
        for t in transfers:
            exe = t.exe_device.exe_index
            for mem in list(t.srcs) + list(t.dsts):
                if mem.mem_index != exe:
                    pairs.setdefault((exe, mem.mem_index), None)
        return list(pairs)

    # -------------------- Validation --------------------
    def _validate(self, cfg: ConfigOptions, transfers: Sequence[Transfer]) -> List[ErrResult]:
        """Collect every reason the transfer list cannot run on copy engines"""
        errs: List[ErrResult] = []
        num_gpus = self.get_device_count()

        if cfg.num_iterations < 1:
            errs.append(ErrResult(ErrType.FATAL, f"NUM_ITERATIONS must be at least 1 (got {cfg.num_iterations})"))
        if cfg.num_warmups < 0:
            errs.append(ErrResult(ErrType.FATAL, f"NUM_WARMUPS must be non-negative (got {cfg.num_warmups})"))

        for idx, t in enumerate(transfers):
            prefix = f"Transfer {idx:02d} ({t.describe()})"
            if t.exe_device.exe_type is not ExeType.GPU_DMA:
                errs.append(ErrResult(
                    ErrType.FATAL,
                    f"{prefix}: GFX executors are not supported by the peer-copy engine (set USE_DMA_EXEC=1)",
                ))
            if len(t.srcs) != 1 or len(t.dsts) != 1:
                errs.append(ErrResult(
                    ErrType.FATAL,
                    f"{prefix}: peer copies need exactly one source and one destination",
                ))
            if t.num_bytes <= 0:
                errs.append(ErrResult(ErrType.FATAL, f"{prefix}: byte count must be positive"))
            for mem in list(t.srcs) + list(t.dsts):
                if not 0 <= mem.mem_index < num_gpus:
                    errs.append(ErrResult(
                        ErrType.FATAL,
                        f"{prefix}: GPU {mem.mem_index} does not exist ({num_gpus} detected)",
                    ))
            if not 0 <= t.exe_device.exe_index < num_gpus:
                errs.append(ErrResult(
                    ErrType.FATAL,
                    f"{prefix}: executor GPU {t.exe_device.exe_index} does not exist ({num_gpus} detected)",
                ))
            if t.exe_sub_index >= 0:
                errs.append(ErrResult(
                    ErrType.WARN,
                    f"{prefix}: executor sub-index {t.exe_sub_index} ignored by the peer-copy engine",
                ))
        return errs

    # -------------------- Execution --------------------
    def _launch(self, transfers: Sequence[Transfer], bufs, streams, events=None) -> None:
        for idx, t in enumerate(transfers):
            src_ptr, dst_ptr = bufs[idx]
            stream = streams[idx]
            exe = t.exe_device.exe_index
            self._check_infini(self.api.infiniSetDevice(exe), f"infiniSetDevice({exe})", dev=exe)
            if events is not None:
                self._check_infini(self.api.infiniEventRecord(events[idx][0], stream), "infiniEventRecord(start)")
            err = self.api.infiniMemcpyPeerAsync(
                dst_ptr, t.dsts[0].mem_index, src_ptr, t.srcs[0].mem_index, t.num_bytes, stream
            )
            self._check_infini(err, f"infiniMemcpyPeerAsync({t.describe()})", dev=exe)
            if events is not None:
                self._check_infini(self.api.infiniEventRecord(events[idx][1], stream), "infiniEventRecord(end)")

    def _synchronize(self, streams) -> None:
        for stream in {id(s): s for s in streams}.values():
            self._check_infini(self.api.infiniStreamSynchronize(stream), "infiniStreamSynchronize")

    def run_transfers(self, cfg: ConfigOptions, transfers: Sequence[Transfer]) -> TestResults:
        """
        Run all transfers concurrently, NUM_WARMUPS untimed rounds then
        NUM_ITERATIONS timed rounds, and return the averaged results
        """
        results = TestResults()
        results.err_results = self._validate(cfg, transfers)
        if results.fatal_errors:
            return results

        bufs: List[Tuple[Any, Any]] = []
        streams: List[Any] = []
        events: List[Tuple[Any, Any]] = []
        owned_events: List[Any] = []
        created_streams: Dict[Any, Any] = {}
        peer_enabled: List[Tuple[int, int]] = []
        try:
            for t in transfers:
                src = self._malloc(t.srcs[0].mem_index, t.num_bytes, t.srcs[0].mem_type)
                try:
                    dst = self._malloc(t.dsts[0].mem_index, t.num_bytes, t.dsts[0].mem_type)
                except RuntimeError:
                    self._free(src)
                    raise
                bufs.append((src, dst))
        except RuntimeError as e:
            results.err_results.append(ErrResult(ErrType.FATAL, f"Unable to allocate transfer buffers: {e}"))
            for src, dst in bufs:
                self._free(src)
                self._free(dst)
            return results

        try:
            for idx, t in enumerate(transfers):
                key = t.exe_device if cfg.use_single_stream else idx
                if key not in created_streams:
                    created_streams[key] = self._create_stream(t.exe_device.exe_index)
                streams.append(created_streams[key])
                exe = t.exe_device.exe_index
                start_evt = self._create_event(exe)
                owned_events.append(start_evt)
                stop_evt = self._create_event(exe)
                owned_events.append(stop_evt)
                events.append((start_evt, stop_evt))

            self._enable_peer_access(self._peer_pairs(transfers), peer_enabled)

            for _ in range(cfg.num_warmups):
                self._launch(transfers, bufs, streams)
                self._synchronize(streams)

            tfr_ms = np.zeros((cfg.num_iterations, len(transfers)), dtype=float)
            cpu_ms = np.zeros(cfg.num_iterations, dtype=float)
            for it in range(cfg.num_iterations):
                start = time.perf_counter()
                self._launch(transfers, bufs, streams, events)
                self._synchronize(streams)
                cpu_ms[it] = (time.perf_counter() - start) * 1000.0
                for idx in range(len(transfers)):
                    tfr_ms[it, idx] = self._elapsed_ms(*events[idx])
                log_debug("Iteration {}: CPU {:.3f} ms", it, cpu_ms[it])
        except RuntimeError as e:
            results.err_results.append(ErrResult(ErrType.FATAL, f"Transfer execution failed: {e}"))
            return results
        finally:
            self._disable_peer_access(peer_enabled)
            for evt in owned_events:
                self._destroy_event(evt)
            for stream in created_streams.values():
                self._destroy_stream(stream)
            for src, dst in bufs:
                self._free(src)
                self._free(dst)

        self._fill_results(results, transfers, tfr_ms, cpu_ms, cfg.use_single_stream)
        return results

    @staticmethod
    def _fill_results(results: TestResults, transfers: Sequence[Transfer],
                      tfr_ms: np.ndarray, cpu_ms: np.ndarray, shared_streams: bool) -> None:
        """Average per-transfer, per-executor and CPU timings"""
        for idx, t in enumerate(transfers):
            avg_ms = float(np.mean(tfr_ms[:, idx]))
            results.tfr_results.append(TransferResult(t.num_bytes, avg_ms, gb_per_sec(t.num_bytes, avg_ms)))

        exe_idxs: Dict[ExeDevice, List[int]] = {}
        for idx, t in enumerate(transfers):
            exe_idxs.setdefault(t.exe_device, []).append(idx)
        for exe, idxs in exe_idxs.items():
            if shared_streams:
                # One stream per executor: its transfers run back to back
                round_ms = np.sum(tfr_ms[:, idxs], axis=1)
            else:
                # One stream per transfer: they overlap, the slowest one bounds the round
                round_ms = np.max(tfr_ms[:, idxs], axis=1)
            exe_ms = float(np.mean(round_ms))
            exe_bytes = sum(transfers[i].num_bytes for i in idxs)
            results.exe_results[exe] = ExeResult(exe_bytes, exe_ms, gb_per_sec(exe_bytes, exe_ms), idxs)

        total_bytes = sum(t.num_bytes for t in transfers)
        results.avg_total_duration_ms = float(np.mean(cpu_ms))
        results.avg_total_bandwidth_gbps = gb_per_sec(total_bytes, results.avg_total_duration_ms)
