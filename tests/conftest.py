"""Shared fakes: a scripted platform API, topology and transfer engine."""

import sys
from pathlib import Path

import pytest

# Modules live at the project root
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infiniAPI import InfiniApi  # noqa: E402
import profiler  # noqa: E402
from transfer import (  # noqa: E402
    ErrResult,
    ErrType,
    ExeResult,
    TestResults,
    TransferEngine,
    TransferResult,
)


def _deref(ptr):
    """Target of a ctypes.byref() or ctypes.pointer() argument"""
    return ptr._obj if hasattr(ptr, "_obj") else ptr.contents


class FakeApi(InfiniApi):
    """In-memory GPU runtime: every call succeeds unless listed in `fail`"""

    smi = "fake-smi"
    has_link_query = True

    def __init__(self, num_gpus=4, hops=None, fail=(), elapsed_ms=1.0, malloc_budget=None,
                 event_budget=None, no_peer=(), peer_enabled=()):
        self.malloc_budget = malloc_budget
        self.event_budget = event_budget
        self.no_peer = set(no_peer)
        self.peer_enabled = set(peer_enabled)
        self.peer_enable_calls = []
        self.num_gpus = num_gpus
        self.hops = dict(hops or {})
        self.fail = set(fail)
        self.elapsed_ms = elapsed_ms
        self.link_queries = []
        self.live_buffers = {}
        self.fine_allocs = 0
        self.copies = []
        self.live_streams = set()
        self.streams_created = 0
        self.live_events = set()
        self._next_handle = 0x1000
        self.current_device = 0

    def _handle(self):
        self._next_handle += 0x10
        return self._next_handle

    def _rc(self, name):
        return 2 if name in self.fail else 0

    def infiniGetDeviceCount(self, count_ptr):
        _deref(count_ptr).value = self.num_gpus
        return self._rc("count")

    def infiniSetDevice(self, index):
        self.current_device = index
        return 0

    def infiniGetErrorString(self, err):
        return b"fake runtime error"

    def infiniExtGetLinkTypeAndHopCount(self, device1, device2, link_type_ptr, hop_count_ptr):
        self.link_queries.append((device1, device2))
        if "link" in self.fail:
            return 2
        _deref(link_type_ptr).value = 4
        _deref(hop_count_ptr).value = self.hops.get((device1, device2), 1)
        return 0

    def infiniDeviceCanAccessPeer(self, can_access_ptr, device, peer_device):
        _deref(can_access_ptr).value = int((device, peer_device) not in self.no_peer)
        return 0

    def infiniDeviceEnablePeerAccess(self, peer_device, flags):
        pair = (self.current_device, peer_device)
        self.peer_enable_calls.append(pair)
        if "peer" in self.fail:
            return 2
        if pair in self.peer_enabled:
            return profiler.errorPeerAccessAlreadyEnabled
        self.peer_enabled.add(pair)
        return 0

    def infiniDeviceDisablePeerAccess(self, peer_device):
        pair = (self.current_device, peer_device)
        if pair not in self.peer_enabled:
            return profiler.errorPeerAccessNotEnabled
        self.peer_enabled.remove(pair)
        return 0

    def _alloc(self, dev_ptr, size):
        if self.malloc_budget is not None and len(self.live_buffers) >= self.malloc_budget:
            return 2
        handle = self._handle()
        _deref(dev_ptr).value = handle
        self.live_buffers[handle] = (self.current_device, size)
        return 0

    def infiniMalloc(self, dev_ptr, size):
        return self._alloc(dev_ptr, size)

    def infiniMallocFineGrained(self, dev_ptr, size):
        self.fine_allocs += 1
        return self._alloc(dev_ptr, size)

    def infiniFree(self, dev_ptr):
        self.live_buffers.pop(dev_ptr.value)
        return 0

    def infiniStreamCreate(self, stream_ptr):
        handle = self._handle()
        _deref(stream_ptr).value = handle
        self.live_streams.add(handle)
        self.streams_created += 1
        return 0

    def infiniStreamDestroy(self, stream):
        self.live_streams.remove(stream.value)
        return 0

    def infiniStreamSynchronize(self, stream):
        return 0

    def infiniMemcpyPeerAsync(self, dst, dst_device, src, src_device, count, stream):
        self.copies.append((src_device, dst_device, count, stream.value))
        return self._rc("memcpy")

    def infiniEventCreate(self, event_ptr):
        if self.event_budget is not None and len(self.live_events) >= self.event_budget:
            return 2
        handle = self._handle()
        _deref(event_ptr).value = handle
        self.live_events.add(handle)
        return 0

    def infiniEventRecord(self, event, stream):
        return 0

    def infiniEventElapsedTime(self, ms, start, end):
        _deref(ms).value = self.elapsed_ms
        return 0

    def infiniEventDestroy(self, event):
        self.live_events.remove(event.value)
        return 0


class FakeTopology:
    """Direct unless the pair is listed in `indirect`"""

    def __init__(self, indirect=(), all_indirect=False):
        self.indirect = set(indirect)
        self.all_indirect = all_indirect
        self.calls = []

    def is_direct(self, src, dst):
        assert src != dst
        self.calls.append((src, dst))
        return not self.all_indirect and (src, dst) not in self.indirect


class FakeEngine(TransferEngine):
    """
    Scripted engine: transfer i runs at bandwidths[i] (default 10 + i) GB/s,
    an executor reports the sum of its transfers, or `errors` fail the run.
    """

    def __init__(self, num_gpus=4, errors=None, bandwidths=None, warnings=(), cpu_bandwidth=42.0):
        self.num_gpus = num_gpus
        self.errors = list(errors or [])
        self.bandwidths = bandwidths
        self.warnings = list(warnings)
        self.cpu_bandwidth = cpu_bandwidth
        self.calls = []

    def get_num_executors(self, exe_type):
        return self.num_gpus

    def run_transfers(self, cfg, transfers):
        self.calls.append((cfg, list(transfers)))
        results = TestResults()
        results.err_results = [ErrResult(ErrType.WARN, w) for w in self.warnings]
        if self.errors:
            results.err_results += [ErrResult(ErrType.FATAL, e) for e in self.errors]
            return results
        for idx, t in enumerate(transfers):
            bw = self.bandwidths[idx] if self.bandwidths else 10.0 + idx
            ms = t.num_bytes / 1.0e6 / bw
            results.tfr_results.append(TransferResult(t.num_bytes, ms, bw))
            exe = results.exe_results.setdefault(t.exe_device, ExeResult(0, 0.0, 0.0, []))
            exe.num_bytes += t.num_bytes
            exe.avg_bandwidth_gbps += bw
            exe.transfer_idxs.append(idx)
        for exe in results.exe_results.values():
            exe.avg_duration_ms = exe.num_bytes / 1.0e6 / exe.avg_bandwidth_gbps
        results.avg_total_bandwidth_gbps = self.cpu_bandwidth
        results.avg_total_duration_ms = 1.0
        return results


@pytest.fixture(autouse=True)
def quiet_logs():
    profiler.set_log_level("ERROR")
    yield
    profiler.set_log_level("INFO")


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def fake_engine():
    return FakeEngine()
