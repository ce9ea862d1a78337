#!/usr/bin/env python3
"""
Infini API Abstract Base Class:
- Vendor-neutral view of the GPU runtime used by the all-to-all benchmark
- Device enumeration, topology query, buffers, streams, peer copies, events
- Subclasses bind these calls to a concrete runtime library via ctypes
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any


class InfiniApi(ABC):
    """
Runtime calls the benchmark needs, one method per vendor entry point.
Every call returns the runtime's error code (0 on success).

Attributes
-smi: management CLI that identifies the platform ("nvidia-smi", "hy-smi", "rocm-smi")
-_libcudart: loaded runtime library (ctypes.CDLL)
-has_link_query: runtime reports link type / hop count for a device pair
    """

    smi: str = ""
    _libcudart: Any = None
    has_link_query: bool = False

    # ------------ Devices ------------
    @abstractmethod
    def infiniGetDeviceCount(self, count_ptr: Any) -> int:
        """Store the visible GPU count in *count_ptr"""
        ...

    @abstractmethod
    def infiniSetDevice(self, index: int) -> int:
        """Make GPU `index` current for the calling thread"""
        ...

    @abstractmethod
    def infiniGetErrorString(self, err: int) -> bytes:
        ...

    # ------------ Topology ------------
    @abstractmethod
    def infiniExtGetLinkTypeAndHopCount(
        self, device1: int, device2: int, link_type_ptr: Any, hop_count_ptr: Any
    ) -> int:
        """
        Store the link type and hop count between two GPUs.
        Runtimes without the query return their "not supported" code and leave
        has_link_query False so callers never ask.
        """
        ...

    # ------------ Peer access ------------
    @abstractmethod
    def infiniDeviceCanAccessPeer(self, can_access_ptr: Any, device: int, peer_device: int) -> int:
        """Store 1 in *can_access_ptr if `device` can map memory of `peer_device`"""
        ...

    @abstractmethod
    def infiniDeviceEnablePeerAccess(self, peer_device: int, flags: int) -> int:
        """Let the current GPU access `peer_device` directly"""
        ...

    @abstractmethod
    def infiniDeviceDisablePeerAccess(self, peer_device: int) -> int:
        ...

    # ------------ Transfer buffers ------------
    @abstractmethod
    def infiniMalloc(self, dev_ptr: Any, size: int) -> int:
        """Coarse-grained buffer on the current GPU"""
        ...

    @abstractmethod
    def infiniMallocFineGrained(self, dev_ptr: Any, size: int) -> int:
        """Fine-grained (coherent) buffer on the current GPU"""
        ...

    @abstractmethod
    def infiniFree(self, dev_ptr: Any) -> int:
        ...

    # ------------ Streams ------------
    @abstractmethod
    def infiniStreamCreate(self, stream_ptr: Any) -> int:
        """New stream on the current GPU"""
        ...

    @abstractmethod
    def infiniStreamDestroy(self, stream: Any) -> int:
        ...

    @abstractmethod
    def infiniStreamSynchronize(self, stream: Any) -> int:
        """Block until all work queued on `stream` has finished"""
        ...

    # ------------ Peer copy ------------
    @abstractmethod
    def infiniMemcpyPeerAsync(
        self,
        dst: Any,
        dst_device: int,
        src: Any,
        src_device: int,
        count: int,
        stream: Any,
    ) -> int:
        """Queue a `count` byte copy from src_device to dst_device on `stream`"""
        ...

    # ------------ Timing events ------------
    @abstractmethod
    def infiniEventCreate(self, event_ptr: Any) -> int:
        ...

    @abstractmethod
    def infiniEventRecord(self, event: Any, stream: Any) -> int:
        """Mark the current position of `stream`"""
        ...

    @abstractmethod
    def infiniEventElapsedTime(self, ms: Any, start: Any, end: Any) -> int:
        """Store the milliseconds between two recorded events in *ms"""
        ...

    @abstractmethod
    def infiniEventDestroy(self, event: Any) -> int:
        ...
