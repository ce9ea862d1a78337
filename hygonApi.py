#!/usr/bin/env python3
"""
The implementation of InfiniApi on the Hygon platform
Load libgalaxyhip.so via ctypes.CDLL
Bind the infiniXxx function to the hipXxx function
"""

from __future__ import annotations
from typing import Any
import ctypes

from infiniAPI import InfiniApi


hipDeviceMallocFinegrained = 0x1


class HygonApi(InfiniApi):
    """HIP Platform API Implementation (Hygon DCU)"""

    smi = "hy-smi"  # rocm-smi also works on bare metal
    lib_name = "libgalaxyhip.so"
    has_link_query = True

    def __init__(self):
        try:
            self._libcudart = ctypes.CDLL(self.lib_name)
        except OSError:
            raise RuntimeError(
                f"Failed to load {self.lib_name}. "
                "Make sure HIP is installed and LD_LIBRARY_PATH is set."
            )

    # ------------ Device Management ------------
    def infiniGetDeviceCount(self, count: Any) -> int:
        return self._libcudart.hipGetDeviceCount(count)

    def infiniSetDevice(self, device: int) -> int:
        return self._libcudart.hipSetDevice(device)

    def infiniGetErrorString(self, error: int) -> bytes:
        self._libcudart.hipGetErrorString.restype = ctypes.c_char_p
        self._libcudart.hipGetErrorString.argtypes = [ctypes.c_int]
        return self._libcudart.hipGetErrorString(error)

    # ------------ Topology ------------
    def infiniExtGetLinkTypeAndHopCount(
        self, device1: int, device2: int, link_type: Any, hop_count: Any
    ) -> int:
        return self._libcudart.hipExtGetLinkTypeAndHopCount(device1, device2, link_type, hop_count)

    # ------------ Peer access ------------
    def infiniDeviceCanAccessPeer(self, can_access: Any, device: int, peer_device: int) -> int:
        return self._libcudart.hipDeviceCanAccessPeer(can_access, device, peer_device)

    def infiniDeviceEnablePeerAccess(self, peer_device: int, flags: int) -> int:
        return self._libcudart.hipDeviceEnablePeerAccess(peer_device, ctypes.c_uint(flags))

    def infiniDeviceDisablePeerAccess(self, peer_device: int) -> int:
        return self._libcudart.hipDeviceDisablePeerAccess(peer_device)

    # ------------ Device memory management ------------
    def infiniMalloc(self, dev_ptr: Any, size: int) -> int:
        return self._libcudart.hipMalloc(dev_ptr, ctypes.c_size_t(size))

    def infiniMallocFineGrained(self, dev_ptr: Any, size: int) -> int:
        return self._libcudart.hipExtMallocWithFlags(
            dev_ptr, ctypes.c_size_t(size), ctypes.c_uint(hipDeviceMallocFinegrained)
        )

    def infiniFree(self, dev_ptr: Any) -> int:
        return self._libcudart.hipFree(dev_ptr)

    # ------------ Stream management ------------
    def infiniStreamCreate(self, p_stream: Any) -> int:
        return self._libcudart.hipStreamCreate(p_stream)

    def infiniStreamDestroy(self, stream: Any) -> int:
        return self._libcudart.hipStreamDestroy(stream)

    def infiniStreamSynchronize(self, stream: Any) -> int:
        return self._libcudart.hipStreamSynchronize(stream)

    # ------------ Memory copy ------------
    def infiniMemcpyPeerAsync(
        self, dst: Any, dst_device: int, src: Any, src_device: int, count: int, stream: Any
    ) -> int:
        return self._libcudart.hipMemcpyPeerAsync(
            dst, dst_device, src, src_device, ctypes.c_size_t(count), stream
        )

    # ------------ Event Management ------------
    def infiniEventCreate(self, event: Any) -> int:
        return self._libcudart.hipEventCreate(event)

    def infiniEventRecord(self, event: Any, stream: Any) -> int:
        return self._libcudart.hipEventRecord(event, stream)

    def infiniEventElapsedTime(self, ms: Any, start: Any, end: Any) -> int:
        return self._libcudart.hipEventElapsedTime(ms, start, end)

    def infiniEventDestroy(self, event: Any) -> int:
        return self._libcudart.hipEventDestroy(event)
