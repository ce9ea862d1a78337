#!/usr/bin/env python3
"""
The implementation of InfiniApi on the NVIDIA platform
Load libcudart.so via ctypes.CDLL
Bind the infiniXxx function to the cudaXxx function
The CUDA runtime has no hop count query, so has_link_query stays False
"""

from __future__ import annotations
from typing import Any
import ctypes

from infiniAPI import InfiniApi


cudaErrorNotSupported = 801


class NvidiaApi(InfiniApi):
    """NVIDIA CUDA Platform API Implementation"""

    smi = "nvidia-smi"
    lib_name = "libcudart.so"

    def __init__(self):
        try:
            self._libcudart = ctypes.CDLL(self.lib_name)
        except OSError:
            raise RuntimeError(
                f"Failed to load {self.lib_name}. "
                "Make sure CUDA is installed and LD_LIBRARY_PATH is set."
            )

    # ------------ Device Management ------------
    def infiniGetDeviceCount(self, count: Any) -> int:
        return self._libcudart.cudaGetDeviceCount(count)

    def infiniSetDevice(self, device: int) -> int:
        return self._libcudart.cudaSetDevice(device)

    def infiniGetErrorString(self, error: int) -> bytes:
        self._libcudart.cudaGetErrorString.restype = ctypes.c_char_p
        self._libcudart.cudaGetErrorString.argtypes = [ctypes.c_int]
        return self._libcudart.cudaGetErrorString(error)

    # ------------ Topology / peer access ------------
    def infiniExtGetLinkTypeAndHopCount(
        self, device1: int, device2: int, link_type: Any, hop_count: Any
    ) -> int:
        return cudaErrorNotSupported

    def infiniDeviceCanAccessPeer(self, can_access: Any, device: int, peer_device: int) -> int:
        return self._libcudart.cudaDeviceCanAccessPeer(can_access, device, peer_device)

    def infiniDeviceEnablePeerAccess(self, peer_device: int, flags: int) -> int:
        return self._libcudart.cudaDeviceEnablePeerAccess(peer_device, ctypes.c_uint(flags))

    def infiniDeviceDisablePeerAccess(self, peer_device: int) -> int:
        return self._libcudart.cudaDeviceDisablePeerAccess(peer_device)

    # ------------ Device memory management ------------
    def infiniMalloc(self, dev_ptr: Any, size: int) -> int:
        return self._libcudart.cudaMalloc(dev_ptr, ctypes.c_size_t(size))

    def infiniMallocFineGrained(self, dev_ptr: Any, size: int) -> int:
        # CUDA device memory has no fine/coarse distinction
        return self._libcudart.cudaMalloc(dev_ptr, ctypes.c_size_t(size))

    def infiniFree(self, dev_ptr: Any) -> int:
        return self._libcudart.cudaFree(dev_ptr)

    # ------------ Stream management ------------
    def infiniStreamCreate(self, p_stream: Any) -> int:
        return self._libcudart.cudaStreamCreate(p_stream)

    def infiniStreamDestroy(self, stream: Any) -> int:
        return self._libcudart.cudaStreamDestroy(stream)

    def infiniStreamSynchronize(self, stream: Any) -> int:
        return self._libcudart.cudaStreamSynchronize(stream)

    # ------------ Memory copy ------------
    def infiniMemcpyPeerAsync(
        self, dst: Any, dst_device: int, src: Any, src_device: int, count: int, stream: Any
    ) -> int:
        return self._libcudart.cudaMemcpyPeerAsync(
            dst, dst_device, src, src_device, ctypes.c_size_t(count), stream
        )

    # ------------ Event Management ------------
    def infiniEventCreate(self, event: Any) -> int:
        return self._libcudart.cudaEventCreate(event)

    def infiniEventRecord(self, event: Any, stream: Any) -> int:
        return self._libcudart.cudaEventRecord(event, stream)

    def infiniEventElapsedTime(self, ms: Any, start: Any, end: Any) -> int:
        return self._libcudart.cudaEventElapsedTime(ms, start, end)

    def infiniEventDestroy(self, event: Any) -> int:
        return self._libcudart.cudaEventDestroy(event)
