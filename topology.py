#!/usr/bin/env python3
"""
Topology classifier - answers whether two GPUs share a direct (single hop) link
"""

from __future__ import annotations
from typing import Tuple
import ctypes

from infiniAPI import InfiniApi
from profiler import check_infini, log_debug


class TopologyClassifier:
    """Stateless wrapper around the platform's link type / hop count query"""

    def __init__(self, api: InfiniApi) -> None:
        self.api = api

    def get_link_type_and_hop_count(self, src: int, dst: int) -> Tuple[int, int]:
        link_type = ctypes.c_uint32(0)
        hop_count = ctypes.c_uint32(0)
        err = self.api.infiniExtGetLinkTypeAndHopCount(
            src, dst, ctypes.pointer(link_type), ctypes.pointer(hop_count)
        )
        check_infini(self.api, err, f"infiniExtGetLinkTypeAndHopCount({src}, {dst})", dev=src)
        return int(link_type.value), int(hop_count.value)

    def is_direct(self, src: int, dst: int) -> bool:
        if src == dst:
            raise ValueError(f"Link query between GPU {src} and itself")
        if not self.api.has_link_query:
            # e.g. the CUDA runtime: no hop count available, every pair counts as direct
            return True
        link_type, hop_count = self.get_link_type_and_hop_count(src, dst)
        log_debug("GPU {} -> GPU {}: link type {}, {} hop(s)", src, dst, link_type, hop_count)
        return hop_count == 1
