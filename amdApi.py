#!/usr/bin/env python3
"""
The implementation of InfiniApi on the AMD ROCm platform
- Inherit the HygonApi and reuse its hipXxx bindings
- Only change the runtime library to libamdhip64.so and the smi command to "rocm-smi"
"""

from __future__ import annotations
from hygonApi import HygonApi


class AmdApi(HygonApi):
    """API implementation of the AMD Instinct GPU platform"""

    smi = "rocm-smi"
    lib_name = "libamdhip64.so"

# All other methods inherit from the HygonApi and do not need to be rewritten
