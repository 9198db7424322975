"""
Device id normalization.

The kubelet reports whatever id the device plugin handed out: a PCI bus
address on bare metal, "amd<N>/gi<M>" for GPU instances, or a
"<id>/vgpu..." / "<id>/mxgpu..." form for virtual functions. The
exporter looks workloads up by the GPU's bus address, so every raw id is
filed under a few extra keys as well.
"""

from __future__ import annotations

import re
from typing import List

GPU_INSTANCE_ID_RE = re.compile(r"^amd([0-9]+)/gi([0-9]+)$")

VIRTUAL_GPU_SEPARATOR = "/vgpu"
SRIOV_GPU_SEPARATOR = "/mxgpu"


def normalize_device_id(device_id: str) -> List[str]:
    """Return the additional keys a raw device id should be filed under.

    First match wins. An id with no recognized shape yields [].

    Note that the colon rule also fires for bus addresses, so
    "0000:b3:00.0" adds "0000", a prefix every device in the PCI domain
    shares.
    """
    match = GPU_INSTANCE_ID_RE.match(device_id)
    if match:
        return [f"{match.group(1)}-{match.group(2)}"]

    if VIRTUAL_GPU_SEPARATOR in device_id:
        return [device_id.split(VIRTUAL_GPU_SEPARATOR, 1)[0]]

    if SRIOV_GPU_SEPARATOR in device_id:
        return [device_id.split(SRIOV_GPU_SEPARATOR, 1)[0]]

    if ":" in device_id:
        return [device_id.split(":", 1)[0]]

    return []


def device_keys(device_id: str) -> List[str]:
    """All keys for a raw id: the normalized ones, then the id itself."""
    return normalize_device_id(device_id) + [device_id]
