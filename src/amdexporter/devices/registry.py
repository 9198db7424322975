"""
Static GPU product information, fetched once at startup from rocm-smi.

rocm-smi prints one JSON object keyed by "card<N>". Key spelling and
casing vary between ROCm releases ("Card series" vs "Card Series"), so
the raw output is lower-cased and stripped of spaces before decoding,
e.g. "Card series" -> "cardseries", "PCI Bus" -> "pcibus". Values are
normalized the same way, which is why product names come out as
"amdinstinctmi250(mcm)oamacmba".
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from amdexporter.errors import DeviceRegistryError
from amdexporter.metrics import MAX_GPU_DEVICES

log = logging.getLogger(__name__)

ROCM_SMI_COMMAND = ["rocm-smi", "--showproductname", "--showid", "--showbus", "--json"]

_CARD_KEY_PREFIX = "card"


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of the GPU in one slot."""

    series: str = ""
    model: str = ""
    vendor: str = ""
    sku: str = ""
    bus_address: str = ""
    guid: str = ""

    @classmethod
    def from_rocm_smi(cls, card: Dict[str, object]) -> "DeviceInfo":
        def text(key: str) -> str:
            value = card.get(key, "")
            return "" if value is None else str(value)

        return cls(
            series=text("cardseries"),
            model=text("cardmodel"),
            vendor=text("cardvendor"),
            sku=text("cardsku"),
            bus_address=text("pcibus"),
            guid=text("guid"),
        )


_EMPTY_DEVICE = DeviceInfo()


class DeviceRegistry:
    """Read-only, slot-indexed GPU identities shared by every scrape."""

    def __init__(self, devices: Iterable[Optional[DeviceInfo]] = ()):
        slots = [d or _EMPTY_DEVICE for d in devices]
        self._devices: Tuple[DeviceInfo, ...] = tuple(slots[:MAX_GPU_DEVICES])

    def slot(self, index: int) -> DeviceInfo:
        """Device in the given slot, or an empty DeviceInfo if the slot was never filled."""
        if 0 <= index < len(self._devices):
            return self._devices[index]
        return _EMPTY_DEVICE

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self):
        return iter(self._devices)

    @classmethod
    def from_slots(cls, slots: Dict[int, DeviceInfo]) -> "DeviceRegistry":
        if not slots:
            return cls()
        size = max(slots) + 1
        return cls(slots.get(i) for i in range(size))


def parse_rocm_smi_json(raw: str) -> DeviceRegistry:
    """Decode rocm-smi --json output into a registry.

    Card keys that aren't "card<N>" (e.g. "system") and slots beyond
    MAX_GPU_DEVICES are ignored.
    """
    normalized = raw.lower().replace(" ", "")
    decoder = json.JSONDecoder()
    slots: Dict[int, DeviceInfo] = {}

    # rocm-smi occasionally prints more than one JSON document back to back
    pos = 0
    while True:
        while pos < len(normalized) and normalized[pos] in "\r\n\t":
            pos += 1
        if pos >= len(normalized):
            break
        try:
            cards, pos = decoder.raw_decode(normalized, pos)
        except json.JSONDecodeError as err:
            raise DeviceRegistryError(f"decoding card information from rocm-smi: {err}") from err

        if not isinstance(cards, dict):
            raise DeviceRegistryError("unexpected rocm-smi output: top level is not an object")

        for key, card in cards.items():
            if not key.startswith(_CARD_KEY_PREFIX) or not isinstance(card, dict):
                continue
            try:
                index = int(key[len(_CARD_KEY_PREFIX):])
            except ValueError:
                continue
            if 0 <= index < MAX_GPU_DEVICES:
                slots[index] = DeviceInfo.from_rocm_smi(card)

    return DeviceRegistry.from_slots(slots)


def run_rocm_smi(timeout: float = 30.0) -> str:
    """Run rocm-smi and return its JSON output."""
    log.info("running %s", " ".join(ROCM_SMI_COMMAND))
    try:
        result = subprocess.run(
            ROCM_SMI_COMMAND,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as err:
        raise DeviceRegistryError(f"unable to run rocm-smi: {err}") from err
    return result.stdout


def fetch_device_registry(runner=run_rocm_smi) -> DeviceRegistry:
    """Fetch GPU product names and bus addresses. Failure is fatal to startup."""
    raw = runner()
    log.debug("rocm-smi product information: %s", raw)
    registry = parse_rocm_smi_json(raw)
    log.info("found product information for %d gpu slot(s)", len(registry))
    return registry
