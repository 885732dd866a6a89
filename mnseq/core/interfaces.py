"""DC-coupled audio interface descriptions.

The CV core only needs two facts about the selected device: how many
outputs it has and which voltage range they swing over.  The catalogue
below carries the rest of the device metadata for the selection layer.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple


class VoltageRange(Enum):
    UNIPOLAR_5V = "0 to +5V"
    UNIPOLAR_10V = "0 to +10V"
    BIPOLAR_5V = "-5V to +5V"
    BIPOLAR_10V = "-10V to +10V"

    @property
    def min_voltage(self) -> float:
        if self in (VoltageRange.UNIPOLAR_5V, VoltageRange.UNIPOLAR_10V):
            return 0.0
        if self is VoltageRange.BIPOLAR_5V:
            return -5.0
        return -10.0

    @property
    def max_voltage(self) -> float:
        if self in (VoltageRange.UNIPOLAR_5V, VoltageRange.BIPOLAR_5V):
            return 5.0
        return 10.0

    @property
    def span(self) -> float:
        return self.max_voltage - self.min_voltage


class InterfaceFeature(Enum):
    CV_OUTPUT = "CV Out"
    CV_INPUT = "CV In"
    GATE_OUTPUT = "Gate Out"
    GATE_INPUT = "Gate In"
    CLOCK_SYNC = "Clock Sync"
    MIDI = "MIDI"
    ADAT = "ADAT"
    SPDIF = "S/PDIF"


@dataclass(frozen=True)
class AudioInterfaceModel:
    """A (preferably DC-coupled) audio interface used for CV output.

    Attributes:
        id: Stable identifier, e.g. ``expert-sleepers-es9``.
        name: Display name.
        manufacturer: Vendor name.
        output_count: Number of outputs; valid output indices are
            ``0 .. output_count - 1``.
        input_count: Number of inputs.
        is_dc_coupled: Whether the outputs can hold a constant voltage.
        voltage_range: Output swing.
        features: Device capabilities.
    """

    id: str
    name: str
    manufacturer: str
    output_count: int
    input_count: int
    is_dc_coupled: bool
    voltage_range: VoltageRange
    features: Tuple[InterfaceFeature, ...] = field(default_factory=tuple)

    @property
    def voltage_bounds(self) -> Tuple[float, float]:
        return self.voltage_range.min_voltage, self.voltage_range.max_voltage

    def has_output(self, index: int) -> bool:
        return 0 <= index < self.output_count

    def summary(self) -> str:
        dc = "DC" if self.is_dc_coupled else "AC"
        return (f"{self.manufacturer} {self.name}: {self.output_count} out, "
                f"{self.voltage_range.value}, {dc}")


# ======================================================================
# Preset interfaces
# ======================================================================

_F = InterfaceFeature

ES9 = AudioInterfaceModel(
    id="expert-sleepers-es9", name="ES-9", manufacturer="Expert Sleepers",
    output_count=16, input_count=16, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_10V,
    features=(_F.CV_OUTPUT, _F.CV_INPUT, _F.GATE_OUTPUT, _F.GATE_INPUT,
              _F.CLOCK_SYNC, _F.ADAT),
)

ES8 = AudioInterfaceModel(
    id="expert-sleepers-es8", name="ES-8", manufacturer="Expert Sleepers",
    output_count=8, input_count=4, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_10V,
    features=(_F.CV_OUTPUT, _F.CV_INPUT, _F.GATE_OUTPUT, _F.GATE_INPUT, _F.ADAT),
)

ES3 = AudioInterfaceModel(
    id="expert-sleepers-es3", name="ES-3 mk4", manufacturer="Expert Sleepers",
    output_count=8, input_count=0, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_10V,
    features=(_F.CV_OUTPUT, _F.GATE_OUTPUT, _F.ADAT),
)

MOTU_ULTRALITE_MK5 = AudioInterfaceModel(
    id="motu-ultralite-mk5", name="UltraLite mk5", manufacturer="MOTU",
    output_count=10, input_count=10, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_5V,
    features=(_F.CV_OUTPUT, _F.MIDI, _F.ADAT, _F.SPDIF),
)

MOTU_828ES = AudioInterfaceModel(
    id="motu-828es", name="828es", manufacturer="MOTU",
    output_count=28, input_count=28, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_5V,
    features=(_F.CV_OUTPUT, _F.MIDI, _F.ADAT, _F.SPDIF),
)

RME_FIREFACE_UCX_II = AudioInterfaceModel(
    id="rme-fireface-ucx-ii", name="Fireface UCX II", manufacturer="RME",
    output_count=20, input_count=20, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_5V,
    features=(_F.CV_OUTPUT, _F.MIDI, _F.ADAT, _F.SPDIF),
)

FRAP_TOOLS_CGM = AudioInterfaceModel(
    id="frap-tools-cgm", name="CGM Creative Mixer", manufacturer="Frap Tools",
    output_count=8, input_count=8, is_dc_coupled=True,
    voltage_range=VoltageRange.BIPOLAR_10V,
    features=(_F.CV_OUTPUT, _F.CV_INPUT),
)

GENERIC_AC = AudioInterfaceModel(
    id="generic-ac", name="Standard Audio Interface", manufacturer="Generic",
    output_count=2, input_count=2, is_dc_coupled=False,
    voltage_range=VoltageRange.BIPOLAR_5V,
)

ALL_PRESETS: List[AudioInterfaceModel] = [
    ES9, ES8, ES3, MOTU_ULTRALITE_MK5, MOTU_828ES,
    RME_FIREFACE_UCX_II, FRAP_TOOLS_CGM, GENERIC_AC,
]

_BY_ID: Dict[str, AudioInterfaceModel] = {i.id: i for i in ALL_PRESETS}

DEFAULT_INTERFACE_ID = ES8.id


def custom(name: str, outputs: int, inputs: int,
           voltage_range: VoltageRange) -> AudioInterfaceModel:
    """Describe a user-defined DC-coupled device."""
    return AudioInterfaceModel(
        id=f"custom-{uuid.uuid4()}",
        name=name,
        manufacturer="Custom",
        output_count=max(0, int(outputs)),
        input_count=max(0, int(inputs)),
        is_dc_coupled=True,
        voltage_range=voltage_range,
        features=(_F.CV_OUTPUT, _F.CV_INPUT, _F.GATE_OUTPUT, _F.GATE_INPUT),
    )


def get_interface(interface_id: str) -> AudioInterfaceModel:
    """Look up a preset by id, or by display name (case-insensitive)."""
    found = _BY_ID.get(interface_id)
    if found is not None:
        return found
    key = interface_id.strip().lower()
    for iface in ALL_PRESETS if key else ():
        if iface.name.lower() == key or iface.id.endswith(key):
            return iface
    raise ValueError(f"Unknown audio interface: {interface_id!r}. "
                     f"Available: {', '.join(_BY_ID)}")


def dc_coupled_presets() -> List[AudioInterfaceModel]:
    return [i for i in ALL_PRESETS if i.is_dc_coupled]
