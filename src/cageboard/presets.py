"""Bundled entity presets pairing a codebook with a sample table."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from cageboard.resources import samples_root

__all__ = ["DEFAULT_PRESET", "PRESETS", "Preset", "get_preset"]


@dataclass(frozen=True)
class Preset:
    entity: str
    label: str
    channels: Tuple[str, ...]
    sample: str
    note: Optional[str] = None

    @property
    def sample_path(self) -> Path:
        return samples_root() / self.sample

    def sample_text(self) -> str:
        return self.sample_path.read_text(encoding="utf-8")


PRESETS: Mapping[str, Preset] = MappingProxyType(
    {
        "plant": Preset(
            entity="plant",
            label="Plant (lum, transpiration, bio_potential, temp)",
            channels=("lum", "transpiration", "bio_potential", "temp"),
            sample="plant.csv",
            note="Drifting light + moderate transpiration + gentle temp drift.",
        ),
        "geology": Preset(
            entity="geology",
            label="Geology (seismic, tilt, gas_flux, temp)",
            channels=("seismic", "tilt", "gas_flux", "temp"),
            sample="geology.csv",
            note="Seismic variance + flux/temperature coupling.",
        ),
    }
)

DEFAULT_PRESET = "geology"


def get_preset(entity: str) -> Optional[Preset]:
    return PRESETS.get(entity)
