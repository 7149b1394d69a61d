"""Top-level package for Cage-Board.

Cage-Board turns ordered sensor readings (geological or botanical) into a
deterministic sequence of story lines. The computational engine lives in
:mod:`cageboard_core`; this package bundles the configuration documents,
the surface library, exporters and the command line interface.
"""

from ._version import __version__
from .config_loader import list_entities, load_codebook, load_grammar, load_surfaces
from .exporters import exporters_registry
from .presets import PRESETS, Preset
from .processing import compose_narrative
from .surfaces import Surface, SurfaceLibrary

__all__ = [
    "PRESETS",
    "Preset",
    "Surface",
    "SurfaceLibrary",
    "__version__",
    "compose_narrative",
    "exporters_registry",
    "list_entities",
    "load_codebook",
    "load_grammar",
    "load_surfaces",
]
