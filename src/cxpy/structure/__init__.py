"""
Finite, mutable views of periodic structures (`PeriodicStructure`),
either a piece of a 3D crystal or of a 2D slab, and the enumeration of
fragment pairs within them.
"""

from .crystal_kind import CrystalKind
from .fragment_pairs import (
    FragmentPairs,
    FragmentPairSettings,
    SymmetryRelatedPair,
    find_fragment_pairs,
)
from .periodic_structure import (
    CrystalStructure,
    PeriodicStructure,
    SlabGenerationMode,
    SlabGenerationOptions,
    SlabStructure,
)
from .slab_kind import SlabKind

__all__ = [
    "CrystalKind",
    "CrystalStructure",
    "FragmentPairSettings",
    "FragmentPairs",
    "PeriodicStructure",
    "SlabGenerationMode",
    "SlabGenerationOptions",
    "SlabKind",
    "SlabStructure",
    "SymmetryRelatedPair",
    "find_fragment_pairs",
]
