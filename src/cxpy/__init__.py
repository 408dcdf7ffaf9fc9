from .core import Element, Fragment, FragmentDimer, FragmentIndex, GenericAtomIndex
from .crystal import (
    AsymmetricUnit,
    Crystal,
    CrystalPlaneGenerator,
    SpaceGroup,
    SymmetryOperation,
    UnitCell,
)
from .structure import CrystalStructure, PeriodicStructure, SlabStructure

__all__ = [
    "AsymmetricUnit",
    "Crystal",
    "CrystalPlaneGenerator",
    "CrystalStructure",
    "Element",
    "Fragment",
    "FragmentDimer",
    "FragmentIndex",
    "GenericAtomIndex",
    "PeriodicStructure",
    "SlabStructure",
    "SpaceGroup",
    "SymmetryOperation",
    "UnitCell",
]
