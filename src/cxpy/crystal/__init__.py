"""
This module implements functionality associated with 3D periodic
crystals (`Crystal`), including unit cells (`UnitCell`), space groups
(`SpaceGroup`), symmetry operations in fractional coordinates
(`SymmetryOperation`), the periodic bond graph, the dimer mapping table
and crystal planes and surface cuts.
"""

from .asymmetric_unit import AsymmetricUnit
from .crystal import Crystal
from .dimer_mapping import DimerIndex, DimerMappingTable, SiteIndex
from .plane import CrystalPlane, CrystalPlaneGenerator
from .space_group import SpaceGroup
from .surface_cut import (
    SurfaceCutOptions,
    generate_suggested_surface_cuts,
    generate_surface_cut,
    suggested_cuts,
)
from .symmetry_operation import SymmetryOperation
from .unit_cell import UnitCell

__all__ = [
    "AsymmetricUnit",
    "Crystal",
    "CrystalPlane",
    "CrystalPlaneGenerator",
    "DimerIndex",
    "DimerMappingTable",
    "SiteIndex",
    "SpaceGroup",
    "SurfaceCutOptions",
    "SymmetryOperation",
    "UnitCell",
    "generate_suggested_surface_cuts",
    "generate_surface_cut",
    "suggested_cuts",
]
