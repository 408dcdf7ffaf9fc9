"""
Element data, generic atom and fragment indices, and the
`Fragment`/`FragmentDimer` value types.
"""

from .element import Element, chemical_formula
from .index import (
    AtomFlag,
    CellIndex,
    FragmentIndex,
    FragmentIndexPair,
    GenericAtomIndex,
)
from .fragment import Fragment, FragmentDimer, FragmentState

__all__ = [
    "AtomFlag",
    "CellIndex",
    "Element",
    "Fragment",
    "FragmentDimer",
    "FragmentIndex",
    "FragmentIndexPair",
    "FragmentState",
    "GenericAtomIndex",
    "chemical_formula",
]
