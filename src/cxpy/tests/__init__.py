"""
Small crystals built in code, shared by the test modules.
"""

import numpy as np
from cxpy.crystal import AsymmetricUnit, Crystal, SpaceGroup, UnitCell

WATER_O = np.array((1.4, 1.6, 1.8))
WATER_H1 = WATER_O + (0.96, 0.0, 0.0)
WATER_H2 = WATER_O + (-0.24, 0.93, 0.0)


def hydrogen_crystal(a=10.0):
    """
    P1, cubic cell with one H2 molecule (0.74 Angstrom bond) straddling
    the a face of the unit cell. With a = 3 Angstroms neighbouring
    molecules along a are in close contact (2.26 Angstroms), and no others.
    """
    uc = UnitCell.cubic(a)
    asym = AsymmetricUnit(
        ["H", "H"],
        [[(a - 0.3) / a, 0.5, 0.5], [0.44 / a, 0.5, 0.5]],
        labels=["H1", "H2"],
    )
    return Crystal(uc, SpaceGroup.from_symbol("P1"), asym)


def water_crystal():
    """
    P21/c, orthorhombic 7 x 8 x 9 Angstrom cell with one water molecule
    in the asymmetric unit, four in the unit cell.
    """
    uc = UnitCell.orthorhombic(7.0, 8.0, 9.0)
    frac = uc.to_fractional(np.vstack((WATER_O, WATER_H1, WATER_H2)))
    asym = AsymmetricUnit(["O", "H", "H"], frac, labels=["O1", "H1", "H2"])
    return Crystal(uc, SpaceGroup.from_symbol("P21/c"), asym)


def hydrogen_chain_crystal():
    """
    P1, orthorhombic cell with a single H atom bonded to its own image
    along a (0.8 Angstrom), i.e. an infinite chain.
    """
    uc = UnitCell.orthorhombic(0.8, 10.0, 10.0)
    asym = AsymmetricUnit(["H"], [[0.0, 0.5, 0.5]], labels=["H1"])
    return Crystal(uc, SpaceGroup.from_symbol("P1"), asym)
