import logging
import unittest
import numpy as np
from cxpy.core.element import (
    Element,
    can_hydrogen_bond,
    chemical_formula,
    cov_radii,
    element_symbols,
    masses,
    vdw_radii,
)

LOG = logging.getLogger(__name__)


class ElementTestCase(unittest.TestCase):
    def test_construction(self):
        for s in (1, "D", "H", "hydrogen", "H12A"):
            e = Element[s]
            self.assertEqual(e.atomic_number, 1)
            self.assertEqual(e.symbol, "H")
            self.assertEqual(e.name, "hydrogen")

        self.assertEqual(Element["Ca2"].symbol, "Ca")
        self.assertEqual(Element["Cl3"].symbol, "Cl")

        for s in ("1", "32.141", None, 1.5, 0, 200):
            with self.assertRaises(ValueError):
                Element[s]

    def test_radii(self):
        e = Element[1]
        self.assertEqual(e.vdw, 1.09)
        self.assertEqual(e.vdw_radius, 1.09)
        self.assertEqual(e.cov, 0.23)
        self.assertEqual(e.covalent_radius, 0.23)
        np.testing.assert_allclose(cov_radii([1, 8]), [0.23, 0.68])
        np.testing.assert_allclose(vdw_radii([1, 8]), [1.09, 1.52])
        np.testing.assert_allclose(masses([1]), [1.00794])
        self.assertEqual(element_symbols([6, 1, 8]), ["C", "H", "O"])
        with self.assertRaises(ValueError):
            cov_radii([0])

    def test_comparison(self):
        c, h, o, b = Element["C"], Element["H"], Element["O"], Element["B"]
        self.assertEqual(Element[1], h)
        self.assertTrue(c < h)
        self.assertTrue(h < b)
        self.assertTrue(b < o)
        self.assertEqual(sorted([o, h, c]), [c, h, o])
        self.assertEqual(len({Element[8], Element["O"]}), 1)

    def test_hydrogen_bonding(self):
        self.assertTrue(can_hydrogen_bond(1, 8))
        self.assertTrue(can_hydrogen_bond(7, 1))
        self.assertFalse(can_hydrogen_bond(1, 6))
        self.assertFalse(can_hydrogen_bond(8, 8))

    def test_formula(self):
        self.assertEqual(chemical_formula(["O", "C", "O"]), "CO2")
        self.assertEqual(chemical_formula(["O", "H", "H"]), "H2O")
        self.assertEqual(chemical_formula([6] * 6 + [1] * 6), "C6H6")
