import logging
import unittest
import numpy as np
from cxpy.core.index import FragmentIndex
from cxpy.crystal import AsymmetricUnit, Crystal, SpaceGroup, UnitCell
from .. import hydrogen_crystal, water_crystal

LOG = logging.getLogger(__name__)


class AsymmetricUnitTestCase(unittest.TestCase):
    def test_labels_and_formula(self):
        asym = AsymmetricUnit(["O", "H", "H"], np.zeros((3, 3)))
        self.assertEqual(list(asym.labels), ["O1", "H1", "H2"])
        self.assertEqual(asym.formula, "H2O")
        self.assertEqual(len(asym), 3)

    def test_mismatch(self):
        with self.assertRaises(ValueError):
            AsymmetricUnit(["O", "H"], np.zeros((3, 3)))
        with self.assertRaises(ValueError):
            AsymmetricUnit(["O"], np.zeros((1, 3)), adps=np.zeros((2, 6)))


class CrystalTestCase(unittest.TestCase):
    def setUp(self):
        self.water = water_crystal()
        self.hydrogen = hydrogen_crystal()

    def test_repr(self):
        self.assertEqual(repr(self.water), "<Crystal H2O P21/c>")

    def test_unit_cell_atoms(self):
        uc = self.water.unit_cell_atoms()
        self.assertEqual(len(uc["frac_pos"]), 12)
        np.testing.assert_array_equal(uc["asym_atom"][:3], [0, 1, 2])
        self.assertTrue(np.all(uc["frac_pos"] >= 0) and np.all(uc["frac_pos"] < 1))
        np.testing.assert_allclose(uc["cart_pos"], self.water.to_cartesian(uc["frac_pos"]))

    def test_special_position_merging(self):
        asym = AsymmetricUnit(["O", "H"], [[0.5, 0.5, 0.5], [0.1, 0.2, 0.3]])
        c = Crystal(UnitCell.cubic(10.0), SpaceGroup.from_symbol("P-1"), asym)
        uc = c.unit_cell_atoms()
        self.assertEqual(len(uc["frac_pos"]), 3)
        self.assertEqual(np.sum(uc["asym_atom"] == 0), 1)

    def test_adps(self):
        frac = self.water.asymmetric_unit.positions
        u = [0.01, 0.02, 0.03, 0.004, 0.005, 0.006]
        asym = AsymmetricUnit(["O", "H", "H"], frac, adps=[u] * 3)
        c = Crystal(self.water.unit_cell, self.water.space_group, asym)
        adps = c.unit_cell_atoms()["adps"]
        np.testing.assert_allclose(adps[0], u)
        # -x, 1/2+y, 1/2-z
        np.testing.assert_allclose(adps[3], [0.01, 0.02, 0.03, -0.004, 0.005, -0.006])

    def test_slab(self):
        slab = self.hydrogen.slab(bounds=((-1, 0, 0), (1, 0, 0)))
        self.assertEqual(slab["n_uc"], 2)
        self.assertEqual(slab["n_cells"], 3)
        self.assertEqual(len(slab["frac_pos"]), 6)
        np.testing.assert_array_equal(slab["hkl"][:2], np.zeros((2, 3)))

    def test_unit_cell_molecules(self):
        mols = self.water.unit_cell_molecules()
        self.assertEqual(len(mols), 4)
        for i, mol in enumerate(mols):
            self.assertEqual(mol.index, FragmentIndex(i))
            self.assertEqual(mol.chemical_formula(), "H2O")
            centroid = self.water.to_fractional(mol.centroid())
            self.assertTrue(np.all(centroid >= 0) and np.all(centroid < 1))

    def test_molecule_across_cell_boundary(self):
        mols = self.hydrogen.unit_cell_molecules()
        self.assertEqual(len(mols), 1)
        mol = mols[0]
        self.assertEqual(mol.size, 2)
        np.testing.assert_allclose(mol.interatomic_distances(), [0.74], atol=1e-8)

    def test_symmetry_unique_molecules(self):
        unique = self.water.symmetry_unique_molecules()
        self.assertEqual(len(unique), 1)
        rep = unique[0]
        for mol in self.water.unit_cell_molecules():
            self.assertEqual(mol.asymmetric_fragment_index, FragmentIndex(0))
            rot, trans = mol.asymmetric_fragment_transform
            order_rep = np.argsort(rep.asymmetric_unit_indices)
            order_mol = np.argsort(mol.asymmetric_unit_indices)
            np.testing.assert_allclose(
                rep.positions[order_rep] @ rot.T + trans,
                mol.positions[order_mol],
                atol=1e-6,
            )

    def test_symmetry_transform(self):
        frac = self.water.asymmetric_unit.positions
        found, _ = self.water.symmetry_transform(frac, frac)
        self.assertTrue(found)
        found, transform = self.water.symmetry_transform(frac, frac * 1.5)
        self.assertFalse(found)
        self.assertIsNone(transform)

    def test_cartesian_symmetry_operations(self):
        frac = self.water.asymmetric_unit.positions
        cart = self.water.to_cartesian(frac)
        for symop, (rot, trans) in zip(
            self.water.symmetry_operations, self.water.cartesian_symmetry_operations()
        ):
            np.testing.assert_allclose(
                cart @ rot.T + trans, self.water.to_cartesian(symop(frac)), atol=1e-8
            )

    def test_surroundings(self):
        surroundings = self.hydrogen.unit_cell_atom_surroundings(3.0)
        self.assertEqual(len(surroundings), 2)
        np.testing.assert_array_equal(surroundings[0]["uc_idx"], [1])
        np.testing.assert_array_equal(surroundings[0]["hkl"], [[1, 0, 0]])
        np.testing.assert_allclose(surroundings[0]["distance"], [0.74], atol=1e-8)
        np.testing.assert_array_equal(surroundings[1]["hkl"], [[-1, 0, 0]])

    def test_density(self):
        self.assertGreater(self.water.density, 0.0)

    def test_dict_round_trip(self):
        c = Crystal.from_json(self.water.to_json())
        self.assertEqual(c.space_group, self.water.space_group)
        self.assertEqual(c.unit_cell, self.water.unit_cell)
        np.testing.assert_allclose(
            c.unit_cell_atoms()["frac_pos"], self.water.unit_cell_atoms()["frac_pos"]
        )

    def test_malformed(self):
        with self.assertRaises(ValueError):
            Crystal.from_dict({"unit_cell": {"direct": np.eye(3).tolist()}})
        with self.assertRaises(ValueError):
            Crystal.from_json("{not json")
