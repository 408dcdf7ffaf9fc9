import logging
import unittest
import numpy as np
from cxpy.crystal import UnitCell

LOG = logging.getLogger(__name__)


class UnitCellTestCase(unittest.TestCase):
    def test_unit_cell_lattice(self):
        c = UnitCell.cubic(2.0)
        np.testing.assert_allclose(c.lattice, 2.0 * np.eye(3), atol=1e-8)
        np.testing.assert_allclose(c.reciprocal_lattice, 0.5 * np.eye(3), atol=1e-8)
        np.testing.assert_allclose(c.volume(), 8.0)

    def test_coordinate_transforms(self):
        c = UnitCell.from_lengths_and_angles([3.0, 4.0, 5.0], [80, 95, 110], unit="degrees")
        frac = np.random.rand(10, 3)
        np.testing.assert_allclose(c.to_fractional(c.to_cartesian(frac)), frac, atol=1e-10)
        np.testing.assert_allclose(c.to_cartesian(np.eye(3)), c.direct, atol=1e-10)

    def test_lengths_and_angles(self):
        c = UnitCell.from_lengths_and_angles([3.0, 4.0, 5.0], [80, 95, 110], unit="degrees")
        np.testing.assert_allclose(c.lengths, [3.0, 4.0, 5.0])
        np.testing.assert_allclose(c.parameters, [3.0, 4.0, 5.0, 80, 95, 110])
        self.assertEqual(c.cell_type, "triclinic")

    def test_cell_types(self):
        self.assertEqual(UnitCell.cubic(2.0).cell_type, "cubic")
        self.assertEqual(UnitCell.orthorhombic(3.0, 4.0, 5.0).cell_type, "orthorhombic")
        self.assertEqual(UnitCell.orthorhombic(3.0, 3.0, 5.0).cell_type, "tetragonal")
        hexagonal = UnitCell.from_lengths_and_angles(
            [3.0, 3.0, 5.0], [90, 90, 120], unit="degrees"
        )
        self.assertEqual(hexagonal.cell_type, "hexagonal")
        monoclinic = UnitCell.from_lengths_and_angles(
            [3.0, 4.0, 5.0], [90, 100, 90], unit="degrees"
        )
        self.assertEqual(monoclinic.cell_type, "monoclinic")

    def test_invalid(self):
        with self.assertRaises(ValueError):
            UnitCell(np.eye(2))
        with self.assertRaises(ValueError):
            UnitCell([[1, 0, 0], [2, 0, 0], [0, 0, 1]])
        with self.assertRaises(ValueError):
            UnitCell.orthorhombic(1.0, 2.0)

    def test_dict_round_trip(self):
        c = UnitCell.from_lengths_and_angles([3.0, 4.0, 5.0], [80, 95, 110], unit="degrees")
        self.assertEqual(UnitCell.from_dict(c.to_dict()), c)

    def test_repr(self):
        c = UnitCell.cubic(2.0)
        self.assertEqual(str(c), "<UnitCell: cubic (2.000,2.000,2.000,90.000,90.000,90.000)>")

    def test_mesh(self):
        mesh = UnitCell.cubic(2.0).to_mesh()
        self.assertEqual(len(mesh.vertices), 8)
        np.testing.assert_allclose(abs(mesh.volume), 8.0)
