import logging
import unittest
import numpy as np
from cxpy.crystal import CrystalPlane, CrystalPlaneGenerator, UnitCell

LOG = logging.getLogger(__name__)


class CrystalPlaneGeneratorTestCase(unittest.TestCase):
    def test_cubic_100(self):
        uc = UnitCell.cubic(10.0)
        g = CrystalPlaneGenerator(uc, (1, 0, 0))
        np.testing.assert_allclose(g.interplanar_spacing, 10.0)
        np.testing.assert_allclose(g.normal_vector, [1, 0, 0])
        np.testing.assert_allclose(np.linalg.norm(g.a_vector), 10.0)
        np.testing.assert_allclose(np.linalg.norm(g.b_vector), 10.0)
        np.testing.assert_allclose(g.depth, 10.0)
        np.testing.assert_allclose(g.angle, np.pi / 2)

    def test_spacing_and_depth(self):
        uc = UnitCell.cubic(10.0)
        g = CrystalPlaneGenerator(uc, (2, 0, 0))
        np.testing.assert_allclose(g.interplanar_spacing, 5.0)
        np.testing.assert_allclose(g.depth, 10.0)
        g = CrystalPlaneGenerator(uc, (1, 1, 0))
        np.testing.assert_allclose(g.interplanar_spacing, 10.0 / np.sqrt(2))

    def test_vectors_in_plane(self):
        uc = UnitCell.from_lengths_and_angles([5.0, 6.0, 7.0], [80, 95, 105], unit="degrees")
        for hkl in ((1, 0, 0), (0, 1, 1), (1, 1, 1), (1, -2, 1), (2, 1, 0)):
            g = CrystalPlaneGenerator(uc, hkl)
            np.testing.assert_allclose(np.vdot(g.a_vector, g.normal_vector), 0.0, atol=1e-8)
            np.testing.assert_allclose(np.vdot(g.b_vector, g.normal_vector), 0.0, atol=1e-8)
            self.assertGreater(np.linalg.norm(np.cross(g.a_vector, g.b_vector)), 1e-3)
            # in-plane vectors are lattice vectors
            frac = uc.to_fractional(np.vstack((g.a_vector, g.b_vector)))
            np.testing.assert_allclose(frac, np.round(frac), atol=1e-8)
            self.assertEqual(g.surface_vectors().shape, (3, 3))

    def test_degenerate(self):
        with self.assertRaises(ValueError):
            CrystalPlaneGenerator(UnitCell.cubic(10.0), (0, 0, 0))

    def test_origin(self):
        g = CrystalPlaneGenerator(UnitCell.cubic(10.0), (0, 0, 1))
        np.testing.assert_allclose(g.origin(2.0), [0, 0, 2.0])


class CrystalPlaneTestCase(unittest.TestCase):
    def test_vertices(self):
        uc = UnitCell.cubic(10.0)
        plane = CrystalPlane(hkl=(0, 0, 1), offset=0.5)
        verts = plane.vertices(uc)
        self.assertEqual(verts.shape, (4, 3))
        np.testing.assert_allclose(verts[:, 2], 5.0)
        normal = np.cross(verts[1] - verts[0], verts[2] - verts[0])
        self.assertGreater(np.vdot(normal, [0, 0, 1]), 0)

    def test_mesh(self):
        mesh = CrystalPlane(hkl=(1, 1, 0)).to_mesh(UnitCell.cubic(10.0))
        self.assertEqual(len(mesh.faces), 2)
        np.testing.assert_allclose(mesh.area, 100 * np.sqrt(2), rtol=1e-6)

    def test_dict_round_trip(self):
        plane = CrystalPlane(hkl=(1, 2, 3), offset=0.25, color=(0, 255, 0, 128))
        self.assertEqual(CrystalPlane.from_dict(plane.to_dict()), plane)
