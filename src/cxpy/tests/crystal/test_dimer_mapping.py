import logging
import unittest
import numpy as np
from cxpy.crystal.dimer_mapping import (
    NO_SITE,
    DimerIndex,
    DimerMappingTable,
    SiteIndex,
    find_matching_site,
)
from .. import water_crystal

LOG = logging.getLogger(__name__)


class DimerIndexTestCase(unittest.TestCase):
    def test_ordering(self):
        a = DimerIndex(SiteIndex(0), SiteIndex(1, 1, 0, 0))
        b = DimerIndex(SiteIndex(0), SiteIndex(1, 0, 0, 1))
        self.assertLess(b, a)
        self.assertEqual(a.hkl_difference(), (1, 0, 0))

    def test_matching_site(self):
        positions = np.array([[0.1, 0.1, 0.1], [0.5, 0.5, 0.5]])
        self.assertEqual(find_matching_site(positions, (1.5, -0.5, 0.5)), SiteIndex(1, 1, -1, 0))
        self.assertEqual(find_matching_site(positions, (0.3, 0.3, 0.3)), NO_SITE)
        self.assertEqual(find_matching_site(np.empty((0, 3)), (0.0, 0.0, 0.0)), NO_SITE)


class DimerMappingTableTestCase(unittest.TestCase):
    def setUp(self):
        self.crystal = water_crystal()
        self.table = self.crystal.dimer_mapping_table(max_radius=6.0)

    def test_canonical(self):
        t = DimerMappingTable(np.zeros((2, 3)), consider_inversion=True)
        ab = DimerIndex(SiteIndex(1, 1, 1, 1), SiteIndex(0, 1, 1, 2))
        self.assertEqual(
            t.normalized_dimer_index(ab), DimerIndex(SiteIndex(1), SiteIndex(0, 0, 0, 1))
        )
        self.assertEqual(
            t.canonical_dimer_index(ab), DimerIndex(SiteIndex(0), SiteIndex(1, 0, 0, -1))
        )
        t.consider_inversion = False
        self.assertEqual(t.canonical_dimer_index(ab), t.normalized_dimer_index(ab))

    def test_unknown_dimer(self):
        d = DimerIndex(SiteIndex(0), SiteIndex(0, 50, 0, 0))
        self.assertFalse(self.table.have_dimer(d))
        self.assertEqual(self.table.symmetry_unique_dimer(d), d)
        self.assertEqual(self.table.symmetry_related_dimers(d), [d])

    def test_representatives(self):
        self.assertGreater(len(self.table.symmetry_unique_dimers), 0)
        self.assertGreaterEqual(
            len(self.table.unique_dimers), len(self.table.symmetry_unique_dimers)
        )
        for d in self.table.symmetry_unique_dimers:
            self.assertEqual(self.table.symmetry_unique_dimer(d), d)

    def test_related_dimers_have_equal_separation(self):
        def separation(d):
            a, b = self.table.dimer_positions(d)
            return np.linalg.norm(self.crystal.to_cartesian(b - a))

        for d in self.table.unique_dimers:
            rep = self.table.symmetry_unique_dimer(d)
            self.assertTrue(self.table.have_dimer(d))
            np.testing.assert_allclose(separation(d), separation(rep), atol=1e-6)

    def test_inversion(self):
        table = self.crystal.dimer_mapping_table(consider_inversion=False, max_radius=6.0)
        self.assertGreaterEqual(len(table.unique_dimers), len(self.table.unique_dimers))
        self.assertIs(self.crystal.dimer_mapping_table(max_radius=6.0), self.table)
