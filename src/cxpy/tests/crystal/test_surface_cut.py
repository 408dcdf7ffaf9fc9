import logging
import unittest
import numpy as np
from cxpy.crystal import (
    SurfaceCutOptions,
    generate_suggested_surface_cuts,
    generate_surface_cut,
    suggested_cuts,
)
from cxpy.structure import CrystalStructure
from .. import water_crystal

LOG = logging.getLogger(__name__)


class SurfaceCutTestCase(unittest.TestCase):
    def setUp(self):
        self.crystal = water_crystal()
        self.structure = CrystalStructure(self.crystal)

    def test_001_cut(self):
        slab = generate_surface_cut(self.structure, 0, 0, 1)
        self.assertEqual(slab.kind.structure_type, "surface_cut")
        self.assertEqual(slab.periodic_axes, 2)
        self.assertEqual(slab.number_of_atoms(), 12)
        self.assertEqual(len(slab.fragments), 4)
        self.assertEqual(len(slab.covalent_bonds), 8)
        for frag in slab.fragments.values():
            self.assertEqual(frag.chemical_formula(), "H2O")
        np.testing.assert_allclose(np.abs(slab.cell_vectors()), np.diag([7.0, 8.0, 9.0]))
        self.assertEqual(slab.kind.labels[:3], ["M0A0", "M0A1", "M0A2"])
        self.assertEqual(slab.kind.miller_plane, (0, 0, 1))

    def test_thickness(self):
        slab = generate_surface_cut(self.crystal, 0, 0, 1, thickness=18.0)
        self.assertEqual(slab.number_of_atoms(), 24)
        thin = generate_surface_cut(self.crystal, 0, 0, 1, thickness=1.0)
        self.assertEqual(thin.number_of_atoms(), 12)

    def test_molecules_preserved(self):
        for hkl in ((1, 0, 0), (0, 1, 1), (1, 1, 1)):
            slab = generate_surface_cut(self.crystal, *hkl, cut_offset=0.35)
            self.assertEqual(slab.number_of_atoms() % 3, 0)
            self.assertFalse(slab.has_incomplete_fragments())
            for frag in slab.fragments.values():
                self.assertEqual(frag.size, 3)

    def test_suggested_cuts(self):
        cuts = suggested_cuts(self.structure, 0, 0, 1)
        np.testing.assert_allclose(cuts, [0.2, 0.3, 0.7, 0.8], atol=1e-6)
        slabs = generate_suggested_surface_cuts(self.structure, 0, 0, 1)
        self.assertEqual(len(slabs), 4)
        for slab, cut in zip(slabs, cuts):
            self.assertEqual(slab.number_of_atoms(), 12)
            self.assertEqual(slab.kind.cut_offset, cut)

    def test_options(self):
        options = SurfaceCutOptions(miller_plane=(0, 0, 1), thickness=18.0)
        slab = options.generate(self.structure)
        self.assertEqual(slab.number_of_atoms(), 24)
        atoms = SurfaceCutOptions(miller_plane=(0, 0, 1), preserve_molecules=False)
        self.assertEqual(atoms.generate(self.structure).number_of_atoms(), 12)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            generate_surface_cut(self.structure, 0, 0, 0)
        slab = generate_surface_cut(self.structure, 0, 0, 1)
        with self.assertRaises(ValueError):
            generate_surface_cut(slab, 1, 0, 0)
