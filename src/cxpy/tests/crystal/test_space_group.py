import logging
import unittest
import numpy as np
from cxpy.crystal import SpaceGroup, SymmetryOperation
from cxpy.crystal.symmetry_operation import (
    decode_symm_int,
    decode_symm_str,
    encode_symm_int,
    encode_symm_str,
    expanded_symmetry_list,
)

LOG = logging.getLogger(__name__)


class SymmetryOperationTestCase(unittest.TestCase):
    identity = SymmetryOperation.from_integer_code(16484)

    def test_identity(self):
        self.assertTrue(self.identity.is_identity())
        np.testing.assert_allclose(self.identity.seitz_matrix, np.eye(4))
        self.assertEqual(self.identity.string_code, "+x,+y,+z")

    def test_string_codes(self):
        inv = self.identity.inverted()
        self.assertEqual(inv.string_code, "-x,-y,-z")
        inv += (0.5, 0.0, 0.0)
        self.assertEqual(inv.string_code, "1/2-x,-y,-z")
        screw = SymmetryOperation.from_string_code("-x, 1/2+y, 1/2-z")
        self.assertEqual(screw.string_code, "-x,1/2+y,1/2-z")
        self.assertEqual(
            encode_symm_str(((-1, 0, 0), (0, 0, 1), (0, 1, 0)), (0, 0.5, 1 / 3)),
            "-x,1/2+z,1/3+y",
        )

    def test_integer_codes(self):
        for code in ("x,y,z", "-x,1/2+y,1/2-z", "1/4+y,3/4-x,z"):
            rot, trans = decode_symm_str(code)
            n = encode_symm_int(rot, trans)
            rot2, trans2 = decode_symm_int(n)
            np.testing.assert_allclose(rot, rot2)
            np.testing.assert_allclose(trans, trans2)

    def test_bad_strings(self):
        for code in ("x,y", "x,y,q", "x,,z", "x,y,z,x"):
            with self.assertRaises(ValueError):
                SymmetryOperation.from_string_code(code)

    def test_apply(self):
        screw = SymmetryOperation.from_string_code("-x,1/2+y,1/2-z")
        pts = np.array([[0.1, 0.2, 0.3]])
        np.testing.assert_allclose(screw(pts), [[-0.1, 0.7, 0.2]])

    def test_ordering(self):
        ops = [SymmetryOperation.from_string_code(s) for s in ("-x,-y,-z", "x,y,z")]
        self.assertEqual(sorted(ops)[0].integer_code, min(s.integer_code for s in ops))
        self.assertEqual(len(set(ops + ops)), 2)


class SpaceGroupTestCase(unittest.TestCase):
    def test_p1(self):
        sg = SpaceGroup.from_symbol("P1")
        self.assertEqual(len(sg), 1)
        self.assertTrue(sg.symmetry_operations[0].is_identity())
        self.assertFalse(sg.has_inversion())

    def test_p21c(self):
        sg = SpaceGroup.from_symbol("P 21/c")
        self.assertEqual(len(sg), 4)
        self.assertEqual(sg.international_tables_number, 14)
        self.assertTrue(sg.centrosymmetric)
        self.assertTrue(sg.symmetry_operations[0].is_identity())
        self.assertEqual(SpaceGroup.from_symbol("P2_1/c"), sg)

    def test_symbol_from_operations(self):
        sg = SpaceGroup.from_string_codes(["x,y,z", "-x,1/2+y,1/2-z"], expand_latt=1)
        self.assertEqual(sg.symbol, "P21/c")
        c2c = SpaceGroup.from_symbol("C2/c")
        self.assertEqual(len(c2c), 8)

    def test_unknown(self):
        with self.assertRaises(ValueError):
            SpaceGroup.from_symbol("Q99")
        with self.assertRaises(ValueError):
            SpaceGroup([SymmetryOperation.from_string_code("-x,-y,-z")])
        with self.assertRaises(ValueError):
            SpaceGroup.from_string_codes(["x,y,z"], expand_latt=9)

    def test_apply_all_symops(self):
        sg = SpaceGroup.from_symbol("P-1")
        codes, pos = sg.apply_all_symops(np.array([[0.1, 0.2, 0.3]]))
        self.assertEqual(len(pos), 2)
        self.assertEqual(codes[0], 16484)
        np.testing.assert_allclose(pos[1] % 1, [0.9, 0.8, 0.7])

    def test_expanded_list(self):
        ops = expanded_symmetry_list([SymmetryOperation.identity()], 2)
        self.assertEqual(len(ops), 4)
        self.assertTrue(ops[0].is_identity())

    def test_dict_round_trip(self):
        sg = SpaceGroup.from_symbol("Pbca")
        self.assertEqual(SpaceGroup.from_dict(sg.to_dict()), sg)
