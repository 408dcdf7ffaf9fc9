import logging
import unittest
from cxpy.core.index import (
    NO_ATOM,
    NO_FRAGMENT,
    AtomFlag,
    FragmentIndex,
    GenericAtomIndex,
)

LOG = logging.getLogger(__name__)


class GenericAtomIndexTestCase(unittest.TestCase):
    def test_ordering(self):
        indices = [
            GenericAtomIndex(1, 0, 0, 0),
            GenericAtomIndex(0, 1, 0, 0),
            GenericAtomIndex(0, 0, 0, 1),
            GenericAtomIndex(0, -1, 0, 0),
        ]
        self.assertEqual(
            sorted(indices),
            [
                GenericAtomIndex(0, -1, 0, 0),
                GenericAtomIndex(0, 0, 0, 1),
                GenericAtomIndex(0, 1, 0, 0),
                GenericAtomIndex(1, 0, 0, 0),
            ],
        )
        self.assertEqual(GenericAtomIndex(3), GenericAtomIndex(3, 0, 0, 0))
        self.assertEqual(len({GenericAtomIndex(2, 1, 0, 0), GenericAtomIndex(2, 1, 0, 0)}), 1)

    def test_translation(self):
        idx = GenericAtomIndex(2, 1, -1, 0)
        self.assertEqual(idx.offset, (1, -1, 0))
        self.assertEqual(idx.translated(-1, 1, 2), GenericAtomIndex(2, 0, 0, 2))

    def test_list_round_trip(self):
        idx = GenericAtomIndex(4, -2, 0, 3)
        self.assertEqual(idx.to_list(), [4, -2, 0, 3])
        self.assertEqual(GenericAtomIndex.from_list(idx.to_list()), idx)
        with self.assertRaises(ValueError):
            GenericAtomIndex.from_list([1, 2, 3])
        with self.assertRaises(ValueError):
            GenericAtomIndex.from_list([1, 2, 3, "x"])

    def test_non_integer_values(self):
        self.assertEqual(GenericAtomIndex.from_list([1, 2.0, 0, 0]), GenericAtomIndex(1, 2))
        for values in ([0, 0.7, 0, 0], [1, True, 0, 0], [0, 0, None, 0]):
            with self.assertRaises(ValueError):
                GenericAtomIndex.from_list(values)

    def test_sentinels(self):
        self.assertFalse(NO_ATOM.is_valid())
        self.assertFalse(NO_FRAGMENT.is_valid())
        self.assertEqual(FragmentIndex(), NO_FRAGMENT)
        self.assertTrue(FragmentIndex(0).is_valid())


class FragmentIndexTestCase(unittest.TestCase):
    def test_ordering(self):
        self.assertLess(FragmentIndex(0, 1, 0, 0), FragmentIndex(1, 0, 0, 0))
        self.assertLess(FragmentIndex(0, 0, 0, 0), FragmentIndex(0, 0, 0, 1))
        self.assertEqual(FragmentIndex(1).translated(0, 2, 0), FragmentIndex(1, 0, 2, 0))

    def test_list_round_trip(self):
        f = FragmentIndex(3, 0, -1, 1)
        self.assertEqual(FragmentIndex.from_list(f.to_list()), f)
        with self.assertRaises(ValueError):
            FragmentIndex.from_list([0, 0.5, 0, 0])


class AtomFlagTestCase(unittest.TestCase):
    def test_combination(self):
        flags = AtomFlag.Selected | AtomFlag.Contact
        self.assertTrue(flags & AtomFlag.Selected)
        self.assertFalse(flags & AtomFlag.Hidden)
        flags &= ~AtomFlag.Selected
        self.assertEqual(flags, AtomFlag.Contact)
        self.assertEqual(AtomFlag(flags.value), AtomFlag.Contact)
        self.assertFalse(AtomFlag.NoFlag)
