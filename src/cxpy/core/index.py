"""Value types addressing atoms and fragments in an infinite periodic structure."""

import enum
import numbers
from typing import NamedTuple, Tuple


def integer_value(value) -> int:
    "An integer from a serialized value, rejecting booleans and non-integral numbers"
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"Expected an integer, got {value!r}")
    if not isinstance(value, numbers.Integral) and not float(value).is_integer():
        raise ValueError(f"Expected an integer, got {value!r}")
    return int(value)


class GenericAtomIndex(NamedTuple):
    """A periodic image of one unit cell atom.

    `unique` identifies the atom in the unit cell (or the base atom of a
    slab), `(x, y, z)` is the integer cell translation of this image.
    Equality, hashing and ordering are lexicographic over all four fields.
    """

    unique: int
    x: int = 0
    y: int = 0
    z: int = 0

    @property
    def offset(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.z)

    def translated(self, h, k, l) -> "GenericAtomIndex":
        return GenericAtomIndex(self.unique, self.x + h, self.y + k, self.z + l)

    def is_valid(self) -> bool:
        return self.unique >= 0

    def to_list(self):
        return [self.unique, self.x, self.y, self.z]

    @classmethod
    def from_list(cls, values) -> "GenericAtomIndex":
        if len(values) != 4:
            raise ValueError(f"Expected 4 integers for an atom index, got {values}")
        return cls(*(integer_value(v) for v in values))

    def __repr__(self):
        return f"[{self.unique} {self.x} {self.y} {self.z}]"


class FragmentIndex(NamedTuple):
    """A periodic image `(h, k, l)` of unit cell fragment `u`.

    `u == -1` is the only "no fragment" value, the other fields are
    meaningless in that case.
    """

    u: int = -1
    h: int = 0
    k: int = 0
    l: int = 0

    def is_valid(self) -> bool:
        return self.u >= 0

    def translated(self, h, k, l) -> "FragmentIndex":
        return FragmentIndex(self.u, self.h + h, self.k + k, self.l + l)

    def to_list(self):
        return [self.u, self.h, self.k, self.l]

    @classmethod
    def from_list(cls, values) -> "FragmentIndex":
        if len(values) != 4:
            raise ValueError(f"Expected 4 integers for a fragment index, got {values}")
        return cls(*(integer_value(v) for v in values))

    def __repr__(self):
        return f"{{{self.u} {self.h} {self.k} {self.l}}}"


NO_FRAGMENT = FragmentIndex(-1, 0, 0, 0)
NO_ATOM = GenericAtomIndex(-1, 0, 0, 0)


class FragmentIndexPair(NamedTuple):
    a: FragmentIndex = NO_FRAGMENT
    b: FragmentIndex = NO_FRAGMENT


class CellIndex(NamedTuple):
    x: int
    y: int
    z: int


class AtomFlag(enum.Flag):
    "Per-row bit flags of a materialized atom"
    NoFlag = 0
    Selected = enum.auto()
    Contact = enum.auto()
    Hidden = enum.auto()
