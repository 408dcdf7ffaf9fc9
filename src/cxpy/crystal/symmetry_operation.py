"""Crystallographic symmetry operations in fractional coordinates, and their codecs."""

import logging
import re
from fractions import Fraction
import numpy as np

LOG = logging.getLogger(__name__)

IDENTITY_INTEGER_CODE = 16484

_SYMM_TERM_REGEX = re.compile(r"([+-]?)(\d+(?:\.\d*)?(?:/\d+)?|\.\d+|[xyz])")

LATTICE_TYPE_TRANSLATIONS = {
    1: (),  # P
    2: ((1 / 2, 1 / 2, 1 / 2),),  # I
    3: ((2 / 3, 1 / 3, 1 / 3), (1 / 3, 2 / 3, 2 / 3)),  # R
    4: ((0, 1 / 2, 1 / 2), (1 / 2, 0, 1 / 2), (1 / 2, 1 / 2, 0)),  # F
    5: ((0, 1 / 2, 1 / 2),),  # A
    6: ((1 / 2, 0, 1 / 2),),  # B
    7: ((1 / 2, 1 / 2, 0),),  # C
}


def encode_symm_str(rotation, translation) -> str:
    """
    Encode a rotation matrix (of -1, 0, 1s) and a rational translation
    into string form e.g. '1/2-x,+z,1/3+y'.

    >>> encode_symm_str(((-1, 0, 0), (0, 0, 1), (0, 1, 0)), (0, 0.5, 1/3))
    '-x,1/2+z,1/3+y'
    """
    res = []
    for i in range(3):
        t = Fraction(float(translation[i])).limit_denominator(12)
        row = str(t) if t != 0 else ""
        for j, symbol in enumerate("xyz"):
            c = rotation[i][j]
            if c != 0:
                row += ("-" if c < 0 else "+") + symbol
        res.append(row)
    return ",".join(res)


def decode_symm_str(s: str):
    """
    Decode a symmetry operation in string form e.g. '1/2 + x, y, -z-0.25'.

    >>> encode_symm_str(*decode_symm_str("1/2 - x,y-1/3,z"))
    '1/2-x,2/3+y,+z'

    Args:
        s (str): the encoded symmetry operation

    Returns:
        Tuple[np.ndarray, np.ndarray]: (3, 3) rotation and (3,) translation

    Raises:
        ValueError: if the string does not have three comma separated rows
            of recognised terms
    """
    rows = s.lower().replace(" ", "").split(",")
    if len(rows) != 3:
        raise ValueError(f"Symmetry operation must have 3 components: {s}")
    rotation = np.zeros((3, 3), dtype=np.float64)
    translation = np.zeros(3, dtype=np.float64)
    for i, row in enumerate(rows):
        pos = 0
        for m in _SYMM_TERM_REGEX.finditer(row):
            if m.start() != pos:
                break
            pos = m.end()
            sign = -1 if m.group(1) == "-" else 1
            term = m.group(2)
            if term in "xyz":
                rotation[i, "xyz".index(term)] = sign
            else:
                translation[i] += sign * float(Fraction(term))
        if pos != len(row) or not row:
            raise ValueError(f"Could not parse symmetry operation component '{row}'")
    return rotation, translation % 1


def decode_symm_int(coded_integer: int):
    """
    Decode an integer encoded symmetry operation.

    Rotation elements (one of -1, 0, 1) are packed in base 3 and the
    translation (in twelfths) in base 12, giving codes below
    3^9 * 12^3 = 34012224.

    >>> encode_symm_str(*decode_symm_int(16484))
    '+x,+y,+z'
    """
    r = coded_integer % 19683
    t = coded_integer // 19683
    digits = [(r // 3 ** (8 - n)) % 3 - 1 for n in range(9)]
    rotation = np.array(digits, dtype=np.float64).reshape(3, 3)
    translation = np.array(
        [((t // 12 ** (2 - i)) % 12) / 12 for i in range(3)], dtype=np.float64
    )
    return rotation, translation


def encode_symm_int(rotation, translation) -> int:
    """
    Encode a rotation and translation as a packed integer, the inverse
    of `decode_symm_int`.

    >>> encode_symm_int(((1, 0, 0), (0, 1, 0), (0, 0, 1)), (0, 0, 0))
    16484
    """
    rot = (np.round(np.asarray(rotation)).astype(int) + 1).ravel()
    r = sum(int(d) * 3 ** (8 - n) for n, d in enumerate(rot))
    trans = np.round(np.asarray(translation) * 12).astype(int) % 12
    t = sum(int(d) * 12 ** (2 - i) for i, d in enumerate(trans))
    return r + t * 19683


class SymmetryOperation:
    """
    A crystallographic symmetry operation, a rotation followed by a
    translation, acting on fractional coordinates.

    Attributes:
        rotation (np.ndarray): (3, 3) rotation matrix
        translation (np.ndarray): (3,) translation vector, reduced into [0, 1)
    """

    def __init__(self, rotation, translation):
        self.rotation = np.asarray(rotation, dtype=np.float64)
        self.translation = np.asarray(translation, dtype=np.float64) % 1
        self._integer_code = None
        self._string_code = None

    @property
    def seitz_matrix(self) -> np.ndarray:
        s = np.eye(4, dtype=np.float64)
        s[:3, :3] = self.rotation
        s[:3, 3] = self.translation
        return s

    @property
    def integer_code(self) -> int:
        if self._integer_code is None:
            self._integer_code = encode_symm_int(self.rotation, self.translation)
        return self._integer_code

    @property
    def string_code(self) -> str:
        if self._string_code is None:
            self._string_code = encode_symm_str(self.rotation, self.translation)
        return self._string_code

    def inverted(self) -> "SymmetryOperation":
        "This operation combined with inversion through the origin"
        return SymmetryOperation(-self.rotation, -self.translation)

    def has_inversion(self) -> bool:
        return np.allclose(self.rotation, -np.eye(3))

    def __add__(self, value):
        return SymmetryOperation(self.rotation, self.translation + np.asarray(value))

    def __sub__(self, value):
        return SymmetryOperation(self.rotation, self.translation - np.asarray(value))

    def apply(self, coordinates: np.ndarray) -> np.ndarray:
        """
        Apply this operation to fractional coordinates.

        Args:
            coordinates (np.ndarray): (N, 3) fractional coordinates

        Returns:
            np.ndarray: (N, 3) transformed coordinates (not wrapped)
        """
        coordinates = np.atleast_2d(coordinates)
        return np.dot(coordinates, self.rotation.T) + self.translation

    def __call__(self, coordinates):
        return self.apply(coordinates)

    def __str__(self):
        return self.string_code

    def __lt__(self, other):
        return self.integer_code < other.integer_code

    def __eq__(self, other):
        if not isinstance(other, SymmetryOperation):
            return NotImplemented
        return self.integer_code == other.integer_code

    def __hash__(self):
        return int(self.integer_code)

    def __repr__(self):
        return "<{}: {}>".format(self.__class__.__name__, self)

    def is_identity(self) -> bool:
        return self.integer_code == IDENTITY_INTEGER_CODE

    @classmethod
    def from_integer_code(cls, code: int) -> "SymmetryOperation":
        s = cls(*decode_symm_int(code))
        s._integer_code = code
        return s

    @classmethod
    def from_string_code(cls, code: str) -> "SymmetryOperation":
        return cls(*decode_symm_str(code))

    @classmethod
    def identity(cls) -> "SymmetryOperation":
        return cls.from_integer_code(IDENTITY_INTEGER_CODE)


def expanded_symmetry_list(reduced_symops, lattice_type: int):
    """
    Expand a reduced list of symmetry operations with the centring
    translations of a lattice type, and inversion for centrosymmetric
    lattices, following SHELX LATT conventions:
    1 P, 2 I, 3 R (obverse, hexagonal axes), 4 F, 5 A, 6 B, 7 C. A positive
    lattice type is centrosymmetric.

    The identity is always the first operation of the result.

    Args:
        reduced_symops (List[SymmetryOperation]): generators
        lattice_type (int): SHELX lattice type

    Returns:
        List[SymmetryOperation]: the full list of distinct operations
    """
    translations = LATTICE_TYPE_TRANSLATIONS[abs(lattice_type)]
    identity = SymmetryOperation.identity()
    ops = [identity] + [x for x in reduced_symops if x != identity]

    full = []
    for symop in ops:
        full.append(symop)
        full.extend(symop + t for t in translations)
    if lattice_type > 0:
        full += [x.inverted() for x in full]

    result, seen = [], set()
    for symop in full:
        if symop.integer_code in seen:
            continue
        seen.add(symop.integer_code)
        result.append(symop)
    LOG.debug(
        "Expanded %d symops with LATT %d to %d", len(ops), lattice_type, len(result)
    )
    return result
