import logging
import numpy as np
from .symmetry_operation import SymmetryOperation, expanded_symmetry_list

LOG = logging.getLogger(__name__)

# symbol: (international tables number, SHELX LATT, generators)
_BUILTIN_SPACE_GROUPS = {
    "P1": (1, -1, ("x,y,z",)),
    "P-1": (2, 1, ("x,y,z",)),
    "P21/c": (14, 1, ("x,y,z", "-x,1/2+y,1/2-z")),
    "P212121": (
        19,
        -1,
        ("x,y,z", "1/2-x,-y,1/2+z", "-x,1/2+y,1/2-z", "1/2+x,1/2-y,-z"),
    ),
    "C2/c": (15, 7, ("x,y,z", "-x,y,1/2-z")),
    "Pbca": (
        61,
        1,
        ("x,y,z", "1/2-x,-y,1/2+z", "-x,1/2+y,1/2-z", "1/2+x,1/2-y,-z"),
    ),
}

_SYMBOL_ALIASES = {
    "P2_1/c": "P21/c",
    "P12_1/c1": "P21/c",
    "P2_12_12_1": "P212121",
    "C12/c1": "C2/c",
}


def _builtin_symops(symbol):
    _, latt, generators = _BUILTIN_SPACE_GROUPS[symbol]
    return expanded_symmetry_list(
        [SymmetryOperation.from_string_code(s) for s in generators], latt
    )


_BUILTIN_CODES = {
    tuple(sorted(s.integer_code for s in _builtin_symops(k))): k
    for k in _BUILTIN_SPACE_GROUPS
}


class SpaceGroup:
    """
    Represent a crystallographic space group as the list of its
    symmetry operations in fractional coordinates.

    The order of `symmetry_operations` is significant: unit cell atoms are
    generated and symmetry searches are performed in this order, and the
    identity is always first.

    Attributes:
        symbol (str): the short space group symbol, or '' if not known
        international_tables_number (int): 1-230, or 0 if not known
        symmetry_operations (List[SymmetryOperation]): the operations
            making up this space group
    """

    def __init__(self, symmetry_operations, symbol=None):
        symops = list(symmetry_operations)
        for i, s in enumerate(symops):
            if s.is_identity():
                break
        else:
            raise ValueError("Space group must include the identity operation")
        self.symmetry_operations = [symops[i]] + symops[:i] + symops[i + 1 :]
        codes = tuple(sorted(s.integer_code for s in self.symmetry_operations))
        if symbol is None:
            symbol = _BUILTIN_CODES.get(codes, "")
        self.symbol = symbol
        entry = _BUILTIN_SPACE_GROUPS.get(symbol)
        self.international_tables_number = entry[0] if entry else 0

    @property
    def symops(self):
        "alias for `self.symmetry_operations`"
        return self.symmetry_operations

    @property
    def centrosymmetric(self) -> bool:
        return self.has_inversion()

    def has_inversion(self) -> bool:
        "true if any operation includes the inversion -1 as its rotation"
        return any(s.has_inversion() for s in self.symmetry_operations)

    def __len__(self):
        return len(self.symmetry_operations)

    def apply_all_symops(self, coordinates: np.ndarray):
        """
        For a given set of coordinates, apply all symmetry
        operations in this space group, yielding a set subject
        to only translational symmetry (i.e. a unit cell).
        Assumes the input coordinates are fractional.

        Args:
            coordinates (np.ndarray): (N, 3) set of fractional coordinates

        Returns:
            Tuple[np.ndarray, np.ndarray]: a (MxN) array of generator symop integers
                and an (MxN, 3) array of coordinates where M is the number of symmetry
                operations in this space group. The identity images come first.
        """
        coordinates = np.asarray(coordinates).reshape(-1, 3)
        nsites = len(coordinates)
        transformed = np.empty((nsites * len(self), 3))
        generator_symop = np.empty(nsites * len(self), dtype=np.int64)
        for i, s in enumerate(self.symmetry_operations):
            transformed[i * nsites : (i + 1) * nsites] = s(coordinates)
            generator_symop[i * nsites : (i + 1) * nsites] = s.integer_code
        return generator_symop, transformed

    def __repr__(self):
        return "<{} {}: {} symops>".format(
            self.__class__.__name__, self.symbol or "?", len(self)
        )

    def __eq__(self, other):
        if not isinstance(other, SpaceGroup):
            return NotImplemented
        return sorted(self.symmetry_operations) == sorted(other.symmetry_operations)

    def __hash__(self):
        return hash(tuple(sorted(s.integer_code for s in self.symmetry_operations)))

    @classmethod
    def from_symbol(cls, symbol):
        """
        Construct one of the built in space groups from its short symbol.

        Args:
            symbol (str): e.g. 'P21/c', 'P 21/c' or 'P2_1/c'

        Raises:
            ValueError: if the symbol is not in the built in table
        """
        symbol = symbol.replace(" ", "")
        symbol = _SYMBOL_ALIASES.get(symbol, symbol)
        if symbol not in _BUILTIN_SPACE_GROUPS:
            raise ValueError(f"Could not find matching space group for '{symbol}'")
        return cls(_builtin_symops(symbol), symbol=symbol)

    @classmethod
    def from_symmetry_operations(cls, symops, expand_latt=None):
        """
        Create a space group from a full or reduced list of symmetry operations.

        Args:
            symops (List[SymmetryOperation]): the symmetry operations
            expand_latt (int, optional): treat `symops` as generators and
                expand them with this SHELX LATT number

        Returns:
            SpaceGroup: the resulting space group
        """
        if expand_latt is not None:
            if not -8 < expand_latt < 8 or expand_latt == 0:
                raise ValueError("expand_latt must be between [-7, 7] and non-zero")
            symops = expanded_symmetry_list(symops, expand_latt)
        return cls(symops)

    @classmethod
    def from_string_codes(cls, codes, **kwargs):
        return cls.from_symmetry_operations(
            [SymmetryOperation.from_string_code(s) for s in codes], **kwargs
        )

    def to_dict(self):
        return {
            "symbol": self.symbol,
            "symops": [s.integer_code for s in self.symmetry_operations],
        }

    @classmethod
    def from_dict(cls, d):
        symops = [SymmetryOperation.from_integer_code(int(c)) for c in d["symops"]]
        return cls(symops, symbol=d.get("symbol") or None)
