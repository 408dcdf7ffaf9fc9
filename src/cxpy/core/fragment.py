"""Fragments (molecules) built from periodic atom images, and pairs of them."""

import logging
from collections import namedtuple
from dataclasses import dataclass
import numpy as np
from .element import Element, masses, chemical_formula
from .index import GenericAtomIndex, FragmentIndex, FragmentIndexPair, NO_FRAGMENT

LOG = logging.getLogger(__name__)

NearestAtomResult = namedtuple("NearestAtomResult", "idx_this idx_other distance")

FRAGMENT_EQUIVALENCE_TOLERANCE = 1e-8
DIMER_DISTANCE_TOLERANCE = 1e-7


def identity_transform():
    "(rotation, translation) pair for the identity"
    return np.eye(3), np.zeros(3)


def apply_transform(transform, positions) -> np.ndarray:
    "Apply a Cartesian (rotation, translation) to (N, 3) positions"
    rotation, translation = transform
    return np.dot(positions, rotation.T) + translation


@dataclass
class FragmentState:
    charge: int = 0
    multiplicity: int = 1


class Fragment:
    """
    A connected set of periodic atom images.

    The atom indices are always kept sorted and free of duplicates,
    `atomic_numbers` and `positions` are in the same order as
    `atom_indices`.

    Attributes:
        atom_indices (List[GenericAtomIndex]): member atoms
        atomic_numbers (np.ndarray): (N,) atomic numbers
        positions (np.ndarray): (N, 3) Cartesian positions
        index (FragmentIndex): identity of this fragment image
        asymmetric_fragment_index (FragmentIndex): the symmetry unique
            fragment this is an image of
        asymmetric_fragment_transform (Tuple[np.ndarray, np.ndarray]):
            Cartesian rotation and translation mapping the symmetry unique
            fragment onto this one
    """

    def __init__(
        self,
        atom_indices,
        atomic_numbers=None,
        positions=None,
        index=NO_FRAGMENT,
        **kwargs,
    ):
        pairs = {GenericAtomIndex(*idx): i for i, idx in enumerate(atom_indices)}
        order = sorted(pairs.keys())
        rows = [pairs[idx] for idx in order]
        self.atom_indices = order
        if atomic_numbers is None:
            atomic_numbers = np.zeros(len(rows), dtype=int)
        else:
            atomic_numbers = np.asarray(atomic_numbers, dtype=int)[rows]
        if positions is None:
            positions = np.zeros((len(rows), 3))
        else:
            positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)[rows]
        self.atomic_numbers = atomic_numbers
        self.positions = positions
        self.index = index
        self.asymmetric_fragment_index = kwargs.get(
            "asymmetric_fragment_index", NO_FRAGMENT
        )
        self.asymmetric_fragment_transform = kwargs.get(
            "asymmetric_fragment_transform", identity_transform()
        )
        asym = kwargs.get("asymmetric_unit_indices")
        self.asymmetric_unit_indices = (
            np.asarray(asym, dtype=int)[rows] if asym is not None else None
        )
        self.state = kwargs.get("state", FragmentState())
        self.name = kwargs.get("name", "Fragment?")

    def __len__(self):
        return len(self.atom_indices)

    @property
    def size(self) -> int:
        return len(self.atom_indices)

    def atomic_masses(self) -> np.ndarray:
        return masses(self.atomic_numbers)

    def centroid(self) -> np.ndarray:
        return np.mean(self.positions, axis=0)

    def center_of_mass(self) -> np.ndarray:
        m = self.atomic_masses()
        return np.sum(self.positions * (m / m.sum())[:, np.newaxis], axis=0)

    def interatomic_distances(self) -> np.ndarray:
        "Upper triangle of the distance matrix, row major"
        n = self.size
        i, j = np.triu_indices(n, k=1)
        return np.linalg.norm(self.positions[i] - self.positions[j], axis=1)

    def is_comparable_to(self, other: "Fragment") -> bool:
        if self.size != other.size:
            return False
        return bool(np.all(self.atomic_numbers == other.atomic_numbers))

    def is_equivalent_to(self, other: "Fragment") -> bool:
        if not self.is_comparable_to(other):
            return False
        return np.allclose(
            self.interatomic_distances(),
            other.interatomic_distances(),
            rtol=FRAGMENT_EQUIVALENCE_TOLERANCE,
            atol=FRAGMENT_EQUIVALENCE_TOLERANCE,
        )

    def nearest_atom(self, other: "Fragment") -> NearestAtomResult:
        """
        Closest pair of atoms between this fragment and another.

        Args:
            other (Fragment): the other fragment

        Returns:
            NearestAtomResult: index in this fragment, index in the other
            fragment and their separation. The distance is infinite if
            either fragment is empty.
        """
        if self.size == 0 or other.size == 0:
            return NearestAtomResult(0, 0, np.inf)
        d = np.linalg.norm(
            self.positions[:, np.newaxis, :] - other.positions[np.newaxis, :, :],
            axis=2,
        )
        i, j = np.unravel_index(np.argmin(d), d.shape)
        return NearestAtomResult(int(i), int(j), float(d[i, j]))

    def nearest_atom_to_point(self, point) -> NearestAtomResult:
        if self.size == 0:
            return NearestAtomResult(0, 0, np.inf)
        d = np.linalg.norm(self.positions - np.asarray(point), axis=1)
        i = int(np.argmin(d))
        return NearestAtomResult(i, 0, float(d[i]))

    def chemical_formula(self) -> str:
        return chemical_formula([Element[int(n)] for n in self.atomic_numbers])

    def to_dict(self):
        rot, trans = self.asymmetric_fragment_transform
        return {
            "atomIndices": [x.to_list() for x in self.atom_indices],
            "atomicNumbers": self.atomic_numbers.tolist(),
            "positions": self.positions.tolist(),
            "index": self.index.to_list(),
            "asymmetricFragmentIndex": self.asymmetric_fragment_index.to_list(),
            "asymmetricFragmentTransform": {
                "rotation": np.asarray(rot).tolist(),
                "translation": np.asarray(trans).tolist(),
            },
            "state": {
                "charge": self.state.charge,
                "multiplicity": self.state.multiplicity,
            },
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, d):
        transform = d.get("asymmetricFragmentTransform")
        if transform is not None:
            transform = (
                np.array(transform["rotation"]),
                np.array(transform["translation"]),
            )
        else:
            transform = identity_transform()
        return cls(
            [GenericAtomIndex.from_list(x) for x in d["atomIndices"]],
            atomic_numbers=d.get("atomicNumbers"),
            positions=d.get("positions"),
            index=FragmentIndex.from_list(d.get("index", NO_FRAGMENT)),
            asymmetric_fragment_index=FragmentIndex.from_list(
                d.get("asymmetricFragmentIndex", NO_FRAGMENT)
            ),
            asymmetric_fragment_transform=transform,
            state=FragmentState(**d.get("state", {})),
            name=d.get("name", "Fragment?"),
        )

    def __repr__(self):
        return f"<Fragment {self.index}: {self.chemical_formula()} n={self.size}>"


class FragmentDimer:
    """
    An ordered pair of fragments considered as one interaction.

    Attributes:
        a (Fragment): first fragment
        b (Fragment): second fragment
        nearest_atom_distance (float): closest interatomic separation
        centroid_distance (float): separation of centroids
        center_of_mass_distance (float): separation of centres of mass
        index (FragmentIndexPair): identities of `a` and `b`
    """

    def __init__(self, a: Fragment, b: Fragment, index=None):
        self.a = a
        self.b = b
        nearest = a.nearest_atom(b)
        self.nearest_atom_distance = nearest.distance
        self.nearest_atom_index_a = nearest.idx_this
        self.nearest_atom_index_b = nearest.idx_other
        self.centroid_distance = float(np.linalg.norm(a.centroid() - b.centroid()))
        self.center_of_mass_distance = float(
            np.linalg.norm(b.center_of_mass() - a.center_of_mass())
        )
        self.symmetry = "-"
        if index is None:
            index = FragmentIndexPair(a.index, b.index)
        self.index = index

    @property
    def name(self) -> str:
        return f"{self.a.name} : {self.b.name}"

    def distance_vector(self) -> np.ndarray:
        "(nearest, centroid, centre of mass) separations"
        return np.array(
            (
                self.nearest_atom_distance,
                self.centroid_distance,
                self.center_of_mass_distance,
            )
        )

    def same_asymmetric_fragment_indices(self, other: "FragmentDimer") -> bool:
        a1 = self.a.asymmetric_fragment_index.u
        b1 = self.b.asymmetric_fragment_index.u
        a2 = other.a.asymmetric_fragment_index.u
        b2 = other.b.asymmetric_fragment_index.u
        if min(a1, b1, a2, b2) < 0:
            return True
        return (a1 == a2 and b1 == b2) or (a1 == b2 and a2 == b1)

    def __eq__(self, other):
        if not isinstance(other, FragmentDimer):
            return NotImplemented
        if not self.same_asymmetric_fragment_indices(other):
            return False
        diffs = np.abs(self.distance_vector() - other.distance_vector())
        if np.any(diffs > DIMER_DISTANCE_TOLERANCE):
            return False
        return self.a.is_equivalent_to(other.a) and self.b.is_equivalent_to(other.b)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def to_dict(self):
        return {
            "a": self.a.to_dict(),
            "b": self.b.to_dict(),
            "index": [self.index.a.to_list(), self.index.b.to_list()],
            "nearestAtomDistance": self.nearest_atom_distance,
            "centroidDistance": self.centroid_distance,
            "centerOfMassDistance": self.center_of_mass_distance,
            "symmetry": self.symmetry,
        }

    def __repr__(self):
        return "<FragmentDimer n={:.3f},c={:.3f},m={:.3f}>".format(
            *self.distance_vector()
        )
