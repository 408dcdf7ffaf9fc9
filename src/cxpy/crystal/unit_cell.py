import logging
import numpy as np

LOG = logging.getLogger(__name__)

_BOX_FACES = (
    (1, 3, 0), (4, 1, 0), (0, 3, 2), (2, 4, 0),
    (1, 7, 3), (5, 1, 4), (5, 7, 1), (3, 7, 2),
    (6, 4, 2), (2, 7, 6), (6, 5, 4), (7, 5, 6),
)


class UnitCell:
    """
    Storage class for the lattice vectors of a crystal i.e. its unit cell.

    Lattice vectors are stored as rows, so that fractional coordinates
    transform as `cart = frac @ direct` and back as `frac = cart @ inverse`.

    Attributes:
        direct (np.ndarray): (3, 3) matrix of lattice vectors (rows)
        inverse (np.ndarray): the inverse of `direct`
        lengths (np.ndarray): lattice side lengths (a, b, c) in Angstroms
        angles (np.ndarray): lattice angles (alpha, beta, gamma) in radians
    """

    def __init__(self, vectors):
        """
        Create a UnitCell from a row major (3, 3) matrix of lattice vectors.

        Args:
            vectors (array_like): (3, 3) array, vectors[0, :] is lattice
                vector A etc.

        Raises:
            ValueError: if the vectors are not (3, 3) or are degenerate
        """
        self.set_vectors(vectors)

    @property
    def lattice(self) -> np.ndarray:
        "alias for `direct`"
        return self.direct

    @property
    def reciprocal_lattice(self) -> np.ndarray:
        "Reciprocal lattice vectors as rows, without the 2 pi factor"
        return self.inverse.T

    def to_cartesian(self, coords: np.ndarray) -> np.ndarray:
        """
        Transform (N, 3) fractional coordinates to Cartesian coordinates.
        """
        return np.dot(coords, self.direct)

    def to_fractional(self, coords: np.ndarray) -> np.ndarray:
        """
        Transform (N, 3) Cartesian coordinates to fractional coordinates.
        """
        return np.dot(coords, self.inverse)

    def set_vectors(self, vectors):
        vectors = np.asarray(vectors, dtype=np.float64)
        if vectors.shape != (3, 3):
            raise ValueError(f"Lattice must be a 3x3 matrix, got shape {vectors.shape}")
        if abs(np.linalg.det(vectors)) < 1e-8:
            raise ValueError("Lattice vectors are linearly dependent")
        self.direct = vectors
        self.lengths = np.linalg.norm(vectors, axis=1)
        u = vectors / self.lengths[:, np.newaxis]
        self.angles = np.arccos(
            np.clip([np.vdot(u[1], u[2]), np.vdot(u[2], u[0]), np.vdot(u[0], u[1])], -1, 1)
        )
        self.inverse = np.linalg.inv(vectors)
        self._set_cell_type()

    def set_lengths_and_angles(self, lengths, angles):
        """
        Set the lattice vectors from lengths a, b, c and angles alpha,
        beta, gamma (radians), with lattice vector A along x and B in the
        xy plane.
        """
        a, b, c = lengths
        ca, cb, cg = np.cos(angles)
        sg = np.sin(angles[2])
        v = a * b * c * np.sqrt(1 - ca * ca - cb * cb - cg * cg + 2 * ca * cb * cg)
        self.set_vectors(
            (
                (a, 0, 0),
                (b * cg, b * sg, 0),
                (c * cb, c * (ca - cb * cg) / sg, v / (a * b * sg)),
            )
        )

    def _set_cell_type(self):
        close = np.isclose
        a, b, c = self.lengths
        right = np.allclose(self.angles, np.pi / 2)
        if right and close(a, b) and close(b, c):
            self.cell_type = "cubic"
        elif right and close(a, b):
            self.cell_type = "tetragonal"
        elif right:
            self.cell_type = "orthorhombic"
        elif (
            close(a, b)
            and np.allclose(self.angles[:2], np.pi / 2)
            and close(self.gamma, 2 * np.pi / 3)
        ):
            self.cell_type = "hexagonal"
        elif close(a, b) and close(b, c) and np.allclose(self.angles, self.alpha):
            self.cell_type = "rhombohedral"
        elif close(self.alpha, np.pi / 2) and close(self.gamma, np.pi / 2):
            self.cell_type = "monoclinic"
        else:
            self.cell_type = "triclinic"

    def volume(self) -> float:
        """The volume of the unit cell, in cubic Angstroms"""
        return float(abs(np.linalg.det(self.direct)))

    @property
    def a(self) -> float:
        return self.lengths[0]

    @property
    def b(self) -> float:
        return self.lengths[1]

    @property
    def c(self) -> float:
        return self.lengths[2]

    @property
    def alpha(self) -> float:
        "Angle between lattice vectors b and c"
        return self.angles[0]

    @property
    def beta(self) -> float:
        "Angle between lattice vectors a and c"
        return self.angles[1]

    @property
    def gamma(self) -> float:
        "Angle between lattice vectors a and b"
        return self.angles[2]

    @property
    def parameters(self) -> np.ndarray:
        "single vector of lattice side lengths and angles in degrees"
        return np.hstack((self.lengths, np.degrees(self.angles)))

    @classmethod
    def from_lengths_and_angles(cls, lengths, angles, unit="radians"):
        """
        Construct a new UnitCell from the provided lengths and angles.

        Args:
            lengths (array_like): Lattice side lengths (a, b, c) in Angstroms.
            angles (array_like): Lattice angles (alpha, beta, gamma) in
                provided units (default radians)
            unit (str, optional): 'radians' or 'degrees'

        Returns:
            UnitCell: A new unit cell object representing the provided lattice.
        """
        uc = cls(np.eye(3))
        if unit == "radians":
            if np.any(np.abs(angles) > np.pi):
                LOG.warning(
                    "Large angle in UnitCell.from_lengths_and_angles, "
                    "are you sure your angles are not in degrees?"
                )
            uc.set_lengths_and_angles(lengths, angles)
        else:
            uc.set_lengths_and_angles(lengths, np.radians(angles))
        return uc

    @classmethod
    def cubic(cls, length):
        return cls(np.eye(3) * length)

    @classmethod
    def orthorhombic(cls, *lengths):
        if len(lengths) != 3:
            raise ValueError("Require three lengths for an orthorhombic cell")
        return cls(np.diag(lengths))

    def to_mesh(self):
        "A closed trimesh box spanning this unit cell"
        from trimesh import Trimesh

        a, b, c = self.direct
        verts = np.array(
            [np.zeros(3), c, b, b + c, a, a + c, a + b, a + b + c]
        )
        return Trimesh(vertices=verts, faces=np.array(_BOX_FACES))

    def to_dict(self):
        return {"direct": self.direct.tolist()}

    @classmethod
    def from_dict(cls, d):
        return cls(d["direct"])

    def __eq__(self, other):
        if not isinstance(other, UnitCell):
            return NotImplemented
        return np.allclose(self.direct, other.direct)

    __hash__ = None

    def __repr__(self):
        return "<{}: {} ({})>".format(
            self.__class__.__name__,
            self.cell_type,
            ",".join("{:.3f}".format(x) for x in self.parameters),
        )
