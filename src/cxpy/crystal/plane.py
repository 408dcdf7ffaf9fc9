import logging
import math
from dataclasses import dataclass
from typing import Tuple
import numpy as np
from cxpy.util.num import gcd3

LOG = logging.getLogger(__name__)

MINIMUM_VECTOR_LENGTH = 1e-3


class CrystalPlaneGenerator:
    """
    In-plane lattice basis, normal and spacing for the crystallographic
    plane with Miller indices (h, k, l).

    Attributes:
        hkl (Tuple[int, int, int]): the Miller indices
        interplanar_spacing (float): d = 1 / |h a* + k b* + l c*|
        normal_vector (np.ndarray): unit normal, along the reciprocal
            lattice vector of (h, k, l)
        a_vector (np.ndarray): shortest in-plane lattice vector
        b_vector (np.ndarray): shortest in-plane lattice vector not
            collinear with `a_vector`
        depth_vector (np.ndarray): the lattice repeat along the normal,
            gcd(h, k, l) * d
        angle (float): angle between `a_vector` and `b_vector` (radians)

    Raises:
        ValueError: for (0, 0, 0), or when no pair of non-collinear
            in-plane vectors can be found
    """

    def __init__(self, unit_cell, hkl):
        self.unit_cell = unit_cell
        self.hkl = tuple(int(x) for x in hkl)
        if self.hkl == (0, 0, 0):
            raise ValueError("Miller indices (0, 0, 0) do not define a plane")
        reciprocal = np.dot(self.hkl, unit_cell.reciprocal_lattice)
        norm = np.linalg.norm(reciprocal)
        self.interplanar_spacing = 1.0 / norm
        self.normal_vector = reciprocal / norm
        self._calculate_vectors()

    def _candidates(self):
        h, k, l = self.hkl
        a, b, c = self.unit_cell.direct
        candidates = []
        for (m, n), (va, vb) in (
            ((h, k), (a, b)),
            ((h, l), (a, c)),
            ((k, l), (b, c)),
        ):
            cd = math.gcd(m, n) or 1
            v = n / cd * va - m / cd * vb
            if np.vdot(v, v) > MINIMUM_VECTOR_LENGTH:
                candidates.append(v)
        combined = []
        for i, vi in enumerate(candidates):
            for vj in candidates[i + 1 :]:
                for v in (vi + vj, vi - vj):
                    if np.vdot(v, v) > MINIMUM_VECTOR_LENGTH:
                        combined.append(v)
        candidates.extend(combined)
        return sorted(candidates, key=lambda v: np.vdot(v, v))

    def _calculate_vectors(self):
        candidates = self._candidates()
        if not candidates:
            raise ValueError(f"No in-plane lattice vectors for {self.hkl}")
        self.a_vector = candidates[0]
        for v in candidates[1:]:
            cross = np.cross(self.a_vector, v)
            if np.vdot(cross, cross) > MINIMUM_VECTOR_LENGTH:
                self.b_vector = v
                break
        else:
            raise ValueError(f"No non-collinear in-plane lattice vectors for {self.hkl}")
        cos_angle = np.vdot(self.a_vector, self.b_vector) / (
            np.linalg.norm(self.a_vector) * np.linalg.norm(self.b_vector)
        )
        self.angle = float(np.arccos(np.clip(cos_angle, -1, 1)))
        self.depth_vector = (
            gcd3(*self.hkl) * self.interplanar_spacing * self.normal_vector
        )

    @property
    def depth(self) -> float:
        return float(np.linalg.norm(self.depth_vector))

    def origin(self, offset=0.0) -> np.ndarray:
        "Point on the plane `offset` Angstroms along the normal from the origin"
        return offset * self.normal_vector

    def surface_vectors(self) -> np.ndarray:
        "(3, 3) rows a, b and depth"
        return np.vstack((self.a_vector, self.b_vector, self.depth_vector))

    def __repr__(self):
        return "<CrystalPlaneGenerator ({} {} {}) d={:.4f}>".format(
            *self.hkl, self.interplanar_spacing
        )


@dataclass
class CrystalPlane:
    """
    An overlay plane described by Miller indices and an offset (in units
    of the interplanar spacing) along its normal.
    """

    hkl: Tuple[int, int, int] = (1, 0, 0)
    offset: float = 0.0
    color: Tuple[int, int, int, int] = (255, 0, 0, 255)

    def generator(self, unit_cell) -> CrystalPlaneGenerator:
        return CrystalPlaneGenerator(unit_cell, self.hkl)

    def vertices(self, unit_cell, bounds_a=(0.0, 1.0), bounds_b=(0.0, 1.0)) -> np.ndarray:
        """
        Corners of a patch of this plane spanning `bounds_a` and `bounds_b`
        in units of the in-plane lattice vectors.

        Returns:
            np.ndarray: (4, 3) Cartesian corners, counter clockwise about the normal
        """
        g = self.generator(unit_cell)
        origin = g.origin(self.offset * g.interplanar_spacing)
        (a0, a1), (b0, b1) = bounds_a, bounds_b
        corners = ((a0, b0), (a1, b0), (a1, b1), (a0, b1))
        verts = np.array([origin + x * g.a_vector + y * g.b_vector for x, y in corners])
        if np.vdot(np.cross(g.a_vector, g.b_vector), g.normal_vector) < 0:
            verts = verts[::-1]
        return verts

    def to_mesh(self, unit_cell, bounds_a=(0.0, 1.0), bounds_b=(0.0, 1.0)):
        "A two triangle trimesh patch of this plane"
        from trimesh import Trimesh

        verts = self.vertices(unit_cell, bounds_a=bounds_a, bounds_b=bounds_b)
        mesh = Trimesh(vertices=verts, faces=np.array([[0, 1, 2], [0, 2, 3]]), process=False)
        mesh.visual.face_colors = self.color
        return mesh

    def to_dict(self):
        return {"hkl": list(self.hkl), "offset": self.offset, "color": list(self.color)}

    @classmethod
    def from_dict(cls, d):
        return cls(
            hkl=tuple(int(x) for x in d["hkl"]),
            offset=float(d.get("offset", 0.0)),
            color=tuple(d.get("color", (255, 0, 0, 255))),
        )
