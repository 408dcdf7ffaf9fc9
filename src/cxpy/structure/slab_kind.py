"""
Behaviour of a materialized structure that is a 2-periodic surface slab.

A slab is defined by a set of base atoms (Cartesian positions in the
frame of the parent crystal) and the surface vectors: two in-plane
lattice vectors `a` and `b` and the depth vector along the plane normal.
Atom images are translated by `x a + y b` only, the `z` field of every
`GenericAtomIndex` is always zero.
"""

import logging
import numpy as np
from scipy.spatial import cKDTree as KDTree
from cxpy.core.element import Element, can_hydrogen_bond, chemical_formula, cov_radii, vdw_radii
from cxpy.core.fragment import Fragment, identity_transform
from cxpy.core.index import CellIndex, FragmentIndex, GenericAtomIndex
from cxpy.crystal.bond_graph import (
    COVALENT_TOLERANCE,
    VDW_TOLERANCE,
    Connection,
    PeriodicBondGraph,
    PeriodicEdge,
    covalent_only,
    filtered_connectivity_traversal,
)
from cxpy.util.num import cell_range

LOG = logging.getLogger(__name__)

MINIMUM_COVALENT_DISTANCE = 0.1
MINIMUM_CONTACT_DISTANCE = 2.0
SELF_IMAGE_DISTANCE = 1e-6


def _in_plane_reach(surface_vectors, radius):
    "Number of surface cells along a and b needed to cover `radius`"
    lengths = np.linalg.norm(surface_vectors[:2], axis=1)
    return tuple(int(np.ceil(radius / x)) + 1 for x in lengths)


def build_slab_connectivity(
    atomic_numbers,
    positions,
    surface_vectors,
    covalent_tolerance=COVALENT_TOLERANCE,
    vdw_tolerance=VDW_TOLERANCE,
) -> PeriodicBondGraph:
    """
    Periodic bond graph between the base atoms of a slab, with bonds
    to images shifted along the two surface vectors only.

    Covalent bonds require `0.1 < d < cov_a + cov_b + covalent_tolerance`,
    close contacts `2.0 < d < vdw_a + vdw_b + vdw_tolerance`.

    Args:
        atomic_numbers (np.ndarray): (N,) atomic numbers of the base atoms
        positions (np.ndarray): (N, 3) Cartesian positions of the base atoms
        surface_vectors (np.ndarray): (3, 3) rows a, b and depth

    Returns:
        PeriodicBondGraph: the connectivity, edges have `l == 0`
    """
    graph = PeriodicBondGraph()
    n = len(atomic_numbers)
    for i in range(n):
        graph.add_vertex(i)
    if n == 0:
        return graph
    cov = cov_radii(atomic_numbers)
    vdw = vdw_radii(atomic_numbers)
    max_dist = 2 * np.max(vdw) + vdw_tolerance
    mh, mk = _in_plane_reach(surface_vectors, max_dist)
    cells = cell_range((-mh, -mk, 0), (mh, mk, 0))
    shifts = cells[:, :2] @ surface_vectors[:2]
    images = (positions[np.newaxis, :, :] + shifts[:, np.newaxis, :]).reshape(-1, 3)
    dist = KDTree(positions).sparse_distance_matrix(KDTree(images), max_distance=max_dist)

    for (l, idx), d in sorted(dist.items()):
        r = idx % n
        if r < l:
            continue
        h, k, _ = (int(x) for x in cells[idx // n])
        if r == l and (h, k) <= (0, 0):
            continue
        if MINIMUM_COVALENT_DISTANCE < d < cov[l] + cov[r] + covalent_tolerance:
            conn = Connection.CovalentBond
        elif MINIMUM_CONTACT_DISTANCE < d < vdw[l] + vdw[r] + vdw_tolerance:
            conn = Connection.CloseContact
        else:
            continue
        edge = PeriodicEdge(float(d), int(l), int(r), int(l), int(r), h, k, 0, conn)
        graph.add_bond(edge)
        if conn == Connection.CloseContact and can_hydrogen_bond(
            atomic_numbers[l], atomic_numbers[r]
        ):
            graph.add_bond(edge._replace(connection=Connection.HydrogenBond))
    LOG.debug(
        "Slab connectivity: %d vertices, %d edges", graph.num_vertices(), graph.num_edges()
    )
    return graph


class SlabKind:
    """
    The 2-periodic structure kind.

    Attributes:
        atomic_numbers (np.ndarray): (N,) atomic numbers of the base atoms
        positions (np.ndarray): (N, 3) Cartesian positions of the base atoms
        labels (List[str]): labels of the base atoms
        surface_vectors (np.ndarray): (3, 3) rows a, b and depth
        miller_plane (Tuple[int, int, int]): the cut plane
        slab_thickness (float): requested thickness (Angstroms)
        cut_offset (float): cut position along the normal, in units of
            the depth vector
        termination (str): termination tag
    """

    structure_type = "surface_cut"
    periodic_axes = 2

    def __init__(
        self,
        atomic_numbers,
        positions,
        surface_vectors,
        labels=None,
        miller_plane=(0, 0, 1),
        slab_thickness=0.0,
        cut_offset=0.0,
        termination="auto",
    ):
        self.atomic_numbers = np.asarray(atomic_numbers, dtype=int).reshape(-1)
        self.positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if len(self.positions) != len(self.atomic_numbers):
            raise ValueError("Need one position per base atom")
        self.surface_vectors = np.asarray(surface_vectors, dtype=np.float64)
        if self.surface_vectors.shape != (3, 3):
            raise ValueError("Surface vectors must be a 3x3 matrix")
        if abs(np.linalg.det(self.surface_vectors)) < 1e-8:
            raise ValueError("Surface vectors are linearly dependent")
        if labels is None:
            labels = [
                f"{Element[int(n)].symbol}{i + 1}" for i, n in enumerate(self.atomic_numbers)
            ]
        self.labels = [str(x) for x in labels]
        if len(self.labels) != len(self.atomic_numbers):
            raise ValueError("Need one label per base atom")
        self.miller_plane = tuple(int(x) for x in miller_plane)
        self.slab_thickness = float(slab_thickness)
        self.cut_offset = float(cut_offset)
        self.termination = str(termination)
        self._inverse = np.linalg.inv(self.surface_vectors)
        self._graph = None
        self._fragments = None

    @property
    def n_base(self) -> int:
        return len(self.atomic_numbers)

    def connectivity(self):
        if self._graph is None:
            self._graph = build_slab_connectivity(
                self.atomic_numbers, self.positions, self.surface_vectors
            )
        return self._graph

    def is_valid_index(self, idx) -> bool:
        return 0 <= idx.unique < self.n_base and idx.z == 0

    def translation(self, h, k, l=0) -> np.ndarray:
        return h * self.surface_vectors[0] + k * self.surface_vectors[1]

    def to_fractional(self, cart) -> np.ndarray:
        return np.dot(cart, self._inverse)

    def to_cartesian(self, frac) -> np.ndarray:
        return np.dot(frac, self.surface_vectors)

    def cell_vectors(self) -> np.ndarray:
        return self.surface_vectors

    def cell_offsets(self, lower, upper) -> np.ndarray:
        return cell_range((lower[0], lower[1], 0), (upper[0], upper[1], 0))

    def cell_index(self, frac) -> CellIndex:
        return CellIndex(int(np.floor(frac[0])), int(np.floor(frac[1])), 0)

    def atom_data(self, indices):
        if len(indices) == 0:
            return np.empty(0, dtype=int), np.empty((0, 3)), []
        unique = np.array([idx.unique for idx in indices], dtype=int)
        xy = np.array([(idx.x, idx.y) for idx in indices], dtype=np.float64)
        pos = self.positions[unique] + xy @ self.surface_vectors[:2]
        labels = []
        for idx in indices:
            label = self.labels[idx.unique]
            if idx.x != 0 or idx.y != 0:
                label = f"{label}_{idx.x}_{idx.y}"
            labels.append(label)
        return self.atomic_numbers[unique], pos, labels

    def asymmetric_unit_indices(self, indices) -> np.ndarray:
        return np.array([idx.unique for idx in indices], dtype=int)

    def adps(self, indices):
        return None

    def unit_cell_fragments(self):
        """
        Covalently bonded molecules of the base atoms, each its own
        symmetry unique fragment.
        """
        if self._fragments is not None:
            return self._fragments
        graph = self.connectivity()
        predicate = covalent_only(graph)
        visited = np.zeros(self.n_base, dtype=bool)
        fragments = []
        for root in range(self.n_base):
            if visited[root]:
                continue
            members = []
            filtered_connectivity_traversal(
                graph,
                root,
                lambda v, p, e, hkl: members.append(GenericAtomIndex(v, hkl[0], hkl[1], 0)),
                predicate,
            )
            visited[[idx.unique for idx in members]] = True
            i = len(fragments)
            nums, pos, _ = self.atom_data(members)
            fragments.append(
                Fragment(
                    members,
                    atomic_numbers=nums,
                    positions=pos,
                    index=FragmentIndex(i),
                    asymmetric_fragment_index=FragmentIndex(i),
                    asymmetric_fragment_transform=identity_transform(),
                    asymmetric_unit_indices=[idx.unique for idx in members],
                    name=f"slab{i}",
                )
            )
        LOG.debug("%d molecules in slab cell", len(fragments))
        self._fragments = fragments
        return fragments

    def symmetry_unique_fragments(self):
        return self.unit_cell_fragments()

    def chemical_formula(self) -> str:
        return chemical_formula([Element[int(n)] for n in self.atomic_numbers])

    def atoms_within_radius(self, structure, centres, radius):
        """
        All base atom images (2D shifts only) within `radius` of any of
        `centres`, excluding the images lying on a centre.
        """
        if len(centres) == 0 or self.n_base == 0:
            return []
        _, centre_pos, _ = self.atom_data(list(centres))
        mh, mk = _in_plane_reach(self.surface_vectors, radius)
        reach = np.ceil(
            np.max(np.abs(self.to_fractional(centre_pos)[:, :2]), axis=0)
        ).astype(int)
        cells = cell_range(
            (-mh - reach[0], -mk - reach[1], 0), (mh + reach[0], mk + reach[1], 0)
        )
        shifts = cells[:, :2] @ self.surface_vectors[:2]
        images = (self.positions[np.newaxis, :, :] + shifts[:, np.newaxis, :]).reshape(-1, 3)
        tree = KDTree(images)
        result = set()
        for pos, found in zip(centre_pos, tree.query_ball_point(centre_pos, radius)):
            for j in found:
                if np.linalg.norm(images[j] - pos) <= SELF_IMAGE_DISTANCE:
                    continue
                h, k, _ = cells[j // self.n_base]
                result.add(GenericAtomIndex(j % self.n_base, int(h), int(k), 0))
        return sorted(result)

    def pack_indices(self, lower, upper):
        "Base atom images with a and b fractional coordinates in [lower, upper]"
        lower = np.asarray(lower, dtype=np.float64)[:2]
        upper = np.asarray(upper, dtype=np.float64)[:2]
        lo = np.floor(lower).astype(int)
        hi = np.ceil(upper).astype(int) - 1
        base_frac = self.to_fractional(self.positions)[:, :2]
        result = []
        for u, frac in enumerate(base_frac):
            for h, k, _ in self.cell_offsets(lo, hi).tolist():
                f = frac + (h, k)
                if np.all(f >= lower) and np.all(f <= upper):
                    result.append(GenericAtomIndex(u, h, k, 0))
        return result

    def reset_indices(self, structure):
        return [GenericAtomIndex(i) for i in range(self.n_base)]

    def matching_order(self, indices):
        return sorted(range(len(indices)), key=lambda i: indices[i])

    def symmetry_transform(self, from_indices, to_indices, tolerance=1e-6):
        "Slabs have no point symmetry, only a pure translation is tried"
        _, from_pos, _ = self.atom_data(from_indices)
        _, to_pos, _ = self.atom_data(to_indices)
        if from_pos.shape != to_pos.shape or len(from_pos) == 0:
            return False, None
        shift = np.mean(to_pos, axis=0) - np.mean(from_pos, axis=0)
        diff = from_pos + shift - to_pos
        if np.sqrt(np.vdot(diff, diff) / len(diff)) < tolerance:
            return True, (np.eye(3), shift)
        return False, None

    def transform_indices(self, structure, indices, rotation, translation):
        if len(indices) == 0:
            return []
        _, pos, _ = self.atom_data(indices)
        pos = pos @ np.asarray(rotation).T + np.asarray(translation)
        frac = self.to_fractional(pos)
        base_frac = self.to_fractional(self.positions)
        diff = frac[:, np.newaxis, :] - base_frac[np.newaxis, :, :]
        offsets = np.round(diff[..., :2])
        residual = diff.copy()
        residual[..., :2] -= offsets
        d2 = np.sum(residual ** 2, axis=-1)
        nearest = np.argmin(d2, axis=1)
        return [
            GenericAtomIndex(int(j), int(offsets[i, j, 0]), int(offsets[i, j, 1]), 0)
            for i, j in enumerate(nearest)
        ]

    def to_dict(self):
        return {
            "slab_thickness": self.slab_thickness,
            "cut_offset": self.cut_offset,
            "miller_plane": list(self.miller_plane),
            "termination": self.termination,
            "surface_vectors": self.surface_vectors.tolist(),
            "base_atoms": {
                "atomicNumbers": self.atomic_numbers.tolist(),
                "positions": self.positions.tolist(),
                "labels": list(self.labels),
            },
        }

    @classmethod
    def from_dict(cls, d):
        base = d["base_atoms"]
        miller_plane = d.get("miller_plane", (0, 0, 1))
        if len(miller_plane) != 3:
            raise ValueError(f"Invalid Miller plane {miller_plane}")
        return cls(
            base["atomicNumbers"],
            base["positions"],
            d["surface_vectors"],
            labels=base.get("labels"),
            miller_plane=miller_plane,
            slab_thickness=d.get("slab_thickness", 0.0),
            cut_offset=d.get("cut_offset", 0.0),
            termination=d.get("termination", "auto"),
        )

    def parse_state(self, d):
        "A new slab kind built from `d`, raising ValueError if it is unusable"
        if "base_atoms" not in d:
            raise ValueError("Surface cut summary has no base atoms")
        return self.from_dict(d)

    def __repr__(self):
        return "<SlabKind ({} {} {}) {} base atoms>".format(*self.miller_plane, self.n_base)
