"""
Cutting a 2-periodic slab out of a crystal along a crystallographic plane.
"""

import logging
from dataclasses import dataclass
from typing import Tuple
import numpy as np
from cxpy.util.num import cell_range
from .plane import CrystalPlaneGenerator

LOG = logging.getLogger(__name__)

SUGGESTED_CUT_PRECISION = 6


@dataclass
class SurfaceCutOptions:
    """
    Attributes:
        miller_plane (Tuple[int, int, int]): the cut plane
        cut_offset (float): position of the cut along the plane normal,
            in units of the depth vector
        thickness (float): slab thickness (Angstroms), at least one
            depth vector is always included
        termination (str): termination tag stored on the slab
        preserve_molecules (bool): select whole molecules by their
            centroid, rather than individual atoms
    """

    miller_plane: Tuple[int, int, int] = (1, 0, 0)
    cut_offset: float = 0.0
    thickness: float = 0.0
    termination: str = "auto"
    preserve_molecules: bool = True

    def generate(self, crystal_structure):
        return generate_surface_cut(
            crystal_structure,
            *self.miller_plane,
            cut_offset=self.cut_offset,
            thickness=self.thickness,
            termination=self.termination,
            preserve_molecules=self.preserve_molecules,
        )


def _crystal(crystal_structure):
    "The Crystal behind a crystal PeriodicStructure, or the argument itself"
    kind = getattr(crystal_structure, "kind", None)
    if kind is None:
        return crystal_structure
    crystal = getattr(kind, "crystal", None)
    if crystal is None:
        raise ValueError(
            f"Surface cuts need a crystal structure, not a {kind.structure_type}"
        )
    return crystal


def _plane_generator(crystal, hkl):
    try:
        return CrystalPlaneGenerator(crystal.unit_cell, hkl)
    except ValueError as e:
        LOG.error("Cannot cut surface (%d %d %d): %s", *hkl, e)
        raise


def _region_cells(crystal, surface_vectors, s_lower, s_upper):
    "Lattice translations covering the box [s_lower, s_upper] in surface coordinates"
    corners = cell_range((0, 0, 0), (1, 1, 1)).astype(np.float64)
    corners = s_lower + corners * (np.asarray(s_upper) - s_lower)
    frac = crystal.to_fractional(corners @ surface_vectors)
    lower = np.floor(frac.min(axis=0)).astype(int) - 1
    upper = np.ceil(frac.max(axis=0)).astype(int) + 1
    return cell_range(lower, upper)


def generate_surface_cut(
    crystal_structure,
    h,
    k,
    l,
    cut_offset=0.0,
    thickness=0.0,
    termination="auto",
    preserve_molecules=True,
):
    """
    Build a slab bounded by the plane (h k l) at `cut_offset`, periodic
    in the plane and `max(1, thickness / depth)` depth vectors deep.

    Whole unit cell molecules are kept when their centroid lies inside
    the slab, so no molecule is broken at the cut. With
    `preserve_molecules=False` atoms are selected individually instead.

    Args:
        crystal_structure (PeriodicStructure | Crystal): the crystal to cut
        h, k, l (int): Miller indices of the cut plane
        cut_offset (float, optional): cut position in units of the depth vector
        thickness (float, optional): slab thickness (Angstroms)
        termination (str, optional): termination tag stored on the slab
        preserve_molecules (bool, optional): keep molecules whole

    Returns:
        PeriodicStructure: the slab

    Raises:
        ValueError: if the plane is degenerate or the structure is not a crystal
    """
    from cxpy.structure import SlabStructure

    crystal = _crystal(crystal_structure)
    hkl = (int(h), int(k), int(l))
    generator = _plane_generator(crystal, hkl)
    surface_vectors = generator.surface_vectors()
    to_surface = np.linalg.inv(surface_vectors)
    depth_scale = max(1.0, thickness / generator.depth)
    s_lower = np.array((0.0, 0.0, cut_offset))
    s_upper = np.array((1.0, 1.0, cut_offset + depth_scale))
    cells = _region_cells(crystal, surface_vectors, s_lower, s_upper)
    shifts = crystal.to_cartesian(cells)

    def inside(points):
        s = points @ to_surface
        return np.all(s >= s_lower, axis=-1) & np.all(s < s_upper, axis=-1)

    atomic_numbers = []
    positions = []
    labels = []
    if preserve_molecules:
        groups = [(m.atomic_numbers, m.positions) for m in crystal.unit_cell_molecules()]
    else:
        uc = crystal.unit_cell_atoms()
        groups = [
            (uc["atomic_numbers"][i : i + 1], crystal.to_cartesian(uc["frac_pos"][i : i + 1]))
            for i in range(len(uc["atomic_numbers"]))
        ]
    n_mol = 0
    for nums, pos in groups:
        centroid = np.mean(pos, axis=0)
        for shift in shifts[inside(centroid + shifts)]:
            atomic_numbers.extend(nums.tolist())
            positions.append(pos + shift)
            labels.extend(f"M{n_mol}A{i}" for i in range(len(nums)))
            n_mol += 1
    if positions:
        positions = np.vstack(positions)
    else:
        LOG.warning("Surface cut (%d %d %d) at %.3f contains no atoms", *hkl, cut_offset)
        positions = np.empty((0, 3))
    LOG.debug(
        "Surface cut (%d %d %d) offset=%.3f depth=%.3f: %d groups, %d atoms",
        *hkl,
        cut_offset,
        depth_scale * generator.depth,
        n_mol,
        len(atomic_numbers),
    )
    return SlabStructure(
        np.array(atomic_numbers, dtype=int),
        positions,
        surface_vectors,
        labels=labels,
        miller_plane=hkl,
        slab_thickness=thickness,
        cut_offset=cut_offset,
        termination=termination,
        name="surface ({} {} {})".format(*hkl),
    )


def suggested_cuts(crystal_structure, h, k, l):
    """
    Distinct fractional depths (in [0, 1), units of the depth vector) of
    the unit cell atoms along the normal of (h k l), i.e. the planes at
    which a cut starts at an atomic layer.

    Returns:
        List[float]: sorted cut offsets
    """
    crystal = _crystal(crystal_structure)
    generator = _plane_generator(crystal, (int(h), int(k), int(l)))
    pos = crystal.to_cartesian(crystal.unit_cell_atoms()["frac_pos"])
    depths = np.mod(pos @ generator.normal_vector / generator.depth, 1.0)
    depths = np.mod(np.round(depths, SUGGESTED_CUT_PRECISION), 1.0)
    return sorted(set(float(x) for x in depths))


def generate_suggested_surface_cuts(crystal_structure, h, k, l, thickness=0.0):
    "One surface cut for each of `suggested_cuts`"
    return [
        generate_surface_cut(crystal_structure, h, k, l, cut_offset=offset, thickness=thickness)
        for offset in suggested_cuts(crystal_structure, h, k, l)
    ]
