"""
Symmetry reduction of molecule pairs (dimers) in a crystal.

A dimer is identified by two sites, each a unit cell molecule plus a
cell offset. The mapping table records, for every tabulated dimer, the
canonical form under lattice translation (and optionally exchange of
the two molecules), and which symmetry unique dimer it is an image of.
"""

import logging
from typing import NamedTuple
import numpy as np

LOG = logging.getLogger(__name__)

SITE_MATCH_TOLERANCE = 1e-5


class SiteIndex(NamedTuple):
    offset: int
    h: int = 0
    k: int = 0
    l: int = 0

    @property
    def hkl(self):
        return np.array((self.h, self.k, self.l), dtype=int)

    def is_valid(self) -> bool:
        return self.offset >= 0

    def translated(self, h, k, l) -> "SiteIndex":
        return SiteIndex(self.offset, self.h + h, self.k + k, self.l + l)

    def __repr__(self):
        return f"[{self.offset} {self.h} {self.k} {self.l}]"


NO_SITE = SiteIndex(-1, 0, 0, 0)


class DimerIndex(NamedTuple):
    a: SiteIndex
    b: SiteIndex

    def hkl_difference(self):
        return (self.b.h - self.a.h, self.b.k - self.a.k, self.b.l - self.a.l)

    def is_valid(self) -> bool:
        return self.a.is_valid() and self.b.is_valid()

    def __repr__(self):
        return f"DimerIndex {self.a!r} -> {self.b!r}"


def find_matching_site(positions, point, tolerance=SITE_MATCH_TOLERANCE) -> SiteIndex:
    """
    The site in `positions` (fractional) that `point` is a lattice
    translation of, or `NO_SITE` if none is within tolerance.
    """
    if len(positions) == 0:
        return NO_SITE
    diff = np.asarray(point) - positions
    offsets = np.round(diff)
    d2 = np.sum((diff - offsets) ** 2, axis=1)
    i = int(np.argmin(d2))
    if d2[i] < tolerance * tolerance:
        return SiteIndex(i, *(int(x) for x in offsets[i]))
    return NO_SITE


class DimerMappingTable:
    """
    Map dimers onto their symmetry unique representatives.

    Attributes:
        centroids (np.ndarray): (M, 3) fractional centroids of the sites
            (unit cell molecules)
        consider_inversion (bool): whether AB and BA are the same dimer
        unique_dimers (List[DimerIndex]): every canonical dimer seen, in
            discovery order
        symmetry_unique_dimers (List[DimerIndex]): the representatives
    """

    def __init__(self, centroids, consider_inversion=True):
        self.centroids = np.asarray(centroids, dtype=np.float64).reshape(-1, 3)
        self.consider_inversion = consider_inversion
        self.unique_dimers = []
        self.symmetry_unique_dimers = []
        self._unique_dimer_map = {}
        self._symmetry_unique_dimer_map = {}
        self._symmetry_related_dimers = {}

    @staticmethod
    def normalized_dimer_index(idx: DimerIndex) -> DimerIndex:
        "Translate the dimer so that site a is in the reference cell"
        a, b = idx
        return DimerIndex(SiteIndex(a.offset), b.translated(-a.h, -a.k, -a.l))

    def canonical_dimer_index(self, idx: DimerIndex) -> DimerIndex:
        normalized = self.normalized_dimer_index(idx)
        if self.consider_inversion:
            return min(normalized, self.normalized_dimer_index(DimerIndex(idx.b, idx.a)))
        return normalized

    def dimer_positions(self, idx: DimerIndex):
        "Fractional positions of the two sites of a dimer"
        a, b = idx
        return self.centroids[a.offset] + a.hkl, self.centroids[b.offset] + b.hkl

    def dimer_index(self, a_pos, b_pos) -> DimerIndex:
        "The dimer with sites at the given fractional positions"
        return DimerIndex(
            find_matching_site(self.centroids, a_pos),
            find_matching_site(self.centroids, b_pos),
        )

    def add_dimer(self, ab: DimerIndex, symmetry_operations):
        """
        Register a dimer and, if it is not yet known, all of its images
        under the given symmetry operations as related to it.
        """
        canonical_ab = self.canonical_dimer_index(ab)
        if canonical_ab not in self._unique_dimer_map:
            self.unique_dimers.append(canonical_ab)
            self._unique_dimer_map[canonical_ab] = canonical_ab
            self._symmetry_unique_dimer_map[canonical_ab] = canonical_ab
            a_pos, b_pos = self.dimer_positions(ab)
            related = []
            for symop in symmetry_operations:
                image = self.dimer_index(symop(a_pos)[0], symop(b_pos)[0])
                if not image.is_valid():
                    LOG.warning("No site matches the image of %s under %s", ab, symop)
                    continue
                canonical_image = self.canonical_dimer_index(image)
                if canonical_image not in self._unique_dimer_map:
                    self.unique_dimers.append(canonical_image)
                    self._unique_dimer_map[canonical_image] = canonical_image
                    self._symmetry_unique_dimer_map[canonical_image] = canonical_ab
                related.append(canonical_image)
            self._symmetry_related_dimers[canonical_ab] = related

        norm_ab = self.normalized_dimer_index(ab)
        representative = self._symmetry_unique_dimer_map[canonical_ab]
        for key in (ab, norm_ab):
            self._unique_dimer_map[key] = canonical_ab
            self._symmetry_unique_dimer_map[key] = representative

    def _finalize(self):
        self.symmetry_unique_dimers = [
            d for d in self.unique_dimers if self._symmetry_unique_dimer_map[d] == d
        ]

    @classmethod
    def build(cls, crystal, dimers, consider_inversion=True) -> "DimerMappingTable":
        """
        Build the table for a crystal from a list of dimers between its
        unit cell molecules.

        Args:
            crystal (Crystal): the crystal
            dimers (Iterable[DimerIndex]): dimers with sites referring to
                `crystal.unit_cell_molecules()`
            consider_inversion (bool, optional): treat AB and BA as the same dimer

        Returns:
            DimerMappingTable: the table
        """
        mols = crystal.unit_cell_molecules()
        centroids = [crystal.to_fractional(m.centroid()) for m in mols]
        table = cls(centroids, consider_inversion=consider_inversion)
        symops = crystal.symmetry_operations
        for ab in dimers:
            table.add_dimer(ab, symops)
        table._finalize()
        LOG.debug(
            "Dimer mapping table: %d dimers, %d symmetry unique (inversion=%s)",
            len(table.unique_dimers),
            len(table.symmetry_unique_dimers),
            consider_inversion,
        )
        return table

    def symmetry_unique_dimer(self, dimer: DimerIndex) -> DimerIndex:
        "The representative of `dimer`, or `dimer` itself if it is unknown"
        return self._symmetry_unique_dimer_map.get(dimer, dimer)

    def symmetry_related_dimers(self, dimer: DimerIndex):
        unique = self.symmetry_unique_dimer(dimer)
        return list(self._symmetry_related_dimers.get(unique, [dimer]))

    def have_dimer(self, dimer: DimerIndex) -> bool:
        return self.canonical_dimer_index(dimer) in self._unique_dimer_map

    def __repr__(self):
        return "<DimerMappingTable: {} unique, {} symmetry unique>".format(
            len(self.unique_dimers), len(self.symmetry_unique_dimers)
        )
