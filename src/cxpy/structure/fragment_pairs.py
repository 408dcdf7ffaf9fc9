"""
Pairs of materialized fragments within a distance cutoff, grouped into
classes of symmetry equivalent pairs.
"""

import logging
from dataclasses import dataclass, field
from typing import List, NamedTuple
import numpy as np
from scipy.spatial import cKDTree as KDTree
from cxpy.core.fragment import FragmentDimer
from cxpy.core.index import NO_FRAGMENT, FragmentIndex
from cxpy.crystal.dimer_mapping import DimerIndex, SiteIndex
from .crystal_kind import CrystalKind

LOG = logging.getLogger(__name__)

MINIMUM_PAIR_DISTANCE = 0.1
DIMER_MATCH_TOLERANCE = 0.1


@dataclass
class FragmentPairSettings:
    """
    Attributes:
        key_fragment (FragmentIndex): if valid, only pairs involving this
            fragment are found
        allow_inversion (bool): treat AB and BA as the same pair
        distance_threshold (float): maximum nearest atom separation (Angstroms)
    """

    key_fragment: FragmentIndex = NO_FRAGMENT
    allow_inversion: bool = True
    distance_threshold: float = 3.8


class SymmetryRelatedPair(NamedTuple):
    fragments: FragmentDimer
    unique_pair_index: int


@dataclass
class FragmentPairs:
    """
    Attributes:
        unique_pairs (List[FragmentDimer]): one representative per class of
            symmetry related pairs, sorted by nearest atom distance
        pairs (Dict[FragmentIndex, List[SymmetryRelatedPair]]): for each
            fragment, the pairs it is the first member of
    """

    unique_pairs: List[FragmentDimer] = field(default_factory=list)
    pairs: dict = field(default_factory=dict)

    def __len__(self):
        return len(self.unique_pairs)


class _UniquePairMatcher:
    "Find the unique pair equal to a dimer, narrowing candidates by their separations"

    def __init__(self):
        self.unique = []
        self._tree = None

    def find(self, dimer: FragmentDimer) -> int:
        if not self.unique:
            return -1
        if self._tree is None:
            self._tree = KDTree([d.distance_vector() for d in self.unique])
        for i in sorted(self._tree.query_ball_point(dimer.distance_vector(), DIMER_MATCH_TOLERANCE)):
            if self.unique[i] == dimer:
                return i
        return -1

    def add(self, dimer: FragmentDimer) -> int:
        self.unique.append(dimer)
        self._tree = None
        return len(self.unique) - 1


def _is_unit_cell_image(structure, fragment_index, fragment) -> bool:
    "True if `fragment` holds every atom of its unit cell fragment image"
    return structure.find_unit_cell_fragment(fragment) == fragment_index


def _candidate_pairs(structure, settings):
    fragments = structure.fragments
    if settings.key_fragment.is_valid():
        key = FragmentIndex(*settings.key_fragment)
        if key not in fragments:
            LOG.warning("Key fragment %s is not in the structure", key)
            return []
        return [(key, other) for other in sorted(fragments) if other != key]
    keys = sorted(fragments)
    return [(a, b) for i, a in enumerate(keys) for b in keys[i + 1 :]]


def find_fragment_pairs(structure, settings: FragmentPairSettings = None) -> FragmentPairs:
    """
    Find pairs of fragments in a structure with nearest atom separation
    up to `settings.distance_threshold`, and group them into classes of
    symmetry related pairs.

    For crystals, pairs are identified through the crystal's dimer mapping
    table when both fragments are complete images of unit cell molecules.
    Pairs involving incomplete fragments, pairs the table does not know
    and all pairs in slabs are grouped by comparing fragment geometries
    and separations.

    Args:
        structure (PeriodicStructure): the structure
        settings (FragmentPairSettings, optional): search settings

    Returns:
        FragmentPairs: the unique pairs and, per fragment, its pairs
    """
    settings = settings or FragmentPairSettings()
    result = FragmentPairs()
    candidates = _candidate_pairs(structure, settings)
    if not candidates:
        return result

    table = None
    if isinstance(structure.kind, CrystalKind):
        table = structure.kind.crystal.dimer_mapping_table(
            consider_inversion=settings.allow_inversion
        )
    matcher = _UniquePairMatcher()
    table_index = {}
    complete = {}
    pairs = {}
    for a, b in candidates:
        frag_a, frag_b = structure.fragments[a], structure.fragments[b]
        dimer = FragmentDimer(frag_a, frag_b)
        if (
            dimer.nearest_atom_distance <= MINIMUM_PAIR_DISTANCE
            or dimer.nearest_atom_distance > settings.distance_threshold
        ):
            continue
        unique_index = -1
        key = None
        if table is not None:
            for f, frag in ((a, frag_a), (b, frag_b)):
                if f not in complete:
                    complete[f] = _is_unit_cell_image(structure, f, frag)
        if table is not None and complete[a] and complete[b]:
            idx = DimerIndex(SiteIndex(a.u, a.h, a.k, a.l), SiteIndex(b.u, b.h, b.k, b.l))
            if table.have_dimer(idx):
                key = table.symmetry_unique_dimer(table.canonical_dimer_index(idx))
                unique_index = table_index.get(key, -1)
        if unique_index < 0 and key is None:
            unique_index = matcher.find(dimer)
        if unique_index < 0:
            unique_index = matcher.add(dimer)
            if key is not None:
                table_index[key] = unique_index
        pairs.setdefault(a, []).append(SymmetryRelatedPair(dimer, unique_index))

    order = sorted(
        range(len(matcher.unique)), key=lambda i: matcher.unique[i].nearest_atom_distance
    )
    remap = {old: new for new, old in enumerate(order)}
    result.unique_pairs = [matcher.unique[i] for i in order]
    for fragment_index, fragment_pairs in pairs.items():
        result.pairs[fragment_index] = sorted(
            (SymmetryRelatedPair(p.fragments, remap[p.unique_pair_index]) for p in fragment_pairs),
            key=lambda p: p.fragments.nearest_atom_distance,
        )
    LOG.debug(
        "%d fragment pairs within %.2f, %d unique",
        sum(len(x) for x in result.pairs.values()),
        settings.distance_threshold,
        len(result.unique_pairs),
    )
    return result


def symmetry_unique_fragment_pairs(structure, **kwargs) -> List[FragmentDimer]:
    "Shortcut for the unique pairs of `find_fragment_pairs`"
    return find_fragment_pairs(structure, FragmentPairSettings(**kwargs)).unique_pairs
