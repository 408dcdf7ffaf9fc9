"""
Behaviour of a materialized structure that is a finite piece of a
3-periodic crystal. All per-atom data is derived from the unit cell
atoms of a shared `Crystal`.
"""

import logging
import numpy as np
from cxpy.core.index import CellIndex, GenericAtomIndex
from cxpy.util.num import cell_range

LOG = logging.getLogger(__name__)


class CrystalKind:
    """
    The 3-periodic structure kind.

    The crystal is shared, never copied: many structures may view the
    same `Crystal`, and anything derived from it (connectivity, unit cell
    molecules, neighbour tables) is computed once there.

    Attributes:
        crystal (Crystal): the crystal this structure is a piece of
    """

    structure_type = "crystal"
    periodic_axes = 3

    def __init__(self, crystal):
        self.crystal = crystal

    def connectivity(self):
        return self.crystal.unit_cell_connectivity()

    @property
    def n_base(self) -> int:
        return len(self.crystal.unit_cell_atoms()["atomic_numbers"])

    def is_valid_index(self, idx) -> bool:
        return 0 <= idx.unique < self.n_base

    def translation(self, h, k, l) -> np.ndarray:
        return self.crystal.to_cartesian(np.array((h, k, l), dtype=np.float64))

    def to_fractional(self, cart) -> np.ndarray:
        return self.crystal.to_fractional(cart)

    def to_cartesian(self, frac) -> np.ndarray:
        return self.crystal.to_cartesian(frac)

    def cell_vectors(self) -> np.ndarray:
        return self.crystal.unit_cell.direct

    def cell_offsets(self, lower, upper) -> np.ndarray:
        return cell_range(lower, upper)

    def cell_index(self, frac) -> CellIndex:
        return CellIndex(*(int(x) for x in np.floor(frac)))

    def atom_data(self, indices):
        """
        Atomic numbers, Cartesian positions and labels for a list of atom
        images, which need not be materialized.

        Returns:
            Tuple[np.ndarray, np.ndarray, List[str]]: (N,), (N, 3) and N labels
        """
        uc = self.crystal.unit_cell_atoms()
        if len(indices) == 0:
            return np.empty(0, dtype=int), np.empty((0, 3)), []
        unique = np.array([idx.unique for idx in indices], dtype=int)
        offsets = np.array([idx.offset for idx in indices], dtype=np.float64)
        frac = uc["frac_pos"][unique] + offsets
        labels = [str(x) for x in uc["label"][unique]]
        return uc["atomic_numbers"][unique], self.crystal.to_cartesian(frac), labels

    def asymmetric_unit_indices(self, indices) -> np.ndarray:
        uc = self.crystal.unit_cell_atoms()
        return uc["asym_atom"][[idx.unique for idx in indices]]

    def adps(self, indices):
        "(N, 6) displacement parameters, or None if the crystal has none"
        uc = self.crystal.unit_cell_atoms()
        if uc["adps"] is None:
            return None
        return uc["adps"][[idx.unique for idx in indices]]

    def unit_cell_fragments(self):
        # populates the asymmetric fragment index and transform
        self.crystal.symmetry_unique_molecules()
        return self.crystal.unit_cell_molecules()

    def symmetry_unique_fragments(self):
        return self.crystal.symmetry_unique_molecules()

    def chemical_formula(self) -> str:
        return self.crystal.asymmetric_unit.formula

    def atoms_within_radius(self, structure, centres, radius):
        """
        All atom images within `radius` of any of `centres`, excluding
        each centre itself. The centres need not be materialized.
        """
        surroundings = self.crystal.unit_cell_atom_surroundings(radius)
        result = set()
        for idx in centres:
            region = surroundings[idx.unique]
            for u, (h, k, l) in zip(region["uc_idx"].tolist(), region["hkl"].tolist()):
                result.add(GenericAtomIndex(u, h + idx.x, k + idx.y, l + idx.z))
        return sorted(result)

    def pack_indices(self, lower, upper):
        """
        Unit cell atom images with fractional coordinates inside the box
        [lower, upper] (inclusive).
        """
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)
        lo = np.floor(lower).astype(int)
        hi = np.ceil(upper).astype(int) - 1
        slab = self.crystal.slab(bounds=(tuple(lo), tuple(hi)))
        frac = slab["frac_pos"]
        mask = np.all(frac >= lower, axis=1) & np.all(frac <= upper, axis=1)
        return [
            GenericAtomIndex(int(u), *hkl)
            for u, hkl in zip(slab["uc_idx"][mask], slab["hkl"][mask].tolist())
        ]

    def reset_indices(self, structure):
        "One image of every asymmetric unit atom, taken from the unique molecules"
        indices = []
        included = set()
        for mol in self.crystal.symmetry_unique_molecules():
            for idx, asym in zip(mol.atom_indices, mol.asymmetric_unit_indices.tolist()):
                if asym in included:
                    continue
                included.add(asym)
                indices.append(idx)
        return indices

    def matching_order(self, indices):
        "Sort atom images by asymmetric unit atom, then index, for symmetry matching"
        asym = self.asymmetric_unit_indices(indices)
        return sorted(range(len(indices)), key=lambda i: (asym[i], indices[i]))

    def symmetry_transform(self, from_indices, to_indices):
        _, from_pos, _ = self.atom_data(from_indices)
        _, to_pos, _ = self.atom_data(to_indices)
        return self.crystal.symmetry_transform(
            self.crystal.to_fractional(from_pos), self.crystal.to_fractional(to_pos)
        )

    def transform_indices(self, structure, indices, rotation, translation):
        """
        The atom images lying at the positions of `indices` after a
        Cartesian rotation and translation, each matched to the nearest
        unit cell atom image.
        """
        if len(indices) == 0:
            return []
        _, pos, _ = self.atom_data(indices)
        pos = pos @ np.asarray(rotation).T + np.asarray(translation)
        frac = self.crystal.to_fractional(pos)
        uc_frac = self.crystal.unit_cell_atoms()["frac_pos"]
        diff = frac[:, np.newaxis, :] - uc_frac[np.newaxis, :, :]
        offsets = np.round(diff)
        d2 = np.sum((diff - offsets) ** 2, axis=-1)
        nearest = np.argmin(d2, axis=1)
        result = []
        for i, j in enumerate(nearest):
            if d2[i, j] > 1e-3:
                LOG.debug("Large distance %.3g matching transformed atom %d", d2[i, j], i)
            result.append(GenericAtomIndex(int(j), *(int(x) for x in offsets[i, j])))
        return result

    def to_dict(self):
        return {}

    def parse_state(self, d):
        "Kind state to use when loading `d`, raising ValueError if it is unusable"
        return self

    def __repr__(self):
        return f"<CrystalKind {self.crystal}>"
