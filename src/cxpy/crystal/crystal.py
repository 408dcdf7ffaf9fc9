import json
import logging
from typing import List, Tuple
import numpy as np
from scipy.spatial import cKDTree as KDTree
from cxpy.core.element import Element
from cxpy.core.fragment import Fragment
from cxpy.core.index import GenericAtomIndex, FragmentIndex
from cxpy.util.num import cell_range, wrap_fractional, rmsd_points
from .unit_cell import UnitCell
from .space_group import SpaceGroup, SymmetryOperation
from .asymmetric_unit import AsymmetricUnit
from .bond_graph import (
    build_unit_cell_connectivity,
    covalent_only,
    filtered_connectivity_traversal,
)

LOG = logging.getLogger(__name__)

SYMMETRY_RMSD_TOLERANCE = 1e-6
SITE_MERGE_TOLERANCE = 1e-2
DIMER_TABLE_RADIUS = 30.0


def _adp_matrices(adps):
    "(N, 6) U11, U22, U33, U12, U13, U23 to (N, 3, 3)"
    u11, u22, u33, u12, u13, u23 = np.asarray(adps).T
    return np.stack(
        (
            np.stack((u11, u12, u13), axis=-1),
            np.stack((u12, u22, u23), axis=-1),
            np.stack((u13, u23, u33), axis=-1),
        ),
        axis=1,
    )


def _adp_vectors(mats):
    return np.stack(
        (
            mats[:, 0, 0], mats[:, 1, 1], mats[:, 2, 2],
            mats[:, 0, 1], mats[:, 0, 2], mats[:, 1, 2],
        ),
        axis=-1,
    )


class Crystal:
    """
    Storage class for a molecular crystal structure, and the shared,
    read-only definition used by every materialized structure built
    from it.

    Derived data (unit cell atoms, connectivity, molecules, neighbour
    tables, dimer mapping tables) is computed on first use and cached.
    `rebuild_connectivity` is the only operation that invalidates these
    caches.

    Attributes:
        unit_cell: the translational symmetry
        space_group: the symmetry within the unit cell
        asymmetric_unit: the symmetry unique set of sites in
            the crystal. Contains information on atomic positions,
            elements, labels etc.
        properties: variable collection of named properties for
            this crystal
    """

    space_group: SpaceGroup
    unit_cell: UnitCell
    asymmetric_unit: AsymmetricUnit
    properties: dict

    def __init__(
        self,
        unit_cell: UnitCell,
        space_group: SpaceGroup,
        asymmetric_unit: AsymmetricUnit,
        **kwargs,
    ):
        """
        Construct a new crystal.

        Arguments:
            unit_cell: The unit cell for this crystal i.e. the
                translational symmetry of the crystal structure.
            space_group: The space group symmetry of this crystal
                i.e. the generators for populating the unit cell given the
                asymmetric unit.
            asymmetric_unit: The asymmetric unit of this crystal.
            **kwargs: Optional properties to store about the the crystal structure.
        """
        self.space_group = space_group
        self.unit_cell = unit_cell
        self.asymmetric_unit = asymmetric_unit
        self.properties = dict(kwargs)
        self._bond_settings = {}
        self._clear_caches()
        self._unit_cell_atom_dict = None

    def _clear_caches(self):
        self._uc_graph = None
        self._unit_cell_molecules = None
        self._symmetry_unique_molecules = None
        self._surroundings = {}
        self._dimer_tables = {}

    @property
    def sg(self) -> SpaceGroup:
        "short accessor for `space_group`"
        return self.space_group

    @property
    def uc(self) -> UnitCell:
        "short accessor for `unit_cell`"
        return self.unit_cell

    @property
    def asym(self) -> AsymmetricUnit:
        "short accessor for `asymmetric_unit`"
        return self.asymmetric_unit

    @property
    def site_positions(self) -> np.ndarray:
        "Row major array of asymmetric unit atomic positions"
        return self.asymmetric_unit.positions

    @property
    def site_atoms(self) -> np.ndarray:
        "Array of asymmetric unit atomic numbers"
        return self.asymmetric_unit.atomic_numbers

    @property
    def nsites(self) -> int:
        return len(self.site_atoms)

    @property
    def symmetry_operations(self) -> List[SymmetryOperation]:
        return self.space_group.symmetry_operations

    def to_cartesian(self, coords) -> np.ndarray:
        return self.unit_cell.to_cartesian(coords)

    def to_fractional(self, coords) -> np.ndarray:
        return self.unit_cell.to_fractional(coords)

    def unit_cell_atoms(self, tolerance=SITE_MERGE_TOLERANCE) -> dict:
        """
        Generate all atoms in the unit cell (i.e. with
        fractional coordinates in [0, 1)) along with associated
        information about symmetry operations, elements, the
        related asymmetric_unit atom etc.

        Symmetry operations are applied in space group order, and sites
        within `tolerance` (fractional, periodic) of an earlier site are
        merged into it, so the first generator of a site wins.

        The result is cached, subsequent calls are a no-op.

        Arguments:
            tolerance (float, optional): Minimum separation of sites in the unit
                cell, below which sites will be merged.

        Returns:
            A dictionary of arrays associated with all sites contained
            in the unit cell of this crystal, members are:

                asym_atom: corresponding asymmetric unit atom indices for all sites.
                frac_pos: (N, 3) array of fractional positions for all sites.
                cart_pos: (N, 3) array of cartesian positions for all sites.
                atomic_numbers: (N) array of atomic numbers for all sites.
                element: alias of atomic_numbers
                symop: (N) array of integer codes of the generator symmetry
                    operation for each site.
                label: (N) array of string labels corresponding to each site
                adps: (N, 6) displacement parameters rotated into place, or None
        """
        if self._unit_cell_atom_dict is not None:
            return self._unit_cell_atom_dict
        natom = self.nsites
        nsymops = len(self.space_group)
        labels = np.tile(self.asymmetric_unit.labels, nsymops)
        uc_nums = np.tile(self.site_atoms, nsymops)
        asym = np.arange(len(uc_nums)) % max(natom, 1)
        sym, uc_pos = self.space_group.apply_all_symops(self.site_positions)
        translated = wrap_fractional(uc_pos)
        mask = np.ones(len(uc_pos), dtype=bool)
        if len(translated) > 0:
            tree = KDTree(translated, boxsize=1.0)
            for i, j in sorted(tree.query_pairs(tolerance)):
                if mask[i]:
                    mask[j] = False
        adps = None
        if self.asymmetric_unit.adps is not None:
            symops = {s.integer_code: s for s in self.symmetry_operations}
            u = _adp_matrices(self.asymmetric_unit.adps)[asym[mask]]
            rot = np.array([symops[code].rotation for code in sym[mask]])
            adps = _adp_vectors(rot @ u @ np.transpose(rot, (0, 2, 1)))
        self._unit_cell_atom_dict = {
            "asym_atom": asym[mask],
            "frac_pos": translated[mask],
            "cart_pos": self.to_cartesian(translated[mask]),
            "atomic_numbers": uc_nums[mask],
            "element": uc_nums[mask],
            "symop": sym[mask],
            "label": labels[mask],
            "adps": adps,
        }
        LOG.debug(
            "%d unit cell atoms from %d sites and %d symops",
            np.sum(mask), natom, nsymops,
        )
        return self._unit_cell_atom_dict

    def slab(self, bounds=((-1, -1, -1), (1, 1, 1))) -> dict:
        """
        Calculate the atoms and associated information
        for a slab consisting of multiple unit cells.

        Cells are ordered by increasing |h| + |k| + |l|, so the first
        `n_uc` atoms are always the reference cell when it is included.

        Args:
            bounds (Tuple, optional): Tuple of lower and upper corners (hkl)
                describing the bounds of the slab (inclusive).

        Returns:
            A dictionary of arrays for all sites in the slab:
                frac_pos, cart_pos: (N, 3) positions
                uc_idx: (N) unit cell atom for each site
                hkl: (N, 3) cell offset for each site
                atomic_numbers, asym_atom, symop, label: tiled unit cell data
                n_uc: number of atoms in the unit cell
                n_cells: number of cells in this slab
        """
        uc_atoms = self.unit_cell_atoms()
        cells = cell_range(*bounds)
        ncells = len(cells)
        uc_pos = uc_atoms["frac_pos"]
        n_uc = len(uc_pos)
        pos = (uc_pos[np.newaxis, :, :] + cells[:, np.newaxis, :]).reshape(-1, 3)
        slab_dict = {
            k: np.tile(uc_atoms[k], ncells)
            for k in ("atomic_numbers", "asym_atom", "symop", "label")
        }
        slab_dict["frac_pos"] = pos
        slab_dict["cart_pos"] = self.to_cartesian(pos)
        slab_dict["uc_idx"] = np.tile(np.arange(n_uc), ncells)
        slab_dict["hkl"] = np.repeat(cells, n_uc, axis=0)
        slab_dict["n_uc"] = n_uc
        slab_dict["n_cells"] = ncells
        return slab_dict

    def unit_cell_connectivity(self):
        """
        Periodic bond graph for the unit cell atoms, built on first use
        with the settings of the last `rebuild_connectivity` call (or the
        defaults) and cached.

        Returns:
            PeriodicBondGraph: the connectivity of the unit cell atoms
        """
        if self._uc_graph is None:
            self._uc_graph = build_unit_cell_connectivity(self, **self._bond_settings)
        return self._uc_graph

    def rebuild_connectivity(self, **kwargs):
        """
        Rebuild the periodic bond graph with new settings, invalidating
        everything derived from it. Must not be called while any structure
        sharing this crystal is being mutated.

        Args:
            **kwargs: passed to `build_unit_cell_connectivity` e.g.
                `covalent_tolerance`, `vdw_tolerance`, `bond_overrides`
        """
        self._bond_settings = dict(kwargs)
        self._clear_caches()
        return self.unit_cell_connectivity()

    def unit_cell_molecules(self) -> List[Fragment]:
        """
        Calculate the covalently bonded molecules for all sites in the unit
        cell. Each molecule is translated as a whole so that its centroid
        lies inside the unit cell.

        Returns:
            List[Fragment]: molecules with `index` FragmentIndex(i) and atom
            indices referring to unit cell atoms and integer shifts.
        """
        if self._unit_cell_molecules is not None:
            return self._unit_cell_molecules
        graph = self.unit_cell_connectivity()
        uc = self.unit_cell_atoms()
        n_uc = len(uc["frac_pos"])
        visited = np.zeros(n_uc, dtype=bool)
        predicate = covalent_only(graph)
        molecules = []
        for root in range(n_uc):
            if visited[root]:
                continue
            members = []
            filtered_connectivity_traversal(
                graph, root, lambda v, p, e, hkl: members.append((v, hkl)), predicate
            )
            nodes = np.array([v for v, _ in members], dtype=int)
            shifts = np.array([hkl for _, hkl in members], dtype=int)
            visited[nodes] = True
            frac = uc["frac_pos"][nodes] + shifts
            shifts -= np.floor(np.mean(frac, axis=0)).astype(int)
            frac = uc["frac_pos"][nodes] + shifts
            i = len(molecules)
            molecules.append(
                Fragment(
                    [GenericAtomIndex(int(v), *s) for v, s in zip(nodes, shifts.tolist())],
                    atomic_numbers=uc["atomic_numbers"][nodes],
                    positions=self.to_cartesian(frac),
                    index=FragmentIndex(i),
                    asymmetric_unit_indices=uc["asym_atom"][nodes],
                    name=f"uc{i}",
                )
            )
        LOG.debug("%d molecules in unit cell", len(molecules))
        self._unit_cell_molecules = molecules
        return molecules

    def symmetry_transform(self, from_frac, to_frac, tolerance=SYMMETRY_RMSD_TOLERANCE):
        """
        Find the first symmetry operation (in space group order) mapping one
        set of fractional positions onto another, atom for atom, after
        aligning centroids.

        Args:
            from_frac (np.ndarray): (N, 3) fractional positions
            to_frac (np.ndarray): (N, 3) fractional positions, in an order
                corresponding to `from_frac`
            tolerance (float, optional): maximum RMSD (fractional)

        Returns:
            Tuple[bool, Tuple[np.ndarray, np.ndarray]]: (True, (rotation,
            translation)) in Cartesian space such that
            `from_cart @ rotation.T + translation == to_cart`, or (False, None)
        """
        from_frac = np.asarray(from_frac).reshape(-1, 3)
        to_frac = np.asarray(to_frac).reshape(-1, 3)
        if from_frac.shape != to_frac.shape or len(from_frac) == 0:
            return False, None
        centroid = np.mean(to_frac, axis=0)
        cart_symops = self.cartesian_symmetry_operations()
        for symop, (rot, trans) in zip(self.symmetry_operations, cart_symops):
            transformed = symop(from_frac)
            shift = centroid - np.mean(transformed, axis=0)
            if rmsd_points(transformed + shift, to_frac) < tolerance:
                return True, (rot, trans + self.to_cartesian(shift))
        return False, None

    def symmetry_unique_molecules(self) -> List[Fragment]:
        """
        Calculate a list of connected molecules which contain
        every site in the asymmetric_unit, and relate every unit cell
        molecule to one of them.

        After this call each unit cell molecule has its
        `asymmetric_fragment_index` and `asymmetric_fragment_transform` set.

        Returns:
            List[Fragment]: the unique molecules, with `index` FragmentIndex(j)
            and atom indices of the unit cell molecule they were taken from.
        """
        if self._symmetry_unique_molecules is not None:
            return self._symmetry_unique_molecules
        uc_molecules = self.unit_cell_molecules()
        uc = self.unit_cell_atoms()
        identity = SymmetryOperation.identity().integer_code
        asym_atoms = np.zeros(self.nsites, dtype=bool)

        # prefer molecules generated by the identity
        def order(x):
            codes = uc["symop"][[idx.unique for idx in x.atom_indices]]
            return np.sum(codes == identity) / max(len(x), 1)

        representatives = []
        for mol in sorted(uc_molecules, key=order, reverse=True):
            in_mol = np.unique(mol.asymmetric_unit_indices)
            if np.all(asym_atoms[in_mol]):
                continue
            asym_atoms[in_mol] = True
            representatives.append(mol)
            if np.all(asym_atoms):
                break

        def frac_positions(mol):
            idxs = sorted(
                range(len(mol)),
                key=lambda i: (mol.asymmetric_unit_indices[i], mol.atom_indices[i]),
            )
            return self.to_fractional(mol.positions[idxs]), mol.asymmetric_unit_indices[idxs]

        unique = []
        for mol in uc_molecules:
            frac, asym = frac_positions(mol)
            for j, rep in enumerate(representatives):
                rep_frac, rep_asym = frac_positions(rep)
                if len(rep) != len(mol) or np.any(rep_asym != asym):
                    continue
                found, transform = self.symmetry_transform(rep_frac, frac)
                if found:
                    mol.asymmetric_fragment_index = FragmentIndex(j)
                    mol.asymmetric_fragment_transform = transform
                    break
            else:
                LOG.warning(
                    "No symmetry related molecule found for %s, treating as unique", mol
                )
                representatives.append(mol)
                mol.asymmetric_fragment_index = FragmentIndex(len(representatives) - 1)
        for j, rep in enumerate(representatives):
            unique.append(
                Fragment(
                    rep.atom_indices,
                    atomic_numbers=rep.atomic_numbers,
                    positions=rep.positions,
                    index=FragmentIndex(j),
                    asymmetric_fragment_index=FragmentIndex(j),
                    asymmetric_unit_indices=rep.asymmetric_unit_indices,
                    name=f"asym{j}",
                )
            )
        LOG.debug("%d symmetry unique molecules", len(unique))
        self._symmetry_unique_molecules = unique
        return unique

    def unit_cell_atom_surroundings(self, radius) -> List[dict]:
        """
        For every unit cell atom, all periodic images of unit cell atoms
        within `radius` of it, excluding itself.

        Results are cached per radius.

        Args:
            radius (float): the maximum distance (Angstroms)

        Returns:
            List[dict]: per unit cell atom, arrays `uc_idx` (M), `hkl` (M, 3)
            and `distance` (M) ordered by slab position
        """
        radius = float(radius)
        if radius in self._surroundings:
            return self._surroundings[radius]
        uc = self.unit_cell_atoms()
        reach = radius * np.linalg.norm(self.unit_cell.reciprocal_lattice, axis=1)
        upper = np.ceil(reach).astype(int) + 1
        slab = self.slab(bounds=(tuple(-upper), tuple(upper)))
        tree = KDTree(slab["cart_pos"])
        results = []
        for i, pos in enumerate(uc["cart_pos"]):
            idxs = np.array(sorted(tree.query_ball_point(pos, radius)), dtype=int)
            idxs = idxs[idxs != i]
            d = np.linalg.norm(slab["cart_pos"][idxs] - pos, axis=1)
            results.append(
                {
                    "uc_idx": slab["uc_idx"][idxs],
                    "hkl": slab["hkl"][idxs],
                    "distance": d,
                }
            )
        self._surroundings[radius] = results
        return results

    def cartesian_symmetry_operations(self) -> List[Tuple[np.ndarray, np.ndarray]]:
        """
        Create a list of symmetry operations (rotation, translation)
        for evaluation of transformations in cartesian space.

        The rotation matrices act on column vectors, i.e. Cartesian row
        major positions transform as `np.dot(x, rotation.T) + translation`.

        Returns:
            List[Tuple[np.ndarray, np.ndarray]]: a list of (rotation, translation)
        """
        d = self.unit_cell.direct
        i = self.unit_cell.inverse
        return [
            (d.T @ symop.rotation @ i.T, self.to_cartesian(symop.translation))
            for symop in self.symmetry_operations
        ]

    def unit_cell_dimer_indices(self, radius=DIMER_TABLE_RADIUS):
        """
        All pairs of unit cell molecules (the first in the reference cell)
        with nearest atom separation in (0.1, radius) Angstroms.

        Returns:
            List[DimerIndex]: site pairs, sites being unit cell molecules
        """
        from .dimer_mapping import DimerIndex, SiteIndex

        mols = self.unit_cell_molecules()
        if not mols:
            return []
        reach = radius * np.linalg.norm(self.unit_cell.reciprocal_lattice, axis=1)
        all_frac = np.vstack([self.to_fractional(m.positions) for m in mols])
        lower = np.floor(all_frac.min(axis=0) - all_frac.max(axis=0) - reach)
        upper = np.ceil(all_frac.max(axis=0) - all_frac.min(axis=0) + reach)
        cells = cell_range(lower.astype(int), upper.astype(int))
        shifts = self.to_cartesian(cells)
        result = []
        for i, mol_a in enumerate(mols):
            for j, mol_b in enumerate(mols):
                diff = (
                    mol_a.positions[:, np.newaxis, np.newaxis, :]
                    - mol_b.positions[np.newaxis, :, np.newaxis, :]
                    - shifts[np.newaxis, np.newaxis, :, :]
                )
                nearest = np.min(np.linalg.norm(diff, axis=-1), axis=(0, 1))
                for c in np.flatnonzero((nearest < radius) & (nearest > 1e-1)):
                    result.append(
                        DimerIndex(SiteIndex(i, 0, 0, 0), SiteIndex(j, *cells[c].tolist()))
                    )
        LOG.debug("%d unit cell dimers within %.2f", len(result), radius)
        return result

    def dimer_mapping_table(self, consider_inversion=True, max_radius=DIMER_TABLE_RADIUS):
        """
        The (cached) dimer mapping table for unit cell molecule pairs
        within `max_radius`.

        Args:
            consider_inversion (bool, optional): treat AB and BA as the same dimer
            max_radius (float, optional): nearest atom cutoff for tabulated dimers

        Returns:
            DimerMappingTable: the table
        """
        from .dimer_mapping import DimerMappingTable

        key = (bool(consider_inversion), float(max_radius))
        if key not in self._dimer_tables:
            self._dimer_tables[key] = DimerMappingTable.build(
                self,
                self.unit_cell_dimer_indices(max_radius),
                consider_inversion=consider_inversion,
            )
        return self._dimer_tables[key]

    @property
    def site_labels(self):
        "array of labels for sites in the `asymmetric_unit`"
        return self.asymmetric_unit.labels

    def __repr__(self):
        return "<Crystal {} {}>".format(
            self.asymmetric_unit.formula, self.space_group.symbol
        )

    @property
    def density(self):
        "Calculated density of this crystal structure in g/cm^3"
        uc_mass = sum(Element[int(x)].mass for x in self.unit_cell_atoms()["atomic_numbers"])
        return uc_mass / self.unit_cell.volume() / 0.6022

    def to_dict(self):
        return {
            "unit_cell": self.unit_cell.to_dict(),
            "space_group": self.space_group.to_dict(),
            "asymmetric_unit": self.asymmetric_unit.to_dict(),
        }

    @classmethod
    def from_dict(cls, d):
        """
        Construct a crystal from the output of `to_dict`.

        Raises:
            ValueError: if the dictionary is malformed
        """
        try:
            return cls(
                UnitCell.from_dict(d["unit_cell"]),
                SpaceGroup.from_dict(d["space_group"]),
                AsymmetricUnit.from_dict(d["asymmetric_unit"]),
            )
        except (KeyError, TypeError, IndexError) as e:
            raise ValueError(f"Malformed crystal definition: {e}") from e

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, s):
        try:
            d = json.loads(s)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid crystal JSON: {e}") from e
        return cls.from_dict(d)
