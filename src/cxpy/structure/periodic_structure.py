"""
The materialized structure: the finite set of periodic atom images
currently shown, with the bonds and fragments derived from it.

The atom table (`atomic_numbers`, `positions`, `labels`, `flags`) and
`atom_offsets` are parallel, row ordered sequences, and `atom_map` is
their inverse. Every mutation keeps this correspondence one to one and
re-derives bonds and fragments before returning.

Behaviour that depends on the periodicity of the structure (where
connectivity and per-atom data come from, how neighbours are found,
how the structure is reset) is delegated to a `kind` object, either a
`CrystalKind` or a `SlabKind`.
"""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Tuple
import numpy as np
from cxpy.core.element import Element
from cxpy.core.fragment import Fragment, FragmentState, identity_transform
from cxpy.core.index import (
    NO_ATOM,
    NO_FRAGMENT,
    AtomFlag,
    FragmentIndex,
    GenericAtomIndex,
    integer_value,
)
from cxpy.crystal.bond_graph import Connection, covalent_only, filtered_connectivity_traversal
from .crystal_kind import CrystalKind
from .slab_kind import SlabKind

LOG = logging.getLogger(__name__)

MINIMUM_EXPANSION_RADIUS = 1e-3


class SlabGenerationMode(enum.Enum):
    Atoms = 0
    UnitCellMolecules = 1
    MoleculesCentroid = 2
    MoleculesCenterOfMass = 3
    MoleculesAnyAtom = 4


@dataclass
class SlabGenerationOptions:
    """
    Bounds (fractional, inclusive) and the rule deciding which atoms of
    the periodic structure are materialized by `build_slab`.
    """

    lower: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    upper: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    mode: SlabGenerationMode = SlabGenerationMode.Atoms


class PeriodicStructure:
    """
    A finite, mutable piece of a periodic (3D crystal or 2D slab) structure.

    Attributes:
        kind (CrystalKind | SlabKind): periodicity specific behaviour
        atomic_numbers (np.ndarray): (N,) atomic numbers, one per row
        positions (np.ndarray): (N, 3) Cartesian positions
        labels (List[str]): atom labels
        flags (List[AtomFlag]): per-row flags
        atom_offsets (List[GenericAtomIndex]): the atom image of each row
        atom_map (Dict[GenericAtomIndex, int]): row of each atom image
        covalent_bonds (List[Tuple[int, int]]): pairs of rows
        hydrogen_bonds (List[Tuple[int, int]]): pairs of rows
        vdw_contacts (List[Tuple[int, int]]): pairs of rows
        fragments (Dict[FragmentIndex, Fragment]): materialized fragments
        fragment_for_atom (List[FragmentIndex]): fragment of each row
    """

    def __init__(self, kind, name="structure"):
        self.kind = kind
        self.name = name
        self.show_contacts = False
        self._symmetry_unique_states = {}
        self._fragment_labels = None
        self._unique_fragments_source = None
        self._clear_atoms()

    def _clear_atoms(self):
        self.atomic_numbers = np.empty(0, dtype=int)
        self.positions = np.empty((0, 3))
        self.labels = []
        self.flags = []
        self.atom_offsets = []
        self.atom_map = {}
        self._clear_derived()

    def _clear_derived(self):
        self.covalent_bonds = []
        self.hydrogen_bonds = []
        self.vdw_contacts = []
        self.fragments = {}
        self.fragment_for_atom = [NO_FRAGMENT] * len(self.atom_offsets)
        self._unit_cell_fragments = {}
        self._unit_cell_atom_fragments = {}

    @property
    def periodic_axes(self) -> int:
        return self.kind.periodic_axes

    def number_of_atoms(self) -> int:
        return len(self.atom_offsets)

    def __len__(self):
        return self.number_of_atoms()

    # Index maps

    def generic_index_to_index(self, idx) -> int:
        "Row of the atom image `idx`, or -1 if it is not materialized"
        return self.atom_map.get(GenericAtomIndex(*idx), -1)

    def index_to_generic_index(self, row) -> GenericAtomIndex:
        "Atom image of `row`, or GenericAtomIndex(-1, 0, 0, 0) if out of range"
        if 0 <= row < len(self.atom_offsets):
            return self.atom_offsets[row]
        return NO_ATOM

    def _as_generic_index(self, row_or_index) -> GenericAtomIndex:
        if isinstance(row_or_index, (int, np.integer)):
            return self.index_to_generic_index(int(row_or_index))
        return GenericAtomIndex(*row_or_index)

    def _as_row(self, row_or_index) -> int:
        if isinstance(row_or_index, (int, np.integer)):
            row = int(row_or_index)
            return row if 0 <= row < len(self.atom_offsets) else -1
        return self.generic_index_to_index(row_or_index)

    # Flags

    def atom_flags(self, row_or_index) -> AtomFlag:
        row = self._as_row(row_or_index)
        if row < 0:
            return AtomFlag.NoFlag
        return self.flags[row]

    def set_atom_flag(self, row_or_index, flag: AtomFlag, on=True):
        row = self._as_row(row_or_index)
        if row < 0:
            return
        if on:
            self.flags[row] |= flag
        else:
            self.flags[row] &= ~flag

    def test_atom_flag(self, row_or_index, flag: AtomFlag) -> bool:
        "True if all bits of `flag` are set on the atom"
        return (self.atom_flags(row_or_index) & flag) == flag

    def set_flag_for_atoms(self, indices, flag: AtomFlag, on=True):
        for idx in indices:
            self.set_atom_flag(idx, flag, on)

    def any_atom_has_flags(self, flags: AtomFlag) -> bool:
        return any(f & flags for f in self.flags)

    def atoms_have_flags(self, indices, flags: AtomFlag) -> bool:
        "True if every one of `indices` has all of `flags` set"
        return all(self.test_atom_flag(idx, flags) for idx in indices)

    def atoms_with_flags(self, flags: AtomFlag, set=True):
        """
        Atom images, in row order, with (or without, if `set` is False)
        all bits of `flags`.
        """
        return [
            idx
            for idx, f in zip(self.atom_offsets, self.flags)
            if ((f & flags) == flags) == set
        ]

    def _is_contact(self, row) -> bool:
        return bool(self.flags[row] & AtomFlag.Contact)

    # Atom table management

    def _append_atoms(self, indices, flags=AtomFlag.NoFlag) -> int:
        """
        Append rows for those of `indices` that are valid and not yet
        materialized. Does not update bonds or fragments.

        Returns:
            int: the number of rows added
        """
        new = []
        seen = set()
        for idx in indices:
            idx = GenericAtomIndex(*(int(x) for x in idx))
            if idx in self.atom_map or idx in seen:
                continue
            if not self.kind.is_valid_index(idx):
                LOG.warning("Ignoring invalid atom index %s", idx)
                continue
            seen.add(idx)
            new.append(idx)
        if not new:
            return 0
        nums, pos, labels = self.kind.atom_data(new)
        start = len(self.atom_offsets)
        self.atomic_numbers = np.concatenate((self.atomic_numbers, nums))
        self.positions = np.vstack((self.positions, pos))
        self.labels.extend(labels)
        self.flags.extend([flags] * len(new))
        for i, idx in enumerate(new):
            self.atom_map[idx] = start + i
        self.atom_offsets.extend(new)
        LOG.debug("Added %d atoms, %d total", len(new), len(self.atom_offsets))
        return len(new)

    def _remove_rows(self, rows):
        "Rebuild the atom table and map without `rows`"
        remove = {r for r in rows if 0 <= r < len(self.atom_offsets)}
        if not remove:
            return 0
        keep = [i for i in range(len(self.atom_offsets)) if i not in remove]
        self.atomic_numbers = self.atomic_numbers[keep]
        self.positions = self.positions[keep].reshape(-1, 3)
        self.labels = [self.labels[i] for i in keep]
        self.flags = [self.flags[i] for i in keep]
        self.atom_offsets = [self.atom_offsets[i] for i in keep]
        self.atom_map = {idx: i for i, idx in enumerate(self.atom_offsets)}
        LOG.debug("Removed %d atoms, %d remaining", len(remove), len(keep))
        return len(remove)

    def add_atoms(self, indices, flags=AtomFlag.NoFlag):
        """
        Materialize atom images. Images already present are left as they are.

        Args:
            indices (Iterable[GenericAtomIndex]): the images to add
            flags (AtomFlag, optional): flags for the new rows
        """
        self._append_atoms(indices, flags)
        self.update_bond_graph()

    def delete_atoms_by_offset(self, rows):
        "Remove the given rows"
        self._remove_rows(rows)
        self.update_bond_graph()

    def delete_atoms(self, indices):
        "Remove the given atom images, ignoring any that are not materialized"
        rows = [self.atom_map[idx] for idx in map(GenericAtomIndex._make, indices) if idx in self.atom_map]
        self.delete_atoms_by_offset(rows)

    def delete_fragment_containing_atom(self, row_or_index):
        fragment_index = self.fragment_index_for_atom(row_or_index)
        if not fragment_index.is_valid():
            return
        indices = self.atom_indices_for_fragment(fragment_index)
        if indices:
            self.delete_atoms(indices)

    # Bonds and fragments

    def _build_unit_cell_fragments(self):
        self._unit_cell_fragments = {}
        self._unit_cell_atom_fragments = {}
        for frag in self.kind.unit_cell_fragments():
            self._unit_cell_fragments[frag.index] = frag
            for idx in frag.atom_indices:
                self._unit_cell_atom_fragments[idx.unique] = (frag.index, idx.offset)

    def update_bond_graph(self):
        """
        Re-derive the bond lists and the fragments from the materialized
        atoms and the periodic connectivity. Contact atoms are bonded to
        but never part of a fragment.
        """
        self._check_unique_fragments()
        self._clear_derived()
        self._build_unit_cell_fragments()
        graph = self.kind.connectivity()
        predicate = covalent_only(graph)

        visited = set()
        groups = []
        for row, idx in enumerate(self.atom_offsets):
            if row in visited or self._is_contact(row):
                continue
            members = []

            def visitor(v, predecessor, edge, hkl):
                r = self.atom_map.get(GenericAtomIndex(v, *hkl))
                if r is None or r in visited or self._is_contact(r):
                    return
                visited.add(r)
                members.append(r)

            filtered_connectivity_traversal(graph, idx.unique, visitor, predicate, idx.offset)
            groups.append(members)

        bond_lists = {
            Connection.CovalentBond: self.covalent_bonds,
            Connection.HydrogenBond: self.hydrogen_bonds,
            Connection.CloseContact: self.vdw_contacts,
        }
        seen = set()
        for row, idx in enumerate(self.atom_offsets):
            if self._is_contact(row):
                continue
            for neighbour, edge_id in graph.neighbours(idx.unique):
                e = graph.edges[edge_id]
                target = self.atom_map.get(
                    GenericAtomIndex(neighbour, idx.x + e.h, idx.y + e.k, idx.z + e.l)
                )
                if target is None or e.connection not in bond_lists:
                    continue
                key = (e.connection, min(row, target), max(row, target))
                if key in seen:
                    continue
                seen.add(key)
                bond_lists[e.connection].append((row, target))

        for members in groups:
            if not members:
                continue
            indices = [self.atom_offsets[r] for r in members]
            fragment_index = self.fragment_index_for_general_atom(indices[0])
            if fragment_index in self.fragments:
                # a molecule image split by deleted atoms is still one fragment
                indices = self.fragments[fragment_index].atom_indices + indices
            self.fragments[fragment_index] = self._fragment_image(fragment_index, indices)
        for fragment_index, frag in self.fragments.items():
            for idx in frag.atom_indices:
                self.fragment_for_atom[self.atom_map[idx]] = fragment_index
        LOG.debug(
            "%d atoms: %d fragments, %d covalent bonds, %d hydrogen bonds, %d contacts",
            len(self.atom_offsets),
            len(self.fragments),
            len(self.covalent_bonds),
            len(self.hydrogen_bonds),
            len(self.vdw_contacts),
        )

    def _fragment_image(self, fragment_index, indices) -> Fragment:
        "Fragment for the given atoms of the image `fragment_index` of a unit cell fragment"
        nums, pos, _ = self.kind.atom_data(indices)
        frag = Fragment(
            indices,
            atomic_numbers=nums,
            positions=pos,
            index=fragment_index,
            asymmetric_unit_indices=self.kind.asymmetric_unit_indices(indices),
        )
        uc_frag = self._unit_cell_fragments.get(FragmentIndex(fragment_index.u))
        if uc_frag is not None:
            rotation, translation = uc_frag.asymmetric_fragment_transform
            shift = self.kind.translation(fragment_index.h, fragment_index.k, fragment_index.l)
            frag.asymmetric_fragment_index = uc_frag.asymmetric_fragment_index
            frag.asymmetric_fragment_transform = (rotation, translation + shift)
            frag.state = self.symmetry_unique_fragment_state(uc_frag.asymmetric_fragment_index)
        frag.name = self.fragment_label(fragment_index)
        return frag

    # Completion

    def _fragment_images(self, start, visitor):
        "Call `visitor(idx, row)` for every atom image covalently connected to `start`"
        graph = self.kind.connectivity()

        def visit(v, predecessor, edge, hkl):
            idx = GenericAtomIndex(v, *hkl)
            visitor(idx, self.atom_map.get(idx, -1))

        filtered_connectivity_traversal(
            graph, start.unique, visit, covalent_only(graph), start.offset
        )

    def _missing_fragment_atoms(self, start, missing):
        "Collect images connected to `start` that are not materialized, clearing Contact on those that are"

        def visitor(idx, row):
            if row >= 0:
                self.flags[row] &= ~AtomFlag.Contact
            else:
                missing.setdefault(idx, None)

        self._fragment_images(start, visitor)

    def _fragment_is_complete(self, frag) -> bool:
        missing = []
        if frag.size == 0:
            return True
        self._fragment_images(
            frag.atom_indices[0], lambda idx, row: missing.append(idx) if row < 0 else None
        )
        return not missing

    def complete_fragment_containing(self, row_or_index):
        """
        Materialize every missing atom of the molecule containing an atom.
        New atoms are selected if the molecule was, and contact atoms are
        regenerated if any were shown.
        """
        idx = self._as_generic_index(row_or_index)
        if idx not in self.atom_map:
            return
        have_contacts = self.any_atom_has_flags(AtomFlag.Contact)
        fragment_index = self.fragment_index_for_atom(idx)
        selected = any(
            self.test_atom_flag(x, AtomFlag.Selected)
            for x in self.atom_indices_for_fragment(fragment_index)
        ) or self.test_atom_flag(idx, AtomFlag.Selected)
        missing = {}
        self._missing_fragment_atoms(idx, missing)
        flags = AtomFlag.Selected if selected else AtomFlag.NoFlag
        self._append_atoms(list(missing), flags)
        if have_contacts:
            self._append_contact_atoms()
        self.update_bond_graph()

    def complete_all_fragments(self):
        "Complete every fragment, leaving the selection unchanged"
        have_contacts = self.any_atom_has_flags(AtomFlag.Contact)
        selected = self.atoms_with_flags(AtomFlag.Selected)
        missing = {}
        for row, idx in enumerate(list(self.atom_offsets)):
            if self._is_contact(row):
                continue
            self._missing_fragment_atoms(idx, missing)
        self._append_atoms(list(missing))
        if have_contacts:
            self._append_contact_atoms()
        self.update_bond_graph()
        self.set_flag_for_atoms(selected, AtomFlag.Selected)

    def has_incomplete_fragments(self) -> bool:
        return any(not self._fragment_is_complete(f) for f in self.fragments.values())

    def has_incomplete_selected_fragments(self) -> bool:
        selected = set(self.selected_fragments())
        return any(
            not self._fragment_is_complete(f)
            for fidx, f in self.fragments.items()
            if fidx in selected
        )

    def completed_fragments(self):
        return [fidx for fidx, f in self.fragments.items() if self._fragment_is_complete(f)]

    def selected_fragments(self):
        "Fragments with at least one selected atom"
        return [
            fidx
            for fidx, f in self.fragments.items()
            if any(self.test_atom_flag(idx, AtomFlag.Selected) for idx in f.atom_indices)
        ]

    def delete_incomplete_fragments(self):
        to_delete = []
        for frag in self.fragments.values():
            if not self._fragment_is_complete(frag):
                to_delete.extend(frag.atom_indices)
        if to_delete:
            self.delete_atoms(to_delete)

    # Growth

    def expand_atoms_within_radius(self, radius, selected=False):
        """
        Materialize every atom image within `radius` of the current atoms.

        Args:
            radius (float): distance (Angstroms)
            selected (bool, optional): first reduce the structure to the
                current selection, and expand around that only. The
                selection is kept.
        """
        selected_atoms = []
        if selected:
            self.reset_atoms_and_bonds(to_selection=True)
            selected_atoms = list(self.atom_offsets)
            self.set_flag_for_atoms(selected_atoms, AtomFlag.Selected)
            if abs(radius) < MINIMUM_EXPANSION_RADIUS:
                return
        centres = selected_atoms if selected else list(self.atom_offsets)
        found = self.kind.atoms_within_radius(self, centres, radius)
        if self._append_atoms(found):
            self.update_bond_graph()
        self.set_flag_for_atoms(selected_atoms, AtomFlag.Selected)

    def pack_unit_cells(self, lower=(0.0, 0.0, 0.0), upper=(1.0, 1.0, 1.0)):
        """
        Replace the atoms with every atom image whose fractional
        coordinates lie in [lower, upper]. Slabs use the first two axes only.
        """
        indices = self.kind.pack_indices(lower, upper)
        self._clear_atoms()
        self._append_atoms(indices)
        self.update_bond_graph()

    def build_slab(self, options: SlabGenerationOptions = None):
        """
        Replace the atoms with a block of the periodic structure.

        `Atoms` behaves as `pack_unit_cells`. `UnitCellMolecules` adds
        every unit cell molecule translated to every cell in the bounds.
        `MoleculesCentroid` and `MoleculesCenterOfMass` add whole molecule
        images whose centroid (or centre of mass) lies in the bounds.
        `MoleculesAnyAtom` packs atoms then completes their molecules.
        """
        options = options or SlabGenerationOptions()
        mode = options.mode
        if mode in (SlabGenerationMode.Atoms, SlabGenerationMode.MoleculesAnyAtom):
            self.pack_unit_cells(options.lower, options.upper)
            if mode == SlabGenerationMode.MoleculesAnyAtom:
                self.complete_all_fragments()
            return

        axes = self.periodic_axes
        lower = np.asarray(options.lower, dtype=np.float64)
        upper = np.asarray(options.upper, dtype=np.float64)
        lo = np.floor(lower).astype(int)
        hi = np.ceil(upper).astype(int) - 1
        self._build_unit_cell_fragments()
        indices = []
        if mode == SlabGenerationMode.UnitCellMolecules:
            cells = self.kind.cell_offsets(lo, hi)
            for frag in self._unit_cell_fragments.values():
                for h, k, l in cells.tolist():
                    indices.extend(idx.translated(h, k, l) for idx in frag.atom_indices)
        else:
            cells = self.kind.cell_offsets(lo - 1, hi + 1)
            for frag in self._unit_cell_fragments.values():
                if mode == SlabGenerationMode.MoleculesCentroid:
                    centre = frag.centroid()
                else:
                    centre = frag.center_of_mass()
                frac = self.kind.to_fractional(centre)
                for h, k, l in cells.tolist():
                    c = (frac + (h, k, l))[:axes]
                    if np.all(c >= lower[:axes]) and np.all(c <= upper[:axes]):
                        indices.extend(idx.translated(h, k, l) for idx in frag.atom_indices)
        self._clear_atoms()
        self._append_atoms(indices)
        self.update_bond_graph()

    # Contacts

    def _append_contact_atoms(self) -> int:
        graph = self.kind.connectivity()
        contacts = {}
        for row, idx in enumerate(self.atom_offsets):
            if self._is_contact(row):
                continue
            for neighbour, edge_id in graph.neighbours(idx.unique):
                e = graph.edges[edge_id]
                if e.connection not in (Connection.CloseContact, Connection.HydrogenBond):
                    continue
                target = GenericAtomIndex(neighbour, idx.x + e.h, idx.y + e.k, idx.z + e.l)
                if target not in self.atom_map:
                    contacts.setdefault(target, None)
        LOG.debug("%d contact atoms", len(contacts))
        return self._append_atoms(list(contacts), AtomFlag.Contact)

    def add_vdw_contact_atoms(self):
        "Materialize, flagged Contact, the atoms in close contact with non-contact atoms"
        self._append_contact_atoms()
        self.update_bond_graph()

    def remove_vdw_contact_atoms(self):
        selected = self.atoms_with_flags(AtomFlag.Selected)
        rows = [i for i in range(len(self.atom_offsets)) if self._is_contact(i)]
        self._remove_rows(rows)
        self.update_bond_graph()
        self.set_flag_for_atoms(selected, AtomFlag.Selected)

    def set_show_contacts(self, show: bool):
        self.show_contacts = bool(show)
        if self.show_contacts:
            self.add_vdw_contact_atoms()
        else:
            self.remove_vdw_contact_atoms()

    def reset_atoms_and_bonds(self, to_selection=False):
        """
        Reset the materialized atoms, either to the selected atoms
        (unselecting them) or to the initial atoms of this kind of
        structure: one image of every asymmetric unit atom for crystals,
        the base atoms for slabs.
        """
        if to_selection:
            indices = self.atoms_with_flags(AtomFlag.Selected)
        else:
            indices = self.kind.reset_indices(self)
        self._clear_atoms()
        self._append_atoms(indices)
        self.update_bond_graph()

    def select_fragment_containing(self, row_or_index):
        "Select every materialized atom of the molecule containing an atom"
        idx = self._as_generic_index(row_or_index)
        if idx not in self.atom_map or self.test_atom_flag(idx, AtomFlag.Contact):
            return

        def visitor(image, row):
            if row >= 0:
                self.flags[row] |= AtomFlag.Selected

        self._fragment_images(idx, visitor)

    # Queries

    def atoms_surrounding_atoms(self, indices, radius):
        "Atom images within `radius` of any of `indices`, excluding `indices`"
        indices = {GenericAtomIndex(*x) for x in indices}
        found = self.kind.atoms_within_radius(self, sorted(indices), radius)
        return [idx for idx in found if idx not in indices]

    def atoms_surrounding_atoms_with_flags(self, flags: AtomFlag, radius):
        return self.atoms_surrounding_atoms(self.atoms_with_flags(flags), radius)

    def fragment_index_for_atom(self, row_or_index) -> FragmentIndex:
        row = self._as_row(row_or_index)
        if row < 0 or row >= len(self.fragment_for_atom):
            return NO_FRAGMENT
        return self.fragment_for_atom[row]

    def fragment_index_for_general_atom(self, idx) -> FragmentIndex:
        """
        The fragment image containing an atom image, materialized or not:
        the unit cell fragment of its unit cell atom, translated by the
        atom's offset from its place in that unit cell fragment.
        """
        idx = GenericAtomIndex(*idx)
        if not self._unit_cell_atom_fragments:
            self._build_unit_cell_fragments()
        entry = self._unit_cell_atom_fragments.get(idx.unique)
        if entry is None:
            return NO_FRAGMENT
        fragment_index, (sx, sy, sz) = entry
        return FragmentIndex(fragment_index.u, idx.x - sx, idx.y - sy, idx.z - sz)

    def atom_indices_for_fragment(self, fragment_index):
        frag = self.fragments.get(FragmentIndex(*fragment_index))
        if frag is None:
            return []
        return list(frag.atom_indices)

    def atomic_numbers_for_indices(self, indices) -> np.ndarray:
        nums, _, _ = self.kind.atom_data([GenericAtomIndex(*x) for x in indices])
        return nums

    def atomic_positions_for_indices(self, indices) -> np.ndarray:
        _, pos, _ = self.kind.atom_data([GenericAtomIndex(*x) for x in indices])
        return pos

    def labels_for_indices(self, indices):
        "Labels of materialized atoms, empty for any that are not"
        result = []
        for idx in indices:
            row = self.generic_index_to_index(idx)
            result.append(self.labels[row] if row >= 0 else "")
        return result

    def atomic_displacement_parameters(self, idx):
        "(U11, U22, U33, U12, U13, U23) for an atom image, or None"
        adps = self.kind.adps([GenericAtomIndex(*idx)])
        if adps is None:
            return None
        return adps[0]

    def make_fragment(self, indices) -> Fragment:
        """
        Build a fragment from any set of atom images, identified against
        the known unit cell fragments and, failing that, the symmetry
        unique fragments.
        """
        indices = sorted({GenericAtomIndex(*x) for x in indices})
        nums, pos, _ = self.kind.atom_data(indices)
        frag = Fragment(
            indices,
            atomic_numbers=nums,
            positions=pos,
            asymmetric_unit_indices=self.kind.asymmetric_unit_indices(indices),
        )
        frag.index = self.find_unit_cell_fragment(frag)
        frag.asymmetric_fragment_index, frag.asymmetric_fragment_transform = (
            self.find_unique_fragment(indices)
        )
        frag.state = self.symmetry_unique_fragment_state(frag.asymmetric_fragment_index)
        if frag.index.is_valid():
            frag.name = self.fragment_label(frag.index)
        return frag

    def find_unit_cell_fragment(self, fragment) -> FragmentIndex:
        """
        The image of a unit cell fragment that `fragment` is, i.e. the
        unit cell fragment whose atoms, translated by one integer offset,
        are exactly those of `fragment`.

        Args:
            fragment (Fragment | Iterable[GenericAtomIndex]): the atoms

        Returns:
            FragmentIndex: the fragment image, or FragmentIndex(-1) if none matches
        """
        indices = getattr(fragment, "atom_indices", fragment)
        indices = sorted({GenericAtomIndex(*x) for x in indices})
        if not indices:
            return NO_FRAGMENT
        if not self._unit_cell_fragments:
            self._build_unit_cell_fragments()
        for fragment_index, uc_frag in self._unit_cell_fragments.items():
            reference = uc_frag.atom_indices
            if len(reference) != len(indices):
                continue
            shift = np.subtract(indices[0].offset, reference[0].offset)
            if all(
                a.unique == b.unique and np.array_equal(np.subtract(a.offset, b.offset), shift)
                for a, b in zip(indices, reference)
            ):
                return FragmentIndex(fragment_index.u, *(int(x) for x in shift))
        return NO_FRAGMENT

    def get_transformation(self, from_indices, to_indices):
        """
        The symmetry operation relating two sets of atom images, atom for
        atom once each set is put in a canonical order.

        Returns:
            Tuple[bool, Tuple[np.ndarray, np.ndarray]]: (True, (rotation,
            translation)) in Cartesian coordinates, so that
            `from_positions @ rotation.T + translation` gives the positions
            of `to_indices`, or (False, None)
        """
        from_indices = [GenericAtomIndex(*x) for x in from_indices]
        to_indices = [GenericAtomIndex(*x) for x in to_indices]
        if len(from_indices) != len(to_indices) or not from_indices:
            return False, None
        from_indices = [from_indices[i] for i in self.kind.matching_order(from_indices)]
        to_indices = [to_indices[i] for i in self.kind.matching_order(to_indices)]
        nums_from, _, _ = self.kind.atom_data(from_indices)
        nums_to, _, _ = self.kind.atom_data(to_indices)
        if np.any(nums_from != nums_to):
            return False, None
        return self.kind.symmetry_transform(from_indices, to_indices)

    def find_unique_fragment(self, indices):
        """
        The symmetry unique fragment that a set of atom images is an
        image of, and the transform onto it.

        Returns:
            Tuple[FragmentIndex, Tuple[np.ndarray, np.ndarray]]: the unique
            fragment and the Cartesian (rotation, translation) taking it to
            `indices`. An unmatched set gets the next unused index and the
            identity.
        """
        indices = [GenericAtomIndex(*x) for x in indices]
        fragment_index = self.find_unit_cell_fragment(indices)
        if fragment_index.is_valid():
            uc_frag = self._unit_cell_fragments[FragmentIndex(fragment_index.u)]
            rotation, translation = uc_frag.asymmetric_fragment_transform
            shift = self.kind.translation(fragment_index.h, fragment_index.k, fragment_index.l)
            return uc_frag.asymmetric_fragment_index, (rotation, translation + shift)
        unique = self.symmetry_unique_fragments()
        for unique_index, frag in unique.items():
            found, transform = self.get_transformation(frag.atom_indices, indices)
            if found:
                return unique_index, transform
        LOG.debug("No symmetry unique fragment matches %s", indices)
        return FragmentIndex(len(unique)), identity_transform()

    def get_atom_indices_under_transformation(self, indices, rotation, translation):
        "Atom images at the positions of `indices` after a Cartesian rotation and translation"
        return self.kind.transform_indices(
            self, [GenericAtomIndex(*x) for x in indices], rotation, translation
        )

    def symmetry_unique_fragments(self):
        """
        The symmetry unique fragments, keyed by FragmentIndex. A new
        dictionary is returned on each call.
        """
        result = {}
        for frag in self.kind.symmetry_unique_fragments():
            fragment_index = frag.asymmetric_fragment_index
            copy = Fragment(
                frag.atom_indices,
                atomic_numbers=frag.atomic_numbers,
                positions=frag.positions,
                index=fragment_index,
                asymmetric_fragment_index=fragment_index,
                asymmetric_unit_indices=frag.asymmetric_unit_indices,
                state=self.symmetry_unique_fragment_state(fragment_index),
            )
            result[fragment_index] = copy
        labels = self._unique_fragment_labels(result)
        for fragment_index, frag in result.items():
            frag.name = labels.get(fragment_index, "??")
        return result

    def _check_unique_fragments(self):
        "Forget labels and states of symmetry unique fragments that no longer exist"
        unique = self.kind.symmetry_unique_fragments()
        if unique is not self._unique_fragments_source:
            self._unique_fragments_source = unique
            self._fragment_labels = None
            self._symmetry_unique_states = {}

    def symmetry_unique_fragment_state(self, fragment_index) -> FragmentState:
        self._check_unique_fragments()
        return self._symmetry_unique_states.get(FragmentIndex(*fragment_index), FragmentState())

    def set_symmetry_unique_fragment_state(self, fragment_index, state: FragmentState):
        "Set the charge and multiplicity of a symmetry unique fragment and all its images"
        self._check_unique_fragments()
        fragment_index = FragmentIndex(*fragment_index)
        self._symmetry_unique_states[fragment_index] = state
        for frag in self.fragments.values():
            if frag.asymmetric_fragment_index == fragment_index:
                frag.state = state

    def unit_cell_fragments(self):
        if not self._unit_cell_fragments:
            self._build_unit_cell_fragments()
        return dict(self._unit_cell_fragments)

    def _unique_fragment_labels(self, unique=None):
        """
        Labels for symmetry unique fragments: a number per distinct
        formula, in order of first appearance, and a letter per fragment
        with that formula, e.g. 1A, 1B, 2A.
        """
        self._check_unique_fragments()
        if self._fragment_labels is not None:
            return self._fragment_labels
        if unique is None:
            unique = self.symmetry_unique_fragments()
        labels = {}
        formula_ids = {}
        counts = {}
        for fragment_index, frag in unique.items():
            formula = frag.chemical_formula()
            if formula not in formula_ids:
                formula_ids[formula] = len(formula_ids) + 1
            letter = chr(ord("A") + counts.get(formula, 0))
            counts[formula] = counts.get(formula, 0) + 1
            labels[fragment_index] = f"{formula_ids[formula]}{letter}"
        self._fragment_labels = labels
        return labels

    def fragment_label(self, fragment_index) -> str:
        """
        Label of a fragment image, shared by every image of the same
        symmetry unique fragment, or "??" if it is unknown.
        """
        fragment_index = FragmentIndex(*fragment_index)
        frag = self.fragments.get(fragment_index)
        if frag is not None:
            unique_index = frag.asymmetric_fragment_index
        else:
            uc_frag = self._unit_cell_fragments.get(FragmentIndex(fragment_index.u))
            if uc_frag is None:
                return "??"
            unique_index = uc_frag.asymmetric_fragment_index
        return self._unique_fragment_labels().get(unique_index, "??")

    def occupied_cells(self):
        "The set of cells containing at least one materialized atom"
        if len(self.positions) == 0:
            return set()
        frac = self.kind.to_fractional(self.positions)
        return {self.kind.cell_index(f) for f in frac}

    def chemical_formula(self) -> str:
        return self.kind.chemical_formula()

    def cell_vectors(self) -> np.ndarray:
        "(3, 3) cell vectors as rows, the surface vectors for slabs"
        return self.kind.cell_vectors()

    def elements(self):
        return [Element[int(n)] for n in self.atomic_numbers]

    # Persistence

    def to_dict(self):
        d = {
            "structure_type": self.kind.structure_type,
            "name": self.name,
            "atomIndices": [idx.to_list() for idx in self.atom_offsets],
            "flags": [f.value for f in self.flags],
        }
        d.update(self.kind.to_dict())
        return d

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    def load(self, d) -> bool:
        """
        Restore the materialized atoms from the output of `to_dict`. The
        crystal definition is not part of the summary and is taken from
        this structure. Nothing is changed unless the whole summary is valid.

        Returns:
            bool: True if the structure was loaded
        """
        try:
            structure_type = d.get("structure_type", self.kind.structure_type)
            if structure_type != self.kind.structure_type:
                raise ValueError(
                    f"Cannot load a {structure_type} into a {self.kind.structure_type}"
                )
            kind = self.kind.parse_state(d)
            indices = [GenericAtomIndex.from_list(x) for x in d["atomIndices"]]
            flags = [AtomFlag(integer_value(f)) for f in d.get("flags", [0] * len(indices))]
            if len(flags) != len(indices):
                raise ValueError("Need one set of flags per atom")
            if len(set(indices)) != len(indices):
                raise ValueError("Duplicate atom indices")
            invalid = [idx for idx in indices if not kind.is_valid_index(idx)]
            if invalid:
                raise ValueError(f"Invalid atom indices {invalid[:5]}")
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            LOG.error("Could not load %s: %s", self.kind.structure_type, e)
            return False
        self.kind = kind
        self.name = d.get("name", self.name)
        self._fragment_labels = None
        self._clear_atoms()
        self._append_atoms(indices)
        self.flags = flags
        self.show_contacts = any(f & AtomFlag.Contact for f in flags)
        self.update_bond_graph()
        return True

    def load_json(self, s) -> bool:
        try:
            d = json.loads(s)
        except json.JSONDecodeError as e:
            LOG.error("Could not parse structure JSON: %s", e)
            return False
        return self.load(d)

    def __repr__(self):
        return "<PeriodicStructure {}: {} atoms, {} fragments>".format(
            self.kind.structure_type, self.number_of_atoms(), len(self.fragments)
        )


def CrystalStructure(crystal, name=None) -> PeriodicStructure:
    """
    A 3-periodic structure viewing `crystal`, initialised with one image
    of every asymmetric unit atom.
    """
    structure = PeriodicStructure(CrystalKind(crystal), name=name or "crystal")
    structure.reset_atoms_and_bonds()
    return structure


def SlabStructure(
    atomic_numbers,
    positions,
    surface_vectors,
    labels=None,
    miller_plane=(0, 0, 1),
    slab_thickness=0.0,
    cut_offset=0.0,
    termination="auto",
    name=None,
) -> PeriodicStructure:
    """
    A 2-periodic structure from its base atoms and surface vectors,
    initialised with the base atoms.

    Args:
        atomic_numbers (array_like): (N,) atomic numbers of the base atoms
        positions (array_like): (N, 3) Cartesian positions of the base atoms
        surface_vectors (array_like): (3, 3) rows a, b and depth

    Returns:
        PeriodicStructure: the slab
    """
    kind = SlabKind(
        atomic_numbers,
        positions,
        surface_vectors,
        labels=labels,
        miller_plane=miller_plane,
        slab_thickness=slab_thickness,
        cut_offset=cut_offset,
        termination=termination,
    )
    structure = PeriodicStructure(kind, name=name or "surface_cut")
    structure.reset_atoms_and_bonds()
    return structure
