"""
Periodic bond graph over the atoms of a unit cell.

Vertices are unit cell atom indices. Each edge points from a source atom
in the reference cell to the image of a target atom in cell `(h, k, l)`,
and every edge is stored with its reverse (with negated `(h, k, l)`).
"""

import enum
import logging
from collections import deque
from typing import NamedTuple
import numpy as np
from scipy.spatial import cKDTree as KDTree
from cxpy.core.element import cov_radii, vdw_radii, can_hydrogen_bond

LOG = logging.getLogger(__name__)

COVALENT_TOLERANCE = 0.4
VDW_TOLERANCE = 0.6


class Connection(enum.Enum):
    CovalentBond = 0
    HydrogenBond = 1
    CloseContact = 2
    DontBond = 3


class PeriodicEdge(NamedTuple):
    dist: float
    source: int
    target: int
    source_asym: int
    target_asym: int
    h: int
    k: int
    l: int
    connection: Connection

    @property
    def hkl(self):
        return (self.h, self.k, self.l)

    def reversed(self) -> "PeriodicEdge":
        return PeriodicEdge(
            self.dist,
            self.target,
            self.source,
            self.target_asym,
            self.source_asym,
            -self.h,
            -self.k,
            -self.l,
            self.connection,
        )


class BondOverride(NamedTuple):
    "Key for a user specified connection between two unit cell atoms"
    source: int
    target: int
    h: int = 0
    k: int = 0
    l: int = 0

    def reversed(self) -> "BondOverride":
        return BondOverride(self.target, self.source, -self.h, -self.k, -self.l)


class PeriodicBondGraph:
    """
    Directed multigraph of periodic connections between unit cell atoms.

    Attributes:
        adjacency (Dict[int, List[Tuple[int, int]]]): for each vertex the
            `(neighbour, edge_id)` pairs in insertion order
        edges (Dict[int, PeriodicEdge]): edge data keyed by edge id
    """

    def __init__(self):
        self.adjacency = {}
        self.edges = {}

    def add_vertex(self, v: int) -> int:
        self.adjacency.setdefault(v, [])
        return v

    def add_edge(self, edge: PeriodicEdge) -> int:
        "Add a single directed edge, returning its id"
        edge_id = len(self.edges)
        self.edges[edge_id] = edge
        self.add_vertex(edge.target)
        self.add_vertex(edge.source)
        self.adjacency[edge.source].append((edge.target, edge_id))
        return edge_id

    def add_bond(self, edge: PeriodicEdge):
        "Add an edge and its reverse, returning both ids"
        return self.add_edge(edge), self.add_edge(edge.reversed())

    def num_vertices(self) -> int:
        return len(self.adjacency)

    def num_edges(self) -> int:
        return len(self.edges)

    def vertices(self):
        return list(self.adjacency.keys())

    def neighbours(self, v):
        "`(neighbour, edge_id)` pairs for vertex `v`"
        return self.adjacency.get(v, [])

    def edges_of_type(self, connection: Connection):
        return [(i, e) for i, e in self.edges.items() if e.connection == connection]

    def to_dict(self):
        return {
            "vertices": self.vertices(),
            "edges": [
                [e.dist, e.source, e.target, e.source_asym, e.target_asym,
                 e.h, e.k, e.l, e.connection.name]
                for e in self.edges.values()
            ],
        }

    @classmethod
    def from_dict(cls, d):
        graph = cls()
        for v in d.get("vertices", []):
            graph.add_vertex(int(v))
        for row in d.get("edges", []):
            *values, conn = row
            dist, *ints = values
            graph.add_edge(PeriodicEdge(float(dist), *(int(x) for x in ints), Connection[conn]))
        return graph

    def __repr__(self):
        return "<PeriodicBondGraph: {} vertices, {} edges>".format(
            self.num_vertices(), self.num_edges()
        )


def covalent_only(graph: PeriodicBondGraph):
    "Edge predicate accepting only covalent bonds"
    return connection_in(graph, Connection.CovalentBond)


def connection_in(graph: PeriodicBondGraph, *kinds):
    "Edge predicate accepting edges of any of the given connection kinds"
    kinds = frozenset(kinds)

    def predicate(edge_id):
        return graph.edges[edge_id].connection in kinds

    return predicate


def filtered_connectivity_traversal(
    graph: PeriodicBondGraph, source, visitor, predicate=None, source_hkl=(0, 0, 0)
):
    """
    Breadth first walk of the periodic graph from `source`, accumulating
    the cell offset along the path to each vertex.

    Each vertex is visited at most once regardless of how many offsets
    reach it, so for a vertex reachable by more than one path the offset
    of the first path dequeued is reported.

    Args:
        graph (PeriodicBondGraph): the graph to walk
        source (int): the starting vertex
        visitor (Callable): called as `visitor(vertex, predecessor, edge_id, hkl)`
            once for each newly visited vertex; `edge_id` is None for the
            source, whose predecessor is itself
        predicate (Callable, optional): called with an edge id, only edges
            for which it returns True are followed. Default follows all edges.
        source_hkl (Tuple[int, int, int], optional): the offset of the source

    Returns:
        List[int]: vertices in the order they were visited
    """
    visited = set()
    order = []
    queue = deque([(source, source, None, tuple(int(x) for x in source_hkl))])
    while queue:
        v, predecessor, edge_id, hkl = queue.popleft()
        if v in visited:
            continue
        visited.add(v)
        order.append(v)
        visitor(v, predecessor, edge_id, hkl)
        for neighbour, neighbour_edge in graph.neighbours(v):
            if neighbour in visited:
                continue
            if predicate is not None and not predicate(neighbour_edge):
                continue
            e = graph.edges[neighbour_edge]
            queue.append(
                (neighbour, v, neighbour_edge, (hkl[0] + e.h, hkl[1] + e.k, hkl[2] + e.l))
            )
    return order


def build_unit_cell_connectivity(
    crystal,
    covalent_tolerance=COVALENT_TOLERANCE,
    vdw_tolerance=VDW_TOLERANCE,
    bond_overrides=None,
) -> PeriodicBondGraph:
    """
    Build the periodic bond graph for the unit cell atoms of a crystal
    from interatomic distances.

    A pair is covalently bonded if `d < cov_a + cov_b + covalent_tolerance`,
    otherwise a close contact if `d < vdw_a + vdw_b + vdw_tolerance`, with
    an additional hydrogen bond edge if the pair is H with one of N, O or F.

    Args:
        crystal (Crystal): the crystal
        covalent_tolerance (float, optional): covalent bonding tolerance (Angstroms)
        vdw_tolerance (float, optional): close contact tolerance (Angstroms)
        bond_overrides (Dict[BondOverride, Connection], optional): connections
            to force for specific pairs, taking precedence over distance
            criteria. `Connection.DontBond` suppresses an edge.

    Returns:
        PeriodicBondGraph: the connectivity of the unit cell
    """
    uc_atoms = crystal.unit_cell_atoms()
    slab = crystal.slab(bounds=((-2, -2, -2), (2, 2, 2)))
    n_uc = slab["n_uc"]
    nums = uc_atoms["atomic_numbers"]
    asym = uc_atoms["asym_atom"]
    graph = PeriodicBondGraph()
    for i in range(n_uc):
        graph.add_vertex(i)
    if n_uc == 0:
        return graph

    cov = cov_radii(nums)
    vdw = vdw_radii(nums)
    max_dist = 2 * np.max(vdw) + vdw_tolerance
    overrides = {}
    for key, conn in (bond_overrides or {}).items():
        key = BondOverride(*key)
        if key.source > key.target:
            key = key.reversed()
        overrides[key] = conn

    tree = KDTree(slab["cart_pos"])
    uc_tree = KDTree(uc_atoms["cart_pos"])
    dist = uc_tree.sparse_distance_matrix(tree, max_distance=max_dist)
    hkls = slab["hkl"]

    def add(conn, l, r, d, h, k, lz):
        graph.add_bond(PeriodicEdge(d, l, r, int(asym[l]), int(asym[r]), h, k, lz, conn))
        if conn == Connection.CloseContact and can_hydrogen_bond(nums[l], nums[r]):
            graph.add_bond(
                PeriodicEdge(
                    d, l, r, int(asym[l]), int(asym[r]), h, k, lz, Connection.HydrogenBond
                )
            )

    for (l, idx), d in sorted(dist.items()):
        r = idx % n_uc
        if r < l:
            continue
        h, k, lz = (int(x) for x in hkls[idx])
        # a periodic self bond is found from both directions, keep one
        if r == l and (h, k, lz) <= (0, 0, 0):
            continue
        key = BondOverride(int(l), int(r), h, k, lz)
        if key in overrides:
            conn = overrides.pop(key)
            overrides.pop(key.reversed(), None)
        elif d < cov[l] + cov[r] + covalent_tolerance:
            conn = Connection.CovalentBond
        elif d < vdw[l] + vdw[r] + vdw_tolerance:
            conn = Connection.CloseContact
        else:
            continue
        if conn != Connection.DontBond:
            add(conn, int(l), int(r), float(d), h, k, lz)

    for key, conn in overrides.items():
        if conn == Connection.DontBond or key.source > key.target:
            continue
        LOG.debug("Adding bond override %s (%s) not found by distance", key, conn.name)
        add(conn, key.source, key.target, 0.0, key.h, key.k, key.l)

    LOG.debug(
        "Unit cell connectivity: %d vertices, %d covalent, %d close contact edges",
        graph.num_vertices(),
        len(graph.edges_of_type(Connection.CovalentBond)),
        len(graph.edges_of_type(Connection.CloseContact)),
    )
    return graph
