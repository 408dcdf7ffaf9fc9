import logging
import unittest
import numpy as np
from cxpy.crystal.bond_graph import (
    BondOverride,
    Connection,
    PeriodicBondGraph,
    PeriodicEdge,
    connection_in,
    covalent_only,
    filtered_connectivity_traversal,
)
from .. import hydrogen_chain_crystal, hydrogen_crystal, water_crystal

LOG = logging.getLogger(__name__)


def edge(source, target, hkl=(0, 0, 0), connection=Connection.CovalentBond):
    return PeriodicEdge(1.0, source, target, source, target, *hkl, connection)


class PeriodicBondGraphTestCase(unittest.TestCase):
    def test_add_bond(self):
        g = PeriodicBondGraph()
        g.add_vertex(2)
        forward, backward = g.add_bond(edge(0, 1, (1, 0, 0)))
        self.assertEqual(g.num_vertices(), 3)
        self.assertEqual(g.num_edges(), 2)
        self.assertEqual(g.edges[backward].hkl, (-1, 0, 0))
        self.assertEqual(g.neighbours(0), [(1, forward)])
        self.assertEqual(g.neighbours(5), [])

    def test_dict_round_trip(self):
        g = PeriodicBondGraph()
        g.add_bond(edge(0, 1, (0, 1, 0), Connection.HydrogenBond))
        g2 = PeriodicBondGraph.from_dict(g.to_dict())
        self.assertEqual(g2.num_edges(), 2)
        self.assertEqual(g2.edges[0], g.edges[0])

    def test_traversal_accumulates_offsets(self):
        g = PeriodicBondGraph()
        g.add_bond(edge(0, 1, (1, 0, 0)))
        g.add_bond(edge(1, 2, (0, 1, 0)))
        visited = {}
        order = filtered_connectivity_traversal(
            g, 0, lambda v, p, e, hkl: visited.__setitem__(v, hkl), source_hkl=(0, 0, 2)
        )
        self.assertEqual(order, [0, 1, 2])
        self.assertEqual(visited, {0: (0, 0, 2), 1: (1, 0, 2), 2: (1, 1, 2)})

    def test_traversal_visits_once_on_cycles(self):
        # triangle with a periodic edge: two paths with different offsets to vertex 2
        g = PeriodicBondGraph()
        g.add_bond(edge(0, 1))
        g.add_bond(edge(0, 2, (0, 0, 1)))
        g.add_bond(edge(1, 2))
        visits = []
        order = filtered_connectivity_traversal(
            g, 0, lambda v, p, e, hkl: visits.append((v, p, hkl))
        )
        self.assertEqual(sorted(order), [0, 1, 2])
        self.assertEqual(len(visits), 3)
        # first path dequeued wins
        self.assertIn((2, 0, (0, 0, 1)), visits)
        self.assertEqual(visits[0], (0, 0, (0, 0, 0)))

    def test_predicates(self):
        g = PeriodicBondGraph()
        g.add_bond(edge(0, 1))
        g.add_bond(edge(1, 2, connection=Connection.CloseContact))
        order = filtered_connectivity_traversal(g, 0, lambda *args: None, covalent_only(g))
        self.assertEqual(order, [0, 1])
        predicate = connection_in(g, Connection.CovalentBond, Connection.CloseContact)
        order = filtered_connectivity_traversal(g, 0, lambda *args: None, predicate)
        self.assertEqual(order, [0, 1, 2])


class UnitCellConnectivityTestCase(unittest.TestCase):
    def test_water(self):
        g = water_crystal().unit_cell_connectivity()
        self.assertEqual(g.num_vertices(), 12)
        # four molecules with two O-H bonds, stored in both directions
        self.assertEqual(len(g.edges_of_type(Connection.CovalentBond)), 16)
        for _, e in g.edges_of_type(Connection.HydrogenBond):
            self.assertEqual(
                sorted((e.source_asym, e.target_asym))[0], 0, "H bonds involve the oxygen"
            )

    def test_bond_across_boundary(self):
        g = hydrogen_crystal().unit_cell_connectivity()
        covalent = g.edges_of_type(Connection.CovalentBond)
        self.assertEqual(len(covalent), 2)
        hkls = sorted(e.hkl for _, e in covalent)
        self.assertEqual(hkls, [(-1, 0, 0), (1, 0, 0)])

    def test_periodic_self_bond_deduplicated(self):
        g = hydrogen_chain_crystal().unit_cell_connectivity()
        covalent = g.edges_of_type(Connection.CovalentBond)
        self.assertEqual(len(covalent), 2)
        self.assertEqual(sorted(e.hkl for _, e in covalent), [(-1, 0, 0), (1, 0, 0)])

    def test_bond_overrides(self):
        c = hydrogen_crystal()
        g = c.rebuild_connectivity(
            bond_overrides={BondOverride(0, 1, 1, 0, 0): Connection.DontBond}
        )
        self.assertEqual(len(g.edges_of_type(Connection.CovalentBond)), 0)
        self.assertEqual(len(c.unit_cell_molecules()), 2)
        g = c.rebuild_connectivity(covalent_tolerance=0.4)
        self.assertEqual(len(g.edges_of_type(Connection.CovalentBond)), 2)

    def test_tolerances(self):
        c = hydrogen_crystal()
        g = c.rebuild_connectivity(covalent_tolerance=0.0)
        self.assertEqual(len(g.edges_of_type(Connection.CovalentBond)), 0)
        self.assertEqual(len(g.edges_of_type(Connection.CloseContact)), 2)
        np.testing.assert_allclose([e.dist for e in g.edges.values()], [0.74, 0.74])
