"""Transition graph construction using NetworkX.

Snapshots are nodes keyed by hash; transitions are directed edges
``from_hash -> to_hash`` keyed by the transition's own hash.  Two different
transitions may connect the same pair of snapshots, so the graph is a
:class:`networkx.MultiDiGraph`.  The empty hash ``""`` is a node whenever an
initial transition exists.
"""

from __future__ import annotations

import logging

import networkx as nx

from schema_engine.store.base import SchemaStore

logger = logging.getLogger(__name__)


def build_transition_graph(store: SchemaStore) -> nx.MultiDiGraph:
    """Build the full transition graph recorded in *store*.

    Node data includes the :class:`Snapshot` under ``"snapshot"`` when the
    snapshot is stored (the empty-hash node has none).  Edge data includes
    the :class:`Transition` under ``"transition"``.

    Parameters
    ----------
    store:
        Any :class:`~schema_engine.store.base.SchemaStore`.

    Returns
    -------
    nx.MultiDiGraph
        One node per snapshot hash, one edge per transition.
    """
    graph = nx.MultiDiGraph()

    for snapshot in store.get_all_snapshots():
        graph.add_node(snapshot.hash, snapshot=snapshot)

    for transition in store.get_all_transitions():
        for endpoint in (transition.from_hash, transition.to_hash):
            if endpoint not in graph:
                graph.add_node(endpoint)
        graph.add_edge(
            transition.from_hash,
            transition.to_hash,
            key=transition.hash,
            transition=transition,
        )

    logger.debug(
        "Built transition graph: %d snapshots, %d transitions",
        graph.number_of_nodes(),
        graph.number_of_edges(),
    )
    return graph
