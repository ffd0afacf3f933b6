"""
Dependency Graph
================

Explicit record of which tracker read which other tracker, per layer
and relation.

Nodes are (node_id, layer) pairs; node ids are stable indices handed
out by the NodeArena, so the graph never holds tracker objects. An edge
provider -> dependent carries the set of relations the dependent
resolved through the provider. Successor order is registration order.

Invalidation is a breadth-first traversal over an explicit work queue:
dropping a dependent's relation also drops the same relation of
everything that resolved through that dependent.
"""

from __future__ import annotations
from collections import deque
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple
import logging

import networkx as nx

from ..contracts.base import DependencyKind, InvariantViolation

logger = logging.getLogger(__name__)


class NodeArena:
    """Stable integer addresses for trackers."""

    def __init__(self):
        self._nodes: List[Any] = []

    def register(self, node: Any) -> int:
        self._nodes.append(node)
        return len(self._nodes) - 1

    def __getitem__(self, node_id: int) -> Any:
        try:
            return self._nodes[node_id]
        except IndexError:
            raise InvariantViolation(f"Node {node_id} is not in the arena") from None

    def __len__(self) -> int:
        return len(self._nodes)


class DependencyGraph:
    """
    Directed graph of dependent relationships.

    Each record is written only on behalf of the dependent that
    performed the read.
    """

    def __init__(self, arena: NodeArena):
        self._arena = arena
        self._graph = nx.DiGraph()

    def add(self, provider_id: int, dependent_id: int, layer: int, kind: DependencyKind) -> None:
        """Record that `dependent` resolved `kind` at `layer` through `provider`."""
        source = (provider_id, layer)
        target = (dependent_id, layer)
        if self._graph.has_edge(source, target):
            self._graph.edges[source, target]["relations"].add(kind)
        else:
            self._graph.add_edge(source, target, relations={kind})

    def dependents(self, provider_id: int, layer: int) -> List[Tuple[int, FrozenSet[DependencyKind]]]:
        """Dependents of a provider at a layer, in registration order."""
        source = (provider_id, layer)
        if source not in self._graph:
            return []
        return [
            (target[0], frozenset(data["relations"]))
            for target, data in self._graph.adj[source].items()
        ]

    def providers(self, dependent_id: int, layer: int) -> List[int]:
        target = (dependent_id, layer)
        if target not in self._graph:
            return []
        return [source[0] for source in self._graph.predecessors(target)]

    def invalidate(
        self,
        provider_id: int,
        layer: int,
        kinds: Optional[Iterable[DependencyKind]] = None,
    ) -> List[int]:
        """
        Drop cached relations that depend on a provider.

        `kinds` limits the traversal to those relations (None = all).
        Every affected dependent forgets the relations it resolved
        through the provider, and the same relations are invalidated
        transitively through it. Records are removed as they are
        invalidated; the dependent re-registers when it resolves again.

        Returns affected dependent ids in the order they were reached.
        """
        wanted: Optional[Set[DependencyKind]] = set(kinds) if kinds is not None else None
        queue = deque([(provider_id, wanted)])
        seen: Set[Tuple[int, DependencyKind]] = set()
        affected: Dict[int, None] = {}

        while queue:
            node_id, filter_kinds = queue.popleft()
            source = (node_id, layer)
            if source not in self._graph:
                continue

            for target, data in list(self._graph.adj[source].items()):
                relations: Set[DependencyKind] = data["relations"]
                hit = set(relations) if filter_kinds is None else relations & filter_kinds
                if not hit:
                    continue

                relations -= hit
                if not relations:
                    self._graph.remove_edge(source, target)

                dependent_id = target[0]
                self._arena[dependent_id].forget(layer, hit)
                affected.setdefault(dependent_id, None)

                fresh = {kind for kind in hit if (dependent_id, kind) not in seen}
                seen.update((dependent_id, kind) for kind in fresh)
                if fresh:
                    queue.append((dependent_id, fresh))

        if affected:
            logger.debug(
                "Invalidated %d dependents of node %d at layer %d",
                len(affected), provider_id, layer,
            )
        return list(affected)

    def detach(self, node_id: int, layers: Iterable[int]) -> None:
        """Remove every record naming `node_id` as provider or dependent."""
        for layer in layers:
            node = (node_id, layer)
            if node in self._graph:
                self._graph.remove_node(node)

    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def clear(self) -> None:
        self._graph.clear()
