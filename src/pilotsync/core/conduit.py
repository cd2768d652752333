"""Conduits: registered collections and the order they are synced in."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from ..backends.base import CollectionDescriptor


class ConduitOrderError(Exception):
    """Raised when conduit ordering constraints form a cycle."""

    def __init__(self, message: str, cycle: Sequence[str] = ()):
        """Keep the conduit ids involved in the cycle."""
        super().__init__(message)
        self.cycle = list(cycle)


@dataclass
class Conduit:
    """A collection registered with the engine, with its ordering constraints."""

    descriptor: CollectionDescriptor
    enabled: bool = True
    run_after: Tuple[str, ...] = field(default_factory=tuple)
    run_before: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def id(self) -> str:
        """Collection id of this conduit."""
        return self.descriptor.id


def order_conduits(conduits: Sequence[Conduit]) -> List[Conduit]:
    """Order conduits so every run-after/run-before constraint holds.

    Independent conduits keep their registration order. Constraints naming
    unregistered or disabled conduits are ignored.

    Raises:
        ConduitOrderError: If the constraints form a cycle
    """
    by_id: Dict[str, Conduit] = {conduit.id: conduit for conduit in conduits}
    position = {conduit.id: index for index, conduit in enumerate(conduits)}
    edges: Dict[str, Set[str]] = {conduit_id: set() for conduit_id in by_id}

    for conduit in conduits:
        for before in conduit.run_after:
            if before in by_id and before != conduit.id:
                edges[before].add(conduit.id)
        for after in conduit.run_before:
            if after in by_id and after != conduit.id:
                edges[conduit.id].add(after)

    in_degree = {conduit_id: 0 for conduit_id in by_id}
    for targets in edges.values():
        for target in targets:
            in_degree[target] += 1

    ready = [cid for cid, deg in in_degree.items() if deg == 0]
    ordered: List[Conduit] = []

    while ready:
        ready.sort(key=position.get)
        current = ready.pop(0)
        ordered.append(by_id[current])
        for target in edges[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                ready.append(target)

    if len(ordered) != len(by_id):
        cycle = _find_cycle(edges, {cid for cid, deg in in_degree.items() if deg > 0}, position)
        raise ConduitOrderError(f"Conduit ordering cycle: {' -> '.join(cycle)}", cycle)

    return ordered


def _find_cycle(edges: Dict[str, Set[str]], candidates: Set[str], position: Dict[str, int]) -> List[str]:
    visiting: List[str] = []
    visited: Set[str] = set()

    def _visit(node: str) -> List[str]:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in visited:
            return []
        visiting.append(node)
        for target in sorted(edges[node] & candidates, key=position.get):
            found = _visit(target)
            if found:
                return found
        visiting.pop()
        visited.add(node)
        return []

    for start in sorted(candidates, key=position.get):
        cycle = _visit(start)
        if cycle:
            return cycle
    return sorted(candidates, key=position.get)
