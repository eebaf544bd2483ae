"""
Graph validation for workflow DAGs.

Invariants checked by validate_graph:
  1. exactly one Start node
  2. an input port accepts one edge (branch merges excepted)
  3. a Condition's true/false ports each feed at most one edge
  4. no directed cycle
  5. several parents only when the extra ones are Condition branches
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .models import BRANCH_PORTS, Edge, JobKind, Node, PortDirection


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ConnectionValidation:
    ok: bool
    reason: Optional[str] = None


def _name(node: Optional[Node], node_id: str) -> str:
    return node.label if node and node.label else node_id


def _is_branch_edge(edge: Edge, nodes_by_id: Dict[str, Node]) -> bool:
    source = nodes_by_id.get(edge.source)
    return (
        source is not None
        and source.kind == JobKind.CONDITION
        and edge.source_port in BRANCH_PORTS
    )


def _adjacency(edges: Iterable[Edge]) -> Dict[str, List[str]]:
    graph: Dict[str, List[str]] = {}
    for edge in edges:
        graph.setdefault(edge.source, []).append(edge.target)
    return graph


def _has_cycle(graph: Dict[str, List[str]]) -> bool:
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    # iterative DFS; each frame is (node, iterator over its neighbours)
    for root in list(graph):
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        stack = [(root, iter(graph.get(root, [])))]
        while stack:
            node, neighbours = stack[-1]
            advanced = False
            for neighbour in neighbours:
                if neighbour in on_stack:
                    return True   # back edge
                if neighbour not in visited:
                    visited.add(neighbour)
                    on_stack.add(neighbour)
                    stack.append((neighbour, iter(graph.get(neighbour, []))))
                    advanced = True
                    break
            if not advanced:
                on_stack.discard(node)
                stack.pop()
    return False


def would_create_cycle(edges: List[Edge], source: str, target: str) -> bool:
    """Check whether adding source -> target to edges would close a cycle."""
    graph = _adjacency(edges)
    graph.setdefault(source, []).append(target)
    return _has_cycle(graph)


def find_root_nodes(nodes: List[Node], edges: List[Edge]) -> List[str]:
    with_parents = {edge.target for edge in edges}
    return [node.id for node in nodes if node.id not in with_parents]


def reachable_from(start_ids: Iterable[str], edges: List[Edge]) -> Set[str]:
    """Breadth-first set of node ids reachable from start_ids."""
    graph = _adjacency(edges)
    reachable: Set[str] = set()
    queue = deque(start_ids)
    while queue:
        current = queue.popleft()
        if current in reachable:
            continue
        reachable.add(current)
        for neighbour in graph.get(current, []):
            if neighbour not in reachable:
                queue.append(neighbour)
    return reachable


def topological_order(nodes: List[Node], edges: List[Edge]) -> List[str]:
    """
    Kahn's algorithm. Nodes on a cycle are left out of the result, so a
    result shorter than nodes means the graph is cyclic.
    """
    indegree = {node.id: 0 for node in nodes}
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        if edge.source not in indegree or edge.target not in indegree:
            continue
        adjacency[edge.source].append(edge.target)
        indegree[edge.target] += 1

    queue = deque(node_id for node_id, deg in indegree.items() if deg == 0)
    order: List[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for neighbour in adjacency[current]:
            indegree[neighbour] -= 1
            if indegree[neighbour] == 0:
                queue.append(neighbour)
    return order


def find_nodes_needing_connections(nodes: List[Node], edges: List[Edge]) -> List[Dict[str, object]]:
    result = []
    for node in nodes:
        missing = [
            port.id for port in node.input_ports
            if port.required and not any(e.target == node.id and e.target_port == port.id for e in edges)
        ]
        if missing:
            result.append({"node_id": node.id, "missing_ports": missing})
    return result


def validate_graph(nodes: List[Node], edges: List[Edge]) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []
    nodes_by_id = {node.id: node for node in nodes}

    # 1. exactly one Start node
    starts = [node for node in nodes if node.kind == JobKind.START]
    if not starts:
        errors.append("Workflow must have exactly one Start node (found none)")
    elif len(starts) > 1:
        errors.append(f"Workflow must have exactly one Start node (found {len(starts)})")

    known_edges: List[Edge] = []
    for edge in edges:
        source = nodes_by_id.get(edge.source)
        target = nodes_by_id.get(edge.target)
        if source is None or target is None:
            errors.append(f"Edge references unknown node: {edge.source} -> {edge.target}")
            continue
        if source.port(edge.source_port, PortDirection.OUTPUT) is None:
            errors.append(f'Node "{_name(source, source.id)}" has no output port "{edge.source_port}"')
            continue
        if target.port(edge.target_port, PortDirection.INPUT) is None:
            errors.append(f'Node "{_name(target, target.id)}" has no input port "{edge.target_port}"')
            continue
        known_edges.append(edge)

    # 2. and 5. input occupancy / multiple parents, honouring branch merges
    incoming: Dict[str, List[Edge]] = {}
    for edge in known_edges:
        incoming.setdefault(edge.target, []).append(edge)

    for node_id, node_edges in incoming.items():
        node = nodes_by_id[node_id]
        plain = [e for e in node_edges if not _is_branch_edge(e, nodes_by_id)]
        if len(plain) > 1:
            parents = ", ".join(e.source for e in plain)
            errors.append(
                f'Node "{_name(node, node_id)}" has multiple parents from non-conditional sources ({parents}). '
                "Each node can only have one parent, unless connected through conditional branching."
            )

    # 3. one edge per Condition branch
    for node in nodes:
        if node.kind != JobKind.CONDITION:
            continue
        for branch in BRANCH_PORTS:
            count = sum(1 for e in known_edges if e.source == node.id and e.source_port == branch)
            if count > 1:
                errors.append(
                    f'The "{branch}" branch of condition "{_name(node, node.id)}" has {count} connections; only one is allowed'
                )

    # 4. no directed cycle
    if _has_cycle(_adjacency(known_edges)):
        errors.append("Workflow contains cycles. The graph must be acyclic.")

    for entry in find_nodes_needing_connections(nodes, known_edges):
        node = nodes_by_id[entry["node_id"]]
        errors.append(f'Node "{_name(node, node.id)}" is missing required input connection')

    connected = {e.source for e in known_edges} | {e.target for e in known_edges}
    isolated = [n for n in nodes if n.kind != JobKind.START and n.id not in connected]
    if isolated:
        warnings.append(f"{len(isolated)} isolated node(s) found")

    if starts:
        reachable = reachable_from([s.id for s in starts], known_edges)
        unreachable = [n for n in nodes if n.kind != JobKind.START and n.id not in reachable]
        if unreachable:
            warnings.append(f"{len(unreachable)} unreachable node(s) found")

    dangling = [
        n for n in nodes
        if any(not any(e.source == n.id and e.source_port == p.id for e in known_edges) for p in n.output_ports)
    ]
    if dangling:
        warnings.append(f"{len(dangling)} node(s) have unconnected outputs")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_connection(
    source: Node,
    source_port: str,
    target: Node,
    target_port: str,
    existing_edges: List[Edge],
) -> ConnectionValidation:
    """Check whether a proposed edge may be added to an existing graph."""
    if source.port(source_port, PortDirection.OUTPUT) is None:
        return ConnectionValidation(False, "Source port does not exist")
    if target.port(target_port, PortDirection.INPUT) is None:
        return ConnectionValidation(False, "Target port does not exist")
    if source.id == target.id:
        return ConnectionValidation(False, "Cannot connect node to itself")

    is_branch = source.kind == JobKind.CONDITION and source_port in BRANCH_PORTS
    if is_branch and any(e.source == source.id and e.source_port == source_port for e in existing_edges):
        return ConnectionValidation(False, f'The "{source_port}" branch of this condition already has a connection')

    # branch edges (true/false ports) do not occupy an input
    occupied = any(
        e.target == target.id and e.target_port == target_port and e.source_port not in BRANCH_PORTS
        for e in existing_edges
    )
    if occupied and not is_branch:
        return ConnectionValidation(False, "Target input is already connected")

    if would_create_cycle(existing_edges, source.id, target.id):
        return ConnectionValidation(False, "Connection would create a cycle (DAG violation)")

    return ConnectionValidation(True)
