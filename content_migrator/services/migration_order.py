"""Migration order: apply collections so one sides land before many sides."""

import heapq
import logging
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from ..models.migration import MigrationPlan
from ..models.schema import RelationType
from .relation_graph import SYSTEM_INTERFACES, RelationGraph

logger = logging.getLogger(__name__)

Edge = Tuple[str, str]


def _unique(names: Iterable[str]) -> List[str]:
    result: List[str] = []
    for name in names:
        if name not in result:
            result.append(name)
    return result


def precedence_edges(graph: RelationGraph, selection: Sequence[str]) -> List[Edge]:
    """
    Build "one side precedes many side" edges restricted to the selection.

    Args:
        graph: Relation graph of the source instance
        selection: Selected collection names

    Returns:
        Ordered, de-duplicated list of ``(one, many)`` edges
    """
    selected = set(selection)
    edges: List[Edge] = []

    def add(one: str, many: str) -> None:
        if one and many and one != many and one in selected and many in selected:
            edge = (one, many)
            if edge not in edges:
                edges.append(edge)

    for relation in graph.relations:
        if relation.relation_type == RelationType.MANY_TO_ANY:
            for allowed in relation.one_allowed_collections:
                add(allowed, relation.collection)
        elif relation.related_collection:
            # M2O, O2M and each leg of an M2M junction
            add(relation.related_collection, relation.collection)

    for name in selection:
        for f in graph._fields_by_collection.get(name, []):
            if f.foreign_key_table:
                add(f.foreign_key_table, name)
            interface = (f.interface or "").lower()
            if interface in SYSTEM_INTERFACES:
                add(graph.system_name(SYSTEM_INTERFACES[interface]), name)

    add(graph.system_name("folders"), graph.system_name("files"))
    return edges


def find_cycles(nodes: Sequence[str], edges: Sequence[Edge]) -> List[List[str]]:
    """
    Strongly connected components with more than one member.

    Components and their members are listed in discovery order.
    """
    index_of = {name: i for i, name in enumerate(nodes)}
    successors: Dict[str, List[str]] = {name: [] for name in nodes}
    for one, many in edges:
        successors[one].append(many)

    counter = 0
    indexes: Dict[str, int] = {}
    lowlinks: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []

    # Iterative Tarjan, so deep chains don't hit the recursion limit
    for root in nodes:
        if root in indexes:
            continue
        work = [(root, 0)]
        while work:
            node, child_pos = work.pop()
            if child_pos == 0:
                indexes[node] = lowlinks[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            recurse = False
            children = successors[node]
            for pos in range(child_pos, len(children)):
                child = children[pos]
                if child not in indexes:
                    work.append((node, pos + 1))
                    work.append((child, 0))
                    recurse = True
                    break
                if child in on_stack:
                    lowlinks[node] = min(lowlinks[node], indexes[child])
            if recurse:
                continue
            if lowlinks[node] == indexes[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1:
                    components.append(sorted(component, key=index_of.get))
            if work:
                parent = work[-1][0]
                lowlinks[parent] = min(lowlinks[parent], lowlinks[node])

    components.sort(key=lambda c: index_of[c[0]])
    return components


def _cycle_breaker(
    nodes: Sequence[str],
    edges: Sequence[Edge],
    emitted: Set[str],
    component_of: Dict[str, int]
) -> str:
    """Pick the node to force when every pending node still has a pending dependency."""
    blocked: Set[int] = set()
    for one, many in edges:
        if one in emitted or many in emitted or many not in component_of:
            continue
        if component_of.get(one) != component_of[many]:
            blocked.add(component_of[many])
    for name in nodes:
        if name not in emitted and name in component_of and component_of[name] not in blocked:
            return name
    return next(n for n in nodes if n not in emitted)


def calculate_migration_order(graph: RelationGraph, selection: Sequence[str]) -> MigrationPlan:
    """
    Topologically sort a closed selection.

    Ties are broken by discovery order (position in ``selection``). A cycle
    never fails the calculation: when nothing is ready, the lowest discovery
    index among the members of cycles with no pending dependency outside
    themselves is emitted, and the edges it breaks are reported as violated.
    Collections that only depend on a cycle are never forced.

    Args:
        graph: Relation graph of the source instance
        selection: Closed selection in discovery order

    Returns:
        MigrationPlan with order, edges, violated edges, cycles and warnings
    """
    nodes = _unique(selection)
    index_of = {name: i for i, name in enumerate(nodes)}
    edges = precedence_edges(graph, nodes)

    indegree = {name: 0 for name in nodes}
    successors: Dict[str, List[str]] = {name: [] for name in nodes}
    for one, many in edges:
        indegree[many] += 1
        successors[one].append(many)

    cycles = find_cycles(nodes, edges)
    component_of = {member: i for i, cycle in enumerate(cycles) for member in cycle}

    ready = [index_of[name] for name in nodes if indegree[name] == 0]
    heapq.heapify(ready)
    emitted: Set[str] = set()
    order: List[str] = []
    violated: List[Edge] = []

    while len(order) < len(nodes):
        if ready:
            name = nodes[heapq.heappop(ready)]
        else:
            name = _cycle_breaker(nodes, edges, emitted, component_of)
            broken = [(one, many) for one, many in edges if many == name and one not in emitted]
            violated.extend(broken)
            logger.warning(f"Dependency cycle: placing {name} before {', '.join(one for one, _ in broken)}")
        if name in emitted:
            continue
        emitted.add(name)
        order.append(name)
        for child in successors[name]:
            indegree[child] -= 1
            if indegree[child] == 0 and child not in emitted:
                heapq.heappush(ready, index_of[child])

    plan = MigrationPlan(order=order, edges=edges, violated_edges=violated)
    plan.cycles = cycles
    for cycle in plan.cycles:
        plan.warnings.append(f"Circular dependency detected: {' → '.join(cycle + cycle[:1])}")

    selected = set(nodes)
    for name in nodes:
        system_deps = sorted(
            dep for dep in graph.related_collections(name, include_system=True)
            if graph.is_system(dep) and dep not in selected and dep != name
        )
        if system_deps:
            plan.warnings.append(
                f"{name} has relations to system collections: {', '.join(system_deps)}. "
                f"Ensure ID mapping is handled."
            )

    logger.info(f"Migration order for {len(order)} collections: {', '.join(order)}")
    return plan


def validate_custom_order(graph: RelationGraph, selection: Sequence[str], order: Sequence[str]) -> List[str]:
    """
    Check a user-supplied order against the selection and its dependencies.

    Returns:
        Warnings; an empty list means the order is a valid permutation that
        respects every precedence edge
    """
    warnings: List[str] = []
    selected = _unique(selection)

    duplicates = sorted({name for name in order if list(order).count(name) > 1})
    if duplicates:
        warnings.append(f"Collections listed more than once: {', '.join(duplicates)}")
    missing = [name for name in selected if name not in order]
    if missing:
        warnings.append(f"Collections missing from the order: {', '.join(missing)}")
    extra = _unique(name for name in order if name not in selected)
    if extra:
        warnings.append(f"Collections not in the selection: {', '.join(extra)}")

    position = {}
    for i, name in enumerate(order):
        position.setdefault(name, i)

    for one, many in precedence_edges(graph, selected):
        if one in position and many in position and position[one] > position[many]:
            warnings.append(f"{many} is positioned before its dependency {one}")

    return warnings


def group_into_batches(plan: MigrationPlan) -> List[List[str]]:
    """
    Group an ordered plan into levels whose dependencies are all satisfied
    by earlier levels. Collections left over by a cycle form the last batch.
    """
    batches: List[List[str]] = []
    processed: Set[str] = set()
    in_plan = set(plan.order)

    while len(processed) < len(plan.order):
        batch = [
            name for name in plan.order
            if name not in processed
            and all(dep in processed or dep not in in_plan for dep in plan.dependencies_of(name))
        ]
        if not batch:
            batch = [name for name in plan.order if name not in processed]
        processed.update(batch)
        batches.append(batch)

    return batches
