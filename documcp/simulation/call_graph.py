"""Breadth-first call graph construction over a static model."""

import logging
from collections import deque
from typing import Deque, Dict, FrozenSet, Optional, Tuple

from ..analysis.models import CallSite, FunctionInfo, StaticModel
from .models import CallGraph, CallGraphEdge, CallGraphNode, NodeState

logger = logging.getLogger(__name__)

_CONSTRUCTORS = ("__init__", "constructor")


def resolve_call(call: CallSite, model: StaticModel, caller: Optional[FunctionInfo]) -> Optional[FunctionInfo]:
    """Find the declaration a call site refers to, by name."""
    if call.receiver in ("self", "this", "cls") and caller is not None and caller.class_name:
        func = model.find_function(call.name, caller.class_name)
        if func is not None and func.class_name == caller.class_name:
            return func
        return None
    if call.receiver is not None:
        cls = model.find_class(call.receiver)
        if cls is not None:
            func = model.find_function(call.name, cls.name)
            return func if func is not None and func.class_name == cls.name else None
        return model.find_method(call.name)
    if call.dynamic:
        return None
    func = model.find_function(call.name)
    if func is not None:
        return func
    cls = model.find_class(call.name)
    if cls is not None:
        for name in _CONSTRUCTORS:
            ctor = model.find_function(name, cls.name)
            if ctor is not None and ctor.class_name == cls.name:
                return ctor
    return None


def _resolve_entry(entry_point: str, model: StaticModel) -> Optional[FunctionInfo]:
    class_name, _, name = entry_point.rpartition(".")
    func = model.find_function(name, class_name or None)
    if func is None and not class_name:
        cls = model.find_class(name)
        if cls is not None:
            return resolve_call(CallSite(name=name, line=0), model, None)
    return func


def _node(func: FunctionInfo, model: StaticModel, depth: int) -> CallGraphNode:
    return CallGraphNode(
        name=func.qualified_name,
        file=model.file_path,
        line=func.start_line,
        depth=depth,
        resolved=True,
        parameters=[p.name for p in func.parameters],
        branches=func.summary.branch_count,
        loops=func.summary.loop_count,
        raises=list(func.summary.raises),
    )


def build_call_graph(entry_point: str, model: StaticModel, max_depth: int = 10) -> CallGraph:
    """Expand calls breadth-first from `entry_point`.

    Nodes move unvisited -> visiting -> visited. A call back to an ancestor
    (or to the node itself) becomes one recursive edge and is not expanded
    again. Calls that resolve to nothing in `model` are unresolved leaves.
    """
    graph = CallGraph(entry_point=entry_point)
    root = _resolve_entry(entry_point, model)
    if root is None:
        graph.nodes[entry_point] = CallGraphNode(
            name=entry_point, depth=0, resolved=False, state=NodeState.VISITED,
        )
        return graph

    graph.nodes[root.qualified_name] = _node(root, model, 0)
    edges: Dict[Tuple[str, str], CallGraphEdge] = {}
    queue: Deque[Tuple[FunctionInfo, int, FrozenSet[str]]] = deque([(root, 0, frozenset())])

    while queue:
        func, depth, ancestors = queue.popleft()
        key = func.qualified_name
        node = graph.nodes[key]
        graph.max_depth_reached = max(graph.max_depth_reached, depth)
        if depth >= max_depth:
            # Depth limit: enumerated but not expanded
            node.state = NodeState.VISITED
            continue

        node.state = NodeState.VISITING
        lineage = ancestors | {key}
        for call in func.summary.call_sites:
            target = resolve_call(call, model, func)
            callee_key = target.qualified_name if target is not None else call.display_name
            recursive = target is not None and callee_key in lineage

            edge = edges.get((key, callee_key))
            if edge is None:
                edge = CallGraphEdge(caller=key, callee=callee_key, recursive=recursive)
                edges[(key, callee_key)] = edge
                graph.edges.append(edge)
            if call.line not in edge.lines:
                edge.lines.append(call.line)

            if recursive or callee_key in graph.nodes:
                continue
            if target is None:
                graph.nodes[callee_key] = CallGraphNode(
                    name=callee_key, depth=depth + 1, resolved=False, state=NodeState.VISITED,
                )
                graph.max_depth_reached = max(graph.max_depth_reached, depth + 1)
                continue
            graph.nodes[callee_key] = _node(target, model, depth + 1)
            queue.append((target, depth + 1, lineage))
        node.state = NodeState.VISITED

    logger.debug(
        "Call graph for %s: %d nodes, %d edges", entry_point, len(graph.nodes), len(graph.edges)
    )
    return graph
