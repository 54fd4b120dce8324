from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from letter_logic.graph.loader.models import LoadDiagnostic


@dataclass(slots=True)
class CFGAnalysis:
    entry_id: str | None
    adjacency: dict[str, list[str]]
    in_degree: dict[str, int]
    reachable: set[str] = field(default_factory=set)
    topology: list[str] = field(default_factory=list)
    has_cycle: bool = False


def run_cfg_pass(document: dict[str, Any]) -> tuple[CFGAnalysis, list[LoadDiagnostic]]:
    diagnostics: list[LoadDiagnostic] = []

    node_order: list[str] = [
        node["id"]
        for node in document.get("nodes") or []
        if isinstance(node, dict) and isinstance(node.get("id"), str) and node["id"]
    ]
    known = set(node_order)

    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_order}
    in_degree: dict[str, int] = {node_id: 0 for node_id in node_order}
    for edge in document.get("edges") or []:
        if not isinstance(edge, dict):
            continue
        source, target = edge.get("source"), edge.get("target")
        if source in known and target in known:
            adjacency[source].append(target)
            in_degree[target] += 1

    analysis = CFGAnalysis(entry_id=None, adjacency=adjacency, in_degree=in_degree)

    topology = _topological_order(node_order, adjacency)
    if len(topology) < len(node_order):
        analysis.has_cycle = True
        cyclic = [node_id for node_id in node_order if node_id not in set(topology)]
        diagnostics.append(
            LoadDiagnostic(
                code="CFG_CYCLE_DETECTED",
                severity="error",
                message=f"Graph contains a cycle through {cyclic}",
                node_id=cyclic[0],
                hint="Letter logic graphs must be acyclic; use a loop node for repetition.",
            )
        )
    analysis.topology = topology

    candidates = [node_id for node_id in node_order if in_degree[node_id] == 0]
    requested = document.get("entry_id")
    if requested:
        if requested not in known:
            diagnostics.append(
                LoadDiagnostic(
                    code="CFG_ENTRY_MISSING",
                    severity="error",
                    message=f"Entry node '{requested}' does not exist",
                    path="entryId",
                )
            )
            return analysis, diagnostics
        if in_degree[requested] != 0:
            diagnostics.append(
                LoadDiagnostic(
                    code="CFG_ENTRY_HAS_PARENTS",
                    severity="error",
                    message=f"Entry node '{requested}' has incoming edges",
                    node_id=requested,
                )
            )
        others = [node_id for node_id in candidates if node_id != requested]
        if others:
            diagnostics.append(
                LoadDiagnostic(
                    code="CFG_MULTIPLE_ENTRIES",
                    severity="error",
                    message=f"Nodes {others} have no incoming edges besides entry '{requested}'",
                    node_id=others[0],
                    hint="Connect or remove orphan nodes.",
                )
            )
        entry_id = requested
    elif len(candidates) == 1:
        entry_id = candidates[0]
    else:
        diagnostics.append(
            LoadDiagnostic(
                code="CFG_ENTRY_AMBIGUOUS" if candidates else "CFG_NO_ENTRY",
                severity="error",
                message=(
                    f"Expected exactly one entry candidate, found {candidates}"
                    if candidates
                    else "Graph has no node without incoming edges"
                ),
                path="entryId",
            )
        )
        return analysis, diagnostics

    analysis.entry_id = entry_id
    analysis.reachable = _reachable_from(entry_id, adjacency)
    for node_id in node_order:
        if node_id not in analysis.reachable and node_id not in candidates:
            diagnostics.append(
                LoadDiagnostic(
                    code="CFG_UNREACHABLE_NODE",
                    severity="error",
                    message=f"Node '{node_id}' is not reachable from entry '{entry_id}'",
                    node_id=node_id,
                    hint="Remove it or connect it with a valid edge.",
                )
            )

    return analysis, diagnostics


def _reachable_from(start: str, adjacency: dict[str, list[str]]) -> set[str]:
    reachable: set[str] = set()
    stack = [start]
    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        stack.extend(target for target in adjacency.get(node_id, []) if target not in reachable)
    return reachable


def _topological_order(node_order: list[str], adjacency: dict[str, list[str]]) -> list[str]:
    """Kahn's algorithm; nodes on a cycle never reach in-degree zero and are left out."""
    remaining: dict[str, int] = {node_id: 0 for node_id in node_order}
    for source in node_order:
        for target in adjacency.get(source, []):
            remaining[target] += 1

    queue = deque(node_id for node_id in node_order if remaining[node_id] == 0)
    order: list[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for target in adjacency.get(current, []):
            remaining[target] -= 1
            if remaining[target] == 0:
                queue.append(target)
    return order
