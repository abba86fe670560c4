"""Transition graph construction and path finding."""

from schema_engine.graph.path_finder import (
    RollbackPath,
    TransitionPath,
    find_all_paths,
    find_path,
    find_reverse_path,
    get_direct_transition,
    get_predecessor_snapshots,
    get_reachable_snapshots,
    path_exists,
    require_path,
)
from schema_engine.graph.transition_graph import build_transition_graph

__all__ = [
    # Graph construction
    "build_transition_graph",
    # Path finding
    "RollbackPath",
    "TransitionPath",
    "find_all_paths",
    "find_path",
    "find_reverse_path",
    "require_path",
    # Reachability
    "get_direct_transition",
    "get_predecessor_snapshots",
    "get_reachable_snapshots",
    "path_exists",
]
