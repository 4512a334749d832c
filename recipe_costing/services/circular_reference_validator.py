"""
Circular reference detection for recipe compositions.

Recipes may use other recipes as sub-recipes, which makes the set of recipes
a directed graph (edge: recipe -> sub-recipe). That graph must stay acyclic,
self references included. This module provides:

- validate_no_circular_reference: the gate run before a composition change
  is committed. It looks at the proposed lines together with the stored
  edges of every other recipe.
- find_cycle: audit a whole adjacency mapping, e.g. data about to be loaded.
- CostingCycleGuard: the compute-time guard the cost engine and prep-sheet
  aggregator use while descending into sub-recipes. It also enforces the
  nesting depth bound.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Mapping, Optional

from recipe_costing.services.dto import LineKind, RecipeLine
from recipe_costing.services.exceptions import CircularReferenceError, RecipeDepthExceeded
from recipe_costing.services.interfaces import RecipeGraphReader
from recipe_costing.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _trace_back(parents: Dict[Any, Any], node: Any, root: Any) -> List[Any]:
    path = [node]
    while node != root:
        node = parents[node]
        path.append(node)
    path.reverse()
    return path


def find_circular_path(
    recipe_id: Any,
    proposed_lines: Iterable[RecipeLine],
    graph_reader: RecipeGraphReader,
) -> Optional[List[Any]]:
    """
    Search for a path from recipe_id back to itself.

    The recipe's own stored edges are replaced by proposed_lines; every other
    recipe's edges come from graph_reader. Each recipe is expanded at most
    once, so the search terminates even when the stored graph already holds
    a cycle that does not involve recipe_id.

    Args:
        recipe_id: Recipe whose composition is being changed
        proposed_lines: The lines the recipe would have after the change
        graph_reader: Source of sub-recipe edges for other recipes

    Returns:
        List of recipe ids starting and ending with recipe_id, or None if the
        change keeps the graph acyclic
    """
    parents: Dict[Any, Any] = {}
    visited = set()
    stack: List[Any] = []

    for line in proposed_lines:
        if line.kind is not LineKind.SUB_RECIPE:
            continue
        child = line.ref_id
        if child == recipe_id:
            return [recipe_id, recipe_id]
        if child not in visited:
            visited.add(child)
            parents[child] = recipe_id
            stack.append(child)

    while stack:
        current = stack.pop()
        for child in graph_reader.get_sub_recipe_ids(current):
            if child == recipe_id:
                return _trace_back(parents, current, recipe_id) + [recipe_id]
            if child in visited:
                continue
            visited.add(child)
            parents[child] = current
            stack.append(child)

    return None


def validate_no_circular_reference(
    recipe_id: Any,
    proposed_lines: Iterable[RecipeLine],
    graph_reader: RecipeGraphReader,
    recipe_names: Optional[Mapping[Any, str]] = None,
) -> None:
    """
    Reject a composition change that would make a recipe reach itself.

    Args:
        recipe_id: Recipe being edited
        proposed_lines: Lines the recipe would have after the edit
        graph_reader: Reader for the stored sub-recipe edges
        recipe_names: Optional id -> name mapping used in the error message

    Raises:
        CircularReferenceError: If any proposed sub-recipe reaches recipe_id,
            directly or through any chain of stored sub-recipes

    Example:
        >>> validate_no_circular_reference(1, [RecipeLine.sub_recipe(1, 1, "batch")], store)
        CircularReferenceError: Circular reference detected: Recipe 1 (path: 1 -> 1)
    """
    path = find_circular_path(recipe_id, list(proposed_lines), graph_reader)
    if path is None:
        return

    name = recipe_names.get(recipe_id) if recipe_names else None
    log_operation(
        logger,
        operation="validate_no_circular_reference",
        outcome="rejected",
        level=logging.WARNING,
        recipe_id=recipe_id,
        path=path,
    )
    raise CircularReferenceError(recipe_id, name, path)


def find_cycle(graph: Mapping[Any, Iterable[Any]]) -> Optional[List[Any]]:
    """
    Detect any cycle in a recipe adjacency mapping.

    Args:
        graph: Mapping of recipe id to the ids of its sub-recipes. Edges to
            ids that are not keys of the mapping are ignored.

    Returns:
        List of ids forming a cycle (first id repeated at the end), or None
    """
    visited = set()
    rec_stack = set()
    path: List[Any] = []

    def dfs(node):
        if node in rec_stack:
            cycle_start = path.index(node)
            return path[cycle_start:] + [node]
        if node in visited:
            return None

        visited.add(node)
        rec_stack.add(node)
        path.append(node)

        for neighbor in graph.get(node, ()):
            if neighbor in graph:
                cycle = dfs(neighbor)
                if cycle:
                    return cycle

        path.pop()
        rec_stack.remove(node)
        return None

    for node in graph:
        if node not in visited:
            cycle = dfs(node)
            if cycle:
                return cycle

    return None


class CostingCycleGuard:
    """
    Tracks the chain of recipes currently being resolved.

    Entering a recipe that is already on the chain raises
    CircularReferenceError; entering one more recipe than ``max_depth``
    raises RecipeDepthExceeded. A fresh guard is used for every top-level
    computation.
    """

    def __init__(self, max_depth: int):
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")
        self.max_depth = max_depth
        self._chain: List[Any] = []
        self._active = set()

    @property
    def depth(self) -> int:
        return len(self._chain)

    @property
    def chain(self) -> List[Any]:
        return list(self._chain)

    def enter(self, recipe_id: Any, recipe_name: Optional[str] = None) -> None:
        if recipe_id in self._active:
            start = self._chain.index(recipe_id)
            path = self._chain[start:] + [recipe_id]
            log_operation(
                logger,
                operation="costing_cycle_guard",
                outcome="cycle",
                level=logging.WARNING,
                recipe_id=recipe_id,
                path=path,
            )
            raise CircularReferenceError(recipe_id, recipe_name, path)
        if len(self._chain) >= self.max_depth:
            raise RecipeDepthExceeded(recipe_id, self.max_depth, self._chain + [recipe_id])
        self._chain.append(recipe_id)
        self._active.add(recipe_id)

    def exit(self, recipe_id: Any) -> None:
        if not self._chain or self._chain[-1] != recipe_id:
            raise RuntimeError(f"Cycle guard exit out of order for recipe {recipe_id}")
        self._chain.pop()
        self._active.discard(recipe_id)

    @contextmanager
    def visiting(self, recipe_id: Any, recipe_name: Optional[str] = None):
        """Context manager wrapping enter/exit."""
        self.enter(recipe_id, recipe_name)
        try:
            yield self
        finally:
            self.exit(recipe_id)
