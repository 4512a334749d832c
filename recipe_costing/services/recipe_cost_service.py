"""
Recipe cost recomputation.

Keeps the stored derived values of recipes (total_cost, profit_margin) in
step with their composition:

- recompute: compute one recipe and write its totals. Concurrent requests
  for the same recipe share a single run.
- recompute_cascade: recompute a recipe and then every recipe that uses it,
  directly or through other sub-recipes, nearest first.
- commit_composition: validate a new set of lines against the composition
  graph, write them, then cascade. Validation and write happen under one
  lock so no other composition change can interleave. Other writers of
  lines (version rollback) take the same lock through composition_change().
"""

import logging
import threading
from collections import deque
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from recipe_costing.services.circular_reference_validator import validate_no_circular_reference
from recipe_costing.services.cost_engine import CostBreakdown, RecipeCostEngine
from recipe_costing.services.dto import ComputedTotals, RecipeLine
from recipe_costing.services.exceptions import RecipeNotFound, ValidationError
from recipe_costing.services.interfaces import RecipeGraphReader, RecipeWriter
from recipe_costing.services.logging_utils import get_service_logger, log_operation
from recipe_costing.services.single_flight import SingleFlight

logger = get_service_logger(__name__)

# Matches the Numeric(10, 4) storage of recipe totals
STORED_COST_PRECISION = Decimal("0.0001")


class RecipeCostService:
    """
    Recomputes and stores recipe totals.

    Args:
        engine: Cost engine used for every computation
        writer: Destination for computed totals and committed lines
        graph_reader: Source of sub-recipe and parent edges
    """

    def __init__(
        self,
        engine: RecipeCostEngine,
        writer: RecipeWriter,
        graph_reader: RecipeGraphReader,
    ):
        self.engine = engine
        self.writer = writer
        self.graph_reader = graph_reader
        self._flights = SingleFlight()
        self._composition_lock = threading.RLock()

    @classmethod
    def from_store(
        cls, store: Any, base_currency: Optional[str] = None, max_depth: Optional[int] = None
    ) -> "RecipeCostService":
        """Build a service over a SqlRecipeStore-shaped object (.ingredients, .recipes, itself)."""
        engine = RecipeCostEngine(store.ingredients, store.recipes, store, base_currency, max_depth)
        return cls(engine, store, store)

    # ------------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------------

    def recompute(self, recipe_id: Any) -> CostBreakdown:
        """
        Compute a recipe's cost and store its totals.

        Only one recompute per recipe id runs at a time; callers that arrive
        meanwhile receive the running call's result or exception.

        Raises:
            RecipeNotFound: If the recipe doesn't exist
            MissingExchangeRateError, CircularReferenceError: From the engine
        """
        return self._flights.do(recipe_id, lambda: self._recompute(recipe_id))

    def _recompute(self, recipe_id: Any) -> CostBreakdown:
        recipe = self.engine.recipe_reader.get_by_id(recipe_id)
        if recipe is None:
            raise RecipeNotFound(recipe_id)

        breakdown = self.engine.compute_total_cost(recipe)
        costs_by_index = {
            p.line_index: p.cost.quantize(STORED_COST_PRECISION) for p in breakdown.lines
        }
        # Unpriced lines store None so a stale cost is not left behind
        line_costs = {
            line.line_id: costs_by_index.get(index)
            for index, line in enumerate(recipe.lines)
            if line.line_id is not None
        }
        totals = ComputedTotals(
            total_cost=breakdown.total_cost.quantize(STORED_COST_PRECISION),
            profit_margin=breakdown.profit_margin(recipe.selling_price),
            line_costs=line_costs,
        )
        self.writer.save_computed_totals(recipe_id, totals)

        log_operation(
            logger,
            operation="recompute",
            outcome="success" if breakdown.is_complete else "partial",
            recipe_id=recipe_id,
            total_cost=str(totals.total_cost),
            error_count=len(breakdown.errors),
        )
        return breakdown

    def ancestor_ids(self, recipe_id: Any) -> List[Any]:
        """
        Every recipe that uses recipe_id, directly or transitively.

        Returns:
            Recipe ids in breadth-first order, nearest parents first. Each id
            appears once; recipe_id itself is never included.
        """
        visited = {recipe_id}
        ordered: List[Any] = []
        queue = deque([recipe_id])

        while queue:
            current = queue.popleft()
            for parent_id in self.graph_reader.get_parent_recipe_ids(current):
                if parent_id in visited:
                    continue
                visited.add(parent_id)
                ordered.append(parent_id)
                queue.append(parent_id)

        return ordered

    def recompute_cascade(self, recipe_id: Any) -> Dict[Any, CostBreakdown]:
        """
        Recompute a recipe and all of its ancestors.

        Returns:
            Mapping of recipe id to its new breakdown, in recompute order
        """
        results: Dict[Any, CostBreakdown] = {}
        for current_id in [recipe_id] + self.ancestor_ids(recipe_id):
            results[current_id] = self.recompute(current_id)

        log_operation(
            logger,
            operation="recompute_cascade",
            outcome="success",
            recipe_id=recipe_id,
            recipe_count=len(results),
        )
        return results

    # ------------------------------------------------------------------------
    # Composition changes
    # ------------------------------------------------------------------------

    @contextmanager
    def composition_change(self) -> Iterator[None]:
        """
        Hold the composition lock while validating and writing lines.

        The caller is responsible for cascading once the block has exited.
        """
        with self._composition_lock:
            yield

    def commit_composition(
        self,
        recipe_id: Any,
        lines: Sequence[RecipeLine],
        recipe_names: Optional[Mapping[Any, str]] = None,
    ) -> Dict[Any, CostBreakdown]:
        """
        Replace a recipe's lines, then recompute it and its ancestors.

        Args:
            recipe_id: Recipe being edited
            lines: Complete new list of lines
            recipe_names: Optional id -> name mapping for error messages

        Returns:
            Mapping of recipe id to its new breakdown

        Raises:
            ValidationError: If an element of lines is not a RecipeLine
            CircularReferenceError: If the new lines would create a cycle.
                Nothing is written in that case.
        """
        lines = list(lines)
        bad = [i for i, line in enumerate(lines, start=1) if not isinstance(line, RecipeLine)]
        if bad:
            raise ValidationError([f"Line {i}: not a recipe line" for i in bad])

        with self.composition_change():
            validate_no_circular_reference(recipe_id, lines, self.graph_reader, recipe_names)
            self.writer.replace_lines(recipe_id, lines)

        log_operation(
            logger,
            operation="commit_composition",
            outcome="committed",
            level=logging.INFO,
            recipe_id=recipe_id,
            line_count=len(lines),
        )
        return self.recompute_cascade(recipe_id)
