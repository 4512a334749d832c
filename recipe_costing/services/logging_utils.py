"""Service layer logging utilities.

Provides structured logging for service operations so cost computations,
cycle rejections and recompute cascades share one log format.

Usage:
    from recipe_costing.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="compute_total_cost",
        outcome="partial",
        level=logging.WARNING,
        recipe_id=45,
        error_count=2,
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "recipe_costing.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named '<prefix>.<module>'.

    Example:
        >>> logger = get_service_logger("recipe_costing.services.cost_engine")
        >>> logger.name
        'recipe_costing.services.cost_engine'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the operation, outcome and every
    context field are attached to the record through ``extra``.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "compute_total_cost", "commit_composition")
        outcome: Outcome description (e.g., "success", "partial", "rejected")
        level: Log level (default: INFO). Use DEBUG for per-recipe chatter.
        **context: Additional context fields. Common fields:
            - recipe_id: Recipe being processed
            - error_count: Number of unpriced lines
            - path: Cycle path on rejection
            - item_count: Prep sheet size
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
