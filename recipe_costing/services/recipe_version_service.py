"""
Recipe Version Service - numbered snapshots of a recipe over time.

Each version freezes the recipe's fields and lines as a RecipeSnapshot
stored in a RecipeVersion row. Versions are numbered 1, 2, 3... per recipe
and the newest one is flagged current.

Rolling back restores the fields and lines of an old version and records
the result as a new version; history is never rewritten. The restored
lines are checked for circular references first, since sub-recipes may
have changed since the version was taken. The recipe and the recipes that
use it are then recomputed through RecipeCostService.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly
- If session is None, create a new session via session_scope()
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recipe_costing.models import Ingredient, Recipe, RecipeVersion
from recipe_costing.models import RecipeLine as RecipeLineModel
from recipe_costing.services.circular_reference_validator import validate_no_circular_reference
from recipe_costing.services.database import session_scope
from recipe_costing.services.dto import LineKind, RecipeLine
from recipe_costing.services.exceptions import (
    CircularReferenceError,
    DatabaseError,
    RecipeNotFound,
    ValidationError,
    VersionNotFound,
)
from recipe_costing.services.interfaces import RecipeGraphReader
from recipe_costing.services.logging_utils import get_service_logger, log_operation
from recipe_costing.services.recipe_cost_service import RecipeCostService
from recipe_costing.services.sql_store import SqlRecipeStore, line_rows, recipe_to_data
from recipe_costing.services.version_diff import RecipeSnapshot, VersionDiff, diff_snapshots

logger = get_service_logger(__name__)

# Scalar fields a rollback restores. Derived totals are recomputed instead.
RESTORED_FIELDS = (
    "name",
    "description",
    "category",
    "servings",
    "yield_amount",
    "yield_unit",
    "prep_time_minutes",
    "selling_price",
    "currency",
    "target_cost_percentage",
    "waste_buffer_percentage",
)

_PASSTHROUGH_ERRORS = (RecipeNotFound, VersionNotFound, ValidationError, CircularReferenceError)


class _SessionGraphReader:
    """RecipeGraphReader over an open session, so validation sees uncommitted state."""

    def __init__(self, session: Session):
        self._session = session

    def get_sub_recipe_ids(self, recipe_id: Any) -> List[Any]:
        rows = (
            self._session.query(RecipeLineModel.sub_recipe_id)
            .filter(RecipeLineModel.recipe_id == recipe_id)
            .filter(RecipeLineModel.sub_recipe_id.isnot(None))
            .all()
        )
        return [row[0] for row in rows]

    def get_parent_recipe_ids(self, recipe_id: Any) -> List[Any]:
        rows = (
            self._session.query(RecipeLineModel.recipe_id)
            .filter(RecipeLineModel.sub_recipe_id == recipe_id)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]


def _version_to_dict(version: RecipeVersion) -> Dict[str, Any]:
    return {
        "id": version.id,
        "recipe_id": version.recipe_id,
        "version_number": version.version_number,
        "change_reason": version.change_reason,
        "change_notes": version.change_notes,
        "created_by": version.created_by,
        "is_current": version.is_current,
        "created_at": version.created_at,
        "snapshot": RecipeSnapshot.from_dict(version.get_snapshot_data()),
    }


def _get_recipe(recipe_id: int, session: Session) -> Recipe:
    recipe = session.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFound(recipe_id)
    return recipe


def _get_version_row(recipe_id: int, version_number: int, session: Session) -> RecipeVersion:
    version = (
        session.query(RecipeVersion)
        .filter(
            RecipeVersion.recipe_id == recipe_id,
            RecipeVersion.version_number == version_number,
        )
        .one_or_none()
    )
    if version is None:
        raise VersionNotFound(recipe_id, version_number)
    return version


# ============================================================================
# Create
# ============================================================================


def create_version(
    recipe_id: int,
    change_reason: Optional[str] = None,
    change_notes: Optional[str] = None,
    created_by: Optional[str] = None,
    session: Session = None,
) -> Dict[str, Any]:
    """
    Freeze the recipe's current state as its next version.

    Args:
        recipe_id: Recipe to snapshot
        change_reason: Short label for the change
        change_notes: Free text
        created_by: Who made the change
        session: Optional SQLAlchemy session for transaction sharing

    Returns:
        Version dict (id, recipe_id, version_number, ..., snapshot)

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        DatabaseError: If the database write fails
    """
    if session is not None:
        return _create_version_impl(recipe_id, change_reason, change_notes, created_by, session)

    try:
        with session_scope() as session:
            return _create_version_impl(
                recipe_id, change_reason, change_notes, created_by, session
            )
    except _PASSTHROUGH_ERRORS:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to create version for recipe {recipe_id}", e)


def _create_version_impl(
    recipe_id: int,
    change_reason: Optional[str],
    change_notes: Optional[str],
    created_by: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    recipe = _get_recipe(recipe_id, session)
    snapshot = RecipeSnapshot.from_recipe(recipe_to_data(recipe))

    latest = (
        session.query(func.max(RecipeVersion.version_number))
        .filter(RecipeVersion.recipe_id == recipe_id)
        .scalar()
    )
    next_number = (latest or 0) + 1

    session.query(RecipeVersion).filter(
        RecipeVersion.recipe_id == recipe_id, RecipeVersion.is_current.is_(True)
    ).update({RecipeVersion.is_current: False}, synchronize_session="fetch")

    version = RecipeVersion(
        recipe_id=recipe_id,
        version_number=next_number,
        change_reason=change_reason,
        change_notes=change_notes,
        created_by=created_by,
        is_current=True,
    )
    version.set_snapshot_data(snapshot.to_dict())
    session.add(version)
    session.flush()

    log_operation(
        logger,
        operation="create_version",
        outcome="success",
        recipe_id=recipe_id,
        version_number=next_number,
    )
    return _version_to_dict(version)


# ============================================================================
# Read
# ============================================================================


def get_versions(recipe_id: int, session: Session = None) -> List[Dict[str, Any]]:
    """
    All versions of a recipe, newest first.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
    """
    if session is not None:
        return _get_versions_impl(recipe_id, session)

    try:
        with session_scope() as session:
            return _get_versions_impl(recipe_id, session)
    except _PASSTHROUGH_ERRORS:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to list versions for recipe {recipe_id}", e)


def _get_versions_impl(recipe_id: int, session: Session) -> List[Dict[str, Any]]:
    _get_recipe(recipe_id, session)
    versions = (
        session.query(RecipeVersion)
        .filter(RecipeVersion.recipe_id == recipe_id)
        .order_by(RecipeVersion.version_number.desc())
        .all()
    )
    return [_version_to_dict(v) for v in versions]


def get_version(recipe_id: int, version_number: int, session: Session = None) -> Dict[str, Any]:
    """
    One version of a recipe.

    Raises:
        VersionNotFound: If the recipe has no such version
    """
    if session is not None:
        return _version_to_dict(_get_version_row(recipe_id, version_number, session))

    try:
        with session_scope() as session:
            return _version_to_dict(_get_version_row(recipe_id, version_number, session))
    except _PASSTHROUGH_ERRORS:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load version {version_number} of recipe {recipe_id}", e)


def get_current_version(recipe_id: int, session: Session = None) -> Optional[Dict[str, Any]]:
    """The version flagged current, or None if the recipe has no versions."""
    if session is not None:
        return _get_current_version_impl(recipe_id, session)

    try:
        with session_scope() as session:
            return _get_current_version_impl(recipe_id, session)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load current version of recipe {recipe_id}", e)


def _get_current_version_impl(recipe_id: int, session: Session) -> Optional[Dict[str, Any]]:
    version = (
        session.query(RecipeVersion)
        .filter(RecipeVersion.recipe_id == recipe_id, RecipeVersion.is_current.is_(True))
        .one_or_none()
    )
    return _version_to_dict(version) if version is not None else None


def compare_versions(
    recipe_id: int, version_a: int, version_b: int, session: Session = None
) -> VersionDiff:
    """
    Diff two versions of a recipe (A older, B newer by convention).

    Raises:
        VersionNotFound: If either version doesn't exist
    """
    a = get_version(recipe_id, version_a, session=session)["snapshot"]
    b = get_version(recipe_id, version_b, session=session)["snapshot"]
    return diff_snapshots(a, b)


# ============================================================================
# Rollback
# ============================================================================


def rollback_to_version(
    recipe_id: int,
    version_number: int,
    reason: Optional[str] = None,
    graph_reader: Optional[RecipeGraphReader] = None,
    created_by: Optional[str] = None,
    cost_service: Optional[RecipeCostService] = None,
    session: Session = None,
) -> Dict[str, Any]:
    """
    Restore a recipe to an earlier version and record it as a new version.

    Scalar fields and lines are restored under the cost service's
    composition lock, then the recipe and every recipe using it are
    recomputed before the new version is recorded, so the new version
    carries fresh totals.

    With an explicit session the restore and the new version join the
    caller's transaction and nothing is recomputed: the caller commits and
    then runs recompute_cascade itself.

    Args:
        recipe_id: Recipe to restore
        version_number: Version to restore
        reason: Change reason for the new version. Defaults to
            "Rollback to version N".
        graph_reader: Composition graph used for the cycle check. Defaults
            to the rows visible in the session.
        created_by: Who performed the rollback
        cost_service: Service whose lock guards the write and which
            cascades afterwards. Defaults to one over SqlRecipeStore().
        session: Optional SQLAlchemy session for transaction sharing

    Returns:
        The new version dict

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        VersionNotFound: If the version doesn't exist
        ValidationError: If a restored line references a deleted ingredient
            or recipe
        CircularReferenceError: If the restored lines would create a cycle.
            Nothing is changed in that case.
    """
    change_reason = reason or f"Rollback to version {version_number}"

    if session is not None:
        _restore_impl(recipe_id, version_number, graph_reader, session)
        return _create_version_impl(recipe_id, change_reason, None, created_by, session)

    service = cost_service or RecipeCostService.from_store(SqlRecipeStore())
    try:
        with service.composition_change():
            with session_scope() as session:
                _restore_impl(recipe_id, version_number, graph_reader, session)
    except _PASSTHROUGH_ERRORS:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to roll back recipe {recipe_id} to version {version_number}", e)

    # The restore is committed; record it even if the cascade fails
    try:
        service.recompute_cascade(recipe_id)
    finally:
        version = create_version(recipe_id, change_reason, created_by=created_by)
    return version


def _restore_impl(
    recipe_id: int,
    version_number: int,
    graph_reader: Optional[RecipeGraphReader],
    session: Session,
) -> None:
    recipe = _get_recipe(recipe_id, session)
    snapshot = RecipeSnapshot.from_dict(
        _get_version_row(recipe_id, version_number, session).get_snapshot_data()
    )

    lines = [
        RecipeLine(
            line.kind,
            line.ref_id,
            line.quantity,
            line.unit,
            name=line.name,
            yield_percentage=line.yield_percentage,
        )
        for line in snapshot.lines
    ]

    missing = []
    for line in lines:
        model = Ingredient if line.kind is LineKind.INGREDIENT else Recipe
        if session.get(model, line.ref_id) is None:
            missing.append(f"{line.display_name} no longer exists")
    if missing:
        raise ValidationError(missing)

    validate_no_circular_reference(
        recipe_id,
        lines,
        graph_reader if graph_reader is not None else _SessionGraphReader(session),
        {recipe_id: recipe.name},
    )

    for name in RESTORED_FIELDS:
        setattr(recipe, name, getattr(snapshot, name))
    recipe.lines = line_rows(lines)
    session.flush()

    log_operation(
        logger,
        operation="rollback_to_version",
        outcome="success",
        recipe_id=recipe_id,
        version_number=version_number,
    )
