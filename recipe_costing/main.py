"""
Recipe Costing CLI

Command-line access to the costing core over the configured SQLite database.

Usage Examples:
    # Create the database tables
    recipe-costing init-db

    # Show the cost of recipe 12, and store the totals
    recipe-costing cost 12 --save

    # Prep sheet for 24 servings of recipe 3 and 10 of recipe 5
    recipe-costing prep-sheet 3:24 5:10 --save "Friday AM"

    # Freeze recipe 12 as a new version, then compare versions 1 and 2
    recipe-costing snapshot 12 --reason "New supplier"
    recipe-costing diff 12 1 2
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from recipe_costing.services import prep_sheet_service, recipe_version_service
from recipe_costing.services.cost_engine import CostBreakdown
from recipe_costing.services.currency_converter import format_currency_amount
from recipe_costing.services.database import initialize_app_database
from recipe_costing.services.exceptions import ServiceError
from recipe_costing.services.prep_sheet_service import PrepSheetSelection
from recipe_costing.services.recipe_cost_service import RecipeCostService
from recipe_costing.services.sql_store import SqlRecipeStore
from recipe_costing.utils.config import get_config

logger = logging.getLogger(__name__)


def parse_selection(value: str) -> Tuple[int, float]:
    """Parse "RECIPE_ID:SERVINGS" into a tuple."""
    recipe_part, sep, servings_part = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected RECIPE_ID:SERVINGS, got '{value}'")
    try:
        return int(recipe_part), float(servings_part)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected RECIPE_ID:SERVINGS, got '{value}'")


def print_breakdown(breakdown: CostBreakdown) -> None:
    currency = breakdown.currency
    print(f"{breakdown.recipe_name} (recipe {breakdown.recipe_id})")
    print("-" * 40)
    for line in breakdown.lines:
        print(f"  {line.item_name:<24} {format_currency_amount(line.cost, currency):>12}")
    print(f"  {'Subtotal':<24} {format_currency_amount(breakdown.subtotal, currency):>12}")
    print(f"  {'Waste':<24} {format_currency_amount(breakdown.waste_cost, currency):>12}")
    print(f"  {'Total':<24} {format_currency_amount(breakdown.total_cost, currency):>12}")
    if breakdown.has_labor_or_overhead:
        for label, amount in (
            ("Direct labor", breakdown.direct_labor),
            ("Prime cost", breakdown.prime_cost),
            ("Variable overhead", breakdown.variable_overhead),
            ("Cost of goods", breakdown.total_cost_of_goods),
            ("Fixed overhead", breakdown.fixed_overhead),
            ("Labor taxes", breakdown.labor_taxes),
            ("Fully loaded", breakdown.fully_loaded_cost),
            ("Service labor", breakdown.service_labor),
        ):
            print(f"  {label:<24} {format_currency_amount(amount, currency):>12}")
    summary = breakdown.warning_summary()
    if summary:
        print(f"WARNING: {summary}")


def cost_recipe(store: SqlRecipeStore, recipe_id: int, save: bool) -> int:
    service = RecipeCostService.from_store(store)
    if save:
        breakdown = service.recompute_cascade(recipe_id)[recipe_id]
    else:
        breakdown = service.engine.compute_recipe_cost(recipe_id)
    print_breakdown(breakdown)
    if save:
        print("Totals saved, including recipes that use it.")
    return 0


def prep_sheet(
    store: SqlRecipeStore,
    selections: List[Tuple[int, float]],
    save_name: Optional[str],
    expand: bool,
) -> int:
    sheet = prep_sheet_service.generate_prep_sheet(
        [PrepSheetSelection(recipe_id, servings) for recipe_id, servings in selections],
        store.recipes,
        name=save_name or prep_sheet_service.DEFAULT_PREP_SHEET_NAME,
        expand_sub_recipes=expand,
        ingredient_reader=store.ingredients,
    )

    print(sheet.name)
    print("-" * 40)
    for item in sheet.items:
        print(f"  {item.ingredient_name:<24} {item.total_quantity:>10.2f} {item.unit}")
        for entry in item.breakdown:
            flag = "" if entry.merged else "  (not converted)"
            print(f"      {entry.recipe_name}: {entry.quantity:.2f} {entry.unit}{flag}")

    if save_name:
        sheet_id = prep_sheet_service.save_prep_sheet(sheet)
        print(f"Saved prep sheet {sheet_id}.")
    return 0


def snapshot_recipe(recipe_id: int, reason: Optional[str]) -> int:
    version = recipe_version_service.create_version(recipe_id, change_reason=reason)
    print(f"Recipe {recipe_id}: created version {version['version_number']}")
    return 0


def _quantity_text(quantity: Optional[float], unit: Optional[str]) -> str:
    if quantity is None:
        return "-"
    return f"{quantity:g} {unit}"


def diff_versions(recipe_id: int, version_a: int, version_b: int) -> int:
    diff = recipe_version_service.compare_versions(recipe_id, version_a, version_b)
    if not diff.has_changes:
        print("No changes.")
        return 0

    for change in diff.changed_fields():
        pct = f" ({change.percent_change:+.1f}%)" if change.percent_change is not None else ""
        print(
            f"  {change.label}: {change.old_value} -> {change.new_value}"
            f" [{change.change_type.value}]{pct}"
        )
    for change in diff.changed_ingredients():
        label = change.name or f"{change.kind.value} {change.ref_id}"
        print(
            f"  {label}: {_quantity_text(change.old_quantity, change.old_unit)} -> "
            f"{_quantity_text(change.new_quantity, change.new_unit)} [{change.change_type.value}]"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recipe-costing",
        description="Recipe costing, prep sheets and recipe version history",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    cost_parser = subparsers.add_parser("cost", help="Compute a recipe's cost")
    cost_parser.add_argument("recipe_id", type=int)
    cost_parser.add_argument(
        "--save", action="store_true", help="Store total cost and profit margin"
    )

    prep_parser = subparsers.add_parser("prep-sheet", help="Aggregate recipes into a prep sheet")
    prep_parser.add_argument(
        "selections", nargs="+", type=parse_selection, metavar="RECIPE_ID:SERVINGS"
    )
    prep_parser.add_argument("--save", metavar="NAME", help="Save the sheet under NAME")
    prep_parser.add_argument(
        "--no-expand", action="store_true", help="List sub-recipes instead of their ingredients"
    )

    diff_parser = subparsers.add_parser("diff", help="Compare two versions of a recipe")
    diff_parser.add_argument("recipe_id", type=int)
    diff_parser.add_argument("version_a", type=int)
    diff_parser.add_argument("version_b", type=int)

    snapshot_parser = subparsers.add_parser("snapshot", help="Record a new recipe version")
    snapshot_parser.add_argument("recipe_id", type=int)
    snapshot_parser.add_argument("--reason", help="Change reason")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug(f"Running command {args.command}")

    try:
        initialize_app_database()
        if args.command == "init-db":
            print(f"Database ready at {get_config().database_path}")
            return 0

        store = SqlRecipeStore()
        if args.command == "cost":
            return cost_recipe(store, args.recipe_id, args.save)
        elif args.command == "prep-sheet":
            return prep_sheet(store, args.selections, args.save, not args.no_expand)
        elif args.command == "snapshot":
            return snapshot_recipe(args.recipe_id, args.reason)
        elif args.command == "diff":
            return diff_versions(args.recipe_id, args.version_a, args.version_b)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
