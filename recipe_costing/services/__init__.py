"""
Service layer for recipe costing.

Modules:
- unit_converter, currency_converter: quantity and money conversion
- circular_reference_validator: composition cycle checks
- cost_engine: recipe cost computation
- recipe_cost_service, single_flight: recompute and cascade stored totals
- prep_sheet_service: prep sheet aggregation and storage
- version_diff, recipe_version_service: recipe snapshots and history
- interfaces, dto: collaborator protocols and value objects
- sql_store, database: SQLAlchemy-backed collaborators
- exceptions, logging_utils: shared error and logging helpers
"""
