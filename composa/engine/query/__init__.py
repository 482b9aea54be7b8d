"""Read path of the engine.

- **filters**: binding view filters to fields and evaluating them per row
- **sorting**: type-aware sort keys (collation for text, missing values last)
- **kanban**: grouping field resolution and board construction
- **evaluator**: view evaluation (scope, pushdown, join, filter, sort, page)
- **aggregation**: sum/avg/min/max/count and value distributions
"""
