"""View evaluation: filter, sort, paginate and group objects of one type.

Evaluation order:

1. Resolve the composition and bind filters, the primary sort and the
   kanban grouping field against it.  Unknown fields are validation errors.
2. Check permissions: ``object:read`` (or ``object:read:own``, which scopes
   the query to owned objects) and read access on every module the view
   references.  All checks happen before the first data fetch.
3. Split filters into those the store can evaluate and the rest.  When
   everything is pushed down and no sort is configured, the store also
   paginates; otherwise every matching header of the type is fetched.
4. Fetch module data for the fetched headers, one concurrent fetch per
   readable module.  The first failed fetch cancels the others and fails
   the evaluation with the store's error.
5. Apply remaining filters and the free-text search, the primary sort,
   then pagination in-core.  Search only looks at readable modules.
   ``total`` always counts all matches regardless of the page.
6. Build the kanban board for the page when the view uses that layout.

All rows are fetched before any filtering, so one evaluation never mixes
data from before and after a concurrent write between its own fetches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from composa.engine.concurrency import gather_all
from composa.engine.errors import EngineValidationError
from composa.engine.managers.objects import assemble
from composa.engine.models.enums import Access, LayoutType
from composa.engine.models.views import ViewResult
from composa.engine.permissions import can_access, read_scope, require_module_access
from composa.engine.query.filters import (
    bind_filters,
    build_field_map,
    matches_all,
    matches_search,
    resolve_field,
    searchable_fields,
)
from composa.engine.query.kanban import build_board, resolve_grouping_field
from composa.engine.query.sorting import sort_rows

if TYPE_CHECKING:
    from composa.engine.managers.schema import SchemaRegistry
    from composa.engine.models.objects import ModuleRecord, ObjectHeader
    from composa.engine.models.permissions import AccessContext
    from composa.engine.models.schema import CompositionEntry, FieldDef, Module
    from composa.engine.models.views import Sort, View
    from composa.engine.store.base import ObjectStore


class ViewEngine:
    def __init__(
        self,
        schema: SchemaRegistry,
        objects: ObjectStore,
        *,
        default_page_size: int = 50,
        max_page_size: int = 500,
    ) -> None:
        self._schema = schema
        self._objects = objects
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def _check_page(self, page: int, page_size: int | None) -> int:
        size = self.default_page_size if page_size is None else page_size
        if page < 1:
            msg = f"page must be >= 1, got {page}"
            raise EngineValidationError(msg)
        if not 1 <= size <= self.max_page_size:
            msg = f"page_size must be between 1 and {self.max_page_size}, got {size}"
            raise EngineValidationError(msg)
        return size

    async def evaluate(
        self,
        ctx: AccessContext,
        view: View,
        page: int = 1,
        page_size: int | None = None,
        search: str | None = None,
    ) -> ViewResult:
        """Evaluate *view* and return one page.

        *search* narrows the rows to those whose readable text, url or select
        values contain the term.  Blank terms are ignored.
        """
        size = self._check_page(page, page_size)
        term = search.strip() if search else ""
        composition = await self._schema.resolve_composition(view.object_type_id)
        field_map = build_field_map(composition)

        bound = bind_filters(field_map, view.filters)
        sort, sort_field = self._primary_sort(view, field_map)
        grouping = resolve_grouping_field(view, composition) if view.layout_type == LayoutType.KANBAN else None

        # -- Authorization (before any data I/O) ------------------------------
        owned_by = read_scope(ctx)
        referenced: dict[str, Module] = {b.module.name: b.module for b in bound}
        if sort is not None:
            referenced.setdefault(sort.module, field_map[(sort.module, sort.field)][0])
        if grouping is not None:
            referenced.setdefault(grouping[0].name, grouping[0])
        for module in referenced.values():
            require_module_access(ctx, module.id, view.object_type_id, Access.READ, module_name=module.name)
        readable = [e for e in composition if can_access(ctx, e.module.id, view.object_type_id, Access.READ)]

        # -- Fetch ------------------------------------------------------------
        split = [(b, self._objects.supports_pushdown(b)) for b in bound]
        pushed = [b for b, ok in split if ok]
        in_core = [b for b, ok in split if not ok]
        paged_in_store = not in_core and sort is None and not term
        offset, limit = ((page - 1) * size, size) if paged_in_store else (0, None)

        headers, total = await self._objects.fetch_headers(
            view.object_type_id, pushed, offset, limit, owned_by=owned_by
        )
        rows = [assemble(h, readable, data) for h, data in await self._join(headers, readable)]

        # -- In-core evaluation -----------------------------------------------
        if not paged_in_store:
            rows = [row for row in rows if matches_all(in_core, row)]
            if term:
                fields = searchable_fields(readable)
                rows = [row for row in rows if matches_search(term, fields, row)]
            total = len(rows)
            rows = sort_rows(rows, sort, sort_field)
            rows = rows[(page - 1) * size : page * size]

        board = build_board(rows, *grouping) if grouping is not None else None
        logger.debug(
            "View {} evaluated: total={} page={} pushed={} in_core={} store_paged={}",
            view.id,
            total,
            page,
            len(pushed),
            len(in_core),
            paged_in_store,
        )
        return ViewResult(objects=rows, total=total, page=page, page_size=size, board=board)

    @staticmethod
    def _primary_sort(view: View, field_map: dict) -> tuple[Sort | None, FieldDef | None]:
        """Only the first configured sort is evaluated."""
        if not view.sorts:
            return None, None
        sort = view.sorts[0]
        _, field = resolve_field(field_map, sort.module, sort.field)
        return sort, field

    async def _join(
        self, headers: list[ObjectHeader], readable: list[CompositionEntry]
    ) -> list[tuple[ObjectHeader, dict[str, dict]]]:
        if not headers:
            return []
        ids = [h.id for h in headers]
        batches: list[list[ModuleRecord]] = await gather_all(
            *(self._objects.fetch_module_data(ids, e.module.id) for e in readable)
        )
        per_object: dict[str, dict[str, dict]] = {h.id: {} for h in headers}
        for batch in batches:
            for record in batch:
                if record.object_id in per_object:
                    per_object[record.object_id][record.module_id] = record.data
        return [(h, per_object[h.id]) for h in headers]
