"""PostgreSQL store built on the async SQLAlchemy session factory.

One short-lived session per call; writes run inside ``session.begin()`` so
each protocol method is atomic on its own.  ``SQLAlchemyError`` is wrapped
in ``StoreError`` and re-raised, never swallowed.

Pushdown: ``eq``, ``contains`` and ``in`` on text, select and url fields
are evaluated in SQL against ``data ->> key``.  Filters that compare with
the empty string stay in-core, because SQL sees a missing key as ``NULL``
where the engine reads it as ``""``.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy import ColumnElement, Select, delete, exists, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from composa.engine.db.tables import Module as ModuleRow
from composa.engine.db.tables import Object as ObjectRow
from composa.engine.db.tables import ObjectModule as ObjectModuleRow
from composa.engine.db.tables import ObjectRelation as ObjectRelationRow
from composa.engine.db.tables import ObjectType as ObjectTypeRow
from composa.engine.db.tables import ObjectTypeModule as ObjectTypeModuleRow
from composa.engine.db.tables import ObjectTypeRelation as ObjectTypeRelationRow
from composa.engine.db.tables import Role as RoleRow
from composa.engine.db.tables import RoleModulePermission as RoleModulePermissionRow
from composa.engine.db.tables import RolePermission as RolePermissionRow
from composa.engine.db.tables import UserRole as UserRoleRow
from composa.engine.db.tables import View as ViewRow
from composa.engine.errors import StoreError
from composa.engine.models.enums import FieldType, FilterOperator, RelationDirection
from composa.engine.models.objects import ModuleRecord, ObjectHeader, ObjectRelation
from composa.engine.models.permissions import ModuleGrant
from composa.engine.models.schema import Module, ObjectType, ObjectTypeModule, ObjectTypeRelation
from composa.engine.models.views import View
from composa.engine.values import stringify

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from composa.engine.models.views import BoundFilter

_PUSHDOWN_OPERATORS = frozenset({FilterOperator.EQ, FilterOperator.CONTAINS, FilterOperator.IN})
_PUSHDOWN_TYPES = frozenset({FieldType.TEXT, FieldType.SELECT, FieldType.URL})
_ID_CHUNK = 5000


def _pushable_scalar(value: Any) -> bool:
    return isinstance(value, str | int | float) and not isinstance(value, bool) and stringify(value) != ""


def _module_values(module: Module) -> dict[str, Any]:
    values = module.model_dump(exclude={"fields"})
    values["fields"] = [f.model_dump(mode="json") for f in module.fields]
    return values


def _view_values(view: View) -> dict[str, Any]:
    values = view.model_dump(exclude={"filters", "sorts", "visible_fields"})
    values["filters"] = [f.model_dump(mode="json") for f in view.filters]
    values["sorts"] = [s.model_dump(mode="json") for s in view.sorts]
    values["visible_fields"] = [r.model_dump(mode="json") for r in view.visible_fields]
    return values


def _relation(row: ObjectRelationRow) -> ObjectRelation:
    return ObjectRelation(
        id=row.id,
        from_object_id=row.from_object_id,
        to_object_id=row.to_object_id,
        relation_type=row.relation_type,
        metadata=row.metadata_ or {},
        created_at=row.created_at,
    )


def _type_relation_values(relation: ObjectTypeRelation) -> dict[str, Any]:
    values = relation.model_dump(exclude={"metadata"})
    values["metadata_"] = relation.metadata
    return values


class SqlStore:
    """SQLAlchemy implementation of SchemaStore, ObjectStore, PermissionSource and ViewStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Store operation failed: {}: {}", type(exc).__name__, exc)
            msg = f"Database operation failed ({type(exc).__name__})"
            raise StoreError(msg) from exc

    # -- Schema ----------------------------------------------------------------

    async def insert_module(self, module: Module) -> None:
        async with self._session() as session, session.begin():
            session.add(ModuleRow(**_module_values(module)))

    async def update_module(self, module: Module) -> None:
        async with self._session() as session, session.begin():
            await session.execute(
                update(ModuleRow).where(ModuleRow.id == module.id).values(**_module_values(module))
            )

    async def delete_module(self, module_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ObjectTypeModuleRow).where(ObjectTypeModuleRow.module_id == module_id))
            await session.execute(delete(ModuleRow).where(ModuleRow.id == module_id))

    async def get_module(self, module_id: str) -> Module | None:
        async with self._session() as session:
            row = await session.get(ModuleRow, module_id)
            return Module.model_validate(row) if row else None

    async def get_module_by_name(self, name: str) -> Module | None:
        async with self._session() as session:
            row = (await session.execute(select(ModuleRow).where(ModuleRow.name == name))).scalar_one_or_none()
            return Module.model_validate(row) if row else None

    async def list_modules(self) -> list[Module]:
        async with self._session() as session:
            rows = (await session.execute(select(ModuleRow).order_by(ModuleRow.name))).scalars().all()
            return [Module.model_validate(r) for r in rows]

    async def insert_object_type(self, object_type: ObjectType) -> None:
        async with self._session() as session, session.begin():
            session.add(ObjectTypeRow(**object_type.model_dump()))

    async def update_object_type(self, object_type: ObjectType) -> None:
        async with self._session() as session, session.begin():
            await session.execute(
                update(ObjectTypeRow).where(ObjectTypeRow.id == object_type.id).values(**object_type.model_dump())
            )

    async def delete_object_type(self, object_type_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ViewRow).where(ViewRow.object_type_id == object_type_id))
            await session.execute(
                delete(ObjectTypeRelationRow).where(
                    or_(
                        ObjectTypeRelationRow.source_type_id == object_type_id,
                        ObjectTypeRelationRow.target_type_id == object_type_id,
                    )
                )
            )
            await session.execute(
                delete(ObjectTypeModuleRow).where(ObjectTypeModuleRow.object_type_id == object_type_id)
            )
            await session.execute(delete(ObjectTypeRow).where(ObjectTypeRow.id == object_type_id))

    async def get_object_type(self, object_type_id: str) -> ObjectType | None:
        async with self._session() as session:
            row = await session.get(ObjectTypeRow, object_type_id)
            return ObjectType.model_validate(row) if row else None

    async def get_object_type_by_name(self, name: str) -> ObjectType | None:
        async with self._session() as session:
            stmt = select(ObjectTypeRow).where(ObjectTypeRow.name == name)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ObjectType.model_validate(row) if row else None

    async def list_object_types(self) -> list[ObjectType]:
        async with self._session() as session:
            rows = (await session.execute(select(ObjectTypeRow).order_by(ObjectTypeRow.name))).scalars().all()
            return [ObjectType.model_validate(r) for r in rows]

    async def list_composition(self, object_type_id: str) -> list[ObjectTypeModule]:
        async with self._session() as session:
            stmt = select(ObjectTypeModuleRow).where(ObjectTypeModuleRow.object_type_id == object_type_id)
            rows = (await session.execute(stmt)).scalars().all()
            return [ObjectTypeModule.model_validate(r) for r in rows]

    async def put_composition(self, link: ObjectTypeModule) -> None:
        stmt = pg_insert(ObjectTypeModuleRow).values(**link.model_dump())
        stmt = stmt.on_conflict_do_update(
            index_elements=[ObjectTypeModuleRow.object_type_id, ObjectTypeModuleRow.module_id],
            set_={"required": stmt.excluded.required, "position": stmt.excluded.position},
        )
        async with self._session() as session, session.begin():
            await session.execute(stmt)

    async def delete_composition(self, object_type_id: str, module_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(
                delete(ObjectTypeModuleRow).where(
                    ObjectTypeModuleRow.object_type_id == object_type_id,
                    ObjectTypeModuleRow.module_id == module_id,
                )
            )

    async def insert_type_relation(self, relation: ObjectTypeRelation) -> None:
        async with self._session() as session, session.begin():
            session.add(ObjectTypeRelationRow(**_type_relation_values(relation)))

    async def update_type_relation(self, relation: ObjectTypeRelation) -> None:
        async with self._session() as session, session.begin():
            await session.execute(
                update(ObjectTypeRelationRow)
                .where(ObjectTypeRelationRow.id == relation.id)
                .values(**_type_relation_values(relation))
            )

    async def delete_type_relation(self, relation_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ObjectTypeRelationRow).where(ObjectTypeRelationRow.id == relation_id))

    async def get_type_relation(self, relation_id: str) -> ObjectTypeRelation | None:
        async with self._session() as session:
            row = await session.get(ObjectTypeRelationRow, relation_id)
            return ObjectTypeRelation.model_validate(row) if row else None

    async def list_type_relations(self, object_type_id: str | None = None) -> list[ObjectTypeRelation]:
        stmt = select(ObjectTypeRelationRow).order_by(
            ObjectTypeRelationRow.created_at.desc(), ObjectTypeRelationRow.id.desc()
        )
        if object_type_id is not None:
            stmt = stmt.where(
                or_(
                    ObjectTypeRelationRow.source_type_id == object_type_id,
                    ObjectTypeRelationRow.target_type_id == object_type_id,
                )
            )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [ObjectTypeRelation.model_validate(r) for r in rows]

    # -- Objects: headers --------------------------------------------------------

    def supports_pushdown(self, bound: BoundFilter) -> bool:
        if bound.operator not in _PUSHDOWN_OPERATORS or bound.field.type not in _PUSHDOWN_TYPES:
            return False
        if bound.operator == FilterOperator.IN:
            return isinstance(bound.value, list) and all(_pushable_scalar(v) for v in bound.value)
        return _pushable_scalar(bound.value)

    @staticmethod
    def _condition(bound: BoundFilter) -> ColumnElement[bool]:
        value = ObjectModuleRow.data[bound.field.key].astext
        match bound.operator:
            case FilterOperator.EQ:
                predicate = value == stringify(bound.value)
            case FilterOperator.CONTAINS:
                predicate = value.icontains(stringify(bound.value), autoescape=True)
            case FilterOperator.IN:
                predicate = value.in_([stringify(v) for v in bound.value])
            case _:
                msg = f"Operator {bound.operator} cannot be pushed down"
                raise ValueError(msg)
        carriers = select(ObjectModuleRow.object_id).where(ObjectModuleRow.module_id == bound.module.id, predicate)
        return ObjectRow.id.in_(carriers)

    def _headers_query(
        self, object_type_id: str, pushable_filters: Sequence[BoundFilter], owned_by: str | None
    ) -> Select[tuple[ObjectRow]]:
        stmt = select(ObjectRow).where(ObjectRow.object_type_id == object_type_id)
        if owned_by is not None:
            stmt = stmt.where(or_(ObjectRow.owner_id == owned_by, ObjectRow.created_by == owned_by))
        for bound in pushable_filters:
            stmt = stmt.where(self._condition(bound))
        return stmt

    async def fetch_headers(
        self,
        object_type_id: str,
        pushable_filters: Sequence[BoundFilter] = (),
        offset: int = 0,
        limit: int | None = None,
        *,
        owned_by: str | None = None,
    ) -> tuple[list[ObjectHeader], int]:
        stmt = self._headers_query(object_type_id, pushable_filters, owned_by)
        count_stmt = select(func.count()).select_from(stmt.subquery())
        page_stmt = stmt.order_by(ObjectRow.created_at, ObjectRow.id).offset(offset)
        if limit is not None:
            page_stmt = page_stmt.limit(limit)
        async with self._session() as session:
            total = (await session.execute(count_stmt)).scalar_one()
            rows = (await session.execute(page_stmt)).scalars().all()
            return [ObjectHeader.model_validate(r) for r in rows], total

    async def insert_object(self, header: ObjectHeader, records: Iterable[ModuleRecord]) -> None:
        async with self._session() as session, session.begin():
            session.add(ObjectRow(**header.model_dump()))
            await session.flush()
            session.add_all(ObjectModuleRow(**r.model_dump()) for r in records)

    async def get_object(self, object_id: str) -> ObjectHeader | None:
        async with self._session() as session:
            row = await session.get(ObjectRow, object_id)
            return ObjectHeader.model_validate(row) if row else None

    async def delete_object(self, object_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ObjectRow).where(ObjectRow.id == object_id))

    async def count_objects(self, object_type_id: str | None = None) -> int:
        stmt = select(func.count(ObjectRow.id))
        if object_type_id is not None:
            stmt = stmt.where(ObjectRow.object_type_id == object_type_id)
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_objects_by_type(self) -> dict[str, int]:
        stmt = select(ObjectRow.object_type_id, func.count(ObjectRow.id)).group_by(ObjectRow.object_type_id)
        async with self._session() as session:
            return {type_id: count for type_id, count in (await session.execute(stmt)).all()}

    async def recent_objects(self, limit: int, *, owned_by: str | None = None) -> list[ObjectHeader]:
        stmt = select(ObjectRow).order_by(ObjectRow.created_at.desc(), ObjectRow.id.desc()).limit(limit)
        if owned_by is not None:
            stmt = stmt.where(or_(ObjectRow.owner_id == owned_by, ObjectRow.created_by == owned_by))
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [ObjectHeader.model_validate(r) for r in rows]

    # -- Objects: module data ----------------------------------------------------

    async def fetch_module_data(self, object_ids: Sequence[str], module_id: str | None = None) -> list[ModuleRecord]:
        records: list[ModuleRecord] = []
        async with self._session() as session:
            for start in range(0, len(object_ids), _ID_CHUNK):
                stmt = select(ObjectModuleRow).where(
                    ObjectModuleRow.object_id.in_(object_ids[start : start + _ID_CHUNK])
                )
                if module_id is not None:
                    stmt = stmt.where(ObjectModuleRow.module_id == module_id)
                rows = (await session.execute(stmt)).scalars().all()
                records.extend(ModuleRecord.model_validate(r) for r in rows)
        return records

    async def upsert_module_data(self, object_id: str, module_id: str, data: Mapping[str, Any]) -> ModuleRecord:
        stmt = pg_insert(ObjectModuleRow).values(
            id=str(uuid.uuid4()), object_id=object_id, module_id=module_id, data=dict(data)
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_object_modules_object_id_module_id",
            set_={"data": stmt.excluded.data},
        ).returning(ObjectModuleRow.id, ObjectModuleRow.object_id, ObjectModuleRow.module_id, ObjectModuleRow.data)
        async with self._session() as session, session.begin():
            row = (await session.execute(stmt)).one()
            await session.execute(update(ObjectRow).where(ObjectRow.id == object_id).values(updated_at=func.now()))
            return ModuleRecord(id=row.id, object_id=row.object_id, module_id=row.module_id, data=row.data)

    async def delete_module_data(self, object_id: str, module_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(
                delete(ObjectModuleRow).where(
                    ObjectModuleRow.object_id == object_id,
                    ObjectModuleRow.module_id == module_id,
                )
            )

    def _scoped(self, stmt: Select, object_type_id: str | None) -> Select:
        if object_type_id is None:
            return stmt
        return stmt.join(ObjectRow, ObjectRow.id == ObjectModuleRow.object_id).where(
            ObjectRow.object_type_id == object_type_id
        )

    async def scan_module_data(self, module_id: str, object_type_id: str | None = None) -> list[ModuleRecord]:
        stmt = self._scoped(select(ObjectModuleRow).where(ObjectModuleRow.module_id == module_id), object_type_id)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [ModuleRecord.model_validate(r) for r in rows]

    async def count_module_data(self, module_id: str, object_type_id: str | None = None) -> int:
        stmt = self._scoped(
            select(func.count(ObjectModuleRow.id)).where(ObjectModuleRow.module_id == module_id), object_type_id
        )
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_objects_missing_module(self, object_type_id: str, module_id: str) -> int:
        carrying = exists().where(ObjectModuleRow.object_id == ObjectRow.id, ObjectModuleRow.module_id == module_id)
        stmt = select(func.count(ObjectRow.id)).where(ObjectRow.object_type_id == object_type_id, ~carrying)
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one()

    # -- Relations -------------------------------------------------------------

    async def insert_relation(self, relation: ObjectRelation) -> None:
        async with self._session() as session, session.begin():
            session.add(
                ObjectRelationRow(
                    id=relation.id,
                    from_object_id=relation.from_object_id,
                    to_object_id=relation.to_object_id,
                    relation_type=relation.relation_type,
                    metadata_=relation.metadata,
                    created_at=relation.created_at,
                )
            )

    async def get_relation(self, relation_id: str) -> ObjectRelation | None:
        async with self._session() as session:
            row = await session.get(ObjectRelationRow, relation_id)
            return _relation(row) if row else None

    async def delete_relation(self, relation_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ObjectRelationRow).where(ObjectRelationRow.id == relation_id))

    async def fetch_relations(self, object_id: str, direction: RelationDirection) -> list[ObjectRelation]:
        conditions = []
        if direction in (RelationDirection.FROM, RelationDirection.BOTH):
            conditions.append(ObjectRelationRow.from_object_id == object_id)
        if direction in (RelationDirection.TO, RelationDirection.BOTH):
            conditions.append(ObjectRelationRow.to_object_id == object_id)
        stmt = select(ObjectRelationRow).where(or_(*conditions)).order_by(
            ObjectRelationRow.created_at, ObjectRelationRow.id
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_relation(r) for r in rows]

    # -- Permissions -----------------------------------------------------------

    async def roles_for(self, principal_id: str) -> set[str]:
        stmt = select(UserRoleRow.role_id).where(UserRoleRow.user_id == principal_id)
        async with self._session() as session:
            return set((await session.execute(stmt)).scalars().all())

    async def action_grants(self, roles: Iterable[str]) -> set[str]:
        role_ids = list(roles)
        if not role_ids:
            return set()
        stmt = select(RolePermissionRow.action).where(RolePermissionRow.role_id.in_(role_ids)).distinct()
        async with self._session() as session:
            return set((await session.execute(stmt)).scalars().all())

    async def module_grants(self, roles: Iterable[str]) -> list[ModuleGrant]:
        role_ids = list(roles)
        if not role_ids:
            return []
        stmt = select(RoleModulePermissionRow).where(RoleModulePermissionRow.role_id.in_(role_ids))
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [ModuleGrant.model_validate(r) for r in rows]

    async def create_role(self, name: str, description: str | None = None) -> str:
        role_id = str(uuid.uuid4())
        async with self._session() as session, session.begin():
            session.add(RoleRow(id=role_id, name=name, description=description))
        return role_id

    async def assign_role(self, principal_id: str, role_id: str) -> None:
        stmt = pg_insert(UserRoleRow).values(user_id=principal_id, role_id=role_id).on_conflict_do_nothing()
        async with self._session() as session, session.begin():
            await session.execute(stmt)

    async def grant_action(self, role_id: str, *actions: str) -> None:
        if not actions:
            return
        stmt = (
            pg_insert(RolePermissionRow)
            .values([{"role_id": role_id, "action": a} for a in actions])
            .on_conflict_do_nothing()
        )
        async with self._session() as session, session.begin():
            await session.execute(stmt)

    async def grant_module(self, grant: ModuleGrant) -> None:
        """Record a scoped grant, replacing the role's existing grant at that scope."""
        stmt = pg_insert(RoleModulePermissionRow).values(id=str(uuid.uuid4()), **grant.model_dump())
        stmt = stmt.on_conflict_do_update(
            constraint="uq_role_module_permissions_scope",
            set_={
                "can_read": stmt.excluded.can_read,
                "can_write": stmt.excluded.can_write,
                "can_delete": stmt.excluded.can_delete,
            },
        )
        async with self._session() as session, session.begin():
            await session.execute(stmt)

    # -- Views -----------------------------------------------------------------

    async def insert_view(self, view: View) -> None:
        async with self._session() as session, session.begin():
            session.add(ViewRow(**_view_values(view)))

    async def insert_default_view(self, view: View) -> View:
        try:
            await self.insert_view(view)
        except StoreError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            existing = await self._default_view(view.object_type_id)
            if existing is None:
                raise
            logger.debug("Default view for {} created concurrently; using {}", view.object_type_id, existing.id)
            return existing
        return view

    async def _default_view(self, object_type_id: str) -> View | None:
        stmt = select(ViewRow).where(ViewRow.object_type_id == object_type_id, ViewRow.is_default.is_(True))
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return View.model_validate(row) if row else None

    async def update_view(self, view: View) -> None:
        async with self._session() as session, session.begin():
            await session.execute(update(ViewRow).where(ViewRow.id == view.id).values(**_view_values(view)))

    async def delete_view(self, view_id: str) -> None:
        async with self._session() as session, session.begin():
            await session.execute(delete(ViewRow).where(ViewRow.id == view_id))

    async def get_view(self, view_id: str) -> View | None:
        async with self._session() as session:
            row = await session.get(ViewRow, view_id)
            return View.model_validate(row) if row else None

    async def list_views(self, object_type_id: str) -> list[View]:
        stmt = (
            select(ViewRow)
            .where(ViewRow.object_type_id == object_type_id)
            .order_by(ViewRow.is_default.desc(), ViewRow.created_at, ViewRow.id)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [View.model_validate(r) for r in rows]
