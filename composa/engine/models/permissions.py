"""Permission models: scoped module grants and the per-request access context."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from composa.engine.models.enums import Access

ScopeKey = tuple[str | None, str | None]
"""``(module_id, object_type_id)``; ``None`` in either slot is a wildcard."""


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_read: bool = False
    can_write: bool = False
    can_delete: bool = False

    def allows(self, access: Access) -> bool:
        match access:
            case Access.READ:
                return self.can_read
            case Access.WRITE:
                return self.can_write
            case Access.DELETE:
                return self.can_delete

    def merge(self, other: Capabilities) -> Capabilities:
        return Capabilities(
            can_read=self.can_read or other.can_read,
            can_write=self.can_write or other.can_write,
            can_delete=self.can_delete or other.can_delete,
        )


NO_ACCESS = Capabilities()


class ModuleGrant(BaseModel):
    """One role's capabilities at one module / object-type scope."""

    model_config = ConfigDict(from_attributes=True)

    role_id: str
    module_id: str | None = None
    object_type_id: str | None = None
    can_read: bool = False
    can_write: bool = False
    can_delete: bool = False

    @property
    def scope(self) -> ScopeKey:
        return (self.module_id, self.object_type_id)

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(can_read=self.can_read, can_write=self.can_write, can_delete=self.can_delete)


@dataclass(frozen=True)
class AccessContext:
    """Effective permissions of one principal, loaded once per request.

    ``grants`` already holds the OR-merge of every role's grant per scope.
    """

    principal_id: str
    roles: frozenset[str] = frozenset()
    actions: frozenset[str] = frozenset()
    grants: dict[ScopeKey, Capabilities] = field(default_factory=dict)
