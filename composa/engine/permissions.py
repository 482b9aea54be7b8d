"""Permission resolver: flat action permissions plus scoped module grants.

Two tiers:

1. **Actions** -- a principal's action set is the union of the actions granted
   to each of its roles.  Membership is a set lookup.
2. **Module grants** -- keyed by ``(module_id, object_type_id)`` where ``None``
   is a wildcard.  Grants of several roles for the same scope are OR-merged
   when the context is loaded.

Scope resolution checks the candidate keys in this order and stops at the
first one that has *any* grant recorded, even if that grant denies::

    (module, type) -> (module, *) -> (*, type) -> (*, *)

Nothing is blended across levels, so an explicit narrow deny is never
widened by a broader wildcard allow.  No match at any level means no access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from composa.engine.concurrency import gather_all
from composa.engine.errors import ForbiddenError, UnauthorizedError
from composa.engine.models.enums import Access, Action
from composa.engine.models.permissions import NO_ACCESS, AccessContext, Capabilities, ScopeKey

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from composa.engine.models.objects import ObjectHeader
    from composa.engine.models.permissions import ModuleGrant
    from composa.engine.store.base import PermissionSource


def scope_candidates(module_id: str | None, object_type_id: str | None) -> list[ScopeKey]:
    """Candidate scope keys from most to least specific, duplicates removed."""
    ordered = [
        (module_id, object_type_id),
        (module_id, None),
        (None, object_type_id),
        (None, None),
    ]
    return list(dict.fromkeys(ordered))


def resolve_scope(
    grants: Mapping[ScopeKey, Capabilities],
    module_id: str | None,
    object_type_id: str | None,
) -> Capabilities:
    """Return the capabilities of the most specific scope with a recorded grant.

    Pure and total: never raises, returns all-false when nothing matches.
    """
    for key in scope_candidates(module_id, object_type_id):
        capabilities = grants.get(key)
        if capabilities is not None:
            return capabilities
    return NO_ACCESS


def merge_grants(grants: Iterable[ModuleGrant]) -> dict[ScopeKey, Capabilities]:
    """OR-merge grants that share a scope."""
    merged: dict[ScopeKey, Capabilities] = {}
    for grant in grants:
        current = merged.get(grant.scope)
        merged[grant.scope] = grant.capabilities if current is None else current.merge(grant.capabilities)
    return merged


async def load_access_context(source: PermissionSource, principal_id: str | None) -> AccessContext:
    """Build the effective permissions of *principal_id*.

    Roles are needed before anything else; action grants and module grants
    are then fetched concurrently.  Raises ``UnauthorizedError`` when no
    principal is given.
    """
    if not principal_id:
        raise UnauthorizedError
    roles = await source.roles_for(principal_id)
    actions, grants = await gather_all(source.action_grants(roles), source.module_grants(roles))
    logger.debug(
        "Access context for {}: roles={} actions={} scopes={}", principal_id, len(roles), len(actions), len(grants)
    )
    return AccessContext(
        principal_id=principal_id,
        roles=frozenset(roles),
        actions=frozenset(actions),
        grants=merge_grants(grants),
    )


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def has_action(ctx: AccessContext, action: str) -> bool:
    return action in ctx.actions


def require_action(ctx: AccessContext, action: str) -> None:
    if not has_action(ctx, action):
        msg = f"Missing permission '{action}'"
        raise ForbiddenError(msg)


def module_permission(ctx: AccessContext, module_id: str | None, object_type_id: str | None) -> Capabilities:
    return resolve_scope(ctx.grants, module_id, object_type_id)


def can_access(ctx: AccessContext, module_id: str | None, object_type_id: str | None, access: Access) -> bool:
    return module_permission(ctx, module_id, object_type_id).allows(access)


def require_module_access(
    ctx: AccessContext,
    module_id: str | None,
    object_type_id: str | None,
    access: Access,
    *,
    module_name: str | None = None,
) -> None:
    if not can_access(ctx, module_id, object_type_id, access):
        label = module_name or module_id or "*"
        msg = f"No {access} access to module '{label}'"
        raise ForbiddenError(msg)


def require_object_action(ctx: AccessContext, header: ObjectHeader, action: Action) -> None:
    """Require *action* on *header*, accepting its ``:own`` variant for owned objects.

    An object is owned when the principal is its owner or its creator.
    """
    if has_action(ctx, action):
        return
    if has_action(ctx, f"{action}:own") and header.owned_by(ctx.principal_id):
        return
    msg = f"Missing permission '{action}' on object '{header.id}'"
    raise ForbiddenError(msg)


def read_scope(ctx: AccessContext) -> str | None:
    """Ownership restriction for listing objects.

    ``None`` when the principal may read every object; the principal id when
    only ``object:read:own`` is granted.  Raises ``ForbiddenError`` otherwise.
    """
    if has_action(ctx, Action.OBJECT_READ):
        return None
    if has_action(ctx, Action.OBJECT_READ_OWN):
        return ctx.principal_id
    msg = f"Missing permission '{Action.OBJECT_READ}'"
    raise ForbiddenError(msg)
