"""FastAPI dependency injection for the engine and the caller's access context.

Usage in route handlers::

    @router.post("/things/create")
    async def create_thing(engine: Services, ctx: Access, body: ThingCreate) -> Thing:
        ...

Authentication happens upstream; the gateway forwards the authenticated
principal in the ``X-Principal-Id`` header.  A missing header surfaces as
``UnauthorizedError`` (401) through the app's exception handler.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from composa.engine.models.permissions import AccessContext
from composa.engine.services import Engine


def get_engine(request: Request) -> Engine:
    engine: Engine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialised.",
        )
    return engine


async def get_access(
    engine: Annotated[Engine, Depends(get_engine)],
    principal_id: Annotated[str | None, Header(alias="X-Principal-Id")] = None,
) -> AccessContext:
    """Resolve roles and grants of the calling principal once per request."""
    return await engine.access(principal_id)


# -- Annotated type aliases for concise route signatures ---------------------

Services = Annotated[Engine, Depends(get_engine)]
"""Annotated dependency: the assembled engine from ``app.state``."""

Access = Annotated[AccessContext, Depends(get_access)]
"""Annotated dependency: access context of the ``X-Principal-Id`` principal."""
