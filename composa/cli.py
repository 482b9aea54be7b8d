import click


@click.group()
def main() -> None:
    """Composa - dynamic object-module data engine."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from COMPOSA_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from COMPOSA_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the HTTP API server."""
    import uvicorn

    from composa.engine.settings import get_settings

    settings = get_settings()

    uvicorn.run(
        "composa.engine.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


def _alembic_config():
    """Alembic Config from the alembic.ini shipped inside the package."""
    from pathlib import Path

    from alembic.config import Config

    return Config(str(Path(__file__).parent / "engine" / "alembic.ini"))


@main.group()
def db() -> None:
    """Database migration commands."""


@db.command()
@click.option("--revision", default="head", help="Target revision (default: head).")
def upgrade(revision: str) -> None:
    """Run database migrations forward."""
    from alembic import command

    command.upgrade(_alembic_config(), revision)
    click.echo(f"Database upgraded to {revision}.")


@db.command()
@click.option("--revision", default="-1", help="Target revision (default: -1, one step back).")
def downgrade(revision: str) -> None:
    """Roll back database migrations."""
    from alembic import command

    command.downgrade(_alembic_config(), revision)
    click.echo(f"Database downgraded to {revision}.")


@db.command()
@click.argument("message")
def migrate(message: str) -> None:
    """Autogenerate a migration from table changes."""
    from alembic import command

    command.revision(_alembic_config(), message=message, autogenerate=True)
    click.echo(f"Migration generated: {message}")


@db.command()
def current() -> None:
    """Show the current database revision."""
    from alembic import command

    command.current(_alembic_config(), verbose=True)


@db.command()
def history() -> None:
    """Show migration history."""
    from alembic import command

    command.history(_alembic_config(), verbose=True)


# ---------------------------------------------------------------------------
# Role administration (SQL store)
# ---------------------------------------------------------------------------


def _run_with_store(operation):
    """Run ``operation(store)`` against the configured PostgreSQL store."""
    import asyncio

    from composa.engine.db.engine import create_engine, create_session_factory
    from composa.engine.log import setup_logging
    from composa.engine.settings import get_settings
    from composa.engine.store.sql import SqlStore

    settings = get_settings()
    setup_logging(settings.log_level)

    async def _run():
        db_engine = create_engine(settings)
        try:
            return await operation(SqlStore(create_session_factory(db_engine)))
        finally:
            await db_engine.dispose()

    return asyncio.run(_run())


@main.group()
def roles() -> None:
    """Role and grant administration."""


@roles.command("create")
@click.argument("name")
@click.option("--description", default=None, help="Free-text description.")
def create_role(name: str, description: str | None) -> None:
    """Create a role and print its id."""
    role_id = _run_with_store(lambda store: store.create_role(name, description))
    click.echo(role_id)


@roles.command("assign")
@click.argument("principal_id")
@click.argument("role_id")
def assign_role(principal_id: str, role_id: str) -> None:
    """Give PRINCIPAL_ID the role ROLE_ID."""
    _run_with_store(lambda store: store.assign_role(principal_id, role_id))
    click.echo(f"Role {role_id} assigned to {principal_id}.")


def _action_choices() -> list[str]:
    from composa.engine.models.enums import Action

    return [a.value for a in Action]


@roles.command("grant-action")
@click.argument("role_id")
@click.argument("actions", nargs=-1, required=True, type=click.Choice(_action_choices()))
def grant_action(role_id: str, actions: tuple[str, ...]) -> None:
    """Grant one or more action permissions to ROLE_ID."""
    _run_with_store(lambda store: store.grant_action(role_id, *actions))
    click.echo(f"Granted {', '.join(actions)} to {role_id}.")


@roles.command("grant-module")
@click.argument("role_id")
@click.option("--module-id", default=None, help="Module scope (default: every module).")
@click.option("--object-type-id", default=None, help="Object type scope (default: every type).")
@click.option("--read/--no-read", "can_read", default=True, show_default=True)
@click.option("--write/--no-write", "can_write", default=False, show_default=True)
@click.option("--delete/--no-delete", "can_delete", default=False, show_default=True)
def grant_module(
    role_id: str,
    module_id: str | None,
    object_type_id: str | None,
    can_read: bool,
    can_write: bool,
    can_delete: bool,
) -> None:
    """Set ROLE_ID's capabilities at one module / object type scope."""
    from composa.engine.models.permissions import ModuleGrant

    grant = ModuleGrant(
        role_id=role_id,
        module_id=module_id,
        object_type_id=object_type_id,
        can_read=can_read,
        can_write=can_write,
        can_delete=can_delete,
    )
    _run_with_store(lambda store: store.grant_module(grant))
    scope = f"({module_id or '*'}, {object_type_id or '*'})"
    click.echo(f"Grant {scope} set for {role_id}.")


if __name__ == "__main__":
    main()
