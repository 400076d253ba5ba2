"""CLI tools for helpdesk administration."""

import click

from helpdesk.core.errors import ConflictError
from helpdesk.db.enums import Role
from helpdesk.db.session import SessionLocal
from helpdesk.services import dev_service, user_service


@click.group()
def cli():
    """Helpdesk CLI tools."""
    pass


@cli.command()
@click.option("--username", required=True, help="Login name (3-50 chars)")
@click.option("--email", required=True, help="Email address")
@click.password_option(help="Initial password")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.ADMIN.value,
    show_default=True,
    help="Role for the new user",
)
@click.option("--telegram-chat-id", default=None, help="Telegram chat id for notifications")
def create_user(username: str, email: str, password: str, role: str, telegram_chat_id: str | None):
    """
    Create a user with the given role (admin by default).

    This is the bootstrap command: self-registration only creates requesters.

    Example:
        python -m helpdesk.cli create-user --username admin --email admin@example.com
    """
    db = SessionLocal()
    try:
        user = user_service.create_user(
            db,
            username=username,
            email=email,
            password=password,
            role=Role(role),
            telegram_chat_id=telegram_chat_id,
        )
        click.echo(f"✓ Created {user.role.value} '{user.username}' (id {user.id})")
    except ConflictError as e:
        click.echo(f"❌ {e.message}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
def seed():
    """Create one demo user per role (idempotent)."""
    db = SessionLocal()
    try:
        for user in dev_service.seed_users(db):
            mark = "✓ created" if user["created"] else "• exists "
            click.echo(f"{mark} {user['role']:<8} {user['username']}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
