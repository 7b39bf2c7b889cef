"""Click CLI for administrative tasks.

Registration always creates ``user`` accounts; ``bootstrap-admin`` is the
only way to grant the ``admin`` role.
"""

import asyncio
import sys

import click
from dotenv import load_dotenv
from pydantic import ValidationError

from signalhub.config import get_settings
from signalhub.database import close_pool, create_pool, run_migrations
from signalhub.models.auth import RegisterRequest
from signalhub.models.user import Role
from signalhub.services.auth_service import hash_password
from signalhub.services.user_service import UserService


async def bootstrap_admin(email: str, password: str, name: str, dry_run: bool = False) -> dict:
    """Create or promote an admin user.

    Returns:
        dict with user_id, email and status ('created', 'promoted',
        'already_admin' or 'dry_run')
    """
    settings = get_settings()
    pool = await create_pool(settings)
    try:
        await run_migrations(pool)
        users = UserService(pool)

        existing = await users.get_by_email(email)
        if existing is not None:
            user, _ = existing
            if user.role == Role.ADMIN:
                return {"user_id": str(user.id), "email": email, "status": "already_admin"}
            if dry_run:
                return {"user_id": str(user.id), "email": email, "status": "dry_run"}

            await users.set_role(user.id, Role.ADMIN)
            return {"user_id": str(user.id), "email": email, "status": "promoted"}

        if dry_run:
            return {"user_id": None, "email": email, "status": "dry_run"}

        user = await users.create_user(
            name,
            email,
            hash_password(password, settings.bcrypt_salt_rounds),
            Role.ADMIN,
        )
        return {"user_id": str(user.id), "email": email, "status": "created"}
    finally:
        await close_pool(pool)


STATUS_MESSAGES = {
    "created": "Created admin user {email} (id: {user_id})",
    "promoted": "Promoted existing user {email} to admin (id: {user_id})",
    "already_admin": "User {email} already exists as admin (id: {user_id})",
    "dry_run": "[DRY RUN] Would create or promote admin user: {email}",
}


@click.command("bootstrap-admin")
@click.option("--email", envvar="ADMIN_EMAIL", required=True, help="Admin email address.")
@click.option(
    "--password",
    envvar="ADMIN_PASSWORD",
    required=True,
    help="Admin password (same complexity rules as registration).",
)
@click.option("--name", envvar="ADMIN_NAME", default="Administrator", help="Display name.")
@click.option("--dry-run", is_flag=True, help="Show what would happen without writing.")
def bootstrap_admin_command(email: str, password: str, name: str, dry_run: bool) -> None:
    """Create an admin account or promote an existing one."""
    try:
        request = RegisterRequest(name=name, email=email, password=password)
    except ValidationError as e:
        click.echo(f"Invalid admin details: {e}", err=True)
        sys.exit(1)

    result = asyncio.run(
        bootstrap_admin(request.email, request.password, request.name, dry_run)
    )
    click.echo(STATUS_MESSAGES[result["status"]].format(**result))


def main() -> None:
    load_dotenv()
    bootstrap_admin_command()
