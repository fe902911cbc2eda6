"""User management CLI commands."""

import argparse
import asyncio
import getpass
import sys
from collections.abc import Awaitable, Callable

from recipeauth.core.errors import ConflictError
from recipeauth.core.interfaces import CredentialStore
from recipeauth.core.models import Role, utc_now
from recipeauth.core.security import check_password_strength, hash_password
from recipeauth.infra import close_db, get_session_factory, init_db
from recipeauth.services import SqlCredentialStore


async def create_user(
    store: CredentialStore, email: str, username: str, password: str, role: Role
) -> None:
    """Create a new user."""
    check = check_password_strength(password)
    if not check.is_valid:
        for error in check.errors:
            print(f"Error: {error}")
        sys.exit(1)

    try:
        user = await store.create_user(
            email=email,
            username=username,
            password_hash=hash_password(password),
            role=role,
        )
    except ConflictError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    print(f"User '{user.username}' created with role '{role}'")


async def set_role(store: CredentialStore, email: str, role: Role) -> None:
    """Change a user's role. Applies from the user's next token rotation."""
    user = await store.find_user_by_email(email)
    if user is None:
        print(f"Error: User '{email}' not found")
        sys.exit(1)

    await store.update_role(user.id, role)
    print(f"Role for '{email}' set to '{role}'")


async def unlock_user(store: CredentialStore, email: str) -> None:
    """Clear failed login counter and lock."""
    user = await store.find_user_by_email(email)
    if user is None:
        print(f"Error: User '{email}' not found")
        sys.exit(1)

    await store.reset_failed_login(user.id)
    print(f"User '{email}' unlocked")


async def list_users(store: CredentialStore) -> None:
    """List all users."""
    users = await store.list_users()
    if not users:
        print("No users found")
        return

    now = utc_now()
    print(f"{'Email':<32} {'Username':<20} {'Role':<10} {'Failed':<7} {'Locked':<7}")
    print("-" * 80)
    for user in users:
        locked = "yes" if user.is_locked(now) else "no"
        print(
            f"{user.email:<32} {user.username:<20} {user.role:<10} "
            f"{user.failed_login_attempts:<7} {locked:<7}"
        )


def get_password_interactive(confirm: bool = True) -> str:
    """Get password interactively with optional confirmation."""
    password = getpass.getpass("Password: ")
    if not password:
        print("Error: Password cannot be empty")
        sys.exit(1)

    if confirm:
        password_confirm = getpass.getpass("Confirm password: ")
        if password != password_confirm:
            print("Error: Passwords do not match")
            sys.exit(1)

    return password


async def _with_store(command: Callable[[CredentialStore], Awaitable[None]]) -> None:
    await init_db()
    try:
        await command(SqlCredentialStore(get_session_factory()))
    finally:
        await close_db()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="RecipeAuth user management",
        prog="recipeauth-user",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    roles = [str(role) for role in Role]

    # create command
    create_parser = subparsers.add_parser("create", help="Create a new user")
    create_parser.add_argument("email", help="Email address")
    create_parser.add_argument("username", help="Username")
    create_parser.add_argument("--role", "-r", choices=roles, default=str(Role.USER))
    create_parser.add_argument(
        "--password", "-p",
        help="Password (will prompt if not provided)",
    )

    # set-role command
    role_parser = subparsers.add_parser("set-role", help="Change a user's role")
    role_parser.add_argument("email", help="Email address")
    role_parser.add_argument("role", choices=roles)

    # unlock command
    unlock_parser = subparsers.add_parser("unlock", help="Clear an account lockout")
    unlock_parser.add_argument("email", help="Email address")

    # list command
    subparsers.add_parser("list", help="List all users")

    args = parser.parse_args()

    if args.command == "create":
        password = args.password or get_password_interactive()
        asyncio.run(_with_store(
            lambda store: create_user(
                store, args.email, args.username, password, Role(args.role)
            )
        ))

    elif args.command == "set-role":
        asyncio.run(_with_store(
            lambda store: set_role(store, args.email, Role(args.role))
        ))

    elif args.command == "unlock":
        asyncio.run(_with_store(lambda store: unlock_user(store, args.email)))

    elif args.command == "list":
        asyncio.run(_with_store(list_users))


if __name__ == "__main__":
    main()
