"""User credential store backed by PostgreSQL.

Each user row carries its active refresh tokens as an ordered ``TEXT[]``
(oldest first). Every mutation of that list is a single UPDATE so Postgres
row locking serializes concurrent logins, rotations and logouts for one user.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import UUID, uuid4

import asyncpg
import structlog

from signalhub.errors import ConflictError
from signalhub.models.auth import normalize_email
from signalhub.models.user import Role, User

logger = structlog.get_logger(__name__)

USER_COLUMNS = "id, name, email, role, is_active, last_login, created_at, updated_at"

# Keep only the newest $cap entries of an array expression.
_CAPPED = "({arr})[greatest(cardinality({arr}) - {cap} + 1, 1):]"


def _capped(arr: str, cap: str) -> str:
    return _CAPPED.format(arr=arr, cap=cap)


class UserStore(Protocol):
    """Credential store operations the session lifecycle depends on."""

    async def create_user(
        self, name: str, email: str, password_hash: str, role: Role = Role.USER
    ) -> User: ...

    async def get_by_email(self, email: str) -> Optional[tuple[User, str]]: ...

    async def get_by_id(self, user_id: UUID) -> Optional[User]: ...

    async def get_refresh_tokens(self, user_id: UUID) -> list[str]: ...

    async def add_refresh_token(self, user_id: UUID, token: str, cap: int) -> None: ...

    async def record_login(self, user_id: UUID, token: str, cap: int) -> Optional[User]: ...

    async def rotate_refresh_token(
        self, user_id: UUID, old_token: str, new_token: str, cap: int
    ) -> bool: ...

    async def remove_refresh_token(self, user_id: UUID, token: str) -> bool: ...

    async def clear_refresh_tokens(self, user_id: UUID) -> bool: ...

    async def update_profile(self, user_id: UUID, name: str) -> Optional[User]: ...


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=Role(row["role"]),
        is_active=row["is_active"],
        last_login=row["last_login"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """asyncpg implementation of :class:`UserStore` plus admin operations."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
    ) -> User:
        """Insert a new user.

        Raises:
            ConflictError: If the normalized email is already registered
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)
        email = normalize_email(email)

        async with self.pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (id, name, email, password_hash, role, is_active, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, TRUE, $6, $6)
                    RETURNING {USER_COLUMNS}
                    """,
                    user_id,
                    name,
                    email,
                    password_hash,
                    role.value,
                    now,
                )
            except asyncpg.UniqueViolationError:
                raise ConflictError("Email already registered")

        logger.info("user_created", user_id=str(user_id), role=role.value)
        return _row_to_user(row)

    async def get_by_email(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user and password hash by normalized email.

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = $1",
                normalize_email(email),
            )

        if row is None:
            return None
        return _row_to_user(row), row["password_hash"]

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None
        return _row_to_user(row)

    async def get_refresh_tokens(self, user_id: UUID) -> list[str]:
        async with self.pool.acquire() as conn:
            tokens = await conn.fetchval(
                "SELECT refresh_tokens FROM users WHERE id = $1",
                user_id,
            )
        return list(tokens or [])

    async def add_refresh_token(self, user_id: UUID, token: str, cap: int) -> None:
        """Append a refresh token, evicting the oldest entries beyond ``cap``."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                UPDATE users
                SET refresh_tokens = {_capped("refresh_tokens || $2::text", "$3")},
                    updated_at = NOW()
                WHERE id = $1
                """,
                user_id,
                token,
                cap,
            )

    async def record_login(self, user_id: UUID, token: str, cap: int) -> Optional[User]:
        """Append the login's refresh token and stamp ``last_login`` in one write."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET refresh_tokens = {_capped("refresh_tokens || $2::text", "$3")},
                    last_login = NOW(),
                    updated_at = NOW()
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                token,
                cap,
            )

        if row is None:
            return None
        return _row_to_user(row)

    async def rotate_refresh_token(
        self, user_id: UUID, old_token: str, new_token: str, cap: int
    ) -> bool:
        """Swap ``old_token`` for ``new_token`` only if ``old_token`` is still stored.

        The presence check and the write are one statement; a concurrent
        rotation presenting the same token re-evaluates the WHERE clause after
        the first commits and matches nothing.

        Returns:
            True if rotated, False if ``old_token`` was not present
        """
        remaining = "array_remove(refresh_tokens, $2)"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET refresh_tokens = {_capped(f"{remaining} || $3::text", "$4")},
                    updated_at = NOW()
                WHERE id = $1 AND $2 = ANY(refresh_tokens)
                RETURNING id
                """,
                user_id,
                old_token,
                new_token,
                cap,
            )
        return row is not None

    async def remove_refresh_token(self, user_id: UUID, token: str) -> bool:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE users
                SET refresh_tokens = array_remove(refresh_tokens, $2),
                    updated_at = NOW()
                WHERE id = $1 AND $2 = ANY(refresh_tokens)
                RETURNING id
                """,
                user_id,
                token,
            )
        return row is not None

    async def clear_refresh_tokens(self, user_id: UUID) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE users
                SET refresh_tokens = '{}', updated_at = NOW()
                WHERE id = $1
                """,
                user_id,
            )
        return result == "UPDATE 1"

    async def update_profile(self, user_id: UUID, name: str) -> Optional[User]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users SET name = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                name,
            )

        if row is None:
            return None
        return _row_to_user(row)

    async def set_active(self, user_id: UUID, is_active: bool) -> Optional[User]:
        """Soft-deactivate or reactivate an account.

        Deactivation also drops every refresh token so no session survives.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET is_active = $2,
                    refresh_tokens = CASE WHEN $2 THEN refresh_tokens ELSE '{{}}' END,
                    updated_at = NOW()
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                is_active,
            )

        if row is None:
            return None

        logger.info("user_active_changed", user_id=str(user_id), is_active=is_active)
        return _row_to_user(row)

    async def set_role(self, user_id: UUID, role: Role) -> Optional[User]:
        """Change a user's role. Administrative use only (bootstrap CLI)."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users SET role = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                role.value,
            )

        if row is None:
            return None

        logger.info("user_role_changed", user_id=str(user_id), role=role.value)
        return _row_to_user(row)

    async def list_users(self, limit: int = 20, offset: int = 0) -> list[User]:
        """List users, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS} FROM users
                ORDER BY created_at DESC
                LIMIT $1 OFFSET $2
                """,
                limit,
                offset,
            )
        return [_row_to_user(r) for r in rows]

    async def count_users(self) -> int:
        async with self.pool.acquire() as conn:
            count = await conn.fetchval("SELECT COUNT(*) FROM users")
        return int(count or 0)
