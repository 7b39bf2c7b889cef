"""Trading signal CRUD, listing and analytics with Redis read-through caching."""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from signalhub.config import Settings
from signalhub.errors import NotFoundError
from signalhub.models.response import Pagination
from signalhub.models.signal import (
    DEFAULT_SIGNAL_LIFETIME,
    CryptoBreakdown,
    SignalAnalytics,
    SignalCreate,
    SignalCreator,
    SignalFilters,
    SignalStatus,
    SignalUpdate,
    TradingSignal,
    TypeBreakdown,
)
from signalhub.services.redis_service import RedisService

logger = structlog.get_logger(__name__)

SORT_COLUMNS = {
    "createdAt": "s.created_at",
    "confidence": "s.confidence",
    "targetPrice": "s.target_price",
}

SELECT_SIGNAL = """
    SELECT s.id, s.title, s.description, s.signal_type, s.cryptocurrency,
           s.target_price, s.confidence, s.status, s.created_by, s.expires_at,
           s.created_at, s.updated_at,
           u.name AS creator_name, u.email AS creator_email
    FROM trading_signals s
    LEFT JOIN users u ON u.id = s.created_by
"""

UPDATABLE_FIELDS = (
    "title",
    "description",
    "signal_type",
    "cryptocurrency",
    "target_price",
    "confidence",
    "status",
    "expires_at",
)


def signal_cache_key(signal_id: UUID) -> str:
    return f"signal:{signal_id}"


def signals_list_cache_key(filters: SignalFilters) -> str:
    filter_hash = json.dumps(filters.model_dump(mode="json"), sort_keys=True)
    return f"signals:page:{filters.page}:limit:{filters.limit}:filters:{filter_hash}"


SIGNALS_LIST_PATTERN = "signals:*"


def _row_to_signal(row) -> TradingSignal:
    return TradingSignal(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        signal_type=row["signal_type"],
        cryptocurrency=row["cryptocurrency"],
        target_price=row["target_price"],
        confidence=row["confidence"],
        status=row["status"],
        created_by=SignalCreator(
            id=row["created_by"],
            name=row["creator_name"],
            email=row["creator_email"],
        ),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _effective_status(status: SignalStatus, expires_at: Optional[datetime]) -> SignalStatus:
    """A signal whose expiry has passed is stored as expired."""
    if expires_at is not None and datetime.now(timezone.utc) > expires_at:
        return SignalStatus.EXPIRED
    return status


def _build_where(filters: SignalFilters) -> tuple[str, list]:
    clauses = ["s.status = $1"]
    params: list = [filters.status.value]

    if filters.signal_type is not None:
        params.append(filters.signal_type.value)
        clauses.append(f"s.signal_type = ${len(params)}")
    if filters.cryptocurrency:
        params.append(f"%{filters.cryptocurrency}%")
        clauses.append(f"s.cryptocurrency ILIKE ${len(params)}")
    if filters.min_confidence is not None:
        params.append(filters.min_confidence)
        clauses.append(f"s.confidence >= ${len(params)}")

    return " AND ".join(clauses), params


class SignalService:
    """Service for trading signal operations."""

    def __init__(self, pool: asyncpg.Pool, cache: RedisService, settings: Settings):
        self.pool = pool
        self.cache = cache
        self.settings = settings

    async def _invalidate(self, signal_id: Optional[UUID] = None) -> None:
        if signal_id is not None:
            await self.cache.delete(signal_cache_key(signal_id))
        await self.cache.delete_pattern(SIGNALS_LIST_PATTERN)

    async def _fetch_one(self, conn, signal_id: UUID) -> Optional[TradingSignal]:
        row = await conn.fetchrow(f"{SELECT_SIGNAL} WHERE s.id = $1", signal_id)
        if row is None:
            return None
        return _row_to_signal(row)

    async def create_signal(self, data: SignalCreate, created_by: UUID) -> TradingSignal:
        """Insert a signal; expiry defaults to seven days from now."""
        signal_id = uuid4()
        now = datetime.now(timezone.utc)
        expires_at = data.expires_at or now + DEFAULT_SIGNAL_LIFETIME
        status = _effective_status(SignalStatus.ACTIVE, expires_at)

        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO trading_signals (
                    id, title, description, signal_type, cryptocurrency, target_price,
                    confidence, status, created_by, expires_at, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $11)
                """,
                signal_id,
                data.title,
                data.description,
                data.signal_type.value,
                data.cryptocurrency,
                data.target_price,
                data.confidence,
                status.value,
                created_by,
                expires_at,
                now,
            )
            signal = await self._fetch_one(conn, signal_id)

        await self._invalidate()
        logger.info("signal_created", signal_id=str(signal_id), created_by=str(created_by))
        return signal

    async def list_signals(
        self, filters: SignalFilters
    ) -> tuple[list[TradingSignal], Pagination, bool]:
        """List signals with filters, sort and pagination.

        Returns:
            Tuple of (signals, pagination, served_from_cache)
        """
        cache_key = signals_list_cache_key(filters)
        cached = await self.cache.get_json(cache_key)
        if cached:
            logger.debug("signals_list_cache_hit")
            signals = [TradingSignal.model_validate(s) for s in cached["signals"]]
            return signals, Pagination.model_validate(cached["pagination"]), True

        where, params = _build_where(filters)
        order = "ASC" if filters.order == "asc" else "DESC"
        sort_column = SORT_COLUMNS[filters.sort_by]
        offset = (filters.page - 1) * filters.limit

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM trading_signals s WHERE {where}", *params
            )
            rows = await conn.fetch(
                f"""
                {SELECT_SIGNAL}
                WHERE {where}
                ORDER BY {sort_column} {order}
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """,
                *params,
                filters.limit,
                offset,
            )

        signals = [_row_to_signal(r) for r in rows]
        pagination = Pagination.build(filters.page, filters.limit, int(total or 0))

        await self.cache.set_json(
            cache_key,
            {
                "signals": [s.model_dump(mode="json") for s in signals],
                "pagination": pagination.model_dump(mode="json"),
            },
            self.settings.cache_ttl_signals,
        )
        return signals, pagination, False

    async def get_signal(self, signal_id: UUID) -> tuple[TradingSignal, bool]:
        """Fetch one signal.

        Returns:
            Tuple of (signal, served_from_cache)

        Raises:
            NotFoundError: If no signal has this id
        """
        cached = await self.cache.get_json(signal_cache_key(signal_id))
        if cached:
            logger.debug("signal_cache_hit", signal_id=str(signal_id))
            return TradingSignal.model_validate(cached), True

        async with self.pool.acquire() as conn:
            signal = await self._fetch_one(conn, signal_id)

        if signal is None:
            raise NotFoundError("Signal not found")

        await self.cache.set_json(
            signal_cache_key(signal_id),
            signal.model_dump(mode="json"),
            self.settings.cache_ttl_signal_detail,
        )
        return signal, False

    async def update_signal(self, signal_id: UUID, data: SignalUpdate) -> TradingSignal:
        """Apply provided fields; re-derives status from expiry.

        Raises:
            NotFoundError: If no signal has this id
        """
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    "SELECT status, expires_at FROM trading_signals WHERE id = $1 FOR UPDATE",
                    signal_id,
                )
                if current is None:
                    raise NotFoundError("Signal not found")

                status = SignalStatus(changes.get("status", current["status"]))
                expires_at = changes.get("expires_at", current["expires_at"])
                changes["status"] = _effective_status(status, expires_at)

                assignments = []
                params: list = [signal_id]
                for field in UPDATABLE_FIELDS:
                    if field not in changes:
                        continue
                    value = changes[field]
                    params.append(getattr(value, "value", value))
                    assignments.append(f"{field} = ${len(params)}")

                await conn.execute(
                    f"""
                    UPDATE trading_signals
                    SET {", ".join(assignments)}, updated_at = NOW()
                    WHERE id = $1
                    """,
                    *params,
                )
            signal = await self._fetch_one(conn, signal_id)

        await self._invalidate(signal_id)
        logger.info("signal_updated", signal_id=str(signal_id), fields=sorted(changes))
        return signal

    async def delete_signal(self, signal_id: UUID) -> None:
        """Delete a signal.

        Raises:
            NotFoundError: If no signal has this id
        """
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM trading_signals WHERE id = $1",
                signal_id,
            )

        if result == "DELETE 0":
            raise NotFoundError("Signal not found")

        await self._invalidate(signal_id)
        logger.info("signal_deleted", signal_id=str(signal_id))

    async def get_analytics(self) -> SignalAnalytics:
        """Aggregate totals, per-type and per-cryptocurrency breakdowns."""
        async with self.pool.acquire() as conn:
            totals = await conn.fetchrow(
                """
                SELECT COUNT(*) AS total,
                       COUNT(*) FILTER (WHERE status = 'active') AS active,
                       COUNT(*) FILTER (WHERE status = 'expired') AS expired,
                       COALESCE(AVG(confidence), 0) AS avg_confidence,
                       COUNT(*) FILTER (WHERE status = 'active' AND confidence >= 80) AS high_confidence
                FROM trading_signals
                """
            )
            by_type = await conn.fetch(
                """
                SELECT signal_type, COUNT(*) AS count, AVG(confidence) AS avg_confidence
                FROM trading_signals
                GROUP BY signal_type
                ORDER BY signal_type
                """
            )
            by_crypto = await conn.fetch(
                """
                SELECT cryptocurrency, COUNT(*) AS count, AVG(confidence) AS avg_confidence
                FROM trading_signals
                GROUP BY cryptocurrency
                ORDER BY count DESC
                LIMIT 10
                """
            )

        return SignalAnalytics(
            total=totals["total"],
            active=totals["active"],
            expired=totals["expired"],
            avg_confidence=round(float(totals["avg_confidence"])),
            by_type=[
                TypeBreakdown(
                    signal_type=r["signal_type"],
                    count=r["count"],
                    avg_confidence=float(r["avg_confidence"]),
                )
                for r in by_type
            ],
            top_cryptocurrencies=[
                CryptoBreakdown(
                    cryptocurrency=r["cryptocurrency"],
                    count=r["count"],
                    avg_confidence=float(r["avg_confidence"]),
                )
                for r in by_crypto
            ],
            high_confidence_count=totals["high_confidence"],
        )
