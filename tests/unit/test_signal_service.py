"""Unit tests for SignalService with mocked asyncpg and an in-memory cache."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from signalhub.errors import NotFoundError
from signalhub.models.signal import (
    SignalCreate,
    SignalFilters,
    SignalStatus,
    SignalType,
    SignalUpdate,
)
from signalhub.services.signal_service import (
    SignalService,
    _build_where,
    signal_cache_key,
    signals_list_cache_key,
)


class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock()
        self.transaction = MagicMock(return_value=_AsyncContext())


class _AsyncContext:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class MockPool:
    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


def _make_signal_row(signal_id=None, **overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": signal_id or uuid4(),
        "title": "BTC breakout",
        "description": None,
        "signal_type": "BUY",
        "cryptocurrency": "BTC",
        "target_price": 70000.0,
        "confidence": 85,
        "status": "active",
        "created_by": uuid4(),
        "expires_at": now + timedelta(days=7),
        "created_at": now,
        "updated_at": now,
        "creator_name": "Root",
        "creator_email": "root@x.com",
    }
    row.update(overrides)
    return row


@pytest.fixture
def conn():
    return MockConnection()


@pytest.fixture
def signal_service(conn, redis_service, settings):
    return SignalService(MockPool(conn), redis_service, settings)


class TestBuildWhere:
    def test_defaults_to_active(self):
        where, params = _build_where(SignalFilters())

        assert where == "s.status = $1"
        assert params == ["active"]

    def test_all_filters(self):
        where, params = _build_where(
            SignalFilters(signal_type=SignalType.SELL, cryptocurrency="eth", min_confidence=70)
        )

        assert "s.signal_type = $2" in where
        assert "s.cryptocurrency ILIKE $3" in where
        assert "s.confidence >= $4" in where
        assert params == ["active", "SELL", "%eth%", 70]


class TestListSignals:
    async def test_miss_queries_and_caches(self, signal_service, conn, redis_service):
        conn.fetchval.return_value = 1
        conn.fetch.return_value = [_make_signal_row()]
        filters = SignalFilters(sort_by="confidence", order="asc")

        signals, pagination, cached = await signal_service.list_signals(filters)

        assert cached is False
        assert len(signals) == 1
        assert pagination.total == 1
        sql = conn.fetch.call_args[0][0]
        assert "ORDER BY s.confidence ASC" in sql
        assert await redis_service.get_json(signals_list_cache_key(filters)) is not None

    async def test_hit_skips_database(self, signal_service, conn):
        conn.fetchval.return_value = 1
        conn.fetch.return_value = [_make_signal_row()]
        filters = SignalFilters()
        await signal_service.list_signals(filters)
        conn.fetch.reset_mock()

        signals, _, cached = await signal_service.list_signals(filters)

        assert cached is True
        assert len(signals) == 1
        conn.fetch.assert_not_awaited()

    async def test_pagination_offset(self, signal_service, conn):
        conn.fetchval.return_value = 45
        conn.fetch.return_value = []

        _, pagination, _ = await signal_service.list_signals(SignalFilters(page=3, limit=20))

        assert conn.fetch.call_args[0][-2:] == (20, 40)
        assert pagination.total_pages == 3
        assert pagination.has_next_page is False
        assert pagination.has_prev_page is True


class TestGetSignal:
    async def test_fetch_and_cache(self, signal_service, conn, redis_service):
        row = _make_signal_row()
        conn.fetchrow.return_value = row

        signal, cached = await signal_service.get_signal(row["id"])

        assert cached is False
        assert signal.created_by.name == "Root"
        assert await redis_service.get_json(signal_cache_key(row["id"])) is not None

        again, cached = await signal_service.get_signal(row["id"])
        assert cached is True
        assert again.id == row["id"]

    async def test_not_found(self, signal_service, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFoundError):
            await signal_service.get_signal(uuid4())


class TestWrites:
    async def test_create_defaults_expiry_and_invalidates(
        self, signal_service, conn, redis_service
    ):
        await redis_service.set_json("signals:page:1:stale", {"x": 1}, 60)
        conn.fetchrow.return_value = _make_signal_row()
        data = SignalCreate(
            title="BTC breakout",
            signal_type=SignalType.BUY,
            cryptocurrency="BTC",
            target_price=70000,
            confidence=85,
        )

        await signal_service.create_signal(data, uuid4())

        args = conn.execute.call_args[0]
        expires_at, created_at = args[10], args[11]
        assert expires_at - created_at == timedelta(days=7)
        assert args[8] == "active"
        assert await redis_service.get_json("signals:page:1:stale") is None

    async def test_create_already_expired(self, signal_service, conn):
        conn.fetchrow.return_value = _make_signal_row(status="expired")
        data = SignalCreate(
            title="Old signal",
            signal_type=SignalType.HOLD,
            cryptocurrency="ETH",
            target_price=1,
            confidence=10,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )

        await signal_service.create_signal(data, uuid4())

        assert conn.execute.call_args[0][8] == "expired"

    async def test_create_with_naive_expiry(self, signal_service, conn):
        conn.fetchrow.return_value = _make_signal_row()
        data = SignalCreate.model_validate(
            {
                "title": "BTC breakout",
                "signalType": "BUY",
                "cryptocurrency": "BTC",
                "targetPrice": 70000,
                "confidence": 85,
                "expiresAt": "2030-01-01T00:00:00",
            }
        )

        await signal_service.create_signal(data, uuid4())

        args = conn.execute.call_args[0]
        assert args[8] == "active"
        assert args[10] == datetime(2030, 1, 1, tzinfo=timezone.utc)

    async def test_update_with_naive_past_expiry(self, signal_service, conn):
        signal_id = uuid4()
        conn.fetchrow.side_effect = [
            {"status": "active", "expires_at": datetime.now(timezone.utc) + timedelta(days=1)},
            _make_signal_row(signal_id, status="expired"),
        ]

        await signal_service.update_signal(
            signal_id, SignalUpdate.model_validate({"expiresAt": "2000-01-01T00:00:00"})
        )

        params = conn.execute.call_args[0][1:]
        assert SignalStatus.EXPIRED.value in params

    async def test_update_sets_only_given_fields(self, signal_service, conn, redis_service):
        signal_id = uuid4()
        await redis_service.set_json(signal_cache_key(signal_id), {"x": 1}, 60)
        conn.fetchrow.side_effect = [
            {"status": "active", "expires_at": datetime.now(timezone.utc) + timedelta(days=1)},
            _make_signal_row(signal_id, confidence=90),
        ]

        signal = await signal_service.update_signal(signal_id, SignalUpdate(confidence=90))

        sql, *params = conn.execute.call_args[0]
        assert "confidence = $" in sql
        assert "title" not in sql
        assert 90 in params
        assert signal.confidence == 90
        assert await redis_service.get_json(signal_cache_key(signal_id)) is None

    async def test_update_past_expiry_marks_expired(self, signal_service, conn):
        signal_id = uuid4()
        conn.fetchrow.side_effect = [
            {"status": "active", "expires_at": datetime.now(timezone.utc) + timedelta(days=1)},
            _make_signal_row(signal_id, status="expired"),
        ]
        past = datetime.now(timezone.utc) - timedelta(hours=1)

        await signal_service.update_signal(signal_id, SignalUpdate(expires_at=past))

        params = conn.execute.call_args[0][1:]
        assert SignalStatus.EXPIRED.value in params

    async def test_update_not_found(self, signal_service, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFoundError):
            await signal_service.update_signal(uuid4(), SignalUpdate(confidence=50))

    async def test_delete(self, signal_service, conn):
        conn.execute.return_value = "DELETE 1"

        await signal_service.delete_signal(uuid4())

    async def test_delete_not_found(self, signal_service, conn):
        conn.execute.return_value = "DELETE 0"

        with pytest.raises(NotFoundError):
            await signal_service.delete_signal(uuid4())


class TestAnalytics:
    async def test_aggregates(self, signal_service, conn):
        conn.fetchrow.return_value = {
            "total": 4,
            "active": 3,
            "expired": 1,
            "avg_confidence": 72.6,
            "high_confidence": 2,
        }
        conn.fetch.side_effect = [
            [{"signal_type": "BUY", "count": 3, "avg_confidence": 80.0}],
            [{"cryptocurrency": "BTC", "count": 4, "avg_confidence": 72.5}],
        ]

        analytics = await signal_service.get_analytics()

        assert analytics.total == 4
        assert analytics.avg_confidence == 73
        assert analytics.by_type[0].signal_type == SignalType.BUY
        assert analytics.top_cryptocurrencies[0].cryptocurrency == "BTC"
        assert analytics.high_confidence_count == 2
