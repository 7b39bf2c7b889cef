"""Unit tests for TokenService: minting, verification, revocation and extraction."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from starlette.requests import Request

from signalhub.errors import (
    InvalidTokenError,
    TokenExpiredError,
    TokenRevokedError,
    WrongTokenTypeError,
)
from signalhub.models.user import Role
from signalhub.services.redis_service import RedisService
from signalhub.services.token_service import (
    DEFAULT_TOKEN_EXPIRY_SECONDS,
    JWT_ALGORITHM,
    TokenService,
    extract_refresh_token,
    extract_token,
)
from tests.fakes import make_settings, make_user


def _request(headers: dict | None = None, cookies: dict | None = None) -> Request:
    """Build a bare Starlette request with the given headers and cookies."""
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        cookie = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw_headers})


def _forge(settings, secret=None, **overrides) -> str:
    """Encode a token with arbitrary claims for negative tests."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": "00000000-0000-0000-0000-000000000001",
        "email": "test@example.com",
        "role": "user",
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=15),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=JWT_ALGORITHM)


class TestCreateTokens:
    """Tests for access/refresh token minting."""

    def test_access_token_claims(self, token_service, settings):
        user = make_user(role=Role.ADMIN)

        token = token_service.create_access_token(user)

        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
        assert claims["sub"] == str(user.id)
        assert claims["email"] == user.email
        assert claims["role"] == "admin"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_refresh_token_has_no_role_and_uses_refresh_secret(self, token_service, settings):
        user = make_user()

        token = token_service.create_refresh_token(user)

        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                audience=settings.jwt_audience,
            )
        claims = jwt.decode(
            token,
            settings.jwt_refresh_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
        )
        assert "role" not in claims
        assert claims["type"] == "refresh"
        assert claims["exp"] - claims["iat"] == 7 * 24 * 3600

    def test_tokens_minted_together_are_distinct(self, token_service):
        user = make_user()

        first = token_service.create_token_pair(user)
        second = token_service.create_token_pair(user)

        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token

    def test_lifetimes_follow_settings(self, redis_service):
        settings = make_settings(jwt_access_expiry="30s", jwt_refresh_expiry="2h")
        service = TokenService(settings, redis_service)
        user = make_user()

        access = jwt.decode(
            service.create_access_token(user), options={"verify_signature": False}
        )
        refresh = jwt.decode(
            service.create_refresh_token(user), options={"verify_signature": False}
        )

        assert access["exp"] - access["iat"] == 30
        assert refresh["exp"] - refresh["iat"] == 7200


class TestVerifyToken:
    """Tests for TokenService.verify_token."""

    async def test_round_trip_access(self, token_service):
        user = make_user(role=Role.ADMIN)

        payload = await token_service.verify_token(token_service.create_access_token(user))

        assert payload.sub == user.id
        assert payload.email == user.email
        assert payload.role == "admin"
        assert payload.type == "access"

    async def test_round_trip_refresh(self, token_service):
        user = make_user()

        payload = await token_service.verify_token(
            token_service.create_refresh_token(user), "refresh"
        )

        assert payload.sub == user.id
        assert payload.type == "refresh"
        assert payload.role is None

    async def test_expired_token(self, token_service, settings):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _forge(settings, iat=past, exp=past + timedelta(minutes=15))

        with pytest.raises(TokenExpiredError) as exc_info:
            await token_service.verify_token(token)

        assert exc_info.value.code == "TOKEN_EXPIRED"

    async def test_tampered_signature(self, token_service, settings):
        token = _forge(settings, secret="not-the-secret")

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token)

    async def test_refresh_presented_as_access(self, token_service):
        # Different secrets, so this fails at the signature step
        token = token_service.create_refresh_token(make_user())

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token, "access")

    async def test_wrong_type_claim_with_valid_signature(self, token_service, settings):
        token = _forge(settings, type="refresh")

        with pytest.raises(WrongTokenTypeError) as exc_info:
            await token_service.verify_token(token, "access")

        assert exc_info.value.code == "INVALID_TOKEN_TYPE"

    async def test_wrong_issuer(self, token_service, settings):
        token = _forge(settings, iss="someone-else")

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token)

    async def test_wrong_audience(self, token_service, settings):
        token = _forge(settings, aud="someone-else")

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token)

    async def test_missing_subject(self, token_service, settings):
        token = _forge(settings, sub=None)

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token)

    async def test_non_uuid_subject(self, token_service, settings):
        token = _forge(settings, sub="not-a-uuid")

        with pytest.raises(InvalidTokenError):
            await token_service.verify_token(token)

    async def test_garbage(self, token_service):
        with pytest.raises(InvalidTokenError) as exc_info:
            await token_service.verify_token("not.a.jwt")

        assert exc_info.value.code == "INVALID_TOKEN"

    async def test_revoked_token(self, token_service):
        token = token_service.create_access_token(make_user())
        assert await token_service.revoke_token(token, 60) is True

        with pytest.raises(TokenRevokedError) as exc_info:
            await token_service.verify_token(token)

        assert exc_info.value.code == "TOKEN_REVOKED"

    async def test_revocation_checked_before_expiry(self, token_service, settings):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _forge(settings, iat=past, exp=past + timedelta(minutes=15))
        await token_service.revoke_token(token, 60)

        with pytest.raises(TokenRevokedError):
            await token_service.verify_token(token)


class TestRevocation:
    """Tests for revoke_token / is_token_revoked and their degradation."""

    async def test_revoke_sets_ttl(self, token_service, fake_redis):
        token = token_service.create_access_token(make_user())

        await token_service.revoke_token(token, 120)

        ttl = fake_redis.ttl_of(f"blacklist:{token}")
        assert ttl is not None
        assert 0 < ttl <= 120

    async def test_not_revoked_by_default(self, token_service):
        token = token_service.create_access_token(make_user())

        assert await token_service.is_token_revoked(token) is False

    async def test_revoke_without_registry_returns_false(self, settings):
        service = TokenService(settings, None)

        assert await service.revoke_token("anything", 60) is False

    async def test_revoke_with_unconfigured_redis_returns_false(self, settings):
        service = TokenService(settings, RedisService(None))

        assert await service.revoke_token("anything", 60) is False

    async def test_revoke_write_failure_returns_false(self, settings):
        client = MagicMock()
        client.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        service = TokenService(settings, RedisService(client))

        assert await service.revoke_token("anything", 60) is False

    async def test_check_fails_open_on_read_error(self, settings):
        client = MagicMock()
        client.get = AsyncMock(side_effect=ConnectionError("redis down"))
        service = TokenService(settings, RedisService(client))

        assert await service.is_token_revoked("anything") is False

    async def test_verify_succeeds_when_registry_unreachable(self, settings):
        client = MagicMock()
        client.get = AsyncMock(side_effect=ConnectionError("redis down"))
        service = TokenService(settings, RedisService(client))
        user = make_user()

        payload = await service.verify_token(service.create_access_token(user))

        assert payload.sub == user.id


class TestGetTokenExpiry:
    """Tests for TokenService.get_token_expiry."""

    def test_remaining_lifetime(self, token_service):
        token = token_service.create_access_token(make_user())

        remaining = token_service.get_token_expiry(token)

        assert 15 * 60 - 5 <= remaining <= 15 * 60

    def test_expired_floors_at_zero(self, token_service, settings):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _forge(settings, iat=past, exp=past + timedelta(minutes=1))

        assert token_service.get_token_expiry(token) == 0

    def test_ignores_signature(self, token_service, settings):
        token = _forge(settings, secret="unknown-secret")

        assert token_service.get_token_expiry(token) > 0

    def test_undecodable_defaults(self, token_service):
        assert token_service.get_token_expiry("garbage") == DEFAULT_TOKEN_EXPIRY_SECONDS

    def test_missing_exp_defaults(self, token_service, settings):
        token = _forge(settings, exp=None)

        assert token_service.get_token_expiry(token) == DEFAULT_TOKEN_EXPIRY_SECONDS


class TestExtractToken:
    """Tests for access/refresh token extraction order."""

    def test_bearer_header(self):
        request = _request(headers={"Authorization": "Bearer abc"})
        assert extract_token(request) == "abc"

    def test_header_preferred_over_cookie(self):
        request = _request(
            headers={"Authorization": "Bearer from-header"},
            cookies={"accessToken": "from-cookie"},
        )
        assert extract_token(request) == "from-header"

    def test_cookie_fallback(self):
        request = _request(cookies={"accessToken": "from-cookie"})
        assert extract_token(request) == "from-cookie"

    def test_non_bearer_scheme_falls_back(self):
        request = _request(
            headers={"Authorization": "Basic dXNlcjpwYXNz"},
            cookies={"accessToken": "from-cookie"},
        )
        assert extract_token(request) == "from-cookie"

    def test_absent(self):
        assert extract_token(_request()) is None

    def test_refresh_cookie_preferred_over_body(self):
        request = _request(cookies={"refreshToken": "from-cookie"})
        assert extract_refresh_token(request, "from-body") == "from-cookie"

    def test_refresh_body_fallback(self):
        assert extract_refresh_token(_request(), "from-body") == "from-body"

    def test_refresh_absent(self):
        assert extract_refresh_token(_request()) is None
        assert extract_refresh_token(_request(), "") is None
