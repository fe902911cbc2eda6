"""Tests for SessionResolver (silent rotation and fail-closed resolution)."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from recipeauth.app.components import AuthComponents
from recipeauth.core.domain import (
    Claims,
    RejectReason,
    TokenPair,
    TokenType,
    Verified,
)
from recipeauth.core.errors import StoreUnavailableError
from recipeauth.core.models import Role, User
from recipeauth.services import SessionResolver, SqlCredentialStore


async def _expired_pair(components: AuthComponents, user: User, clock) -> TokenPair:
    """Issue a pair, then move 16 minutes on so its access half has expired."""
    pair = components.issuer.issue_pair(user.id, Role(user.role))
    clock.advance(minutes=16)
    return pair


class TestResolve:
    """Decision table for SessionResolver.resolve."""

    @pytest.mark.asyncio
    async def test_no_access_is_anonymous(self, components: AuthComponents) -> None:
        """Missing access credential: anonymous, cookies untouched."""
        outcome = await components.resolver.resolve(None, "some-refresh")

        assert outcome.identity is None
        assert outcome.clear_credentials is False
        assert outcome.new_access is None

    @pytest.mark.asyncio
    async def test_valid_access(self, components: AuthComponents, user: User) -> None:
        pair = components.issuer.issue_pair(user.id, Role.USER)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.authenticated
        assert outcome.identity.user_id == user.id
        assert outcome.identity.role == Role.USER
        assert not outcome.rotated
        assert not outcome.clear_credentials

    @pytest.mark.asyncio
    async def test_expired_access_rotates(
        self, components: AuthComponents, user: User, clock
    ) -> None:
        """Expired access + valid refresh: one new access token, authenticated."""
        pair = await _expired_pair(components, user, clock)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.authenticated
        assert outcome.identity.user_id == user.id
        assert outcome.rotated
        assert outcome.access_claims == outcome.new_access.claims
        assert outcome.new_access.claims.expires_at > pair.access_expires_at
        assert outcome.new_access.claims.expires_at == clock().replace(
            microsecond=0
        ) + timedelta(minutes=15)
        result = await components.verifier.verify_access(outcome.new_access.token)
        assert isinstance(result, Verified)

    @pytest.mark.asyncio
    async def test_rotation_picks_up_role_change(
        self,
        components: AuthComponents,
        store: SqlCredentialStore,
        user: User,
        clock,
    ) -> None:
        pair = await _expired_pair(components, user, clock)
        await store.update_role(user.id, Role.MODERATOR)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity.role == Role.MODERATOR

    @pytest.mark.asyncio
    async def test_expired_without_refresh(
        self, components: AuthComponents, user: User, clock
    ) -> None:
        pair = await _expired_pair(components, user, clock)

        outcome = await components.resolver.resolve(pair.access_token, None)

        assert outcome.identity is None
        assert outcome.reason == RejectReason.EXPIRED
        assert outcome.clear_credentials

    @pytest.mark.asyncio
    async def test_revoked_refresh_blocks_rotation(
        self, components: AuthComponents, user: User, clock
    ) -> None:
        """Logout followed by a request with the old cookies stays anonymous."""
        pair = await _expired_pair(components, user, clock)
        await components.auth_service.logout(None, pair.refresh_token)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.reason == RejectReason.REVOKED
        assert outcome.clear_credentials
        assert not outcome.rotated

    @pytest.mark.asyncio
    async def test_revoked_access_is_not_rotated(
        self, components: AuthComponents, user: User
    ) -> None:
        """A revoked but unexpired access token is refused outright."""
        pair = components.issuer.issue_pair(user.id, Role.USER)
        result = await components.verifier.verify_access(pair.access_token)
        await components.auth_service.logout(result.claims, None)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.reason == RejectReason.REVOKED
        assert not outcome.rotated

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["garbage", "a.b.c"])
    async def test_bad_access_clears(
        self, components: AuthComponents, user: User, token: str
    ) -> None:
        pair = components.issuer.issue_pair(user.id, Role.USER)

        outcome = await components.resolver.resolve(token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.clear_credentials
        assert not outcome.rotated

    @pytest.mark.asyncio
    async def test_invalid_refresh_clears(
        self, components: AuthComponents, user: User, clock
    ) -> None:
        pair = await _expired_pair(components, user, clock)

        outcome = await components.resolver.resolve(pair.access_token, "garbage")

        assert outcome.identity is None
        assert outcome.reason == RejectReason.MALFORMED
        assert outcome.clear_credentials

    @pytest.mark.asyncio
    async def test_deleted_account_cannot_rotate(
        self, components: AuthComponents, clock
    ) -> None:
        pair = components.issuer.issue_pair("01GONE", Role.USER)
        clock.advance(minutes=16)

        outcome = await components.resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.reason == RejectReason.INVALID


class TestFailClosed:
    """Store failures and timeouts never authenticate."""

    @pytest.mark.asyncio
    async def test_ledger_unavailable(self, components: AuthComponents, user: User) -> None:
        pair = components.issuer.issue_pair(user.id, Role.USER)
        verifier = AsyncMock()
        verifier.verify_access = AsyncMock(side_effect=StoreUnavailableError("down"))
        resolver = SessionResolver(verifier, components.issuer, timeout=1.0)

        outcome = await resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.clear_credentials

    @pytest.mark.asyncio
    async def test_timeout(self, components: AuthComponents, user: User) -> None:
        pair = components.issuer.issue_pair(user.id, Role.USER)

        async def slow_verify(token: str):
            await asyncio.sleep(10)

        verifier = AsyncMock()
        verifier.verify_access = slow_verify
        resolver = SessionResolver(verifier, components.issuer, timeout=0.05)

        outcome = await resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert outcome.clear_credentials

    @pytest.mark.asyncio
    async def test_store_down_during_rotation(
        self, components: AuthComponents, user: User, clock
    ) -> None:
        pair = await _expired_pair(components, user, clock)
        issuer = AsyncMock()
        issuer.issue_access_only = AsyncMock(side_effect=StoreUnavailableError("db"))
        resolver = SessionResolver(components.verifier, issuer, timeout=1.0)

        outcome = await resolver.resolve(pair.access_token, pair.refresh_token)

        assert outcome.identity is None
        assert not outcome.rotated


class TestRolelessClaims:
    """Verified claims without a role never become an identity."""

    @pytest.mark.asyncio
    async def test_roleless_access_claims_rejected(
        self, components: AuthComponents, clock
    ) -> None:
        now = clock()
        claims = Claims(
            user_id="01USER",
            token_type=TokenType.ACCESS,
            jti="jti-1",
            issued_at=now,
            expires_at=now + timedelta(minutes=15),
            role=None,
        )
        verifier = AsyncMock()
        verifier.verify_access = AsyncMock(return_value=Verified(claims))
        resolver = SessionResolver(verifier, components.issuer, timeout=1.0)

        outcome = await resolver.resolve("token", None)

        assert outcome.identity is None
        assert outcome.reason == RejectReason.INVALID
        assert outcome.clear_credentials
