"""Unit tests for the Yahoo session (crumb) manager."""
import asyncio

import httpx
import pytest

from analyser.core.exceptions import SessionRefreshError
from analyser.managers.refresh_manager.integrations.yahoo_session import (
    YahooSessionManager,
    build_http_client,
)


@pytest.fixture
def make_session(yahoo_stub, fake_clock):
    clients = []

    def _make(ttl_seconds=900.0):
        client = build_http_client(transport=yahoo_stub.transport)
        clients.append(client)
        return YahooSessionManager(client=client, time_provider=fake_clock, ttl_seconds=ttl_seconds)

    return _make


class TestHandshake:
    @pytest.mark.asyncio
    async def test_cookie_then_crumb(self, make_session, yahoo_stub):
        session = make_session()

        credential = await session.get_valid_credential()

        assert credential.token == "crumb1"
        assert yahoo_stub.events == ["session", "crumb"]
        assert session.refresh_count == 1

    @pytest.mark.asyncio
    async def test_valid_credential_is_reused(self, make_session, yahoo_stub):
        session = make_session()

        first = await session.get_valid_credential()
        second = await session.get_valid_credential()

        assert first is second
        assert yahoo_stub.crumb_requests == 1

    @pytest.mark.asyncio
    async def test_crumb_endpoint_error_raises(self, make_session, yahoo_stub):
        yahoo_stub.crumb_status = 429
        session = make_session()

        with pytest.raises(SessionRefreshError):
            await session.get_valid_credential()

    @pytest.mark.asyncio
    async def test_html_crumb_rejected(self, make_session, yahoo_stub):
        yahoo_stub.crumb_body = "<html>consent</html>"
        session = make_session()

        with pytest.raises(SessionRefreshError):
            await session.get_valid_credential()

    @pytest.mark.asyncio
    async def test_transport_error_raises_session_error(self, fake_clock):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = build_http_client(transport=httpx.MockTransport(handler))
        session = YahooSessionManager(client=client, time_provider=fake_clock)

        with pytest.raises(SessionRefreshError):
            await session.get_valid_credential()


class TestSingleFlight:
    """Concurrent callers share one handshake."""

    @pytest.mark.asyncio
    async def test_two_concurrent_callers_one_handshake(self, make_session, yahoo_stub):
        session = make_session()

        first, second = await asyncio.gather(
            session.get_valid_credential(),
            session.get_valid_credential(),
        )

        assert yahoo_stub.crumb_requests == 1
        assert first is second

    @pytest.mark.asyncio
    async def test_many_concurrent_callers_one_handshake(self, make_session, yahoo_stub):
        session = make_session()

        credentials = await asyncio.gather(*(session.get_valid_credential() for _ in range(20)))

        assert yahoo_stub.crumb_requests == 1
        assert len({c.token for c in credentials}) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self, make_session, yahoo_stub):
        yahoo_stub.crumb_status = 500
        session = make_session()

        results = await asyncio.gather(
            session.get_valid_credential(),
            session.get_valid_credential(),
            return_exceptions=True,
        )

        assert all(isinstance(r, SessionRefreshError) for r in results)
        assert yahoo_stub.crumb_requests == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_is_retried_by_next_caller(self, make_session, yahoo_stub):
        yahoo_stub.crumb_status = 500
        session = make_session()
        with pytest.raises(SessionRefreshError):
            await session.get_valid_credential()

        yahoo_stub.crumb_status = 200
        credential = await session.get_valid_credential()

        assert credential.token == "crumb2"


class TestExpiryAndInvalidation:
    @pytest.mark.asyncio
    async def test_expired_credential_refreshed_once(self, make_session, yahoo_stub, fake_clock):
        session = make_session(ttl_seconds=1.0)
        first = await session.get_valid_credential()

        fake_clock.advance(1.5)
        second, third = await asyncio.gather(
            session.get_valid_credential(),
            session.get_valid_credential(),
        )

        assert first.token == "crumb1"
        assert second.token == third.token == "crumb2"
        assert yahoo_stub.crumb_requests == 2

    @pytest.mark.asyncio
    async def test_credential_valid_at_exact_ttl(self, make_session, yahoo_stub, fake_clock):
        session = make_session(ttl_seconds=1.0)
        await session.get_valid_credential()

        fake_clock.advance(1.0)
        await session.get_valid_credential()

        assert yahoo_stub.crumb_requests == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, make_session, yahoo_stub):
        session = make_session()
        first = await session.get_valid_credential()

        session.invalidate(first)
        second = await session.get_valid_credential()

        assert second.token == "crumb2"
        assert yahoo_stub.crumb_requests == 2

    @pytest.mark.asyncio
    async def test_stale_invalidation_keeps_newer_credential(self, make_session, yahoo_stub):
        session = make_session()
        first = await session.get_valid_credential()
        session.invalidate(first)
        second = await session.get_valid_credential()

        # A worker still holding the first crumb reports it rejected late
        session.invalidate(first)
        third = await session.get_valid_credential()

        assert third is second
        assert yahoo_stub.crumb_requests == 2

    @pytest.mark.asyncio
    async def test_invalidate_without_credential_clears(self, make_session, yahoo_stub):
        session = make_session()
        await session.get_valid_credential()

        session.invalidate()
        await session.get_valid_credential()

        assert yahoo_stub.crumb_requests == 2
