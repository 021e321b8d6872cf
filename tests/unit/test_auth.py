"""
Unit tests for the OpenSky credential provider.
"""

import asyncio

import pytest
import requests

from conftest import FakeClock, FakeFeed, Inbox
from backend.broadcast import BroadcastService
from ingestion.auth import TokenProvider
from ingestion.errors import AuthError


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Stands in for requests.Session; replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, headers=None, data=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "data": data, "timeout": timeout})
        response = self.responses.pop(0) if self.responses else token_response()
        if isinstance(response, Exception):
            raise response
        return response


def token_response(token="abc123", expires_in=1800):
    return FakeResponse(200, {"access_token": token, "expires_in": expires_in})


def make_provider(session, clock=None):
    return TokenProvider(
        client_id="client",
        client_secret="secret",
        token_url="https://auth.example/token",
        session=session,
        clock=clock or FakeClock(),
    )


class TestTokenProvider:
    def test_fetches_and_caches_token(self):
        session = FakeSession(token_response("first"))
        provider = make_provider(session)

        async def scenario():
            return await provider.get_valid_token(), await provider.get_valid_token()

        assert asyncio.run(scenario()) == ("first", "first")
        assert len(session.posts) == 1
        post = session.posts[0]
        assert post["url"] == "https://auth.example/token"
        assert post["data"] == {
            "grant_type": "client_credentials",
            "client_id": "client",
            "client_secret": "secret",
        }
        assert post["headers"] == {"Content-Type": "application/x-www-form-urlencoded"}

    def test_overlapping_callers_share_one_refresh(self):
        session = FakeSession(token_response("shared"))
        provider = make_provider(session)

        async def scenario():
            return await asyncio.gather(*(provider.get_valid_token() for _ in range(5)))

        assert asyncio.run(scenario()) == ["shared"] * 5
        assert len(session.posts) == 1

    def test_refreshes_at_expiry_margin(self):
        clock = FakeClock(1000)
        session = FakeSession(token_response("first", 120), token_response("second", 120))
        provider = make_provider(session, clock)

        async def scenario():
            tokens = [await provider.get_valid_token()]
            clock.advance(59)
            tokens.append(await provider.get_valid_token())
            clock.advance(1)
            tokens.append(await provider.get_valid_token())
            return tokens

        assert asyncio.run(scenario()) == ["first", "first", "second"]
        assert len(session.posts) == 2

    def test_failed_refresh_raises_and_next_call_retries(self):
        session = FakeSession(FakeResponse(500), token_response("recovered"))
        provider = make_provider(session)

        async def scenario():
            with pytest.raises(AuthError, match="HTTP 500"):
                await provider.get_valid_token()
            return await provider.get_valid_token()

        assert asyncio.run(scenario()) == "recovered"
        assert len(session.posts) == 2

    def test_overlapping_callers_share_failure(self):
        session = FakeSession(FakeResponse(401))
        provider = make_provider(session)

        async def scenario():
            return await asyncio.gather(
                *(provider.get_valid_token() for _ in range(3)),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert all(isinstance(r, AuthError) for r in results)
        assert len(session.posts) == 1

    def test_connection_error_becomes_auth_error(self):
        session = FakeSession(requests.exceptions.ConnectionError("unreachable"))
        provider = make_provider(session)

        with pytest.raises(AuthError, match="Token request failed"):
            asyncio.run(provider.get_valid_token())

    def test_malformed_body_becomes_auth_error(self):
        session = FakeSession(FakeResponse(200, {"token_type": "Bearer"}))
        provider = make_provider(session)

        with pytest.raises(AuthError, match="Malformed"):
            asyncio.run(provider.get_valid_token())

    def test_unusable_expiry_becomes_auth_error(self):
        for expires_in in (None, "soon"):
            session = FakeSession(FakeResponse(200, {"access_token": "abc", "expires_in": expires_in}))
            provider = make_provider(session)

            with pytest.raises(AuthError, match="Malformed"):
                asyncio.run(provider.get_valid_token())
            assert provider.token_info()["has_token"] is False

    def test_unusable_expiry_reaches_subscribers_as_error(self):
        session = FakeSession(FakeResponse(200, {"access_token": "abc", "expires_in": None}))
        provider = make_provider(session)
        feed = FakeFeed()
        service = BroadcastService(provider, feed, poll_interval=3600, clock=FakeClock())
        inbox = Inbox()

        async def scenario():
            await service.join("a", inbox.send)
            await service.shutdown()

        asyncio.run(scenario())

        assert [m["type"] for m in inbox.messages] == ["error"]
        assert feed.calls == []

    def test_undecodable_body_becomes_auth_error(self):
        session = FakeSession(FakeResponse(200, ValueError("not json")))
        provider = make_provider(session)

        with pytest.raises(AuthError):
            asyncio.run(provider.get_valid_token())

    def test_default_expiry(self):
        clock = FakeClock(1000)
        session = FakeSession(FakeResponse(200, {"access_token": "abc"}))
        provider = make_provider(session, clock)

        asyncio.run(provider.get_valid_token())

        assert provider.token_info()["time_until_expiry"] == 1800 - 60

    def test_without_credentials_returns_none(self):
        session = FakeSession()
        provider = TokenProvider(client_id=None, client_secret=None, session=session)

        assert not provider.has_credentials
        assert asyncio.run(provider.get_valid_token()) is None
        assert session.posts == []

    def test_clear_forces_refresh(self):
        session = FakeSession(token_response("first"), token_response("second"))
        provider = make_provider(session)

        async def scenario():
            first = await provider.get_valid_token()
            provider.clear()
            return first, await provider.get_valid_token()

        assert asyncio.run(scenario()) == ("first", "second")


class TestTokenInfo:
    def test_before_first_refresh(self):
        provider = make_provider(FakeSession())
        assert provider.token_info() == {"has_token": False, "is_expired": True}

    def test_after_refresh(self):
        clock = FakeClock(1000)
        provider = make_provider(FakeSession(token_response(expires_in=1800)), clock)
        asyncio.run(provider.get_valid_token())

        info = provider.token_info()
        assert info["has_token"] is True
        assert info["is_expired"] is False
        assert info["time_until_expiry"] == 1740
        assert info["expires_at"] == "1970-01-01T00:45:40+00:00"

        clock.advance(1740)
        assert provider.token_info()["is_expired"] is True
        assert provider.token_info()["time_until_expiry"] == 0
