"""Unit tests for token acquisition."""

from urllib.parse import parse_qs

import httpx
import pytest

from sz_r1_migrate.auth import (
    AUTH_FAILED_MESSAGE,
    AuthenticationError,
    InvalidTokenResponseError,
    TokenManager,
    generic_form_strategy,
    tenant_form_strategy,
    token_ttl,
)
from sz_r1_migrate.credentials import Credentials
from sz_r1_migrate.token_cache import MemoryTokenCache


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(tenant_id="tenant-1", client_id="client-1", client_secret="secret-1")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_manager(handler, clock: FakeClock | None = None, **kwargs) -> TokenManager:
    cache = MemoryTokenCache(clock or FakeClock())
    return TokenManager(cache, transport=httpx.MockTransport(handler), **kwargs)


def form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestTokenTtl:
    """Tests for token_ttl."""

    @pytest.mark.parametrize(
        ("expires_in", "expected"),
        [
            (None, 3570),
            (0, 3570),
            ("abc", 3570),
            (3600, 3570),
            ("7200", 7170),
            (10, 30),
            (60, 30),
            (-5, 30),
        ],
    )
    def test_ttl(self, expires_in, expected) -> None:
        assert token_ttl(expires_in) == expected


class TestStrategies:
    """Tests for the token request builders."""

    def test_tenant_form(self, credentials: Credentials) -> None:
        request = tenant_form_strategy(credentials)

        assert request.path == "/oauth2/token/tenant-1"
        assert request.data["client_secret"] == "secret-1"

    def test_tenant_id_encoded(self) -> None:
        request = tenant_form_strategy(Credentials(tenant_id="a/b"))

        assert request.path == "/oauth2/token/a%2Fb"

    def test_generic_form(self, credentials: Credentials) -> None:
        request = generic_form_strategy(credentials)

        assert request.path == "/oauth2/token"
        assert request.data["grant_type"] == "client_credentials"


class TestGetToken:
    """Tests for TokenManager.get_token."""

    @pytest.mark.asyncio
    async def test_first_strategy(self, credentials: Credentials) -> None:
        """A JSON access_token from the first strategy is returned."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})

        token = await make_manager(handler).get_token(credentials)

        assert token == "tok"
        assert len(requests) == 1
        assert requests[0].url.host == "api.ruckus.cloud"
        assert requests[0].url.path == "/oauth2/token/tenant-1"
        assert form(requests[0]) == {
            "grant_type": "client_credentials",
            "client_id": "client-1",
            "client_secret": "secret-1",
        }

    @pytest.mark.asyncio
    async def test_falls_back_to_basic_auth(self, credentials: Credentials) -> None:
        """A failed form request moves on to HTTP Basic auth."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(401, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "tok"})

        token = await make_manager(handler).get_token(credentials)

        assert token == "tok"
        assert len(requests) == 2
        assert requests[1].headers["Authorization"].startswith("Basic ")
        assert form(requests[1]) == {"grant_type": "client_credentials"}

    @pytest.mark.asyncio
    async def test_falls_back_to_generic_path(self, credentials: Credentials) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            return httpx.Response(403, text="forbidden")

        token = await make_manager(handler).get_token(credentials)

        assert token == "tok"
        assert paths == ["/oauth2/token/tenant-1", "/oauth2/token/tenant-1", "/oauth2/token"]

    @pytest.mark.asyncio
    async def test_transport_error_moves_on(self, credentials: Credentials) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"access_token": "tok"})

        assert await make_manager(handler).get_token(credentials) == "tok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_header_token_wins(self, credentials: Credentials) -> None:
        """The login-token header takes precedence over the body."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"login-token": "from-header"},
                json={"access_token": "from-body"},
            )

        assert await make_manager(handler).get_token(credentials) == "from-header"

    @pytest.mark.asyncio
    async def test_header_token_with_empty_body(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"login-token": "from-header"})

        assert await make_manager(handler).get_token(credentials) == "from-header"

    @pytest.mark.asyncio
    async def test_redirect_loop_message(self, credentials: Credentials) -> None:
        """A 500 mentioning a redirect loop gives the normalized message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Error: maximum redirect reached")

        with pytest.raises(AuthenticationError) as exc_info:
            await make_manager(handler).get_token(credentials)

        assert exc_info.value.message == AUTH_FAILED_MESSAGE
        assert str(exc_info.value) == "Authentication failed - please check your credentials"
        assert len(exc_info.value.attempts) == 3

    @pytest.mark.asyncio
    async def test_server_error_message(self, credentials: Credentials) -> None:
        """A bare 500 also gives the normalized message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(AuthenticationError) as exc_info:
            await make_manager(handler).get_token(credentials)

        assert exc_info.value.message == AUTH_FAILED_MESSAGE
        assert [e.status_code for e in exc_info.value.attempts] == [500, 500, 500]

    @pytest.mark.asyncio
    async def test_last_error_passed_through(self, credentials: Credentials) -> None:
        """Other failures report the last attempt's status and body."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        with pytest.raises(AuthenticationError) as exc_info:
            await make_manager(handler).get_token(credentials)

        assert str(exc_info.value) == (
            'Authentication failed: 401 Unauthorized - {"error":"invalid_client"}'
        )

    @pytest.mark.asyncio
    async def test_text_detail_truncated(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="x" * 500)

        with pytest.raises(AuthenticationError) as exc_info:
            await make_manager(handler).get_token(credentials)

        assert exc_info.value.attempts[-1].detail == "x" * 200

    @pytest.mark.asyncio
    async def test_unparseable_success_is_fatal(self, credentials: Credentials) -> None:
        """A 2xx without a usable token stops the strategy list."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, text="<html>login</html>")

        with pytest.raises(InvalidTokenResponseError):
            await make_manager(handler).get_token(credentials)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_success_without_access_token_is_fatal(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "bearer"})

        with pytest.raises(InvalidTokenResponseError):
            await make_manager(handler).get_token(credentials)

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        """Incomplete credentials fail without a request."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(AuthenticationError) as exc_info:
            await make_manager(handler).get_token(Credentials(tenant_id="t"))

        assert "client_id" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_region_origin(self) -> None:
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(200, json={"access_token": "tok"})

        credentials = Credentials(tenant_id="t", client_id="c", client_secret="s", region="eu")
        await make_manager(handler).get_token(credentials)

        assert hosts == ["api.eu.ruckus.cloud"]


class TestTokenCaching:
    """Tests for token reuse and expiry."""

    @pytest.mark.asyncio
    async def test_second_call_uses_cache(self, credentials: Credentials, clock: FakeClock) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{calls}", "expires_in": 3600})

        manager = make_manager(handler, clock)

        first = await manager.get_token(credentials)
        second = await manager.get_token(credentials)

        assert first == second == "tok-1"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_expired_token_refetched(self, credentials: Credentials, clock: FakeClock) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{calls}", "expires_in": 3600})

        manager = make_manager(handler, clock)
        await manager.get_token(credentials)

        clock.now += 3570

        assert await manager.get_token(credentials) == "tok-2"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cache_scoped_by_client(self, credentials: Credentials) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{calls}"})

        manager = make_manager(handler)
        await manager.get_token(credentials)
        other = await manager.get_token(credentials.merge(client_id="client-2"))

        assert other == "tok-2"

    @pytest.mark.asyncio
    async def test_invalidate(self, credentials: Credentials) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{calls}"})

        manager = make_manager(handler)
        await manager.get_token(credentials)

        manager.invalidate(credentials)

        assert await manager.get_token(credentials) == "tok-2"

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, credentials: Credentials) -> None:
        responses = [httpx.Response(401), httpx.Response(401), httpx.Response(401)]
        responses.append(httpx.Response(200, json={"access_token": "tok"}))

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        manager = make_manager(handler)
        with pytest.raises(AuthenticationError):
            await manager.get_token(credentials)

        assert await manager.get_token(credentials) == "tok"
