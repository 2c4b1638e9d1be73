"""Unit tests for request building and the RUCKUS One client."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sz_r1_migrate.adapters import ApGroup
from sz_r1_migrate.api_client import (
    MSP_HEADER,
    TENANT_HEADER,
    APIError,
    RuckusOneClient,
    build_request,
    resolve_path,
)
from sz_r1_migrate.credentials import Credentials


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(tenant_id="tenant-1", client_id="c", client_secret="s", venue_id="venue-1")


@pytest.fixture
def msp_credentials() -> Credentials:
    return Credentials(
        tenant_id="msp-tenant",
        client_id="c",
        client_secret="s",
        mode="msp",
        msp_id="msp-1",
        target_tenant_id="customer-1",
    )


def token_manager(token: str = "tok") -> MagicMock:
    manager = MagicMock()
    manager.get_token = AsyncMock(return_value=token)
    return manager


class TestResolvePath:
    """Tests for tenant path scoping."""

    @pytest.mark.parametrize("path", ["/venues", "/venues/v1/apGroups", "/networks", "/mspCustomers"])
    def test_global_prefixes_unchanged(self, credentials: Credentials, path: str) -> None:
        assert resolve_path(credentials, path) == path

    def test_tenant_prefix_added(self, credentials: Credentials) -> None:
        assert resolve_path(credentials, "/apGroups") == "/tenants/tenant-1/apGroups"

    def test_empty_path_is_tenant(self, credentials: Credentials) -> None:
        assert resolve_path(credentials, "") == "/tenants/tenant-1"

    def test_leading_slash_added(self, credentials: Credentials) -> None:
        assert resolve_path(credentials, "venues") == "/venues"


class TestBuildRequest:
    """Tests for build_request."""

    def test_regular_headers(self, credentials: Credentials) -> None:
        prepared = build_request("regular", credentials, "/venues", "tok")

        assert prepared.url == "https://api.ruckus.cloud/venues"
        assert prepared.headers == {"Authorization": "Bearer tok", "Accept": "*/*"}

    def test_region_origin(self, credentials: Credentials) -> None:
        prepared = build_request("regular", credentials.merge(region="asia"), "/venues", "tok")

        assert prepared.url == "https://api.asia.ruckus.cloud/venues"

    def test_unknown_region(self) -> None:
        with pytest.raises(ValueError):
            build_request("regular", Credentials(tenant_id="t", region="mars"), "/venues", "tok")

    def test_msp_targets_customer(self, msp_credentials: Credentials) -> None:
        prepared = build_request("msp", msp_credentials, "/venues", "tok")

        assert prepared.headers[TENANT_HEADER] == "customer-1"
        assert prepared.headers[MSP_HEADER] == "msp-1"

    def test_msp_without_target_uses_own_tenant(self, msp_credentials: Credentials) -> None:
        prepared = build_request("msp", msp_credentials.merge(target_tenant_id=""), "/venues", "tok")

        assert prepared.headers[TENANT_HEADER] == "msp-tenant"

    def test_msp_explicit_overrides(self, msp_credentials: Credentials) -> None:
        prepared = build_request(
            "msp",
            msp_credentials,
            "/venues",
            "tok",
            msp_scope="msp-2",
            target_tenant_id="customer-2",
        )

        assert prepared.headers[TENANT_HEADER] == "customer-2"
        assert prepared.headers[MSP_HEADER] == "msp-2"

    def test_msp_without_msp_id(self, msp_credentials: Credentials) -> None:
        prepared = build_request("msp", msp_credentials.merge(msp_id=""), "/venues", "tok")

        assert MSP_HEADER not in prepared.headers
        assert TENANT_HEADER in prepared.headers

    def test_msp_customers_path_has_no_delegation(self, msp_credentials: Credentials) -> None:
        prepared = build_request("msp", msp_credentials, "/mspCustomers", "tok")

        assert TENANT_HEADER not in prepared.headers
        assert MSP_HEADER not in prepared.headers

    def test_regular_mode_ignores_msp_fields(self, msp_credentials: Credentials) -> None:
        prepared = build_request("regular", msp_credentials, "/venues", "tok")

        assert TENANT_HEADER not in prepared.headers


class TestRuckusOneClient:
    """Tests for RuckusOneClient."""

    @pytest.mark.asyncio
    async def test_get_sends_prepared_request(self, credentials: Credentials) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "tenant-1", "name": "Acme"})

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            result = await client.test_connection()

        assert result == {"id": "tenant-1", "name": "Acme"}
        assert str(seen[0].url) == "https://api.ruckus.cloud/tenants/tenant-1"
        assert seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_error_response(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "venue not found"})

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(APIError) as exc_info:
                await client.get("/venues/missing")

        error = exc_info.value
        assert error.status_code == 404
        assert error.reason == "Not Found"
        assert error.response_body == {"message": "venue not found"}
        assert str(error) == '404 Not Found - {"message":"venue not found"}'

    @pytest.mark.asyncio
    async def test_transport_failure(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(APIError) as exc_info:
                await client.get("/venues")

        assert exc_info.value.status_code == 0

    @pytest.mark.asyncio
    async def test_list_ap_groups(self, credentials: Credentials) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(
                200,
                json=[{"id": "g1", "name": "Floor1"}, {"id": "g0", "isDefault": True}],
            )

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            groups = await client.list_ap_groups("venue-1")

        assert seen == ["/venues/venue-1/apGroups"]
        assert groups == [ApGroup("g1", "Floor1"), ApGroup("g0", "", is_default=True)]

    @pytest.mark.asyncio
    async def test_create_ap_paths(self, credentials: Credentials) -> None:
        seen: list[tuple[str, str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(201, json={"requestId": "r1"})

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            await client.create_ap("venue-1", {"name": "AP1"}, "g1")
            await client.create_ap("venue-1", {"name": "AP2"})

        assert seen == [
            ("POST", "/venues/venue-1/apGroups/g1/aps", {"name": "AP1"}),
            ("POST", "/venues/venue-1/aps", {"name": "AP2"}),
        ]

    @pytest.mark.asyncio
    async def test_list_access_points_unwraps_data(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/venues/aps"
            return httpx.Response(200, json={"data": [{"serialNumber": "SN1", "name": "AP1"}]})

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            aps = await client.list_access_points()

        assert [ap.serial_number for ap in aps] == ["SN1"]

    @pytest.mark.asyncio
    async def test_empty_body(self, credentials: Credentials) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        async with RuckusOneClient(
            credentials, token_manager(), transport=httpx.MockTransport(handler)
        ) as client:
            assert await client.post("/venues/venue-1/aps", {}) == {}
