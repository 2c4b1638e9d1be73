"""
RUCKUS One API client.

Async HTTP client for the RUCKUS One REST API. Uses httpx for requests and
the TokenManager for bearer tokens. Paths and headers are built by
build_request, which handles tenant scoping and MSP delegation.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from sz_r1_migrate.adapters import (
    AccessPoint,
    ApGroup,
    parse_access_points,
    parse_ap_groups,
    unwrap_collection,
)
from sz_r1_migrate.auth import TokenManager, error_detail
from sz_r1_migrate.config import origin_for_region
from sz_r1_migrate.credentials import Credentials

logger = logging.getLogger(__name__)

# Resource roots addressed without the /tenants/{id} prefix
TENANT_GLOBAL_PREFIXES: tuple[str, ...] = ("/venues", "/networks", "/mspCustomers")

MSP_CUSTOMERS_PREFIX = "/mspCustomers"
TENANT_HEADER = "x-rks-tenantid"
MSP_HEADER = "X-MSP-ID"


class APIError(Exception):
    """Exception raised for API errors.

    Attributes:
        status_code: HTTP status, or 0 when the request never got a response.
        reason: HTTP reason phrase.
        message: Error detail (compact JSON body, else truncated text).
        response_body: Parsed JSON body or raw text.
    """

    def __init__(
        self,
        status_code: int,
        reason: str,
        message: str,
        response_body: Any = None,
    ):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        self.response_body = response_body
        status = f"{status_code} {reason}".strip()
        super().__init__(f"{status} - {message}" if message else status)


@dataclass(frozen=True)
class PreparedRequest:
    """Absolute URL and headers for one API call."""

    url: str
    headers: dict[str, str]


def _normalize_path(resource_path: str) -> str:
    if resource_path and not resource_path.startswith("/"):
        return "/" + resource_path
    return resource_path


def resolve_path(credentials: Credentials, resource_path: str) -> str:
    """Return the path as sent upstream, adding the tenant prefix if needed."""
    path = _normalize_path(resource_path)
    if path.startswith(TENANT_GLOBAL_PREFIXES):
        return path
    return f"/tenants/{credentials.tenant_id}{path}"


def build_request(
    mode: str,
    credentials: Credentials,
    resource_path: str,
    token: str,
    msp_scope: str | None = None,
    target_tenant_id: str | None = None,
) -> PreparedRequest:
    """
    Build the URL and headers for a RUCKUS One request.

    Args:
        mode: "regular" or "msp".
        credentials: Supplies tenant id and region (and MSP defaults).
        resource_path: Path such as "/venues" or "/apGroups"; "" addresses
            the tenant itself.
        token: Bearer token.
        msp_scope: MSP id for the MSP header; defaults to credentials.msp_id.
        target_tenant_id: Customer tenant in MSP mode; defaults to
            credentials.target_tenant_id, then the caller's own tenant.

    Returns:
        PreparedRequest with the absolute URL and headers.

    Raises:
        ValueError: If the region is unknown.
    """
    path = resolve_path(credentials, resource_path)
    url = origin_for_region(credentials.region) + path

    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "*/*",
    }

    if mode == "msp" and not path.startswith(MSP_CUSTOMERS_PREFIX):
        headers[TENANT_HEADER] = (
            target_tenant_id or credentials.target_tenant_id or credentials.tenant_id
        )
        msp_id = msp_scope if msp_scope is not None else credentials.msp_id
        if msp_id:
            headers[MSP_HEADER] = msp_id

    return PreparedRequest(url=url, headers=headers)


class RuckusOneClient:
    """
    Async client for the RUCKUS One API.

    Example:
        >>> async with RuckusOneClient(credentials, TokenManager(cache)) as client:
        ...     groups = await client.list_ap_groups(credentials.venue_id)
    """

    def __init__(
        self,
        credentials: Credentials,
        token_manager: TokenManager,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the RUCKUS One API client.

        Args:
            credentials: Tenant, client and MSP settings.
            token_manager: Source of bearer tokens.
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests).
        """
        self.credentials = credentials
        self.token_manager = token_manager
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RuckusOneClient":
        """Enter async context manager."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_token(self) -> str:
        """Return a bearer token for the client's credentials."""
        return await self.token_manager.get_token(self.credentials)

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated request.

        Returns:
            Parsed JSON, raw text for non-JSON bodies, or {} for empty bodies.

        Raises:
            AuthenticationError: If no token can be obtained.
            APIError: If the request fails.
        """
        token = await self.get_token()
        prepared = build_request(self.credentials.mode, self.credentials, path, token)
        client = await self._ensure_client()

        logger.debug("%s %s", method, prepared.url)
        try:
            response = await client.request(
                method=method,
                url=prepared.url,
                headers=prepared.headers,
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise APIError(0, "Request timed out", str(e)) from e
        except httpx.RequestError as e:
            raise APIError(0, "Request failed", str(e)) from e

        if not response.is_success:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            raise APIError(
                status_code=response.status_code,
                reason=response.reason_phrase,
                message=error_detail(response),
                response_body=body,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a resource path."""
        return await self._request("GET", path, params=params)

    async def post(self, path: str, payload: Any) -> Any:
        """POST a JSON payload to a resource path."""
        return await self._request("POST", path, json=payload)

    async def test_connection(self) -> Any:
        """
        Verify credentials by fetching the tenant itself.

        Returns:
            The tenant payload.
        """
        result = await self.get("")
        logger.info("Connection test succeeded for tenant %s", self.credentials.tenant_id)
        return result

    # =========================================================================
    # Venues
    # =========================================================================

    async def list_ap_groups(self, venue_id: str) -> list[ApGroup]:
        """
        List the AP groups of a venue.

        Args:
            venue_id: Venue ID

        Returns:
            Normalized AP groups
        """
        result = await self.get(f"/venues/{quote(venue_id, safe='')}/apGroups")
        return parse_ap_groups(result)

    async def create_ap(
        self,
        venue_id: str,
        payload: dict[str, Any],
        ap_group_id: str | None = None,
    ) -> Any:
        """
        Create an access point in a venue, optionally inside an AP group.

        Args:
            venue_id: Venue ID
            payload: AP body (name, description, serialNumber, ...)
            ap_group_id: AP group ID, or None for the venue level

        Returns:
            Created AP response
        """
        venue = quote(venue_id, safe="")
        if ap_group_id:
            path = f"/venues/{venue}/apGroups/{quote(ap_group_id, safe='')}/aps"
        else:
            path = f"/venues/{venue}/aps"
        return await self.post(path, payload)

    # =========================================================================
    # Inventory
    # =========================================================================

    async def list_access_points(self) -> list[AccessPoint]:
        """List every access point visible to the tenant."""
        result = await self.get("/venues/aps")
        return parse_access_points(result)

    async def list_networks(self) -> list[Any]:
        """List wireless networks as raw objects."""
        result = await self.get("/networks")
        return unwrap_collection(result)
