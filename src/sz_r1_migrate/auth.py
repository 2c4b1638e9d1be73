"""OAuth2 client-credentials token acquisition for RUCKUS One.

Tokens are requested through an ordered list of strategies, stopping at the
first one that succeeds, and cached per credential fingerprint until shortly
before they expire.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from sz_r1_migrate.config import origin_for_region
from sz_r1_migrate.credentials import Credentials
from sz_r1_migrate.token_cache import TokenCache

logger = logging.getLogger(__name__)

AUTH_FAILED_MESSAGE = "Authentication failed - please check your credentials"
REDIRECT_LOOP_SIGNATURE = "maximum redirect reached"

# Some deployments return the token in this header with an empty body
TOKEN_HEADER = "login-token"

DEFAULT_EXPIRES_IN = 3600
MIN_EXPIRES_IN = 60
EXPIRY_MARGIN_SECONDS = 30
ERROR_DETAIL_LIMIT = 200


class AuthenticationError(Exception):
    """Raised when no token could be obtained."""

    def __init__(self, message: str, attempts: list[TokenRequestError] | None = None) -> None:
        self.message = message
        self.attempts = attempts or []
        super().__init__(message)


class InvalidTokenResponseError(AuthenticationError):
    """Raised when a token endpoint answers 2xx without a usable token.

    This stops the strategy list instead of falling through to the next one.
    """

    pass


class TokenRequestError(Exception):
    """A single token request that returned a non-success status."""

    def __init__(self, status_code: int, reason: str, detail: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.detail = detail
        status = f"{status_code} {reason}".strip()
        super().__init__(f"{status} - {detail}" if detail else status)


@dataclass(frozen=True)
class TokenRequest:
    """Everything needed to POST one token request."""

    label: str
    path: str
    data: dict[str, str]
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expires_in: Any = None


TokenStrategy = Callable[[Credentials], TokenRequest]


def _tenant_token_path(credentials: Credentials) -> str:
    return f"/oauth2/token/{quote(credentials.tenant_id, safe='')}"


def tenant_form_strategy(credentials: Credentials) -> TokenRequest:
    """Client id and secret in the form body, tenant-scoped path."""
    return TokenRequest(
        label="tenant-scoped with form data",
        path=_tenant_token_path(credentials),
        data={
            "grant_type": "client_credentials",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        },
    )


def tenant_basic_auth_strategy(credentials: Credentials) -> TokenRequest:
    """HTTP Basic auth, tenant-scoped path."""
    pair = f"{credentials.client_id}:{credentials.client_secret}".encode()
    return TokenRequest(
        label="tenant-scoped with basic auth",
        path=_tenant_token_path(credentials),
        data={"grant_type": "client_credentials"},
        headers={"Authorization": "Basic " + base64.b64encode(pair).decode("ascii")},
    )


def generic_form_strategy(credentials: Credentials) -> TokenRequest:
    """Client id and secret in the form body, standard OAuth2 path."""
    return TokenRequest(
        label="standard oauth2",
        path="/oauth2/token",
        data={
            "grant_type": "client_credentials",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        },
    )


DEFAULT_STRATEGIES: tuple[TokenStrategy, ...] = (
    tenant_form_strategy,
    tenant_basic_auth_strategy,
    generic_form_strategy,
)


def token_ttl(expires_in: Any) -> float:
    """Return how long to cache a token, in seconds.

    Missing, zero or non-numeric ``expires_in`` counts as one hour, short
    or negative lifetimes are raised to a minute, and a 30 second margin is
    subtracted.
    """
    try:
        seconds = float(expires_in) if expires_in is not None else 0.0
    except (TypeError, ValueError):
        seconds = 0.0
    if seconds != seconds or seconds == 0:
        seconds = DEFAULT_EXPIRES_IN
    return max(MIN_EXPIRES_IN, seconds) - EXPIRY_MARGIN_SECONDS


def error_detail(response: httpx.Response) -> str:
    """Best-effort error body: compact JSON, else text cut to 200 characters."""
    try:
        return json.dumps(response.json(), separators=(",", ":"))
    except ValueError:
        return response.text[:ERROR_DETAIL_LIMIT]


async def request_token(client: httpx.AsyncClient, request: TokenRequest) -> TokenResponse:
    """POST one token request and extract the token.

    Raises:
        TokenRequestError: On a non-success status or transport failure.
        InvalidTokenResponseError: On success without a usable token.
    """
    try:
        response = await client.post(request.path, data=request.data, headers=request.headers)
    except httpx.RequestError as e:
        raise TokenRequestError(0, "Request failed", str(e)) from e

    header_token = response.headers.get(TOKEN_HEADER)

    if response.is_success:
        if header_token:
            return TokenResponse(access_token=header_token)
        try:
            body = response.json()
        except ValueError:
            logger.error("Token response was not JSON: %s", response.text[:ERROR_DETAIL_LIMIT])
            raise InvalidTokenResponseError(
                f"Authentication failed: {response.status_code} "
                f"{response.reason_phrase} (invalid JSON response)"
            ) from None
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise InvalidTokenResponseError(
                f"Authentication failed: {response.status_code} "
                f"{response.reason_phrase} (no access_token in response)"
            )
        return TokenResponse(access_token=str(token), expires_in=body.get("expires_in"))

    raise TokenRequestError(response.status_code, response.reason_phrase, error_detail(response))


def _is_known_auth_failure(error: TokenRequestError) -> bool:
    return error.status_code == 500 or REDIRECT_LOOP_SIGNATURE in str(error)


def _log_token_claims(token: str) -> None:
    parts = token.split(".")
    if len(parts) != 3:
        return
    try:
        padded = parts[1] + "=" * (-len(parts[1]) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (ValueError, TypeError):
        logger.debug("Token is not a decodable JWT")
        return
    if isinstance(claims, dict):
        logger.debug(
            "Token claims: tenantId=%s tenantType=%s scope=%s",
            claims.get("tenantId"),
            claims.get("tenantType"),
            claims.get("scope"),
        )


class TokenManager:
    """Fetches and caches bearer tokens.

    Example:
        >>> manager = TokenManager(MemoryTokenCache())
        >>> token = await manager.get_token(credentials)
    """

    def __init__(
        self,
        cache: TokenCache,
        strategies: Sequence[TokenStrategy] = DEFAULT_STRATEGIES,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the token manager.

        Args:
            cache: Where tokens are stored between calls.
            strategies: Token request builders, tried in order.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.cache = cache
        self.strategies = tuple(strategies)
        self.timeout = timeout
        self._transport = transport

    async def get_token(self, credentials: Credentials) -> str:
        """Return a bearer token, from cache when possible.

        Raises:
            AuthenticationError: If every strategy fails, credentials are
                incomplete, or a token response is unusable.
        """
        missing = credentials.missing_fields("tenant_id", "client_id", "client_secret")
        if missing:
            raise AuthenticationError(f"Missing credentials: {', '.join(missing)}")

        fingerprint = credentials.fingerprint
        cached = self.cache.get(fingerprint)
        if cached:
            logger.debug("Using cached token for tenant %s", credentials.tenant_id)
            return cached

        origin = origin_for_region(credentials.region)
        logger.info(
            "Requesting new token for tenant %s in region %s",
            credentials.tenant_id,
            credentials.region,
        )

        attempts: list[TokenRequestError] = []
        async with httpx.AsyncClient(
            base_url=origin,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            for number, strategy in enumerate(self.strategies, start=1):
                request = strategy(credentials)
                logger.debug("Token attempt %d: %s (%s)", number, request.label, request.path)
                try:
                    response = await request_token(client, request)
                except TokenRequestError as e:
                    logger.warning("Token attempt %d failed: %s", number, e)
                    attempts.append(e)
                    continue

                ttl = token_ttl(response.expires_in)
                self.cache.set(fingerprint, response.access_token, ttl)
                _log_token_claims(response.access_token)
                logger.info("Token obtained via %s, cached for %.0f seconds", request.label, ttl)
                return response.access_token

        if not attempts:
            raise AuthenticationError("Authentication failed - unknown error")

        last = attempts[-1]
        if _is_known_auth_failure(last):
            raise AuthenticationError(AUTH_FAILED_MESSAGE, attempts)
        raise AuthenticationError(f"Authentication failed: {last}", attempts)

    def invalidate(self, credentials: Credentials) -> None:
        """Drop any cached token for these credentials."""
        self.cache.delete(credentials.fingerprint)
