# =============================================================================
# Gateway Client -- Endpoint Discovery
# =============================================================================
#
# GET <discovery_url>  ->  {"url": "wss://gateway.discord.gg"}
# connect URL          ->  wss://gateway.discord.gg?encoding=json&v=9
# =============================================================================

from __future__ import annotations

import httpx

from ._logging import logger
from .constants import API_VERSION, DISCOVERY_URL, ENCODING, HTTP_TIMEOUT
from .errors import DiscoveryError


def build_gateway_url(base_url: str, api_version: int = API_VERSION) -> str:
    """Append the encoding and protocol version query parameters."""
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}encoding={ENCODING}&v={api_version}"


class EndpointResolver:
    """Looks up the gateway websocket URL.

    Performs exactly one HTTP call per :meth:`resolve`; retrying is the
    caller's decision.

    Args:
        discovery_url: Endpoint returning a JSON body with a ``url`` field.
        api_version: Protocol version for the ``v`` query parameter.
        timeout: Total HTTP timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        discovery_url: str = DISCOVERY_URL,
        *,
        api_version: int = API_VERSION,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._discovery_url = discovery_url
        self._api_version = api_version
        self._timeout = timeout
        self._transport = transport

    async def resolve(self) -> str:
        """Return the full websocket URL to dial.

        Raises:
            DiscoveryError: On network failure, non-2xx status, or a body
                without a string ``url``.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(self._discovery_url)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DiscoveryError(
                f"Gateway discovery returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"Gateway discovery failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DiscoveryError("Gateway discovery body is not JSON") from exc

        base_url = body.get("url") if isinstance(body, dict) else None
        if not isinstance(base_url, str) or not base_url:
            raise DiscoveryError("Gateway discovery body has no 'url' field")

        url = build_gateway_url(base_url, self._api_version)
        logger.info("Resolved gateway endpoint %s", url)
        return url
