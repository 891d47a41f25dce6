"""HTTP transport for the routing API."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from pytourguide._api.osrm import ROUTE_QUERY, build_route_path
from pytourguide._constants import USER_AGENT
from pytourguide._redact import redact_for_log, redact_url
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import (
    RoutingApiRejectedError,
    RoutingNetworkError,
    RoutingResponseError,
    RoutingTimeoutError,
)
from pytourguide.models.poi import Coordinate

_logger = logging.getLogger(__name__)


class RoutingTransport(Protocol):
    """Structural transport interface used by the route provider.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`OsrmTransport`) concrete.
    """

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
        ...


class OsrmTransport:
    """GET two-point walking routes from an OSRM-compatible server."""

    def __init__(self, config: TourGuideConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.routing_api_key:
            headers["authorization"] = self._config.routing_api_key
        return headers

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
        """Request a route and return the decoded JSON body.

        Raises a :class:`~pytourguide.exceptions.RoutingError` subclass for
        connection failures, timeouts, non-2xx answers and non-JSON bodies.
        """
        endpoint = build_route_path(self._config.routing_profile, start, end)
        url = f"{self._config.routing_base_url.rstrip('/')}{endpoint}"
        headers = self._headers()

        _logger.debug("GET %s headers=%s", redact_url(url), redact_for_log(headers))

        try:
            async with self._http.get(url, params=ROUTE_QUERY, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise RoutingApiRejectedError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        kind=RoutingApiRejectedError.kind_for_status(resp.status),
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except RoutingApiRejectedError:
            raise
        except TimeoutError as exc:
            raise RoutingTimeoutError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise RoutingNetworkError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RoutingResponseError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise RoutingResponseError(f"Unexpected JSON payload from {endpoint}", endpoint=endpoint)
        return body
