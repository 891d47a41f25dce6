"""Custom exception hierarchy for pytourguide."""

from __future__ import annotations

from enum import StrEnum


class RoutingFailureKind(StrEnum):
    """Why a routing request did not produce a live route."""

    NETWORK = "network"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class TourGuideError(Exception):
    """Base exception for all pytourguide errors."""


class TourGuideConfigError(TourGuideError):
    """Invalid or missing configuration."""


class RoutingError(TourGuideError):
    """Routing API call failed.

    These never escape :class:`~pytourguide.provider.RouteProvider`; the
    provider converts them into fallback routes and keeps ``kind`` as the
    failure reason.
    """

    kind: RoutingFailureKind = RoutingFailureKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        kind: RoutingFailureKind | None = None,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class RoutingNetworkError(RoutingError):
    """Connection-level failure (DNS, refused, reset)."""

    kind = RoutingFailureKind.NETWORK


class RoutingApiRejectedError(RoutingError):
    """Routing API answered with a 4xx/5xx status."""

    @staticmethod
    def kind_for_status(status_code: int) -> RoutingFailureKind:
        if status_code in (401, 403):
            return RoutingFailureKind.FORBIDDEN
        if status_code == 404:
            return RoutingFailureKind.NOT_FOUND
        return RoutingFailureKind.UNKNOWN


class RoutingTimeoutError(RoutingError):
    """Routing API did not answer within the configured timeout."""

    kind = RoutingFailureKind.TIMEOUT


class RoutingResponseError(RoutingError):
    """Routing API answered, but the body is not a usable route."""


class NoRouteAvailableError(TourGuideError):
    """No route could be produced at all.

    Fallback synthesis has no external dependency, so this only happens on
    unusable input (e.g. a tour with fewer than two POIs) or when live
    calculation was disabled and nothing is stored.
    """


class RouteCalculationInProgressError(TourGuideError):
    """A tour route pre-calculation is already running."""


class RouteStorageError(TourGuideError):
    """Persisted route could not be used."""

    def __init__(self, message: str, *, route_id: str = "") -> None:
        self.route_id = route_id
        super().__init__(message)


class InvalidStoredRouteError(RouteStorageError):
    """Stored route data is missing required structure or fails validation."""


class RouteVersionIncompatibleError(RouteStorageError):
    """Stored route was written by an incompatible (different major) format."""

    def __init__(self, message: str, *, route_id: str = "", version: str = "") -> None:
        self.version = version
        super().__init__(message, route_id=route_id)
