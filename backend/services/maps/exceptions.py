"""Errors raised by the routing/geocoding adapter."""


class MapsServiceError(Exception):
    """Base class for routing and geocoding failures."""
    code = "provider_error"
    status_code = 502


class ProviderUnavailable(MapsServiceError):
    """Upstream unreachable, timed out, or not configured (missing credential)."""
    code = "provider_unavailable"
    status_code = 503


class RouteNotFound(MapsServiceError):
    """No route (or no location) exists for the requested points."""
    code = "route_not_found"
    status_code = 404


class ProviderError(MapsServiceError):
    """Any other non-OK upstream status."""
    code = "provider_error"
    status_code = 502
