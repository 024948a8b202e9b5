"""Exception types raised by the bridge."""

from __future__ import annotations


class AnchorrError(Exception):
    """Base class for all bridge errors."""


class ConfigurationMissing(AnchorrError):
    """The guild (or the process) has not been configured."""


class PermissionDenied(AnchorrError):
    """A non-admin invoked an admin-only action."""


class ValidationError(AnchorrError):
    """A user selection or upstream value did not have the expected shape."""


class UpstreamError(AnchorrError):
    """An external service call failed."""

    def __init__(self, service: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


class UpstreamTimeout(UpstreamError):
    """An external service call did not answer in time."""


class OptionalEnrichmentFailure(AnchorrError):
    """A best-effort lookup failed; callers degrade instead of aborting."""


class InteractionExpired(AnchorrError):
    """The platform no longer accepts responses for an interaction."""
