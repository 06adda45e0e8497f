from __future__ import annotations


class CarLinkError(Exception):
    """Base class for link and command errors."""


class IOFailure(CarLinkError):
    """Stream-level failure: open, write or close did not succeed."""


class PermissionDenied(CarLinkError):
    """Host policy refused access to the endpoint."""


class NotConnected(CarLinkError):
    """Operation needs an active link and there is none."""


class NoEndpointSelected(CarLinkError):
    """Connect was attempted before an endpoint was chosen."""
