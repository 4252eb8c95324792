"""Exceptions raised by the token broker."""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for every error raised by :mod:`entrabroker`."""


class InvalidRequest(BrokerError, ValueError):
    """Credential parameters are missing, incomplete or conflicting."""


class MalformedToken(BrokerError, ValueError):
    """A bearer token could not be decoded into a claim map."""


class GrantError(BrokerError):
    """The token endpoint rejected an exchange.

    Attributes:
        reason: First line of the server's ``error_description`` (or a generic
            message when the body could not be parsed).
        http_status: HTTP status code, ``None`` for transport failures.
        error_code: OAuth2 ``error`` value such as ``invalid_grant``.
    """

    def __init__(
        self,
        reason: str,
        http_status: int | None = None,
        error_code: str | None = None,
    ) -> None:
        self.reason = reason
        self.http_status = http_status
        self.error_code = error_code
        super().__init__(reason)


class GrantTimeout(GrantError):
    """The device code expired before the user completed sign-in."""


class NoCachedToken(BrokerError):
    """No usable token for the requested client/resource is cached."""


class WrongAudience(BrokerError):
    """A supplied access token was issued for a different resource."""

    def __init__(self, expected: str, actual: str | None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"The audience of the access token ({actual}) does not match "
            f"the required audience ({expected})."
        )


class DeviceUpgradeFailed(BrokerError):
    """A device-bound token could not be obtained; the plain token is kept."""


class NoAccessToken(BrokerError):
    """The acquisition finished without an access token."""
