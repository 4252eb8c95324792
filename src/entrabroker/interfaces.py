from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:
    from entrabroker.credentials import DeviceBinding
    from entrabroker.grants.base import GrantResult


class InteractiveCollector(Protocol):
    """Collects user credentials outside the broker (browser, prompt, ...).

    Implementations return a token endpoint document containing either a
    ``code`` to redeem or ``access_token`` (plus optional ``refresh_token``
    and ``foci``). ``None`` means the user cancelled.
    """

    def collect(
        self,
        resource: str,
        client_id: str,
        tenant: str,
        hints: Mapping[str, Any],
    ) -> Mapping[str, Any] | None:
        """Run the interactive sign-in."""
        raise NotImplementedError


class DeviceAuthSigner(Protocol):
    """Upgrades a token pair to one carrying a ``deviceid`` claim."""

    def upgrade(
        self,
        access_token: str,
        refresh_token: str,
        binding: "DeviceBinding",
    ) -> "GrantResult":
        """Return the device-bound token pair or raise."""
        raise NotImplementedError


class DesktopSsoExchanger(Protocol):
    """Turns a Kerberos service ticket into a desktop SSO token."""

    def exchange(self, ticket: str, domain: str) -> str:
        raise NotImplementedError


class Refresher(Protocol):
    """What the token cache needs to renew an expired entry."""

    def refresh(
        self,
        resource: str,
        client_id: str,
        refresh_token: str,
        tenant: str = "common",
        *,
        sub_scope: str | None = None,
    ) -> "GrantResult":
        raise NotImplementedError
