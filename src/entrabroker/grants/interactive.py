from __future__ import annotations

import logging
from typing import Any, Mapping

import msal

from entrabroker.errors import GrantError, InvalidRequest
from entrabroker.interfaces import InteractiveCollector

from .base import GrantResult, TokenEndpoint, claims_field
from .token import AuthorizationCodeGrant

logger = logging.getLogger(__name__)


class InteractiveGrant:
    """Delegate sign-in to an :class:`InteractiveCollector`.

    The collector is always asked for the bootstrap resource; the broker
    re-targets the result to the requested resource afterwards.
    """

    def __init__(
        self,
        endpoint: TokenEndpoint,
        collector: InteractiveCollector | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.collector = collector
        self._code = AuthorizationCodeGrant(endpoint)

    def execute(
        self,
        client_id: str,
        tenant: str = "common",
        *,
        hints: Mapping[str, Any] | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        if self.collector is None:
            raise InvalidRequest("Interactive sign-in requires a credential collector.")
        resource = self.endpoint.settings.interactive_bootstrap_resource
        result = self.collector.collect(resource, client_id, tenant, dict(hints or {}))
        if result is None:
            raise GrantError("Interactive sign-in was cancelled")
        if result.get("error"):
            description = str(result.get("error_description") or result["error"])
            raise GrantError(description.splitlines()[0], error_code=result["error"])
        if result.get("code"):
            return self._code.execute(
                result["code"],
                resource,
                client_id,
                tenant,
                redirect_uri=result.get("redirect_uri"),
                sub_scope=sub_scope,
            )
        return GrantResult.from_response(result)


class MsalDelegatedGrant:
    """Interactive sign-in through MSAL's local browser flow."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def _application(
        self, client_id: str, tenant: str, sub_scope: str | None
    ) -> msal.PublicClientApplication:
        authority = f"{self.endpoint.settings.login_url_for(sub_scope)}/{tenant}"
        return msal.PublicClientApplication(client_id, authority=authority)

    def execute(
        self,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        login_hint: str | None = None,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        app = self._application(client_id, tenant, sub_scope)
        logger.info("Starting MSAL interactive sign-in for client %s", client_id)
        result = app.acquire_token_interactive(
            scopes=[f"{resource.rstrip('/')}/.default"],
            login_hint=login_hint,
            claims_challenge=claims_field(cae, claims),
        )
        if "access_token" not in result:
            description = str(
                result.get("error_description") or result.get("error") or "MSAL sign-in failed"
            )
            raise GrantError(description.splitlines()[0], error_code=result.get("error"))
        return GrantResult.from_response(result)
