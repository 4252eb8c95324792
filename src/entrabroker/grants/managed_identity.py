from __future__ import annotations

import logging

from entrabroker.errors import GrantError

from .base import GrantResult, TokenEndpoint

logger = logging.getLogger(__name__)


class ManagedIdentityGrant:
    """Query the instance metadata service for a managed identity token.

    The endpoint only exists inside Azure compute, so the request uses a short
    timeout and an unreachable endpoint is reported as a :class:`GrantError`.
    """

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def execute(
        self,
        resource: str,
        *,
        client_id: str | None = None,
        object_id: str | None = None,
        azure_resource_id: str | None = None,
    ) -> GrantResult:
        settings = self.endpoint.settings
        params = {
            "api-version": settings.managed_identity_api_version,
            "resource": resource,
        }
        if client_id:
            params["client_id"] = client_id
        if object_id:
            params["object_id"] = object_id
        if azure_resource_id:
            params["mi_res_id"] = azure_resource_id

        logger.info("Requesting managed identity token for %s", resource)
        try:
            response = self.endpoint.send(
                "GET",
                settings.managed_identity_endpoint,
                params=params,
                headers={"Metadata": "true"},
                timeout=settings.managed_identity_timeout,
            )
        except GrantError as exc:
            raise GrantError(f"Managed identity endpoint unreachable: {exc.reason}") from exc
        return GrantResult.from_response(self.endpoint.json_or_raise(response))
