"""Single-request OAuth2 grants against ``{login}/{tenant}/oauth2/token``."""

from __future__ import annotations

import base64
import logging
from typing import Final

from .base import GrantResult, TokenEndpoint, claims_field

logger = logging.getLogger(__name__)

REFRESH_TOKEN: Final[str] = "refresh_token"
AUTHORIZATION_CODE: Final[str] = "authorization_code"
PASSWORD: Final[str] = "password"
SAML1_1_BEARER: Final[str] = "urn:ietf:params:oauth:grant-type:saml1_1-bearer"


class RefreshTokenGrant:
    """Redeem a refresh token for ``resource`` on behalf of ``client_id``."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def _url(self, client_id: str, tenant: str, sub_scope: str | None) -> str:
        settings = self.endpoint.settings
        if client_id.lower() == settings.legacy_sync_client_id.lower():
            return f"{settings.legacy_sync_login_url}/{tenant}/oauth2/token"
        return self.endpoint.token_url(tenant, sub_scope)

    def execute(
        self,
        resource: str,
        client_id: str,
        refresh_token: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        logger.info("Refreshing token for client %s and resource %s", client_id, resource)
        data = self.endpoint.post_form(
            self._url(client_id, tenant, sub_scope),
            {
                "client_id": client_id,
                "grant_type": REFRESH_TOKEN,
                "refresh_token": refresh_token,
                "resource": resource,
                "claims": claims_field(cae, claims),
            },
        )
        return GrantResult.from_response(data)

    # Lets the cache use a grant instance directly as its refresher.
    refresh = execute


class ByoRefreshTokenGrant:
    """Use a caller-supplied refresh token (e.g. a bulk enrollment token)."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self._refresh = RefreshTokenGrant(endpoint)

    def execute(
        self,
        refresh_token: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        return self._refresh.execute(
            resource,
            client_id,
            refresh_token,
            tenant,
            cae=cae,
            claims=claims,
            sub_scope=sub_scope,
        )


class AuthorizationCodeGrant:
    """Redeem an authorization code obtained from the authorize endpoint."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def execute(
        self,
        code: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        redirect_uri: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        data = self.endpoint.post_form(
            self.endpoint.token_url(tenant, sub_scope),
            {
                "client_id": client_id,
                "grant_type": AUTHORIZATION_CODE,
                "code": code,
                "redirect_uri": redirect_uri or self.endpoint.settings.redirect_uri,
                "resource": resource,
            },
        )
        return GrantResult.from_response(data)


class PasswordGrant:
    """Resource owner password credentials grant."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def execute(
        self,
        username: str,
        password: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        logger.info("Requesting token for %s with username and password", username)
        data = self.endpoint.post_form(
            self.endpoint.token_url(tenant, sub_scope),
            {
                "client_id": client_id,
                "grant_type": PASSWORD,
                "username": username,
                "password": password,
                "resource": resource,
                "scope": "openid",
                "claims": claims_field(cae, claims),
            },
        )
        return GrantResult.from_response(data)


class SamlBearerGrant:
    """Exchange a SAML 1.1 assertion for tokens."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def execute(
        self,
        assertion: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        encoded = base64.b64encode(assertion.encode("utf-8")).decode("ascii")
        data = self.endpoint.post_form(
            self.endpoint.token_url(tenant, sub_scope),
            {
                "client_id": client_id,
                "grant_type": SAML1_1_BEARER,
                "assertion": encoded,
                "resource": resource,
                "scope": "openid",
                "claims": claims_field(cae, claims),
            },
        )
        return GrantResult.from_response(data)
