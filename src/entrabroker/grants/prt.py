"""Grants that use a Primary Refresh Token (PRT).

- :class:`PrtCookieGrant` sends a ready-made ``x-ms-RefreshTokenCredential``
  cookie to the authorize endpoint and redeems the returned code.
- :class:`SignedPrtGrant` signs a JWT-bearer request with the PRT session key,
  no browser or cookie involved.
"""

from __future__ import annotations

import logging
import time
from typing import Final
from urllib.parse import parse_qs, urlparse

from entrabroker.errors import GrantError

from .base import GrantResult, TokenEndpoint, claims_field
from .session_key import decrypt_response, is_jwe, sign_request
from .token import AuthorizationCodeGrant

logger = logging.getLogger(__name__)

JWT_BEARER: Final[str] = "urn:ietf:params:oauth:grant-type:jwt-bearer"
PRT_COOKIE_NAME: Final[str] = "x-ms-RefreshTokenCredential"
WINDOWS_VERSION: Final[str] = "10.0.19041.868"


def get_nonce(
    endpoint: TokenEndpoint, tenant: str = "common", sub_scope: str | None = None
) -> str:
    """Fetch a server nonce (``grant_type=srv_challenge``)."""
    data = endpoint.post_form(
        endpoint.token_url(tenant, sub_scope), {"grant_type": "srv_challenge"}
    )
    nonce = data.get("Nonce")
    if not nonce:
        raise GrantError("Nonce request returned no Nonce")
    return nonce


class PrtCookieGrant:
    """Exchange a PRT cookie for tokens via the authorization code flow."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint
        self._code = AuthorizationCodeGrant(endpoint)

    def authorize(
        self,
        cookie: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        sub_scope: str | None = None,
    ) -> str:
        """Return the authorization code issued for ``cookie``."""
        settings = self.endpoint.settings
        response = self.endpoint.send(
            "GET",
            f"{settings.login_url_for(sub_scope)}/{tenant}/oauth2/authorize",
            params={
                "resource": resource,
                "client_id": client_id,
                "response_type": "code",
                "redirect_uri": settings.redirect_uri,
                "max_age": "1",
                "scope": "openid",
            },
            headers={"Cookie": f"{PRT_COOKIE_NAME}={cookie}"},
            allow_redirects=False,
        )
        location = response.headers.get("Location", "")
        query = parse_qs(urlparse(location).query)
        if "code" in query:
            return query["code"][0]
        if "error_description" in query:
            raise GrantError(
                query["error_description"][0].splitlines()[0],
                http_status=response.status_code,
                error_code=query.get("error", [None])[0],
            )
        raise GrantError(
            "The PRT cookie was not accepted (no authorization code returned)",
            http_status=response.status_code,
        )

    def execute(
        self,
        cookie: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        sub_scope: str | None = None,
    ) -> GrantResult:
        logger.info("Exchanging PRT cookie for client %s", client_id)
        code = self.authorize(cookie, resource, client_id, tenant, sub_scope)
        return self._code.execute(
            code, resource, client_id, tenant, sub_scope=sub_scope
        )


class SignedPrtGrant:
    """Redeem a raw PRT with a request signed by its session key.

    A nonce is fetched from the server unless one is passed in. The token
    response may come back encrypted with the session key.
    """

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def build_request(
        self,
        refresh_token: str,
        session_key: bytes,
        resource: str,
        client_id: str,
        nonce: str,
        *,
        claims: str | None = None,
        context: bytes | None = None,
    ) -> str:
        payload = {
            "client_id": client_id,
            "resource": resource,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "request_nonce": nonce,
            "scope": "openid aza",
            "win_ver": WINDOWS_VERSION,
            "iat": str(int(time.time())),
        }
        if claims:
            payload["claims"] = claims
        return sign_request(payload, session_key, context)

    def execute(
        self,
        refresh_token: str,
        session_key: bytes,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        nonce: str | None = None,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        challenge = claims_field(cae, claims)
        if nonce is None:
            nonce = get_nonce(self.endpoint, tenant, sub_scope)
        request = self.build_request(
            refresh_token, session_key, resource, client_id, nonce, claims=challenge
        )

        logger.info("Redeeming PRT with session key for client %s", client_id)
        response = self.endpoint.send(
            "POST",
            self.endpoint.token_url(tenant, sub_scope),
            data={
                "grant_type": JWT_BEARER,
                "request": request,
                "windows_api_version": "2.0",
                **({"claims": challenge} if challenge else {}),
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.ok and is_jwe(response.text):
            return GrantResult.from_response(decrypt_response(response.text, session_key))
        return GrantResult.from_response(self.endpoint.json_or_raise(response))
