"""Token acquisition entry point.

:class:`TokenBroker` picks the grant strategy for the request's credential,
re-targets the result to the requested client and resource when needed,
optionally upgrades it to a device-bound token and stores it in the cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import requests

from entrabroker.cache import TokenCache
from entrabroker.config import BrokerSettings
from entrabroker.credentials import (
    AcquireRequest,
    ByoRefreshToken,
    DeviceCode,
    Interactive,
    Kerberos,
    ManagedIdentity,
    MsalDelegated,
    PrtCookie,
    Saml,
    SignedPrt,
    UsernamePassword,
)
from entrabroker.errors import (
    DeviceUpgradeFailed,
    InvalidRequest,
    NoAccessToken,
)
from entrabroker.grants import (
    ByoRefreshTokenGrant,
    DeviceCodeGrant,
    GrantResult,
    InteractiveGrant,
    KerberosGrant,
    ManagedIdentityGrant,
    MsalDelegatedGrant,
    PasswordGrant,
    PrtCookieGrant,
    RefreshTokenGrant,
    SamlBearerGrant,
    SignedPrtGrant,
    TokenEndpoint,
)
from entrabroker.interfaces import (
    DesktopSsoExchanger,
    DeviceAuthSigner,
    InteractiveCollector,
)
from entrabroker.tokens import codec
from entrabroker.tokens.codec import Claims
from entrabroker.tokens.foci import FociRegistry
from entrabroker.tokens.resources import same_audience

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    """Outcome of one acquisition.

    ``device_upgrade_error`` is set when a device binding was requested but the
    upgrade failed; the plain token pair is returned in that case.
    """

    access_token: str
    refresh_token: str | None
    claims: Claims
    reconciled: bool = False
    device_upgrade_error: DeviceUpgradeFailed | None = None


class TokenBroker:
    """Acquire, reconcile and cache tokens for a request.

    Args:
        settings: Endpoint configuration. Read from the environment if ``None``.
        cache: Token cache to store results in. A new one is created if ``None``.
        session: HTTP session shared by every grant.
        foci: Family registry shared with the cache.
        collector: Interactive credential collector.
        device_signer: Device-bound token upgrader.
        sso_exchanger: Kerberos desktop SSO exchanger (autologon by default).
        device_code_prompt: Receives the device code flow document.
    """

    def __init__(
        self,
        settings: BrokerSettings | None = None,
        *,
        cache: TokenCache | None = None,
        session: requests.Session | None = None,
        foci: FociRegistry | None = None,
        collector: InteractiveCollector | None = None,
        device_signer: DeviceAuthSigner | None = None,
        sso_exchanger: DesktopSsoExchanger | None = None,
        device_code_prompt: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.settings = settings or BrokerSettings()
        self.endpoint = TokenEndpoint(self.settings, session)
        self.foci = foci or (cache.foci if cache is not None else FociRegistry())
        self.refresh_grant = RefreshTokenGrant(self.endpoint)
        self.cache = cache or TokenCache(
            refresher=self.refresh_grant, foci=self.foci, skew=self.settings.expiry_skew
        )
        self.device_signer = device_signer

        self.kerberos_grant = KerberosGrant(self.endpoint, sso_exchanger)
        self.prt_cookie_grant = PrtCookieGrant(self.endpoint)
        self.signed_prt_grant = SignedPrtGrant(self.endpoint)
        self.device_code_grant = (
            DeviceCodeGrant(self.endpoint, prompt=device_code_prompt)
            if device_code_prompt
            else DeviceCodeGrant(self.endpoint)
        )
        self.managed_identity_grant = ManagedIdentityGrant(self.endpoint)
        self.byo_refresh_token_grant = ByoRefreshTokenGrant(self.endpoint)
        self.msal_grant = MsalDelegatedGrant(self.endpoint)
        self.saml_grant = SamlBearerGrant(self.endpoint)
        self.password_grant = PasswordGrant(self.endpoint)
        self.interactive_grant = InteractiveGrant(self.endpoint, collector)

    def _execute(self, request: AcquireRequest, tenant: str) -> GrantResult:
        resource = request.resource
        client_id = request.client_id
        extra = {"cae": request.cae, "claims": request.claims, "sub_scope": request.sub_scope}

        match request.credential:
            case Kerberos(ticket=ticket, domain=domain):
                return self.kerberos_grant.execute(
                    ticket, domain, resource, client_id, tenant, **extra
                )
            case PrtCookie(cookie=cookie):
                return self.prt_cookie_grant.execute(
                    cookie, resource, client_id, tenant, sub_scope=request.sub_scope
                )
            case SignedPrt(refresh_token=prt, session_key=key, nonce=nonce):
                return self.signed_prt_grant.execute(
                    prt, key, resource, client_id, tenant, nonce=nonce, **extra
                )
            case DeviceCode():
                return self.device_code_grant.execute(
                    resource, client_id, tenant, **extra
                )
            case ManagedIdentity(
                client_id=mi_client, object_id=mi_object, azure_resource_id=mi_res
            ):
                return self.managed_identity_grant.execute(
                    resource,
                    client_id=mi_client,
                    object_id=mi_object,
                    azure_resource_id=mi_res,
                )
            case ByoRefreshToken(refresh_token=refresh_token):
                return self.byo_refresh_token_grant.execute(
                    refresh_token, resource, client_id, tenant, **extra
                )
            case MsalDelegated(login_hint=login_hint):
                return self.msal_grant.execute(
                    resource, client_id, tenant, login_hint=login_hint, **extra
                )
            case Saml(assertion=assertion):
                return self.saml_grant.execute(
                    assertion, resource, client_id, tenant, **extra
                )
            case UsernamePassword(username=username, password=password):
                return self.password_grant.execute(
                    username,
                    password.get_secret_value(),
                    resource,
                    client_id,
                    tenant,
                    **extra,
                )
            case Interactive(hints=hints):
                return self.interactive_grant.execute(
                    client_id, tenant, hints=hints, sub_scope=request.sub_scope
                )
            case _:
                raise InvalidRequest(
                    f"Unsupported credential: {type(request.credential).__name__}"
                )

    def _reconcile(
        self, request: AcquireRequest, tenant: str, result: GrantResult, claims: Claims
    ) -> tuple[GrantResult, Claims, bool]:
        client_matches = (claims.client_id or "").lower() == request.client_id.lower()
        audience_matches = same_audience(claims.audience, request.resource)
        if client_matches and audience_matches:
            return result, claims, False

        if not result.refresh_token:
            logger.warning(
                "Token issued for client %s and audience %s, no refresh token to "
                "re-target it to client %s and resource %s",
                claims.client_id,
                claims.audience,
                request.client_id,
                request.resource,
            )
            return result, claims, False

        logger.info(
            "Re-targeting token from client %s / %s to client %s / %s",
            claims.client_id,
            claims.audience,
            request.client_id,
            request.resource,
        )
        refreshed = self.refresh_grant.execute(
            request.resource,
            request.client_id,
            result.refresh_token,
            claims.tenant_id or tenant,
            cae=request.cae,
            claims=request.claims,
            sub_scope=request.sub_scope,
        )
        if not refreshed.refresh_token:
            refreshed.refresh_token = result.refresh_token
        return refreshed, codec.parse(refreshed.access_token), True

    def _upgrade_device(
        self, request: AcquireRequest, result: GrantResult
    ) -> tuple[GrantResult, DeviceUpgradeFailed | None]:
        """Try to obtain a device-bound token; never raises."""
        try:
            if self.device_signer is None:
                raise DeviceUpgradeFailed("No device signer configured")
            if not result.refresh_token:
                raise DeviceUpgradeFailed("Device upgrade needs a refresh token")
            upgraded = self.device_signer.upgrade(
                result.access_token, result.refresh_token, request.device_binding
            )
            if not codec.parse(upgraded.access_token).device_id:
                raise DeviceUpgradeFailed("Upgraded token has no deviceid claim")
        except DeviceUpgradeFailed as exc:
            logger.warning("Device upgrade skipped: %s", exc)
            return result, exc
        except Exception as exc:
            logger.warning("Device upgrade failed: %s", exc)
            failure = DeviceUpgradeFailed(str(exc))
            failure.__cause__ = exc
            return result, failure
        return upgraded, None

    def _store(self, request: AcquireRequest, result: GrantResult, claims: Claims) -> None:
        # Entries are keyed by the audience the token was actually issued for.
        if same_audience(claims.audience, request.resource):
            resource = request.resource
        else:
            resource = claims.audience
        if not resource:
            logger.warning("Token has no audience claim, not caching it")
            return
        if resource != request.resource:
            logger.warning(
                "Caching token under its own audience %s instead of %s",
                resource,
                request.resource,
            )
        self.cache.put(
            claims.client_id or request.client_id,
            resource,
            result.access_token,
            result.refresh_token,
            sub_scope=request.sub_scope,
        )

    def acquire_result(self, request: AcquireRequest) -> AcquisitionResult:
        """Run the full acquisition and return every detail of the outcome.

        Raises:
            InvalidRequest: The credential cannot be used.
            GrantError: A token endpoint exchange failed.
            MalformedToken: The returned access token could not be decoded.
            NoAccessToken: No access token was obtained.
        """
        tenant = request.tenant or self.settings.default_tenant
        # Rejects unknown sub-scopes before any request is sent.
        self.settings.login_url_for(request.sub_scope)
        logger.debug("Acquiring token with %s for %s", request.kind.value, request.resource)

        result = self._execute(request, tenant)
        if not result.access_token:
            raise NoAccessToken("The grant returned an empty access token")

        claims = codec.parse(result.access_token)
        self.foci.classify(claims.client_id or request.client_id, result.is_family_client)

        result, claims, reconciled = self._reconcile(request, tenant, result, claims)

        upgrade_error = None
        if request.device_binding is not None:
            result, upgrade_error = self._upgrade_device(request, result)
            claims = codec.parse(result.access_token)

        if not result.access_token:
            raise NoAccessToken("No access token was obtained")

        if request.save_to_cache:
            self._store(request, result, claims)

        return AcquisitionResult(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            claims=claims,
            reconciled=reconciled,
            device_upgrade_error=upgrade_error,
        )

    def acquire(self, request: AcquireRequest) -> str | tuple[str, str | None]:
        """Return the access token, or ``(access_token, refresh_token)``.

        The tuple is returned when ``request.include_refresh_token`` is set.
        """
        outcome = self.acquire_result(request)
        if request.include_refresh_token:
            return outcome.access_token, outcome.refresh_token
        return outcome.access_token

    def acquire_with(
        self, client_id: str, resource: str, **params: Any
    ) -> str | tuple[str, str | None]:
        """Shortcut for ``acquire(AcquireRequest.from_params(...))``."""
        return self.acquire(AcquireRequest.from_params(client_id, resource, **params))

    def get_cached_token(
        self,
        resource: str,
        client_id: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Look up (and refresh if needed) a cached token."""
        return self.cache.get(resource, client_id, **kwargs)
