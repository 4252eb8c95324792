from __future__ import annotations

from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from entrabroker.errors import InvalidRequest


class BrokerSettings(BaseSettings):
    """Endpoints and timeouts used by the grant strategies.

    This model reads environment variables automatically (case-insensitive)
    and normalizes every URL so that no trailing slash is stored.

    Environment variables (aliases supported where noted):
        - ENTRA_LOGIN_URL
        - ENTRA_TENANT (alias: ENTRA_DEFAULT_TENANT)
        - ENTRA_MANAGED_IDENTITY_ENDPOINT
        - ENTRA_MANAGED_IDENTITY_API_VERSION
        - ENTRA_MANAGED_IDENTITY_TIMEOUT
        - ENTRA_REQUEST_TIMEOUT
        - ENTRA_REDIRECT_URI
        - ENTRA_BOOTSTRAP_RESOURCE
        - ENTRA_AUTOLOGON_URL
        - ENTRA_USER_AGENT
        - ENTRA_EXPIRY_SKEW
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # The field name is listed in every AliasChoices so keyword construction
    # keeps working next to the environment variable names.

    login_url: str = Field(
        default="https://login.microsoftonline.com",
        validation_alias=AliasChoices("login_url", "ENTRA_LOGIN_URL"),
    )
    default_tenant: str = Field(
        default="common",
        validation_alias=AliasChoices(
            "default_tenant", "ENTRA_TENANT", "ENTRA_DEFAULT_TENANT"
        ),
    )
    sub_scope_login_urls: dict[str, str] = Field(
        default_factory=lambda: {
            "DOD": "https://login.microsoftonline.us",
            "DODCON": "https://login.microsoftonline.us",
        },
        validation_alias=AliasChoices("sub_scope_login_urls"),
    )
    legacy_sync_client_id: str = Field(
        default="cb1056e2-e479-49de-ae31-7812af012ed8",
        validation_alias=AliasChoices("legacy_sync_client_id"),
    )
    legacy_sync_login_url: str = Field(
        default="https://login.windows.net",
        validation_alias=AliasChoices("legacy_sync_login_url"),
    )
    managed_identity_endpoint: str = Field(
        default="http://169.254.169.254/metadata/identity/oauth2/token",
        validation_alias=AliasChoices(
            "managed_identity_endpoint", "ENTRA_MANAGED_IDENTITY_ENDPOINT"
        ),
    )
    managed_identity_api_version: str = Field(
        default="2018-02-01",
        validation_alias=AliasChoices(
            "managed_identity_api_version", "ENTRA_MANAGED_IDENTITY_API_VERSION"
        ),
    )
    managed_identity_timeout: float = Field(
        default=1.0,
        validation_alias=AliasChoices(
            "managed_identity_timeout", "ENTRA_MANAGED_IDENTITY_TIMEOUT"
        ),
    )
    request_timeout: float = Field(
        default=30.0,
        validation_alias=AliasChoices("request_timeout", "ENTRA_REQUEST_TIMEOUT"),
    )
    redirect_uri: str = Field(
        default="urn:ietf:wg:oauth:2.0:oob",
        validation_alias=AliasChoices("redirect_uri", "ENTRA_REDIRECT_URI"),
    )
    interactive_bootstrap_resource: str = Field(
        default="https://graph.windows.net",
        validation_alias=AliasChoices(
            "interactive_bootstrap_resource", "ENTRA_BOOTSTRAP_RESOURCE"
        ),
    )
    autologon_url: str = Field(
        default="https://autologon.microsoftazuread-sso.com",
        validation_alias=AliasChoices("autologon_url", "ENTRA_AUTOLOGON_URL"),
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) entrabroker",
        validation_alias=AliasChoices("user_agent", "ENTRA_USER_AGENT"),
    )
    expiry_skew: int = Field(
        default=0,
        validation_alias=AliasChoices("expiry_skew", "ENTRA_EXPIRY_SKEW"),
    )

    @field_validator(
        "login_url",
        "legacy_sync_login_url",
        "managed_identity_endpoint",
        "autologon_url",
    )
    @classmethod
    def _ensure_absolute_url(cls, v: str) -> str:
        """Ensure configured URLs are absolute and drop a trailing slash."""
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"URL must be absolute: {v}")
        return v.rstrip("/")

    @field_validator("sub_scope_login_urls")
    @classmethod
    def _normalize_sub_scopes(cls, v: dict[str, str]) -> dict[str, str]:
        return {k.upper(): url.rstrip("/") for k, url in v.items()}

    @model_validator(mode="after")
    def _cross_field_validation(self) -> "BrokerSettings":
        """Validate timeouts and skew."""
        if self.managed_identity_timeout <= 0 or self.request_timeout <= 0:
            raise ValueError("Timeouts must be positive.")
        if self.expiry_skew < 0:
            raise ValueError("expiry_skew must not be negative.")
        return self

    def login_url_for(self, sub_scope: str | None = None) -> str:
        """Return the login host for ``sub_scope`` (sovereign clouds).

        Raises:
            InvalidRequest: If ``sub_scope`` is not a known sub-scope.
        """
        if not sub_scope:
            return self.login_url
        try:
            return self.sub_scope_login_urls[sub_scope.upper()]
        except KeyError:
            raise InvalidRequest(f"Unknown sub-scope: {sub_scope}") from None

    def token_endpoint(self, tenant: str, sub_scope: str | None = None) -> str:
        return f"{self.login_url_for(sub_scope)}/{tenant}/oauth2/token"
