"""Credential inputs accepted by the broker.

Each credential kind is a small frozen dataclass; an :class:`AcquireRequest`
carries exactly one of them. :meth:`AcquireRequest.from_params` turns the flat
keyword interface into that single choice and rejects conflicting input.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Mapping, Union

from pydantic import SecretStr

from entrabroker.errors import InvalidRequest


class CredentialKind(str, Enum):
    """Supported credential kinds, in dispatch priority order."""

    KERBEROS = "kerberos"
    PRT_COOKIE = "prt_cookie"
    SIGNED_PRT = "signed_prt"
    DEVICE_CODE = "device_code"
    MANAGED_IDENTITY = "managed_identity"
    BYO_REFRESH_TOKEN = "byo_refresh_token"
    MSAL_DELEGATED = "msal_delegated"
    SAML = "saml"
    USERNAME_PASSWORD = "username_password"
    INTERACTIVE = "interactive"


PRIORITY: tuple[CredentialKind, ...] = tuple(CredentialKind)


@dataclass(frozen=True)
class Kerberos:
    ticket: str
    domain: str
    kind: ClassVar[CredentialKind] = CredentialKind.KERBEROS


@dataclass(frozen=True)
class PrtCookie:
    cookie: str
    kind: ClassVar[CredentialKind] = CredentialKind.PRT_COOKIE


@dataclass(frozen=True)
class SignedPrt:
    refresh_token: str
    session_key: bytes = field(repr=False)
    nonce: str | None = None
    kind: ClassVar[CredentialKind] = CredentialKind.SIGNED_PRT


@dataclass(frozen=True)
class DeviceCode:
    kind: ClassVar[CredentialKind] = CredentialKind.DEVICE_CODE


@dataclass(frozen=True)
class ManagedIdentity:
    client_id: str | None = None
    object_id: str | None = None
    azure_resource_id: str | None = None
    kind: ClassVar[CredentialKind] = CredentialKind.MANAGED_IDENTITY


@dataclass(frozen=True)
class ByoRefreshToken:
    refresh_token: str = field(repr=False)
    kind: ClassVar[CredentialKind] = CredentialKind.BYO_REFRESH_TOKEN


@dataclass(frozen=True)
class MsalDelegated:
    login_hint: str | None = None
    kind: ClassVar[CredentialKind] = CredentialKind.MSAL_DELEGATED


@dataclass(frozen=True)
class Saml:
    assertion: str = field(repr=False)
    kind: ClassVar[CredentialKind] = CredentialKind.SAML


@dataclass(frozen=True)
class UsernamePassword:
    username: str
    password: SecretStr
    kind: ClassVar[CredentialKind] = CredentialKind.USERNAME_PASSWORD


@dataclass(frozen=True)
class Interactive:
    hints: Mapping[str, Any] = field(default_factory=dict)
    kind: ClassVar[CredentialKind] = CredentialKind.INTERACTIVE


CredentialInput = Union[
    Kerberos,
    PrtCookie,
    SignedPrt,
    DeviceCode,
    ManagedIdentity,
    ByoRefreshToken,
    MsalDelegated,
    Saml,
    UsernamePassword,
    Interactive,
]


@dataclass(frozen=True)
class DeviceBinding:
    """Device key material used to request a device-bound token."""

    certificate_path: Path | None = None
    private_key_path: Path | None = None
    transport_key_path: Path | None = None

    def __post_init__(self) -> None:
        if not (self.certificate_path or self.transport_key_path):
            raise InvalidRequest(
                "Device binding requires a certificate or a transport key."
            )


def _session_key_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("session_key must be bytes or base64 text.") from None


def select_credential(
    *,
    kerberos_ticket: str | None = None,
    domain: str | None = None,
    prt_cookie: str | None = None,
    prt: str | None = None,
    session_key: bytes | str | None = None,
    nonce: str | None = None,
    use_device_code: bool = False,
    use_managed_identity: bool = False,
    mi_client_id: str | None = None,
    mi_object_id: str | None = None,
    mi_azure_resource_id: str | None = None,
    refresh_token: str | None = None,
    use_msal: bool = False,
    saml_token: str | None = None,
    username: str | None = None,
    password: str | SecretStr | None = None,
    interactive: bool = False,
    hints: Mapping[str, Any] | None = None,
) -> CredentialInput:
    """Resolve the flat keyword interface into a single credential input.

    Raises:
        InvalidRequest: If a parameter set is incomplete, if no credential is
            supplied, or if more than one credential kind is supplied.
    """
    found: list[CredentialInput] = []

    if kerberos_ticket or domain:
        if not (kerberos_ticket and domain):
            raise InvalidRequest("Kerberos requires both kerberos_ticket and domain.")
        found.append(Kerberos(ticket=kerberos_ticket, domain=domain))

    if prt_cookie:
        found.append(PrtCookie(cookie=prt_cookie))

    if prt or session_key:
        if not (prt and session_key):
            raise InvalidRequest("A signed PRT request requires both prt and session_key.")
        found.append(
            SignedPrt(
                refresh_token=prt,
                session_key=_session_key_bytes(session_key),
                nonce=nonce,
            )
        )

    if use_device_code:
        found.append(DeviceCode())

    if use_managed_identity:
        found.append(
            ManagedIdentity(
                client_id=mi_client_id,
                object_id=mi_object_id,
                azure_resource_id=mi_azure_resource_id,
            )
        )
    elif mi_client_id or mi_object_id or mi_azure_resource_id:
        raise InvalidRequest("Managed identity options require use_managed_identity.")

    if refresh_token:
        found.append(ByoRefreshToken(refresh_token=refresh_token))

    if use_msal:
        found.append(MsalDelegated(login_hint=username if not password else None))

    if saml_token:
        found.append(Saml(assertion=saml_token))

    if password is not None:
        if not username:
            raise InvalidRequest("A password requires a username.")
        secret = password if isinstance(password, SecretStr) else SecretStr(password)
        found.append(UsernamePassword(username=username, password=secret))

    if interactive:
        merged = dict(hints or {})
        if username:
            merged.setdefault("login_hint", username)
        found.append(Interactive(hints=merged))

    if not found:
        raise InvalidRequest(
            "No credential supplied. Provide exactly one of: "
            + ", ".join(k.value for k in PRIORITY)
            + "."
        )
    if len(found) > 1:
        kinds = sorted((c.kind for c in found), key=PRIORITY.index)
        raise InvalidRequest(
            "Conflicting credentials supplied: "
            + ", ".join(k.value for k in kinds)
            + ". Provide exactly one."
        )
    return found[0]


@dataclass(frozen=True)
class AcquireRequest:
    """Everything the broker needs for one acquisition."""

    client_id: str
    resource: str
    credential: CredentialInput
    tenant: str | None = None
    sub_scope: str | None = None
    cae: bool = False
    claims: str | None = None
    include_refresh_token: bool = False
    save_to_cache: bool = True
    device_binding: DeviceBinding | None = None

    def __post_init__(self) -> None:
        if not self.client_id or not self.client_id.strip():
            raise InvalidRequest("client_id is required.")
        if not self.resource or not self.resource.strip():
            raise InvalidRequest("resource is required.")
        if self.device_binding is not None and self.credential.kind is CredentialKind.MANAGED_IDENTITY:
            raise InvalidRequest("Managed identity tokens cannot be device bound.")

    @property
    def kind(self) -> CredentialKind:
        return self.credential.kind

    @classmethod
    def from_params(
        cls,
        client_id: str,
        resource: str,
        *,
        tenant: str | None = None,
        sub_scope: str | None = None,
        cae: bool = False,
        claims: str | None = None,
        include_refresh_token: bool = False,
        save_to_cache: bool = True,
        device_binding: DeviceBinding | None = None,
        **credential_params: Any,
    ) -> "AcquireRequest":
        """Build a request from flat keyword arguments.

        Args:
            client_id: Application id the token is requested for.
            resource: Resource URI or resource id.
            tenant: Tenant id or domain; ``common`` when omitted.
            sub_scope: Sovereign cloud selector (e.g., ``DOD``).
            cae: Request a Continuous Access Evaluation capable token.
            claims: Explicit claims challenge (wins over ``cae``).
            include_refresh_token: Return ``(access_token, refresh_token)``.
            save_to_cache: Store the result in the token cache.
            device_binding: Device key material for a device-bound upgrade.
            **credential_params: Keyword arguments of :func:`select_credential`.
        """
        try:
            credential = select_credential(**credential_params)
        except TypeError as exc:
            raise InvalidRequest(f"Unrecognized credential parameter: {exc}") from exc
        return cls(
            client_id=client_id,
            resource=resource,
            credential=credential,
            tenant=tenant,
            sub_scope=sub_scope,
            cae=cae,
            claims=claims,
            include_refresh_token=include_refresh_token,
            save_to_cache=save_to_cache,
            device_binding=device_binding,
        )
