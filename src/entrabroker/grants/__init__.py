"""Grant strategies, one per credential kind.

Every strategy performs its token endpoint exchange and returns a
:class:`GrantResult`, or raises :class:`~entrabroker.errors.GrantError`.
"""

from .base import CAE_CLAIMS, GrantResult, TokenEndpoint, claims_field
from .device_code import DeviceCodeGrant
from .interactive import InteractiveGrant, MsalDelegatedGrant
from .kerberos import AutologonExchanger, KerberosGrant
from .managed_identity import ManagedIdentityGrant
from .prt import PrtCookieGrant, SignedPrtGrant, get_nonce
from .session_key import build_prt_cookie
from .token import (
    AuthorizationCodeGrant,
    ByoRefreshTokenGrant,
    PasswordGrant,
    RefreshTokenGrant,
    SamlBearerGrant,
)

__all__ = [
    "CAE_CLAIMS",
    "GrantResult",
    "TokenEndpoint",
    "claims_field",
    "AuthorizationCodeGrant",
    "AutologonExchanger",
    "ByoRefreshTokenGrant",
    "DeviceCodeGrant",
    "InteractiveGrant",
    "KerberosGrant",
    "ManagedIdentityGrant",
    "MsalDelegatedGrant",
    "PasswordGrant",
    "PrtCookieGrant",
    "RefreshTokenGrant",
    "SamlBearerGrant",
    "SignedPrtGrant",
    "build_prt_cookie",
    "get_nonce",
]
