"""Client-side token broker for Entra ID (Azure AD).

Public API:
- TokenBroker, AcquisitionResult (acquisition entry point)
- AcquireRequest, select_credential() and the credential kinds
- TokenCache (process-wide token store)
- BrokerSettings (settings)
- the exception hierarchy rooted at BrokerError
"""

from .broker import AcquisitionResult, TokenBroker
from .cache import CacheEntry, TokenCache
from .config import BrokerSettings
from .credentials import (
    AcquireRequest,
    ByoRefreshToken,
    CredentialKind,
    DeviceBinding,
    DeviceCode,
    Interactive,
    Kerberos,
    ManagedIdentity,
    MsalDelegated,
    PrtCookie,
    Saml,
    SignedPrt,
    UsernamePassword,
    select_credential,
)
from .errors import (
    BrokerError,
    DeviceUpgradeFailed,
    GrantError,
    GrantTimeout,
    InvalidRequest,
    MalformedToken,
    NoAccessToken,
    NoCachedToken,
    WrongAudience,
)

__all__ = [
    "TokenBroker",
    "AcquisitionResult",
    "TokenCache",
    "CacheEntry",
    "BrokerSettings",
    "AcquireRequest",
    "CredentialKind",
    "DeviceBinding",
    "select_credential",
    "Kerberos",
    "PrtCookie",
    "SignedPrt",
    "DeviceCode",
    "ManagedIdentity",
    "ByoRefreshToken",
    "MsalDelegated",
    "Saml",
    "UsernamePassword",
    "Interactive",
    "BrokerError",
    "InvalidRequest",
    "GrantError",
    "GrantTimeout",
    "MalformedToken",
    "NoCachedToken",
    "WrongAudience",
    "DeviceUpgradeFailed",
    "NoAccessToken",
]
