from typing import Final

# Well-known first-party client ids.
OFFICE_CLIENT_ID: Final[str] = "d3590ed6-52b3-4102-aeff-aad2292ab01c"
AAD_POWERSHELL_CLIENT_ID: Final[str] = "1b730954-1685-4b74-9bfd-dac224a7b894"
AZURE_CLI_CLIENT_ID: Final[str] = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"
TEAMS_CLIENT_ID: Final[str] = "1fec8e78-bce4-4aaf-ab1b-5451cc387264"
INTUNE_PORTAL_CLIENT_ID: Final[str] = "9ba1a5c7-f17a-4de9-a1f1-6178c8d51223"

GRAPH_RESOURCE: Final[str] = "https://graph.microsoft.com"
AAD_GRAPH_RESOURCE: Final[str] = "https://graph.windows.net"
GRAPH_DEFAULT_SCOPE: Final[str] = "https://graph.microsoft.com/.default"

# Resource id (GUID) -> known URIs. The first URI is the canonical form.
RESOURCE_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "00000002-0000-0000-c000-000000000000": ("https://graph.windows.net",),
    "00000003-0000-0000-c000-000000000000": (
        "https://graph.microsoft.com",
        "https://graph.microsoft.us",
    ),
    "00000002-0000-0ff1-ce00-000000000000": (
        "https://outlook.office365.com",
        "https://outlook.office.com",
    ),
    "797f4846-ba00-4fd7-ba43-dac1f8f63013": (
        "https://management.core.windows.net",
        "https://management.azure.com",
    ),
    "0000000a-0000-0000-c000-000000000000": ("https://api.manage.microsoft.com",),
    "cc15fd57-2c6c-4117-a88c-83b1d56b4bbe": ("https://api.spaces.skype.com",),
    "cfa8b339-82a2-471a-a3c9-0fc0be7a4093": ("https://vault.azure.net",),
    "00000007-0000-0000-c000-000000000000": ("https://admin.services.crm.dynamics.com",),
    "01cb2876-7ebd-4aa4-9cc9-d28bd4d359a9": ("urn:ms-drs:enterpriseregistration.windows.net",),
}

_URI_TO_ID: Final[dict[str, str]] = {
    uri.lower(): guid for guid, uris in RESOURCE_ALIASES.items() for uri in uris
}


def trim_resource(resource: str) -> str:
    """Strip surrounding whitespace and one or more trailing slashes."""
    return resource.strip().rstrip("/")


def canonical_resource(resource: str) -> str:
    """Return the form of ``resource`` used for cache keys and comparisons.

    GUID resource ids that appear in :data:`RESOURCE_ALIASES` are replaced by
    their canonical URI; everything else is only trimmed.

    Args:
        resource: Resource URI or resource id (e.g., "https://graph.microsoft.com/").

    Returns:
        The canonical resource string.

    Raises:
        ValueError: If ``resource`` is empty.
    """
    trimmed = trim_resource(resource)
    if not trimmed:
        raise ValueError("resource must not be empty")
    aliases = RESOURCE_ALIASES.get(trimmed.lower())
    if aliases:
        return aliases[0]
    return trimmed


def resource_id(resource: str) -> str | None:
    """Return the GUID resource id for ``resource`` if it is known."""
    trimmed = trim_resource(resource).lower()
    if trimmed in RESOURCE_ALIASES:
        return trimmed
    return _URI_TO_ID.get(trimmed)


def same_audience(audience: str | None, resource: str) -> bool:
    """Return True if a token audience designates ``resource``."""
    if not audience:
        return False
    if canonical_resource(audience).lower() == canonical_resource(resource).lower():
        return True
    left = resource_id(audience)
    return left is not None and left == resource_id(resource)


def cache_key(client_id: str, resource: str) -> str:
    return f"{client_id.strip().lower()}-{canonical_resource(resource)}"
