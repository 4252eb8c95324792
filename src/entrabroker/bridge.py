from typing import Any

from azure.core.credentials import AccessToken
from msgraph import GraphServiceClient

from entrabroker.tokens import codec
from entrabroker.tokens.resources import GRAPH_DEFAULT_SCOPE


class StaticTokenCredential:
    """Expose a raw access token as an azure-core ``TokenCredential``.

    The token is handed out as-is for every scope; SDK clients built on it
    fail once it expires.
    """

    def __init__(self, access_token: str) -> None:
        claims = codec.parse(access_token)
        self._token = AccessToken(access_token, int(claims.expires_at or 0))

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        return self._token


def build_graph_client(access_token: str) -> tuple[GraphServiceClient, StaticTokenCredential]:
    """Build a Graph ServiceClient that authenticates with ``access_token``."""
    cred = StaticTokenCredential(access_token)

    return (GraphServiceClient(cred, [GRAPH_DEFAULT_SCOPE]), cred)
