"""Fakes and builders shared by the test modules."""

from __future__ import annotations

import base64
import json
import os
import time
from typing import Any

import jwt
import requests
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from jwt.utils import base64url_encode

from entrabroker.errors import GrantError
from entrabroker.grants.base import GrantResult
from entrabroker.grants.session_key import derive_key

OFFICE = "d3590ed6-52b3-4102-aeff-aad2292ab01c"
TEAMS = "1fec8e78-bce4-4aaf-ab1b-5451cc387264"
AZURE_CLI = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"
NOT_FAMILY = "11111111-2222-3333-4444-555555555555"
TENANT = "9f3c5a4e-1111-2222-3333-444455556666"
GRAPH = "https://graph.microsoft.com"
AAD_GRAPH = "https://graph.windows.net"


def make_jwt(
    aud: str = GRAPH,
    appid: str = OFFICE,
    tid: str = TENANT,
    exp: int | None = None,
    **extra: Any,
) -> str:
    """Build an unsigned JWT with Entra-style claims."""
    claims = {
        "aud": aud,
        "appid": appid,
        "tid": tid,
        "sub": "subject",
        "upn": "user@contoso.com",
        "exp": int(time.time()) + 3600 if exp is None else exp,
        "amr": ["pwd"],
    }
    claims.update(extra)
    return jwt.encode(claims, None, algorithm="none")


def b64url(data: bytes) -> str:
    return base64url_encode(data).decode("ascii")


def seal_jwe(payload: dict[str, Any], session_key: bytes, context: bytes) -> str:
    """Encrypt ``payload`` the way the token endpoint does for session-key requests."""
    header = b64url(
        json.dumps(
            {"alg": "dir", "enc": "A256GCM", "ctx": base64.b64encode(context).decode()}
        ).encode()
    )
    iv = os.urandom(12)
    sealed = AESGCM(derive_key(session_key, context)).encrypt(
        iv, json.dumps(payload).encode(), header.encode()
    )
    return ".".join([header, "", b64url(iv), b64url(sealed[:-16]), b64url(sealed[-16:])])


def make_response(
    status: int = 200,
    body: Any = None,
    *,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    content = text if text is not None else json.dumps(body if body is not None else {})
    response._content = content.encode("utf-8")
    response.encoding = "utf-8"
    if headers:
        response.headers.update(headers)
    return response


class FakeSession:
    """Recorder standing in for ``requests.Session``.

    Queued items are returned (responses) or raised (exceptions) in order;
    every call's arguments are captured in ``calls``.
    """

    def __init__(self, *queued: requests.Response | Exception) -> None:
        self.queued = list(queued)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *items: requests.Response | Exception) -> None:
        self.queued.extend(items)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.queued:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.queued.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingRefresher:
    """Refresher fake that records calls and issues fresh tokens."""

    def __init__(self, refresh_token: str | None = "rt-new") -> None:
        self.calls: list[tuple[str, str, str, str]] = []
        self.refresh_token = refresh_token
        self.rejected: set[str] = set()
        self.sub_scopes: list[str | None] = []

    def refresh(self, resource, client_id, refresh_token, tenant="common", *, sub_scope=None):
        self.calls.append((resource, client_id, refresh_token, tenant))
        self.sub_scopes.append(sub_scope)
        if refresh_token in self.rejected:
            raise GrantError("AADSTS70008: The refresh token has expired", http_status=400)
        return GrantResult(
            access_token=make_jwt(aud=resource, appid=client_id, tid=tenant),
            refresh_token=self.refresh_token,
        )
