"""Proof-of-possession helpers for a Primary Refresh Token session key.

Requests are HS256 JWTs signed with a key derived from the session key and a
random context (SP800-108 counter mode, HMAC-SHA256). Encrypted responses
carry their own context in the JWE header.
"""

from __future__ import annotations

import base64
import json
import os
from typing import Any, Final, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.kbkdf import (
    KBKDFHMAC,
    CounterLocation,
    Mode,
)
import jwt
from jwt.utils import base64url_decode

from entrabroker.errors import GrantError, MalformedToken

KDF_LABEL: Final[bytes] = b"AzureAD-SecureConversation"
CONTEXT_LENGTH: Final[int] = 24


def derive_key(session_key: bytes, context: bytes) -> bytes:
    """Derive the 256-bit signing key for ``context``."""
    kdf = KBKDFHMAC(
        algorithm=hashes.SHA256(),
        mode=Mode.CounterMode,
        length=32,
        rlen=4,
        llen=4,
        location=CounterLocation.BeforeFixed,
        label=KDF_LABEL,
        context=context,
        fixed=None,
    )
    return kdf.derive(session_key)


def sign_request(
    payload: Mapping[str, Any],
    session_key: bytes,
    context: bytes | None = None,
) -> str:
    """Return ``payload`` as a compact JWT signed with a derived session key.

    Args:
        payload: JWT claims.
        session_key: Raw (decrypted) PRT session key.
        context: KDF context; a random 24-byte value when ``None``.
    """
    ctx = context if context is not None else os.urandom(CONTEXT_LENGTH)
    return jwt.encode(
        dict(payload),
        derive_key(session_key, ctx),
        algorithm="HS256",
        headers={"ctx": base64.b64encode(ctx).decode("ascii")},
    )


def build_prt_cookie(
    prt: str,
    session_key: bytes,
    nonce: str,
    context: bytes | None = None,
) -> str:
    """Build an ``x-ms-RefreshTokenCredential`` cookie value."""
    return sign_request(
        {"refresh_token": prt, "is_primary": "true", "request_nonce": nonce},
        session_key,
        context,
    )


def is_jwe(text: str) -> bool:
    return text.count(".") == 4 and not text.lstrip().startswith("{")


def decrypt_response(text: str, session_key: bytes) -> dict[str, Any]:
    """Decrypt a ``dir``/``A256GCM`` JWE token response.

    Raises:
        MalformedToken: If the JWE is not well formed.
        GrantError: If decryption fails (wrong session key).
    """
    parts = text.strip().split(".")
    if len(parts) != 5:
        raise MalformedToken("Response is not a compact JWE.")
    header_segment, _, iv_segment, ciphertext_segment, tag_segment = parts
    try:
        header = json.loads(base64url_decode(header_segment))
        context = base64.b64decode(header["ctx"])
        iv = base64url_decode(iv_segment)
        ciphertext = base64url_decode(ciphertext_segment) + base64url_decode(tag_segment)
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedToken(f"Invalid JWE header: {exc}") from exc

    aesgcm = AESGCM(derive_key(session_key, context))
    try:
        plaintext = aesgcm.decrypt(iv, ciphertext, header_segment.encode("ascii"))
    except InvalidTag as exc:
        raise GrantError("Unable to decrypt token response with the session key") from exc
    return json.loads(plaintext)
