"""Decode bearer tokens into claims.

The broker is a client, not a relying party: signatures are never verified,
only the payload segment is decoded.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import jwt

from entrabroker.errors import MalformedToken


@dataclass(frozen=True)
class Claims:
    """Claims read from an access token payload."""

    client_id: str | None
    audience: str | None
    tenant_id: str | None
    subject: str | None
    unique_name: str | None
    expires_at: int | None
    device_id: str | None = None
    amr: tuple[str, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


def decode_payload(token: str) -> dict[str, Any]:
    """Return the JSON payload of a JWT as a dictionary.

    Raises:
        MalformedToken: If the token does not have a decodable JSON payload.
    """
    if not isinstance(token, str) or not token.strip():
        raise MalformedToken("Token is empty.")
    try:
        return jwt.decode(token.strip(), options={"verify_signature": False})
    except jwt.DecodeError as exc:
        raise MalformedToken(f"Unable to decode token: {exc}") from exc


def parse(token: str) -> Claims:
    """Parse an access token into :class:`Claims`.

    Args:
        token: The bearer token (``header.payload.signature``).

    Returns:
        The decoded claims.

    Raises:
        MalformedToken: If the token cannot be decoded or ``exp`` is not numeric.
    """
    payload = decode_payload(token)

    exp = payload.get("exp")
    if exp is not None:
        try:
            exp = int(exp)
        except (TypeError, ValueError) as exc:
            raise MalformedToken(f"Invalid exp claim: {exp!r}") from exc

    amr = payload.get("amr") or ()
    if isinstance(amr, str):
        amr = (amr,)

    return Claims(
        client_id=payload.get("appid") or payload.get("azp"),
        audience=payload.get("aud"),
        tenant_id=payload.get("tid"),
        subject=payload.get("sub"),
        unique_name=(
            payload.get("unique_name")
            or payload.get("upn")
            or payload.get("preferred_username")
        ),
        expires_at=exp,
        device_id=payload.get("deviceid"),
        amr=tuple(amr),
        raw=payload,
    )


def is_expired(claims: Claims, skew: int = 0, now: float | None = None) -> bool:
    """Return True once ``now + skew`` has reached the ``exp`` claim.

    Tokens without ``exp`` are treated as expired.
    """
    if claims.expires_at is None:
        return True
    current = time.time() if now is None else now
    return current + skew >= claims.expires_at
