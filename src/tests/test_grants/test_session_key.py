from __future__ import annotations

import base64

import jwt
import pytest

from entrabroker.errors import GrantError, MalformedToken
from entrabroker.grants.session_key import (
    build_prt_cookie,
    decrypt_response,
    derive_key,
    is_jwe,
    sign_request,
)
from tests.helpers import seal_jwe

SESSION_KEY = bytes(range(32))
CONTEXT = bytes(24)


def test_derive_key__deterministic_per_context() -> None:
    key = derive_key(SESSION_KEY, CONTEXT)
    assert len(key) == 32
    assert key == derive_key(SESSION_KEY, CONTEXT)
    assert key != derive_key(SESSION_KEY, b"\x01" * 24)


def test_sign_request__hs256_with_derived_key() -> None:
    token = sign_request({"a": "b"}, SESSION_KEY, CONTEXT)

    header = jwt.get_unverified_header(token)
    assert header["alg"] == "HS256"
    assert header["ctx"] == base64.b64encode(CONTEXT).decode()
    assert jwt.decode(token, derive_key(SESSION_KEY, CONTEXT), algorithms=["HS256"]) == {"a": "b"}


def test_sign_request__other_session_key_does_not_verify() -> None:
    token = sign_request({"a": "b"}, SESSION_KEY, CONTEXT)
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(token, derive_key(b"\xff" * 32, CONTEXT), algorithms=["HS256"])


def test_sign_request__random_context_by_default() -> None:
    first = jwt.get_unverified_header(sign_request({}, SESSION_KEY))
    second = jwt.get_unverified_header(sign_request({}, SESSION_KEY))
    assert len(base64.b64decode(first["ctx"])) == 24
    assert first["ctx"] != second["ctx"]


def test_build_prt_cookie__payload() -> None:
    cookie = build_prt_cookie("the-prt", SESSION_KEY, "nonce-1", CONTEXT)
    payload = jwt.decode(cookie, derive_key(SESSION_KEY, CONTEXT), algorithms=["HS256"])
    assert payload == {
        "refresh_token": "the-prt",
        "is_primary": "true",
        "request_nonce": "nonce-1",
    }


def test_decrypt_response__uses_response_context() -> None:
    body = {"access_token": "at", "refresh_token": "rt"}
    jwe = seal_jwe(body, SESSION_KEY, b"\x07" * 24)
    assert is_jwe(jwe)
    assert decrypt_response(jwe, SESSION_KEY) == body


def test_decrypt_response__wrong_key_raises() -> None:
    jwe = seal_jwe({"access_token": "at"}, SESSION_KEY, CONTEXT)
    with pytest.raises(GrantError, match="decrypt"):
        decrypt_response(jwe, b"\xff" * 32)


def test_decrypt_response__rejects_non_jwe() -> None:
    assert not is_jwe('{"access_token": "a.b.c.d.e"}')
    with pytest.raises(MalformedToken):
        decrypt_response("a.b.c", SESSION_KEY)
