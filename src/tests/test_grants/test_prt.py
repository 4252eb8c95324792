from __future__ import annotations

import os

import jwt
import pytest

from entrabroker.errors import GrantError
from entrabroker.grants.base import CAE_CLAIMS, TokenEndpoint
from entrabroker.grants.prt import (
    JWT_BEARER,
    PRT_COOKIE_NAME,
    PrtCookieGrant,
    SignedPrtGrant,
    get_nonce,
)
from tests.helpers import GRAPH, OFFICE, FakeSession, make_jwt, make_response, seal_jwe

SESSION_KEY = b"k" * 32


def test_get_nonce__srv_challenge(endpoint: TokenEndpoint, session: FakeSession) -> None:
    session.queue(make_response(200, {"Nonce": "n-1"}))
    assert get_nonce(endpoint) == "n-1"
    assert session.calls[0]["data"] == {"grant_type": "srv_challenge"}


def test_prt_cookie__authorize_then_redeem_code(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    token = make_jwt()
    session.queue(
        make_response(302, headers={"Location": "urn:ietf:wg:oauth:2.0:oob?code=abc&session_state=x"}),
        make_response(200, {"access_token": token, "refresh_token": "rt"}),
    )

    result = PrtCookieGrant(endpoint).execute("cookie-value", GRAPH, OFFICE, "t1")

    authorize = session.calls[0]
    assert authorize["method"] == "GET"
    assert authorize["url"] == "https://login.microsoftonline.com/t1/oauth2/authorize"
    assert authorize["headers"]["Cookie"] == f"{PRT_COOKIE_NAME}=cookie-value"
    assert authorize["allow_redirects"] is False
    assert authorize["params"]["response_type"] == "code"

    redeem = session.calls[1]["data"]
    assert redeem["grant_type"] == "authorization_code"
    assert redeem["code"] == "abc"
    assert result.access_token == token


def test_prt_cookie__error_in_redirect(endpoint: TokenEndpoint, session: FakeSession) -> None:
    session.queue(
        make_response(
            302,
            headers={
                "Location": "urn:ietf:wg:oauth:2.0:oob?error=interaction_required"
                "&error_description=AADSTS50058%3A+Silent+sign-in+failed"
            },
        )
    )
    with pytest.raises(GrantError, match="AADSTS50058") as info:
        PrtCookieGrant(endpoint).execute("bad", GRAPH, OFFICE)
    assert info.value.error_code == "interaction_required"


def test_prt_cookie__no_code_returned(endpoint: TokenEndpoint, session: FakeSession) -> None:
    session.queue(make_response(200, text="<html>login page</html>"))
    with pytest.raises(GrantError, match="not accepted"):
        PrtCookieGrant(endpoint).execute("bad", GRAPH, OFFICE)


def test_signed_prt__fetches_nonce_and_signs_request(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    token = make_jwt()
    session.queue(
        make_response(200, {"Nonce": "n-42"}),
        make_response(200, {"access_token": token, "refresh_token": "rt2"}),
    )

    result = SignedPrtGrant(endpoint).execute("the-prt", SESSION_KEY, GRAPH, OFFICE, cae=True)

    form = session.calls[1]["data"]
    assert form["grant_type"] == JWT_BEARER
    assert form["claims"] == CAE_CLAIMS
    payload = jwt.decode(form["request"], options={"verify_signature": False})
    assert payload["refresh_token"] == "the-prt"
    assert payload["request_nonce"] == "n-42"
    assert payload["client_id"] == OFFICE
    assert payload["resource"] == GRAPH
    assert payload["claims"] == CAE_CLAIMS
    assert result.access_token == token


def test_signed_prt__decrypts_encrypted_response(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    token = make_jwt()
    jwe = seal_jwe({"access_token": token}, SESSION_KEY, os.urandom(24))
    session.queue(make_response(200, text=jwe))

    result = SignedPrtGrant(endpoint).execute(
        "the-prt", SESSION_KEY, GRAPH, OFFICE, nonce="given"
    )

    assert len(session.calls) == 1
    assert result.access_token == token


def test_signed_prt__error_response(endpoint: TokenEndpoint, session: FakeSession) -> None:
    session.queue(
        make_response(400, {"error": "invalid_grant", "error_description": "AADSTS50155: bad key"})
    )
    with pytest.raises(GrantError, match="AADSTS50155"):
        SignedPrtGrant(endpoint).execute("prt", SESSION_KEY, GRAPH, OFFICE, nonce="n")
