from __future__ import annotations

import base64
import json

import pytest
import requests

from entrabroker.errors import GrantError
from entrabroker.grants.base import CAE_CLAIMS, GrantResult, TokenEndpoint
from entrabroker.grants.token import (
    AuthorizationCodeGrant,
    ByoRefreshTokenGrant,
    PasswordGrant,
    RefreshTokenGrant,
    SamlBearerGrant,
)
from tests.helpers import GRAPH, OFFICE, FakeSession, make_jwt, make_response


def test_refresh_grant__posts_form_to_tenant_token_endpoint(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    token = make_jwt()
    session.queue(make_response(200, {"access_token": token, "refresh_token": "rt2", "foci": "1"}))

    result = RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1", "contoso.com")

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://login.microsoftonline.com/contoso.com/oauth2/token"
    assert call["data"] == {
        "client_id": OFFICE,
        "grant_type": "refresh_token",
        "refresh_token": "rt1",
        "resource": GRAPH,
    }
    assert call["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    assert result.access_token == token
    assert result.refresh_token == "rt2"
    assert result.is_family_client


def test_refresh_grant__cae_adds_claims_field(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1", cae=True)

    assert session.calls[0]["data"]["claims"] == CAE_CLAIMS
    assert json.loads(CAE_CLAIMS) == {"access_token": {"xms_cc": {"values": ["CP1"]}}}


def test_refresh_grant__explicit_claims_win_over_cae(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1", cae=True, claims='{"x":1}')

    assert session.calls[0]["data"]["claims"] == '{"x":1}'


def test_refresh_grant__legacy_sync_client_uses_override_host(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    RefreshTokenGrant(endpoint).execute(
        GRAPH, "cb1056e2-e479-49de-ae31-7812af012ed8", "rt1", "t1"
    )

    assert session.calls[0]["url"] == "https://login.windows.net/t1/oauth2/token"


def test_refresh_grant__sub_scope_selects_sovereign_host(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1", "t1", sub_scope="dod")

    assert session.calls[0]["url"] == "https://login.microsoftonline.us/t1/oauth2/token"


def test_error_translation__first_line_of_description(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(
        make_response(
            400,
            {
                "error": "invalid_grant",
                "error_description": "AADSTS50076: MFA required.\r\nTrace ID: abc",
            },
        )
    )
    with pytest.raises(GrantError) as info:
        RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1")

    assert info.value.reason == "AADSTS50076: MFA required."
    assert info.value.http_status == 400
    assert info.value.error_code == "invalid_grant"


def test_error_translation__non_json_body_is_generic(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(502, text="<html>bad gateway</html>"))
    with pytest.raises(GrantError, match="Unable to get tokens") as info:
        RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1")
    assert info.value.http_status == 502


def test_transport_failure__becomes_grant_error(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(requests.ConnectionError("refused"))
    with pytest.raises(GrantError, match="failed") as info:
        RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1")
    assert info.value.http_status is None


def test_success_without_access_token__raises(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"token_type": "Bearer"}))
    with pytest.raises(GrantError, match="no access_token"):
        RefreshTokenGrant(endpoint).execute(GRAPH, OFFICE, "rt1")


def test_byo_refresh_token__performs_refresh_grant(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    ByoRefreshTokenGrant(endpoint).execute("bulk-token", GRAPH, OFFICE)

    data = session.calls[0]["data"]
    assert data["grant_type"] == "refresh_token"
    assert data["refresh_token"] == "bulk-token"


def test_saml_grant__base64_encodes_assertion(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    assertion = "<saml:Assertion>ä</saml:Assertion>"
    session.queue(make_response(200, {"access_token": make_jwt()}))
    SamlBearerGrant(endpoint).execute(assertion, GRAPH, OFFICE)

    data = session.calls[0]["data"]
    assert data["grant_type"] == "urn:ietf:params:oauth:grant-type:saml1_1-bearer"
    assert base64.b64decode(data["assertion"]).decode("utf-8") == assertion
    assert data["scope"] == "openid"


def test_password_grant__form_fields(endpoint: TokenEndpoint, session: FakeSession) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    PasswordGrant(endpoint).execute("user@contoso.com", "pw", GRAPH, OFFICE)

    data = session.calls[0]["data"]
    assert data["grant_type"] == "password"
    assert data["username"] == "user@contoso.com"
    assert data["password"] == "pw"


def test_authorization_code_grant__uses_configured_redirect(
    endpoint: TokenEndpoint, session: FakeSession
) -> None:
    session.queue(make_response(200, {"access_token": make_jwt()}))
    AuthorizationCodeGrant(endpoint).execute("the-code", GRAPH, OFFICE)

    data = session.calls[0]["data"]
    assert data["grant_type"] == "authorization_code"
    assert data["code"] == "the-code"
    assert data["redirect_uri"] == "urn:ietf:wg:oauth:2.0:oob"


def test_grant_result__from_response_normalizes_fields() -> None:
    result = GrantResult.from_response(
        {"access_token": "a", "refresh_token": "", "expires_in": "3599", "foci": "0"}
    )
    assert result.refresh_token is None
    assert result.expires_in == 3599
    assert not result.is_family_client
