from __future__ import annotations

import jwt
import pytest
from hypothesis import given
from hypothesis import strategies as st

from entrabroker.errors import MalformedToken
from entrabroker.tokens.codec import decode_payload, is_expired, parse
from tests.helpers import GRAPH, OFFICE, TENANT, b64url, make_jwt


def test_parse__reads_entra_claims() -> None:
    token = make_jwt(exp=2_000_000_000, deviceid="dev-1", amr=["pwd", "mfa"])
    claims = parse(token)

    assert claims.client_id == OFFICE
    assert claims.audience == GRAPH
    assert claims.tenant_id == TENANT
    assert claims.subject == "subject"
    assert claims.unique_name == "user@contoso.com"
    assert claims.expires_at == 2_000_000_000
    assert claims.device_id == "dev-1"
    assert claims.amr == ("pwd", "mfa")


def test_parse__ignores_signature_and_expiry() -> None:
    token = jwt.encode({"aud": GRAPH, "exp": 1}, "k" * 32, algorithm="HS256")
    claims = parse(token)
    assert claims.audience == GRAPH
    assert claims.expires_at == 1


def test_parse__falls_back_to_azp_for_v2_tokens() -> None:
    token = make_jwt(appid=None, azp="v2-client")
    assert parse(token).client_id == "v2-client"


def test_parse__unique_name_wins_over_upn() -> None:
    token = make_jwt(unique_name="legacy@contoso.com")
    assert parse(token).unique_name == "legacy@contoso.com"


@pytest.mark.parametrize(
    "bad",
    ["", "   ", "not-a-jwt", "a.!!!.c", "a.bm90IGpzb24.c"],
)
def test_parse__malformed_tokens_raise(bad: str) -> None:
    with pytest.raises(MalformedToken):
        parse(bad)


def test_parse__payload_must_be_a_claim_map() -> None:
    header = b64url(b'{"alg":"none"}')
    with pytest.raises(MalformedToken, match="Unable to decode token"):
        parse(f"{header}.{b64url(b'[1, 2]')}.")


def test_parse__non_numeric_exp_raises() -> None:
    with pytest.raises(MalformedToken, match="exp"):
        parse(make_jwt(exp="soon"))


def test_is_expired__compares_exp_with_skew() -> None:
    claims = parse(make_jwt(exp=1000))
    assert not is_expired(claims, now=999)
    assert is_expired(claims, now=1000)
    assert is_expired(claims, skew=5, now=996)


def test_is_expired__missing_exp_counts_as_expired() -> None:
    payload = decode_payload(make_jwt())
    del payload["exp"]
    assert is_expired(parse(jwt.encode(payload, None, algorithm="none")))


@given(st.dictionaries(st.sampled_from(["aud", "appid", "tid", "upn"]), st.text(max_size=40)))
def test_decode_payload__returns_encoded_claims(claims: dict[str, str]) -> None:
    """Whatever string claims are encoded come back unchanged."""
    assert decode_payload(jwt.encode(claims, None, algorithm="none")) == claims
