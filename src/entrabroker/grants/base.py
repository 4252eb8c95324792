from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Final, Mapping

import requests

from entrabroker.config import BrokerSettings
from entrabroker.errors import GrantError

logger = logging.getLogger(__name__)

CAE_CLAIMS: Final[str] = json.dumps(
    {"access_token": {"xms_cc": {"values": ["CP1"]}}}, separators=(",", ":")
)
GENERIC_FAILURE: Final[str] = "Unable to get tokens"


@dataclass
class GrantResult:
    """Normalized token endpoint response."""

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    is_family_client: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "GrantResult":
        access_token = data.get("access_token")
        if not access_token:
            raise GrantError(GENERIC_FAILURE + ": response has no access_token")
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            id_token=data.get("id_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            is_family_client=str(data.get("foci", "")) == "1",
            raw=dict(data),
        )


def claims_field(cae: bool = False, claims: str | None = None) -> str | None:
    """Return the ``claims`` form value: an explicit challenge wins over CAE."""
    if claims:
        return claims
    return CAE_CLAIMS if cae else None


def error_from_response(response: requests.Response) -> GrantError:
    """Translate a failed HTTP response into :class:`GrantError`.

    The first line of ``error_description`` becomes the reason; when the body
    is not an OAuth2 error document a generic message is used.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and (body.get("error") or body.get("error_description")):
        description = str(body.get("error_description") or body.get("error"))
        reason = description.strip().splitlines()[0] if description.strip() else GENERIC_FAILURE
        return GrantError(
            reason, http_status=response.status_code, error_code=body.get("error")
        )
    return GrantError(GENERIC_FAILURE, http_status=response.status_code)


class TokenEndpoint:
    """Thin wrapper around a :class:`requests.Session` for token requests.

    All grant strategies share it so that headers, timeouts and error
    translation are identical for every exchange.
    """

    def __init__(
        self,
        settings: BrokerSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or BrokerSettings()
        self.session = session or requests.Session()

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {"User-Agent": self.settings.user_agent}
        if extra:
            headers.update(extra)
        return headers

    def send(
        self,
        method: str,
        url: str,
        *,
        data: Mapping[str, Any] | str | None = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool = True,
    ) -> requests.Response:
        """Send one request and return the raw response.

        Raises:
            GrantError: On transport failures (no HTTP status).
        """
        try:
            return self.session.request(
                method,
                url,
                data=data,
                params=params,
                headers=self._headers(headers),
                timeout=timeout or self.settings.request_timeout,
                allow_redirects=allow_redirects,
            )
        except requests.Timeout as exc:
            raise GrantError(f"Request to {url} timed out") from exc
        except requests.RequestException as exc:
            raise GrantError(f"Request to {url} failed: {exc}") from exc

    def post_form(
        self,
        url: str,
        form: Mapping[str, Any],
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a form-url-encoded body and return the decoded JSON response.

        ``None`` values are dropped from ``form`` before sending.

        Raises:
            GrantError: If the server answers with a non-2xx status.
        """
        body = {k: v for k, v in form.items() if v is not None}
        extra = {"Content-Type": "application/x-www-form-urlencoded"}
        if headers:
            extra.update(headers)
        response = self.send("POST", url, data=body, params=params, headers=extra)
        return self.json_or_raise(response)

    @staticmethod
    def json_or_raise(response: requests.Response) -> dict[str, Any]:
        if not response.ok:
            raise error_from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            raise GrantError(
                GENERIC_FAILURE + ": response is not JSON",
                http_status=response.status_code,
            ) from exc

    def token_url(self, tenant: str, sub_scope: str | None = None) -> str:
        return self.settings.token_endpoint(tenant, sub_scope)
