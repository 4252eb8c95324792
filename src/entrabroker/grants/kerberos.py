from __future__ import annotations

import logging
import re
import uuid
from typing import Final
from xml.sax.saxutils import escape

from entrabroker.errors import GrantError
from entrabroker.interfaces import DesktopSsoExchanger

from .base import GrantResult, TokenEndpoint
from .token import SamlBearerGrant

logger = logging.getLogger(__name__)

_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"<DesktopSsoToken>(.+?)</DesktopSsoToken>", re.DOTALL
)
_FAULT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"<psf:text>(.+?)</psf:text>", re.DOTALL
)

_ENVELOPE: Final[str] = """<?xml version="1.0" encoding="UTF-8"?>
<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope" xmlns:wsse="http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd" xmlns:saml="urn:oasis:names:tc:SAML:1.0:assertion" xmlns:wsp="http://schemas.xmlsoap.org/ws/2004/09/policy" xmlns:wsu="http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd" xmlns:wsa="http://www.w3.org/2005/08/addressing" xmlns:wssc="http://schemas.xmlsoap.org/ws/2005/02/sc" xmlns:wst="http://schemas.xmlsoap.org/ws/2005/02/trust">
  <s:Header>
    <wsa:Action s:mustUnderstand="1">http://schemas.xmlsoap.org/ws/2005/02/trust/RST/Issue</wsa:Action>
    <wsa:To s:mustUnderstand="1">{url}</wsa:To>
    <wsa:MessageID>urn:uuid:{message_id}</wsa:MessageID>
  </s:Header>
  <s:Body>
    <wst:RequestSecurityToken Id="RST0">
      <wst:RequestType>http://schemas.xmlsoap.org/ws/2005/02/trust/Issue</wst:RequestType>
      <wsp:AppliesTo>
        <wsa:EndpointReference>
          <wsa:Address>urn:federation:MicrosoftOnline</wsa:Address>
        </wsa:EndpointReference>
      </wsp:AppliesTo>
      <wst:KeyType>http://schemas.xmlsoap.org/ws/2005/05/identity/NoProofKey</wst:KeyType>
    </wst:RequestSecurityToken>
  </s:Body>
</s:Envelope>"""


def desktop_sso_assertion(desktop_sso_token: str) -> str:
    """Wrap a desktop SSO token into the SAML assertion the token endpoint expects."""
    return (
        '<saml:Assertion xmlns:saml="urn:oasis:names:tc:SAML:1.0:assertion">'
        f"<DesktopSsoToken>{escape(desktop_sso_token)}</DesktopSsoToken>"
        "</saml:Assertion>"
    )


class AutologonExchanger:
    """Desktop SSO exchange against the Seamless SSO autologon endpoint."""

    def __init__(self, endpoint: TokenEndpoint) -> None:
        self.endpoint = endpoint

    def exchange(self, ticket: str, domain: str) -> str:
        message_id = uuid.uuid4()
        url = (
            f"{self.endpoint.settings.autologon_url}/{domain}"
            "/winauth/trust/2005/windowstransport"
        )
        response = self.endpoint.send(
            "POST",
            url,
            params={"client-request-id": str(message_id)},
            data=_ENVELOPE.format(url=url, message_id=message_id),
            headers={
                "Authorization": f"Negotiate {ticket}",
                "Content-Type": "application/soap+xml; charset=utf-8",
            },
        )
        match = _TOKEN_PATTERN.search(response.text or "")
        if match:
            return match.group(1).strip()
        fault = _FAULT_PATTERN.search(response.text or "")
        raise GrantError(
            fault.group(1).strip().splitlines()[0]
            if fault
            else "Desktop SSO did not return a token",
            http_status=response.status_code,
        )


class KerberosGrant:
    """Exchange a Kerberos ticket for tokens via Seamless SSO.

    The ticket is first turned into a desktop SSO token by the exchanger,
    which is then redeemed with the SAML 1.1 bearer grant.
    """

    def __init__(
        self,
        endpoint: TokenEndpoint,
        exchanger: DesktopSsoExchanger | None = None,
    ) -> None:
        self.exchanger = exchanger or AutologonExchanger(endpoint)
        self._saml = SamlBearerGrant(endpoint)

    def execute(
        self,
        ticket: str,
        domain: str,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        logger.info("Exchanging Kerberos ticket for domain %s", domain)
        sso_token = self.exchanger.exchange(ticket, domain)
        return self._saml.execute(
            desktop_sso_assertion(sso_token),
            resource,
            client_id,
            tenant,
            cae=cae,
            claims=claims,
            sub_scope=sub_scope,
        )
