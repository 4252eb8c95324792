from __future__ import annotations

import logging
import time
from typing import Any, Callable, Final

from entrabroker.errors import GrantError, GrantTimeout

from .base import GrantResult, TokenEndpoint, claims_field

logger = logging.getLogger(__name__)

DEVICE_CODE: Final[str] = "urn:ietf:params:oauth:grant-type:device_code"
API_VERSION: Final[dict[str, str]] = {"api-version": "1.0"}


def _log_prompt(flow: dict[str, Any]) -> None:
    logger.info(
        "%s",
        flow.get("message")
        or f"Open {flow.get('verification_url')} and enter the code {flow.get('user_code')}",
    )


class DeviceCodeGrant:
    """Device authorization flow with polling.

    The loop sleeps ``interval`` seconds before every poll and gives up with
    :class:`GrantTimeout` as soon as ``expires_in`` seconds have elapsed. Only
    ``authorization_pending`` keeps the loop going; any other error is raised
    immediately.
    """

    def __init__(
        self,
        endpoint: TokenEndpoint,
        *,
        prompt: Callable[[dict[str, Any]], None] = _log_prompt,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoint = endpoint
        self.prompt = prompt
        self.sleep = sleep
        self.clock = clock

    def start(
        self, resource: str, client_id: str, tenant: str, sub_scope: str | None = None
    ) -> dict[str, Any]:
        """Request a device code and return the flow document."""
        base = self.endpoint.settings.login_url_for(sub_scope)
        return self.endpoint.post_form(
            f"{base}/{tenant}/oauth2/devicecode",
            {"client_id": client_id, "resource": resource},
            params=API_VERSION,
        )

    def execute(
        self,
        resource: str,
        client_id: str,
        tenant: str = "common",
        *,
        cae: bool = False,
        claims: str | None = None,
        sub_scope: str | None = None,
    ) -> GrantResult:
        flow = self.start(resource, client_id, tenant, sub_scope)
        device_code = flow.get("device_code")
        if not device_code:
            raise GrantError("Device code response has no device_code")

        self.prompt(flow)

        interval = int(flow.get("interval", 5))
        expires_in = int(flow.get("expires_in", 900))
        deadline = self.clock() + expires_in
        url = self.endpoint.token_url(tenant, sub_scope)
        form = {
            "client_id": client_id,
            "grant_type": DEVICE_CODE,
            "code": device_code,
            "resource": resource,
            "claims": claims_field(cae, claims),
        }

        while True:
            self.sleep(interval)
            if self.clock() >= deadline:
                raise GrantTimeout(
                    "Device code expired before authentication completed"
                )
            try:
                data = self.endpoint.post_form(url, form, params=API_VERSION)
            except GrantError as exc:
                if exc.error_code == "authorization_pending":
                    logger.debug("Device code authorization pending")
                    continue
                raise
            return GrantResult.from_response(data)
