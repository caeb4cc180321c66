# sitebuilder/core/gateway_client.py
"""
Payment gateway adapters.

The wire protocol of each provider is opaque to this service. Real
providers are reached through an HTTP bridge (one base URL per kind in
GATEWAY_BASE_URLS) that exposes two JSON endpoints:

    POST {base}/request -> {"redirect_url": ..., "token": ...}
    POST {base}/verify  -> {"success": bool, "transaction_code": ..., "message": ...}

parbad_virtual is an in-process test gateway that never leaves the
process; it is what local development and tests run against.
"""
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import requests

from sitebuilder.core.config import get_settings
from sitebuilder.models.enums import GatewayKind

logger = logging.getLogger(__name__)

# Credential fields each provider needs before a site may activate it.
REQUIRED_CREDENTIALS: dict[GatewayKind, tuple[str, ...]] = {
    GatewayKind.SAMAN: ("merchant_id", "password"),
    GatewayKind.MELLAT: ("terminal_id", "user_name", "user_password"),
    GatewayKind.PARSIAN: ("login_account",),
    GatewayKind.PASARGAD: ("merchant_code", "terminal_code", "private_key"),
    GatewayKind.IRAN_KISH: ("terminal_id", "acceptor_id", "pass_phrase", "public_key"),
    GatewayKind.MELLI: ("terminal_id", "merchant_id", "terminal_key"),
    GatewayKind.ASAN_PARDAKHT: (
        "merchant_configuration_id",
        "user_name",
        "password",
        "key",
        "iv",
    ),
    GatewayKind.SEPEHR: ("terminal_id",),
    GatewayKind.ZARINPAL: ("merchant_id",),
    GatewayKind.PAY_IR: ("api",),
    GatewayKind.ID_PAY: ("api",),
    GatewayKind.YEK_PAY: ("merchant_id",),
    GatewayKind.PAY_PING: ("access_token",),
    GatewayKind.PARBAD_VIRTUAL: (),
}


def missing_credentials(kind: GatewayKind, credentials: dict[str, Any] | None) -> list[str]:
    credentials = credentials or {}
    return [
        name
        for name in REQUIRED_CREDENTIALS[kind]
        if credentials.get(name) in (None, "")
    ]


@dataclass
class GatewayRequestResult:
    redirect_url: str
    provider_token: str | None = None


@dataclass
class GatewayVerifyResult:
    success: bool
    transaction_code: str | None = None
    message: str | None = None


class GatewayUnavailableError(Exception):
    """Transport error or 5xx from a provider."""


class GatewayAdapter:
    """
    Contract shared by every provider adapter.

    verify() must be idempotent per tracking_number: the provider is
    authoritative and answers the same way for repeated verifies.
    """

    def request(
        self,
        amount: int,
        tracking_number: int,
        gateway: GatewayKind,
        account_config: dict[str, Any],
        return_url: str,
        client_ip: str | None,
    ) -> GatewayRequestResult:
        raise NotImplementedError

    def verify(
        self,
        gateway: GatewayKind,
        account_config: dict[str, Any],
        callback_params: dict[str, Any],
    ) -> GatewayVerifyResult:
        raise NotImplementedError


class HttpGatewayAdapter(GatewayAdapter):
    def __init__(self, base_url: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, body: dict[str, Any]) -> requests.Response:
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise GatewayUnavailableError(f"Gateway is unreachable: {e}") from e

        if response.status_code >= 500:
            raise GatewayUnavailableError(
                f"Gateway answered {response.status_code}: {response.text[:200]}"
            )
        return response

    def request(self, amount, tracking_number, gateway, account_config, return_url, client_ip):
        response = self._post(
            "/request",
            {
                "gateway": gateway.value,
                "amount": amount,
                "tracking_number": tracking_number,
                "account": account_config,
                "return_url": return_url,
                "client_ip": client_ip,
            },
        )
        if response.status_code != 200:
            # The provider refused the payment request; nothing to redirect to.
            raise GatewayUnavailableError(
                f"Gateway rejected request ({response.status_code}): {response.text[:200]}"
            )
        data = response.json()
        return GatewayRequestResult(
            redirect_url=data["redirect_url"],
            provider_token=data.get("token"),
        )

    def verify(self, gateway, account_config, callback_params):
        response = self._post(
            "/verify",
            {
                "gateway": gateway.value,
                "account": account_config,
                "params": callback_params,
            },
        )
        if response.status_code != 200:
            return GatewayVerifyResult(success=False, message=response.text[:200])
        data = response.json()
        return GatewayVerifyResult(
            success=bool(data.get("success")),
            transaction_code=data.get("transaction_code"),
            message=data.get("message"),
        )


class VirtualGatewayAdapter(GatewayAdapter):
    """
    In-process stand-in for a provider.

    The redirect URL points straight back at the callback with
    status=succeed; a callback carrying any other status fails.
    Outcomes are remembered per tracking_number so repeated verifies
    agree with the first one.
    """

    SUCCESS_STATUSES = {"succeed", "success", "ok", "true", "1"}

    def __init__(self):
        self._outcomes: dict[str, GatewayVerifyResult] = {}

    def request(self, amount, tracking_number, gateway, account_config, return_url, client_ip):
        separator = "&" if "?" in return_url else "?"
        query = urlencode({"tracking_number": tracking_number, "status": "succeed"})
        return GatewayRequestResult(
            redirect_url=f"{return_url}{separator}{query}",
            provider_token=f"virtual-{tracking_number}",
        )

    def verify(self, gateway, account_config, callback_params):
        tracking_number = str(callback_params.get("tracking_number", ""))
        if tracking_number in self._outcomes:
            return self._outcomes[tracking_number]

        status = str(callback_params.get("status", "")).lower()
        if status in self.SUCCESS_STATUSES:
            outcome = GatewayVerifyResult(
                success=True,
                transaction_code=f"VIRTUAL-{tracking_number}",
            )
        else:
            outcome = GatewayVerifyResult(success=False, message="Payment cancelled")
        self._outcomes[tracking_number] = outcome
        return outcome


class GatewayRegistry:
    """
    Picks the adapter for a gateway kind.
    """

    def __init__(self, adapters: dict[GatewayKind, GatewayAdapter]):
        self._adapters = adapters

    def adapter_for(self, kind: GatewayKind) -> GatewayAdapter:
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise GatewayUnavailableError(f"No adapter configured for gateway {kind.value}")
        return adapter

    @classmethod
    def from_settings(cls) -> "GatewayRegistry":
        settings = get_settings()
        adapters: dict[GatewayKind, GatewayAdapter] = {
            GatewayKind.PARBAD_VIRTUAL: VirtualGatewayAdapter(),
        }
        for kind_name, base_url in settings.GATEWAY_BASE_URLS.items():
            kind = GatewayKind(kind_name)
            if kind is GatewayKind.PARBAD_VIRTUAL:
                continue
            adapters[kind] = HttpGatewayAdapter(base_url, settings.GATEWAY_TIMEOUT_SECONDS)
        logger.info(
            "Gateway adapters configured: %s",
            ", ".join(sorted(k.value for k in adapters)),
        )
        return cls(adapters)
