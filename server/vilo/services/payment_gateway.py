"""Outbound refund calls to Paystack and PayPal."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..core.config import settings
from ..models.booking import PaymentMethod

logger = logging.getLogger(__name__)


@dataclass
class GatewayRefundResult:
    """What a gateway said about a refund we asked for."""

    success: bool
    gateway_refund_id: Optional[str] = None
    completed: bool = False
    error: Optional[str] = None


def _major_units(amount: int) -> str:
    return f"{amount // 100}.{amount % 100:02d}"


def _json_body(response: httpx.Response) -> dict:
    """Decoded JSON object, or `{}` for an empty or non-JSON body (proxy error pages)."""
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        logger.warning(
            "Gateway returned a non-JSON body",
            extra={"url": str(response.request.url), "status_code": response.status_code},
        )
        return {}
    return body if isinstance(body, dict) else {}


class PaymentGatewayClient:
    """
    Issues refunds through the payment gateways.

    An `httpx.AsyncClient` may be injected (tests pass one backed by
    `httpx.MockTransport`); otherwise one is opened per call.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=settings.gateway_timeout_seconds) as client:
            return await client.post(url, **kwargs)

    async def refund(
        self,
        method: str,
        reference: Optional[str],
        amount: int,
        currency: str,
        reason: str = "Customer refund request",
    ) -> GatewayRefundResult:
        """
        Refund `amount` minor units of the payment identified by `reference`.

        Transport and gateway errors are reported in the result, never raised.
        """
        if not reference:
            return GatewayRefundResult(success=False, error=f"Missing {method} transaction reference")

        try:
            if method == PaymentMethod.PAYSTACK.value:
                return await self._paystack_refund(reference, amount, currency, reason)
            if method == PaymentMethod.PAYPAL.value:
                return await self._paypal_refund(reference, amount, currency, reason)
        except httpx.HTTPError as e:
            logger.error(
                "Gateway refund request failed",
                extra={"method": method, "reference": reference, "error": str(e)},
            )
            return GatewayRefundResult(success=False, error=f"{method} request failed: {e}")

        return GatewayRefundResult(success=False, error=f"Unsupported gateway '{method}'")

    async def _paystack_refund(
        self, reference: str, amount: int, currency: str, reason: str
    ) -> GatewayRefundResult:
        if not settings.paystack_secret_key:
            return GatewayRefundResult(success=False, error="Paystack is not configured")

        response = await self._post(
            f"{settings.paystack_base_url}/refund",
            json={
                "transaction": reference,
                "amount": amount,
                "currency": currency,
                "merchant_note": reason,
            },
            headers={"Authorization": f"Bearer {settings.paystack_secret_key}"},
        )
        body = _json_body(response)
        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"Paystack returned HTTP {response.status_code}"
            logger.warning(
                "Paystack refund rejected",
                extra={"reference": reference, "status_code": response.status_code, "gateway_message": message},
            )
            return GatewayRefundResult(success=False, error=message)

        data = body.get("data") or {}
        refund_id = data.get("id")
        logger.info("Paystack refund initiated", extra={"reference": reference, "refund_id": refund_id})
        return GatewayRefundResult(
            success=True,
            gateway_refund_id=str(refund_id) if refund_id is not None else None,
            completed=data.get("status") == "processed",
        )

    async def _paypal_access_token(self) -> Optional[str]:
        response = await self._post(
            f"{settings.paypal_base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(settings.paypal_client_id, settings.paypal_client_secret),
        )
        if response.status_code >= 400:
            logger.warning("PayPal token request rejected", extra={"status_code": response.status_code})
            return None
        return _json_body(response).get("access_token")

    async def _paypal_refund(
        self, capture_id: str, amount: int, currency: str, reason: str
    ) -> GatewayRefundResult:
        if not settings.paypal_client_id or not settings.paypal_client_secret:
            return GatewayRefundResult(success=False, error="PayPal is not configured")

        token = await self._paypal_access_token()
        if not token:
            return GatewayRefundResult(success=False, error="PayPal authentication failed")

        response = await self._post(
            f"{settings.paypal_base_url}/v2/payments/captures/{capture_id}/refund",
            json={
                "amount": {"value": _major_units(amount), "currency_code": currency},
                "note_to_payer": reason[:255],
            },
            headers={"Authorization": f"Bearer {token}"},
        )
        body = _json_body(response)
        if response.status_code >= 400 or not body.get("id"):
            message = body.get("message") or f"PayPal returned HTTP {response.status_code}"
            logger.warning(
                "PayPal refund rejected",
                extra={"capture_id": capture_id, "status_code": response.status_code, "gateway_message": message},
            )
            return GatewayRefundResult(success=False, error=message)

        logger.info("PayPal refund initiated", extra={"capture_id": capture_id, "refund_id": body.get("id")})
        return GatewayRefundResult(
            success=True,
            gateway_refund_id=body.get("id"),
            completed=body.get("status") == "COMPLETED",
        )
