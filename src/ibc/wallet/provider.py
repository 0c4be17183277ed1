"""
Lightning payment provider abstraction.

The ledger never talks to a provider directly: the payout service reserves
funds, asks the provider to pay, and settles based on the ``ProviderResult``.
Provider is selected via configuration (``IBC_PAYMENT_PROVIDER``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
import structlog

from ibc.config import get_settings

logger = structlog.get_logger()

PAID = "paid"
FAILED = "failed"
PENDING = "pending"


class ProviderError(Exception):
    """Outcome unknown: the payment may or may not have been sent."""


@dataclass(frozen=True)
class ProviderResult:
    status: str  # paid | failed | pending
    provider_ref: str | None = None
    error: str | None = None


class PaymentProvider(ABC):
    """Abstract base class for Lightning payout providers."""

    enabled: bool = True

    @abstractmethod
    async def send(self, lightning_address: str, amount_sats: int, memo: str) -> ProviderResult:
        """Pay ``amount_sats`` to a lightning address.

        Returns a definite result when the provider answers or when the
        payment was never submitted; raises ``ProviderError`` only when the
        payment request may have reached the provider.
        """
        ...

    @abstractmethod
    async def lookup(self, provider_ref: str) -> ProviderResult:
        """Query the current status of an earlier payment."""
        ...

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources."""


class DisabledProvider(PaymentProvider):
    """No outbound payments: withdrawals stay queued for manual processing."""

    enabled = False

    async def send(self, lightning_address: str, amount_sats: int, memo: str) -> ProviderResult:
        msg = "Payment provider is disabled"
        raise ProviderError(msg)

    async def lookup(self, provider_ref: str) -> ProviderResult:
        msg = "Payment provider is disabled"
        raise ProviderError(msg)


_SEND_MUTATION = """
mutation LnInvoicePaymentSend($input: LnInvoicePaymentInput!) {
  lnInvoicePaymentSend(input: $input) {
    status
    errors { message }
  }
}
"""

_WALLET_QUERY = """
query Me {
  me { defaultAccount { defaultWalletId } }
}
"""

_STATUS_QUERY = """
query LnInvoicePaymentStatus($input: LnInvoicePaymentStatusInput!) {
  lnInvoicePaymentStatus(input: $input) {
    status
  }
}
"""


class FlashProvider(PaymentProvider):
    """Pay lightning addresses through the Flash GraphQL API.

    Flow: resolve the address via LNURL-pay (LUD-16), fetch a BOLT11 invoice
    for the amount from the callback, then pay it from the default wallet.
    The invoice is the provider reference used for status lookups.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        *,
        lnurl_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_token = api_token
        self.lnurl_timeout = lnurl_timeout
        self._client = client or httpx.AsyncClient(timeout=lnurl_timeout)
        self._wallet_id: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _graphql(self, query: str, variables: dict | None = None) -> dict:
        try:
            response = await self._client.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
                headers={"Authorization": f"Bearer {self.api_token}"},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            msg = f"Flash API request failed: {e}"
            raise ProviderError(msg) from e
        if body.get("errors"):
            msg = f"Flash API error: {body['errors'][0].get('message', 'unknown')}"
            raise ProviderError(msg)
        return body.get("data") or {}

    async def _wallet(self) -> str:
        if self._wallet_id is None:
            data = await self._graphql(_WALLET_QUERY)
            try:
                self._wallet_id = data["me"]["defaultAccount"]["defaultWalletId"]
            except (KeyError, TypeError) as e:
                msg = "Flash API returned no default wallet"
                raise ProviderError(msg) from e
        return self._wallet_id

    async def fetch_invoice(self, lightning_address: str, amount_sats: int, memo: str) -> str:
        """Resolve a lightning address to a BOLT11 invoice for ``amount_sats``.

        Returns ``""`` with a logged reason when the address cannot be paid
        (unknown user, amount out of range); raises ``ProviderError`` on
        network failures and unreadable responses.
        """
        user, _, domain = lightning_address.partition("@")
        millisats = amount_sats * 1000
        try:
            meta_resp = await self._client.get(
                f"https://{domain}/.well-known/lnurlp/{user}", timeout=self.lnurl_timeout
            )
            if meta_resp.status_code == 404:
                logger.warning("lnurl_unknown_address", address=lightning_address)
                return ""
            meta_resp.raise_for_status()
            meta = meta_resp.json()
            if meta.get("status") == "ERROR" or "callback" not in meta:
                logger.warning("lnurl_bad_metadata", address=lightning_address, reason=meta.get("reason"))
                return ""
            if not meta.get("minSendable", 0) <= millisats <= meta.get("maxSendable", millisats):
                logger.warning("lnurl_amount_out_of_range", address=lightning_address, amount=amount_sats)
                return ""

            params: dict[str, str | int] = {"amount": millisats}
            if memo and meta.get("commentAllowed", 0) >= len(memo):
                params["comment"] = memo
            invoice_resp = await self._client.get(meta["callback"], params=params, timeout=self.lnurl_timeout)
            invoice_resp.raise_for_status()
            invoice = invoice_resp.json()
        except (httpx.HTTPError, ValueError) as e:
            msg = f"LNURL resolution failed for {lightning_address}: {e}"
            raise ProviderError(msg) from e

        if invoice.get("status") == "ERROR" or not invoice.get("pr"):
            logger.warning("lnurl_no_invoice", address=lightning_address, reason=invoice.get("reason"))
            return ""
        return str(invoice["pr"])

    async def send(self, lightning_address: str, amount_sats: int, memo: str) -> ProviderResult:
        # Nothing has been paid until the send mutation goes out, so failures
        # up to that point are definite.
        try:
            invoice = await self.fetch_invoice(lightning_address, amount_sats, memo)
            if not invoice:
                return ProviderResult(status=FAILED, error="Could not get an invoice for the lightning address")
            wallet_id = await self._wallet()
        except ProviderError as e:
            logger.warning("flash_payment_not_sent", address=lightning_address, amount=amount_sats, error=str(e))
            return ProviderResult(status=FAILED, error=str(e))

        data = await self._graphql(
            _SEND_MUTATION,
            {"input": {"walletId": wallet_id, "paymentRequest": invoice, "memo": memo}},
        )
        payload = data.get("lnInvoicePaymentSend") or {}
        errors = payload.get("errors") or []
        status = payload.get("status")

        if status == "SUCCESS":
            return ProviderResult(status=PAID, provider_ref=invoice)
        if status == "PENDING":
            return ProviderResult(status=PENDING, provider_ref=invoice)
        message = errors[0].get("message") if errors else f"Payment status {status}"
        logger.warning("flash_payment_failed", address=lightning_address, amount=amount_sats, error=message)
        return ProviderResult(status=FAILED, provider_ref=invoice, error=message)

    async def lookup(self, provider_ref: str) -> ProviderResult:
        data = await self._graphql(_STATUS_QUERY, {"input": {"paymentRequest": provider_ref}})
        status = (data.get("lnInvoicePaymentStatus") or {}).get("status")
        if status == "PAID":
            return ProviderResult(status=PAID, provider_ref=provider_ref)
        if status == "EXPIRED":
            return ProviderResult(status=FAILED, provider_ref=provider_ref, error="Invoice expired")
        return ProviderResult(status=PENDING, provider_ref=provider_ref)


def create_provider() -> PaymentProvider:
    """Create the configured payment provider."""
    settings = get_settings()
    name = settings.payment_provider.lower()

    if name == "flash":
        if not settings.flash_api_token:
            logger.warning("flash_token_missing", detail="payouts will stay queued")
            return DisabledProvider()
        return FlashProvider(
            settings.flash_api_url,
            settings.flash_api_token,
            lnurl_timeout=settings.lnurl_timeout_seconds,
        )
    if name == "disabled":
        return DisabledProvider()

    msg = f"Unknown payment provider: {settings.payment_provider}"
    raise ValueError(msg)
