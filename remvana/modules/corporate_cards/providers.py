"""Stripe Issuing client over the form-encoded REST API."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx

from remvana.errors import ProviderError
from remvana.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ALLOWED_CATEGORIES = [
    "airlines",
    "lodging",
    "car_rental",
    "gas_stations",
    "restaurants",
    "taxi_services",
]


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts and lists into Stripe's bracketed form keys."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, list):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    pairs.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class StripeIssuingClient:
    """Client for cardholders and virtual cards in Stripe Issuing."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.stripe.com/v1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def _post(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(path, data=encode_form(params))
        except httpx.HTTPError as exc:
            logger.error("stripe_request_failed", path=path, error=str(exc))
            raise ProviderError("stripe", str(exc)) from exc

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message") or ""
            except ValueError:
                message = ""
            message = message or f"HTTP {response.status_code}"
            logger.error("stripe_api_error", path=path, status=response.status_code, error=message)
            raise ProviderError("stripe", message, response.status_code)
        return response.json()

    async def create_cardholder(self, name: str, email: Optional[str] = None) -> dict[str, Any]:
        return await self._post("/issuing/cardholders", {
            "name": name,
            "email": email,
            "status": "active",
            "type": "individual",
            "billing": {
                "address": {
                    "line1": "123 Corporate Blvd",
                    "city": "San Francisco",
                    "state": "CA",
                    "postal_code": "94105",
                    "country": "US",
                },
            },
        })

    async def create_card(
        self,
        cardholder_id: str,
        spending_limit: Decimal,
        interval: str,
        allowed_categories: Optional[list[str]] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        card = await self._post("/issuing/cards", {
            "cardholder": cardholder_id,
            "currency": "usd",
            "type": "virtual",
            "status": "active",
            "spending_controls": {
                "spending_limits": [{"amount": to_minor_units(spending_limit), "interval": interval}],
                "allowed_categories": allowed_categories or DEFAULT_ALLOWED_CATEGORIES,
            },
            "metadata": metadata or {},
        })
        logger.info("stripe_card_created", last4=card.get("last4"))
        return card

    async def set_card_status(self, card_id: str, status: str) -> dict[str, Any]:
        """Set ``active``, ``inactive`` or ``canceled`` on a card."""
        return await self._post(f"/issuing/cards/{card_id}", {"status": status})

    async def update_spending_limit(self, card_id: str, spending_limit: Decimal, interval: str) -> dict[str, Any]:
        return await self._post(f"/issuing/cards/{card_id}", {
            "spending_controls": {
                "spending_limits": [{"amount": to_minor_units(spending_limit), "interval": interval}],
            },
        })
