"""Corporate card issuing, freezing, funding and spend controls."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from remvana.config import get_settings
from remvana.database import get_session
from remvana.errors import CardStateError, ProviderNotConfigured
from remvana.logging_config import get_logger
from remvana.modules.corporate_cards.models import (
    AddFundsRequest, CardIssueRequest, CardStatus, CardTransaction, CardUpdateRequest,
    CorporateCard, TransactionType,
)
from remvana.modules.corporate_cards.providers import StripeIssuingClient
from remvana.security.audit import log_action
from remvana.security.encryption import decrypt, encrypt
from remvana.security.rbac import Permission, UserIdentity

logger = get_logger(__name__)


class CorporateCardService:
    """Manages virtual cards for an organization. Admin and manager roles only."""

    def __init__(self, client: Optional[StripeIssuingClient] = None) -> None:
        self._client = client

    def _issuing(self) -> StripeIssuingClient:
        if self._client is not None:
            return self._client
        settings = get_settings()
        if not settings.has_provider("stripe"):
            raise ProviderNotConfigured("Stripe Issuing", "STRIPE_SECRET_KEY")
        self._client = StripeIssuingClient(settings.stripe_secret_key, settings.stripe_base_url)
        return self._client

    @staticmethod
    def _organization(user: UserIdentity) -> str:
        """The caller's organization; cards are never reachable without one."""
        user.require_permission(Permission.MANAGE_CARDS)
        if not user.organization_id:
            raise ValueError("Organization context required")
        return user.organization_id

    async def list_cards(self, user: UserIdentity) -> list[CorporateCard]:
        organization_id = self._organization(user)
        async with get_session() as session:
            result = await session.execute(
                select(CorporateCard)
                .where(CorporateCard.organization_id == organization_id)
                .order_by(CorporateCard.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_card(self, card_id: str, user: UserIdentity) -> CorporateCard:
        organization_id = self._organization(user)
        async with get_session() as session:
            card = await session.get(CorporateCard, card_id)
        if card is None:
            raise LookupError(f"Card {card_id} not found")
        if card.organization_id != organization_id:
            raise PermissionError(f"Card {card_id} belongs to another organization")
        return card

    async def issue_card(self, user: UserIdentity, request: CardIssueRequest) -> CorporateCard:
        """Create a cardholder and a virtual card at the provider, then store it."""
        organization_id = self._organization(user)
        client = self._issuing()
        cardholder = await client.create_cardholder(request.cardholder_name, request.cardholder_email)
        provider_card = await client.create_card(
            cardholder["id"],
            request.spending_limit,
            request.interval.value,
            allowed_categories=request.allowed_categories,
            metadata={
                "organization_id": organization_id,
                "purpose": request.purpose or "business_expenses",
                "department": request.department or "general",
            },
        )

        card = CorporateCard(
            organization_id=organization_id,
            cardholder_name=request.cardholder_name,
            cardholder_email=request.cardholder_email,
            department=request.department,
            purpose=request.purpose,
            last4=str(provider_card.get("last4", "0000"))[-4:],
            expiry_month=f"{int(provider_card.get('exp_month', 1)):02d}",
            expiry_year=str(provider_card.get("exp_year", "")),
            provider_card_id=encrypt(provider_card["id"]),
            provider_cardholder_id=encrypt(cardholder["id"]),
            spending_limit=request.spending_limit,
            interval=request.interval.value,
            status=CardStatus.ACTIVE.value,
            created_by=user.user_id,
        )
        async with get_session() as session:
            session.add(card)
            await session.flush()

        logger.info("corporate_card_issued", card_id=card.id, organization_id=user.organization_id)
        await log_action(
            user.user_id, "corporate_card_issued", "corporate_cards",
            {"card_id": card.id, "cardholder": request.cardholder_name},
            organization_id=user.organization_id,
        )
        return card

    async def set_frozen(
        self, card_id: str, user: UserIdentity, freeze: bool, reason: Optional[str] = None
    ) -> CorporateCard:
        """Freeze or unfreeze a card at the provider and locally."""
        card = await self.get_card(card_id, user)
        if card.status == CardStatus.CANCELLED:
            raise CardStateError("Cancelled cards cannot be frozen or unfrozen")

        await self._issuing().set_card_status(
            decrypt(card.provider_card_id), "inactive" if freeze else "active"
        )
        async with get_session() as session:
            card = await session.get(CorporateCard, card_id)
            card.status = (CardStatus.FROZEN if freeze else CardStatus.ACTIVE).value

        action = "corporate_card_frozen" if freeze else "corporate_card_unfrozen"
        logger.info(action, card_id=card_id, reason=reason)
        await log_action(
            user.user_id, action, "corporate_cards", {"card_id": card_id, "reason": reason},
            organization_id=user.organization_id,
        )
        return card

    async def add_funds(self, card_id: str, user: UserIdentity, request: AddFundsRequest) -> CardTransaction:
        card = await self.get_card(card_id, user)
        if card.status != CardStatus.ACTIVE:
            raise CardStateError(f"Cannot add funds to a {card.status} card")

        async with get_session() as session:
            card = await session.get(CorporateCard, card_id)
            card.balance = card.balance + request.amount
            transaction = CardTransaction(
                card_id=card_id,
                transaction_type=TransactionType.CREDIT.value,
                amount=request.amount,
                description=request.description,
                processed_by=user.user_id,
                balance_after=card.balance,
            )
            session.add(transaction)
            await session.flush()

        logger.info("corporate_card_funded", card_id=card_id, amount=str(request.amount))
        await log_action(
            user.user_id, "corporate_card_funded", "corporate_cards",
            {"card_id": card_id, "amount": str(request.amount)},
            organization_id=user.organization_id,
        )
        return transaction

    async def update_card(self, card_id: str, user: UserIdentity, request: CardUpdateRequest) -> CorporateCard:
        card = await self.get_card(card_id, user)
        if card.status == CardStatus.CANCELLED:
            raise CardStateError("Cancelled cards cannot be updated")

        if request.spending_limit is not None:
            await self._issuing().update_spending_limit(
                decrypt(card.provider_card_id), request.spending_limit, card.interval
            )
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        async with get_session() as session:
            card = await session.get(CorporateCard, card_id)
            for key, value in changes.items():
                setattr(card, key, value)

        logger.info("corporate_card_updated", card_id=card_id, fields=sorted(changes))
        await log_action(
            user.user_id, "corporate_card_updated", "corporate_cards",
            {"card_id": card_id, "fields": sorted(changes)},
            organization_id=user.organization_id,
        )
        return card

    async def cancel_card(self, card_id: str, user: UserIdentity) -> CorporateCard:
        """Permanently cancel a card."""
        card = await self.get_card(card_id, user)
        if card.status == CardStatus.CANCELLED:
            return card
        await self._issuing().set_card_status(decrypt(card.provider_card_id), "canceled")
        async with get_session() as session:
            card = await session.get(CorporateCard, card_id)
            card.status = CardStatus.CANCELLED.value

        logger.info("corporate_card_cancelled", card_id=card_id)
        await log_action(
            user.user_id, "corporate_card_cancelled", "corporate_cards", {"card_id": card_id},
            organization_id=user.organization_id,
        )
        return card

    async def list_transactions(self, card_id: str, user: UserIdentity, limit: int = 100) -> list[CardTransaction]:
        await self.get_card(card_id, user)
        async with get_session() as session:
            result = await session.execute(
                select(CardTransaction)
                .where(CardTransaction.card_id == card_id)
                .order_by(CardTransaction.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
