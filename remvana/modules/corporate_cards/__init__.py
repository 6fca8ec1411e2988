"""Corporate Cards Module: virtual cards through a card-issuing provider."""

from remvana.modules.corporate_cards.service import CorporateCardService

__all__ = ["CorporateCardService"]
