"""Sequential Booking Module: multi-traveler flight selection wizard."""

from remvana.modules.booking_wizard.service import BookingWizard
from remvana.modules.booking_wizard.store import WizardStore, get_wizard_store

__all__ = ["BookingWizard", "WizardStore", "get_wizard_store"]
