"""Exceptions shared by services and mapped to HTTP status codes by the API layer."""

from __future__ import annotations

from typing import Optional


class ProviderNotConfigured(RuntimeError):
    """An external provider is needed but has no credentials."""

    def __init__(self, provider: str, setting: str) -> None:
        super().__init__(f"{provider} is not configured. Set {setting} in .env")
        self.provider = provider


class ProviderError(RuntimeError):
    """An external provider rejected a request or could not be reached."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{provider} error: {message}")
        self.provider = provider
        self.status_code = status_code


class StateError(RuntimeError):
    """An operation is not allowed in the record's current state."""


class WizardStateError(StateError):
    pass


class ProposalStateError(StateError):
    pass


class CardStateError(StateError):
    pass


class TemplateStateError(StateError):
    pass
