"""Proposals Module: client proposals, invoices and PDF export."""

from remvana.modules.proposals.service import ProposalService

__all__ = ["ProposalService"]
