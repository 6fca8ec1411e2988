"""Templates Module: trip template marketplace."""

from remvana.modules.templates.service import TemplateService

__all__ = ["TemplateService"]
