"""Delivery module: report emails."""

from seo_reporter.modules.delivery.email_service import EmailService, SMTPSettings

__all__ = ["EmailService", "SMTPSettings"]
