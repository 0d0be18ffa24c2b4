"""Accounts module: authentication, sessions, and site access."""

from seo_reporter.modules.accounts.auth_service import AuthService
from seo_reporter.modules.accounts.site_service import SiteService

__all__ = ["AuthService", "SiteService"]
