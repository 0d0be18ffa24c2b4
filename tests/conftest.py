"""Shared pytest fixtures for SEO Reporter tests."""

import sys
from datetime import date, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root is on sys.path so 'seo_reporter' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)


@pytest.fixture()
def db():
    """In-memory SQLite database with all tables created."""
    from seo_reporter.database import Database

    database = Database("sqlite:///:memory:")
    database.init_db()
    yield database
    database.dispose()


@pytest.fixture()
def seeded(db):
    """An admin, a client and one active site assigned to the client.

    Returns a simple namespace with ``admin``, ``client`` and ``site``.
    """
    from types import SimpleNamespace
    from seo_reporter.models.account import Role
    from seo_reporter.modules.accounts.auth_service import AuthService
    from seo_reporter.modules.accounts.site_service import SiteService

    auth = AuthService(db)
    sites = SiteService(db)
    admin = auth.create_user("admin@example.com", "admin-pass", "Admin", Role.ADMIN)
    client = auth.create_user(
        "client@example.com", "client-pass", "Casey Client", Role.CLIENT, business_name="Casey Rentals"
    )
    site = sites.create_site("example.com", "Example Rentals", "sc-domain:example.com", admin.id)
    sites.assign_site_to_client(site.id, client.id)
    return SimpleNamespace(admin=admin, client=client, site=site, auth=auth, sites=sites)


@pytest.fixture()
def add_daily(db):
    """Insert one DailyMetric row: ``add_daily(site_id, day, clicks, impressions, ctr, position)``."""
    from seo_reporter.models.metrics import DailyMetric

    def _add(site_id, day, clicks, impressions, ctr, position):
        with db.session() as session:
            session.add(DailyMetric(
                site_id=site_id, date=day, clicks=clicks,
                impressions=impressions, ctr=ctr, position=position,
            ))
    return _add


@pytest.fixture()
def add_week(add_daily):
    """Insert seven identical daily rows starting at ``start``."""
    def _add(site_id, start, clicks, impressions, ctr, position):
        for offset in range(7):
            add_daily(site_id, start + timedelta(days=offset), clicks, impressions, ctr, position)
    return _add


@pytest.fixture()
def fake_llm():
    """A configured LLM client whose ``complete`` returns a canned Completion."""
    from seo_reporter.integrations.llm_client import Completion

    client = MagicMock()
    client.is_configured = True
    client.primary_provider = "OPENAI"
    client.complete = AsyncMock(return_value=Completion(
        text='{"executiveSummary": "Traffic grew.", "keyInsights": ["Insight A"]}',
        tokens_used=120,
        provider="OPENAI",
        model="gpt-4o-mini",
    ))
    return client


@pytest.fixture()
def unconfigured_llm():
    client = MagicMock()
    client.is_configured = False
    client.primary_provider = None
    client.complete = AsyncMock(side_effect=AssertionError("complete must not be called"))
    return client


@pytest.fixture()
def report_week():
    """A fixed Monday..Sunday window and its previous week."""
    return date(2025, 1, 6), date(2025, 1, 12), date(2024, 12, 30), date(2025, 1, 5)
