"""Sites, client assignments, and per-user site access."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select

from seo_reporter.database import Database
from seo_reporter.errors import SiteNotFoundError
from seo_reporter.models.account import Role, User
from seo_reporter.models.site import ClientSite, Site
from seo_reporter.utils.formatting import extract_domain, is_valid_site_url

logger = logging.getLogger(__name__)

_STAFF_ROLES = (Role.ADMIN, Role.EMPLOYEE)


@dataclass(frozen=True)
class SiteInfo:
    id: int
    domain: str
    display_name: str
    google_site_url: str
    owner_id: int
    is_active: bool = True

    @classmethod
    def from_model(cls, site: Site) -> "SiteInfo":
        return cls(
            id=site.id,
            domain=site.domain,
            display_name=site.display_name,
            google_site_url=site.google_site_url,
            owner_id=site.owner_id,
            is_active=site.is_active,
        )


@dataclass(frozen=True)
class ClientInfo:
    id: int
    email: str
    name: str
    business_name: Optional[str] = None


class SiteService:
    """Create sites, assign them to clients, and answer access questions."""

    def __init__(self, db: Database):
        self._db = db

    def create_site(
        self,
        domain: str,
        display_name: str,
        google_site_url: str,
        owner_id: int,
    ) -> SiteInfo:
        """Create an active site and assign it to its owner.

        Raises:
            ValueError: Missing or malformed URL, duplicate domain, or
                unknown owner.
        """
        domain = (domain or "").strip().lower() or (extract_domain(google_site_url or "") or "")
        if not domain or not google_site_url:
            raise ValueError("Domain and Google Site URL are required")
        if not is_valid_site_url(google_site_url):
            raise ValueError(f"Invalid Google Site URL format: {google_site_url}")

        with self._db.session() as session:
            if session.scalar(select(Site.id).where(Site.domain == domain)) is not None:
                raise ValueError(f"Site with domain {domain} already exists")
            if session.get(User, owner_id) is None:
                raise ValueError(f"Owner user {owner_id} not found")

            site = Site(
                domain=domain,
                display_name=display_name or domain,
                google_site_url=google_site_url.strip(),
                owner_id=owner_id,
                is_active=True,
            )
            session.add(site)
            session.flush()
            session.add(ClientSite(user_id=owner_id, site_id=site.id))
            info = SiteInfo.from_model(site)
        logger.info("Created site %s (%s)", info.domain, info.display_name)
        return info

    def get_site(self, site_id: int) -> SiteInfo:
        with self._db.session() as session:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(f"Site {site_id} not found")
            return SiteInfo.from_model(site)

    def get_first_active_site(self) -> Optional[SiteInfo]:
        with self._db.session() as session:
            site = session.scalar(
                select(Site).where(Site.is_active.is_(True)).order_by(Site.id).limit(1)
            )
            return SiteInfo.from_model(site) if site else None

    def get_user_sites(self, user_id: int) -> list[SiteInfo]:
        """Active sites the user owns, then sites assigned to them, newest first."""
        with self._db.session() as session:
            owned = session.scalars(
                select(Site)
                .where(Site.owner_id == user_id, Site.is_active.is_(True))
                .order_by(Site.created_at.desc(), Site.id.desc())
            ).all()
            assigned = session.scalars(
                select(Site)
                .join(ClientSite, ClientSite.site_id == Site.id)
                .where(ClientSite.user_id == user_id, Site.is_active.is_(True))
                .order_by(ClientSite.created_at.desc(), ClientSite.id.desc())
            ).all()

            seen: dict[int, SiteInfo] = {}
            for site in [*owned, *assigned]:
                seen.setdefault(site.id, SiteInfo.from_model(site))
            return list(seen.values())

    def get_user_primary_site(self, user_id: int) -> Optional[SiteInfo]:
        sites = self.get_user_sites(user_id)
        return sites[0] if sites else None

    def assign_site_to_client(self, site_id: int, user_id: int) -> bool:
        """Assign ``site_id`` to a CLIENT user.  Returns False if already assigned."""
        with self._db.session() as session:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(f"Site {site_id} not found")
            user = session.get(User, user_id)
            if user is None:
                raise ValueError(f"User {user_id} not found")
            if user.role != Role.CLIENT:
                raise ValueError("Can only assign sites to CLIENT role users")

            existing = session.scalar(
                select(ClientSite).where(ClientSite.user_id == user_id, ClientSite.site_id == site_id)
            )
            if existing is not None:
                return False
            session.add(ClientSite(user_id=user_id, site_id=site_id))
            logger.info("Assigned site %s to user %s", site.domain, user.email)
        return True

    def unassign_site_from_client(self, site_id: int, user_id: int) -> None:
        with self._db.session() as session:
            session.execute(
                delete(ClientSite).where(ClientSite.user_id == user_id, ClientSite.site_id == site_id)
            )
        logger.info("Unassigned site %s from user %s", site_id, user_id)

    def get_all_sites(self) -> list[SiteInfo]:
        with self._db.session() as session:
            sites = session.scalars(
                select(Site).where(Site.is_active.is_(True)).order_by(Site.created_at.desc(), Site.id.desc())
            )
            return [SiteInfo.from_model(s) for s in sites]

    def deactivate_site(self, site_id: int) -> None:
        with self._db.session() as session:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(f"Site {site_id} not found")
            site.is_active = False
        logger.info("Deactivated site %s", site_id)

    # ------------------------------------------------------------------
    # Report fan-out helpers
    # ------------------------------------------------------------------

    def get_active_clients(self) -> list[ClientInfo]:
        with self._db.session() as session:
            users = session.scalars(
                select(User)
                .where(User.role == Role.CLIENT, User.is_active.is_(True))
                .order_by(User.id)
            )
            return [ClientInfo(u.id, u.email, u.name, u.business_name) for u in users]

    def get_site_members(self, site_id: int) -> list[ClientInfo]:
        """The active owner and every active user assigned to the site."""
        with self._db.session() as session:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(f"Site {site_id} not found")
            members: dict[int, ClientInfo] = {}
            for user in [site.owner, *(cs.user for cs in site.client_sites)]:
                if user is not None and user.is_active:
                    members.setdefault(user.id, ClientInfo(user.id, user.email, user.name, user.business_name))
            return list(members.values())

    def get_site_recipients(self, site_id: int) -> list[str]:
        return [m.email for m in self.get_site_members(site_id)]

    # ------------------------------------------------------------------
    # Access checks
    # ------------------------------------------------------------------

    def user_has_site_access(self, user_id: int, site_id: int) -> bool:
        """Staff see every site; clients only sites they own or are assigned."""
        with self._db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                return False
            if user.role in _STAFF_ROLES:
                return True
            site = session.scalar(
                select(Site.id)
                .outerjoin(ClientSite, ClientSite.site_id == Site.id)
                .where(
                    Site.id == site_id,
                    (Site.owner_id == user_id) | (ClientSite.user_id == user_id),
                )
                .limit(1)
            )
            return site is not None

    def get_user_accessible_site_ids(self, user_id: int) -> list[int]:
        with self._db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                logger.error("User %s not found", user_id)
                return []
            role = user.role
        if role in _STAFF_ROLES:
            return [s.id for s in self.get_all_sites()]

        site_ids = [s.id for s in self.get_user_sites(user_id)]
        if not site_ids:
            logger.warning("Client user %s has no accessible sites", user_id)
        return site_ids
