"""Site and client-site assignment SQLAlchemy models."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from seo_reporter.database import Base

if TYPE_CHECKING:
    from seo_reporter.models.account import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Site(Base):
    """A Search Console property tracked for a client."""

    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    google_site_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    owner: Mapped["User"] = relationship("User", back_populates="owned_sites")
    client_sites: Mapped[list["ClientSite"]] = relationship(
        back_populates="site", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Site id={self.id} domain={self.domain!r} active={self.is_active}>"


class ClientSite(Base):
    """Grants a user access to a site."""

    __tablename__ = "client_sites"
    __table_args__ = (UniqueConstraint("user_id", "site_id", name="uq_client_site"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped["User"] = relationship("User", back_populates="client_sites")
    site: Mapped["Site"] = relationship(back_populates="client_sites")

    def __repr__(self) -> str:
        return f"<ClientSite user_id={self.user_id} site_id={self.site_id}>"
