"""
API Key Site Access Model

Explicit per-site grants for user keys, for collaborators who neither own
nor belong to a site.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.api_key import ApiKeyScope
from backend.models.base import Base, JSONType, utcnow


class ApiKeySiteAccess(Base):
    """One grant per (key, site); re-granting replaces the scope set."""

    __tablename__ = "api_key_site_access"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    api_key_id: Mapped[UUID] = mapped_column(
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_id: Mapped[UUID] = mapped_column(
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scopes: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: [ApiKeyScope.READ.value],
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("api_key_id", "site_id", name="uq_api_key_site_access"),
    )

    def __repr__(self) -> str:
        return f"<ApiKeySiteAccess key={self.api_key_id} site={self.site_id}>"
