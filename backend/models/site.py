"""
Site Models

Blogs hosted on the platform and their collaborators.
Sites are the tenant boundary for API-key authorization: a user key reaches a
site through ownership, membership or an explicit key grant.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin, utcnow


class SiteRole(str, Enum):
    """Collaborator roles on a site."""

    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    AUTHOR = "author"
    CONTRIBUTOR = "contributor"


class Site(TimestampMixin, Base):
    """A blog hosted on the platform."""

    __tablename__ = "sites"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    owner_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Site {self.slug}>"


class SiteMember(Base):
    """A user who can contribute to a site beyond its owner."""

    __tablename__ = "site_members"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    site_id: Mapped[UUID] = mapped_column(
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        default=SiteRole.CONTRIBUTOR.value,
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("site_id", "user_id", name="uq_site_members_site_user"),
        CheckConstraint(
            "role IN ('owner', 'admin', 'editor', 'author', 'contributor')",
            name="valid_site_role",
        ),
    )
