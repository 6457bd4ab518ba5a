"""
API Key Model

Bearer credentials for programmatic access to the blog API.
Keys are hashed with SHA-256 before storage; the raw key is shown only once at creation.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, JSONType, TimestampMixin


class KeyType(str, Enum):
    """Ownership shape of a key."""

    USER = "user"  # Owned by a user, reaches that user's sites
    SITE = "site"  # Owned by a user, pinned to exactly one site
    ADMIN = "admin"  # Platform-wide, no owner


class ApiKeyScope(str, Enum):
    """Permission tags carried by a key. ADMIN implies every other scope."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    ADMIN = "admin"


class ApiKey(TimestampMixin, Base):
    """
    API key for programmatic access.

    The raw key looks like ``sk_live_<random>`` and is shown only once at
    creation. We store a SHA-256 hash for validation. The key_prefix
    (``sk_live_`` plus the first 8 random chars) is stored for display.
    """

    __tablename__ = "api_keys"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )

    # Labels
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Human-readable name for the key",
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Key identification
    key_prefix: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        comment="Display prefix, e.g. sk_live_ab12cd34",
    )
    key_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        comment="SHA-256 hash of the full API key",
    )

    # Type and ownership
    key_type: Mapped[str] = mapped_column(
        String(10),
        default=KeyType.USER.value,
        nullable=False,
    )
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owner of the key; null for admin keys",
    )
    site_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Pinned site for site keys",
    )

    # Permissions
    scopes: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: [ApiKeyScope.READ.value],
        comment="List of scope strings granted to this key",
    )

    # Rate limit metadata (not enforced here)
    rate_limit_per_minute: Mapped[int] = mapped_column(
        Integer,
        default=60,
        nullable=False,
    )
    rate_limit_per_day: Mapped[int] = mapped_column(
        Integer,
        default=10_000,
        nullable=False,
    )

    # Usage tracking
    usage_count: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        default=0,
        nullable=False,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Key expiration time; null = never expires",
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    revoked_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    revoke_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Restrictions
    allowed_ips: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="IP allow-list; empty = all allowed",
    )
    allowed_origins: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Origin allow-list; empty = all allowed",
    )
    key_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )

    __table_args__ = (
        CheckConstraint(
            "key_type IN ('user', 'site', 'admin')",
            name="valid_key_type",
        ),
        CheckConstraint(
            "(key_type = 'admin' AND user_id IS NULL AND site_id IS NULL) OR "
            "(key_type = 'user' AND user_id IS NOT NULL AND site_id IS NULL) OR "
            "(key_type = 'site' AND user_id IS NOT NULL AND site_id IS NOT NULL)",
            name="valid_ownership",
        ),
        CheckConstraint(
            "rate_limit_per_minute > 0 AND rate_limit_per_day > 0",
            name="positive_rate_limits",
        ),
        Index("ix_api_keys_user_active", "user_id", "is_active"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self) -> str:
        return f"<ApiKey {self.key_prefix} name={self.name}>"
