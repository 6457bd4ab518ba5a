"""
Seed Script

Populates the database with demo data for development.
Creates two authors, their blogs, a collaborator membership and one key of
each type. Raw keys are printed once and are not recoverable afterwards.

Usage:
    python -m scripts.seed
"""

import asyncio
from uuid import uuid4

from backend.db.session import get_async_session
from backend.models.site import Site, SiteMember, SiteRole
from backend.models.user import User
from backend.services.api_keys import ApiKeyCreate, ApiKeyService


async def seed():
    """Create demo data."""
    async with get_async_session() as db:
        # ── Users ─────────────────────────────────────────
        ada = User(
            id=uuid4(),
            username="ada",
            display_name="Ada Park",
            email="ada@quillpress.dev",
        )
        ben = User(
            id=uuid4(),
            username="ben",
            display_name="Ben Okafor",
            email="ben@quillpress.dev",
        )
        db.add_all([ada, ben])
        await db.flush()

        # ── Sites ─────────────────────────────────────────
        field_notes = Site(
            id=uuid4(),
            name="Field Notes",
            slug="field-notes",
            description="Ada's travel journal",
            owner_id=ada.id,
        )
        night_shift = Site(
            id=uuid4(),
            name="Night Shift",
            slug="night-shift",
            description="Ben's short fiction",
            owner_id=ben.id,
        )
        db.add_all([field_notes, night_shift])
        await db.flush()

        # Ben edits Ada's blog
        db.add(
            SiteMember(
                id=uuid4(),
                site_id=field_notes.id,
                user_id=ben.id,
                role=SiteRole.EDITOR.value,
            )
        )
        await db.flush()

        # ── API Keys ──────────────────────────────────────
        service = ApiKeyService(db)
        ada_key = await service.create(
            ApiKeyCreate(
                name="Ada's CLI",
                user_id=ada.id,
                scopes=["read", "write"],
            )
        )
        deploy_key = await service.create(
            ApiKeyCreate(
                name="Field Notes deploy hook",
                key_type="site",
                user_id=ada.id,
                site_id=field_notes.id,
                scopes=["read", "write"],
            )
        )
        admin_key = await service.create(
            ApiKeyCreate(
                name="Platform operations",
                key_type="admin",
                scopes=["admin"],
            )
        )

        # Ada's CLI may read Ben's blog
        await service.grant_site_access(ada_key.id, night_shift.id, ["read"])

        print(f"Users: {ada.username}, {ben.username}")
        print(f"Sites: {field_notes.slug} (owner {ada.username}), {night_shift.slug} (owner {ben.username})")
        print(f"User key ({ada.username}): {ada_key.secret}")
        print(f"Site key ({field_notes.slug}): {deploy_key.secret}")
        print(f"Admin key: {admin_key.secret}")


if __name__ == "__main__":
    asyncio.run(seed())
