"""
User provisioning: one active project membership per active company user.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.access_grant import AccessGrant
from app.models.project_membership import ProjectMembership
from app.models.user import User
from crm_hub_shared.schemas.access import ProvisioningCounts

log = structlog.get_logger()


async def ensure_membership(
    grant: AccessGrant, user: User, session: AsyncSession
) -> tuple[ProjectMembership, bool]:
    """Find or create the (grant, user) membership. Returns (membership, created)."""
    result = await session.execute(
        select(ProjectMembership).where(
            ProjectMembership.grant_id == grant.id,
            ProjectMembership.user_id == user.id,
        )
    )
    membership = result.scalar_one_or_none()
    if membership:
        return membership, False

    membership = ProjectMembership(grant_id=grant.id, user_id=user.id, status="active")
    session.add(membership)
    await session.flush()
    return membership, True


async def provision(grant: AccessGrant, session: AsyncSession) -> ProvisioningCounts:
    """Materialise memberships for every active user of the grant's company. Idempotent."""
    result = await session.execute(
        select(User).where(User.company_id == grant.company_id, User.status == "active")
    )
    users = result.scalars().all()

    created = 0
    for user in users:
        _, was_created = await ensure_membership(grant, user, session)
        if was_created:
            created += 1

    counts = ProvisioningCounts(
        users_found=len(users),
        newly_created=created,
        already_existed=len(users) - created,
    )
    log.info(
        "provisioning.completed",
        grant_id=str(grant.id),
        company_id=str(grant.company_id),
        **counts.model_dump(),
    )
    return counts
