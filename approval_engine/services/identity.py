"""Identity directory lookups used to turn approver specs into user ids."""

import uuid
from typing import Protocol, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.models.user import User
from approval_engine.services.assignment_resolver import ByRole, ByUser

logger = structlog.get_logger()


class IdentityResolver(Protocol):
    async def resolve_approvers(self, spec: Union[ByUser, ByRole]) -> list[uuid.UUID]:
        ...


class SqlIdentityResolver:
    """Resolves specs against the tenant's `users` table."""

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID):
        self.session = session
        self.tenant_id = tenant_id

    async def resolve_approvers(self, spec: Union[ByUser, ByRole]) -> list[uuid.UUID]:
        if isinstance(spec, ByUser):
            return [spec.user_id]

        result = await self.session.execute(
            select(User.id).where(
                User.tenant_id == self.tenant_id,
                User.role == spec.role_code,
                User.is_active == True,  # noqa: E712
            )
        )
        user_ids = [row[0] for row in result.all()]
        logger.debug(
            "approver_role_resolved",
            role=spec.role_code,
            matches=len(user_ids),
        )
        return user_ids
