from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from approval_engine.database import get_db, set_tenant_context
from approval_engine.middleware.auth import get_current_user


async def get_db_with_tenant(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AsyncSession:
    """FastAPI dependency: DB session with the caller's RLS tenant context set."""
    try:
        await set_tenant_context(db, current_user["tenant_id"])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTH_TENANT_INVALID", "message": "Token carries an invalid tenant"}},
        )
    return db
