from fastapi import Depends, HTTPException, status

from approval_engine.config import settings
from approval_engine.middleware.auth import get_current_user


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") in settings.admin_roles


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/approval-types")
        async def create_approval_type(
            _auth: None = Depends(require_roles(*settings.admin_roles)),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": f"Role '{current_user['role']}' cannot perform this action",
                    }
                },
            )
        return None

    return check_role


def require_admin():
    return require_roles(*sorted(settings.admin_roles))
