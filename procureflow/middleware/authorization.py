from fastapi import Depends, HTTPException, status

from procureflow.middleware.auth import get_current_user

FINANCE_WRITERS = ("admin", "finance")


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/vendors")
        async def create_vendor(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles("finance", "admin")),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": (
                            f"Role '{current_user['role']}' cannot perform this action. "
                            f"Required: {allowed_roles}"
                        ),
                    }
                },
            )
        return None

    return check_role
