"""
Security guards for role-based access control.
"""

from fastapi import Depends, HTTPException, status
from amour_backend.app.models.enums import AccountRole
from amour_backend.app.core.dependencies import get_current_user


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/influencers/{influencer_id}/pay")
        async def pay_influencer(
            influencer_id: int,
            admin: dict = Depends(require_admin)
        ):
            ...

    Returns:
        User payload if admin, raises 403 otherwise
    """
    if current_user.get("role") != AccountRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user
