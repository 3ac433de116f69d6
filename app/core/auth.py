from typing import Optional
import uuid

from fastapi import Header, HTTPException, status

from app.domain.actor import Actor, UserRole

# Roles a caller may present; SYSTEM is reserved for background jobs
CALLER_ROLES = {UserRole.STUDENT, UserRole.TUTOR, UserRole.ADMIN}


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None, description="Authenticated user ID"),
    x_actor_role: Optional[str] = Header(None, description="student, tutor or admin"),
) -> Actor:
    """Resolve the caller set by the upstream authentication gateway"""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor headers",
        )
    try:
        actor_id = uuid.UUID(x_actor_id)
        role = UserRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor headers",
        )
    if role not in CALLER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role {role.value} cannot call the API",
        )
    return Actor(role=role, actor_id=actor_id)
