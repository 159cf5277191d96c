from typing import Annotated, Optional
from fastapi import Depends, Request, Header, HTTPException, status
from uuid import UUID


def get_tenant_id(request: Request) -> UUID:
    """Extract tenant_id from request state set by TenantMiddleware"""
    if not hasattr(request.state, 'tenant_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Tenant context not found. Ensure X-Company-ID header is provided."
        )
    return request.state.tenant_id


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[UUID]:
    """
    Opaque actor identifier recorded on audit fields.
    Authentication happens upstream; this only parses the header.
    """
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-ID format. Must be a valid UUID"
        )


TenantId = Annotated[UUID, Depends(get_tenant_id)]
ActorId = Annotated[Optional[UUID], Depends(get_actor_id)]
