"""
Shared API Dependencies
=======================

FastAPI dependencies common to every router: caller identity, rate
limiting, and access to the process-wide components held on ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ticketflow.audit.application import ActorRef
from ticketflow.config import VALID_ACTOR_ROLES, ActorRole
from ticketflow.shared.infrastructure.rate_limit import SlidingWindowRateLimiter
from ticketflow.sla.application import ISLAConfigProvider


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_email: Optional[str] = Header(None),
) -> ActorRef:
    """
    Caller identity from the ``X-Actor-*`` headers.

    Callers without a role header act as customers. The system role is
    reserved for the engine itself.
    """
    role = (x_actor_role or ActorRole.CUSTOMER).strip().lower()
    if role not in VALID_ACTOR_ROLES or role == ActorRole.SYSTEM:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid X-Actor-Role '{x_actor_role}'"
        )
    return ActorRef(id=x_actor_id, role=role, name=x_actor_name, email=x_actor_email)


def require_staff(actor: ActorRef = Depends(get_actor)) -> ActorRef:
    """Agents and admins only."""
    if actor.role not in (ActorRole.AGENT, ActorRole.ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Agent or admin role required")
    return actor


def require_admin(actor: ActorRef = Depends(get_actor)) -> ActorRef:
    if actor.role != ActorRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return actor


def rate_limit(request: Request, actor: ActorRef = Depends(get_actor)) -> None:
    """Reject the call with 429 once the actor exhausted its window."""
    limiter: Optional[SlidingWindowRateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    key = actor.id or (request.client.host if request.client else "anonymous")
    if not limiter.allow(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(int(limiter.window_seconds))},
        )


# ========== app.state accessors ==========

def get_config_provider(request: Request) -> ISLAConfigProvider:
    return request.app.state.config_provider
