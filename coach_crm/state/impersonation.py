from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from coach_crm.core.validation import require_id
from coach_crm.db.models import Profile, UserRole


class ImpersonationState(BaseModel):
    is_impersonating: bool = False
    user_id: Optional[str] = None
    customer_id: Optional[str] = None


class Identity(BaseModel):
    """Whose data the client portal shows."""

    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    is_trainee: bool = False
    is_impersonating: bool = False


def start_impersonation(
    state: ImpersonationState, user_id: str, customer_id: str
) -> ImpersonationState:
    return ImpersonationState(
        is_impersonating=True,
        user_id=require_id(user_id, "user_id"),
        customer_id=require_id(customer_id, "customer_id"),
    )


def stop_impersonation(state: ImpersonationState) -> ImpersonationState:
    return ImpersonationState()


def effective_identity(state: ImpersonationState, user: Profile | None) -> Identity:
    if state.is_impersonating:
        return Identity(
            user_id=state.user_id,
            customer_id=state.customer_id,
            is_trainee=True,
            is_impersonating=True,
        )
    if user is None:
        return Identity()
    return Identity(
        user_id=user.id,
        customer_id=user.customer_id,
        is_trainee=user.role is UserRole.TRAINEE,
    )
