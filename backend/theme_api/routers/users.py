from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from ..core.auth import get_current_user
from ..core.database import get_session
from ..models.user import User, UserPublic
from ..services import tier_service

router = APIRouter(prefix="/users", tags=["Users"])


class UserSummary(BaseModel):
    user: UserPublic
    tier: str
    limits: Dict[str, Any]
    usage: Dict[str, Any]
    upgradeOptions: List[str]


@router.get("/me", response_model=UserSummary)
def read_users_me(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Current user with tier, limits and this month's detailed-analysis usage."""
    summary = tier_service.user_summary(session, current_user)
    summary["user"] = UserPublic.model_validate(current_user)
    return summary
