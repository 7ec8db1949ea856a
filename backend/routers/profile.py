from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import Profile, User
from services.auth import get_current_user

router = APIRouter(prefix="/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    full_name: str = Field(min_length=1, max_length=120)
    date_of_birth: Optional[date] = None
    blood_type: Optional[str] = Field(default=None, max_length=10)


def _get_or_create_profile(user: User, session: Session) -> Profile:
    profile = session.exec(select(Profile).where(Profile.user_id == user.id)).first()
    if profile:
        return profile
    profile = Profile(user_id=user.id)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile


@router.get("")
def get_profile(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    profile = _get_or_create_profile(current_user, session)
    data = profile.model_dump()
    data["email"] = current_user.email
    return data


@router.put("")
def update_profile(
    body: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    full_name = body.full_name.strip()
    if not full_name:
        raise HTTPException(422, "Full name cannot be empty")

    profile = _get_or_create_profile(current_user, session)
    profile.full_name = full_name
    profile.date_of_birth = body.date_of_birth
    profile.blood_type = (body.blood_type or "").strip() or None
    profile.updated_at = datetime.utcnow()
    session.add(profile)
    try:
        session.commit()
        session.refresh(profile)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update profile")

    data = profile.model_dump()
    data["email"] = current_user.email
    return data
