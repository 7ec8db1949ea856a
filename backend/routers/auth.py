from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import Profile, User
from services.auth import (
    authenticate_user,
    create_access_token,
    get_current_user,
    hash_password,
    user_payload,
)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=256)


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=8, max_length=256)
    full_name: str = Field(default="", max_length=120)


def _profile_for(user: User, session: Session) -> Profile | None:
    return session.exec(select(Profile).where(Profile.user_id == user.id)).first()


@router.post("/register", status_code=201)
def register(body: RegisterRequest, session: Session = Depends(get_session)):
    email = body.email.strip().lower()
    if not email:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Email cannot be empty")

    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(email=email, password_hash=hash_password(body.password))
    session.add(user)
    try:
        session.commit()
        session.refresh(user)
        profile = Profile(user_id=user.id, full_name=body.full_name.strip())
        session.add(profile)
        session.commit()
        session.refresh(profile)
    except Exception:
        session.rollback()
        raise HTTPException(status_code=500, detail="Failed to register user")

    return user_payload(user, profile)


@router.post("/login")
def login(body: LoginRequest, session: Session = Depends(get_session)):
    email = body.email.strip().lower()
    if not email:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Email cannot be empty")

    user = authenticate_user(email, body.password, session)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(user)
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": user_payload(user, _profile_for(user, session)),
    }


@router.get("/me")
def me(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return user_payload(current_user, _profile_for(current_user, session))
