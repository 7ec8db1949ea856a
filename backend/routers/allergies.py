from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import Allergy, AllergySeverity, User
from services.auth import get_current_user

router = APIRouter(prefix="/allergies", tags=["allergies"])


class AllergyCreate(BaseModel):
    allergen: str = Field(min_length=1, max_length=200)
    severity: AllergySeverity = AllergySeverity.MILD
    reaction: Optional[str] = Field(default=None, max_length=1000)


@router.get("")
def list_allergies(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = session.exec(
        select(Allergy)
        .where(Allergy.user_id == current_user.id)
        .order_by(Allergy.created_at.desc())  # type: ignore[union-attr]
    ).all()
    return [row.model_dump() for row in rows]


@router.post("", status_code=201)
def create_allergy(
    body: AllergyCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    allergen = body.allergen.strip()
    if not allergen:
        raise HTTPException(422, "Allergen cannot be empty")

    allergy = Allergy(
        user_id=current_user.id,
        allergen=allergen,
        severity=body.severity,
        reaction=(body.reaction or "").strip() or None,
    )
    session.add(allergy)
    try:
        session.commit()
        session.refresh(allergy)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to add allergy")

    return allergy.model_dump()


@router.delete("/{allergy_id}")
def delete_allergy(
    allergy_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    allergy = session.get(Allergy, allergy_id)
    if not allergy or allergy.user_id != current_user.id:
        raise HTTPException(404, "Allergy not found")

    session.delete(allergy)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to delete allergy")
    return {"status": "deleted", "id": allergy_id}
