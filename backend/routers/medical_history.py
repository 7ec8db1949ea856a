from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import ConditionStatus, MedicalHistory, User
from services.auth import get_current_user

router = APIRouter(prefix="/medical-history", tags=["medical-history"])


class MedicalHistoryCreate(BaseModel):
    condition_name: str = Field(min_length=1, max_length=200)
    diagnosis_date: Optional[date] = None
    status: ConditionStatus = ConditionStatus.ONGOING
    notes: Optional[str] = Field(default=None, max_length=2000)


@router.get("")
def list_medical_history(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = session.exec(
        select(MedicalHistory)
        .where(MedicalHistory.user_id == current_user.id)
        .order_by(MedicalHistory.created_at.desc())  # type: ignore[union-attr]
    ).all()
    return [row.model_dump() for row in rows]


@router.post("", status_code=201)
def create_medical_history(
    body: MedicalHistoryCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    condition_name = body.condition_name.strip()
    if not condition_name:
        raise HTTPException(422, "Condition name cannot be empty")

    entry = MedicalHistory(
        user_id=current_user.id,
        condition_name=condition_name,
        diagnosis_date=body.diagnosis_date,
        status=body.status,
        notes=(body.notes or "").strip() or None,
    )
    session.add(entry)
    try:
        session.commit()
        session.refresh(entry)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to add medical history")

    return entry.model_dump()


@router.delete("/{entry_id}")
def delete_medical_history(
    entry_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    entry = session.get(MedicalHistory, entry_id)
    if not entry or entry.user_id != current_user.id:
        raise HTTPException(404, "Medical history entry not found")

    session.delete(entry)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to delete medical history entry")
    return {"status": "deleted", "id": entry_id}
